"""Configuration loading utilities for YAML-based application settings."""

from dataclasses import dataclass, field
from datetime import date
import os
from pathlib import Path
from typing import Any, FrozenSet, Optional, Union

import yaml

from .logging_config import get_logger


logger = get_logger(__name__)
_BASE_DIR = Path(__file__).resolve().parent.parent.parent
_CONFIG_PATH = _BASE_DIR / "config.yml"
_DEPLOY_DATA_DIR = Path("/app/data")


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from YAML configuration file."""

    app_name: str = "BlockDebt"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    store_backend: str = "sqlite"
    database_path: str = "blockdebt.db"
    discord_enabled: bool = False
    discord_token: Optional[str] = None
    loans_channel_id: Optional[int] = None
    accrual_daily_rate: float = 0.03
    accrual_epsilon: float = 1e-2
    accrual_sweep_interval_sec: int = 3600
    holidays: FrozenSet[date] = field(default_factory=frozenset)


def _to_bool(value: Any, default: bool = False) -> bool:
    """Convert value to bool with a default fallback."""
    try:
        if isinstance(value, bool):
            return value
        return value.strip().lower() in {"1", "true", "yes", "on"}
    except (AttributeError, ValueError):
        logger.warning("Invalid boolean value '%s'. Using default=%s", value, default)
        return default


def _to_int(value: Any, default: int) -> int:
    """Convert value to int with a default fallback."""
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid integer value '%s'. Using default=%s", value, default)
        return default


def _to_optional_int(value: Any) -> Optional[int]:
    """Convert value to int, keeping blanks as None."""
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid identifier value '%s'. Ignoring it.", value)
        return None


def _to_float(value: Any, default: float) -> float:
    """Convert value to float with a default fallback."""
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning("Invalid float value '%s'. Using default=%s", value, default)
        return default


def _to_list(value: Any) -> list:
    """Convert list-like or comma-separated value to a list."""
    if value is None:
        return []
    if isinstance(value, list):
        return [item for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _to_date_set(value: Any) -> FrozenSet[date]:
    """Convert ISO date strings (or YAML dates) into a set of dates."""
    holidays = set()
    for item in _to_list(value):
        if isinstance(item, date):
            holidays.add(item)
            continue
        try:
            holidays.add(date.fromisoformat(str(item).strip()))
        except ValueError:
            logger.warning("Invalid holiday date '%s'. Skipping it.", item)
    return frozenset(holidays)


def _default_database_path() -> str:
    """Prefer the mounted data volume when running in a container."""
    if _DEPLOY_DATA_DIR.is_dir():
        return str(_DEPLOY_DATA_DIR / "blockdebt.db")
    return str(_BASE_DIR / "blockdebt.db")


def _resolve_config_path(path: Optional[Union[str, Path]]) -> Path:
    """Pick the explicit path, then ``BLOCKDEBT_CONFIG``, then the repo default."""
    if path is not None:
        return Path(path)
    env_path = os.environ.get("BLOCKDEBT_CONFIG")
    if env_path:
        return Path(env_path)
    return _CONFIG_PATH


def _read_config(path: Path) -> dict:
    """Read and parse YAML configuration."""
    try:
        with path.open("r", encoding="utf-8") as config_file:
            config_data = yaml.safe_load(config_file) or {}
        logger.info("Configuration loaded from %s", path)
        return config_data
    except FileNotFoundError:
        logger.warning("Config file not found at %s. Falling back to defaults.", path)
        return {}
    except yaml.YAMLError:
        logger.exception("Failed to parse config file at %s", path)
        return {}


def load_settings(path: Optional[Union[str, Path]] = None) -> AppSettings:
    """Load and validate application settings from ``config.yml``.

    ``DISCORD_TOKEN``, ``CHANNEL_ID`` and ``PORT`` environment variables take
    precedence over the file so secrets can stay out of it.
    """
    config = _read_config(_resolve_config_path(path))
    app_cfg = config.get("app") or {}
    store_cfg = config.get("store") or {}
    discord_cfg = config.get("discord") or {}
    accrual_cfg = config.get("accrual") or {}

    port = _to_int(os.environ.get("PORT", app_cfg.get("port", 3000)), 3000)

    store_backend = str(store_cfg.get("backend", "sqlite")).strip().lower()
    if store_backend not in {"sqlite", "memory"}:
        logger.warning("Unknown store backend '%s'. Using sqlite.", store_backend)
        store_backend = "sqlite"

    discord_token = os.environ.get("DISCORD_TOKEN") or discord_cfg.get("token")
    loans_channel_id = _to_optional_int(
        os.environ.get("CHANNEL_ID") or discord_cfg.get("loans_channel_id")
    )

    return AppSettings(
        app_name=str(app_cfg.get("name", "BlockDebt")),
        debug=_to_bool(app_cfg.get("debug", False), False),
        host=str(app_cfg.get("host", "0.0.0.0")),
        port=port,
        log_level=str(app_cfg.get("log_level", "INFO")).upper(),
        store_backend=store_backend,
        database_path=str(store_cfg.get("path") or _default_database_path()),
        discord_enabled=_to_bool(discord_cfg.get("enabled", False), False),
        discord_token=discord_token,
        loans_channel_id=loans_channel_id,
        accrual_daily_rate=_to_float(accrual_cfg.get("daily_rate", 0.03), 0.03),
        accrual_epsilon=_to_float(accrual_cfg.get("epsilon", 1e-2), 1e-2),
        accrual_sweep_interval_sec=_to_int(accrual_cfg.get("sweep_interval_sec", 3600), 3600),
        holidays=_to_date_set(accrual_cfg.get("holidays")),
    )
