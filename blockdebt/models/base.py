"""Shared base models and common type aliases."""

from datetime import datetime, timezone
import logging
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ModelValidationError


logger = logging.getLogger(__name__)

Amount = float
ActorId = str

UNKNOWN_ACTOR: ActorId = "unknown"


def utc_now() -> datetime:
    """Return current UTC timestamp."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseRecordModel(BaseModel):
    """Base record schema for store-backed domain models."""

    id: Optional[int] = Field(default=None, description="Store-assigned identifier.")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    version: int = Field(default=1, ge=1)

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=False,
    )

    def to_record(self) -> Dict[str, Any]:
        """Serialize model into a store-ready dictionary.

        Returns:
            Dict[str, Any]: Serialized model payload.

        Raises:
            ModelValidationError: If serialization fails.
        """
        try:
            return self.model_dump()
        except Exception as exc:
            logger.exception("Failed to serialize %s with id=%s", self.__class__.__name__, self.id)
            raise ModelValidationError(str(exc))

    @classmethod
    def from_record(cls, data: Dict[str, Any], record_id: Optional[int] = None) -> "BaseRecordModel":
        """Create model instance from stored record data.

        Args:
            data: Stored record payload.
            record_id: Optional identifier overriding a missing ``id`` key.

        Returns:
            BaseRecordModel: Typed domain instance.

        Raises:
            ModelValidationError: If payload parsing fails.
        """
        try:
            payload = dict(data)
            if record_id is not None and payload.get("id") is None:
                payload["id"] = record_id
            return cls.model_validate(payload)
        except Exception as exc:
            logger.exception("Failed to parse stored payload for %s record_id=%s", cls.__name__, record_id)
            raise ModelValidationError(str(exc))

    def with_changes(self, changes: Dict[str, Any]) -> "BaseRecordModel":
        """Return a validated copy with ``changes`` applied.

        Raises:
            ModelValidationError: If the merged payload violates model rules.
        """
        payload = self.to_record()
        payload.update(changes)
        return self.from_record(payload)
