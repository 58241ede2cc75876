"""Core utilities for configuration, logging, and time."""

from .clock import Clock, ManualClock, SystemClock
from .config import AppSettings, load_settings
from .logging_config import get_logger, setup_logging

__all__ = [
    "AppSettings",
    "load_settings",
    "Clock",
    "ManualClock",
    "SystemClock",
    "get_logger",
    "setup_logging",
]
