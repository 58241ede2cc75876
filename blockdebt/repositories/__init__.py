"""Record store backends."""

import logging

from blockdebt.core.config import AppSettings
from blockdebt.models.repositories import LoanStore

from .memory_store import InMemoryLoanStore
from .sqlite_store import SqliteLoanStore


logger = logging.getLogger(__name__)


def build_store(settings: AppSettings) -> LoanStore:
    """Create the record store selected in settings."""
    if settings.store_backend == "memory":
        logger.warning("Using in-memory store; loans are lost on restart.")
        return InMemoryLoanStore()
    return SqliteLoanStore(settings.database_path)


__all__ = ["InMemoryLoanStore", "SqliteLoanStore", "build_store"]
