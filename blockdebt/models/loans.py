"""Loan domain model for community-tracked debts."""

from datetime import datetime
import logging
from typing import Optional

from pydantic import Field, field_validator, model_validator

from .base import UNKNOWN_ACTOR, ActorId, Amount, BaseRecordModel, ensure_utc
from .enums import LoanCategory, LoanStatus


logger = logging.getLogger(__name__)


class LoanModel(BaseRecordModel):
    """Represents one loan between a creditor and a debtor."""

    guild_id: Optional[str] = Field(default=None)
    category: LoanCategory = Field(...)

    creditor_id: ActorId = Field(..., min_length=1)
    creditor_name: str = Field(default="")
    debtor_id: ActorId = Field(default=UNKNOWN_ACTOR, min_length=1)
    debtor_name: str = Field(default="")

    original_amount: Amount = Field(..., ge=0)
    current_amount: Amount = Field(..., ge=0)

    status: LoanStatus = Field(default=LoanStatus.PENDING)
    accepted_at: Optional[datetime] = Field(default=None)
    last_accrual_at: Optional[datetime] = Field(default=None)

    thread_ref: Optional[str] = Field(default=None)
    notes: str = Field(default="", max_length=10_000)

    completion_requested_at: Optional[datetime] = Field(default=None)
    close_requested_by: Optional[ActorId] = Field(default=None)

    @field_validator("created_at", "updated_at", "accepted_at", "last_accrual_at", "completion_requested_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Store every timestamp in UTC."""
        if value is None:
            return None
        return ensure_utc(value)

    @model_validator(mode="after")
    def _validate_business_rules(self) -> "LoanModel":
        """Validate category and lifecycle rules."""
        try:
            if self.category == LoanCategory.INFO and (self.original_amount or self.current_amount):
                raise ValueError("INFO loans cannot carry an amount")

            if self.status == LoanStatus.ACTIVE and self.accepted_at is None:
                raise ValueError("accepted_at is required when status is ACTIVE")

            return self
        except Exception:
            logger.exception(
                "Loan validation failed id=%s creditor_id=%s",
                self.id,
                self.creditor_id,
            )
            raise

    @property
    def accrual_anchor(self) -> Optional[datetime]:
        """Timestamp interest is counted from."""
        return self.last_accrual_at or self.accepted_at

    @property
    def debtor_known(self) -> bool:
        """Return whether the gateway resolved the debtor."""
        return self.debtor_id != UNKNOWN_ACTOR

    def is_party(self, actor_id: ActorId) -> bool:
        """Return whether ``actor_id`` is the creditor or the debtor."""
        return actor_id in {self.creditor_id, self.debtor_id}
