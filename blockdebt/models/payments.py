"""Payment ledger entry model."""

from datetime import datetime
import logging
from typing import Optional

from pydantic import Field, field_validator

from .base import ActorId, Amount, BaseRecordModel, ensure_utc, utc_now
from .enums import PaymentStatus


logger = logging.getLogger(__name__)


class PaymentModel(BaseRecordModel):
    """A partial payment proposed by the debtor against one loan."""

    loan_id: int = Field(..., ge=1)
    payer_id: ActorId = Field(..., min_length=1)
    amount: Amount = Field(..., gt=0)
    recorded_at: datetime = Field(default_factory=utc_now)

    status: PaymentStatus = Field(default=PaymentStatus.PROPOSED)
    resolved_at: Optional[datetime] = Field(default=None)

    @field_validator("created_at", "updated_at", "recorded_at", "resolved_at")
    @classmethod
    def _normalize_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Store every timestamp in UTC."""
        if value is None:
            return None
        return ensure_utc(value)

    @property
    def confirmed(self) -> bool:
        """Return whether the creditor applied this payment."""
        return self.status == PaymentStatus.CONFIRMED

    @property
    def is_open(self) -> bool:
        """Return whether the payment still awaits the creditor."""
        return self.status == PaymentStatus.PROPOSED
