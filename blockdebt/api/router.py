"""HTTP API router exposing loan lifecycle operations."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from blockdebt.models.base import UNKNOWN_ACTOR
from blockdebt.models.enums import ErrorKind, LoanCategory
from blockdebt.models.exceptions import LoanError, ModelError, ModelValidationError, ParseError
from blockdebt.models.payments import PaymentModel
from blockdebt.services.lifecycle import LoanLifecycleService, TransitionResult


logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.UNAUTHORIZED: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_HANDLED: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class CreateLoanRequest(BaseModel):
    """Request payload to open a new loan."""

    category: LoanCategory = Field(...)
    creditor_id: str = Field(..., min_length=1)
    debtor_id: str = Field(default=UNKNOWN_ACTOR, min_length=1)
    creditor_name: str = Field(default="")
    debtor_name: str = Field(default="")
    guild_id: Optional[str] = Field(default=None)
    amount: Optional[str] = Field(default=None, description="Money, Kill, or Item quantity as typed.")
    stacks: Optional[str] = Field(default=None)
    extra: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None, description="Info loan text.")

    def raw_fields(self) -> Dict[str, Optional[str]]:
        return {
            "amount": self.amount,
            "stacks": self.stacks,
            "extra": self.extra,
            "notes": self.notes,
        }


class ActorRequest(BaseModel):
    """Request payload identifying who performs an action."""

    actor_id: str = Field(..., min_length=1)


class PaymentRequest(ActorRequest):
    """Request payload to propose a payment."""

    amount: str = Field(..., min_length=1)


def _raise_http(exc: ModelError) -> None:
    """Translate a rejected action into an HTTP error."""
    if isinstance(exc, ParseError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"kind": exc.kind.value, "message": str(exc)},
        )
    if isinstance(exc, LoanError):
        raise HTTPException(
            status_code=_STATUS_BY_KIND.get(exc.kind, status.HTTP_409_CONFLICT),
            detail={"kind": exc.kind.value, "message": str(exc)},
        )
    if isinstance(exc, ModelValidationError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"kind": ErrorKind.INVALID_INPUT.value, "message": str(exc)},
        )
    logger.exception("Unexpected model error")
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def _payment_payload(payment: PaymentModel) -> Dict[str, Any]:
    return payment.model_dump(mode="json")


def _result_payload(result: TransitionResult) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "loan": result.loan.model_dump(mode="json"),
        "display": result.display.as_dict(),
    }
    if result.payment is not None:
        payload["payment"] = _payment_payload(result.payment)
    if result.accrual is not None:
        payload["accrual"] = {
            "days": result.accrual.days,
            "previous_amount": result.accrual.previous_amount,
            "new_amount": result.accrual.new_amount,
        }
    return payload


def build_router(lifecycle: LoanLifecycleService) -> APIRouter:
    """Build and return the top-level API router.

    Args:
        lifecycle: Service every loan route delegates to.

    Returns:
        APIRouter: Fully configured router with all endpoints.
    """
    router = APIRouter()

    @router.get("/", summary="Root endpoint")
    def read_root() -> dict:
        """Return a basic message confirming service availability."""
        return {"status": "online"}

    @router.get("/health", summary="Health check")
    def health_check() -> dict:
        """Return service health status for probes and monitors."""
        return {"status": "healthy"}

    @router.post("/loans", summary="Create a loan", status_code=status.HTTP_201_CREATED)
    def create_loan(payload: CreateLoanRequest) -> dict:
        try:
            result = lifecycle.create(
                category=payload.category,
                creditor_id=payload.creditor_id,
                debtor_id=payload.debtor_id,
                raw_fields=payload.raw_fields(),
                creditor_name=payload.creditor_name,
                debtor_name=payload.debtor_name,
                guild_id=payload.guild_id,
            )
        except ModelError as exc:
            _raise_http(exc)
        return _result_payload(result)

    @router.get("/loans/{loan_id}", summary="Get a loan with interest brought up to date")
    def get_loan(loan_id: int) -> dict:
        try:
            result = lifecycle.get_view(loan_id)
        except ModelError as exc:
            _raise_http(exc)
        return _result_payload(result)

    @router.get("/loans/{loan_id}/payments", summary="List payment ledger entries of a loan")
    def list_payments(loan_id: int) -> List[dict]:
        try:
            payments = lifecycle.payment_history(loan_id)
        except ModelError as exc:
            _raise_http(exc)
        return [_payment_payload(payment) for payment in payments]

    @router.post("/loans/{loan_id}/payments", summary="Propose a payment")
    def propose_payment(loan_id: int, payload: PaymentRequest) -> dict:
        try:
            result = lifecycle.propose_payment(loan_id, payload.actor_id, payload.amount)
        except ModelError as exc:
            _raise_http(exc)
        return _result_payload(result)

    loan_actions = {
        "accept": lifecycle.accept,
        "decline": lifecycle.decline,
        "refresh": lifecycle.refresh,
        "mark-paid": lifecycle.mark_paid,
        "confirm-completion": lifecycle.confirm_completion,
        "request-close": lifecycle.request_close,
        "confirm-close": lifecycle.confirm_close,
    }

    @router.post("/loans/{loan_id}/{action}", summary="Run a lifecycle action on a loan")
    def loan_action(loan_id: int, action: str, payload: ActorRequest) -> dict:
        handler = loan_actions.get(action)
        if handler is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown action: {0}".format(action))
        try:
            result = handler(loan_id, payload.actor_id)
        except ModelError as exc:
            _raise_http(exc)
        return _result_payload(result)

    @router.post("/payments/{payment_id}/confirm", summary="Confirm a proposed payment")
    def confirm_payment(payment_id: int, payload: ActorRequest) -> dict:
        try:
            result = lifecycle.confirm_payment(payment_id, payload.actor_id)
        except ModelError as exc:
            _raise_http(exc)
        return _result_payload(result)

    @router.post("/payments/{payment_id}/reject", summary="Reject a proposed payment")
    def reject_payment(payment_id: int, payload: ActorRequest) -> dict:
        try:
            result = lifecycle.reject_payment(payment_id, payload.actor_id)
        except ModelError as exc:
            _raise_http(exc)
        return _result_payload(result)

    return router
