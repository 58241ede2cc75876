"""Discord gateway for the loan tracker."""

from .client import BlockDebtBot
from .embeds import build_loan_embed, build_panel_embed, build_payment_embed, build_preview_embed
from .mentions import mention, resolve_debtor_reference
from .views import LoanActionButton, LoanPanelView, build_loan_view, loan_actions_for

__all__ = [
    "BlockDebtBot",
    "LoanActionButton",
    "LoanPanelView",
    "build_loan_embed",
    "build_loan_view",
    "build_panel_embed",
    "build_payment_embed",
    "build_preview_embed",
    "loan_actions_for",
    "mention",
    "resolve_debtor_reference",
]
