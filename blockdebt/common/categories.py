"""Per-category parsing, display, and accrual rules.

Every category-specific decision lives in :data:`CATEGORY_RULES`; the
services and the gateway look rules up instead of branching on category.
"""

from dataclasses import dataclass
from typing import Callable, Dict, Mapping, NamedTuple, Optional, Tuple

from blockdebt.models.enums import LoanCategory

from .numeric import (
    MagnitudePreview,
    format_magnitude,
    parse_info_text,
    parse_item_fields,
    parse_item_text,
    parse_kill_count,
    parse_magnitude,
    preview_magnitude,
    round_half_up,
    to_stack_display,
)


CreationFields = Mapping[str, Optional[str]]


class CreationField(NamedTuple):
    """One input of the loan creation form."""

    key: str
    label: str
    placeholder: str
    required: bool = True
    paragraph: bool = False
    max_length: int = 100


@dataclass(frozen=True)
class CategoryRules:
    """How one loan category reads amounts, shows them, and accrues."""

    label: str
    parse_amount: Callable[[Optional[str]], float]
    format_amount: Callable[[float], str]
    accrues: bool
    parse_creation: Callable[[CreationFields], Tuple[float, str]]
    creation_fields: Tuple[CreationField, ...]
    has_amount: bool = True
    whole_units: bool = False
    preview_creation: Optional[Callable[[CreationFields], MagnitudePreview]] = None

    @property
    def payable(self) -> bool:
        return self.has_amount

    def max_payment(self, balance: float, epsilon: float) -> float:
        """Largest payment accepted against ``balance``.

        Whole-unit balances may be paid at their displayed, rounded value.
        """
        if self.whole_units:
            return float(max(round_half_up(balance), 0))
        return balance + epsilon

    def is_settled(self, remaining: float, epsilon: float) -> bool:
        if self.whole_units:
            return round_half_up(max(remaining, 0.0)) == 0
        return remaining <= epsilon

    def preview(self, fields: CreationFields) -> Optional[MagnitudePreview]:
        if self.preview_creation is None:
            return None
        return self.preview_creation(fields)


def _parse_nothing(_: Optional[str]) -> float:
    return 0.0


def _create_money(fields: CreationFields) -> Tuple[float, str]:
    return parse_magnitude(fields.get("amount")), ""


def _create_item(fields: CreationFields) -> Tuple[float, str]:
    stacks = fields.get("stacks")
    if stacks is not None and str(stacks).strip():
        return float(parse_item_fields(stacks, fields.get("extra"))), ""
    return float(parse_item_text(fields.get("amount"))), ""


def _create_kill(fields: CreationFields) -> Tuple[float, str]:
    return float(parse_kill_count(fields.get("amount"))), ""


def _create_info(fields: CreationFields) -> Tuple[float, str]:
    return 0.0, parse_info_text(fields.get("notes"))


def format_items(units: float) -> str:
    """Render item units with their stack breakdown."""
    rounded = round_half_up(units)
    stacks, extra = to_stack_display(rounded)
    breakdown = "{0} stacks".format(stacks)
    if extra:
        breakdown = "{0} + {1}".format(breakdown, extra)
    return "{0} units ({1})".format(rounded, breakdown)


def format_kills(count: float) -> str:
    """Render a kill balance as a whole number."""
    return str(round_half_up(count))


def _format_nothing(_: float) -> str:
    return "n/a"


def _preview_money(fields: CreationFields) -> MagnitudePreview:
    return preview_magnitude(fields.get("amount"))


CATEGORY_RULES: Dict[LoanCategory, CategoryRules] = {
    LoanCategory.MONEY: CategoryRules(
        label="Money",
        parse_amount=parse_magnitude,
        format_amount=format_magnitude,
        accrues=True,
        parse_creation=_create_money,
        creation_fields=(CreationField("amount", "Amount", "e.g. 1.5m, 250k, 1000"),),
        preview_creation=_preview_money,
    ),
    LoanCategory.ITEM: CategoryRules(
        label="Item",
        parse_amount=lambda text: float(parse_item_text(text)),
        format_amount=format_items,
        accrues=True,
        parse_creation=_create_item,
        creation_fields=(
            CreationField("stacks", "Stacks (64 items each)", "e.g. 3"),
            CreationField("extra", "Extra items (0-63)", "e.g. 20", required=False),
        ),
        whole_units=True,
    ),
    LoanCategory.KILL: CategoryRules(
        label="Kill",
        parse_amount=lambda text: float(parse_kill_count(text)),
        format_amount=format_kills,
        accrues=True,
        parse_creation=_create_kill,
        creation_fields=(CreationField("amount", "Kills", "e.g. 5"),),
        whole_units=True,
    ),
    LoanCategory.INFO: CategoryRules(
        label="Info",
        parse_amount=_parse_nothing,
        format_amount=_format_nothing,
        accrues=False,
        parse_creation=_create_info,
        creation_fields=(
            CreationField("notes", "Information", "What is owed", paragraph=True, max_length=4000),
        ),
        has_amount=False,
    ),
}


def rules_for(category: LoanCategory) -> CategoryRules:
    """Return the rules of ``category``."""
    return CATEGORY_RULES[LoanCategory(category)]
