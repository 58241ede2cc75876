"""Common reusable utility exports."""

from .categories import CATEGORY_RULES, CategoryRules, CreationField, rules_for
from .numeric import (
    MAX_ITEMS,
    MAX_KILLS,
    MAX_MONEY,
    MAX_STACKS,
    STACK_SIZE,
    MagnitudePreview,
    StackDisplay,
    autocorrect_magnitude,
    format_magnitude,
    parse_info_text,
    parse_item_fields,
    parse_item_quantity,
    parse_item_text,
    parse_kill_count,
    parse_magnitude,
    preview_magnitude,
    round_half_up,
    to_stack_display,
)

__all__ = [
    "CATEGORY_RULES",
    "CategoryRules",
    "CreationField",
    "rules_for",
    "MAX_ITEMS",
    "MAX_KILLS",
    "MAX_MONEY",
    "MAX_STACKS",
    "STACK_SIZE",
    "MagnitudePreview",
    "StackDisplay",
    "autocorrect_magnitude",
    "format_magnitude",
    "parse_info_text",
    "parse_item_fields",
    "parse_item_quantity",
    "parse_item_text",
    "parse_kill_count",
    "parse_magnitude",
    "preview_magnitude",
    "round_half_up",
    "to_stack_display",
]
