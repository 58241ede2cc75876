"""Parsing, formatting, and rounding of human-entered loan quantities.

Magnitude strings are what users type into modals: a number with an
optional ``k``/``m``/``b``/``t`` suffix (``"1.5m"``, ``"200k"``).  Values are
computed with ``Decimal`` so that ``"1000k"`` and ``"1m"`` parse to the very
same float.

Examples:
    parse_magnitude("1.5m")        ->  1500000.0
    autocorrect_magnitude("1000k") ->  "1m"
    format_magnitude(1545000.0)    ->  "1.55M"
    parse_item_quantity(2, 10)     ->  138
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
import math
import re
from typing import NamedTuple, Optional, Tuple

from blockdebt.models.enums import ParseErrorKind
from blockdebt.models.exceptions import ParseError

# ---------------------------------------------------------------------------
# Magnitude tiers
# ---------------------------------------------------------------------------
MULTIPLIERS = {
    "k": 10**3,
    "m": 10**6,
    "b": 10**9,
    "t": 10**12,
}
_TIER_ORDER: Tuple[str, ...] = ("", "k", "m", "b", "t")
_DISPLAY_TIERS: Tuple[Tuple[int, str], ...] = (
    (10**12, "T"),
    (10**9, "B"),
    (10**6, "M"),
    (10**3, "K"),
)

# ---------------------------------------------------------------------------
# Ceilings
# ---------------------------------------------------------------------------
MAX_MONEY: int = 10 * MULTIPLIERS["t"]
MAX_ITEMS: int = 10 * MULTIPLIERS["t"]
STACK_SIZE: int = 64
MAX_STACKS: int = 150_000_000_000
MAX_KILLS: int = 10_000
MAX_INFO_LENGTH: int = 10_000

_MAGNITUDE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)([kmbt])?$")
_STACK_PATTERN = re.compile(r"^(\S+?)\s*stacks?(?:\s*\+\s*(\S+))?$")
_INTEGER_PATTERN = re.compile(r"^\d+$")
_CENT = Decimal("0.01")


class StackDisplay(NamedTuple):
    """Item units split into full stacks plus leftover units."""

    stacks: int
    extra: int


class MagnitudePreview(NamedTuple):
    """What a user typed next to how it will be stored and shown."""

    raw: str
    value: float
    canonical: str
    display: str
    corrected: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _prepare(text: Optional[str]) -> str:
    """Trim and lower-case input, rejecting blanks and commas."""
    if text is None or not str(text).strip():
        raise ParseError(ParseErrorKind.EMPTY, "A value is required.")
    normalized = str(text).strip().lower()
    if "," in normalized:
        raise ParseError(
            ParseErrorKind.FORBIDDEN_SEPARATOR,
            "Use a dot for decimals and no thousands separators (e.g. 1.5m).",
        )
    return normalized


def _split_magnitude(text: Optional[str]) -> Tuple[Decimal, str]:
    """Return the numeric literal and suffix of a magnitude string."""
    normalized = _prepare(text)
    match = _MAGNITUDE_PATTERN.match(normalized)
    if match is None:
        raise ParseError(
            ParseErrorKind.BAD_FORMAT,
            "Invalid format. Use digits with an optional k, m, b or t suffix.",
        )
    return Decimal(match.group(1)), match.group(2) or ""


def _normalize_tier(literal: Decimal, suffix: str) -> Tuple[Decimal, str]:
    """Move ``literal`` up one tier at a time until it is below 1000."""
    while literal >= 1000 and suffix != _TIER_ORDER[-1]:
        literal = literal / 1000
        suffix = _TIER_ORDER[_TIER_ORDER.index(suffix) + 1]
    return literal, suffix


def _magnitude_decimal(text: Optional[str]) -> Decimal:
    """Return the exact value of a magnitude string without any ceiling."""
    literal, suffix = _split_magnitude(text)
    return literal * MULTIPLIERS.get(suffix, 1)


def _whole_magnitude(text: Optional[str]) -> int:
    """Parse a magnitude string that must denote a whole number."""
    value = _magnitude_decimal(text)
    if value != value.to_integral_value():
        raise ParseError(ParseErrorKind.BAD_FORMAT, "Value must be a whole number.")
    return int(value)


def _plain(value: Decimal) -> str:
    """Render a decimal without exponent or trailing zeros."""
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def _round_cents(value: Decimal) -> Decimal:
    """Round to two fractional digits, half up."""
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Magnitude strings (money and item units)
# ---------------------------------------------------------------------------

def parse_magnitude(text: Optional[str], ceiling: int = MAX_MONEY) -> float:
    """Parse a magnitude string into its raw numeric value.

    Args:
        text: User input such as ``"1.5m"``, ``"200k"`` or ``"1000"``.
        ceiling: Largest accepted value.

    Returns:
        float: Raw value (``1500000.0`` for ``"1.5m"``).

    Raises:
        ParseError: EMPTY, FORBIDDEN_SEPARATOR, BAD_FORMAT or TOO_LARGE.
    """
    literal, suffix = _split_magnitude(text)
    # Autocorrection only changes the representation, never the value.
    literal, suffix = _normalize_tier(literal, suffix)
    value = literal * MULTIPLIERS.get(suffix, 1)
    if value > ceiling:
        raise ParseError(
            ParseErrorKind.TOO_LARGE,
            "Value exceeds the maximum of {0}.".format(format_magnitude(ceiling)),
        )
    return float(value)


def autocorrect_magnitude(text: Optional[str], ceiling: int = MAX_MONEY) -> str:
    """Return the canonical spelling of a magnitude string.

    ``"1000k"`` becomes ``"1m"`` and ``"1500000"`` becomes ``"1.5m"``.
    Canonical strings are returned unchanged.

    Raises:
        ParseError: Same conditions as :func:`parse_magnitude`.
    """
    parse_magnitude(text, ceiling=ceiling)
    literal, suffix = _normalize_tier(*_split_magnitude(text))
    return _plain(literal.normalize()) + suffix


def preview_magnitude(text: Optional[str], ceiling: int = MAX_MONEY) -> MagnitudePreview:
    """Describe how a magnitude string will be interpreted."""
    value = parse_magnitude(text, ceiling=ceiling)
    raw = str(text).strip()
    canonical = autocorrect_magnitude(text, ceiling=ceiling)
    return MagnitudePreview(
        raw=raw,
        value=value,
        canonical=canonical,
        display=format_magnitude(value),
        corrected=canonical != raw.lower(),
    )


def format_magnitude(value: float) -> str:
    """Format a raw value as an abbreviated display string.

    Display only: the result is never parsed back for arithmetic.
    """
    if not math.isfinite(value):
        return str(value)

    amount = Decimal(str(value))
    for index, (tier, label) in enumerate(_DISPLAY_TIERS):
        if amount >= tier:
            scaled = _round_cents(amount / tier)
            if scaled >= 1000 and index > 0:
                upper_tier, upper_label = _DISPLAY_TIERS[index - 1]
                return _plain(_round_cents(amount / upper_tier)) + upper_label
            return _plain(scaled) + label

    scaled = _round_cents(amount)
    if scaled >= 1000:
        return _plain(_round_cents(amount / 1000)) + "K"
    return _plain(scaled)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def parse_item_quantity(stacks: int, extra: int) -> int:
    """Convert stacks plus leftover units into item units.

    Raises:
        ParseError: INVALID_EXTRA, BAD_FORMAT, TOO_MANY_STACKS or TOO_MANY_ITEMS.
    """
    if extra < 0 or extra >= STACK_SIZE:
        raise ParseError(
            ParseErrorKind.INVALID_EXTRA,
            "Extra items must be between 0 and {0}.".format(STACK_SIZE - 1),
        )
    if stacks < 0:
        raise ParseError(ParseErrorKind.BAD_FORMAT, "Stacks cannot be negative.")
    if stacks > MAX_STACKS:
        raise ParseError(ParseErrorKind.TOO_MANY_STACKS, "Too many stacks.")

    total = stacks * STACK_SIZE + extra
    if total > MAX_ITEMS:
        raise ParseError(ParseErrorKind.TOO_MANY_ITEMS, "Too many items.")
    return total


def parse_item_fields(stacks_text: Optional[str], extra_text: Optional[str] = None) -> int:
    """Parse the stack/extra fields of the item modal.

    Stacks accept magnitude strings (``"1.5k"`` stacks); a blank extra
    field means 0.
    """
    stacks = _whole_magnitude(stacks_text)
    if extra_text is None or not str(extra_text).strip():
        extra = 0
    else:
        extra_normalized = _prepare(extra_text)
        if not _INTEGER_PATTERN.match(extra_normalized):
            raise ParseError(
                ParseErrorKind.INVALID_EXTRA,
                "Extra items must be between 0 and {0}.".format(STACK_SIZE - 1),
            )
        extra = int(extra_normalized)
    return parse_item_quantity(stacks, extra)


def parse_item_text(text: Optional[str]) -> int:
    """Parse a free-text item amount.

    Accepts ``"3 stack + 20"``, ``"3 stacks"`` or a whole number of units
    written as a magnitude string (``"1.5k"``).
    """
    normalized = _prepare(text)
    match = _STACK_PATTERN.match(normalized)
    if match is not None:
        return parse_item_fields(match.group(1), match.group(2))

    units = _whole_magnitude(normalized)
    if units > MAX_ITEMS:
        raise ParseError(ParseErrorKind.TOO_MANY_ITEMS, "Too many items.")
    return units


def to_stack_display(units: int) -> StackDisplay:
    """Split item units into full stacks and leftover units."""
    stacks, extra = divmod(int(units), STACK_SIZE)
    return StackDisplay(stacks=stacks, extra=extra)


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up.

    Used for item and kill display only; money keeps full precision.
    """
    lower = math.floor(value)
    return lower + 1 if value - lower >= 0.5 else lower


# ---------------------------------------------------------------------------
# Kills and free text
# ---------------------------------------------------------------------------

def parse_kill_count(text: Optional[str]) -> int:
    """Parse a non-negative kill count.

    Raises:
        ParseError: EMPTY, FORBIDDEN_SEPARATOR, BAD_FORMAT or TOO_MANY_KILLS.
    """
    normalized = _prepare(text)
    if not _INTEGER_PATTERN.match(normalized):
        raise ParseError(ParseErrorKind.BAD_FORMAT, "Kills must be a whole number.")
    count = int(normalized)
    if count > MAX_KILLS:
        raise ParseError(
            ParseErrorKind.TOO_MANY_KILLS,
            "At most {0} kills.".format(MAX_KILLS),
        )
    return count


def parse_info_text(text: Optional[str]) -> str:
    """Validate the free-text body of an INFO loan."""
    if text is None:
        return ""
    if len(text) > MAX_INFO_LENGTH:
        raise ParseError(ParseErrorKind.TEXT_TOO_LONG, "Text is too long.")
    return text.strip()
