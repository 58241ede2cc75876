"""Helpers for turning chat references into member identifiers."""

import re
from typing import Optional

from blockdebt.models.base import UNKNOWN_ACTOR


_MENTION_PATTERN = re.compile(r"^<@!?(\d{5,25})>$")
_RAW_ID_PATTERN = re.compile(r"^\d{5,25}$")


def resolve_debtor_reference(raw: Optional[str]) -> Optional[int]:
    """Extract a member id from ``<@id>``, ``<@!id>`` or a bare id.

    Returns None when the text is neither.
    """
    text = (raw or "").strip()
    match = _MENTION_PATTERN.match(text)
    if match:
        return int(match.group(1))
    if _RAW_ID_PATTERN.match(text):
        return int(text)
    return None


def mention(actor_id: str, fallback: str = "") -> str:
    """Render an actor as a mention when it is a known member id."""
    if actor_id and actor_id != UNKNOWN_ACTOR and actor_id.isdigit():
        return "<@{0}>".format(actor_id)
    return fallback or actor_id
