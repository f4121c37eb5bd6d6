"""Behavioral code vocabulary and the pure TagCounts fold."""

from __future__ import annotations

from typing import Iterable, Optional

from .models import TagCounts

# Closed vocabulary the behavioral coder may emit.
BEHAVIORAL_CODES: tuple[str, ...] = (
    "LP",
    "UP",
    "BD",
    "RF",
    "RQ",
    "DC",
    "IC",
    "VC",
    "CC",
    "Q",
    "NTA",
    "ID",
    "AK",
)

DISPLAY_TAGS: dict[str, str] = {
    "RF": "Echo",
    "RQ": "Echo",
    "LP": "Labeled Praise",
    "UP": "Unlabeled Praise",
    "BD": "Narration",
    "DC": "Command",
    "IC": "Command",
    "VC": "Command",
    "CC": "Command",
    "Q": "Question",
    "NTA": "Criticism",
    "ID": "Neutral",
    "AK": "Neutral",
}

# Each code increments one or more TagCounts fields.
_COUNTERS: dict[str, tuple[str, ...]] = {
    "RF": ("echo",),
    "RQ": ("echo",),
    "LP": ("labeled_praise", "praise"),
    "UP": ("unlabeled_praise", "praise"),
    "BD": ("narration",),
    "DC": ("direct_command", "command"),
    "IC": ("indirect_command", "command"),
    "VC": ("vague_command", "command"),
    "CC": ("chained_command", "command"),
    "Q": ("question",),
    "NTA": ("criticism",),
    "ID": ("neutral",),
    "AK": ("neutral",),
}

DESIRABLE_CODES = frozenset({"LP", "UP", "BD", "RF", "RQ"})
UNDESIRABLE_CODES = frozenset({"DC", "IC", "VC", "CC", "Q", "NTA"})


def normalize_code(raw: Optional[str]) -> Optional[str]:
    """Upper-case and trim a code, returning None for blanks."""

    if raw is None:
        return None
    code = str(raw).strip().upper()
    return code or None


def display_tag_for(code: Optional[str]) -> Optional[str]:
    """Map a behavioral code to its simplified display tag.

    Unknown codes are shown verbatim so nothing the coder produced is lost.
    """

    normalized = normalize_code(code)
    if normalized is None:
        return None
    return DISPLAY_TAGS.get(normalized, normalized)


def fold_tag_counts(codes: Iterable[Optional[str]]) -> TagCounts:
    """Fold a sequence of codes into a fresh TagCounts instance."""

    totals: dict[str, int] = {}
    for raw in codes:
        code = normalize_code(raw)
        if code is None:
            continue
        for field in _COUNTERS.get(code, ()):
            totals[field] = totals.get(field, 0) + 1
    return TagCounts(**totals)


__all__ = [
    "BEHAVIORAL_CODES",
    "DESIRABLE_CODES",
    "DISPLAY_TAGS",
    "UNDESIRABLE_CODES",
    "display_tag_for",
    "fold_tag_counts",
    "normalize_code",
]
