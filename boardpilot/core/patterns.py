"""Fast regex matching for common phrasings.

The table is scanned in order and the first hit wins. Matching is case
insensitive but runs on the original text, so captured names keep the
user's capitalisation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Pattern, Tuple

from boardpilot.models.operation import OperationKind


@dataclass(frozen=True)
class OperationPattern:
    kind: OperationKind
    regex: Pattern[str]
    confidence: int
    params: Tuple[str, ...]
    description: str


@dataclass(frozen=True)
class PatternMatch:
    kind: Optional[OperationKind] = None
    confidence: int = 0
    parameters: Dict[str, Any] = field(default_factory=dict)
    pattern_used: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.kind is not None


def _p(kind: OperationKind, pattern: str, confidence: int, params: Tuple[str, ...], description: str) -> OperationPattern:
    return OperationPattern(kind, re.compile(pattern, re.IGNORECASE), confidence, params, description)


_Q = r"[\"']?"
_V = r"([^\"']+)"

PATTERNS: Tuple[OperationPattern, ...] = (
    _p(
        OperationKind.ITEM_CREATE,
        rf"create\s+(?:a\s+)?(?:new\s+)?(?:item|task|row)\s+(?:called|named)?\s*{_Q}{_V}{_Q}",
        85,
        ("itemName",),
        "Create item with name",
    ),
    _p(
        OperationKind.ITEM_CREATE,
        rf"add\s+(?:a\s+)?(?:new\s+)?(?:item|task|row)\s+{_Q}{_V}{_Q}",
        80,
        ("itemName",),
        "Add new item",
    ),
    _p(
        OperationKind.ITEM_CREATE,
        rf"new\s+(?:item|task|row):\s*{_Q}{_V}{_Q}",
        90,
        ("itemName",),
        "New item with colon syntax",
    ),
    _p(
        OperationKind.STATUS_UPDATE,
        rf"(?:set|change|update)\s+(?:the\s+)?status\s+(?:of\s+)?(?:item\s+)?{_Q}{_V}{_Q}\s+to\s+{_Q}{_V}{_Q}",
        90,
        ("itemName", "statusValue"),
        "Change status of specific item",
    ),
    _p(
        OperationKind.STATUS_UPDATE,
        rf"mark\s+{_Q}{_V}{_Q}\s+as\s+{_Q}{_V}{_Q}",
        85,
        ("itemName", "statusValue"),
        "Mark item as status",
    ),
    _p(
        OperationKind.USER_ASSIGN,
        rf"assign\s+{_Q}{_V}{_Q}\s+to\s+{_Q}{_V}{_Q}",
        88,
        ("itemName", "userName"),
        "Assign item to user",
    ),
    _p(
        OperationKind.USER_ASSIGN,
        rf"give\s+{_Q}{_V}{_Q}\s+to\s+{_Q}{_V}{_Q}",
        75,
        ("itemName", "userName"),
        "Give item to user",
    ),
    _p(
        OperationKind.BOARD_CREATE,
        rf"create\s+(?:a\s+)?(?:new\s+)?board\s+(?:called|named)?\s*{_Q}{_V}{_Q}",
        90,
        ("boardName",),
        "Create new board",
    ),
    _p(
        OperationKind.COLUMN_CREATE,
        rf"add\s+(?:a\s+)?(?:new\s+)?column\s+(?:called|named)?\s*{_Q}{_V}{_Q}",
        85,
        ("columnTitle",),
        "Add new column",
    ),
    _p(
        OperationKind.ITEM_DELETE,
        rf"delete\s+(?:the\s+)?(?:item|task|row)\s+{_Q}{_V}{_Q}",
        85,
        ("itemName",),
        "Delete specific item",
    ),
    _p(
        OperationKind.ITEM_DELETE,
        rf"remove\s+{_Q}{_V}{_Q}",
        70,
        ("itemName",),
        "Remove item",
    ),
)


def match_pattern(text: str) -> PatternMatch:
    """Return the first matching pattern's reading of ``text``, or an empty match."""

    candidate = (text or "").strip()
    for pattern in PATTERNS:
        match = pattern.regex.search(candidate)
        if not match:
            continue
        parameters: Dict[str, Any] = {}
        for index, name in enumerate(pattern.params, start=1):
            value = match.group(index)
            if value and value.strip():
                parameters[name] = value.strip()
        return PatternMatch(
            kind=pattern.kind,
            confidence=pattern.confidence,
            parameters=parameters,
            pattern_used=pattern.description,
        )
    return PatternMatch()
