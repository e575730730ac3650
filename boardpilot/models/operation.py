"""Operation kinds, interpretations and mapped API operations."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from boardpilot.models.errors import ErrorKind


class OperationKind(str, Enum):
    """Closed set of operations the pipeline understands."""

    ITEM_CREATE = "ITEM_CREATE"
    ITEM_UPDATE = "ITEM_UPDATE"
    ITEM_DELETE = "ITEM_DELETE"
    BOARD_CREATE = "BOARD_CREATE"
    BOARD_UPDATE = "BOARD_UPDATE"
    COLUMN_CREATE = "COLUMN_CREATE"
    COLUMN_UPDATE = "COLUMN_UPDATE"
    USER_ASSIGN = "USER_ASSIGN"
    STATUS_UPDATE = "STATUS_UPDATE"
    AUTOMATION_CREATE = "AUTOMATION_CREATE"
    BULK_OPERATION = "BULK_OPERATION"
    UNKNOWN = "UNKNOWN"
    ERROR = "ERROR"

    @classmethod
    def parse(cls, value: Any) -> "OperationKind":
        """Map free-form oracle output onto a kind, UNKNOWN when unrecognised."""

        if isinstance(value, OperationKind):
            return value
        text = str(value or "").strip().upper()
        try:
            return cls(text)
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_actionable(self) -> bool:
        return self not in (OperationKind.UNKNOWN, OperationKind.ERROR)


@dataclass(frozen=True)
class Interpretation:
    """Structured guess at what the user asked for.

    Never mutated: ambiguity resolution and confidence scoring produce a new
    instance via :func:`dataclasses.replace`.
    """

    kind: OperationKind
    confidence: int = 0
    parameters: Dict[str, Any] = field(default_factory=dict)
    missing_info: Tuple[str, ...] = ()
    clarifying_questions: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    alternatives: Tuple[Dict[str, Any], ...] = ()
    original_input: str = ""
    sequence: Optional[int] = None
    methods: Tuple[str, ...] = ()
    pattern_used: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    def __post_init__(self) -> None:
        bounded = max(0, min(100, int(self.confidence)))
        if not self.kind.is_actionable:
            bounded = 0
        object.__setattr__(self, "confidence", bounded)

    def with_confidence(self, confidence: int) -> "Interpretation":
        return replace(self, confidence=confidence)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "operation": self.kind.value,
            "confidence": self.confidence,
            "parameters": dict(self.parameters),
            "missingInfo": list(self.missing_info),
            "clarifyingQuestions": list(self.clarifying_questions),
            "warnings": list(self.warnings),
            "alternatives": [dict(a) for a in self.alternatives],
        }
        if self.sequence is not None:
            payload["sequence"] = self.sequence
        if self.error:
            payload["error"] = self.error
        return payload


def error_interpretation(message: str, original_input: str = "", error_kind: Optional[ErrorKind] = None) -> Interpretation:
    """Sentinel returned whenever interpretation fails for any reason."""

    return Interpretation(
        kind=OperationKind.ERROR,
        confidence=0,
        parameters={},
        missing_info=(),
        clarifying_questions=("Could you please rephrase your request?",),
        warnings=("Failed to interpret request",),
        alternatives=(),
        original_input=original_input,
        error=message,
        error_kind=error_kind,
    )


@dataclass(frozen=True)
class ItemReference:
    """Deferred item lookup; resolved by the executor right before dispatch."""

    id: str
    search_by: str = "id"
    needs_resolution: bool = True

    @classmethod
    def from_identifier(cls, identifier: Any) -> Optional["ItemReference"]:
        if identifier is None or str(identifier).strip() == "":
            return None
        text = str(identifier).strip()
        return cls(id=text, search_by="id" if text.isdigit() else "name")


@dataclass
class ApiOperation:
    """A request ready for dispatch to the monday.com GraphQL API.

    ``parameters`` keeps the resolved, human-level view of the operation
    (boardId, itemId, columnValues, ...) that validation and recovery work
    on; ``variables`` is what actually goes over the wire.
    """

    kind: OperationKind
    method: str
    query: str = ""
    variables: Dict[str, Any] = field(default_factory=dict)
    parameters: Dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    transactional: bool = False

    @property
    def is_sentinel(self) -> bool:
        return self.method == "ERROR" or self.method.endswith("_NOT_IMPLEMENTED")

    def with_parameters(self, parameters: Dict[str, Any]) -> "ApiOperation":
        """Return a copy carrying new parameters, keeping wire variables in sync."""

        variables = dict(self.variables)
        column_values = parameters.get("columnValues")
        if "column_values" in variables and isinstance(column_values, dict):
            variables["column_values"] = json.dumps(column_values)
        if "item_id" in variables and parameters.get("itemId") is not None:
            item_id = str(parameters["itemId"])
            variables["item_id"] = int(item_id) if item_id.isdigit() else ItemReference.from_identifier(item_id)
        return replace(self, parameters=dict(parameters), variables=variables)

    def to_dict(self) -> Dict[str, Any]:
        variables = {
            key: (asdict(value) if isinstance(value, ItemReference) else value)
            for key, value in self.variables.items()
        }
        payload: Dict[str, Any] = {
            "operation": self.kind.value,
            "method": self.method,
            "query": self.query,
            "variables": variables,
        }
        if self.errors:
            payload["errors"] = list(self.errors)
        if self.warnings:
            payload["warnings"] = list(self.warnings)
        if self.error:
            payload["error"] = self.error
        return payload
