from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from boardpilot.config.ai_settings import (
    DEFAULT_THRESHOLDS,
    DEFAULT_WEIGHTS,
    INTENT_VERBS,
    PARAMETER_ALIASES,
    REQUIRED_PARAMETERS,
    ConfidenceThresholds,
    ConfidenceWeights,
)
from boardpilot.models.context import Context
from boardpilot.models.operation import Interpretation, OperationKind


class GateAction(str, Enum):
    AUTO_EXECUTE = "auto_execute"
    CONFIRM = "confirm"
    CLARIFY = "clarify"
    REJECT = "reject"


@dataclass(frozen=True)
class ConfidenceBreakdown:
    operation_match: float
    parameter_completeness: float
    context_relevance: float
    input_clarity: float
    score: int


def _clamp100(v: float) -> float:
    if v < 0.0:
        return 0.0
    if v > 100.0:
        return 100.0
    return v


def _round_half_up(v: float) -> int:
    return int(math.floor(v + 0.5))


def _is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def _has_parameter(parameters: Dict[str, Any], name: str) -> bool:
    for key in PARAMETER_ALIASES.get(name, (name,)):
        if _is_populated(parameters.get(key)):
            return True
    return False


def missing_parameters(kind: OperationKind, parameters: Dict[str, Any]) -> List[str]:
    """Required parameters for ``kind`` not satisfied by ``parameters`` (aliases count)."""

    return [p for p in REQUIRED_PARAMETERS.get(kind, []) if not _has_parameter(parameters, p)]


def operation_match_score(interpretation: Interpretation) -> float:
    if not interpretation.kind.is_actionable:
        return 0.0
    base = float(interpretation.confidence or 50)
    if interpretation.pattern_used:
        return min(100.0, base + 10)
    return base


def parameter_completeness_score(interpretation: Interpretation) -> float:
    required = REQUIRED_PARAMETERS.get(interpretation.kind, [])
    if not required:
        return 100.0
    present = len(required) - len(missing_parameters(interpretation.kind, interpretation.parameters))
    return 100.0 * present / len(required)


def context_relevance_score(interpretation: Interpretation, context: Optional[Context]) -> float:
    if context is None or not context.has_content:
        return 50.0

    score = 70.0
    kind = interpretation.kind
    if kind in (OperationKind.ITEM_CREATE, OperationKind.ITEM_UPDATE):
        if context.current_board is not None:
            score += 20
            if context.current_board.columns:
                score += 10
    elif kind is OperationKind.USER_ASSIGN:
        if context.users:
            score += 30
    elif kind is OperationKind.BOARD_CREATE:
        if context.permissions.can_create_boards:
            score += 30
    return min(100.0, score)


def input_clarity_score(raw_text: str) -> float:
    text = raw_text or ""
    lowered = text.lower()
    score = 50.0
    if any(verb in lowered for verb in INTENT_VERBS):
        score += 20
    if '"' in text or "'" in text:
        score += 15
    if len(text) < 10:
        score -= 20
    if len(text) > 200:
        score -= 10
    return _clamp100(score)


def breakdown(
    interpretation: Interpretation,
    raw_text: str,
    context: Optional[Context],
    weights: ConfidenceWeights = DEFAULT_WEIGHTS,
) -> ConfidenceBreakdown:
    op = operation_match_score(interpretation)
    params = parameter_completeness_score(interpretation)
    ctx = context_relevance_score(interpretation, context)
    clarity = input_clarity_score(raw_text)

    if not interpretation.kind.is_actionable:
        total = 0
    else:
        weighted = (
            op * weights.operation_match
            + params * weights.parameter_completeness
            + ctx * weights.context_relevance
            + clarity * weights.input_clarity
        )
        total = _round_half_up(_clamp100(weighted))
    return ConfidenceBreakdown(op, params, ctx, clarity, total)


def score(
    interpretation: Interpretation,
    raw_text: str,
    context: Optional[Context],
    weights: ConfidenceWeights = DEFAULT_WEIGHTS,
) -> int:
    """Final 0-100 confidence for an interpretation. Pure: no I/O, no state."""

    return breakdown(interpretation, raw_text, context, weights).score


def decide_action(confidence: int, thresholds: ConfidenceThresholds = DEFAULT_THRESHOLDS) -> GateAction:
    if confidence >= thresholds.auto_execute:
        return GateAction.AUTO_EXECUTE
    if confidence >= thresholds.require_confirmation:
        return GateAction.CONFIRM
    if confidence >= thresholds.request_clarification:
        return GateAction.CLARIFY
    return GateAction.REJECT
