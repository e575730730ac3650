"""Natural-language interpreter.

Combines the regex fast path with the language oracle, scores the merged
reading and, when confidence is low, attaches alternatives and clarifying
questions. Every public method returns Interpretation values and never
raises.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence

from boardpilot.config.ai_settings import (
    AMBIGUITY_CONFIDENCE_BOOST,
    DEFAULT_THRESHOLDS,
    DEFAULT_WEIGHTS,
    FIELD_QUESTIONS,
    MAX_ALTERNATIVES,
    MULTI_OPERATION_SEPARATORS,
    PATTERN_AUTHORITY_THRESHOLD,
    ConfidenceThresholds,
    ConfidenceWeights,
)
from boardpilot.core import confidence
from boardpilot.core.patterns import PatternMatch, match_pattern
from boardpilot.models.context import Context
from boardpilot.models.operation import Interpretation, error_interpretation
from boardpilot.services.context import get_minimal_context
from boardpilot.services.oracle import LanguageOracle


logger = logging.getLogger("boardpilot.interpreter")

GENERIC_QUESTION = "What would you like to do on your board?"


def split_segments(text: str, separators: Sequence[str] = MULTI_OPERATION_SEPARATORS) -> List[str]:
    """Split on each separator in turn, case-insensitively. Quotes are not respected."""

    segments = [text]
    for separator in separators:
        pattern = re.compile(re.escape(separator), re.IGNORECASE)
        segments = [piece for segment in segments for piece in pattern.split(segment)]
    return [segment.strip() for segment in segments if segment.strip()]


def has_multiple_operations(text: str, separators: Sequence[str] = MULTI_OPERATION_SEPARATORS) -> bool:
    lowered = (text or "").lower()
    return any(separator in lowered for separator in separators)


def merge_readings(pattern: PatternMatch, oracle: Interpretation) -> Interpretation:
    """Combine the regex reading with the oracle's.

    A strong pattern (confidence >= 80) decides kind and base confidence and
    the parameters are the union, with non-null oracle values winning.
    Otherwise the oracle's reading stands as is.
    """

    if pattern.matched and pattern.confidence >= PATTERN_AUTHORITY_THRESHOLD:
        parameters: Dict[str, Any] = dict(pattern.parameters)
        parameters.update({k: v for k, v in oracle.parameters.items() if v is not None})
        return replace(
            oracle,
            kind=pattern.kind,
            confidence=pattern.confidence,
            parameters=parameters,
            methods=("pattern-match", "ai-analysis"),
            pattern_used=pattern.pattern_used,
            error=None,
            error_kind=None,
        )
    return replace(oracle, methods=oracle.methods or ("ai-analysis",))


def clarifying_questions_for(interpretation: Interpretation) -> List[str]:
    questions = [
        FIELD_QUESTIONS[name]
        for name in confidence.missing_parameters(interpretation.kind, interpretation.parameters)
        if name in FIELD_QUESTIONS
    ]
    return questions or [GENERIC_QUESTION]


def _alternative(suggestion: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "operation": str(suggestion.get("operation") or "UNKNOWN"),
        "parameters": dict(suggestion.get("parameters") or {}),
        "confidence": suggestion.get("confidence"),
        "explanation": suggestion.get("explanation") or suggestion.get("reason") or "",
    }


class Interpreter:
    """Turn free text into scored Interpretation values."""

    def __init__(
        self,
        oracle: LanguageOracle,
        thresholds: ConfidenceThresholds = DEFAULT_THRESHOLDS,
        weights: ConfidenceWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.oracle = oracle
        self.thresholds = thresholds
        self.weights = weights

    async def interpret(self, text: str, context: Optional[Context] = None) -> Interpretation:
        try:
            return await self._interpret(text, context)
        except Exception as exc:  # noqa: BLE001
            logger.error("Interpretation failed: %r", exc)
            return error_interpretation(str(exc) or exc.__class__.__name__, original_input=text or "")

    async def _interpret(self, text: str, context: Optional[Context]) -> Interpretation:
        logger.info("Starting interpretation (input length %s, context=%s)", len(text or ""), context is not None)

        pattern = match_pattern(text)
        oracle_reading = await self.oracle.analyze_operation(text, context)
        merged = merge_readings(pattern, oracle_reading)
        if not merged.original_input:
            merged = replace(merged, original_input=text)

        final = confidence.score(merged, text, context, self.weights)
        merged = merged.with_confidence(final)

        alternatives: tuple = ()
        if final < self.thresholds.require_confirmation:
            suggestions = await self.oracle.generate_suggestions(text, context)
            alternatives = tuple(_alternative(s) for s in suggestions[:MAX_ALTERNATIVES])
        merged = replace(merged, alternatives=alternatives)

        if final < self.thresholds.request_clarification and not merged.clarifying_questions:
            merged = replace(merged, clarifying_questions=tuple(clarifying_questions_for(merged)))
        if merged.kind.is_actionable and not merged.missing_info:
            missing = confidence.missing_parameters(merged.kind, merged.parameters)
            if missing:
                merged = replace(merged, missing_info=tuple(missing))

        logger.info(
            "Interpretation complete: %s (%s), alternatives=%s",
            merged.kind.value,
            merged.confidence,
            len(merged.alternatives),
        )
        return merged

    async def detect_multiple_operations(self, text: str, context: Optional[Context] = None) -> List[Interpretation]:
        """One Interpretation per segment, tagged with a 1-based ``sequence``.

        Segments are interpreted one after another, in order.
        """

        try:
            if not has_multiple_operations(text):
                return [await self.interpret(text, context)]

            readings: List[Interpretation] = []
            for segment in split_segments(text):
                reading = await self.interpret(segment, context)
                readings.append(replace(reading, sequence=len(readings) + 1))
            logger.info("Detected %s operations", len(readings))
            return readings
        except Exception as exc:  # noqa: BLE001
            logger.error("Multi-operation detection failed: %r", exc)
            return [error_interpretation(str(exc), original_input=text or "")]

    async def resolve_ambiguity(
        self,
        prior: Interpretation,
        clarification: str,
        context: Optional[Context] = None,
    ) -> Interpretation:
        """Re-ask the oracle with the user's clarification and boost its confidence.

        The boost is applied to the oracle's own confidence, capped at 100. If
        the oracle cannot be reached or its answer is unusable the prior
        reading is returned unchanged.
        """

        prompt = (
            f'Original request: "{prior.original_input}"\n'
            f'User clarification: "{clarification}"\n'
            f"Previous interpretation: {json.dumps(prior.parameters, default=str)}"
        )
        try:
            trimmed = get_minimal_context(context, prior.kind) if context is not None else None
            resolved = await self.oracle.analyze_operation(prompt, trimmed)
        except Exception as exc:  # noqa: BLE001
            logger.error("Ambiguity resolution failed: %r", exc)
            return prior
        if not resolved.kind.is_actionable:
            logger.warning("Ambiguity resolution produced %s; keeping prior reading", resolved.kind.value)
            return prior

        boosted = min(100, resolved.confidence + AMBIGUITY_CONFIDENCE_BOOST)
        logger.info("Ambiguity resolved: %s -> %s", prior.confidence, boosted)
        alternatives = resolved.alternatives if boosted < self.thresholds.require_confirmation else ()
        return replace(
            resolved,
            confidence=boosted,
            alternatives=alternatives,
            original_input=prior.original_input,
            sequence=prior.sequence,
        )
