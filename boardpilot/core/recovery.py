"""Error classification and recovery strategies.

``classify_error`` is total: every exception maps to exactly one
:class:`ErrorKind`. A structured ``kind`` on :class:`MondayApiError` wins;
message and status sniffing is the fallback for errors raised outside the
GraphQL client. ``RecoveryStrategist.attempt_recovery`` then picks the
deterministic strategy for that kind.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from boardpilot.config.batch_limits import DEFAULT_RETRY_AFTER_SECONDS, MAX_BACKOFF_SECONDS
from boardpilot.models.errors import ErrorKind
from boardpilot.models.operation import ApiOperation
from boardpilot.models.results import RecoveryResult, TargetResult


logger = logging.getLogger("boardpilot.recovery")


Sleep = Callable[[float], Awaitable[None]]

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

NON_RETRYABLE_MESSAGES = (
    "permission denied",
    "not found",
    "already exists",
    "invalid board",
    "invalid column",
)

GROUP_SUGGESTIONS = (
    (ErrorKind.PERMISSION_DENIED, "Check permissions for the affected items"),
    (ErrorKind.RATE_LIMIT_EXCEEDED, "Reduce batch size or add delays between operations"),
    (ErrorKind.INVALID_DATA, "Review and fix data format for failed items"),
    (ErrorKind.ITEM_NOT_FOUND, "Some items may have been deleted. Refresh and try again"),
)

# Kinds whose strategy is to retry; once attempts run out they get these instead.
EXHAUSTED_SUGGESTIONS: Dict[ErrorKind, str] = {
    ErrorKind.RATE_LIMIT_EXCEEDED: "monday.com is still rate limiting. Try again in a minute",
    ErrorKind.NETWORK_ERROR: "monday.com could not be reached. Check the connection and try again",
    ErrorKind.INVALID_DATA: "The values could not be fixed automatically. Check the column formats",
}


@dataclass(frozen=True)
class RecoveryContext:
    operation: ApiOperation
    attempt: int = 1
    user_id: Optional[str] = None
    board_id: Optional[str] = None


def classify_error(error: Any) -> ErrorKind:
    """Map any failure onto the fixed error taxonomy."""

    kind = getattr(error, "kind", None)
    if isinstance(kind, ErrorKind) and kind is not ErrorKind.PARSE_ERROR:
        return kind

    message = str(getattr(error, "message", None) or error or "").lower()
    status = getattr(error, "status", None)
    code = getattr(error, "code", None)

    if "rate limit" in message or "too many requests" in message or status == 429:
        return ErrorKind.RATE_LIMIT_EXCEEDED
    if (
        "network" in message
        or "timeout" in message
        or code in ("ECONNREFUSED", "ETIMEDOUT")
        or isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError))
    ):
        return ErrorKind.NETWORK_ERROR
    if "permission" in message or "unauthorized" in message or status == 403:
        return ErrorKind.PERMISSION_DENIED
    if "invalid" in message or "validation" in message or status == 400:
        return ErrorKind.INVALID_DATA
    if "not found" in message or status == 404:
        return ErrorKind.ITEM_NOT_FOUND
    if "duplicate" in message or "already exists" in message:
        return ErrorKind.DUPLICATE_ITEM
    return ErrorKind.UNKNOWN_ERROR


def can_retry_error(message: Any) -> bool:
    lowered = str(message or "").lower()
    return not any(fragment in lowered for fragment in NON_RETRYABLE_MESSAGES)


def recovery_suggestions(error_groups: Dict[str, List[str]]) -> List[str]:
    return [text for kind, text in GROUP_SUGGESTIONS if error_groups.get(kind.value)]


def handle_partial_success(results: Iterable[TargetResult]) -> Dict[str, Any]:
    """Group failed targets by error kind and attach remediation suggestions."""

    results = list(results)
    failed = [r for r in results if not r.success]
    error_groups: Dict[str, List[str]] = {}
    for result in failed:
        kind = result.error_kind or classify_error(result.error)
        error_groups.setdefault(kind.value, []).append(result.target_id)
    return {
        "partial_success": bool(failed) and len(failed) < len(results),
        "successful": len(results) - len(failed),
        "failed": len(failed),
        "failed_items": [
            {"id": r.target_id, "error": r.error, "can_retry": can_retry_error(r.error)} for r in failed
        ],
        "error_groups": error_groups,
        "suggestions": recovery_suggestions(error_groups),
    }


def _fix_date(value: Any) -> Any:
    if isinstance(value, str) and _ISO_DATE_RE.match(value):
        return value
    if isinstance(value, dict):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).strftime("%Y-%m-%d")
    except ValueError:
        return None


def _fix_number(value: Any) -> Any:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return str(float(value))
    except (TypeError, ValueError):
        return None


def _fix_status(value: Any) -> Any:
    if isinstance(value, str):
        return {"label": value}
    return value


def _fix_people(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return {"personsAndTeams": [{"id": value, "kind": "person"}]}
    if isinstance(value, (list, tuple)):
        return {"personsAndTeams": [{"id": v, "kind": "person"} for v in value]}
    return value


def attempt_data_fix(parameters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Rewrite column values whose key hints at a type. ``None`` when nothing changed."""

    column_values = parameters.get("columnValues")
    if not isinstance(column_values, dict) or not column_values:
        return None

    fixed: Dict[str, Any] = {}
    changed = False
    for key, value in column_values.items():
        lowered = str(key).lower()
        new_value = value
        if "date" in lowered:
            new_value = _fix_date(value)
        elif "number" in lowered or "count" in lowered:
            new_value = _fix_number(value)
        elif "status" in lowered:
            new_value = _fix_status(value)
        elif "person" in lowered or "people" in lowered:
            new_value = _fix_people(value)
        if new_value != value:
            changed = True
        fixed[key] = new_value

    if not changed:
        return None
    return {**parameters, "columnValues": fixed}


def find_alternatives(operation: ApiOperation) -> List[Dict[str, str]]:
    alternatives: List[Dict[str, str]] = []
    if operation.parameters.get("itemId"):
        alternatives.append({"type": "search", "description": "Search for similar items", "action": "search_items"})
    method = operation.method.lower()
    kind = operation.kind.value.lower()
    if "update" in method or "move" in method or "update" in kind:
        alternatives.append({"type": "create", "description": "Create a new item instead", "action": "create_item"})
    return alternatives


class RecoveryStrategist:
    """Pick and apply the recovery strategy for a failure.

    Waits go through the injected ``sleep`` so tests can observe them.
    """

    def __init__(self, sleep: Optional[Sleep] = None) -> None:
        self._sleep: Sleep = sleep or asyncio.sleep

    async def attempt_recovery(self, error: BaseException, context: RecoveryContext) -> RecoveryResult:
        kind = classify_error(error)
        try:
            result = await self._apply(kind, error, context)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error recovery failed: %r (original: %s)", exc, error)
            return RecoveryResult(successful=False, should_retry=False, error_kind=kind)

        if result.should_retry:
            logger.info(
                "Recovery for %s on %s: %s",
                kind.value,
                context.operation.method,
                result.strategy,
            )
        return result

    async def diagnose(self, error: BaseException, context: RecoveryContext) -> RecoveryResult:
        """Recovery verdict for a failure on the last attempt. Never waits or retries."""

        kind = classify_error(error)
        suggestion = EXHAUSTED_SUGGESTIONS.get(kind)
        if suggestion is not None:
            return RecoveryResult(
                successful=False,
                should_retry=False,
                error_kind=kind,
                strategy="retries_exhausted",
                suggestion=suggestion,
            )
        return await self.attempt_recovery(error, context)

    async def _apply(self, kind: ErrorKind, error: BaseException, context: RecoveryContext) -> RecoveryResult:
        if kind is ErrorKind.RATE_LIMIT_EXCEEDED:
            retry_after = getattr(error, "retry_after", None)
            delay = float(retry_after) if retry_after is not None else DEFAULT_RETRY_AFTER_SECONDS
            await self._sleep(delay)
            return RecoveryResult(
                successful=True,
                should_retry=True,
                error_kind=kind,
                strategy="wait_and_retry",
                delay_seconds=delay,
            )

        if kind is ErrorKind.NETWORK_ERROR:
            delay = min(2 ** max(context.attempt, 0), MAX_BACKOFF_SECONDS)
            await self._sleep(delay)
            return RecoveryResult(
                successful=True,
                should_retry=True,
                error_kind=kind,
                strategy="exponential_backoff",
                delay_seconds=delay,
            )

        if kind is ErrorKind.PERMISSION_DENIED:
            return RecoveryResult(
                successful=False,
                should_retry=False,
                error_kind=kind,
                strategy="abort_with_suggestion",
                suggestion="Check your permissions for this operation",
                requires_user_action=True,
            )

        if kind is ErrorKind.INVALID_DATA:
            fixed = attempt_data_fix(context.operation.parameters)
            if fixed is None:
                return RecoveryResult(successful=False, should_retry=False, error_kind=kind, strategy="data_fix")
            return RecoveryResult(
                successful=True,
                should_retry=True,
                error_kind=kind,
                strategy="data_fix",
                new_data=fixed,
            )

        if kind is ErrorKind.ITEM_NOT_FOUND:
            return RecoveryResult(
                successful=False,
                should_retry=False,
                error_kind=kind,
                strategy="suggest_alternatives",
                suggestion="The item may have been deleted or moved",
                alternatives=find_alternatives(context.operation),
            )

        if kind is ErrorKind.DUPLICATE_ITEM:
            return RecoveryResult(
                successful=False,
                should_retry=False,
                error_kind=kind,
                strategy="suggest_update",
                suggestion="Item already exists. Would you like to update it instead?",
                alternative_operation={
                    "type": "update_item",
                    "parameters": {
                        **context.operation.parameters,
                        "itemId": getattr(error, "existing_item_id", None),
                    },
                },
            )

        return RecoveryResult(successful=False, should_retry=False, error_kind=ErrorKind.UNKNOWN_ERROR)


def create_error_audit(
    error: BaseException,
    context: RecoveryContext,
    recovery: Optional[RecoveryResult] = None,
) -> Dict[str, Any]:
    """Structured record of a failure and what recovery did about it."""

    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "operation": context.operation.to_dict(),
        "error": {
            "type": classify_error(error).value,
            "message": str(getattr(error, "message", None) or error),
            "status": getattr(error, "status", None),
        },
        "recovery": {
            "attempted": recovery is not None,
            "successful": bool(recovery and recovery.successful),
            "strategy": (recovery.strategy if recovery else None) or "none",
        },
        "context": {"userId": context.user_id, "boardId": context.board_id},
    }
