"""Operation executor for BoardPilot.

Dispatches mapped operations to the resource shims with bounded retry and
recovery, and runs multi-step requests as a sequence with best-effort
rollback of the steps that already succeeded.

Retry state is an immutable :class:`AttemptState` value threaded through the
loop, so concurrent executions (batch windows) never share counters.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from boardpilot.config.batch_limits import MAX_EXECUTION_ATTEMPTS
from boardpilot.core.mapper import DELETE_ITEM_MUTATION, MOVE_ITEM_MUTATION, UPDATE_ITEM_MUTATION
from boardpilot.core.recovery import RecoveryContext, RecoveryStrategist, classify_error, create_error_audit
from boardpilot.models.errors import ErrorKind, MondayApiError
from boardpilot.models.operation import ApiOperation, ItemReference, OperationKind
from boardpilot.models.results import ExecutionOutcome, RecoveryResult, SequenceOutcome
from boardpilot.services.operations import OperationShim
from boardpilot.utils.logger import log_error, log_info, log_warn


logger = logging.getLogger("boardpilot.executor")


RESOURCE_BY_KIND: Dict[OperationKind, Optional[str]] = {
    OperationKind.ITEM_CREATE: "item",
    OperationKind.ITEM_UPDATE: "item",
    OperationKind.ITEM_DELETE: "item",
    OperationKind.STATUS_UPDATE: "item",
    OperationKind.BULK_OPERATION: "item",
    OperationKind.BOARD_CREATE: "board",
    OperationKind.BOARD_UPDATE: "board",
    OperationKind.COLUMN_CREATE: "board",
    OperationKind.COLUMN_UPDATE: "board",
    OperationKind.USER_ASSIGN: "user",
    OperationKind.AUTOMATION_CREATE: "automation",
    OperationKind.UNKNOWN: None,
    OperationKind.ERROR: None,
}


@dataclass(frozen=True)
class ExecutionContext:
    user_id: Optional[str] = None
    board_id: Optional[str] = None
    request_id: Optional[str] = None


@dataclass(frozen=True)
class AttemptState:
    """Where one execution stands between attempts."""

    attempt: int
    operation: ApiOperation
    recovery_applied: Optional[str] = None
    history: Tuple[str, ...] = field(default_factory=tuple)

    def advance(self, operation: ApiOperation, error: str, recovery: RecoveryResult) -> "AttemptState":
        return replace(
            self,
            attempt=self.attempt + 1,
            operation=operation,
            recovery_applied=recovery.strategy or self.recovery_applied,
            history=self.history + (error,),
        )


def _error_message(error: BaseException) -> str:
    return str(getattr(error, "message", None) or error) or error.__class__.__name__


class OperationExecutor:
    """Execute :class:`ApiOperation` values against the transport shims."""

    def __init__(
        self,
        shims: Dict[str, OperationShim],
        strategist: Optional[RecoveryStrategist] = None,
        max_attempts: int = MAX_EXECUTION_ATTEMPTS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.shims = shims
        self.strategist = strategist or RecoveryStrategist()
        self.max_attempts = max_attempts
        self._clock = clock or time.monotonic

    async def resolve_references(self, operation: ApiOperation) -> ApiOperation:
        """Replace deferred item references with concrete ids.

        Raises MondayApiError (ITEM_NOT_FOUND) when a named item does not exist.
        """

        reference = operation.variables.get("item_id")
        if not isinstance(reference, ItemReference):
            return operation
        if reference.search_by == "id":
            return operation.with_parameters({**operation.parameters, "itemId": reference.id})

        board_id = operation.parameters.get("boardId")
        item_shim = self.shims.get("item")
        if board_id is None or item_shim is None or not hasattr(item_shim, "find_item_by_name"):
            raise MondayApiError(
                f"Cannot resolve item '{reference.id}' without a board",
                kind=ErrorKind.ITEM_NOT_FOUND,
                status=404,
            )
        item_id = await item_shim.find_item_by_name(board_id, reference.id)
        if item_id is None:
            raise MondayApiError(
                f"Item '{reference.id}' not found on board {board_id}",
                kind=ErrorKind.ITEM_NOT_FOUND,
                status=404,
            )
        logger.info("Resolved item %r to %s", reference.id, item_id)
        return operation.with_parameters({**operation.parameters, "itemId": str(item_id)})

    async def _dispatch(self, operation: ApiOperation) -> Any:
        resource = RESOURCE_BY_KIND.get(operation.kind)
        shim = self.shims.get(resource) if resource else None
        if shim is None:
            raise MondayApiError(
                f"No transport for operation {operation.kind.value}",
                kind=ErrorKind.INVALID_DATA,
            )
        return await shim.send(operation)

    def _failed(
        self,
        operation: ApiOperation,
        attempts: int,
        error: str,
        kind: Optional[ErrorKind],
        started: float,
        recovery: Optional[RecoveryResult] = None,
        recovery_applied: Optional[str] = None,
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=False,
            attempts=attempts,
            error=error,
            error_kind=kind,
            recovery_applied=recovery_applied,
            recovery=recovery,
            operation=operation,
            duration=self._clock() - started,
        )

    async def execute(
        self,
        operation: ApiOperation,
        exec_context: Optional[ExecutionContext] = None,
    ) -> ExecutionOutcome:
        """Run one operation with up to ``max_attempts`` tries and recovery between them."""

        ctx = exec_context or ExecutionContext()
        started = self._clock()

        if operation.is_sentinel or operation.errors:
            message = operation.error or "; ".join(operation.errors)
            log_warn("Refusing to execute operation", request_id=ctx.request_id, method=operation.method, error=message)
            return self._failed(operation, 0, message, classify_error(message), started)

        state = AttemptState(attempt=1, operation=operation)
        while True:
            try:
                resolved = await self.resolve_references(state.operation)
                result = await self._dispatch(resolved)
            except Exception as exc:  # noqa: BLE001
                message = _error_message(exc)
                kind = classify_error(exc)
                log_warn(
                    "Operation attempt failed",
                    user_id=ctx.user_id,
                    request_id=ctx.request_id,
                    method=state.operation.method,
                    attempt=state.attempt,
                    error_kind=kind.value,
                    error=message,
                )
                recovery_context = RecoveryContext(
                    operation=state.operation,
                    attempt=state.attempt,
                    user_id=ctx.user_id,
                    board_id=ctx.board_id,
                )
                if state.attempt >= self.max_attempts:
                    recovery = await self.strategist.diagnose(exc, recovery_context)
                else:
                    recovery = await self.strategist.attempt_recovery(exc, recovery_context)
                if not recovery.should_retry:
                    log_error(
                        "Operation failed",
                        user_id=ctx.user_id,
                        request_id=ctx.request_id,
                        attempts=state.attempt,
                        audit=create_error_audit(exc, recovery_context, recovery),
                    )
                    return self._failed(
                        state.operation,
                        state.attempt,
                        message,
                        kind,
                        started,
                        recovery=recovery,
                        recovery_applied=state.recovery_applied,
                    )

                next_operation = state.operation
                if recovery.new_data is not None:
                    next_operation = state.operation.with_parameters(recovery.new_data)
                state = state.advance(next_operation, message, recovery)
                continue

            log_info(
                "Operation executed",
                user_id=ctx.user_id,
                request_id=ctx.request_id,
                method=resolved.method,
                attempts=state.attempt,
            )
            return ExecutionOutcome(
                success=True,
                attempts=state.attempt,
                result=result,
                recovery_applied=state.recovery_applied,
                operation=resolved,
                duration=self._clock() - started,
            )

    async def _snapshot(self, operation: ApiOperation) -> Dict[str, Any]:
        if operation.method not in ("change_multiple_column_values", "move_item_to_group"):
            return {}
        item_shim = self.shims.get("item")
        item_id = operation.parameters.get("itemId")
        if item_shim is None or not hasattr(item_shim, "get_item_snapshot") or not str(item_id or "").isdigit():
            return {}
        try:
            return await item_shim.get_item_snapshot(item_id)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not snapshot item %s for rollback: %r", item_id, exc)
            return {}

    async def execute_sequence(
        self,
        operations: Sequence[ApiOperation],
        exec_context: Optional[ExecutionContext] = None,
    ) -> SequenceOutcome:
        """Run operations strictly in order, rolling back on the first failure."""

        ctx = exec_context or ExecutionContext()
        outcomes: List[ExecutionOutcome] = []
        rollback_stack: List[ApiOperation] = []

        for operation in operations:
            try:
                prepared = await self.resolve_references(operation) if not operation.is_sentinel else operation
            except Exception as exc:  # noqa: BLE001
                outcome = self._failed(operation, 1, _error_message(exc), classify_error(exc), self._clock())
            else:
                snapshot = await self._snapshot(prepared) if prepared.transactional else {}
                outcome = await self.execute(prepared, ctx)
                if outcome.success and prepared.transactional:
                    rollback = build_rollback_operation(outcome.operation or prepared, outcome.result, snapshot)
                    if rollback is not None:
                        rollback_stack.append(rollback)
            outcomes.append(outcome)

            if not outcome.success:
                rollback_errors = await self._rollback(rollback_stack, ctx)
                return SequenceOutcome(
                    success=False,
                    outcomes=outcomes,
                    error=outcome.error,
                    rolled_back=bool(rollback_stack),
                    rollback_errors=rollback_errors,
                )

        return SequenceOutcome(success=True, outcomes=outcomes)

    async def _rollback(self, stack: List[ApiOperation], ctx: ExecutionContext) -> List[str]:
        errors: List[str] = []
        for rollback in reversed(stack):
            try:
                await self._dispatch(rollback)
                log_info("Rolled back operation", request_id=ctx.request_id, method=rollback.method)
            except Exception as exc:  # noqa: BLE001
                message = f"{rollback.method}: {_error_message(exc)}"
                log_error("Rollback step failed", request_id=ctx.request_id, error=message)
                errors.append(message)
        return errors


def build_rollback_operation(operation: ApiOperation, result: Any, snapshot: Dict[str, Any]) -> Optional[ApiOperation]:
    """Inverse of a successful transactional operation, or ``None`` if it has none."""

    if operation.method == "create_item":
        created = (result or {}).get("create_item") if isinstance(result, dict) else None
        item_id = (created or {}).get("id")
        if item_id is None:
            return None
        return ApiOperation(
            kind=OperationKind.ITEM_DELETE,
            method="delete_item",
            query=DELETE_ITEM_MUTATION,
            variables={"item_id": int(item_id)},
            parameters={"itemId": str(item_id), "boardId": operation.parameters.get("boardId")},
        )

    if operation.method == "change_multiple_column_values":
        previous = snapshot.get("columnValues") or {}
        changed = operation.parameters.get("columnValues") or {}
        restore = {column_id: previous.get(column_id) for column_id in changed if column_id in previous}
        if not restore:
            return None
        return ApiOperation(
            kind=OperationKind.ITEM_UPDATE,
            method="change_multiple_column_values",
            query=UPDATE_ITEM_MUTATION,
            variables=dict(operation.variables, column_values=json.dumps(restore)),
            parameters={**operation.parameters, "columnValues": restore},
        )

    if operation.method == "move_item_to_group":
        previous_group = snapshot.get("groupId") or operation.parameters.get("sourceGroupId")
        if not previous_group:
            return None
        return ApiOperation(
            kind=OperationKind.ITEM_UPDATE,
            method="move_item_to_group",
            query=MOVE_ITEM_MUTATION,
            variables={"item_id": operation.variables.get("item_id"), "group_id": previous_group},
            parameters={**operation.parameters, "targetGroupId": previous_group},
        )

    return None
