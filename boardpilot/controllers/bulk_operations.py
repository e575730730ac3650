"""Batch Coordinator for BoardPilot.

This module fans a single mapped operation out over many targets (usually
item ids) and aggregates per-target outcomes into a :class:`BatchReport`.

Usage Pattern
-------------
1. **Map a template operation:**
   Interpret and map the request once (e.g. "mark these as done") to get an
   :class:`ApiOperation`. Its ``itemId`` is replaced per target.

2. **Confirm destructive runs:**
   For ``ITEM_DELETE`` templates the caller must pass the token returned by
   `generate_confirmation_token(target_ids)`. The token is shown to the user
   ("Type DELETE-3-1,2,3 to confirm") and echoed back. A missing or
   mismatched token aborts the whole batch before anything is sent.

3. **Execute:**
   Call `await coordinator.execute_batch(targets, template, token)`. Targets
   run in windows of 25 (10 for user assignment). Within a window every
   target runs concurrently and one failure never aborts its siblings.
   Windows are separated by a short pause to stay under the API rate limit.

4. **Report:**
   The returned `BatchReport` holds per-target results in launch order,
   failed ids grouped by error kind, and one suggestion per affected group.
   `present_batch_report(report)` turns it into a reply for the user.

Example
-------
    coordinator = BatchCoordinator(executor)
    token = generate_confirmation_token(["101", "102", "103"])
    report = await coordinator.execute_batch(["101", "102", "103"], delete_op, token)
    if report.partial_success:
        print(report.suggestions)
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from boardpilot.config.batch_limits import (
    BATCH_WINDOW_SIZE,
    INTER_WINDOW_DELAY_SECONDS,
    USER_ASSIGN_WINDOW_SIZE,
)
from boardpilot.core.executor import ExecutionContext, OperationExecutor
from boardpilot.core.recovery import can_retry_error, classify_error, handle_partial_success
from boardpilot.models.errors import ErrorKind
from boardpilot.models.operation import ApiOperation, OperationKind
from boardpilot.models.results import BatchReport, ExecutionOutcome, TargetResult
from boardpilot.utils.logger import log_info, log_warn


logger = logging.getLogger("boardpilot.batch")


Sleep = Callable[[float], Awaitable[None]]


def generate_confirmation_token(target_ids: Sequence[Any]) -> str:
    """Deterministic token the caller must echo back before a bulk delete.

    Format: ``DELETE-{count}-{first 10 chars of the sorted, comma-joined ids}``.
    """

    ids = sorted(str(target_id) for target_id in target_ids)
    return f"DELETE-{len(ids)}-{','.join(ids)[:10]}"


def window_size_for(kind: OperationKind) -> int:
    if kind is OperationKind.USER_ASSIGN:
        return USER_ASSIGN_WINDOW_SIZE
    return BATCH_WINDOW_SIZE


def requires_confirmation(template: ApiOperation) -> bool:
    return template.kind is OperationKind.ITEM_DELETE or template.method == "delete_item"


def _windows(targets: List[str], size: int) -> List[List[str]]:
    return [targets[start : start + size] for start in range(0, len(targets), size)]


class BatchCoordinator:
    """Run one operation template over many targets in paced windows."""

    def __init__(
        self,
        executor: OperationExecutor,
        sleep: Optional[Sleep] = None,
        window_delay: float = INTER_WINDOW_DELAY_SECONDS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.executor = executor
        self.window_delay = window_delay
        self._sleep: Sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic

    async def _run_target(
        self,
        target_id: str,
        template: ApiOperation,
        exec_context: ExecutionContext,
    ) -> ExecutionOutcome:
        operation = template.with_parameters({**template.parameters, "itemId": target_id})
        return await self.executor.execute(operation, exec_context)

    async def execute_batch(
        self,
        targets: Sequence[Any],
        template: ApiOperation,
        confirmation_token: Optional[str] = None,
        exec_context: Optional[ExecutionContext] = None,
    ) -> BatchReport:
        """Execute ``template`` once per target and aggregate the outcomes.

        Args:
            targets: Target ids (item ids). Order is preserved in the report.
            template: The mapped operation; ``itemId`` is set per target.
                Templates without an ``item_id`` variable are refused.
            confirmation_token: Required for delete templates, see
                `generate_confirmation_token`.
            exec_context: Request-scoped ids passed through to the executor.

        Returns:
            A BatchReport. An aborted report has ``successful == failed == 0``
            and ``aborted`` set; no target was attempted.
        """

        started = self._clock()
        ctx = exec_context or ExecutionContext()
        target_ids = [str(target) for target in targets]

        if not target_ids:
            return BatchReport(total=0, aborted=True, error="No targets supplied")

        if template.is_sentinel:
            return BatchReport(
                total=len(target_ids),
                aborted=True,
                error=template.error or f"{template.method} cannot be executed",
                duration=self._clock() - started,
            )

        # Only the item id changes per target; anything else would repeat one request.
        if "item_id" not in template.variables:
            log_warn("Batch refused: operation is not per item", request_id=ctx.request_id, method=template.method)
            return BatchReport(
                total=len(target_ids),
                aborted=True,
                error=f"{template.method} does not target individual items and cannot run as a batch",
                duration=self._clock() - started,
            )

        if requires_confirmation(template):
            expected = generate_confirmation_token(target_ids)
            if confirmation_token != expected:
                log_warn(
                    "Bulk delete aborted: confirmation token mismatch",
                    user_id=ctx.user_id,
                    request_id=ctx.request_id,
                    total=len(target_ids),
                )
                return BatchReport(
                    total=len(target_ids),
                    aborted=True,
                    error=f"Invalid confirmation token. Expected: {expected}",
                    duration=self._clock() - started,
                )

        windows = _windows(target_ids, window_size_for(template.kind))
        results: List[TargetResult] = []

        for index, window in enumerate(windows):
            log_info(
                "Executing batch window",
                request_id=ctx.request_id,
                window=index + 1,
                windows=len(windows),
                size=len(window),
            )
            outcomes = await asyncio.gather(
                *(self._run_target(target_id, template, ctx) for target_id in window),
                return_exceptions=True,
            )
            for target_id, outcome in zip(window, outcomes):
                results.append(_target_result(target_id, outcome))

            if index < len(windows) - 1:
                await self._sleep(self.window_delay)

        partial = handle_partial_success(results)
        report = BatchReport(
            total=len(target_ids),
            successful=partial["successful"],
            failed=partial["failed"],
            per_target_results=results,
            error_groups=partial["error_groups"],
            suggestions=partial["suggestions"],
            windows=len(windows),
            duration=self._clock() - started,
        )
        logger.info(
            "Batch %s finished: %s/%s succeeded in %s window(s)",
            template.method,
            report.successful,
            report.total,
            report.windows,
        )
        return report


def _target_result(target_id: str, outcome: Any) -> TargetResult:
    if isinstance(outcome, BaseException):
        message = str(outcome) or outcome.__class__.__name__
        return TargetResult(
            target_id=target_id,
            success=False,
            error=message,
            error_kind=classify_error(outcome),
            can_retry=can_retry_error(message),
        )
    if outcome.success:
        return TargetResult(target_id=target_id, success=True, attempts=outcome.attempts, result=outcome.result)
    return TargetResult(
        target_id=target_id,
        success=False,
        attempts=outcome.attempts,
        error=outcome.error,
        error_kind=outcome.error_kind or ErrorKind.UNKNOWN_ERROR,
        can_retry=can_retry_error(outcome.error),
    )
