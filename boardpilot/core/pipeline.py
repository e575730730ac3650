"""End-to-end request pipeline.

``process_request`` takes free text plus the caller's account/board/user ids
and runs: context -> multi-operation detection -> per operation gate, map
and validate (in order) -> execution of the planned operations as one
ordered sequence, or as a batch when explicit targets are given.

It stops at the first operation that needs clarification or confirmation or
fails validation, and reports why. The result is a plain dict so it can be
returned from the HTTP layer as is.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Sequence

from boardpilot.config.ai_settings import DEFAULT_THRESHOLDS, ConfidenceThresholds
from boardpilot.controllers.bulk_operations import BatchCoordinator
from boardpilot.core.confidence import GateAction, decide_action
from boardpilot.core.executor import ExecutionContext, OperationExecutor
from boardpilot.core.interpreter import GENERIC_QUESTION, Interpreter
from boardpilot.core.mapper import OperationMapper
from boardpilot.core.validation import OperationValidator
from boardpilot.models.context import Context, ContextRequest
from boardpilot.models.errors import ContextError
from boardpilot.models.operation import ApiOperation, Interpretation, OperationKind
from boardpilot.presenters.status_presenter import (
    present_batch_report,
    present_confirmation,
    present_interpretation,
    present_sequence,
    present_validation,
)
from boardpilot.services.context import ContextService, validate_context_for_operation
from boardpilot.utils.logger import generate_request_id, log_error, log_info, log_warn


ITEM_TARGET_KINDS = (
    OperationKind.ITEM_UPDATE,
    OperationKind.ITEM_DELETE,
    OperationKind.STATUS_UPDATE,
    OperationKind.USER_ASSIGN,
)


def seed_batch_target(reading: Interpretation, first_target: Any) -> Interpretation:
    """Give a per-item batch reading an item to map against.

    "mark these done" names no item; the coordinator rewrites ``itemId`` per
    target anyway, so the first target stands in while mapping and validating.
    """

    params = reading.parameters
    if reading.kind not in ITEM_TARGET_KINDS or params.get("itemId") or params.get("itemName"):
        return reading
    return replace(reading, parameters={**params, "itemId": str(first_target)})


@dataclass
class PlannedStep:
    interpretation: Interpretation
    operation: ApiOperation


class RequestPipeline:
    """Wire the interpreter, mapper, validator and executor together."""

    def __init__(
        self,
        context_service: ContextService,
        interpreter: Interpreter,
        validator: OperationValidator,
        executor: OperationExecutor,
        mapper: Optional[OperationMapper] = None,
        coordinator: Optional[BatchCoordinator] = None,
        thresholds: ConfidenceThresholds = DEFAULT_THRESHOLDS,
    ) -> None:
        self.context_service = context_service
        self.interpreter = interpreter
        self.validator = validator
        self.executor = executor
        self.mapper = mapper or OperationMapper()
        self.coordinator = coordinator or BatchCoordinator(executor)
        self.thresholds = thresholds

    async def interpret_only(self, text: str, request: ContextRequest) -> List[Interpretation]:
        context = await self.context_service.gather_context(request)
        return await self.interpreter.detect_multiple_operations(text, context)

    async def validate_only(self, text: str, request: ContextRequest) -> List[Dict[str, Any]]:
        """Interpret, map and validate each operation without executing anything.

        Validator findings are combined with what the context snapshot lacks
        for the operation kind.
        """

        context = await self.context_service.gather_context(request)
        readings = await self.interpreter.detect_multiple_operations(text, context)
        checks: List[Dict[str, Any]] = []
        for reading in readings:
            operation = self.mapper.map_to_api(reading, context)
            validation = await self.validator.validate(operation, context)
            context_check = validate_context_for_operation(context, reading.kind)
            checks.append(
                {
                    "operation": reading.to_dict(),
                    "request": operation.to_dict(),
                    "valid": validation.valid and context_check["valid"],
                    "errors": list(validation.errors) + context_check["missing"],
                    "warnings": [w.to_dict() for w in validation.warnings],
                    "canProceed": validation.can_proceed and context_check["valid"],
                }
            )
        return checks

    async def process_request(
        self,
        text: str,
        request: ContextRequest,
        *,
        confirmed: bool = False,
        targets: Optional[Sequence[Any]] = None,
        confirmation_token: Optional[str] = None,
        request_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Run one user request through the whole pipeline.

        Args:
            text: The user's instruction.
            request: Account, board and user ids used to gather context.
            confirmed: The user already confirmed; operations in the confirm
                band and blocking warnings no longer stop the run.
            targets: Item ids to fan a single operation out over.
            confirmation_token: Token for bulk deletes.
            request_id: Correlation id; generated when omitted.

        Returns:
            A dict with ``success``, ``status`` (one of ``executed``,
            ``needs_clarification``, ``needs_confirmation``, ``rejected``,
            ``invalid``, ``failed``), ``requestId``, ``operations`` and a
            user-facing ``message``; plus ``results`` or ``batch`` after
            execution.
        """

        request_id = request_id or generate_request_id()
        exec_context = ExecutionContext(user_id=request.user_id, board_id=request.board_id, request_id=request_id)
        log_info("Processing request", user_id=request.user_id, request_id=request_id, length=len(text or ""))

        try:
            context = await self.context_service.gather_context(request)
        except ContextError as exc:
            log_error("Context unavailable", user_id=request.user_id, request_id=request_id, error=str(exc))
            return self._response(False, "failed", request_id, [], message=str(exc))

        readings = await self.interpreter.detect_multiple_operations(text, context)
        if not readings:
            log_warn("No operation detected", user_id=request.user_id, request_id=request_id)
            return self._response(False, "needs_clarification", request_id, [], message=GENERIC_QUESTION)
        if targets:
            if len(readings) > 1:
                return self._response(
                    False,
                    "needs_clarification",
                    request_id,
                    [r.to_dict() for r in readings],
                    message="A batch runs one operation over its targets. Send each operation separately.",
                )
            readings = [seed_batch_target(readings[0], targets[0])]

        plan: List[PlannedStep] = []

        for reading in readings:
            stop = await self._plan_step(reading, context, confirmed, request_id, plan)
            if stop is not None:
                return stop

        operations = [step.interpretation.to_dict() for step in plan]

        if targets:
            step = plan[0]
            report = await self.coordinator.execute_batch(
                targets, step.operation, confirmation_token=confirmation_token, exec_context=exec_context
            )
            status = "executed" if not report.aborted else "failed"
            response = self._response(report.success, status, request_id, operations, message=present_batch_report(report))
            response["batch"] = report.to_dict()
            return response

        outcome = await self.executor.execute_sequence([step.operation for step in plan], exec_context)
        log_info(
            "Request finished",
            user_id=request.user_id,
            request_id=request_id,
            success=outcome.success,
            steps=len(outcome.outcomes),
        )
        response = self._response(
            outcome.success,
            "executed" if outcome.success else "failed",
            request_id,
            operations,
            message=present_sequence(outcome),
        )
        response["results"] = [o.to_dict() for o in outcome.outcomes]
        if outcome.rollback_errors:
            response["rollbackErrors"] = list(outcome.rollback_errors)
        return response

    async def _plan_step(
        self,
        reading: Interpretation,
        context: Context,
        confirmed: bool,
        request_id: str,
        plan: List[PlannedStep],
    ) -> Optional[Dict[str, Any]]:
        """Gate, map and validate one reading. Returns a response dict to stop, else None."""

        operations = [step.interpretation.to_dict() for step in plan] + [reading.to_dict()]
        action = decide_action(reading.confidence, self.thresholds)
        log_info(
            "Operation interpreted",
            request_id=request_id,
            operation=reading.kind.value,
            confidence=reading.confidence,
            action=action.value,
        )

        if not reading.kind.is_actionable:
            return self._response(False, "needs_clarification", request_id, operations, message=present_interpretation(reading))
        if action is GateAction.REJECT:
            return self._response(False, "rejected", request_id, operations, message=present_interpretation(reading))
        if action is GateAction.CLARIFY:
            return self._response(False, "needs_clarification", request_id, operations, message=present_interpretation(reading))
        if action is GateAction.CONFIRM and not confirmed:
            return self._response(False, "needs_confirmation", request_id, operations, message=present_confirmation(reading))

        operation = self.mapper.map_to_api(reading, context)
        if operation.is_sentinel:
            log_warn("Operation could not be mapped", request_id=request_id, method=operation.method, error=operation.error)
            response = self._response(False, "failed", request_id, operations, message=operation.error or "")
            response["operation"] = operation.to_dict()
            return response
        if operation.errors:
            response = self._response(False, "invalid", request_id, operations, message="\n".join(operation.errors))
            response["operation"] = operation.to_dict()
            return response

        validation = await self.validator.validate(operation, context)
        log_info(
            "Operation validated",
            request_id=request_id,
            method=operation.method,
            valid=validation.valid,
            can_proceed=validation.can_proceed,
        )
        if not validation.valid:
            response = self._response(False, "invalid", request_id, operations, message=present_validation(validation))
            response["validation"] = validation.to_dict()
            return response
        if not validation.can_proceed and not confirmed:
            response = self._response(False, "needs_confirmation", request_id, operations, message=present_validation(validation))
            response["validation"] = validation.to_dict()
            return response

        plan.append(PlannedStep(reading, operation))
        return None

    @staticmethod
    def _response(
        success: bool,
        status: str,
        request_id: str,
        operations: List[Dict[str, Any]],
        message: str = "",
    ) -> Dict[str, Any]:
        return {
            "success": success,
            "status": status,
            "requestId": request_id,
            "operations": operations,
            "message": message,
        }
