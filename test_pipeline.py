import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from boardpilot.controllers.bulk_operations import BatchCoordinator, generate_confirmation_token
from boardpilot.core.executor import OperationExecutor
from boardpilot.core.pipeline import RequestPipeline
from boardpilot.core.recovery import RecoveryStrategist
from boardpilot.core.validation import OperationValidator
from boardpilot.models.context import Board, Column, Context, ContextRequest, Group, Permissions
from boardpilot.models.errors import ContextError, ErrorKind
from boardpilot.models.operation import Interpretation, OperationKind
from boardpilot.models.results import (
    BatchReport,
    ExecutionOutcome,
    RecoveryResult,
    TargetResult,
    ValidationResult,
    ValidationWarning,
)
from boardpilot.presenters import (
    present_batch_report,
    present_execution,
    present_interpretation,
    present_validation,
)


BOARD = Board(
    id="100",
    name="Development Board",
    groups=(Group("topics", "To Do"),),
    columns=(Column("status", "Status", "color"), Column("text", "Notes", "text")),
)
CONTEXT = Context(account_id="1", boards=(BOARD,), current_board=BOARD, permissions=Permissions.for_member())
REQUEST = ContextRequest("1", board_id="100", user_id="7")


class OpenLookup:
    """Every resource exists and every board is empty."""

    def __init__(self, boards=("100",)):
        self.boards = set(boards)

    async def board_exists(self, board_id):
        return board_id in self.boards

    async def item_exists(self, item_id):
        return True

    async def group_exists(self, board_id, group_id):
        return True

    async def user_exists(self, user_id):
        return True

    async def get_board_columns(self, board_id):
        return list(BOARD.columns)

    async def get_board_item_count(self, board_id):
        return 0

    async def get_board_group_count(self, board_id):
        return 0

    async def get_board_automation_count(self, board_id):
        return 0

    async def item_name_exists(self, board_id, item_name):
        return False


class RecordingShim:
    def __init__(self):
        self.sent = []

    async def send(self, operation):
        self.sent.append(operation)
        if operation.method == "create_item":
            return {"create_item": {"id": "900"}}
        return {operation.method: {"id": operation.parameters.get("itemId")}}


def _pipeline(readings, lookup=None, context_error=None, context=CONTEXT):
    context_service = MagicMock()
    context_service.gather_context = AsyncMock(return_value=context, side_effect=context_error)
    interpreter = MagicMock()
    interpreter.detect_multiple_operations = AsyncMock(return_value=readings)
    shim = RecordingShim()
    executor = OperationExecutor({"item": shim, "board": shim, "user": shim}, strategist=RecoveryStrategist(sleep=AsyncMock()))
    pipeline = RequestPipeline(
        context_service=context_service,
        interpreter=interpreter,
        validator=OperationValidator(lookup or OpenLookup()),
        executor=executor,
        coordinator=BatchCoordinator(executor, sleep=AsyncMock()),
    )
    return pipeline, shim


def _create(confidence=95, name="Fix login bug"):
    return Interpretation(OperationKind.ITEM_CREATE, confidence=confidence, parameters={"itemName": name})


class TestProcessRequest(unittest.TestCase):
    def test_high_confidence_request_executes(self):
        async def run():
            pipeline, shim = _pipeline([_create()])
            response = await pipeline.process_request('create task "Fix login bug"', REQUEST, request_id="r-1")

            self.assertTrue(response["success"])
            self.assertEqual(response["status"], "executed")
            self.assertEqual(response["requestId"], "r-1")
            self.assertEqual(response["operations"][0]["operation"], "ITEM_CREATE")
            self.assertEqual(response["results"][0]["result"], {"create_item": {"id": "900"}})
            self.assertEqual(response["message"], "✅ Completed 1 operation(s).")
            self.assertEqual(shim.sent[0].variables["item_name"], "Fix login bug")

        asyncio.run(run())

    def test_gate_bands(self):
        async def run():
            cases = [
                (_create(confidence=75), "needs_confirmation"),
                (_create(confidence=55), "needs_clarification"),
                (_create(confidence=20), "rejected"),
                (Interpretation(OperationKind.UNKNOWN), "needs_clarification"),
            ]
            for reading, status in cases:
                pipeline, shim = _pipeline([reading])
                response = await pipeline.process_request("x", REQUEST)
                self.assertEqual(response["status"], status, reading)
                self.assertFalse(response["success"])
                self.assertEqual(shim.sent, [])

        asyncio.run(run())

    def test_confirmed_request_runs_confirm_band(self):
        async def run():
            pipeline, shim = _pipeline([_create(confidence=75)])
            response = await pipeline.process_request("x", REQUEST, confirmed=True)
            self.assertEqual(response["status"], "executed")
            self.assertEqual(len(shim.sent), 1)

        asyncio.run(run())

    def test_context_failure(self):
        async def run():
            pipeline, _ = _pipeline([_create()], context_error=ContextError("Context gathering failed: boom"))
            response = await pipeline.process_request("x", REQUEST)
            self.assertEqual(response["status"], "failed")
            self.assertEqual(response["message"], "Context gathering failed: boom")

        asyncio.run(run())

    def test_unmappable_operation_fails(self):
        async def run():
            pipeline, shim = _pipeline([Interpretation(OperationKind.BULK_OPERATION, confidence=95)])
            response = await pipeline.process_request("x", REQUEST)
            self.assertEqual(response["status"], "failed")
            self.assertEqual(response["operation"]["method"], "BULK_NOT_IMPLEMENTED")
            self.assertEqual(shim.sent, [])

        asyncio.run(run())

    def test_validation_errors_stop_execution(self):
        async def run():
            pipeline, shim = _pipeline([_create()], lookup=OpenLookup(boards=()))
            response = await pipeline.process_request("x", REQUEST)
            self.assertEqual(response["status"], "invalid")
            self.assertFalse(response["validation"]["valid"])
            self.assertIn("Board 100 not found", response["message"])
            self.assertEqual(shim.sent, [])

        asyncio.run(run())

    def test_multiple_operations_run_in_order(self):
        async def run():
            readings = [
                Interpretation(OperationKind.ITEM_CREATE, confidence=95, parameters={"itemName": "A"}, sequence=1),
                Interpretation(
                    OperationKind.STATUS_UPDATE,
                    confidence=95,
                    parameters={"itemId": "55", "statusValue": "done"},
                    sequence=2,
                ),
            ]
            pipeline, shim = _pipeline(readings)
            response = await pipeline.process_request("create A and mark 55 done", REQUEST)

            self.assertEqual(response["status"], "executed")
            self.assertEqual([op.method for op in shim.sent], ["create_item", "change_simple_column_value"])
            self.assertEqual([o["sequence"] for o in response["operations"]], [1, 2])

        asyncio.run(run())

    def test_later_step_gate_stops_before_anything_runs(self):
        async def run():
            readings = [_create(), _create(confidence=40, name="B")]
            pipeline, shim = _pipeline(readings)
            response = await pipeline.process_request("x", REQUEST)
            self.assertEqual(response["status"], "rejected")
            self.assertEqual(len(response["operations"]), 2)
            self.assertEqual(shim.sent, [])

        asyncio.run(run())

    def test_targets_run_as_batch(self):
        async def run():
            reading = Interpretation(
                OperationKind.STATUS_UPDATE, confidence=95, parameters={"itemId": "55", "statusValue": "done"}
            )
            pipeline, shim = _pipeline([reading])
            response = await pipeline.process_request("mark these done", REQUEST, targets=["55", "56", "57"])

            self.assertEqual(response["status"], "executed")
            self.assertEqual(response["batch"]["summary"]["successful"], 3)
            self.assertEqual(sorted(op.parameters["itemId"] for op in shim.sent), ["55", "56", "57"])

        asyncio.run(run())

    def test_bulk_delete_needs_matching_token(self):
        async def run():
            reading = Interpretation(OperationKind.ITEM_DELETE, confidence=95, parameters={"itemId": "55"})
            targets = ["55", "56"]

            pipeline, shim = _pipeline([reading])
            refused = await pipeline.process_request("delete these", REQUEST, targets=targets, confirmation_token="nope")
            self.assertEqual(refused["status"], "failed")
            self.assertTrue(refused["batch"]["aborted"])
            self.assertEqual(shim.sent, [])

            pipeline, shim = _pipeline([reading])
            accepted = await pipeline.process_request(
                "delete these", REQUEST, targets=targets, confirmation_token=generate_confirmation_token(targets)
            )
            self.assertEqual(accepted["status"], "executed")
            self.assertEqual(len(shim.sent), 2)

        asyncio.run(run())

    def test_batch_without_item_uses_targets(self):
        async def run():
            reading = Interpretation(OperationKind.STATUS_UPDATE, confidence=95, parameters={"statusValue": "done"})
            pipeline, shim = _pipeline([reading])
            response = await pipeline.process_request("mark these done", REQUEST, targets=["55", "56"])

            self.assertEqual(response["status"], "executed")
            self.assertEqual(sorted(op.parameters["itemId"] for op in shim.sent), ["55", "56"])
            self.assertEqual(sorted(op.variables["item_id"] for op in shim.sent), [55, 56])

        asyncio.run(run())

    def test_batch_with_several_operations_asks_to_split(self):
        async def run():
            readings = [
                Interpretation(OperationKind.STATUS_UPDATE, confidence=95, parameters={"statusValue": "done"}, sequence=1),
                Interpretation(OperationKind.ITEM_DELETE, confidence=95, sequence=2),
            ]
            pipeline, shim = _pipeline(readings)
            response = await pipeline.process_request("mark these done and delete them", REQUEST, targets=["55"])

            self.assertFalse(response["success"])
            self.assertEqual(response["status"], "needs_clarification")
            self.assertEqual(len(response["operations"]), 2)
            self.assertEqual(shim.sent, [])

        asyncio.run(run())

    def test_nothing_detected_asks_for_clarification(self):
        async def run():
            for targets in (None, ["1"]):
                pipeline, shim = _pipeline([])
                response = await pipeline.process_request(" and , then ", REQUEST, targets=targets)

                self.assertFalse(response["success"])
                self.assertEqual(response["status"], "needs_clarification")
                self.assertEqual(response["message"], "What would you like to do on your board?")
                self.assertEqual(shim.sent, [])

        asyncio.run(run())

    def test_board_named_by_reading_when_no_current_board(self):
        async def run():
            context = Context(account_id="1", boards=(BOARD,), permissions=Permissions.for_member())
            reading = Interpretation(
                OperationKind.ITEM_CREATE, confidence=95, parameters={"itemName": "Fix login bug", "boardId": "100"}
            )
            pipeline, shim = _pipeline([reading], context=context)
            response = await pipeline.process_request('create task "Fix login bug"', REQUEST)

            self.assertEqual(response["status"], "executed")
            self.assertEqual(shim.sent[0].method, "create_item")
            self.assertEqual(shim.sent[0].variables["board_id"], 100)

        asyncio.run(run())


class TestValidateOnly(unittest.TestCase):
    def test_checks_each_operation_without_executing(self):
        async def run():
            pipeline, shim = _pipeline([_create(name="A"), _create(name="B")])
            checks = await pipeline.validate_only("create A and create B", REQUEST)

            self.assertEqual(len(checks), 2)
            self.assertTrue(all(check["valid"] for check in checks))
            self.assertEqual([c["request"]["method"] for c in checks], ["create_item", "create_item"])
            self.assertEqual(shim.sent, [])

        asyncio.run(run())

    def test_missing_board_context_is_reported(self):
        async def run():
            context = Context(account_id="1", boards=(BOARD,), permissions=Permissions.for_member())
            reading = Interpretation(
                OperationKind.ITEM_CREATE, confidence=95, parameters={"itemName": "A", "boardId": "100"}
            )
            pipeline, shim = _pipeline([reading], context=context)
            checks = await pipeline.validate_only("create A", REQUEST)

            self.assertFalse(checks[0]["valid"])
            self.assertFalse(checks[0]["canProceed"])
            self.assertIn("Board context required", checks[0]["errors"])
            self.assertEqual(shim.sent, [])

        asyncio.run(run())


class TestPresenters(unittest.TestCase):
    def test_interpretation_lists_questions_and_alternatives(self):
        reading = Interpretation(
            OperationKind.ITEM_UPDATE,
            confidence=25,
            clarifying_questions=("Which item do you mean?",),
            alternatives=({"operation": "STATUS_UPDATE", "explanation": "change status"},),
        )
        text = present_interpretation(reading)
        self.assertIn("update an item (confidence 25%)", text)
        self.assertIn("- Which item do you mean?", text)
        self.assertIn("- STATUS_UPDATE: change status", text)

    def test_validation_marks_blocking_warnings(self):
        result = ValidationResult(
            valid=True, warnings=(ValidationWarning("Automation may create infinite loop", blocking=True),)
        )
        self.assertEqual(
            present_validation(result), "Warnings:\n- Automation may create infinite loop (needs confirmation)"
        )

    def test_execution_outcome(self):
        self.assertEqual(present_execution(ExecutionOutcome(success=True, attempts=1)), "✅ Done.")
        self.assertEqual(present_execution(ExecutionOutcome(success=True, attempts=3)), "✅ Done after 3 attempts.")
        failed = ExecutionOutcome(
            success=False,
            attempts=1,
            error="Permission denied",
            recovery=RecoveryResult(
                successful=False,
                should_retry=False,
                error_kind=ErrorKind.PERMISSION_DENIED,
                suggestion="Check your permissions for this operation",
            ),
        )
        self.assertEqual(present_execution(failed), "Failed: Permission denied\nCheck your permissions for this operation")

    def test_batch_report_caps_error_list(self):
        failures = [
            TargetResult(str(i), False, error="Item not found", error_kind=ErrorKind.ITEM_NOT_FOUND) for i in range(12)
        ]
        report = BatchReport(total=12, failed=12, per_target_results=failures, windows=1)
        text = present_batch_report(report)
        self.assertIn("Processed 0/12 items. 12 item(s) failed.", text)
        self.assertIn("... and 2 more error(s).", text)

        done = BatchReport(total=30, successful=30, windows=2)
        self.assertEqual(present_batch_report(done), "✅ Completed! Processed 30/30 items in 2 window(s).")


if __name__ == "__main__":
    unittest.main()
