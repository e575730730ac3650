import asyncio
import unittest
from unittest.mock import AsyncMock

from boardpilot.core.recovery import (
    RecoveryContext,
    RecoveryStrategist,
    attempt_data_fix,
    can_retry_error,
    classify_error,
    create_error_audit,
    handle_partial_success,
)
from boardpilot.models.errors import ErrorKind, MondayApiError
from boardpilot.models.operation import ApiOperation, OperationKind
from boardpilot.models.results import TargetResult


def _update(**params):
    base = {"boardId": "100", "itemId": "55"}
    base.update(params)
    return ApiOperation(
        kind=OperationKind.ITEM_UPDATE,
        method="change_multiple_column_values",
        query="mutation",
        variables={"item_id": 55, "column_values": "{}"},
        parameters=base,
    )


class TestClassifyError(unittest.TestCase):
    def test_message_rules(self):
        cases = [
            (MondayApiError("Too many requests", status=429), ErrorKind.RATE_LIMIT_EXCEEDED),
            (RuntimeError("Rate limit exceeded"), ErrorKind.RATE_LIMIT_EXCEEDED),
            (RuntimeError("Connection timeout"), ErrorKind.NETWORK_ERROR),
            (ConnectionError("boom"), ErrorKind.NETWORK_ERROR),
            (RuntimeError("Permission denied for board"), ErrorKind.PERMISSION_DENIED),
            (MondayApiError("nope", status=403), ErrorKind.PERMISSION_DENIED),
            (RuntimeError("Invalid column value"), ErrorKind.INVALID_DATA),
            (RuntimeError("Item not found"), ErrorKind.ITEM_NOT_FOUND),
            (RuntimeError("Duplicate item"), ErrorKind.DUPLICATE_ITEM),
            (RuntimeError("something odd"), ErrorKind.UNKNOWN_ERROR),
        ]
        for error, kind in cases:
            with self.subTest(error=str(error)):
                self.assertEqual(classify_error(error), kind)

    def test_structured_kind_wins(self):
        error = MondayApiError("Invalid thing", kind=ErrorKind.ITEM_NOT_FOUND)
        self.assertEqual(classify_error(error), ErrorKind.ITEM_NOT_FOUND)

    def test_plain_strings_are_classified(self):
        self.assertEqual(classify_error("Network unreachable"), ErrorKind.NETWORK_ERROR)
        self.assertEqual(classify_error(None), ErrorKind.UNKNOWN_ERROR)

    def test_can_retry_error(self):
        self.assertFalse(can_retry_error("Item not found"))
        self.assertFalse(can_retry_error("Permission denied"))
        self.assertTrue(can_retry_error("Rate limit exceeded"))


class TestDataFix(unittest.TestCase):
    def test_key_hints_rewrite_values(self):
        fixed = attempt_data_fix(
            {
                "itemId": "55",
                "columnValues": {
                    "due_date": "2024-03-15T10:00:00",
                    "count": 5,
                    "status": "Done",
                    "person": 7,
                    "text": "x",
                },
            }
        )
        self.assertEqual(fixed["itemId"], "55")
        self.assertEqual(
            fixed["columnValues"],
            {
                "due_date": "2024-03-15",
                "count": "5",
                "status": {"label": "Done"},
                "person": {"personsAndTeams": [{"id": 7, "kind": "person"}]},
                "text": "x",
            },
        )

    def test_nothing_to_fix(self):
        self.assertIsNone(attempt_data_fix({"columnValues": {"text": "x"}}))
        self.assertIsNone(attempt_data_fix({"itemId": "55"}))


class TestRecoveryStrategist(unittest.TestCase):
    def test_rate_limit_waits_for_retry_after(self):
        async def run():
            sleep = AsyncMock()
            strategist = RecoveryStrategist(sleep=sleep)
            error = MondayApiError("Rate limit", kind=ErrorKind.RATE_LIMIT_EXCEEDED, retry_after=5)
            result = await strategist.attempt_recovery(error, RecoveryContext(operation=_update()))

            self.assertTrue(result.should_retry)
            self.assertEqual(result.strategy, "wait_and_retry")
            sleep.assert_awaited_once_with(5.0)

        asyncio.run(run())

    def test_rate_limit_defaults_to_sixty_seconds(self):
        async def run():
            sleep = AsyncMock()
            result = await RecoveryStrategist(sleep=sleep).attempt_recovery(
                RuntimeError("rate limit"), RecoveryContext(operation=_update())
            )
            self.assertEqual(result.delay_seconds, 60.0)
            sleep.assert_awaited_once_with(60.0)

        asyncio.run(run())

    def test_network_backoff_is_capped(self):
        async def run():
            sleep = AsyncMock()
            strategist = RecoveryStrategist(sleep=sleep)
            second = await strategist.attempt_recovery(
                RuntimeError("network down"), RecoveryContext(operation=_update(), attempt=2)
            )
            late = await strategist.attempt_recovery(
                RuntimeError("network down"), RecoveryContext(operation=_update(), attempt=10)
            )
            self.assertEqual(second.strategy, "exponential_backoff")
            self.assertEqual(second.delay_seconds, 4)
            self.assertEqual(late.delay_seconds, 30.0)

        asyncio.run(run())

    def test_permission_denied_aborts(self):
        async def run():
            sleep = AsyncMock()
            result = await RecoveryStrategist(sleep=sleep).attempt_recovery(
                RuntimeError("Permission denied"), RecoveryContext(operation=_update())
            )
            self.assertFalse(result.should_retry)
            self.assertTrue(result.requires_user_action)
            self.assertEqual(result.suggestion, "Check your permissions for this operation")
            sleep.assert_not_awaited()

        asyncio.run(run())

    def test_invalid_data_retries_with_fixed_values(self):
        async def run():
            op = _update(columnValues={"status": "Done"})
            result = await RecoveryStrategist(sleep=AsyncMock()).attempt_recovery(
                RuntimeError("Invalid value"), RecoveryContext(operation=op)
            )
            self.assertTrue(result.should_retry)
            self.assertEqual(result.new_data["columnValues"], {"status": {"label": "Done"}})
            # The failed operation keeps its values.
            self.assertEqual(op.parameters["columnValues"], {"status": "Done"})

            unfixable = await RecoveryStrategist(sleep=AsyncMock()).attempt_recovery(
                RuntimeError("Invalid value"), RecoveryContext(operation=_update(columnValues={"text": "x"}))
            )
            self.assertFalse(unfixable.should_retry)

        asyncio.run(run())

    def test_not_found_suggests_alternatives(self):
        async def run():
            result = await RecoveryStrategist(sleep=AsyncMock()).attempt_recovery(
                RuntimeError("Item not found"), RecoveryContext(operation=_update())
            )
            self.assertFalse(result.should_retry)
            self.assertEqual([a["action"] for a in result.alternatives], ["search_items", "create_item"])

        asyncio.run(run())

    def test_duplicate_suggests_update(self):
        async def run():
            error = MondayApiError("Item already exists", kind=ErrorKind.DUPLICATE_ITEM, existing_item_id="77")
            create = ApiOperation(
                kind=OperationKind.ITEM_CREATE, method="create_item", parameters={"boardId": "100", "itemName": "A"}
            )
            result = await RecoveryStrategist(sleep=AsyncMock()).attempt_recovery(error, RecoveryContext(operation=create))
            self.assertEqual(result.strategy, "suggest_update")
            self.assertEqual(result.alternative_operation["parameters"]["itemId"], "77")

        asyncio.run(run())

    def test_unknown_is_not_retried(self):
        async def run():
            result = await RecoveryStrategist(sleep=AsyncMock()).attempt_recovery(
                RuntimeError("???"), RecoveryContext(operation=_update())
            )
            self.assertFalse(result.should_retry)
            self.assertEqual(result.error_kind, ErrorKind.UNKNOWN_ERROR)

        asyncio.run(run())

    def test_diagnose_never_waits_or_retries(self):
        async def run():
            sleep = AsyncMock()
            strategist = RecoveryStrategist(sleep=sleep)
            network = await strategist.diagnose(
                RuntimeError("network unreachable"), RecoveryContext(operation=_update(), attempt=3)
            )
            self.assertFalse(network.should_retry)
            self.assertEqual(network.error_kind, ErrorKind.NETWORK_ERROR)
            self.assertEqual(network.strategy, "retries_exhausted")

            bad_data = await strategist.diagnose(
                RuntimeError("Invalid value"), RecoveryContext(operation=_update(columnValues={"status": "Done"}))
            )
            self.assertFalse(bad_data.should_retry)
            self.assertIsNone(bad_data.new_data)

            # Kinds that never retry keep their usual verdict.
            missing = await strategist.diagnose(RuntimeError("Item not found"), RecoveryContext(operation=_update()))
            self.assertEqual(missing.strategy, "suggest_alternatives")
            sleep.assert_not_awaited()

        asyncio.run(run())


class TestPartialSuccess(unittest.TestCase):
    def test_groups_and_suggestions(self):
        results = [
            TargetResult("1", True, attempts=1),
            TargetResult("2", False, attempts=3, error="Rate limit", error_kind=ErrorKind.RATE_LIMIT_EXCEEDED),
            TargetResult("3", False, attempts=1, error="Item not found"),
        ]
        summary = handle_partial_success(results)

        self.assertTrue(summary["partial_success"])
        self.assertEqual(summary["successful"], 1)
        self.assertEqual(summary["failed"], 2)
        self.assertEqual(summary["error_groups"], {"RATE_LIMIT_EXCEEDED": ["2"], "ITEM_NOT_FOUND": ["3"]})
        self.assertEqual(
            summary["suggestions"],
            [
                "Reduce batch size or add delays between operations",
                "Some items may have been deleted. Refresh and try again",
            ],
        )
        self.assertEqual(
            [(f["id"], f["can_retry"]) for f in summary["failed_items"]], [("2", True), ("3", False)]
        )

    def test_all_failed_is_not_partial(self):
        summary = handle_partial_success([TargetResult("1", False, error="boom")])
        self.assertFalse(summary["partial_success"])
        self.assertEqual(summary["error_groups"], {"UNKNOWN_ERROR": ["1"]})
        self.assertEqual(summary["suggestions"], [])


class TestErrorAudit(unittest.TestCase):
    def test_audit_record(self):
        context = RecoveryContext(operation=_update(), user_id="7", board_id="100")
        audit = create_error_audit(MondayApiError("Item not found", status=404), context)

        self.assertEqual(audit["error"], {"type": "ITEM_NOT_FOUND", "message": "Item not found", "status": 404})
        self.assertEqual(audit["recovery"], {"attempted": False, "successful": False, "strategy": "none"})
        self.assertEqual(audit["context"], {"userId": "7", "boardId": "100"})
        self.assertEqual(audit["operation"]["method"], "change_multiple_column_values")
        self.assertTrue(audit["timestamp"])


if __name__ == "__main__":
    unittest.main()
