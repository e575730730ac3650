import asyncio
import unittest

from boardpilot.config.ai_settings import ContextSettings
from boardpilot.models.context import Board, Context, ContextRequest, Permissions, User
from boardpilot.models.errors import ContextError, MondayApiError
from boardpilot.models.operation import OperationKind
from boardpilot.services.context import (
    ACCOUNT_QUERY,
    BOARDS_QUERY,
    PERMISSIONS_QUERY,
    USER_QUERY,
    USERS_QUERY,
    ContextService,
    get_minimal_context,
    validate_context_for_operation,
)
from boardpilot.utils.cache import TTLCache


BOARD_PAYLOAD = {
    "id": 100,
    "name": "Development Board",
    "items_count": 12,
    "workspace": {"id": 9, "name": "Main"},
    "groups": [{"id": "topics", "title": "To Do"}],
    "columns": [
        {"id": "status", "title": "Status", "type": "color", "settings_str": "{}"},
        {"id": "old", "title": "Old", "type": "text", "archived": True},
    ],
    "items_page": {"items": [{"id": i, "name": f"Item {i}", "group": {"id": "topics"}} for i in range(8)]},
}


class FakeClient:
    def __init__(self, overrides=None):
        self.replies = {
            ACCOUNT_QUERY: {"account": {"id": "1", "name": "Acme"}},
            USER_QUERY: {"users": [{"id": "7", "name": "Ann"}]},
            BOARDS_QUERY: {"boards": [BOARD_PAYLOAD]},
            USERS_QUERY: {
                "users": [
                    {"id": 7, "name": "Ann", "email": "ann@example.com", "is_admin": True, "enabled": True},
                    {"id": 8, "name": "Bob", "email": "bob@example.com", "is_guest": True, "enabled": True},
                    {"id": 9, "name": "Gone", "enabled": False},
                ]
            },
            PERMISSIONS_QUERY: {"me": {"id": "7", "is_admin": False, "is_guest": False, "account": {"plan": {"tier": "pro"}}}},
        }
        self.replies.update(overrides or {})
        self.calls = []

    async def request(self, query, variables=None):
        self.calls.append((query, variables))
        reply = self.replies[query]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _service(client, clock=None):
    return ContextService(client, cache=TTLCache(clock=clock or FakeClock()), settings=ContextSettings())


class TestGatherContext(unittest.TestCase):
    def test_full_snapshot(self):
        async def run():
            client = FakeClient()
            context = await _service(client).gather_context(ContextRequest("1", board_id="100", user_id="7"))

            self.assertEqual(context.account_name, "Acme")
            self.assertEqual(context.current_board.id, "100")
            self.assertEqual(context.current_board.workspace_id, "9")
            self.assertEqual([c.id for c in context.current_board.columns], ["status"])
            self.assertEqual(len(context.current_board.sample_items), 5)
            self.assertEqual([(u.id, u.role) for u in context.users], [("7", "admin"), ("8", "guest")])
            self.assertEqual(context.permissions, Permissions.for_member(plan_tier="pro"))

            board_call = next(v for q, v in client.calls if q == BOARDS_QUERY)
            self.assertEqual(board_call, {"items": 25, "ids": ["100"]})

        asyncio.run(run())

    def test_sections_are_cached(self):
        async def run():
            client = FakeClient()
            service = _service(client)
            request = ContextRequest("1", board_id="100", user_id="7")
            await service.gather_context(request)
            first = len(client.calls)
            await service.gather_context(request)
            self.assertEqual(len(client.calls), first)

            self.assertEqual(service.clear_cache("board_"), 1)
            await service.gather_context(request)
            self.assertEqual(len(client.calls), first + 1)

        asyncio.run(run())

    def test_boards_expire_before_users(self):
        async def run():
            clock = FakeClock()
            client = FakeClient()
            service = _service(client, clock)
            request = ContextRequest("1", board_id="100")
            await service.gather_context(request)

            clock.now = 601
            await service.gather_context(request)
            refreshed = [q for q, _ in client.calls]
            self.assertEqual(refreshed.count(BOARDS_QUERY), 2)
            self.assertEqual(refreshed.count(USERS_QUERY), 1)
            # permissions TTL (300s) has also lapsed
            self.assertEqual(refreshed.count(PERMISSIONS_QUERY), 2)

        asyncio.run(run())

    def test_unreachable_sections_fall_back(self):
        async def run():
            down = MondayApiError("down")
            client = FakeClient(
                overrides={ACCOUNT_QUERY: down, BOARDS_QUERY: down, USERS_QUERY: down, PERMISSIONS_QUERY: down}
            )
            context = await _service(client).gather_context(ContextRequest("1", board_id="100"))

            self.assertEqual(context.account_name, "Unknown Account")
            self.assertEqual(context.boards, ())
            self.assertIsNone(context.current_board)
            self.assertEqual(context.users, ())
            self.assertEqual(context.permissions, Permissions())

        asyncio.run(run())

    def test_unexpected_failure_raises_context_error(self):
        async def run():
            client = FakeClient(overrides={BOARDS_QUERY: RuntimeError("bug")})
            with self.assertRaises(ContextError):
                await _service(client).gather_context(ContextRequest("1"))

        asyncio.run(run())

    def test_account_wide_boards_use_limit(self):
        async def run():
            client = FakeClient()
            context = await _service(client).gather_context(ContextRequest("1"))
            self.assertIsNone(context.current_board)
            board_call = next(v for q, v in client.calls if q == BOARDS_QUERY)
            self.assertEqual(board_call, {"items": 25, "limit": 10})

        asyncio.run(run())


class TestContextHelpers(unittest.TestCase):
    def test_validate_context_for_operation(self):
        empty = Context.empty("1")
        self.assertEqual(
            validate_context_for_operation(empty, OperationKind.ITEM_CREATE)["missing"], ["Board context required"]
        )
        self.assertEqual(
            validate_context_for_operation(empty, OperationKind.USER_ASSIGN)["missing"], ["User context required"]
        )
        member = Context(account_id="1", permissions=Permissions.for_member())
        self.assertTrue(validate_context_for_operation(member, OperationKind.BOARD_CREATE)["valid"])

    def test_minimal_context(self):
        board = Board(id="100", name="Dev")
        users = tuple(User(str(i), f"U{i}") for i in range(15))
        context = Context(account_id="1", boards=(board, Board(id="200", name="Ops")), users=users, current_board=board)

        trimmed = get_minimal_context(context, OperationKind.ITEM_CREATE)
        self.assertEqual(len(trimmed.users), 10)
        self.assertEqual(trimmed.boards, ())

        for_boards = get_minimal_context(context, OperationKind.BOARD_CREATE)
        self.assertEqual([b.id for b in for_boards.boards], ["100", "200"])
        self.assertEqual(for_boards.users, ())

        self.assertIs(get_minimal_context(context, OperationKind.COLUMN_CREATE), context)


if __name__ == "__main__":
    unittest.main()
