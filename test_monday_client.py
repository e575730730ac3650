import asyncio
import json
import unittest

import httpx

from boardpilot.config.monday import MondayConfig
from boardpilot.models.errors import ErrorKind, MondayApiError
from boardpilot.models.operation import ApiOperation, ItemReference, OperationKind
from boardpilot.services.monday import MondayClient, error_from_graphql
from boardpilot.services.operations import build_shims


CONFIG = MondayConfig(api_token="tok", api_url="https://monday.test/v2")


def _run_with(handler, call):
    """Run ``call(client)`` against a MondayClient whose transport is ``handler``."""

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await call(MondayClient(CONFIG, http_client=http))

    return asyncio.run(run())


class TestMondayClient(unittest.TestCase):
    def test_successful_request(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"boards": [{"id": "100"}]}})

        data = _run_with(handler, lambda client: client.request("query { boards { id } }", {"ids": [100]}))

        self.assertEqual(data, {"boards": [{"id": "100"}]})
        self.assertEqual(seen["headers"]["Authorization"], "tok")
        self.assertEqual(seen["headers"]["API-Version"], "2024-01")
        self.assertEqual(seen["body"], {"query": "query { boards { id } }", "variables": {"ids": [100]}})

    def test_graphql_complexity_error_is_rate_limit(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "errors": [
                        {
                            "message": "Complexity budget exhausted",
                            "extensions": {"code": "ComplexityException", "retry_in_seconds": 12},
                        }
                    ]
                },
            )

        with self.assertRaises(MondayApiError) as raised:
            _run_with(handler, lambda client: client.request("query { me { id } }"))
        self.assertEqual(raised.exception.kind, ErrorKind.RATE_LIMIT_EXCEEDED)
        self.assertEqual(raised.exception.retry_after, 12.0)
        self.assertEqual(raised.exception.code, "ComplexityException")

    def test_http_429_uses_retry_after_header(self):
        def handler(request):
            return httpx.Response(429, headers={"Retry-After": "30"}, json={"error_message": "Rate limit reached"})

        with self.assertRaises(MondayApiError) as raised:
            _run_with(handler, lambda client: client.request("query { me { id } }"))
        self.assertEqual(raised.exception.kind, ErrorKind.RATE_LIMIT_EXCEEDED)
        self.assertEqual(raised.exception.status, 429)
        self.assertEqual(raised.exception.retry_after, 30.0)
        self.assertEqual(raised.exception.message, "Rate limit reached")

    def test_server_error_is_network_error(self):
        with self.assertRaises(MondayApiError) as raised:
            _run_with(lambda request: httpx.Response(502, text="bad gateway"), lambda client: client.request("q"))
        self.assertEqual(raised.exception.kind, ErrorKind.NETWORK_ERROR)
        self.assertEqual(raised.exception.message, "API_ERROR: 502")

    def test_transport_failures(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        with self.assertRaises(MondayApiError) as raised:
            _run_with(refuse, lambda client: client.request("q"))
        self.assertEqual(raised.exception.kind, ErrorKind.NETWORK_ERROR)
        self.assertEqual(raised.exception.code, "ECONNREFUSED")

        def slow(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        with self.assertRaises(MondayApiError) as raised:
            _run_with(slow, lambda client: client.request("q"))
        self.assertEqual(raised.exception.code, "ETIMEDOUT")

    def test_error_message_in_body(self):
        def handler(request):
            return httpx.Response(
                200, json={"error_message": "Column not found", "error_code": "InvalidColumnIdException"}
            )

        with self.assertRaises(MondayApiError) as raised:
            _run_with(handler, lambda client: client.request("q"))
        self.assertEqual(raised.exception.kind, ErrorKind.INVALID_DATA)

    def test_error_from_graphql_carries_existing_item(self):
        error = error_from_graphql(
            [{"message": "Item already exists", "extensions": {"existing_item_id": 77, "status_code": 409}}]
        )
        self.assertIsNone(error.kind)
        self.assertEqual(error.existing_item_id, "77")


class TestOperationShims(unittest.TestCase):
    def test_send_strips_null_variables(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"create_item": {"id": "900"}}})

        op = ApiOperation(
            kind=OperationKind.ITEM_CREATE,
            method="create_item",
            query="mutation",
            variables={"board_id": 100, "item_name": "A", "group_id": None},
        )
        data = _run_with(handler, lambda client: build_shims(client)["item"].send(op))

        self.assertEqual(data, {"create_item": {"id": "900"}})
        self.assertEqual(seen["body"]["variables"], {"board_id": 100, "item_name": "A"})

    def test_unresolved_reference_never_reaches_the_wire(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"data": {}})

        op = ApiOperation(
            kind=OperationKind.ITEM_DELETE,
            method="delete_item",
            query="mutation",
            variables={"item_id": ItemReference(id="Homepage", search_by="name")},
        )
        with self.assertRaises(MondayApiError) as raised:
            _run_with(handler, lambda client: build_shims(client)["item"].send(op))
        self.assertEqual(raised.exception.code, "UNRESOLVED_REFERENCE")
        self.assertEqual(calls, [])

    def test_find_item_by_name_and_snapshot(self):
        def handler(request):
            body = json.loads(request.content)
            if "FindItemByName" in body["query"]:
                return httpx.Response(200, json={"data": {"items_page_by_column_values": {"items": [{"id": 55}]}}})
            return httpx.Response(
                200,
                json={
                    "data": {
                        "items": [
                            {
                                "id": "55",
                                "name": "Homepage",
                                "board": {"id": "100"},
                                "group": {"id": "topics"},
                                "column_values": [
                                    {"id": "status", "value": '{"index": 1}'},
                                    {"id": "text", "value": None},
                                ],
                            }
                        ]
                    }
                },
            )

        async def call(client):
            shim = build_shims(client)["item"]
            return await shim.find_item_by_name("100", "Homepage"), await shim.get_item_snapshot("55")

        found, snapshot = _run_with(handler, call)
        self.assertEqual(found, "55")
        self.assertEqual(snapshot["groupId"], "topics")
        self.assertEqual(snapshot["columnValues"], {"status": {"index": 1}, "text": None})


if __name__ == "__main__":
    unittest.main()
