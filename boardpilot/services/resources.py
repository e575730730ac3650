"""Read-only resource lookups used by the validator.

Every lookup answers a yes/no or count question about live monday.com
state. Lookups never raise: an unreachable API answers "does not exist" /
zero, which the validator turns into an itemized error or no warning.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from boardpilot.models.context import Column
from boardpilot.models.errors import MondayApiError
from boardpilot.services.monday import MondayClient
from boardpilot.utils.cache import TTLCache


logger = logging.getLogger("boardpilot.resources")


RESOURCE_CACHE_TTL = 600.0


class ResourceLookup(Protocol):
    async def board_exists(self, board_id: str) -> bool: ...

    async def item_exists(self, item_id: str) -> bool: ...

    async def group_exists(self, board_id: str, group_id: str) -> bool: ...

    async def user_exists(self, user_id: str) -> bool: ...

    async def get_board_columns(self, board_id: str) -> List[Column]: ...

    async def get_board_item_count(self, board_id: str) -> int: ...

    async def get_board_group_count(self, board_id: str) -> int: ...

    async def get_board_automation_count(self, board_id: str) -> int: ...

    async def item_name_exists(self, board_id: str, item_name: str) -> bool: ...


CHECK_BOARD_QUERY = "query ($ids: [ID!]) { boards(ids: $ids) { id } }"
CHECK_ITEM_QUERY = "query ($ids: [ID!]) { items(ids: $ids) { id } }"
CHECK_USER_QUERY = "query ($ids: [ID!]) { users(ids: $ids) { id } }"
BOARD_GROUPS_QUERY = "query ($ids: [ID!]) { boards(ids: $ids) { groups { id } } }"
BOARD_COLUMNS_QUERY = "query ($ids: [ID!]) { boards(ids: $ids) { columns { id title type settings_str } } }"
BOARD_ITEM_COUNT_QUERY = "query ($ids: [ID!]) { boards(ids: $ids) { items_count } }"
BOARD_ITEM_NAMES_QUERY = "query ($ids: [ID!]) { boards(ids: $ids) { items_page(limit: 10) { items { name } } } }"


class MondayResourceLookup:
    """ResourceLookup backed by the GraphQL client, with a TTL cache for board facts."""

    def __init__(self, client: MondayClient, cache: Optional[TTLCache] = None) -> None:
        self.client = client
        self.cache = cache or TTLCache(default_ttl=RESOURCE_CACHE_TTL)

    async def _first_board(self, query: str, board_id: str) -> dict:
        data = await self.client.request(query, {"ids": [board_id]})
        boards = data.get("boards") or []
        return boards[0] if boards else {}

    async def board_exists(self, board_id: str) -> bool:
        key = f"board_{board_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        try:
            data = await self.client.request(CHECK_BOARD_QUERY, {"ids": [board_id]})
        except MondayApiError as exc:
            logger.warning("Board lookup failed for %s: %s", board_id, exc.message)
            return False
        exists = bool(data.get("boards"))
        self.cache.set(key, exists)
        return exists

    async def item_exists(self, item_id: str) -> bool:
        try:
            data = await self.client.request(CHECK_ITEM_QUERY, {"ids": [item_id]})
        except MondayApiError as exc:
            logger.warning("Item lookup failed for %s: %s", item_id, exc.message)
            return False
        return bool(data.get("items"))

    async def group_exists(self, board_id: str, group_id: str) -> bool:
        try:
            board = await self._first_board(BOARD_GROUPS_QUERY, board_id)
        except MondayApiError as exc:
            logger.warning("Group lookup failed for board %s: %s", board_id, exc.message)
            return False
        return any(g.get("id") == group_id for g in board.get("groups") or [])

    async def user_exists(self, user_id: str) -> bool:
        try:
            data = await self.client.request(CHECK_USER_QUERY, {"ids": [user_id]})
        except MondayApiError as exc:
            logger.warning("User lookup failed for %s: %s", user_id, exc.message)
            return False
        return bool(data.get("users"))

    async def get_board_columns(self, board_id: str) -> List[Column]:
        key = f"columns_{board_id}"
        cached = self.cache.get(key)
        if cached:
            return cached
        try:
            board = await self._first_board(BOARD_COLUMNS_QUERY, board_id)
        except MondayApiError as exc:
            logger.warning("Column lookup failed for board %s: %s", board_id, exc.message)
            return []
        columns = [
            Column(id=str(c["id"]), title=c.get("title") or "", type=c.get("type") or "text", settings_raw=c.get("settings_str") or "")
            for c in board.get("columns") or []
        ]
        self.cache.set(key, columns)
        return columns

    async def get_board_item_count(self, board_id: str) -> int:
        try:
            board = await self._first_board(BOARD_ITEM_COUNT_QUERY, board_id)
        except MondayApiError:
            return 0
        return int(board.get("items_count") or 0)

    async def get_board_group_count(self, board_id: str) -> int:
        try:
            board = await self._first_board(BOARD_GROUPS_QUERY, board_id)
        except MondayApiError:
            return 0
        return len(board.get("groups") or [])

    async def get_board_automation_count(self, board_id: str) -> int:
        # The public API exposes no automation listing.
        return 0

    async def item_name_exists(self, board_id: str, item_name: str) -> bool:
        try:
            board = await self._first_board(BOARD_ITEM_NAMES_QUERY, board_id)
        except MondayApiError:
            return False
        items = (board.get("items_page") or {}).get("items") or []
        wanted = item_name.lower()
        return any((item.get("name") or "").lower() == wanted for item in items)
