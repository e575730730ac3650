"""Item transport shim plus the read helpers the executor needs."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from boardpilot.services.operations.base import OperationShim


logger = logging.getLogger("boardpilot.operations.item")


FIND_ITEM_BY_NAME_QUERY = """
query FindItemByName($board_id: ID!, $name: CompareValue!) {
  items_page_by_column_values(
    board_id: $board_id,
    limit: 1,
    columns: [{column_id: "name", column_values: [$name]}]
  ) {
    items { id name }
  }
}
"""

ITEM_SNAPSHOT_QUERY = """
query ItemSnapshot($item_id: [ID!]) {
  items(ids: $item_id) {
    id
    name
    board { id }
    group { id }
    column_values { id value }
  }
}
"""


class ItemOperations(OperationShim):
    resource = "item"

    async def find_item_by_name(self, board_id: Any, name: str) -> Optional[str]:
        """Return the id of the first item on ``board_id`` named ``name``."""

        data = await self.client.request(
            FIND_ITEM_BY_NAME_QUERY,
            {"board_id": int(board_id) if str(board_id).isdigit() else board_id, "name": name},
        )
        page = data.get("items_page_by_column_values") or {}
        items = page.get("items") or []
        if not items:
            logger.info("No item named %r on board %s", name, board_id)
            return None
        return str(items[0].get("id"))

    async def get_item_snapshot(self, item_id: Any) -> Dict[str, Any]:
        """Fetch an item's group and raw column values, for rollback."""

        data = await self.client.request(ITEM_SNAPSHOT_QUERY, {"item_id": [int(item_id)]})
        items = data.get("items") or []
        if not items:
            return {}
        item = items[0]
        values: Dict[str, Any] = {}
        for column in item.get("column_values") or []:
            raw = column.get("value")
            try:
                values[column["id"]] = json.loads(raw) if isinstance(raw, str) else raw
            except ValueError:
                values[column["id"]] = raw
        return {
            "id": str(item.get("id")),
            "name": item.get("name"),
            "boardId": (item.get("board") or {}).get("id"),
            "groupId": (item.get("group") or {}).get("id"),
            "columnValues": values,
        }
