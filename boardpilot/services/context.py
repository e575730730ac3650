"""Context assembly for BoardPilot.

Gathers the account, user, board, user-list and permission sections the
interpreter and mapper work against, each behind its own TTL cache entry and
each with a safe fallback when monday.com cannot be reached.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from boardpilot.config.ai_settings import DEFAULT_CONTEXT_SETTINGS, ContextSettings
from boardpilot.models.context import (
    Board,
    Column,
    Context,
    ContextRequest,
    Group,
    Permissions,
    SampleItem,
    User,
)
from boardpilot.models.errors import ContextError, MondayApiError
from boardpilot.models.operation import OperationKind
from boardpilot.services.monday import MondayClient
from boardpilot.utils.cache import TTLCache


logger = logging.getLogger("boardpilot.context")


ACCOUNT_QUERY = """
query {
  account { id name plan { max_users tier } }
}
"""

USER_QUERY = """
query ($ids: [ID!]) {
  users(ids: $ids) { id name email is_admin is_guest enabled }
}
"""

BOARDS_QUERY = """
query ($ids: [ID!], $limit: Int, $items: Int!) {
  boards(ids: $ids, limit: $limit) {
    id
    name
    items_count
    workspace { id name }
    groups { id title }
    columns { id title type settings_str archived }
    items_page(limit: $items) { items { id name group { id } } }
  }
}
"""

USERS_QUERY = """
query ($limit: Int) {
  users(limit: $limit) { id name email is_admin is_guest enabled }
}
"""

PERMISSIONS_QUERY = """
query {
  me { id is_admin is_guest account { id plan { tier } } }
}
"""


def _board_from_payload(raw: Dict[str, Any], settings: ContextSettings) -> Board:
    groups = tuple(Group(id=str(g["id"]), title=g.get("title") or "") for g in (raw.get("groups") or []))
    columns = tuple(
        Column(
            id=str(c["id"]),
            title=c.get("title") or "",
            type=c.get("type") or "text",
            settings_raw=c.get("settings_str") or "",
        )
        for c in (raw.get("columns") or [])
        if not c.get("archived")
    )
    items = ((raw.get("items_page") or {}).get("items")) or []
    samples = tuple(
        SampleItem(id=str(i["id"]), name=i.get("name") or "", group_id=(i.get("group") or {}).get("id"))
        for i in items[: settings.max_sample_items]
    )
    workspace = raw.get("workspace") or {}
    return Board(
        id=str(raw["id"]),
        name=raw.get("name") or "",
        groups=groups[: settings.max_groups_in_context],
        columns=columns[: settings.max_columns_in_context],
        sample_items=samples,
        workspace_id=str(workspace["id"]) if workspace.get("id") is not None else None,
        items_count=int(raw.get("items_count") or len(items)),
    )


class ContextService:
    """Build :class:`Context` snapshots from the monday.com API.

    Each section is cached independently under ``account_{id}``,
    ``user_{id}``, ``board_{id}`` / ``boards_{account}``, ``users_{account}``
    and ``permissions_{account}_{user}``.
    """

    def __init__(
        self,
        client: MondayClient,
        cache: Optional[TTLCache] = None,
        settings: Optional[ContextSettings] = None,
    ) -> None:
        self.client = client
        self.cache = cache or TTLCache()
        self.settings = settings or DEFAULT_CONTEXT_SETTINGS

    async def _cached(self, key: str, ttl: float, fetch):
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached context section %s", key)
            return cached
        logger.debug("Fetching fresh context section %s", key)
        fresh = await fetch()
        self.cache.set(key, fresh, ttl)
        return fresh

    async def gather_context(self, request: ContextRequest) -> Context:
        """Assemble a fresh (or cache-backed) snapshot for ``request``.

        Raises ContextError only when assembly fails outright; unreachable
        sections fall back to their documented defaults instead.
        """

        logger.info(
            "Gathering context (account=%s, board=%s, user=%s)",
            request.account_id,
            request.board_id,
            request.user_id,
        )
        try:
            account = await self._get_account_info(request.account_id)
            if request.user_id:
                await self._get_user_info(request.user_id)
            boards = await self._get_boards(request.account_id, request.board_id)
            users = await self._get_users(request.account_id)
            permissions = await self._get_permissions(request.account_id, request.user_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to gather context: %r", exc)
            raise ContextError(f"Context gathering failed: {exc}") from exc

        current_board = None
        if request.board_id:
            current_board = next((b for b in boards if b.id == str(request.board_id)), None)

        context = Context(
            account_id=str(request.account_id),
            boards=boards,
            users=users,
            current_board=current_board,
            permissions=permissions,
            captured_at=self.cache.now(),
            account_name=account.get("name"),
        )
        logger.info(
            "Context gathered: %s boards, %s users, current board %s",
            len(boards),
            len(users),
            "set" if current_board else "unset",
        )
        return context

    async def _get_account_info(self, account_id: str) -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            try:
                data = await self.client.request(ACCOUNT_QUERY)
            except MondayApiError as exc:
                logger.warning("Failed to fetch account info: %s", exc.message)
                return {"id": account_id, "name": "Unknown Account"}
            return data.get("account") or {"id": account_id, "name": "Unknown Account"}

        return await self._cached(f"account_{account_id}", self.settings.user_ttl, fetch)

    async def _get_user_info(self, user_id: str) -> Dict[str, Any]:
        async def fetch() -> Dict[str, Any]:
            fallback = {"id": user_id, "name": "Unknown User", "is_admin": False}
            try:
                data = await self.client.request(USER_QUERY, {"ids": [user_id]})
            except MondayApiError as exc:
                logger.warning("Failed to fetch user %s: %s", user_id, exc.message)
                return fallback
            users = data.get("users") or []
            return users[0] if users else fallback

        return await self._cached(f"user_{user_id}", self.settings.user_ttl, fetch)

    async def _get_boards(self, account_id: str, board_id: Optional[str]) -> Tuple[Board, ...]:
        key = f"board_{board_id}" if board_id else f"boards_{account_id}"

        async def fetch() -> Tuple[Board, ...]:
            variables: Dict[str, Any] = {"items": min(self.settings.max_items_per_board, 25)}
            if board_id:
                variables["ids"] = [board_id]
            else:
                variables["limit"] = self.settings.max_boards_to_fetch
            try:
                data = await self.client.request(BOARDS_QUERY, variables)
            except MondayApiError as exc:
                logger.error("Failed to fetch boards context: %s", exc.message)
                return ()
            return tuple(_board_from_payload(raw, self.settings) for raw in (data.get("boards") or []))

        return await self._cached(key, self.settings.board_ttl, fetch)

    async def _get_users(self, account_id: str) -> Tuple[User, ...]:
        async def fetch() -> Tuple[User, ...]:
            try:
                data = await self.client.request(USERS_QUERY, {"limit": self.settings.max_users_to_fetch})
            except MondayApiError as exc:
                logger.warning("Failed to fetch users context: %s", exc.message)
                return ()
            users: List[User] = []
            for raw in data.get("users") or []:
                if not raw.get("enabled"):
                    continue
                role = "admin" if raw.get("is_admin") else "guest" if raw.get("is_guest") else "member"
                users.append(User(id=str(raw["id"]), name=raw.get("name") or "", email=raw.get("email") or "", role=role))
            return tuple(users)

        return await self._cached(f"users_{account_id}", self.settings.user_ttl, fetch)

    async def _get_permissions(self, account_id: str, user_id: Optional[str]) -> Permissions:
        async def fetch() -> Permissions:
            try:
                data = await self.client.request(PERMISSIONS_QUERY)
            except MondayApiError as exc:
                logger.warning("Failed to fetch permissions context: %s", exc.message)
                return Permissions()
            me = data.get("me") or {}
            if not me:
                return Permissions()
            plan = ((me.get("account") or {}).get("plan") or {}).get("tier")
            return Permissions.for_member(
                is_admin=bool(me.get("is_admin")),
                is_guest=bool(me.get("is_guest")),
                plan_tier=plan,
            )

        return await self._cached(f"permissions_{account_id}_{user_id}", self.settings.permissions_ttl, fetch)

    def clear_cache(self, pattern: Optional[str] = None) -> int:
        removed = self.cache.clear(pattern)
        logger.info("Context cache cleared (pattern=%r, removed=%s)", pattern, removed)
        return removed

    def get_cache_stats(self) -> Dict[str, int]:
        return self.cache.stats()


def validate_context_for_operation(context: Context, kind: OperationKind) -> Dict[str, Any]:
    """Check the snapshot carries what ``kind`` needs before interpretation proceeds."""

    missing: List[str] = []
    if kind in (OperationKind.ITEM_CREATE, OperationKind.ITEM_UPDATE):
        if context.current_board is None:
            missing.append("Board context required")
    elif kind is OperationKind.USER_ASSIGN:
        if not context.users:
            missing.append("User context required")
    elif kind is OperationKind.BOARD_CREATE:
        if not context.permissions.can_create_boards:
            missing.append("Board creation permissions")
    elif kind is OperationKind.AUTOMATION_CREATE:
        if not context.permissions.can_create_automations:
            missing.append("Automation creation permissions")
    return {"valid": not missing, "missing": missing, "warnings": []}


def get_minimal_context(context: Context, kind: OperationKind) -> Context:
    """Trim a snapshot down to what prompts for ``kind`` need."""

    if kind in (OperationKind.ITEM_CREATE, OperationKind.ITEM_UPDATE, OperationKind.STATUS_UPDATE):
        return Context(
            account_id=context.account_id,
            users=context.users[:10],
            current_board=context.current_board,
            permissions=context.permissions,
            captured_at=context.captured_at,
        )
    if kind is OperationKind.USER_ASSIGN:
        board = context.current_board
        return Context(
            account_id=context.account_id,
            users=context.users,
            current_board=Board(id=board.id, name=board.name) if board else None,
            permissions=context.permissions,
            captured_at=context.captured_at,
        )
    if kind is OperationKind.BOARD_CREATE:
        return Context(
            account_id=context.account_id,
            boards=tuple(Board(id=b.id, name=b.name) for b in context.boards),
            permissions=context.permissions,
            captured_at=context.captured_at,
            account_name=context.account_name,
        )
    return context
