"""Immutable account/board/user snapshot shared by every pipeline stage.

A :class:`Context` is captured once per request (cache-checked first) and is
never patched in place. Staleness is tolerated up to the TTLs configured in
:mod:`boardpilot.config.ai_settings`; a fresh capture replaces it wholesale.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Column:
    id: str
    title: str
    type: str
    settings_raw: str = ""

    def settings(self) -> Dict[str, Any]:
        """Return the parsed column settings, or an empty dict."""

        if not self.settings_raw:
            return {}
        try:
            parsed = json.loads(self.settings_raw)
        except (TypeError, ValueError):
            return {}
        return parsed if isinstance(parsed, dict) else {}


@dataclass(frozen=True)
class Group:
    id: str
    title: str


@dataclass(frozen=True)
class SampleItem:
    id: str
    name: str
    group_id: Optional[str] = None


@dataclass(frozen=True)
class Board:
    id: str
    name: str
    groups: Tuple[Group, ...] = ()
    columns: Tuple[Column, ...] = ()
    sample_items: Tuple[SampleItem, ...] = ()
    workspace_id: Optional[str] = None
    items_count: int = 0


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str = ""
    role: str = "member"


@dataclass(frozen=True)
class Permissions:
    is_admin: bool = False
    is_guest: bool = True
    can_create_boards: bool = False
    can_delete_items: bool = False
    can_manage_users: bool = False
    can_create_automations: bool = False
    plan_tier: Optional[str] = None

    @classmethod
    def for_member(cls, *, is_admin: bool = False, is_guest: bool = False, plan_tier: Optional[str] = None) -> "Permissions":
        """Derive capability flags from the account role, the way monday.com grants them."""

        can_write = is_admin or not is_guest
        return cls(
            is_admin=is_admin,
            is_guest=is_guest,
            can_create_boards=can_write,
            can_delete_items=can_write,
            can_manage_users=is_admin,
            can_create_automations=can_write,
            plan_tier=plan_tier,
        )


@dataclass(frozen=True)
class ContextRequest:
    """Minimal identifiers a caller supplies to get a context snapshot."""

    account_id: str
    board_id: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class Context:
    account_id: str
    boards: Tuple[Board, ...] = ()
    users: Tuple[User, ...] = ()
    current_board: Optional[Board] = None
    permissions: Permissions = field(default_factory=Permissions)
    captured_at: float = 0.0
    account_name: Optional[str] = None

    @classmethod
    def empty(cls, account_id: str = "", captured_at: float = 0.0) -> "Context":
        return cls(account_id=account_id, captured_at=captured_at)

    @property
    def has_content(self) -> bool:
        """True when the snapshot carries any boards, users or a current board."""

        return bool(self.boards or self.users or self.current_board)

    def find_board_by_id(self, board_id: Any) -> Optional[Board]:
        wanted = str(board_id)
        for board in self.boards:
            if board.id == wanted:
                return board
        if self.current_board and self.current_board.id == wanted:
            return self.current_board
        return None
