"""Map interpretations onto concrete monday.com GraphQL operations.

Every :class:`OperationKind` has exactly one entry in the mapper table.
Mapping never raises: a failure comes back as an ``ERROR`` sentinel
operation and bulk/automation requests as ``*_NOT_IMPLEMENTED`` sentinels.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from boardpilot.core.column_values import (
    STATUS_TYPES,
    format_column_values,
    map_column_type,
    map_status_label,
)
from boardpilot.models.context import Board, Column, Context, Group, User
from boardpilot.models.operation import ApiOperation, Interpretation, ItemReference, OperationKind


logger = logging.getLogger("boardpilot.mapper")


class MappingError(ValueError):
    """Raised inside the mapper table; converted to an ERROR sentinel."""


CREATE_ITEM_MUTATION = """
mutation CreateItem($board_id: ID!, $item_name: String!, $group_id: String, $column_values: JSON) {
  create_item(board_id: $board_id, item_name: $item_name, group_id: $group_id, column_values: $column_values) {
    id
    name
    state
    created_at
    creator { id name }
  }
}
"""

UPDATE_ITEM_MUTATION = """
mutation UpdateItem($item_id: ID!, $board_id: ID!, $column_values: JSON!) {
  change_multiple_column_values(item_id: $item_id, board_id: $board_id, column_values: $column_values) {
    id
    name
    updated_at
  }
}
"""

MOVE_ITEM_MUTATION = """
mutation MoveItem($item_id: ID!, $group_id: String!) {
  move_item_to_group(item_id: $item_id, group_id: $group_id) {
    id
    group { id }
  }
}
"""

DELETE_ITEM_MUTATION = """
mutation DeleteItem($item_id: ID!) {
  delete_item(item_id: $item_id) {
    id
  }
}
"""

UPDATE_STATUS_MUTATION = """
mutation UpdateStatus($item_id: ID!, $board_id: ID!, $column_id: String!, $value: String!) {
  change_simple_column_value(item_id: $item_id, board_id: $board_id, column_id: $column_id, value: $value) {
    id
    name
  }
}
"""

ASSIGN_USER_MUTATION = """
mutation AssignUser($item_id: ID!, $board_id: ID!, $column_id: String!, $value: JSON!) {
  change_column_value(item_id: $item_id, board_id: $board_id, column_id: $column_id, value: $value) {
    id
    name
  }
}
"""

CREATE_BOARD_MUTATION = """
mutation CreateBoard($board_name: String!, $board_kind: BoardKind!, $workspace_id: ID, $template_id: ID) {
  create_board(board_name: $board_name, board_kind: $board_kind, workspace_id: $workspace_id, template_id: $template_id) {
    id
    name
    url
    state
  }
}
"""

UPDATE_BOARD_MUTATION = """
mutation UpdateBoard($board_id: ID!, $board_attribute: BoardAttributes!, $new_value: String!) {
  update_board(board_id: $board_id, board_attribute: $board_attribute, new_value: $new_value)
}
"""

CREATE_GROUP_MUTATION = """
mutation CreateGroup($board_id: ID!, $group_name: String!) {
  create_group(board_id: $board_id, group_name: $group_name) {
    id
    title
  }
}
"""

CREATE_COLUMN_MUTATION = """
mutation CreateColumn($board_id: ID!, $title: String!, $column_type: ColumnType!) {
  create_column(board_id: $board_id, title: $title, column_type: $column_type) {
    id
    title
    type
  }
}
"""

UPDATE_COLUMN_MUTATION = """
mutation UpdateColumn($board_id: ID!, $column_id: String!, $title: String!) {
  change_column_title(board_id: $board_id, column_id: $column_id, title: $title) {
    id
    title
  }
}
"""

# Methods that need an explicit capability before they are attempted.
PERMISSION_CHECKS: Dict[str, str] = {
    "create_board": "can_create_boards",
    "delete_item": "can_delete_items",
    "create_automation": "can_create_automations",
}


def _first(params: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = params.get(key)
        if value is not None and not (isinstance(value, str) and not value.strip()):
            return value
    return None


def _as_int(value: Any) -> Any:
    text = str(value).strip()
    return int(text) if text.isdigit() else text


def find_board(identifier: Any, context: Context) -> Optional[Board]:
    """Board by numeric id, then case-insensitive name, else the current board."""

    if identifier is not None:
        text = str(identifier).strip()
        if text.isdigit():
            board = context.find_board_by_id(text)
            if board is not None:
                return board
        lowered = text.lower()
        candidates = list(context.boards)
        if context.current_board is not None:
            candidates.append(context.current_board)
        for board in candidates:
            if board.name.lower() == lowered:
                return board
    return context.current_board


def find_group(identifier: Any, board: Board) -> Optional[Group]:
    if identifier is None:
        return None
    text = str(identifier)
    for group in board.groups:
        if group.id == text:
            return group
    lowered = text.lower()
    for group in board.groups:
        if group.title.lower() == lowered:
            return group
    return None


def find_user(identifier: Any, context: Context) -> Optional[User]:
    """User by numeric id, then exact email, then name containment either way."""

    if identifier is None:
        return None
    text = str(identifier).strip()
    if not text:
        return None
    if text.isdigit():
        for user in context.users:
            if user.id == text:
                return user
    lowered = text.lower()
    if "@" in text:
        for user in context.users:
            if user.email.lower() == lowered:
                return user
    for user in context.users:
        name = user.name.lower()
        if name and (lowered in name or name in lowered):
            return user
    return None


def find_status_column(board: Board) -> Optional[Column]:
    for column in board.columns:
        if column.type in STATUS_TYPES or "status" in column.title.lower():
            return column
    return None


def find_people_column(board: Board) -> Optional[Column]:
    for column in board.columns:
        title = column.title.lower()
        if column.type == "people" or "person" in title or "assign" in title:
            return column
    return None


def _item_variable(identifier: Any) -> Any:
    reference = ItemReference.from_identifier(identifier)
    if reference is None:
        return None
    if reference.search_by == "id":
        return int(reference.id)
    return reference


def sentinel_operation(kind: OperationKind, method: str, message: str) -> ApiOperation:
    return ApiOperation(kind=kind, method=method, error=message, errors=[message])


class OperationMapper:
    """Translate interpretations into :class:`ApiOperation` values."""

    def __init__(self) -> None:
        self._mappers: Dict[OperationKind, Callable[[Interpretation, Context], ApiOperation]] = {
            OperationKind.ITEM_CREATE: self._map_item_create,
            OperationKind.ITEM_UPDATE: self._map_item_update,
            OperationKind.ITEM_DELETE: self._map_item_delete,
            OperationKind.BOARD_CREATE: self._map_board_create,
            OperationKind.BOARD_UPDATE: self._map_board_update,
            OperationKind.COLUMN_CREATE: self._map_column_create,
            OperationKind.COLUMN_UPDATE: self._map_column_update,
            OperationKind.USER_ASSIGN: self._map_user_assign,
            OperationKind.STATUS_UPDATE: self._map_status_update,
            OperationKind.AUTOMATION_CREATE: self._map_automation_create,
            OperationKind.BULK_OPERATION: self._map_bulk_operation,
            OperationKind.UNKNOWN: self._map_unmappable,
            OperationKind.ERROR: self._map_unmappable,
        }

    def map_to_api(self, interpretation: Interpretation, context: Optional[Context]) -> ApiOperation:
        """Map ``interpretation`` against ``context``. Never raises."""

        ctx = context or Context.empty()
        logger.info(
            "Mapping %s (confidence %s) to API",
            interpretation.kind.value,
            interpretation.confidence,
        )
        try:
            operation = self._mappers[interpretation.kind](interpretation, ctx)
        except MappingError as exc:
            logger.warning("Operation mapping failed: %s", exc)
            return sentinel_operation(interpretation.kind, "ERROR", str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.error("Unexpected mapping failure: %r", exc)
            return sentinel_operation(interpretation.kind, "ERROR", f"Mapping failed: {exc}")

        if operation.is_sentinel:
            return operation

        errors, warnings = self._check_operation(operation, ctx)
        operation.errors.extend(errors)
        operation.warnings.extend(warnings)
        logger.info("Mapped to %s (errors=%s)", operation.method, len(operation.errors))
        return operation

    def _check_operation(self, operation: ApiOperation, context: Context):
        errors: List[str] = []
        warnings: List[str] = []
        if not operation.method:
            errors.append("Missing API method")
        if not operation.query:
            errors.append("Missing GraphQL query/mutation")
        for key, value in operation.variables.items():
            if value is None:
                warnings.append(f"Variable {key} is null/undefined")
        capability = PERMISSION_CHECKS.get(operation.method)
        if capability and not getattr(context.permissions, capability, False):
            errors.append(f"Insufficient permissions for {operation.method}")
        return errors, warnings

    def _require_board(self, params: Dict[str, Any], context: Context, purpose: str) -> Board:
        board = find_board(_first(params, "boardId", "boardName"), context)
        if board is None:
            raise MappingError(f"Board not found for {purpose}")
        return board

    def _require_item(self, params: Dict[str, Any], purpose: str) -> Any:
        identifier = _first(params, "itemId", "itemName")
        if identifier is None:
            raise MappingError(f"Item not found for {purpose}")
        return identifier

    def _map_item_create(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "item creation")
        item_name = _first(params, "itemName", "name") or "New Item"

        variables: Dict[str, Any] = {"board_id": _as_int(board.id), "item_name": str(item_name)}
        resolved: Dict[str, Any] = {"boardId": board.id, "itemName": str(item_name)}
        warnings: List[str] = []

        group_key = _first(params, "groupId", "groupName")
        if group_key is not None:
            group = find_group(group_key, board)
            if group is not None:
                variables["group_id"] = group.id
                resolved["groupId"] = group.id
            else:
                warnings.append(f"Group '{group_key}' not found; using the board's default group")

        raw_values = _first(params, "columnValues", "fields")
        if raw_values:
            formatted, value_warnings = format_column_values(raw_values, board.columns)
            warnings.extend(value_warnings)
            if formatted:
                variables["column_values"] = json.dumps(formatted)
                resolved["columnValues"] = formatted

        return ApiOperation(
            kind=interpretation.kind,
            method="create_item",
            query=CREATE_ITEM_MUTATION,
            variables=variables,
            parameters=resolved,
            warnings=warnings,
            transactional=True,
        )

    def _map_item_update(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "item update")
        identifier = self._require_item(params, "update")

        raw_values = _first(params, "columnValues", "updates")
        target_group = _first(params, "targetGroupId", "targetGroupName")
        if not raw_values and target_group is not None:
            group = find_group(target_group, board)
            if group is None:
                raise MappingError(f"Group '{target_group}' not found for item move")
            return ApiOperation(
                kind=interpretation.kind,
                method="move_item_to_group",
                query=MOVE_ITEM_MUTATION,
                variables={"item_id": _item_variable(identifier), "group_id": group.id},
                parameters={
                    "boardId": board.id,
                    "itemId": str(identifier),
                    "targetGroupId": group.id,
                    "sourceGroupId": _first(params, "groupId", "sourceGroupId"),
                },
                transactional=True,
            )

        formatted, warnings = format_column_values(raw_values or {}, board.columns)
        return ApiOperation(
            kind=interpretation.kind,
            method="change_multiple_column_values",
            query=UPDATE_ITEM_MUTATION,
            variables={
                "item_id": _item_variable(identifier),
                "board_id": _as_int(board.id),
                "column_values": json.dumps(formatted),
            },
            parameters={"boardId": board.id, "itemId": str(identifier), "columnValues": formatted},
            warnings=warnings,
            transactional=True,
        )

    def _map_item_delete(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "item deletion")
        identifier = self._require_item(params, "deletion")
        return ApiOperation(
            kind=interpretation.kind,
            method="delete_item",
            query=DELETE_ITEM_MUTATION,
            variables={"item_id": _item_variable(identifier)},
            parameters={"boardId": board.id, "itemId": str(identifier)},
        )

    def _map_status_update(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "status update")
        identifier = self._require_item(params, "status update")
        column = find_status_column(board)
        if column is None:
            raise MappingError("No status column found in board")
        label = map_status_label(_first(params, "statusValue", "status"))
        return ApiOperation(
            kind=interpretation.kind,
            method="change_simple_column_value",
            query=UPDATE_STATUS_MUTATION,
            variables={
                "item_id": _item_variable(identifier),
                "board_id": _as_int(board.id),
                "column_id": column.id,
                "value": label,
            },
            parameters={
                "boardId": board.id,
                "itemId": str(identifier),
                "columnId": column.id,
                "statusValue": label,
            },
        )

    def _map_user_assign(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "user assignment")
        identifier = self._require_item(params, "assignment")
        user = find_user(_first(params, "userId", "userName", "userEmail"), context)
        if user is None:
            raise MappingError("User not found for assignment")
        column = find_people_column(board)
        if column is None:
            raise MappingError("No people column found in board")
        value = {"personsAndTeams": [{"id": int(user.id), "kind": "person"}]}
        return ApiOperation(
            kind=interpretation.kind,
            method="change_column_value",
            query=ASSIGN_USER_MUTATION,
            variables={
                "item_id": _item_variable(identifier),
                "board_id": _as_int(board.id),
                "column_id": column.id,
                "value": json.dumps(value),
            },
            parameters={
                "boardId": board.id,
                "itemId": str(identifier),
                "userId": user.id,
                "columnId": column.id,
                "columnValues": {column.id: value},
            },
        )

    def _map_board_create(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board_name = str(_first(params, "boardName", "name") or "New Board")
        board_kind = str(_first(params, "boardKind") or "public")
        variables: Dict[str, Any] = {"board_name": board_name, "board_kind": board_kind}
        resolved: Dict[str, Any] = {"boardName": board_name, "boardKind": board_kind}
        workspace_id = _first(params, "workspaceId")
        if workspace_id is not None:
            variables["workspace_id"] = _as_int(workspace_id)
            resolved["workspaceId"] = str(workspace_id)
        template_id = _first(params, "templateId")
        if template_id is not None:
            variables["template_id"] = _as_int(template_id)
            resolved["templateId"] = str(template_id)
        return ApiOperation(
            kind=interpretation.kind,
            method="create_board",
            query=CREATE_BOARD_MUTATION,
            variables=variables,
            parameters=resolved,
        )

    def _map_board_update(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "update")
        attribute = None
        new_value = None
        new_name = _first(params, "newName", "name")
        if new_name is not None:
            attribute, new_value = "name", str(new_name)
        description = _first(params, "description")
        if description is not None:
            attribute, new_value = "description", str(description)

        group_name = _first(params, "newGroupName", "groupName")
        if attribute is None and group_name is not None:
            return ApiOperation(
                kind=interpretation.kind,
                method="create_group",
                query=CREATE_GROUP_MUTATION,
                variables={"board_id": _as_int(board.id), "group_name": str(group_name)},
                parameters={"boardId": board.id, "groupName": str(group_name)},
            )
        return ApiOperation(
            kind=interpretation.kind,
            method="update_board",
            query=UPDATE_BOARD_MUTATION,
            variables={"board_id": _as_int(board.id), "board_attribute": attribute, "new_value": new_value},
            parameters={"boardId": board.id, "boardAttribute": attribute, "newValue": new_value},
        )

    def _map_column_create(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "column creation")
        title = str(_first(params, "columnTitle", "title") or "New Column")
        column_type = map_column_type(_first(params, "columnType", "type") or "text")
        return ApiOperation(
            kind=interpretation.kind,
            method="create_column",
            query=CREATE_COLUMN_MUTATION,
            variables={"board_id": _as_int(board.id), "title": title, "column_type": column_type},
            parameters={"boardId": board.id, "columnTitle": title, "columnType": column_type},
        )

    def _map_column_update(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        params = interpretation.parameters
        board = self._require_board(params, context, "column update")
        column_id = _first(params, "columnId")
        column_title = str(_first(params, "columnTitle", "columnName") or "").lower()
        column = None
        for candidate in board.columns:
            if candidate.id == column_id or (column_title and candidate.title.lower() == column_title):
                column = candidate
                break
        if column is None:
            raise MappingError("Column not found for update")
        new_title = _first(params, "newTitle", "title")
        return ApiOperation(
            kind=interpretation.kind,
            method="change_column_title",
            query=UPDATE_COLUMN_MUTATION,
            variables={"board_id": _as_int(board.id), "column_id": column.id, "title": new_title},
            parameters={"boardId": board.id, "columnId": column.id, "title": new_title},
        )

    def _map_automation_create(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        return sentinel_operation(
            interpretation.kind,
            "AUTOMATION_NOT_IMPLEMENTED",
            "Automation creation not yet implemented",
        )

    def _map_bulk_operation(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        return sentinel_operation(
            interpretation.kind,
            "BULK_NOT_IMPLEMENTED",
            "Bulk operations not yet implemented",
        )

    def _map_unmappable(self, interpretation: Interpretation, context: Context) -> ApiOperation:
        raise MappingError(f"No mapper found for operation: {interpretation.kind.value}")


def map_to_api(interpretation: Interpretation, context: Optional[Context]) -> ApiOperation:
    """Module-level convenience over a shared :class:`OperationMapper`."""

    return _DEFAULT_MAPPER.map_to_api(interpretation, context)


_DEFAULT_MAPPER = OperationMapper()
