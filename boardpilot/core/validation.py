"""Six-layer validation of mapped operations.

Layers run in a fixed order (basic, permissions, resources, data,
constraints, business logic) and their findings are concatenated. A layer
that blows up is reported as an itemized error; ``validate`` itself never
raises and never mutates the operation or the context.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from boardpilot.config.batch_limits import (
    BOARD_AUTOMATION_WARNING,
    BOARD_GROUP_LIMIT,
    BOARD_ITEM_LIMIT,
    BOARD_ITEM_WARNING,
    LARGE_BATCH_WARNING,
    MAX_ITEM_NAME_LENGTH,
    MAX_TEXT_VALUE_LENGTH,
)
from boardpilot.models.context import Column, Context, Permissions
from boardpilot.models.operation import ApiOperation, OperationKind
from boardpilot.models.results import ValidationResult, ValidationWarning
from boardpilot.services.resources import ResourceLookup


logger = logging.getLogger("boardpilot.validation")


LayerResult = Tuple[List[str], List[ValidationWarning]]

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

REQUIRED_PARAMETERS: Dict[OperationKind, List[str]] = {
    OperationKind.ITEM_CREATE: ["boardId", "itemName"],
    OperationKind.ITEM_UPDATE: ["boardId", "itemId", "columnValues"],
    OperationKind.ITEM_DELETE: ["itemId"],
    OperationKind.BOARD_CREATE: ["boardName"],
    OperationKind.BOARD_UPDATE: ["boardId"],
    OperationKind.COLUMN_CREATE: ["boardId", "columnTitle"],
    OperationKind.COLUMN_UPDATE: ["boardId", "columnId"],
    OperationKind.USER_ASSIGN: ["itemId", "userId", "columnId"],
    OperationKind.STATUS_UPDATE: ["itemId", "statusValue", "columnId"],
    OperationKind.AUTOMATION_CREATE: ["boardId", "trigger", "actions", "name"],
    OperationKind.BULK_OPERATION: ["itemIds"],
    OperationKind.UNKNOWN: [],
    OperationKind.ERROR: [],
}

# Some methods share a kind but need different inputs.
METHOD_REQUIRED_PARAMETERS: Dict[str, List[str]] = {
    "move_item_to_group": ["itemId", "targetGroupId"],
    "create_group": ["boardId", "groupName"],
}

WRITE_KINDS = (
    OperationKind.ITEM_CREATE,
    OperationKind.ITEM_UPDATE,
    OperationKind.STATUS_UPDATE,
    OperationKind.USER_ASSIGN,
    OperationKind.COLUMN_CREATE,
    OperationKind.COLUMN_UPDATE,
    OperationKind.BOARD_UPDATE,
    OperationKind.BULK_OPERATION,
)

REQUIRED_CAPABILITIES: Dict[OperationKind, List[str]] = {
    OperationKind.ITEM_DELETE: ["can_delete_items"],
    OperationKind.BOARD_CREATE: ["can_create_boards"],
    OperationKind.AUTOMATION_CREATE: ["can_create_automations"],
}

GUEST_RESTRICTED_METHODS = ("delete_board", "manage_users", "create_automation")


def _is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def _can_write(permissions: Permissions) -> bool:
    return permissions.is_admin or not permissions.is_guest


def _column_message(column: Column, text: str) -> str:
    return f"{column.title}: {text}"


def validate_column_value(column: Column, value: Any) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(error, warning)`` for one formatted column value."""

    kind = column.type
    if kind in ("text", "long_text"):
        if not isinstance(value, str):
            return "Text value must be a string", None
        if len(value) > MAX_TEXT_VALUE_LENGTH:
            return f"Text exceeds maximum length ({MAX_TEXT_VALUE_LENGTH})", None
        return None, None
    if kind == "numbers":
        if isinstance(value, bool):
            return "Invalid number format", None
        try:
            float(value)
        except (TypeError, ValueError):
            return "Invalid number format", None
        return None, None
    if kind in ("status", "color"):
        if isinstance(value, str):
            return None, "Status should be object with label property"
        if not isinstance(value, dict) or not value.get("label"):
            return "Status requires label property", None
        return None, None
    if kind == "date":
        candidate = value.get("date") if isinstance(value, dict) else value
        if not isinstance(candidate, str) or not _DATE_RE.match(candidate):
            return "Date must be in YYYY-MM-DD format", None
        return None, None
    if kind == "people":
        persons = value.get("personsAndTeams") if isinstance(value, dict) else None
        if not isinstance(persons, list):
            return "People column requires personsAndTeams array", None
        if any(not isinstance(p, dict) or not p.get("id") or not p.get("kind") for p in persons):
            return "Each person must have id and kind properties", None
        return None, None
    if kind == "email":
        address = value.get("email") if isinstance(value, dict) else value
        if not isinstance(address, str):
            return "Email must be a string", None
        if address and not _EMAIL_RE.match(address):
            return None, "Invalid email format"
        return None, None
    if kind == "link":
        if isinstance(value, str):
            return None, "Link should be object with url and text properties"
        if not isinstance(value, dict) or not value.get("url"):
            return "Link requires url property", None
        return None, None
    if kind == "checkbox":
        if not isinstance(value, dict) or "checked" not in value:
            return "Checkbox requires checked property", None
        return None, None
    if kind == "dropdown":
        ids = value.get("ids") if isinstance(value, dict) else None
        if not isinstance(ids, list) or not ids or any(i is None for i in ids):
            return "Dropdown value must reference existing options", None
        return None, None
    if kind == "phone":
        if not isinstance(value, dict) or not value.get("phone"):
            return "Phone requires phone property", None
        return None, None
    if kind == "rating":
        rating = value.get("rating") if isinstance(value, dict) else value
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            return "Rating must be an integer between 1 and 5", None
        return None, None
    return None, f"Validation not implemented for {kind} columns"


class OperationValidator:
    """Run the six validation layers against a resource lookup."""

    def __init__(self, lookup: ResourceLookup) -> None:
        self.lookup = lookup
        self._layers = (
            ("basic", self._validate_basic),
            ("permissions", self._validate_permissions),
            ("resources", self._validate_resources),
            ("data", self._validate_data),
            ("constraints", self._validate_constraints),
            ("business", self._validate_business_logic),
        )

    async def validate(self, operation: ApiOperation, context: Optional[Context]) -> ValidationResult:
        ctx = context or Context.empty()
        errors: List[str] = []
        warnings: List[ValidationWarning] = []
        for name, layer in self._layers:
            try:
                layer_errors, layer_warnings = await layer(operation, ctx)
            except Exception as exc:  # noqa: BLE001
                logger.error("Validation layer %s failed: %r", name, exc)
                layer_errors, layer_warnings = [f"Validation failed ({name}): {exc}"], []
            errors.extend(layer_errors)
            warnings.extend(layer_warnings)

        result = ValidationResult(valid=not errors, errors=tuple(errors), warnings=tuple(warnings))
        logger.info(
            "Validated %s: valid=%s errors=%s warnings=%s",
            operation.method,
            result.valid,
            len(errors),
            len(warnings),
        )
        return result

    async def _validate_basic(self, operation: ApiOperation, context: Context) -> LayerResult:
        errors: List[str] = []
        if operation.is_sentinel:
            errors.append(operation.error or f"Operation {operation.method} cannot be executed")
            return errors, []
        if not operation.method:
            errors.append("Operation type is required")

        params = operation.parameters
        required = list(METHOD_REQUIRED_PARAMETERS.get(operation.method, REQUIRED_PARAMETERS.get(operation.kind, [])))
        if operation.kind is OperationKind.BULK_OPERATION and str(params.get("action", "")).lower() == "delete":
            required.append("confirmationToken")
        for name in required:
            if not _is_populated(params.get(name)):
                errors.append(f"Required parameter missing: {name}")
        return errors, []

    async def _validate_permissions(self, operation: ApiOperation, context: Context) -> LayerResult:
        errors: List[str] = []
        permissions = context.permissions

        if operation.kind in WRITE_KINDS and not _can_write(permissions):
            errors.append("Insufficient permissions: write access required")
        for capability in REQUIRED_CAPABILITIES.get(operation.kind, []):
            if not getattr(permissions, capability, False):
                errors.append(f"Insufficient permissions: {capability} required")

        if permissions.is_guest and not permissions.is_admin:
            if operation.method in GUEST_RESTRICTED_METHODS or operation.kind is OperationKind.AUTOMATION_CREATE:
                errors.append("Guest users cannot perform this operation")
        return errors, []

    async def _validate_resources(self, operation: ApiOperation, context: Context) -> LayerResult:
        errors: List[str] = []
        params = operation.parameters
        board_id = params.get("boardId")

        if board_id and not await self.lookup.board_exists(str(board_id)):
            errors.append(f"Board {board_id} not found")

        item_id = params.get("itemId")
        # Names are resolved at execution time; only concrete ids can be checked.
        if item_id and str(item_id).isdigit() and not await self.lookup.item_exists(str(item_id)):
            errors.append(f"Item {item_id} not found")

        group_id = params.get("groupId")
        if group_id and board_id and not await self.lookup.group_exists(str(board_id), str(group_id)):
            errors.append(f"Group {group_id} not found")

        user_id = params.get("userId")
        if user_id and not await self.lookup.user_exists(str(user_id)):
            errors.append(f"User {user_id} not found")

        column_id = params.get("columnId")
        if column_id and board_id:
            columns = await self.lookup.get_board_columns(str(board_id))
            if not any(c.id == str(column_id) for c in columns):
                errors.append(f"Column {column_id} not found")
        return errors, []

    async def _validate_data(self, operation: ApiOperation, context: Context) -> LayerResult:
        errors: List[str] = []
        warnings: List[ValidationWarning] = []
        params = operation.parameters

        if "itemName" in params and params["itemName"] is not None:
            name = str(params["itemName"])
            if len(name) > MAX_ITEM_NAME_LENGTH:
                errors.append(f"Item name cannot exceed {MAX_ITEM_NAME_LENGTH} characters")
            if len(name) == 0:
                errors.append("Item name cannot be empty")

        column_values = params.get("columnValues")
        board_id = params.get("boardId")
        if isinstance(column_values, dict) and column_values and board_id:
            columns = {c.id: c for c in await self.lookup.get_board_columns(str(board_id))}
            for column_id, value in column_values.items():
                column = columns.get(str(column_id))
                if column is None:
                    errors.append(f"Column {column_id} not found on board")
                    continue
                error, warning = validate_column_value(column, value)
                if error:
                    errors.append(_column_message(column, error))
                if warning:
                    warnings.append(ValidationWarning(_column_message(column, warning), details={"column": column.id}))

        item_ids = params.get("itemIds")
        if isinstance(item_ids, (list, tuple)):
            if len(item_ids) > LARGE_BATCH_WARNING:
                warnings.append(
                    ValidationWarning(
                        "Large batch size may cause performance issues",
                        details={"count": len(item_ids), "recommendation": "Consider breaking into smaller batches"},
                    )
                )
            if len(item_ids) == 0:
                errors.append("At least one item ID required")
        return errors, warnings

    async def _validate_constraints(self, operation: ApiOperation, context: Context) -> LayerResult:
        errors: List[str] = []
        warnings: List[ValidationWarning] = []
        board_id = operation.parameters.get("boardId")
        if not board_id:
            return errors, warnings

        if operation.kind is OperationKind.ITEM_CREATE:
            count = await self.lookup.get_board_item_count(str(board_id))
            if count >= BOARD_ITEM_LIMIT:
                errors.append(f"Board has reached maximum item limit ({BOARD_ITEM_LIMIT:,})")
            elif count >= BOARD_ITEM_WARNING:
                warnings.append(
                    ValidationWarning("Board approaching item limit", details={"current": count, "limit": BOARD_ITEM_LIMIT})
                )

        if operation.method == "create_group":
            count = await self.lookup.get_board_group_count(str(board_id))
            if count >= BOARD_GROUP_LIMIT:
                errors.append(f"Board has reached maximum group limit ({BOARD_GROUP_LIMIT})")

        if operation.kind is OperationKind.AUTOMATION_CREATE:
            count = await self.lookup.get_board_automation_count(str(board_id))
            if count >= BOARD_AUTOMATION_WARNING:
                warnings.append(
                    ValidationWarning("High number of automations may affect performance", details={"current": count})
                )
        return errors, warnings

    async def _validate_business_logic(self, operation: ApiOperation, context: Context) -> LayerResult:
        warnings: List[ValidationWarning] = []
        params = operation.parameters

        target_board = params.get("targetBoardId")
        source_board = params.get("sourceBoardId", params.get("boardId"))
        if target_board is not None and source_board is not None and str(target_board) == str(source_board):
            warnings.append(
                ValidationWarning(
                    "Moving item within same board",
                    details={"suggestion": "Consider moving to different group instead"},
                )
            )

        if operation.kind is OperationKind.AUTOMATION_CREATE:
            warnings.extend(validate_automation_logic(params))

        if operation.kind is OperationKind.ITEM_CREATE and params.get("boardId") and params.get("itemName"):
            if await self.lookup.item_name_exists(str(params["boardId"]), str(params["itemName"])):
                warnings.append(
                    ValidationWarning(
                        "An item with this name already exists",
                        blocking=False,
                        details={"suggestion": "Consider updating the existing item or using a different name"},
                    )
                )
        return [], warnings


def validate_automation_logic(params: Dict[str, Any]) -> List[ValidationWarning]:
    warnings: List[ValidationWarning] = []
    trigger = params.get("trigger") if isinstance(params.get("trigger"), dict) else {}
    actions = [a for a in params.get("actions") or [] if isinstance(a, dict)]

    status_actions = [a for a in actions if a.get("type") == "change_status_column_value"]
    if trigger.get("type") == "status_changes_to_something" and status_actions:
        trigger_status = (trigger.get("params") or {}).get("statusLabel")
        action_status = (status_actions[0].get("params") or {}).get("statusLabel")
        if trigger_status == action_status:
            warnings.append(
                ValidationWarning(
                    "Automation may create infinite loop",
                    blocking=True,
                    details={"details": "Trigger and action use same status"},
                )
            )

    move_actions = [a for a in actions if a.get("type") == "move_item_to_group"]
    if len(move_actions) > 1:
        warnings.append(
            ValidationWarning(
                "Multiple move actions may conflict",
                details={"suggestion": "Consider using only one move action"},
            )
        )
    return warnings
