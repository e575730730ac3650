"""Interpretation and context settings for BoardPilot.

Thresholds, weights and per-operation requirements used by the interpreter,
the confidence calculator and the context assembler. Values are plain module
constants or pydantic models with defaults so tests and callers can build a
variant without touching the environment.
"""

import os
from typing import Dict, List, Tuple

from pydantic import BaseModel, Field

from boardpilot.models.operation import OperationKind


class OracleConfig(BaseModel):
    """Configuration for the language oracle client."""

    model: str = Field(default_factory=lambda: os.getenv("BOARDPILOT_LLM_MODEL", "gpt-4o-mini"))
    max_tokens: int = 4000
    temperature: float = 0.1  # Low for consistent operation parsing
    max_retries: int = 3
    retry_base_delay: float = 1.0
    request_timeout: float = 30.0


class ConfidenceThresholds(BaseModel):
    auto_execute: int = 90
    require_confirmation: int = 70
    request_clarification: int = 50
    reject: int = 30


class ConfidenceWeights(BaseModel):
    operation_match: float = 0.4
    parameter_completeness: float = 0.3
    context_relevance: float = 0.2
    input_clarity: float = 0.1


class ContextSettings(BaseModel):
    max_boards_to_fetch: int = 10
    max_items_per_board: int = 25
    max_sample_items: int = 5
    max_users_to_fetch: int = 50
    max_columns_in_context: int = 20
    max_groups_in_context: int = 10

    # TTLs in seconds
    board_ttl: float = 600.0
    user_ttl: float = 1800.0
    permissions_ttl: float = 300.0


DEFAULT_THRESHOLDS = ConfidenceThresholds()
DEFAULT_WEIGHTS = ConfidenceWeights()
DEFAULT_CONTEXT_SETTINGS = ContextSettings()

# Pattern matches at or above this score decide the operation kind.
PATTERN_AUTHORITY_THRESHOLD = 80

# Added to the oracle's score after a user clarification.
AMBIGUITY_CONFIDENCE_BOOST = 15

MAX_ALTERNATIVES = 3

# Applied in this order; splitting is literal, not clause-aware.
MULTI_OPERATION_SEPARATORS: Tuple[str, ...] = (" and ", " then ", ", ", " also ", " plus ")

INTENT_VERBS: Tuple[str, ...] = ("create", "add", "update", "delete", "assign", "change", "set")

# Parameters an interpretation needs before it can be mapped with confidence.
REQUIRED_PARAMETERS: Dict[OperationKind, List[str]] = {
    OperationKind.ITEM_CREATE: ["boardId", "itemName"],
    OperationKind.ITEM_UPDATE: ["itemId", "boardId"],
    OperationKind.ITEM_DELETE: ["itemId", "boardId"],
    OperationKind.BOARD_CREATE: ["workspaceId", "boardName"],
    OperationKind.BOARD_UPDATE: ["boardId"],
    OperationKind.COLUMN_CREATE: ["boardId", "columnTitle", "columnType"],
    OperationKind.COLUMN_UPDATE: ["boardId", "columnId"],
    OperationKind.USER_ASSIGN: ["itemId", "userId"],
    OperationKind.STATUS_UPDATE: ["itemId", "statusValue"],
    OperationKind.AUTOMATION_CREATE: ["boardId", "trigger", "action"],
    OperationKind.BULK_OPERATION: ["boardId", "operation", "criteria"],
    OperationKind.UNKNOWN: [],
    OperationKind.ERROR: [],
}

# A symbolic name satisfies the matching id requirement; the mapper resolves it.
PARAMETER_ALIASES: Dict[str, Tuple[str, ...]] = {
    "boardId": ("boardId", "boardName"),
    "itemId": ("itemId", "itemName"),
    "userId": ("userId", "userName", "userEmail"),
    "columnId": ("columnId", "columnTitle", "columnName"),
    "groupId": ("groupId", "groupName"),
    "columnTitle": ("columnTitle", "title"),
    "boardName": ("boardName", "name"),
    "itemName": ("itemName", "name"),
    "statusValue": ("statusValue", "status"),
    "action": ("action", "actions"),
}

FIELD_QUESTIONS: Dict[str, str] = {
    "boardId": "Which board should I use?",
    "itemName": "What should the item be called?",
    "itemId": "Which item do you mean?",
    "userId": "Who should I assign it to?",
    "statusValue": "Which status should I set?",
    "workspaceId": "Which workspace should the board go in?",
    "boardName": "What should the board be called?",
    "columnTitle": "What should the column be called?",
    "columnType": "What type of column is it (text, status, date, people, ...)?",
    "columnId": "Which column do you mean?",
    "trigger": "What should trigger the automation?",
    "action": "What should the automation do?",
    "operation": "What should happen to the matching items?",
    "criteria": "Which items should be included?",
}
