"""Resource-specific transport shims used by the executor."""

from typing import Dict

from boardpilot.services.monday import MondayClient
from boardpilot.services.operations.automation import AutomationOperations
from boardpilot.services.operations.base import OperationShim
from boardpilot.services.operations.board import BoardOperations
from boardpilot.services.operations.item import ItemOperations
from boardpilot.services.operations.user import UserOperations


def build_shims(client: MondayClient) -> Dict[str, OperationShim]:
    """Return one shim per resource, all sharing ``client``."""

    return {
        "item": ItemOperations(client),
        "board": BoardOperations(client),
        "user": UserOperations(client),
        "automation": AutomationOperations(client),
    }


__all__ = [
    "AutomationOperations",
    "BoardOperations",
    "ItemOperations",
    "OperationShim",
    "UserOperations",
    "build_shims",
]
