"""Controllers package for BoardPilot."""

from boardpilot.controllers.bulk_operations import (
    BatchCoordinator,
    generate_confirmation_token,
    requires_confirmation,
    window_size_for,
)

__all__ = [
    "BatchCoordinator",
    "generate_confirmation_token",
    "requires_confirmation",
    "window_size_for",
]
