"""Presenters package for BoardPilot."""

from boardpilot.presenters.status_presenter import (
    present_batch_errors,
    present_batch_report,
    present_confirmation,
    present_execution,
    present_interpretation,
    present_sequence,
    present_validation,
)

__all__ = [
    "present_batch_errors",
    "present_batch_report",
    "present_confirmation",
    "present_execution",
    "present_interpretation",
    "present_sequence",
    "present_validation",
]
