"""Status presenter for BoardPilot.

This module provides a pure presentation layer that converts interpretations,
validation results, execution outcomes and batch reports into short plain-text
replies for the user.

The presenter has NO business logic and NO side effects. It only formats
data for display.
"""

from typing import List

from boardpilot.models.operation import Interpretation
from boardpilot.models.results import (
    BatchReport,
    ExecutionOutcome,
    SequenceOutcome,
    TargetResult,
    ValidationResult,
)


_KIND_LABELS = {
    "ITEM_CREATE": "create an item",
    "ITEM_UPDATE": "update an item",
    "ITEM_DELETE": "delete an item",
    "BOARD_CREATE": "create a board",
    "BOARD_UPDATE": "update a board",
    "COLUMN_CREATE": "add a column",
    "COLUMN_UPDATE": "change a column",
    "USER_ASSIGN": "assign someone to an item",
    "STATUS_UPDATE": "change an item's status",
    "AUTOMATION_CREATE": "create an automation",
    "BULK_OPERATION": "run a bulk change",
}


def describe_interpretation(interpretation: Interpretation) -> str:
    label = _KIND_LABELS.get(interpretation.kind.value, interpretation.kind.value.lower())
    name = interpretation.parameters.get("itemName") or interpretation.parameters.get("boardName")
    if name:
        return f'{label} ("{name}")'
    return label


def present_interpretation(interpretation: Interpretation) -> str:
    """Reply for an interpretation that cannot run without the user.

    Lists the clarifying questions and, when present, the alternative
    readings the user can pick from.

    Example:
        >>> present_interpretation(reading)
        "I'm not sure what you meant (confidence 25%).\\n- Which item do you mean?"
    """

    if not interpretation.kind.is_actionable:
        lines = ["I couldn't work out what to do."]
    else:
        lines = [
            f"I think you want to {describe_interpretation(interpretation)} "
            f"(confidence {interpretation.confidence}%)."
        ]

    for question in interpretation.clarifying_questions:
        lines.append(f"- {question}")

    if interpretation.alternatives:
        lines.append("Did you mean one of these?")
        for alternative in interpretation.alternatives:
            explanation = alternative.get("explanation") or alternative.get("reason") or ""
            suffix = f": {explanation}" if explanation else ""
            lines.append(f"- {alternative.get('operation', 'UNKNOWN')}{suffix}")

    return "\n".join(lines)


def present_confirmation(interpretation: Interpretation) -> str:
    return (
        f"I'm about to {describe_interpretation(interpretation)} "
        f"(confidence {interpretation.confidence}%).\n\n"
        f"Say **'confirm'** to go ahead, or rephrase your request."
    )


def present_validation(result: ValidationResult) -> str:
    """Itemized list of validation errors and warnings."""

    lines: List[str] = []
    if result.errors:
        lines.append("I can't run this yet:")
        lines.extend(f"- {error}" for error in result.errors)
    if result.warnings:
        lines.append("Warnings:")
        for warning in result.warnings:
            marker = " (needs confirmation)" if warning.blocking else ""
            lines.append(f"- {warning.message}{marker}")
    return "\n".join(lines) or "Validation passed."


def present_execution(outcome: ExecutionOutcome) -> str:
    if outcome.success:
        retries = f" after {outcome.attempts} attempts" if outcome.attempts > 1 else ""
        return f"✅ Done{retries}."
    text = f"Failed: {outcome.error}"
    if outcome.recovery and outcome.recovery.suggestion:
        text += f"\n{outcome.recovery.suggestion}"
    return text


def present_sequence(outcome: SequenceOutcome) -> str:
    if outcome.success:
        return f"✅ Completed {len(outcome.outcomes)} operation(s)."

    lines = [f"Step {len(outcome.outcomes)} failed: {outcome.error}"]
    if outcome.rolled_back:
        if outcome.rollback_errors:
            lines.append("Earlier steps could not all be undone:")
            lines.extend(f"- {error}" for error in outcome.rollback_errors)
        else:
            lines.append("Earlier steps were undone.")
    return "\n".join(lines)


def present_batch_report(report: BatchReport) -> str:
    """Convert a batch report into a natural language summary.

    Handles three scenarios:
    1. Batch aborted before anything ran (bad token, nothing to do)
    2. Every target succeeded
    3. Some or all targets failed, with grouped suggestions

    Example:
        >>> present_batch_report(report)
        "✅ Completed! Processed 30/30 items in 2 window(s)."
    """

    if report.aborted:
        return f"Batch not started: {report.error}"

    if report.failed == 0:
        return f"✅ Completed! Processed {report.successful}/{report.total} items in {report.windows} window(s)."

    lines = [f"Processed {report.successful}/{report.total} items. {report.failed} item(s) failed."]
    errors = present_batch_errors(report.per_target_results)
    if errors:
        lines.append(errors)
    if report.suggestions:
        lines.append("Suggestions:")
        lines.extend(f"- {suggestion}" for suggestion in report.suggestions)
    return "\n".join(lines)


def present_batch_errors(results: List[TargetResult]) -> str:
    """Format failed targets into a readable list, capped at ten lines."""

    failed = [r for r in results if not r.success]
    if not failed:
        return ""

    lines = ["Errors encountered:"]
    for result in failed[:10]:
        lines.append(f"- {result.target_id}: {result.error or 'unknown error'}")

    if len(failed) > 10:
        lines.append(f"... and {len(failed) - 10} more error(s).")

    return "\n".join(lines)
