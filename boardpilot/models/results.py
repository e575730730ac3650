"""Result types produced by validation, recovery, execution and batching."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from boardpilot.models.errors import ErrorKind
from boardpilot.models.operation import ApiOperation


@dataclass(frozen=True)
class ValidationWarning:
    message: str
    blocking: bool = False
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "blocking": self.blocking}
        if self.details:
            payload.update(self.details)
        return payload


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: tuple = ()
    warnings: tuple = ()

    @property
    def can_proceed(self) -> bool:
        """Executable without asking: no hard errors and no blocking warning."""

        return self.valid and not any(w.blocking for w in self.warnings)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": [w.to_dict() for w in self.warnings],
            "canProceed": self.can_proceed,
        }


@dataclass
class RecoveryResult:
    """Decision taken by the recovery strategist for one failure."""

    successful: bool
    should_retry: bool
    error_kind: ErrorKind
    strategy: Optional[str] = None
    new_data: Optional[Dict[str, Any]] = None
    suggestion: Optional[str] = None
    alternative_operation: Optional[Dict[str, Any]] = None
    alternatives: List[Dict[str, str]] = field(default_factory=list)
    requires_user_action: bool = False
    delay_seconds: float = 0.0


@dataclass
class ExecutionOutcome:
    success: bool
    attempts: int
    result: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    recovery_applied: Optional[str] = None
    recovery: Optional[RecoveryResult] = None
    operation: Optional[ApiOperation] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "attempts": self.attempts,
            "duration": round(self.duration, 3),
        }
        if self.result is not None:
            payload["result"] = self.result
        if self.error:
            payload["error"] = self.error
        if self.error_kind:
            payload["errorKind"] = self.error_kind.value
        if self.recovery_applied:
            payload["recoveryApplied"] = self.recovery_applied
        if self.recovery and self.recovery.suggestion:
            payload["suggestion"] = self.recovery.suggestion
        return payload


@dataclass
class SequenceOutcome:
    """Outcome of running several operations strictly in order."""

    success: bool
    outcomes: List[ExecutionOutcome] = field(default_factory=list)
    error: Optional[str] = None
    rolled_back: bool = False
    rollback_errors: List[str] = field(default_factory=list)


@dataclass
class TargetResult:
    target_id: str
    success: bool
    attempts: int = 0
    result: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    can_retry: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.target_id, "success": self.success, "attempts": self.attempts}
        if self.error:
            payload["error"] = self.error
            payload["errorKind"] = self.error_kind.value if self.error_kind else None
            payload["canRetry"] = self.can_retry
        return payload


@dataclass
class BatchReport:
    total: int
    successful: int = 0
    failed: int = 0
    per_target_results: List[TargetResult] = field(default_factory=list)
    error_groups: Dict[str, List[str]] = field(default_factory=dict)
    suggestions: List[str] = field(default_factory=list)
    windows: int = 0
    aborted: bool = False
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return not self.aborted and self.failed == 0

    @property
    def partial_success(self) -> bool:
        return self.successful > 0 and self.failed > 0

    @property
    def summary(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "duration": round(self.duration, 3),
        }

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "summary": self.summary,
            "results": [r.to_dict() for r in self.per_target_results],
            "errorGroups": {k: list(v) for k, v in self.error_groups.items()},
            "suggestions": list(self.suggestions),
            "windows": self.windows,
        }
        if self.aborted:
            payload["aborted"] = True
            payload["error"] = self.error
        return payload
