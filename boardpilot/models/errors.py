"""Error taxonomy and structured error types for BoardPilot."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Fixed failure classification used by recovery and batch reporting."""

    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    INVALID_DATA = "INVALID_DATA"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    DUPLICATE_ITEM = "DUPLICATE_ITEM"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    # Only produced while decoding language oracle output.
    PARSE_ERROR = "PARSE_ERROR"


class MondayApiError(RuntimeError):
    """Raised by the GraphQL client and transport shims.

    ``kind`` is set whenever the failure can be classified at the source
    (HTTP status, GraphQL error code, transport exception). Errors without a
    kind fall back to message sniffing in the recovery classifier.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        kind: Optional[ErrorKind] = None,
        retry_after: Optional[float] = None,
        existing_item_id: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.kind = kind
        self.retry_after = retry_after
        self.existing_item_id = existing_item_id
        self.errors = errors or []

    def __repr__(self) -> str:
        return (
            f"MondayApiError(message={self.message!r}, status={self.status!r}, "
            f"code={self.code!r}, kind={self.kind.value if self.kind else None!r})"
        )


class OracleError(RuntimeError):
    """Raised when the language model cannot be reached after all retries."""


class ContextError(RuntimeError):
    """Raised when a context snapshot cannot be assembled at all."""
