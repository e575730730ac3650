"""Logging utilities for BoardPilot.

This module centralizes logger configuration for the application and offers
structured helpers for request-scoped events.
"""

import json
import logging
import uuid
from typing import Optional


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a configured logger instance."""

    logger_name = name or "boardpilot"
    logger = logging.getLogger(logger_name)

    # Configure a basic console handler once so logs are visible when no
    # host application has configured logging.
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    return logger


def generate_request_id() -> str:
    """Generate a unique request identifier for correlating logs."""

    return str(uuid.uuid4())


def _format_pipeline_message(msg: str) -> str:
    return f"[BOARDPILOT] {msg}"


def _format_structured_message(
    message: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    extra: Optional[dict] = None,
) -> str:
    """Format a log message as a JSON-like structured string."""

    payload: dict = {"message": message}
    if user_id is not None:
        payload["user_id"] = user_id
    if request_id is not None:
        payload["request_id"] = request_id
    if extra:
        payload["extra"] = extra
    return json.dumps(payload, default=str)


def log_info(
    msg: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log an informational pipeline event."""

    logger = get_logger("boardpilot.pipeline")
    structured = _format_structured_message(
        _format_pipeline_message(msg),
        user_id=user_id,
        request_id=request_id,
        extra=extra or None,
    )
    logger.info(structured)


def log_warn(
    msg: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log a pipeline warning."""

    logger = get_logger("boardpilot.pipeline")
    structured = _format_structured_message(
        _format_pipeline_message(msg),
        user_id=user_id,
        request_id=request_id,
        extra=extra or None,
    )
    logger.warning(structured)


def log_error(
    msg: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    **extra: object,
) -> None:
    """Log a pipeline error."""

    logger = get_logger("boardpilot.pipeline")
    structured = _format_structured_message(
        _format_pipeline_message(msg),
        user_id=user_id,
        request_id=request_id,
        extra=extra or None,
    )
    logger.error(structured)
