"""monday.com GraphQL client for BoardPilot.

A single async ``request`` call posts a query plus variables to the v2
endpoint. Transport failures, HTTP status codes and GraphQL error codes are
all turned into :class:`~boardpilot.models.errors.MondayApiError` with an
explicit :class:`~boardpilot.models.errors.ErrorKind` where one can be
determined, so the recovery classifier rarely needs to sniff messages.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from boardpilot.config.monday import MondayConfig
from boardpilot.models.errors import ErrorKind, MondayApiError


logger = logging.getLogger("boardpilot.monday")


_STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.INVALID_DATA,
    401: ErrorKind.PERMISSION_DENIED,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.ITEM_NOT_FOUND,
    429: ErrorKind.RATE_LIMIT_EXCEEDED,
}

# GraphQL ``extensions.code`` / ``error_code`` values monday.com returns.
_CODE_KINDS: Dict[str, ErrorKind] = {
    "ComplexityException": ErrorKind.RATE_LIMIT_EXCEEDED,
    "RATE_LIMIT_EXCEEDED": ErrorKind.RATE_LIMIT_EXCEEDED,
    "RateLimitExceeded": ErrorKind.RATE_LIMIT_EXCEEDED,
    "UserUnauthorizedException": ErrorKind.PERMISSION_DENIED,
    "USER_UNAUTHORIZED": ErrorKind.PERMISSION_DENIED,
    "UNAUTHORIZED": ErrorKind.PERMISSION_DENIED,
    "ResourceNotFoundException": ErrorKind.ITEM_NOT_FOUND,
    "InvalidItemIdException": ErrorKind.ITEM_NOT_FOUND,
    "InvalidBoardIdException": ErrorKind.ITEM_NOT_FOUND,
    "InvalidColumnIdException": ErrorKind.INVALID_DATA,
    "ColumnValueException": ErrorKind.INVALID_DATA,
    "InvalidArgumentException": ErrorKind.INVALID_DATA,
    "CorrectedValueException": ErrorKind.INVALID_DATA,
    "ItemNameTooLongException": ErrorKind.INVALID_DATA,
}


def _retry_after(response: httpx.Response) -> Optional[float]:
    raw = response.headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        return None


def _error_code(error: Dict[str, Any]) -> Optional[str]:
    extensions = error.get("extensions")
    if isinstance(extensions, dict) and extensions.get("code"):
        return str(extensions["code"])
    if error.get("error_code"):
        return str(error["error_code"])
    return None


def error_from_graphql(errors: List[Dict[str, Any]], status: Optional[int] = None) -> MondayApiError:
    """Build a MondayApiError from a GraphQL ``errors`` array."""

    first = errors[0] if errors else {}
    message = str(first.get("message") or "GraphQL request failed")
    code = _error_code(first)
    kind = _CODE_KINDS.get(code) if code else None
    existing_id = None
    extensions = first.get("extensions")
    if isinstance(extensions, dict):
        existing_id = extensions.get("existing_item_id") or extensions.get("item_id")
        if kind is None and extensions.get("status_code") in _STATUS_KINDS:
            kind = _STATUS_KINDS[extensions["status_code"]]
    retry_after = None
    if kind is ErrorKind.RATE_LIMIT_EXCEEDED and isinstance(extensions, dict):
        seconds = extensions.get("retry_in_seconds")
        if isinstance(seconds, (int, float)):
            retry_after = float(seconds)
    return MondayApiError(
        message,
        status=status,
        code=code,
        kind=kind,
        retry_after=retry_after,
        existing_item_id=str(existing_id) if existing_id is not None else None,
        errors=errors,
    )


class MondayClient:
    """Async GraphQL client over ``httpx.AsyncClient``.

    An ``http_client`` may be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise a short-lived client is opened per
    request, as the other service helpers do.
    """

    def __init__(self, config: Optional[MondayConfig] = None, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config or MondayConfig.from_env()
        self._http_client = http_client

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "API-Version": self.config.api_version,
        }
        if self.config.api_token:
            headers["Authorization"] = self.config.api_token
        return headers

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self.config.api_url, json=payload, headers=self._headers())
        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            return await client.post(self.config.api_url, json=payload, headers=self._headers())

    async def request(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a query or mutation and return its ``data`` payload.

        Raises MondayApiError on any transport, HTTP or GraphQL failure.
        """

        payload = {"query": query, "variables": variables or {}}
        try:
            resp = await self._post(payload)
        except httpx.TimeoutException as exc:
            logger.warning("monday.com request timed out: %r", exc)
            raise MondayApiError(f"Request timeout: {exc}", kind=ErrorKind.NETWORK_ERROR, code="ETIMEDOUT") from exc
        except httpx.RequestError as exc:  # network or protocol error
            logger.warning("monday.com request failed: %r", exc)
            raise MondayApiError(f"Network error: {exc}", kind=ErrorKind.NETWORK_ERROR, code="ECONNREFUSED") from exc

        body: Any
        try:
            body = resp.json()
        except Exception:  # noqa: BLE001
            body = None

        if not resp.is_success:
            errors = body.get("errors") if isinstance(body, dict) else None
            if errors:
                exc = error_from_graphql(errors, status=resp.status_code)
                if exc.kind is None:
                    exc.kind = _STATUS_KINDS.get(resp.status_code)
            else:
                message = None
                if isinstance(body, dict):
                    message = body.get("error_message") or body.get("message")
                exc = MondayApiError(
                    str(message or f"API_ERROR: {resp.status_code}"),
                    status=resp.status_code,
                    code=body.get("error_code") if isinstance(body, dict) else None,
                    kind=_STATUS_KINDS.get(resp.status_code)
                    or (ErrorKind.NETWORK_ERROR if resp.status_code >= 500 else None),
                )
            header_wait = _retry_after(resp)
            if header_wait is not None:
                exc.retry_after = header_wait
            logger.warning("monday.com returned HTTP %s: %s", resp.status_code, exc.message)
            raise exc

        if not isinstance(body, dict):
            raise MondayApiError("Malformed response from monday.com", status=resp.status_code)

        errors = body.get("errors")
        if errors:
            exc = error_from_graphql(errors, status=resp.status_code)
            logger.warning("monday.com GraphQL error (%s): %s", exc.code, exc.message)
            raise exc
        if body.get("error_message"):
            raise MondayApiError(
                str(body["error_message"]),
                status=resp.status_code,
                code=body.get("error_code"),
                kind=_CODE_KINDS.get(str(body.get("error_code"))),
            )

        data = body.get("data")
        return data if isinstance(data, dict) else {}
