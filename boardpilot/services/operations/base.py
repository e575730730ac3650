"""Transport shim contract for BoardPilot.

Every resource type (item, board, user, automation) gets one shim. Shims know
how to send a fully-built :class:`~boardpilot.models.operation.ApiOperation`
and nothing else: no retry, no recovery, no confirmation handling. Those
live in the executor and the batch coordinator.
"""

from __future__ import annotations

import logging
from abc import ABC
from typing import Any, Dict

from boardpilot.models.errors import ErrorKind, MondayApiError
from boardpilot.models.operation import ApiOperation, ItemReference
from boardpilot.services.monday import MondayClient


logger = logging.getLogger("boardpilot.operations")


class OperationShim(ABC):
    """Base class for resource-specific transport shims."""

    resource: str = "generic"

    def __init__(self, client: MondayClient) -> None:
        self.client = client

    def _wire_variables(self, operation: ApiOperation) -> Dict[str, Any]:
        variables: Dict[str, Any] = {}
        for key, value in operation.variables.items():
            if isinstance(value, ItemReference):
                raise MondayApiError(
                    f"Unresolved item reference '{value.id}' for {operation.method}",
                    kind=ErrorKind.INVALID_DATA,
                    code="UNRESOLVED_REFERENCE",
                )
            if value is None:
                continue
            variables[key] = value
        return variables

    async def send(self, operation: ApiOperation) -> Dict[str, Any]:
        """Send the operation's query and return the raw ``data`` payload.

        Raises:
            MondayApiError: on transport, HTTP or GraphQL failure, or when the
                operation is a sentinel that must never reach the wire.
        """

        if operation.is_sentinel:
            raise MondayApiError(
                operation.error or f"{operation.method} cannot be dispatched",
                kind=ErrorKind.INVALID_DATA,
                code=operation.method,
            )
        variables = self._wire_variables(operation)
        logger.debug("Sending %s via %s shim", operation.method, self.resource)
        return await self.client.request(operation.query, variables)
