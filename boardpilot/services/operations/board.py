"""Board and column transport shim."""

from boardpilot.services.operations.base import OperationShim


class BoardOperations(OperationShim):
    resource = "board"
