"""User assignment transport shim."""

from boardpilot.services.operations.base import OperationShim


class UserOperations(OperationShim):
    resource = "user"
