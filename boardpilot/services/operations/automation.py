"""Automation transport shim.

Automation creation is not mapped to a real mutation yet, so in practice the
mapper only ever hands this shim ``AUTOMATION_NOT_IMPLEMENTED`` sentinels,
which :meth:`OperationShim.send` refuses.
"""

from boardpilot.services.operations.base import OperationShim


class AutomationOperations(OperationShim):
    resource = "automation"
