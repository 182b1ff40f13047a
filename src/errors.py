"""
Reconciliation errors.

Every error aborts the current reconciliation pass and is returned to the
caller, which owns retry and backoff. The only error that is ever converted
to success is NotFoundError raised while removing something.
"""

from typing import Optional


class ReconcileError(Exception):
    """Base class for errors raised while reconciling a tenant."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DependencyUnavailable(ReconcileError):
    """A required input (secret, tenant client) could not be fetched."""


class NotFoundError(ReconcileError):
    """The target object does not exist."""


class ExternalApplyFailed(ReconcileError):
    """Installing or removing an add-on in the tenant cluster failed."""


class UnsupportedAddon(ReconcileError):
    """No installer/remover pair is registered for an add-on."""


class DatastoreOperationFailed(ReconcileError):
    """A datastore query for one tenancy artifact failed."""

    def __init__(self, operation: str, artifact: str, cause: Optional[Exception] = None):
        self.operation = operation
        self.artifact = artifact
        self.cause = cause
        message = f"unable to {operation} {artifact}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
