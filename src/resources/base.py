"""
Resource Base - the contract every reconcilable unit implements.

A resource converges one piece of external state for a tenant and records
what it applied in the tenant status. ``handle()`` drives any resource
through the fixed Define -> cleanup-or-apply -> status sequence; the caller
owns retry and backoff.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from tenant import TenantControlPlane

logger = logging.getLogger(__name__)


class OperationResult(Enum):
    """Outcome of an apply, ordered by observability precedence."""

    NONE = "unchanged"
    UPDATED = "updated"
    CREATED = "created"


_PRECEDENCE = {
    OperationResult.NONE: 0,
    OperationResult.UPDATED: 1,
    OperationResult.CREATED: 2,
}


def update_operation_result(
    current: OperationResult, result: OperationResult
) -> OperationResult:
    """Return the stronger of two results (CREATED > UPDATED > NONE)."""
    if _PRECEDENCE[result] > _PRECEDENCE[current]:
        return result
    return current


@dataclass
class HandleResult:
    """Result of driving one resource through a reconciliation pass."""

    resource: str
    operation: OperationResult = OperationResult.NONE
    cleaned_up: bool = False
    removed: bool = False
    status_changed: bool = False


class Resource(ABC):
    """
    Abstract base class for tenant resources.

    Implementations keep per-pass inputs gathered by define() on the
    instance; they are never shared between tenants or passes.
    """

    @abstractmethod
    def get_name(self) -> str:
        """Stable identifier used in logs and events."""
        pass

    @abstractmethod
    async def define(self, tenant: TenantControlPlane) -> None:
        """
        Gather the inputs needed for this pass without touching external state.

        Raises:
            DependencyUnavailable: If a required input cannot be fetched.
        """
        pass

    @abstractmethod
    def should_status_be_updated(self, tenant: TenantControlPlane) -> bool:
        """True when the recorded fingerprint differs from the desired one."""
        pass

    @abstractmethod
    def should_cleanup(self, tenant: TenantControlPlane) -> bool:
        """True when the resource is no longer desired and must be removed."""
        pass

    @abstractmethod
    async def create_or_update(self, tenant: TenantControlPlane) -> OperationResult:
        """
        Converge external state to the desired state.

        Must not fail when the state is already as desired.
        """
        pass

    @abstractmethod
    async def clean_up(self, tenant: TenantControlPlane) -> bool:
        """
        Remove the resource.

        Returns:
            True if something was removed, False if it was already absent.
        """
        pass

    @abstractmethod
    async def update_tenant_control_plane_status(
        self, tenant: TenantControlPlane
    ) -> None:
        """Record the just-applied fingerprint and metadata in the tenant status."""
        pass


async def handle(resource: Resource, tenant: TenantControlPlane) -> HandleResult:
    """
    Run one reconciliation pass for a resource.

    Args:
        resource: The resource to reconcile.
        tenant: The tenant, whose status is updated in place.

    Returns:
        HandleResult describing what happened.

    Raises:
        Any error from the resource; the pass stops at the failing step.
    """
    name = resource.get_name()

    await resource.define(tenant)

    if resource.should_cleanup(tenant):
        removed = await resource.clean_up(tenant)
        logger.info(
            f"[{tenant.namespace}/{tenant.name}] {name}: "
            f"{'cleaned up' if removed else 'nothing to clean up'}"
        )
        return HandleResult(
            resource=name, cleaned_up=True, removed=removed, status_changed=removed
        )

    status_changed = resource.should_status_be_updated(tenant)

    operation = await resource.create_or_update(tenant)

    await resource.update_tenant_control_plane_status(tenant)

    if operation != OperationResult.NONE:
        status_changed = True
        logger.info(f"[{tenant.namespace}/{tenant.name}] {name}: {operation.value}")

    return HandleResult(
        resource=name, operation=operation, status_changed=status_changed
    )
