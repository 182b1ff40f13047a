"""
Tenant resources.

Each resource converges one piece of external state for a tenant control
plane and records the applied fingerprint in the tenant status.
"""

from resources.base import (
    HandleResult,
    OperationResult,
    Resource,
    handle,
    update_operation_result,
)
from resources.datastore_setup import DatastoreSetup, SetupResource
from resources.kubeadm_addons import Addon, KubeadmAddonResource

__all__ = [
    "Addon",
    "DatastoreSetup",
    "HandleResult",
    "KubeadmAddonResource",
    "OperationResult",
    "Resource",
    "SetupResource",
    "handle",
    "update_operation_result",
]
