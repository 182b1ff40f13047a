"""
Tenant Control Plane Controller - one reconciliation pass per tenant.

Builds the tenant's resources, computes the add-on configuration
fingerprint and drives each resource through ``handle()`` in order. The
pass is strictly sequential and stops at the first failure; scheduling,
retries and backoff belong to the caller.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from addons.common import AddonConfiguration
from checksum import compute_checksum
from cluster import ObjectStore, TenantClientFactory
from config import AddonConfig, DatastoreConfig
from datastore import DatastoreConnection, connect_datastore
from events import EventBus, EventType, ReconcileEvent
from resources import (
    Addon,
    DatastoreSetup,
    HandleResult,
    KubeadmAddonResource,
    Resource,
    handle,
)
from resources.datastore_setup import RESOURCE_NAME as DATASTORE_SETUP
from tenant import DataStore, TenantControlPlane

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[
    [DataStore, Optional[DatastoreConfig]], Awaitable[DatastoreConnection]
]

ADDONS = [
    ("coredns", Addon.COREDNS),
    ("kube-proxy", Addon.KUBE_PROXY),
]


class TenantControlPlaneController:
    """
    Reconciles the datastore tenancy and add-ons of tenant control planes.

    Datastore connections are opened lazily and shared between tenants
    using the same DataStore; nothing else is kept between passes.
    """

    def __init__(
        self,
        object_store: ObjectStore,
        tenant_clients: TenantClientFactory,
        addon_defaults: Optional[AddonConfig] = None,
        datastore_config: Optional[DatastoreConfig] = None,
        event_bus: Optional[EventBus] = None,
        connection_factory: ConnectionFactory = connect_datastore,
    ):
        self.object_store = object_store
        self.tenant_clients = tenant_clients
        self.addon_defaults = addon_defaults or AddonConfig()
        self.datastore_config = datastore_config or DatastoreConfig()
        self._event_bus = event_bus
        self._connection_factory = connection_factory

        # Open datastore connections keyed by DataStore name
        self._connections: Dict[str, DatastoreConnection] = {}

    async def _get_connection(self, datastore: DataStore) -> DatastoreConnection:
        if datastore.name not in self._connections:
            self._connections[datastore.name] = await self._connection_factory(
                datastore, self.datastore_config
            )
            logger.info(f"Opened connection to DataStore {datastore.name}")
        return self._connections[datastore.name]

    def build_resources(
        self,
        tenant: TenantControlPlane,
        datastore: DataStore,
        connection: DatastoreConnection,
    ) -> List[Resource]:
        """Return the tenant's resources in reconciliation order."""
        configuration = AddonConfiguration.from_tenant(tenant, self.addon_defaults)
        checksum = compute_checksum(configuration)

        resources: List[Resource] = [
            DatastoreSetup(
                object_store=self.object_store,
                connection=connection,
                datastore=datastore,
            )
        ]
        for name, addon in ADDONS:
            resource = KubeadmAddonResource(
                name=name,
                addon=addon,
                tenant_clients=self.tenant_clients,
                configuration=configuration,
            )
            resource.set_kubeadm_config_checksum(checksum)
            resources.append(resource)

        return resources

    def _publish(self, event: ReconcileEvent) -> None:
        if self._event_bus:
            self._event_bus.publish(event)

    async def reconcile(
        self, tenant: TenantControlPlane, datastore: DataStore
    ) -> List[HandleResult]:
        """
        Run one reconciliation pass for a tenant.

        Args:
            tenant: The tenant; its status is updated in place.
            datastore: The DataStore the tenant is provisioned on.

        Returns:
            One HandleResult per resource, in order.

        Raises:
            ValueError: If the tenant references another DataStore.
            ReconcileError: From the datastore connection or the first
                resource that fails.
        """
        tenant_ref = f"{tenant.namespace}/{tenant.name}"
        if tenant.spec.data_store and tenant.spec.data_store != datastore.name:
            raise ValueError(
                f"{tenant_ref} uses DataStore {tenant.spec.data_store}, "
                f"not {datastore.name}"
            )

        try:
            connection = await self._get_connection(datastore)
        except Exception as e:
            logger.error(f"Failed to reconcile {tenant_ref}: {e}")
            self._publish(
                ReconcileEvent(
                    event_type=EventType.FAILED,
                    tenant=tenant_ref,
                    resource_name=DATASTORE_SETUP,
                    message=str(e),
                )
            )
            raise

        results: List[HandleResult] = []

        for resource in self.build_resources(tenant, datastore, connection):
            try:
                result = await handle(resource, tenant)
            except Exception as e:
                logger.error(
                    f"Failed to reconcile {resource.get_name()} of {tenant_ref}: {e}"
                )
                self._publish(
                    ReconcileEvent(
                        event_type=EventType.FAILED,
                        tenant=tenant_ref,
                        resource_name=resource.get_name(),
                        message=str(e),
                    )
                )
                raise

            results.append(result)
            self._publish(
                ReconcileEvent(
                    event_type=(
                        EventType.CLEANED_UP if result.cleaned_up else EventType.RECONCILED
                    ),
                    tenant=tenant_ref,
                    resource_name=result.resource,
                    operation=result.operation.value,
                )
            )

        changed = [r.resource for r in results if r.status_changed]
        if changed:
            logger.info(f"Reconciled {tenant_ref}, status changed by: {', '.join(changed)}")
        else:
            logger.info(f"Reconciled {tenant_ref}, no changes")
        return results

    async def close(self) -> None:
        """Close every datastore connection opened by this controller."""
        for name, connection in self._connections.items():
            try:
                await connection.close()
            except Exception as e:
                logger.error(f"Error closing DataStore connection {name}: {e}")
        self._connections.clear()
