"""
Kubeadm add-on resources.

One class serves every add-on; the Addon value picks the installer/remover
pair and the spec/status fields from a lookup table.
"""

import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, NamedTuple, Optional

from kubernetes.client import ApiClient

from addons import coredns, kube_proxy
from addons.common import AddonConfiguration
from checksum import is_up_to_date
from cluster import TenantClientFactory
from errors import ExternalApplyFailed, NotFoundError, UnsupportedAddon
from resources.base import OperationResult, Resource
from tenant import AddonStatus, TenantControlPlane

logger = logging.getLogger(__name__)


class Addon(Enum):
    COREDNS = "PhaseAddonCoreDNS"
    KUBE_PROXY = "PhaseAddonKubeProxy"


class AddonFunctions(NamedTuple):
    install: Callable[[ApiClient, AddonConfiguration], Awaitable[None]]
    remove: Callable[[ApiClient], Awaitable[None]]
    field: str  # attribute name in tenant spec.addons / status.addons


ADDON_FUNCTIONS: Dict[Addon, AddonFunctions] = {
    Addon.COREDNS: AddonFunctions(coredns.install, coredns.remove, "coredns"),
    Addon.KUBE_PROXY: AddonFunctions(kube_proxy.install, kube_proxy.remove, "kube_proxy"),
}


class KubeadmAddonResource(Resource):
    """Installs or removes one add-on in the tenant cluster, gated by a fingerprint."""

    def __init__(
        self,
        name: str,
        addon: Addon,
        tenant_clients: TenantClientFactory,
        configuration: Optional[AddonConfiguration] = None,
    ):
        if addon not in ADDON_FUNCTIONS:
            raise UnsupportedAddon(f"no available functionality for addon {addon}")

        self.name = name
        self.addon = addon
        self.tenant_clients = tenant_clients
        self.configuration = configuration
        self._functions = ADDON_FUNCTIONS[addon]
        self._kubeadm_config_checksum = ""

    def _label(self) -> str:
        return f"{self.name} ({self.addon.value})"

    def set_kubeadm_config_checksum(self, checksum: str) -> None:
        self._kubeadm_config_checksum = checksum

    def get_name(self) -> str:
        return self.name

    def get_status(self, tenant: TenantControlPlane) -> AddonStatus:
        return getattr(tenant.status.addons, self._functions.field)

    def _is_status_equal(self, tenant: TenantControlPlane) -> bool:
        return is_up_to_date(
            self.get_status(tenant).get_checksum(), self._kubeadm_config_checksum
        )

    async def define(self, tenant: TenantControlPlane) -> None:
        return None

    def should_status_be_updated(self, tenant: TenantControlPlane) -> bool:
        return not self._is_status_equal(tenant)

    def should_cleanup(self, tenant: TenantControlPlane) -> bool:
        return getattr(tenant.spec.addons, self._functions.field) is None

    async def clean_up(self, tenant: TenantControlPlane) -> bool:
        api_client = await self.tenant_clients.for_tenant(tenant)

        try:
            await self._functions.remove(api_client)
        except NotFoundError:
            self.get_status(tenant).set_checksum("")
            return False
        except Exception as e:
            logger.error(f"{self._label()}: error while performing clean-up: {e}")
            raise ExternalApplyFailed(
                f"unable to remove addon {self.addon.value}: {e}"
            ) from e
        finally:
            api_client.close()

        self.get_status(tenant).set_checksum("")
        return True

    async def create_or_update(self, tenant: TenantControlPlane) -> OperationResult:
        if self.configuration is None:
            raise ValueError(f"{self._label()}: configuration has not been set")

        stored_checksum = self.get_status(tenant).get_checksum()
        if is_up_to_date(stored_checksum, self._kubeadm_config_checksum):
            return OperationResult.NONE

        api_client = await self.tenant_clients.for_tenant(tenant)

        try:
            await self._functions.install(api_client, self.configuration)
        except Exception as e:
            logger.error(f"{self._label()}: unable to install: {e}")
            raise ExternalApplyFailed(
                f"unable to install addon {self.addon.value}: {e}"
            ) from e
        finally:
            api_client.close()

        if stored_checksum == "":
            return OperationResult.CREATED
        return OperationResult.UPDATED

    async def update_tenant_control_plane_status(
        self, tenant: TenantControlPlane
    ) -> None:
        self.get_status(tenant).set_checksum(self._kubeadm_config_checksum)
