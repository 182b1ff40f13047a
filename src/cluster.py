"""
Cluster clients.

Reads objects from the management cluster and builds API clients scoped to
a tenant's own control plane. The kubernetes client is blocking, so every
call runs in a worker thread.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import yaml
from kubernetes import config as k8s_config
from kubernetes.client import ApiClient, CoreV1Api
from kubernetes.client.exceptions import ApiException

from config import KubernetesConfig
from errors import DependencyUnavailable, NotFoundError
from tenant import TenantControlPlane

logger = logging.getLogger(__name__)


class ObjectStore(ABC):
    """Read access to objects stored in the management cluster."""

    @abstractmethod
    async def get_secret(self, namespace: str, name: str) -> Dict[str, bytes]:
        """
        Fetch a secret's decoded data.

        Raises:
            NotFoundError: If the secret does not exist.
            ApiException: For any other API failure.
        """
        pass


class KubernetesObjectStore(ObjectStore):
    """ObjectStore backed by the management cluster API."""

    def __init__(self, core_v1: CoreV1Api):
        self.core_v1 = core_v1

    @classmethod
    def from_config(cls, kube_config: KubernetesConfig) -> "KubernetesObjectStore":
        """Load kubeconfig (or in-cluster config) and build the store."""
        if kube_config.in_cluster:
            k8s_config.load_incluster_config()
        else:
            k8s_config.load_kube_config(
                config_file=kube_config.kubeconfig, context=kube_config.context
            )
        return cls(CoreV1Api(ApiClient()))

    async def get_secret(self, namespace: str, name: str) -> Dict[str, bytes]:
        try:
            secret = await asyncio.to_thread(
                self.core_v1.read_namespaced_secret, name=name, namespace=namespace
            )
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(f"secret {namespace}/{name} not found") from e
            raise

        return {
            key: base64.b64decode(value) for key, value in (secret.data or {}).items()
        }


class TenantClientFactory:
    """
    Builds API clients for a tenant's own cluster.

    The tenant admin kubeconfig is read from the secret
    ``<tenant name><suffix>`` in the tenant namespace.
    """

    def __init__(
        self, object_store: ObjectStore, kube_config: Optional[KubernetesConfig] = None
    ):
        self.object_store = object_store
        self.kube_config = kube_config or KubernetesConfig()

    def secret_name(self, tenant: TenantControlPlane) -> str:
        return f"{tenant.name}{self.kube_config.admin_kubeconfig_suffix}"

    async def for_tenant(self, tenant: TenantControlPlane) -> ApiClient:
        """
        Build an ApiClient for the tenant control plane.

        Raises:
            DependencyUnavailable: If the admin kubeconfig cannot be read.
        """
        name = self.secret_name(tenant)
        try:
            data = await self.object_store.get_secret(tenant.namespace, name)
        except (NotFoundError, ApiException) as e:
            raise DependencyUnavailable(
                f"cannot read tenant kubeconfig {tenant.namespace}/{name}: {e}"
            ) from e

        raw = data.get(self.kube_config.admin_kubeconfig_key)
        if raw is None:
            raise DependencyUnavailable(
                f"secret {tenant.namespace}/{name} has no "
                f"{self.kube_config.admin_kubeconfig_key} key"
            )

        return k8s_config.new_client_from_config_dict(yaml.safe_load(raw))
