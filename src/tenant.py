"""
Tenant control plane and DataStore objects.

The TenantControlPlane is owned by the outer system: reconciliation reads
its spec and mutates sub-fields of its status in place. Manifests use the
camelCase field names of the cluster API; the dataclasses use snake_case.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from validation import (
    DATASTORE_SCHEMA,
    TENANT_CONTROL_PLANE_SCHEMA,
    validate_manifest,
)

logger = logging.getLogger(__name__)


# ==================== Spec ====================


@dataclass
class AddonSpec:
    """Per add-on overrides. Presence of the object enables the add-on."""

    image_repository: str = ""
    image_tag: str = ""


@dataclass
class AddonsSpec:
    coredns: Optional[AddonSpec] = None
    kube_proxy: Optional[AddonSpec] = None


@dataclass
class NetworkProfile:
    address: str = ""
    port: int = 6443
    service_cidr: str = "10.96.0.0/16"
    pod_cidr: str = "10.244.0.0/16"
    dns_service_ips: List[str] = field(default_factory=lambda: ["10.96.0.10"])


@dataclass
class TenantControlPlaneSpec:
    data_store: str = ""
    kubernetes_version: str = "v1.30.2"
    network_profile: NetworkProfile = field(default_factory=NetworkProfile)
    addons: AddonsSpec = field(default_factory=AddonsSpec)


# ==================== Status ====================


@dataclass
class AddonStatus:
    """Fingerprint of the add-on configuration last applied in the tenant cluster."""

    checksum: str = ""

    def get_checksum(self) -> str:
        return self.checksum

    def set_checksum(self, checksum: str) -> None:
        self.checksum = checksum


@dataclass
class AddonsStatus:
    coredns: AddonStatus = field(default_factory=AddonStatus)
    kube_proxy: AddonStatus = field(default_factory=AddonStatus)


@dataclass
class StorageConfigStatus:
    """Desired storage configuration: credentials secret and its fingerprint."""

    secret_name: str = ""
    checksum: str = ""


@dataclass
class StorageSetupStatus:
    """Storage configuration as of the last successful provisioning."""

    schema: str = ""
    user: str = ""
    last_update: Optional[datetime] = None
    checksum: str = ""


@dataclass
class StorageStatus:
    driver: str = ""
    data_store_name: str = ""
    config: StorageConfigStatus = field(default_factory=StorageConfigStatus)
    setup: StorageSetupStatus = field(default_factory=StorageSetupStatus)


@dataclass
class TenantControlPlaneStatus:
    storage: StorageStatus = field(default_factory=StorageStatus)
    addons: AddonsStatus = field(default_factory=AddonsStatus)


# ==================== Objects ====================


def _addon_spec(data: Optional[Dict[str, Any]]) -> Optional[AddonSpec]:
    if data is None:
        return None
    return AddonSpec(
        image_repository=data.get("imageRepository", ""),
        image_tag=data.get("imageTag", ""),
    )


def _addon_spec_to_dict(spec: AddonSpec) -> Dict[str, Any]:
    result = {}
    if spec.image_repository:
        result["imageRepository"] = spec.image_repository
    if spec.image_tag:
        result["imageTag"] = spec.image_tag
    return result


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class TenantControlPlane:
    """A managed control-plane instance: desired spec and observed status."""

    name: str
    namespace: str = "default"
    spec: TenantControlPlaneSpec = field(default_factory=TenantControlPlaneSpec)
    status: TenantControlPlaneStatus = field(default_factory=TenantControlPlaneStatus)

    @classmethod
    def from_dict(cls, manifest: Dict[str, Any]) -> "TenantControlPlane":
        """
        Build a tenant from a manifest dict.

        Args:
            manifest: Parsed TenantControlPlane manifest.

        Returns:
            A new TenantControlPlane.

        Raises:
            ValueError: If the manifest does not match the schema.
        """
        is_valid, error = validate_manifest(manifest, TENANT_CONTROL_PLANE_SCHEMA)
        if not is_valid:
            raise ValueError(f"Invalid TenantControlPlane manifest: {error}")

        metadata = manifest["metadata"]
        spec = manifest.get("spec") or {}
        status = manifest.get("status") or {}

        network = spec.get("networkProfile") or {}
        addons = spec.get("addons") or {}
        defaults = NetworkProfile()
        tenant_spec = TenantControlPlaneSpec(
            data_store=spec.get("dataStore", ""),
            kubernetes_version=(spec.get("kubernetes") or {}).get(
                "version", TenantControlPlaneSpec.kubernetes_version
            ),
            network_profile=NetworkProfile(
                address=network.get("address", defaults.address),
                port=network.get("port", defaults.port),
                service_cidr=network.get("serviceCidr", defaults.service_cidr),
                pod_cidr=network.get("podCidr", defaults.pod_cidr),
                dns_service_ips=network.get("dnsServiceIPs", defaults.dns_service_ips),
            ),
            addons=AddonsSpec(
                coredns=_addon_spec(addons.get("coreDNS")),
                kube_proxy=_addon_spec(addons.get("kubeProxy")),
            ),
        )

        storage = status.get("storage") or {}
        storage_config = storage.get("config") or {}
        setup = storage.get("setup") or {}
        addons_status = status.get("addons") or {}
        tenant_status = TenantControlPlaneStatus(
            storage=StorageStatus(
                driver=storage.get("driver", ""),
                data_store_name=storage.get("dataStoreName", ""),
                config=StorageConfigStatus(
                    secret_name=storage_config.get("secretName", ""),
                    checksum=storage_config.get("checksum", ""),
                ),
                setup=StorageSetupStatus(
                    schema=setup.get("schema", ""),
                    user=setup.get("user", ""),
                    last_update=_parse_timestamp(setup.get("lastUpdate")),
                    checksum=setup.get("checksum", ""),
                ),
            ),
            addons=AddonsStatus(
                coredns=AddonStatus(
                    checksum=(addons_status.get("coreDNS") or {}).get("checksum", "")
                ),
                kube_proxy=AddonStatus(
                    checksum=(addons_status.get("kubeProxy") or {}).get("checksum", "")
                ),
            ),
        )

        return cls(
            name=metadata["name"],
            namespace=metadata.get("namespace", "default"),
            spec=tenant_spec,
            status=tenant_status,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Render the tenant back to manifest form."""
        network = self.spec.network_profile
        addons: Dict[str, Any] = {}
        if self.spec.addons.coredns is not None:
            addons["coreDNS"] = _addon_spec_to_dict(self.spec.addons.coredns)
        if self.spec.addons.kube_proxy is not None:
            addons["kubeProxy"] = _addon_spec_to_dict(self.spec.addons.kube_proxy)

        storage = self.status.storage
        last_update = storage.setup.last_update
        return {
            "kind": "TenantControlPlane",
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": {
                "dataStore": self.spec.data_store,
                "kubernetes": {"version": self.spec.kubernetes_version},
                "networkProfile": {
                    "address": network.address,
                    "port": network.port,
                    "serviceCidr": network.service_cidr,
                    "podCidr": network.pod_cidr,
                    "dnsServiceIPs": list(network.dns_service_ips),
                },
                "addons": addons,
            },
            "status": {
                "storage": {
                    "driver": storage.driver,
                    "dataStoreName": storage.data_store_name,
                    "config": {
                        "secretName": storage.config.secret_name,
                        "checksum": storage.config.checksum,
                    },
                    "setup": {
                        "schema": storage.setup.schema,
                        "user": storage.setup.user,
                        "lastUpdate": (
                            last_update.isoformat() if last_update else None
                        ),
                        "checksum": storage.setup.checksum,
                    },
                },
                "addons": {
                    "coreDNS": {"checksum": self.status.addons.coredns.checksum},
                    "kubeProxy": {"checksum": self.status.addons.kube_proxy.checksum},
                },
            },
        }


class DataStoreDriver(Enum):
    """Datastore backends a tenant can be provisioned on."""

    POSTGRESQL = "PostgreSQL"


@dataclass
class DataStore:
    """Backend driver and admin connection parameters shared by tenants."""

    name: str
    driver: DataStoreDriver = DataStoreDriver.POSTGRESQL
    endpoints: List[str] = field(default_factory=list)
    username: str = ""
    password: str = field(default="", repr=False)  # Never log password

    @classmethod
    def from_dict(cls, manifest: Dict[str, Any]) -> "DataStore":
        """
        Build a DataStore from a manifest dict.

        Raises:
            ValueError: If the manifest does not match the schema.
        """
        is_valid, error = validate_manifest(manifest, DATASTORE_SCHEMA)
        if not is_valid:
            raise ValueError(f"Invalid DataStore manifest: {error}")

        spec = manifest["spec"]
        basic_auth = spec.get("basicAuth") or {}
        return cls(
            name=manifest["metadata"]["name"],
            driver=DataStoreDriver(spec["driver"]),
            endpoints=list(spec["endpoints"]),
            username=basic_auth.get("username", ""),
            password=basic_auth.get("password", ""),
        )

    def primary_endpoint(self) -> Tuple[str, Optional[int]]:
        """Return (host, port) of the first endpoint."""
        host, _, port = self.endpoints[0].rpartition(":")
        if not host:
            return port, None
        return host, int(port)
