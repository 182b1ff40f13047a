"""
Shared add-on configuration and idempotent apply/delete helpers.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable

from kubernetes.client.exceptions import ApiException

from config import AddonConfig
from tenant import TenantControlPlane

logger = logging.getLogger(__name__)

NAMESPACE = "kube-system"


@dataclass(frozen=True)
class AddonConfiguration:
    """Effective add-on configuration derived from a tenant spec."""

    coredns_image: str
    kube_proxy_image: str
    dns_service_ip: str
    cluster_domain: str
    pod_cidr: str
    control_plane_endpoint: str

    @classmethod
    def from_tenant(
        cls, tenant: TenantControlPlane, defaults: AddonConfig
    ) -> "AddonConfiguration":
        spec = tenant.spec
        network = spec.network_profile
        coredns = spec.addons.coredns
        kube_proxy = spec.addons.kube_proxy

        coredns_repository = (
            coredns.image_repository if coredns and coredns.image_repository else ""
        ) or f"{defaults.image_repository}/coredns"
        coredns_tag = (
            coredns.image_tag if coredns and coredns.image_tag else ""
        ) or defaults.coredns_image_tag
        proxy_repository = (
            kube_proxy.image_repository
            if kube_proxy and kube_proxy.image_repository
            else ""
        ) or defaults.image_repository
        proxy_tag = (
            kube_proxy.image_tag if kube_proxy and kube_proxy.image_tag else ""
        ) or spec.kubernetes_version

        # Only CoreDNS needs a service IP
        dns_service_ip = network.dns_service_ips[0] if network.dns_service_ips else ""
        if coredns is not None and not dns_service_ip:
            raise ValueError(
                f"tenant {tenant.namespace}/{tenant.name}: "
                "networkProfile.dnsServiceIPs must not be empty when CoreDNS is enabled"
            )

        return cls(
            coredns_image=f"{coredns_repository}/coredns:{coredns_tag}",
            kube_proxy_image=f"{proxy_repository}/kube-proxy:{proxy_tag}",
            dns_service_ip=dns_service_ip,
            cluster_domain=defaults.cluster_domain,
            pod_cidr=network.pod_cidr,
            control_plane_endpoint=f"https://{network.address}:{network.port}",
        )


async def create_or_replace(
    create: Callable[..., Any], replace: Callable[..., Any], name: str, body: Any, **kwargs
) -> bool:
    """
    Create an object, replacing it when it already exists.

    Returns:
        True if the object was created, False if it was replaced.
    """
    try:
        await asyncio.to_thread(create, body=body, **kwargs)
        return True
    except ApiException as e:
        if e.status != 409:
            raise

    await asyncio.to_thread(replace, name=name, body=body, **kwargs)
    return False


async def delete_if_exists(delete: Callable[..., Any], name: str, **kwargs) -> bool:
    """
    Delete an object.

    Returns:
        True if the object was deleted, False if it did not exist.
    """
    try:
        await asyncio.to_thread(delete, name=name, **kwargs)
        return True
    except ApiException as e:
        if e.status == 404:
            logger.debug(f"{name} already absent")
            return False
        raise
