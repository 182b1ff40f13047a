"""CoreDNS add-on: cluster DNS served from the kube-dns Service."""

import logging

from kubernetes import client
from kubernetes.client import ApiClient

from addons.common import (
    NAMESPACE,
    AddonConfiguration,
    create_or_replace,
    delete_if_exists,
)
from errors import NotFoundError

logger = logging.getLogger(__name__)

NAME = "coredns"
SERVICE_NAME = "kube-dns"
CLUSTER_ROLE = "system:coredns"
LABELS = {"k8s-app": SERVICE_NAME}

COREFILE = """.:53 {{
    errors
    health {{
       lameduck 5s
    }}
    ready
    kubernetes {domain} in-addr.arpa ip6.arpa {{
       pods insecure
       fallthrough in-addr.arpa ip6.arpa
       ttl 30
    }}
    prometheus :9153
    forward . /etc/resolv.conf {{
       max_concurrent 1000
    }}
    cache 30
    loop
    reload
    loadbalance
}}
"""


def _metadata(name: str, namespace: str = NAMESPACE) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(name=name, namespace=namespace, labels=LABELS)


def _cluster_role() -> client.V1ClusterRole:
    return client.V1ClusterRole(
        metadata=client.V1ObjectMeta(name=CLUSTER_ROLE),
        rules=[
            client.V1PolicyRule(
                api_groups=[""],
                resources=["endpoints", "services", "pods", "namespaces"],
                verbs=["list", "watch"],
            ),
            client.V1PolicyRule(
                api_groups=["discovery.k8s.io"],
                resources=["endpointslices"],
                verbs=["list", "watch"],
            ),
        ],
    )


def _cluster_role_binding() -> client.V1ClusterRoleBinding:
    return client.V1ClusterRoleBinding(
        metadata=client.V1ObjectMeta(name=CLUSTER_ROLE),
        role_ref=client.V1RoleRef(
            api_group="rbac.authorization.k8s.io", kind="ClusterRole", name=CLUSTER_ROLE
        ),
        subjects=[
            client.RbacV1Subject(kind="ServiceAccount", name=NAME, namespace=NAMESPACE)
        ],
    )


def _deployment(configuration: AddonConfiguration) -> client.V1Deployment:
    container = client.V1Container(
        name=NAME,
        image=configuration.coredns_image,
        args=["-conf", "/etc/coredns/Corefile"],
        ports=[
            client.V1ContainerPort(name="dns", container_port=53, protocol="UDP"),
            client.V1ContainerPort(name="dns-tcp", container_port=53, protocol="TCP"),
            client.V1ContainerPort(name="metrics", container_port=9153, protocol="TCP"),
        ],
        volume_mounts=[
            client.V1VolumeMount(name="config-volume", mount_path="/etc/coredns")
        ],
        readiness_probe=client.V1Probe(
            http_get=client.V1HTTPGetAction(path="/ready", port=8181)
        ),
    )
    return client.V1Deployment(
        metadata=_metadata(NAME),
        spec=client.V1DeploymentSpec(
            replicas=2,
            selector=client.V1LabelSelector(match_labels=LABELS),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=LABELS),
                spec=client.V1PodSpec(
                    service_account_name=NAME,
                    priority_class_name="system-cluster-critical",
                    dns_policy="Default",
                    containers=[container],
                    volumes=[
                        client.V1Volume(
                            name="config-volume",
                            config_map=client.V1ConfigMapVolumeSource(name=NAME),
                        )
                    ],
                ),
            ),
        ),
    )


def _service(configuration: AddonConfiguration) -> client.V1Service:
    return client.V1Service(
        metadata=_metadata(SERVICE_NAME),
        spec=client.V1ServiceSpec(
            cluster_ip=configuration.dns_service_ip,
            selector=LABELS,
            ports=[
                client.V1ServicePort(name="dns", port=53, protocol="UDP"),
                client.V1ServicePort(name="dns-tcp", port=53, protocol="TCP"),
                client.V1ServicePort(name="metrics", port=9153, protocol="TCP"),
            ],
        ),
    )


async def install(api_client: ApiClient, configuration: AddonConfiguration) -> None:
    """Create or replace every CoreDNS object in the tenant cluster."""
    core = client.CoreV1Api(api_client)
    rbac = client.RbacAuthorizationV1Api(api_client)
    apps = client.AppsV1Api(api_client)

    await create_or_replace(
        core.create_namespaced_service_account,
        core.replace_namespaced_service_account,
        NAME,
        client.V1ServiceAccount(metadata=_metadata(NAME)),
        namespace=NAMESPACE,
    )
    await create_or_replace(
        rbac.create_cluster_role, rbac.replace_cluster_role, CLUSTER_ROLE, _cluster_role()
    )
    await create_or_replace(
        rbac.create_cluster_role_binding,
        rbac.replace_cluster_role_binding,
        CLUSTER_ROLE,
        _cluster_role_binding(),
    )
    await create_or_replace(
        core.create_namespaced_config_map,
        core.replace_namespaced_config_map,
        NAME,
        client.V1ConfigMap(
            metadata=_metadata(NAME),
            data={"Corefile": COREFILE.format(domain=configuration.cluster_domain)},
        ),
        namespace=NAMESPACE,
    )
    await create_or_replace(
        apps.create_namespaced_deployment,
        apps.replace_namespaced_deployment,
        NAME,
        _deployment(configuration),
        namespace=NAMESPACE,
    )
    await create_or_replace(
        core.create_namespaced_service,
        core.replace_namespaced_service,
        SERVICE_NAME,
        _service(configuration),
        namespace=NAMESPACE,
    )
    logger.info(f"Installed CoreDNS ({configuration.coredns_image})")


async def remove(api_client: ApiClient) -> None:
    """
    Delete every CoreDNS object from the tenant cluster.

    Raises:
        NotFoundError: If none of the objects existed.
    """
    core = client.CoreV1Api(api_client)
    rbac = client.RbacAuthorizationV1Api(api_client)
    apps = client.AppsV1Api(api_client)

    deleted = [
        await delete_if_exists(
            apps.delete_namespaced_deployment, NAME, namespace=NAMESPACE
        ),
        await delete_if_exists(
            core.delete_namespaced_service, SERVICE_NAME, namespace=NAMESPACE
        ),
        await delete_if_exists(
            core.delete_namespaced_config_map, NAME, namespace=NAMESPACE
        ),
        await delete_if_exists(rbac.delete_cluster_role_binding, CLUSTER_ROLE),
        await delete_if_exists(rbac.delete_cluster_role, CLUSTER_ROLE),
        await delete_if_exists(
            core.delete_namespaced_service_account, NAME, namespace=NAMESPACE
        ),
    ]

    if not any(deleted):
        raise NotFoundError("CoreDNS add-on not found")
    logger.info("Removed CoreDNS")
