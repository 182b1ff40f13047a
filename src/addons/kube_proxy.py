"""kube-proxy add-on: per-node service proxy running as a DaemonSet."""

import logging

import yaml
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

NAME = "kube-proxy"
CLUSTER_ROLE_BINDING = "kubeadm:node-proxier"
LABELS = {"k8s-app": NAME}
CONFIG_DIR = "/var/lib/kube-proxy"


def _metadata(name: str) -> client.V1ObjectMeta:
    return client.V1ObjectMeta(name=name, namespace=NAMESPACE, labels=LABELS)


def _config_map(configuration: AddonConfiguration) -> client.V1ConfigMap:
    proxy_config = {
        "apiVersion": "kubeproxy.config.k8s.io/v1alpha1",
        "kind": "KubeProxyConfiguration",
        "bindAddress": "0.0.0.0",
        "clusterCIDR": configuration.pod_cidr,
        "mode": "iptables",
        "clientConnection": {"kubeconfig": f"{CONFIG_DIR}/kubeconfig.conf"},
    }
    kubeconfig = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": "default",
                "cluster": {
                    "server": configuration.control_plane_endpoint,
                    "certificate-authority": (
                        "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
                    ),
                },
            }
        ],
        "contexts": [
            {
                "name": "default",
                "context": {
                    "cluster": "default",
                    "namespace": "default",
                    "user": "default",
                },
            }
        ],
        "current-context": "default",
        "users": [
            {
                "name": "default",
                "user": {
                    "tokenFile": "/var/run/secrets/kubernetes.io/serviceaccount/token"
                },
            }
        ],
    }
    return client.V1ConfigMap(
        metadata=_metadata(NAME),
        data={
            "config.conf": yaml.safe_dump(proxy_config, sort_keys=False),
            "kubeconfig.conf": yaml.safe_dump(kubeconfig, sort_keys=False),
        },
    )


def _daemon_set(configuration: AddonConfiguration) -> client.V1DaemonSet:
    container = client.V1Container(
        name=NAME,
        image=configuration.kube_proxy_image,
        command=[
            "/usr/local/bin/kube-proxy",
            f"--config={CONFIG_DIR}/config.conf",
            "--hostname-override=$(NODE_NAME)",
        ],
        env=[
            client.V1EnvVar(
                name="NODE_NAME",
                value_from=client.V1EnvVarSource(
                    field_ref=client.V1ObjectFieldSelector(field_path="spec.nodeName")
                ),
            )
        ],
        security_context=client.V1SecurityContext(privileged=True),
        volume_mounts=[
            client.V1VolumeMount(name=NAME, mount_path=CONFIG_DIR),
            client.V1VolumeMount(name="xtables-lock", mount_path="/run/xtables.lock"),
            client.V1VolumeMount(
                name="lib-modules", mount_path="/lib/modules", read_only=True
            ),
        ],
    )
    return client.V1DaemonSet(
        metadata=_metadata(NAME),
        spec=client.V1DaemonSetSpec(
            selector=client.V1LabelSelector(match_labels=LABELS),
            template=client.V1PodTemplateSpec(
                metadata=client.V1ObjectMeta(labels=LABELS),
                spec=client.V1PodSpec(
                    service_account_name=NAME,
                    priority_class_name="system-node-critical",
                    host_network=True,
                    containers=[container],
                    tolerations=[client.V1Toleration(operator="Exists")],
                    volumes=[
                        client.V1Volume(
                            name=NAME,
                            config_map=client.V1ConfigMapVolumeSource(name=NAME),
                        ),
                        client.V1Volume(
                            name="xtables-lock",
                            host_path=client.V1HostPathVolumeSource(
                                path="/run/xtables.lock", type="FileOrCreate"
                            ),
                        ),
                        client.V1Volume(
                            name="lib-modules",
                            host_path=client.V1HostPathVolumeSource(path="/lib/modules"),
                        ),
                    ],
                ),
            ),
        ),
    )


async def install(api_client: ApiClient, configuration: AddonConfiguration) -> None:
    """Create or replace every kube-proxy object in the tenant cluster."""
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
        rbac.create_cluster_role_binding,
        rbac.replace_cluster_role_binding,
        CLUSTER_ROLE_BINDING,
        client.V1ClusterRoleBinding(
            metadata=client.V1ObjectMeta(name=CLUSTER_ROLE_BINDING),
            role_ref=client.V1RoleRef(
                api_group="rbac.authorization.k8s.io",
                kind="ClusterRole",
                name="system:node-proxier",
            ),
            subjects=[
                client.RbacV1Subject(
                    kind="ServiceAccount", name=NAME, namespace=NAMESPACE
                )
            ],
        ),
    )
    await create_or_replace(
        core.create_namespaced_config_map,
        core.replace_namespaced_config_map,
        NAME,
        _config_map(configuration),
        namespace=NAMESPACE,
    )
    await create_or_replace(
        apps.create_namespaced_daemon_set,
        apps.replace_namespaced_daemon_set,
        NAME,
        _daemon_set(configuration),
        namespace=NAMESPACE,
    )
    logger.info(f"Installed kube-proxy ({configuration.kube_proxy_image})")


async def remove(api_client: ApiClient) -> None:
    """
    Delete every kube-proxy object from the tenant cluster.

    Raises:
        NotFoundError: If none of the objects existed.
    """
    core = client.CoreV1Api(api_client)
    rbac = client.RbacAuthorizationV1Api(api_client)
    apps = client.AppsV1Api(api_client)

    deleted = [
        await delete_if_exists(
            apps.delete_namespaced_daemon_set, NAME, namespace=NAMESPACE
        ),
        await delete_if_exists(
            core.delete_namespaced_config_map, NAME, namespace=NAMESPACE
        ),
        await delete_if_exists(
            rbac.delete_cluster_role_binding, CLUSTER_ROLE_BINDING
        ),
        await delete_if_exists(
            core.delete_namespaced_service_account, NAME, namespace=NAMESPACE
        ),
    ]

    if not any(deleted):
        raise NotFoundError("kube-proxy add-on not found")
    logger.info("Removed kube-proxy")
