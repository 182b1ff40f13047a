"""
Configuration module for the tenant control-plane reconciler.

Loads configuration from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class DatastoreConfig:
    """Connection pool settings used for every datastore admin connection."""

    min_pool_size: int = 1
    max_pool_size: int = 5
    command_timeout: int = 30  # seconds
    admin_database: str = "postgres"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            min_pool_size=int(os.getenv("DATASTORE_MIN_POOL_SIZE", "1")),
            max_pool_size=int(os.getenv("DATASTORE_MAX_POOL_SIZE", "5")),
            command_timeout=int(os.getenv("DATASTORE_COMMAND_TIMEOUT", "30")),
            admin_database=os.getenv("DATASTORE_ADMIN_DATABASE", "postgres"),
        )


@dataclass
class KubernetesConfig:
    """Management cluster access and tenant kubeconfig lookup."""

    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    in_cluster: bool = False
    admin_kubeconfig_suffix: str = "-admin-kubeconfig"
    admin_kubeconfig_key: str = "admin.conf"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            kubeconfig=os.getenv("KUBECONFIG") or None,
            context=os.getenv("KUBE_CONTEXT") or None,
            in_cluster=os.getenv("KUBE_IN_CLUSTER", "false").lower() == "true",
            admin_kubeconfig_suffix=os.getenv(
                "ADMIN_KUBECONFIG_SUFFIX", "-admin-kubeconfig"
            ),
            admin_kubeconfig_key=os.getenv("ADMIN_KUBECONFIG_KEY", "admin.conf"),
        )


@dataclass
class AddonConfig:
    """Defaults used when a tenant does not override add-on images."""

    image_repository: str = "registry.k8s.io"
    coredns_image_tag: str = "v1.11.1"
    cluster_domain: str = "cluster.local"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            image_repository=os.getenv("ADDON_IMAGE_REPOSITORY", "registry.k8s.io"),
            coredns_image_tag=os.getenv("COREDNS_IMAGE_TAG", "v1.11.1"),
            cluster_domain=os.getenv("CLUSTER_DOMAIN", "cluster.local"),
        )


@dataclass
class LogConfig:
    log_level: str = "INFO"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(log_level=os.getenv("LOG_LEVEL", "INFO"))


@dataclass
class Config:
    """Main configuration object."""

    datastore: DatastoreConfig
    kubernetes: KubernetesConfig
    addons: AddonConfig
    logging: LogConfig

    @classmethod
    def from_env(cls):
        """Load all configuration from environment variables."""
        return cls(
            datastore=DatastoreConfig.from_env(),
            kubernetes=KubernetesConfig.from_env(),
            addons=AddonConfig.from_env(),
            logging=LogConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            datastore=DatastoreConfig(),
            kubernetes=KubernetesConfig(),
            addons=AddonConfig(),
            logging=LogConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config() -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env()
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
