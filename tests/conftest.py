"""Pytest configuration and fixtures."""

from typing import Dict, List, Set, Tuple

import pytest
from unittest.mock import AsyncMock, MagicMock

from cluster import ObjectStore
from datastore import DatastoreConnection
from errors import NotFoundError
from tenant import (
    AddonSpec,
    DataStore,
    DataStoreDriver,
    TenantControlPlane,
)


class FakeConnection(DatastoreConnection):
    """In-memory datastore that records every mutating call."""

    def __init__(self):
        self.schemas: Set[str] = set()
        self.users: Dict[str, str] = {}
        self.grants: Set[Tuple[str, str]] = set()
        self.calls: List[Tuple[str, ...]] = []
        self.fail_on: Dict[str, Exception] = {}
        self.closed = False

    @property
    def driver(self) -> str:
        return "PostgreSQL"

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise self.fail_on[operation]

    async def schema_exists(self, schema):
        self._maybe_fail("schema_exists")
        return schema in self.schemas

    async def create_schema(self, schema):
        self._maybe_fail("create_schema")
        self.calls.append(("create_schema", schema))
        self.schemas.add(schema)

    async def delete_schema(self, schema):
        self._maybe_fail("delete_schema")
        self.calls.append(("delete_schema", schema))
        self.schemas.discard(schema)

    async def user_exists(self, user):
        self._maybe_fail("user_exists")
        return user in self.users

    async def create_user(self, user, password):
        self._maybe_fail("create_user")
        self.calls.append(("create_user", user))
        self.users[user] = password

    async def delete_user(self, user):
        self._maybe_fail("delete_user")
        self.calls.append(("delete_user", user))
        self.users.pop(user, None)

    async def grant_privileges_exists(self, user, schema):
        self._maybe_fail("grant_privileges_exists")
        return (user, schema) in self.grants

    async def grant_privileges(self, user, schema):
        self._maybe_fail("grant_privileges")
        self.calls.append(("grant_privileges", user, schema))
        self.grants.add((user, schema))

    async def revoke_privileges(self, user, schema):
        self._maybe_fail("revoke_privileges")
        self.calls.append(("revoke_privileges", user, schema))
        self.grants.discard((user, schema))

    async def close(self):
        self.closed = True


class FakeObjectStore(ObjectStore):
    """Secrets keyed by (namespace, name)."""

    def __init__(self, secrets=None):
        self.secrets: Dict[Tuple[str, str], Dict[str, bytes]] = secrets or {}

    async def get_secret(self, namespace, name):
        try:
            return self.secrets[(namespace, name)]
        except KeyError:
            raise NotFoundError(f"secret {namespace}/{name} not found")


def credentials(schema="tenanta", user="u1", password="secret"):
    return {
        "DB_SCHEMA": schema.encode(),
        "DB_USER": user.encode(),
        "DB_PASSWORD": password.encode(),
    }


@pytest.fixture
def fake_connection():
    return FakeConnection()


@pytest.fixture
def object_store():
    return FakeObjectStore(
        {("tenants", "tenant-a-datastore-config"): credentials()}
    )


@pytest.fixture
def datastore():
    return DataStore(
        name="default",
        driver=DataStoreDriver.POSTGRESQL,
        endpoints=["postgres.example.com:5432"],
        username="admin",
        password="adminpass",
    )


@pytest.fixture
def tenant():
    """Tenant with both add-ons enabled and a storage secret configured."""
    t = TenantControlPlane(name="tenant-a", namespace="tenants")
    t.spec.data_store = "default"
    t.spec.network_profile.address = "10.0.0.10"
    t.spec.addons.coredns = AddonSpec()
    t.spec.addons.kube_proxy = AddonSpec()
    t.status.storage.config.secret_name = "tenant-a-datastore-config"
    t.status.storage.config.checksum = "cfgHash1"
    return t


@pytest.fixture
def tenant_clients():
    """TenantClientFactory stand-in returning a dummy ApiClient."""
    factory = MagicMock()
    factory.for_tenant = AsyncMock(return_value=MagicMock(name="api_client"))
    return factory


@pytest.fixture
def sample_tenant_manifest():
    return {
        "kind": "TenantControlPlane",
        "metadata": {"name": "tenant-a", "namespace": "tenants"},
        "spec": {
            "dataStore": "default",
            "kubernetes": {"version": "v1.29.4"},
            "networkProfile": {
                "address": "10.0.0.10",
                "port": 6443,
                "serviceCidr": "10.96.0.0/16",
                "podCidr": "10.244.0.0/16",
                "dnsServiceIPs": ["10.96.0.10"],
            },
            "addons": {
                "coreDNS": {"imageTag": "v1.11.3"},
                "kubeProxy": {},
            },
        },
        "status": {
            "storage": {
                "driver": "PostgreSQL",
                "dataStoreName": "default",
                "config": {
                    "secretName": "tenant-a-datastore-config",
                    "checksum": "cfgHash1",
                },
                "setup": {
                    "schema": "tenanta",
                    "user": "u1",
                    "lastUpdate": "2026-01-02T03:04:05Z",
                    "checksum": "cfgHash1",
                },
            },
            "addons": {
                "coreDNS": {"checksum": "abc"},
                "kubeProxy": {"checksum": ""},
            },
        },
    }


@pytest.fixture
def sample_datastore_manifest():
    return {
        "kind": "DataStore",
        "metadata": {"name": "default"},
        "spec": {
            "driver": "PostgreSQL",
            "endpoints": ["postgres.example.com:5432"],
            "basicAuth": {"username": "admin", "password": "adminpass"},
        },
    }
