"""Unit tests for tenant.py and validation.py - manifests and objects."""

from datetime import datetime, timezone

import pytest

from tenant import DataStore, DataStoreDriver, TenantControlPlane
from validation import (
    DATASTORE_SCHEMA,
    TENANT_CONTROL_PLANE_SCHEMA,
    validate_manifest,
)


class TestValidateManifest:
    """Tests for validate_manifest()."""

    def test_valid_tenant(self, sample_tenant_manifest):
        is_valid, error = validate_manifest(
            sample_tenant_manifest, TENANT_CONTROL_PLANE_SCHEMA
        )
        assert is_valid is True
        assert error is None

    def test_missing_name(self):
        is_valid, error = validate_manifest(
            {"metadata": {}}, TENANT_CONTROL_PLANE_SCHEMA
        )
        assert is_valid is False
        assert "name" in error

    def test_error_path_reported(self, sample_tenant_manifest):
        sample_tenant_manifest["spec"]["networkProfile"]["port"] = 70000

        is_valid, error = validate_manifest(
            sample_tenant_manifest, TENANT_CONTROL_PLANE_SCHEMA
        )
        assert is_valid is False
        assert "spec.networkProfile.port" in error

    def test_unknown_driver(self, sample_datastore_manifest):
        sample_datastore_manifest["spec"]["driver"] = "etcd"

        is_valid, error = validate_manifest(sample_datastore_manifest, DATASTORE_SCHEMA)
        assert is_valid is False
        assert "spec.driver" in error


class TestTenantControlPlane:
    """Tests for TenantControlPlane manifest conversion."""

    def test_from_dict(self, sample_tenant_manifest):
        tenant = TenantControlPlane.from_dict(sample_tenant_manifest)

        assert tenant.name == "tenant-a"
        assert tenant.namespace == "tenants"
        assert tenant.spec.data_store == "default"
        assert tenant.spec.kubernetes_version == "v1.29.4"
        assert tenant.spec.network_profile.address == "10.0.0.10"
        assert tenant.spec.addons.coredns.image_tag == "v1.11.3"
        assert tenant.spec.addons.kube_proxy.image_tag == ""
        assert tenant.status.storage.config.secret_name == "tenant-a-datastore-config"
        assert tenant.status.storage.setup.last_update == datetime(
            2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc
        )
        assert tenant.status.addons.coredns.checksum == "abc"

    def test_minimal_manifest_uses_defaults(self):
        tenant = TenantControlPlane.from_dict({"metadata": {"name": "t"}})

        assert tenant.namespace == "default"
        assert tenant.spec.network_profile.port == 6443
        assert tenant.spec.addons.coredns is None
        assert tenant.spec.addons.kube_proxy is None
        assert tenant.status.storage.setup.last_update is None

    def test_null_addon_is_disabled(self, sample_tenant_manifest):
        sample_tenant_manifest["spec"]["addons"]["kubeProxy"] = None

        tenant = TenantControlPlane.from_dict(sample_tenant_manifest)

        assert tenant.spec.addons.kube_proxy is None

    def test_invalid_raises(self):
        with pytest.raises(ValueError) as exc_info:
            TenantControlPlane.from_dict({"kind": "TenantControlPlane"})
        assert "Invalid TenantControlPlane manifest" in str(exc_info.value)

    def test_to_dict_round_trip(self, sample_tenant_manifest):
        tenant = TenantControlPlane.from_dict(sample_tenant_manifest)

        rendered = tenant.to_dict()

        assert rendered["spec"]["addons"] == {
            "coreDNS": {"imageTag": "v1.11.3"},
            "kubeProxy": {},
        }
        assert rendered["status"]["storage"]["setup"]["lastUpdate"] == (
            "2026-01-02T03:04:05+00:00"
        )
        assert TenantControlPlane.from_dict(rendered) == tenant

    def test_to_dict_omits_disabled_addons(self):
        rendered = TenantControlPlane(name="t").to_dict()
        assert rendered["spec"]["addons"] == {}
        assert rendered["status"]["storage"]["setup"]["lastUpdate"] is None


class TestDataStore:
    """Tests for DataStore."""

    def test_from_dict(self, sample_datastore_manifest):
        datastore = DataStore.from_dict(sample_datastore_manifest)

        assert datastore.name == "default"
        assert datastore.driver == DataStoreDriver.POSTGRESQL
        assert datastore.username == "admin"
        assert datastore.password == "adminpass"

    def test_password_not_in_repr(self, datastore):
        assert "adminpass" not in repr(datastore)

    def test_invalid_raises(self):
        with pytest.raises(ValueError):
            DataStore.from_dict({"metadata": {"name": "x"}, "spec": {"endpoints": []}})

    @pytest.mark.parametrize(
        "endpoint,expected",
        [
            ("db.local:5433", ("db.local", 5433)),
            ("db.local", ("db.local", None)),
        ],
    )
    def test_primary_endpoint(self, endpoint, expected):
        datastore = DataStore(name="x", endpoints=[endpoint, "other:1"])
        assert datastore.primary_endpoint() == expected
