"""Unit tests for main.py - the reconcile command."""

import json

import pytest
import yaml
from click.testing import CliRunner
from unittest.mock import AsyncMock, MagicMock, patch

from errors import DatastoreOperationFailed, DependencyUnavailable
from events import EventType, ReconcileEvent
from main import cli, run_once
from resources import HandleResult, OperationResult


@pytest.fixture
def manifests(tmp_path, sample_tenant_manifest, sample_datastore_manifest):
    tenant_path = tmp_path / "tenant.yaml"
    tenant_path.write_text(yaml.safe_dump(sample_tenant_manifest))
    datastore_path = tmp_path / "datastore.yaml"
    datastore_path.write_text(yaml.safe_dump(sample_datastore_manifest))
    return str(tenant_path), str(datastore_path)


class TestReconcileCommand:
    """Tests for the `reconcile` command."""

    def test_prints_tenant_json(self, manifests):
        results = [HandleResult("coredns", operation=OperationResult.UPDATED)]
        with patch("main.run_once", new=AsyncMock(return_value=results)) as run_once:
            result = CliRunner().invoke(cli, ["reconcile", *manifests, "-o", "json"])

        assert result.exit_code == 0
        tenant, datastore = run_once.await_args.args
        assert tenant.name == "tenant-a"
        assert datastore.name == "default"
        assert "coredns: updated" in result.output
        payload = result.output[result.output.index("{"):]
        assert json.loads(payload)["metadata"]["name"] == "tenant-a"

    def test_invalid_manifest(self, tmp_path, manifests):
        bad = tmp_path / "bad.yaml"
        bad.write_text(yaml.safe_dump({"kind": "TenantControlPlane"}))

        with patch("main.run_once", new=AsyncMock()) as run_once:
            result = CliRunner().invoke(cli, ["reconcile", str(bad), manifests[1]])

        assert result.exit_code == 2
        assert "Invalid TenantControlPlane manifest" in result.output
        run_once.assert_not_awaited()

    def test_reconcile_error(self, manifests):
        error = DependencyUnavailable("secret tenants/x not found")
        with patch("main.run_once", new=AsyncMock(side_effect=error)):
            result = CliRunner().invoke(cli, ["reconcile", *manifests])

        assert result.exit_code == 1
        assert "secret tenants/x not found" in result.output

    def test_unreachable_datastore(self, manifests):
        error = DatastoreOperationFailed(
            "connect to", "datastore default", ConnectionRefusedError("refused")
        )
        with patch("main.run_once", new=AsyncMock(side_effect=error)):
            result = CliRunner().invoke(cli, ["reconcile", *manifests])

        assert result.exit_code == 1
        assert "Error: unable to connect to datastore default: refused" in result.output

    def test_events_flag(self, manifests):
        with patch("main.run_once", new=AsyncMock(return_value=[])) as run_once:
            result = CliRunner().invoke(cli, ["reconcile", *manifests, "--events"])

        assert result.exit_code == 0
        assert run_once.await_args.kwargs["show_events"] is True


def fake_controller(fail=None):
    """Controller stand-in that publishes one event on the bus it was given."""

    def build(**kwargs):
        controller = MagicMock()
        controller.close = AsyncMock()

        async def reconcile(tenant, datastore):
            if kwargs["event_bus"] is not None:
                kwargs["event_bus"].publish(
                    ReconcileEvent(
                        event_type=EventType.FAILED if fail else EventType.RECONCILED,
                        tenant=f"{tenant.namespace}/{tenant.name}",
                        resource_name="datastore-setup",
                    )
                )
            if fail:
                raise fail
            return []

        controller.reconcile = reconcile
        return controller

    return build


@pytest.mark.asyncio
class TestRunOnce:
    """Tests for run_once() event output."""

    @pytest.fixture(autouse=True)
    def cluster(self):
        with patch("main.KubernetesObjectStore"), patch("main.TenantClientFactory"):
            yield

    async def test_events_written_to_stderr(self, tenant, datastore, capsys):
        with patch("main.TenantControlPlaneController", side_effect=fake_controller()):
            await run_once(tenant, datastore, show_events=True)

        event = json.loads(capsys.readouterr().err.strip())
        assert event["event_type"] == "RECONCILED"
        assert event["tenant"] == "tenants/tenant-a"

    async def test_failure_event_written_before_raising(
        self, tenant, datastore, capsys
    ):
        error = DependencyUnavailable("secret missing")
        with patch(
            "main.TenantControlPlaneController", side_effect=fake_controller(error)
        ):
            with pytest.raises(DependencyUnavailable):
                await run_once(tenant, datastore, show_events=True)

        assert '"event_type": "FAILED"' in capsys.readouterr().err

    async def test_no_bus_without_flag(self, tenant, datastore, capsys):
        with patch(
            "main.TenantControlPlaneController", side_effect=fake_controller()
        ) as controller_class:
            await run_once(tenant, datastore)

        assert controller_class.call_args.kwargs["event_bus"] is None
        assert capsys.readouterr().err == ""
