"""
Command-line entrypoint.

Runs a single reconciliation pass for a tenant described by a manifest and
prints the tenant with its updated status.
"""

import asyncio
import json
import logging
import sys

import click
import yaml

from cluster import KubernetesObjectStore, TenantClientFactory
from config import get_config
from controller import TenantControlPlaneController
from errors import ReconcileError
from events import EventBus
from tenant import DataStore, TenantControlPlane

logger = logging.getLogger(__name__)


def _load_manifest(path: str):
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


async def run_once(
    tenant: TenantControlPlane, datastore: DataStore, show_events: bool = False
):
    """
    Build a controller from the environment and reconcile one tenant.

    With ``show_events`` every reconciliation event, including the failure
    of an aborted pass, is written to stderr as one JSON line.
    """
    cfg = get_config()
    object_store = KubernetesObjectStore.from_config(cfg.kubernetes)
    event_bus = EventBus() if show_events else None
    subscription = event_bus.subscribe() if event_bus is not None else None
    controller = TenantControlPlaneController(
        object_store=object_store,
        tenant_clients=TenantClientFactory(object_store, cfg.kubernetes),
        addon_defaults=cfg.addons,
        datastore_config=cfg.datastore,
        event_bus=event_bus,
    )
    try:
        return await controller.reconcile(tenant, datastore)
    finally:
        await controller.close()
        if subscription is not None:
            event_bus.unsubscribe(subscription.id)
            async for event in subscription:
                click.echo(event.to_json(), err=True)


@click.group()
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL")
def cli(log_level):
    """Tenant control plane reconciler"""
    level = log_level or get_config().logging.log_level
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@cli.command()
@click.argument("tenant_manifest", type=click.Path(exists=True, dir_okay=False))
@click.argument("datastore_manifest", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--output",
    "-o",
    type=click.Choice(["yaml", "json"]),
    default="yaml",
    help="Output format",
)
@click.option(
    "--events", is_flag=True, help="Print reconciliation events to stderr as JSON"
)
def reconcile(tenant_manifest, datastore_manifest, output, events):
    """Reconcile a tenant once and print its updated manifest"""
    try:
        tenant = TenantControlPlane.from_dict(_load_manifest(tenant_manifest))
        datastore = DataStore.from_dict(_load_manifest(datastore_manifest))
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    try:
        results = asyncio.run(run_once(tenant, datastore, show_events=events))
    except ReconcileError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    for result in results:
        click.echo(f"{result.resource}: {result.operation.value}", err=True)

    if output == "json":
        click.echo(json.dumps(tenant.to_dict(), indent=2))
    else:
        click.echo(yaml.safe_dump(tenant.to_dict(), sort_keys=False))


if __name__ == "__main__":
    cli()
