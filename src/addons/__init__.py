"""
In-cluster add-ons installed into a tenant's own cluster.

Each add-on module exposes ``install(api_client, configuration)`` and
``remove(api_client)``. Installers are idempotent; removers raise
NotFoundError when there was nothing to remove.
"""

from addons.common import AddonConfiguration

__all__ = ["AddonConfiguration"]
