"""
Datastore Setup - tenancy artifacts inside the tenant's datastore.

Provisions a schema, a user and the privilege grant linking them. Every
step checks existence before acting, so a pass interrupted half-way is
resumed safely by the next one. When the storage configuration fingerprint
recorded at the last provisioning differs from the desired one, the
previously provisioned artifacts are torn down and recreated.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from cluster import ObjectStore
from datastore import DatastoreConnection
from errors import DatastoreOperationFailed, DependencyUnavailable, NotFoundError
from resources.base import OperationResult, Resource, update_operation_result
from tenant import DataStore, TenantControlPlane

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_KEY = "DB_SCHEMA"
USER_KEY = "DB_USER"
PASSWORD_KEY = "DB_PASSWORD"

RESOURCE_NAME = "datastore-setup"


@dataclass
class SetupResource:
    """Credentials for the current pass, decoded from the storage secret."""

    schema: str
    user: str
    password: str = field(repr=False)


async def _call(operation: str, artifact: str, fn: Callable[[], Awaitable[T]]) -> T:
    try:
        return await fn()
    except Exception as e:
        raise DatastoreOperationFailed(operation, artifact, e) from e


class DatastoreSetup(Resource):
    """Provisions schema, user and privileges for one tenant."""

    def __init__(
        self,
        object_store: ObjectStore,
        connection: DatastoreConnection,
        datastore: DataStore,
    ):
        self.object_store = object_store
        self.connection = connection
        self.datastore = datastore
        self.resource: Optional[SetupResource] = None

    def get_name(self) -> str:
        return RESOURCE_NAME

    def _require_resource(self) -> SetupResource:
        if self.resource is None:
            raise RuntimeError("define() must be called before applying datastore setup")
        return self.resource

    async def define(self, tenant: TenantControlPlane) -> None:
        secret_name = tenant.status.storage.config.secret_name
        if not secret_name:
            raise DependencyUnavailable(
                f"tenant {tenant.namespace}/{tenant.name} has no storage config secret"
            )

        try:
            data = await self.object_store.get_secret(tenant.namespace, secret_name)
        except NotFoundError as e:
            logger.error(f"cannot retrieve the DataStore configuration secret: {e}")
            raise DependencyUnavailable(
                f"DataStore configuration secret {tenant.namespace}/{secret_name} "
                "not found"
            ) from e
        except Exception as e:
            logger.error(f"cannot retrieve the DataStore configuration secret: {e}")
            raise DependencyUnavailable(
                f"cannot read DataStore configuration secret "
                f"{tenant.namespace}/{secret_name}: {e}"
            ) from e

        missing = [k for k in (SCHEMA_KEY, USER_KEY, PASSWORD_KEY) if k not in data]
        if missing:
            raise DependencyUnavailable(
                f"DataStore configuration secret {tenant.namespace}/{secret_name} "
                f"is missing {', '.join(missing)}"
            )

        self.resource = SetupResource(
            schema=data[SCHEMA_KEY].decode(),
            user=data[USER_KEY].decode(),
            password=data[PASSWORD_KEY].decode(),
        )

    def should_status_be_updated(self, tenant: TenantControlPlane) -> bool:
        storage = tenant.status.storage
        return (
            storage.driver != self.datastore.driver.value
            and storage.setup.checksum != storage.config.checksum
        )

    def should_cleanup(self, tenant: TenantControlPlane) -> bool:
        return False

    async def clean_up(self, tenant: TenantControlPlane) -> bool:
        return False

    def _has_drifted(self, tenant: TenantControlPlane) -> bool:
        setup_checksum = tenant.status.storage.setup.checksum
        return (
            setup_checksum != "" and setup_checksum != tenant.status.storage.config.checksum
        )

    async def create_or_update(self, tenant: TenantControlPlane) -> OperationResult:
        resource = self._require_resource()

        drifted = self._has_drifted(tenant)
        if drifted:
            logger.info(
                f"storage configuration of {tenant.namespace}/{tenant.name} changed, "
                "tearing down the provisioned datastore artifacts"
            )
            await self.delete(tenant)

        result = OperationResult.NONE
        steps = [
            ("DataStore data", self._create_schema),
            ("DataStore user", self._create_user),
            ("DataStore user privileges", self._create_grant_privileges),
        ]
        for description, step in steps:
            try:
                operation = await step(resource)
            except DatastoreOperationFailed as e:
                logger.error(f"unable to create the {description}: {e}")
                raise
            result = update_operation_result(result, operation)

        if drifted:
            return OperationResult.UPDATED
        return result

    async def delete(self, tenant: TenantControlPlane) -> None:
        """
        Tear down the artifacts provisioned for the tenant.

        Targets the schema and user recorded at the last provisioning,
        falling back to the ones defined for this pass.
        """
        resource = self._require_resource()
        setup = tenant.status.storage.setup
        schema = setup.schema or resource.schema
        user = setup.user or resource.user

        for description, step in (
            ("revoke privileges", self._revoke_grant_privileges),
            ("delete datastore data", self._delete_schema),
            ("delete user", self._delete_user),
        ):
            try:
                await step(schema, user)
            except DatastoreOperationFailed as e:
                logger.error(f"unable to {description}: {e}")
                raise

    async def update_tenant_control_plane_status(
        self, tenant: TenantControlPlane
    ) -> None:
        resource = self._require_resource()
        setup = tenant.status.storage.setup
        setup.schema = resource.schema
        setup.user = resource.user
        setup.last_update = datetime.now(timezone.utc)
        setup.checksum = tenant.status.storage.config.checksum

    # ==================== Provisioning steps ====================

    async def _create_schema(self, resource: SetupResource) -> OperationResult:
        artifact = f"schema {resource.schema}"
        exists = await _call(
            "check", artifact, lambda: self.connection.schema_exists(resource.schema)
        )
        if exists:
            return OperationResult.NONE

        await _call(
            "create", artifact, lambda: self.connection.create_schema(resource.schema)
        )
        return OperationResult.CREATED

    async def _create_user(self, resource: SetupResource) -> OperationResult:
        artifact = f"user {resource.user}"
        exists = await _call(
            "check", artifact, lambda: self.connection.user_exists(resource.user)
        )
        if exists:
            return OperationResult.NONE

        await _call(
            "create",
            artifact,
            lambda: self.connection.create_user(resource.user, resource.password),
        )
        return OperationResult.CREATED

    async def _create_grant_privileges(self, resource: SetupResource) -> OperationResult:
        artifact = f"privileges of {resource.user} on {resource.schema}"
        exists = await _call(
            "check",
            artifact,
            lambda: self.connection.grant_privileges_exists(
                resource.user, resource.schema
            ),
        )
        if exists:
            return OperationResult.NONE

        await _call(
            "grant",
            artifact,
            lambda: self.connection.grant_privileges(resource.user, resource.schema),
        )
        return OperationResult.CREATED

    # ==================== Teardown steps ====================

    async def _revoke_grant_privileges(self, schema: str, user: str) -> None:
        artifact = f"privileges of {user} on {schema}"
        exists = await _call(
            "check",
            artifact,
            lambda: self.connection.grant_privileges_exists(user, schema),
        )
        if not exists:
            return

        await _call(
            "revoke", artifact, lambda: self.connection.revoke_privileges(user, schema)
        )

    async def _delete_schema(self, schema: str, user: str) -> None:
        artifact = f"schema {schema}"
        exists = await _call("check", artifact, lambda: self.connection.schema_exists(schema))
        if not exists:
            return

        await _call("delete", artifact, lambda: self.connection.delete_schema(schema))

    async def _delete_user(self, schema: str, user: str) -> None:
        artifact = f"user {user}"
        exists = await _call("check", artifact, lambda: self.connection.user_exists(user))
        if not exists:
            return

        await _call("delete", artifact, lambda: self.connection.delete_user(user))
