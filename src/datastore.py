"""
Datastore Connection - tenancy artifacts inside a shared datastore.

A connection exposes existence checks and create/delete operations for the
three artifacts a tenant owns in a datastore: a schema, a user and the
privilege grant linking them. None of the operations is expected to be
atomic "create if absent"; callers check existence first.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import asyncpg

from config import DatastoreConfig
from errors import DatastoreOperationFailed
from tenant import DataStore, DataStoreDriver

logger = logging.getLogger(__name__)


class DatastoreConnection(ABC):
    """Abstract connection to one live datastore backend."""

    @property
    @abstractmethod
    def driver(self) -> str:
        """Name of the backend driver (e.g., 'PostgreSQL')."""
        pass

    @abstractmethod
    async def schema_exists(self, schema: str) -> bool:
        pass

    @abstractmethod
    async def create_schema(self, schema: str) -> None:
        pass

    @abstractmethod
    async def delete_schema(self, schema: str) -> None:
        pass

    @abstractmethod
    async def user_exists(self, user: str) -> bool:
        pass

    @abstractmethod
    async def create_user(self, user: str, password: str) -> None:
        pass

    @abstractmethod
    async def delete_user(self, user: str) -> None:
        pass

    @abstractmethod
    async def grant_privileges_exists(self, user: str, schema: str) -> bool:
        pass

    @abstractmethod
    async def grant_privileges(self, user: str, schema: str) -> None:
        pass

    @abstractmethod
    async def revoke_privileges(self, user: str, schema: str) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release any pooled connections."""
        pass


def quote_identifier(name: str) -> str:
    """Quote a PostgreSQL identifier."""
    return '"' + name.replace('"', '""') + '"'


def quote_literal(value: str) -> str:
    """Quote a PostgreSQL string literal."""
    return "'" + value.replace("'", "''") + "'"


class PostgreSQLConnection(DatastoreConnection):
    """
    PostgreSQL backend.

    A schema is a database, a user is a role with LOGIN, and the grant is
    ALL PRIVILEGES on the database.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        database: str = "postgres",
        min_pool_size: int = 1,
        max_pool_size: int = 5,
        command_timeout: int = 30,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self.pool: Optional[asyncpg.Pool] = None

    @property
    def driver(self) -> str:
        return DataStoreDriver.POSTGRESQL.value

    async def connect(self):
        """Establish connection pool to PostgreSQL."""
        self.pool = await asyncpg.create_pool(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password,
            min_size=self.min_pool_size,
            max_size=self.max_pool_size,
            command_timeout=self.command_timeout,
        )
        logger.info(f"Connected to PostgreSQL datastore {self.host}:{self.port}")

    async def close(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info(f"Closed PostgreSQL datastore {self.host}:{self.port}")

    def _ensure_connected(self) -> None:
        if self.pool is None:
            raise RuntimeError(
                "Datastore not connected. Call connect() before performing operations."
            )

    async def _fetchval(self, query: str, *args):
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def _execute(self, query: str) -> None:
        self._ensure_connected()
        async with self.pool.acquire() as conn:
            await conn.execute(query)

    # ==================== Schema ====================

    async def schema_exists(self, schema: str) -> bool:
        return bool(
            await self._fetchval(
                "SELECT EXISTS(SELECT 1 FROM pg_database WHERE datname = $1)",
                schema,
            )
        )

    async def create_schema(self, schema: str) -> None:
        await self._execute(f"CREATE DATABASE {quote_identifier(schema)}")
        logger.info(f"Created database {schema}")

    async def delete_schema(self, schema: str) -> None:
        await self._execute(f"DROP DATABASE {quote_identifier(schema)} WITH (FORCE)")
        logger.info(f"Dropped database {schema}")

    # ==================== User ====================

    async def user_exists(self, user: str) -> bool:
        return bool(
            await self._fetchval(
                "SELECT EXISTS(SELECT 1 FROM pg_roles WHERE rolname = $1)",
                user,
            )
        )

    async def create_user(self, user: str, password: str) -> None:
        await self._execute(
            f"CREATE ROLE {quote_identifier(user)} LOGIN "
            f"PASSWORD {quote_literal(password)}"
        )
        logger.info(f"Created role {user}")

    async def delete_user(self, user: str) -> None:
        await self._execute(f"DROP ROLE {quote_identifier(user)}")
        logger.info(f"Dropped role {user}")

    # ==================== Privileges ====================

    async def grant_privileges_exists(self, user: str, schema: str) -> bool:
        # False when either side is missing, so teardown can run in any order
        return bool(
            await self._fetchval(
                """
                SELECT EXISTS(
                    SELECT 1 FROM pg_database d
                    JOIN pg_roles r ON r.rolname = $1
                    WHERE d.datname = $2
                      AND has_database_privilege(r.oid, d.oid, 'CREATE')
                )
                """,
                user,
                schema,
            )
        )

    async def grant_privileges(self, user: str, schema: str) -> None:
        await self._execute(
            f"GRANT ALL PRIVILEGES ON DATABASE {quote_identifier(schema)} "
            f"TO {quote_identifier(user)}"
        )
        logger.info(f"Granted privileges on {schema} to {user}")

    async def revoke_privileges(self, user: str, schema: str) -> None:
        await self._execute(
            f"REVOKE ALL PRIVILEGES ON DATABASE {quote_identifier(schema)} "
            f"FROM {quote_identifier(user)}"
        )
        logger.info(f"Revoked privileges on {schema} from {user}")


async def connect_datastore(
    datastore: DataStore, config: Optional[DatastoreConfig] = None
) -> DatastoreConnection:
    """
    Open a connection to the backend declared by a DataStore.

    Args:
        datastore: The DataStore object the tenant uses.
        config: Pool settings; defaults are used when omitted.

    Returns:
        A connected DatastoreConnection.

    Raises:
        ValueError: If the driver has no connection implementation.
        DatastoreOperationFailed: If the datastore cannot be reached.
    """
    config = config or DatastoreConfig()

    if datastore.driver == DataStoreDriver.POSTGRESQL:
        host, port = datastore.primary_endpoint()
        connection = PostgreSQLConnection(
            host=host,
            port=port or 5432,
            user=datastore.username,
            password=datastore.password,
            database=config.admin_database,
            min_pool_size=config.min_pool_size,
            max_pool_size=config.max_pool_size,
            command_timeout=config.command_timeout,
        )
        try:
            await connection.connect()
        except Exception as e:
            logger.error(f"Unable to connect to DataStore {datastore.name}: {e}")
            raise DatastoreOperationFailed(
                "connect to", f"datastore {datastore.name}", e
            ) from e
        return connection

    raise ValueError(f"Unsupported datastore driver: {datastore.driver}")
