"""
PostgreSQL Client Wrapper

Centralized PostgreSQL client built on an asyncpg connection pool.
Provides configuration-based discovery and a consistent database access
pattern for repositories.

Usage:
    from core.postgres_client import get_postgres_client

    # Get client instance
    db = await get_postgres_client("governance_service")

    # Execute queries
    async with db:
        rows = await db.query("SELECT * FROM governance.proposals WHERE status = $1", ["active"])

    # Multi-statement units of work
    async with db.transaction() as tx:
        await tx.execute("UPDATE ...", [...])
        row = await tx.query_row("INSERT ... RETURNING *", [...])
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import asyncpg

logger = logging.getLogger(__name__)


def _record_to_dict(record: Optional[asyncpg.Record]) -> Optional[Dict[str, Any]]:
    if record is None:
        return None
    return dict(record)


class ConnectionClient:
    """query/query_row/execute bound to a single connection (used inside transactions)"""

    def __init__(self, connection: asyncpg.Connection):
        self.connection = connection

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        records = await self.connection.fetch(sql, *(params or []))
        return [dict(r) for r in records]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        record = await self.connection.fetchrow(sql, *(params or []))
        return _record_to_dict(record)

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> str:
        return await self.connection.execute(sql, *(params or []))


class PostgresClientWrapper:
    """
    PostgreSQL client wrapper with configuration-based discovery.

    Wraps an asyncpg pool and provides:
    - Host/port resolution through ConfigManager
    - Lazy pool creation on first use
    - Transactions via `transaction()`
    """

    def __init__(
        self,
        service_name: str,
        host: Optional[str] = None,
        port: Optional[int] = None,
        database: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
        config=None,
    ):
        """
        Initialize PostgreSQL client wrapper.

        Args:
            service_name: Name of the service using this client
            host: PostgreSQL host (defaults to env/config discovery)
            port: PostgreSQL port (defaults to 5432)
            database: Database name (defaults to 'postgres')
            username: Database username
            password: Database password
            min_size: Minimum pool size
            max_size: Maximum pool size
            config: Optional ConfigManager to resolve settings from
        """
        from core.config_manager import ConfigManager

        self.service_name = service_name

        if config is None:
            config = ConfigManager(service_name)
        discovered_host, discovered_port = config.discover_service(
            service_name="postgres_service",
            default_host="localhost",
            default_port=5432,
            env_host_key="POSTGRES_HOST",
            env_port_key="POSTGRES_PORT",
        )
        infra = config.get_infra_config()

        # Apply overrides
        self.host = host or discovered_host
        self.port = port or discovered_port
        self.database = database or infra.postgres_db
        self.username = username or infra.postgres_user
        self.password = password or infra.postgres_password
        self.min_size = min_size or infra.postgres_pool_min
        self.max_size = max_size or infra.postgres_pool_max

        self._pool: Optional[asyncpg.Pool] = None
        self._pool_lock = asyncio.Lock()

        logger.info(f"PostgreSQL client initialized for {service_name}: {self.host}:{self.port}/{self.database}")

    @property
    def pool(self) -> Optional[asyncpg.Pool]:
        """Get underlying asyncpg pool (None until connected)"""
        return self._pool

    async def connect(self) -> asyncpg.Pool:
        """Create the connection pool if it does not exist yet"""
        if self._pool is not None:
            return self._pool
        async with self._pool_lock:
            if self._pool is None:
                self._pool = await asyncpg.create_pool(
                    host=self.host,
                    port=self.port,
                    database=self.database,
                    user=self.username,
                    password=self.password,
                    min_size=self.min_size,
                    max_size=self.max_size,
                )
                logger.info(f"PostgreSQL pool created for {self.service_name} ({self.min_size}-{self.max_size})")
        return self._pool

    async def __aenter__(self):
        """Async context manager entry"""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit (the pool outlives the block)"""
        return False

    async def health_check(self) -> Optional[Dict]:
        """Check database health"""
        try:
            pool = await self.connect()
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return {"healthy": True, "host": self.host, "database": self.database}
        except Exception as e:
            logger.warning(f"PostgreSQL health check failed: {e}")
            return {"healthy": False, "error": str(e)}

    async def query(self, sql: str, params: Optional[List[Any]] = None) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        pool = await self.connect()
        records = await pool.fetch(sql, *(params or []))
        return [dict(r) for r in records]

    async def query_row(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute query and return single row"""
        pool = await self.connect()
        record = await pool.fetchrow(sql, *(params or []))
        return _record_to_dict(record)

    async def execute(self, sql: str, params: Optional[List[Any]] = None) -> str:
        """Execute SQL statement and return the command status"""
        pool = await self.connect()
        return await pool.execute(sql, *(params or []))

    async def execute_script(self, sql: str) -> None:
        """Execute a multi-statement script (migrations)"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            await conn.execute(sql)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ConnectionClient]:
        """Run statements on one connection inside a transaction"""
        pool = await self.connect()
        async with pool.acquire() as conn:
            async with conn.transaction():
                yield ConnectionClient(conn)

    async def close(self):
        """Close the pool"""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info(f"PostgreSQL pool closed for {self.service_name}")


# Singleton instances per service
_postgres_clients: Dict[str, PostgresClientWrapper] = {}


async def get_postgres_client(
    service_name: str,
    host: Optional[str] = None,
    port: Optional[int] = None,
    database: Optional[str] = None,
    **kwargs,
) -> PostgresClientWrapper:
    """
    Get or create PostgreSQL client for a service.

    Args:
        service_name: Service name
        host: Optional host override
        port: Optional port override
        database: Optional database override
        **kwargs: Additional client options

    Returns:
        PostgresClientWrapper instance
    """
    global _postgres_clients

    if service_name not in _postgres_clients:
        client = PostgresClientWrapper(
            service_name=service_name,
            host=host,
            port=port,
            database=database,
            **kwargs,
        )
        _postgres_clients[service_name] = client

    return _postgres_clients[service_name]
