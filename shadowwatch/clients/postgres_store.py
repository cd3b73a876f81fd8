"""
ShadowWatch — Postgres Document Store

Async DocumentStore over a single JSONB table. Each logical collection
(systemConfig, alerts, auditHistory, ...) is a partition of ``documents``
keyed by (collection, doc_id); ``time`` mirrors the document timestamp so
the circuit-breaker range query stays on an index.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import asyncpg
import orjson
import structlog

from shadowwatch.primitives.common import new_id, utc_now
from shadowwatch.systems.divergence.errors import PersistenceError

if TYPE_CHECKING:
    from shadowwatch.config import StoreConfig

logger = structlog.get_logger()

TABLE_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    collection  TEXT NOT NULL,
    doc_id      TEXT NOT NULL,
    time        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    data        JSONB NOT NULL,
    PRIMARY KEY (collection, doc_id)
);

CREATE INDEX IF NOT EXISTS idx_documents_time ON documents (collection, time DESC);
"""

_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _encode(data: dict[str, Any]) -> str:
    return orjson.dumps(data).decode()


def _decode(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    decoded: dict[str, Any] = orjson.loads(raw)
    return decoded


def _row_time(data: dict[str, Any]) -> datetime:
    ts = data.get("timestamp")
    return ts if isinstance(ts, datetime) else utc_now()


class PostgresDocumentStore:
    """
    Async Postgres DocumentStore with connection pooling.
    Lifecycle: construct → connect() → use → close().
    """

    def __init__(self, config: StoreConfig) -> None:
        self._config = config
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Create connection pool and initialise schema."""
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._config.dsn,
                min_size=1,
                max_size=self._config.pool_size,
                ssl="require" if self._config.ssl else None,
            )
            for statement in TABLE_SQL.split(";"):
                stmt = statement.strip()
                if stmt:
                    await self._pool.execute(stmt)
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Postgres connect failed: {e}") from e
        logger.info(
            "postgres_store_connected",
            host=self._config.host,
            database=self._config.database,
        )

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("postgres_store_disconnected")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Postgres store not connected. Call connect() first.")
        return self._pool

    async def health_check(self) -> dict[str, Any]:
        """Check connectivity."""
        try:
            await self.pool.fetchval("SELECT 1")
            return {"status": "connected"}
        except Exception as e:
            logger.error("postgres_health_check_failed", error=str(e))
            return {"status": "disconnected", "error": str(e)}

    # ── DocumentStore ─────────────────────────────────────────────

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        try:
            row = await self.pool.fetchrow(
                "SELECT data FROM documents WHERE collection = $1 AND doc_id = $2",
                collection,
                key,
            )
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Read {collection}/{key} failed: {e}") from e
        return _decode(row["data"]) if row is not None else None

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = new_id()
        try:
            await self.pool.execute(
                """
                INSERT INTO documents (collection, doc_id, time, data)
                VALUES ($1, $2, $3, $4::jsonb)
                """,
                collection,
                doc_id,
                _row_time(data),
                _encode(data),
            )
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Append to {collection} failed: {e}") from e
        return doc_id

    async def update(self, collection: str, key: str, data: dict[str, Any]) -> None:
        try:
            result = await self.pool.execute(
                """
                UPDATE documents SET data = data || $3::jsonb
                WHERE collection = $1 AND doc_id = $2
                """,
                collection,
                key,
                _encode(data),
            )
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Update of {collection}/{key} failed: {e}") from e
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        if result.split()[-1] == "0":
            raise PersistenceError(f"No document {collection}/{key} to update")

    async def find_after(
        self,
        collection: str,
        *,
        after: datetime,
        filters: dict[str, Any] | None = None,
        limit: int = 1,
    ) -> list[dict[str, Any]]:
        try:
            rows = await self.pool.fetch(
                """
                SELECT data FROM documents
                WHERE collection = $1 AND time > $2 AND data @> $3::jsonb
                ORDER BY time DESC
                LIMIT $4
                """,
                collection,
                after,
                _encode(filters or {}),
                limit,
            )
        except _STORE_ERRORS as e:
            raise PersistenceError(f"Query on {collection} failed: {e}") from e
        return [_decode(row["data"]) for row in rows]
