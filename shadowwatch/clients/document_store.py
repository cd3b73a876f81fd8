"""
ShadowWatch — Document Store Port

The audit core talks to persistence only through ``DocumentStore``:
keyed reads, append-only inserts, conditional merge-updates of existing
documents, and a "newer than" query used by the alert circuit breaker.

Backends translate their own failures into ``PersistenceError``.
``MemoryDocumentStore`` keeps everything in process and is what the
tests and local dry runs use.
"""

from __future__ import annotations

import asyncio
import copy
from datetime import datetime
from typing import Any, Protocol

import structlog

from shadowwatch.primitives.common import new_id
from shadowwatch.systems.divergence.errors import PersistenceError

logger = structlog.get_logger()


class DocumentStore(Protocol):
    """Minimal interface the audit core needs from a document database."""

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        """Return the document stored under *key*, or None if absent."""
        ...

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Append a new document and return its generated id."""
        ...

    async def update(self, collection: str, key: str, data: dict[str, Any]) -> None:
        """Merge *data* into an existing document. Raises PersistenceError if it is missing."""
        ...

    async def find_after(
        self,
        collection: str,
        *,
        after: datetime,
        filters: dict[str, Any] | None = None,
        limit: int = 1,
    ) -> list[dict[str, Any]]:
        """Documents with ``timestamp`` strictly after *after*, newest first."""
        ...


class MemoryDocumentStore:
    """
    Process-local DocumentStore.

    Documents are deep-copied on the way in and out so callers can
    never mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = asyncio.Lock()

    def seed(self, collection: str, key: str, data: dict[str, Any]) -> None:
        """Create or replace a keyed document (bootstrapping and tests)."""
        self._collections.setdefault(collection, {})[key] = copy.deepcopy(data)

    def documents(self, collection: str) -> list[dict[str, Any]]:
        """Snapshot of a whole collection in insertion order."""
        return [copy.deepcopy(d) for d in self._collections.get(collection, {}).values()]

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        doc = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(doc) if doc is not None else None

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = new_id()
        async with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)
        logger.debug("memory_store_added", collection=collection, doc_id=doc_id)
        return doc_id

    async def update(self, collection: str, key: str, data: dict[str, Any]) -> None:
        async with self._lock:
            doc = self._collections.get(collection, {}).get(key)
            if doc is None:
                raise PersistenceError(f"No document {collection}/{key} to update")
            doc.update(copy.deepcopy(data))

    async def find_after(
        self,
        collection: str,
        *,
        after: datetime,
        filters: dict[str, Any] | None = None,
        limit: int = 1,
    ) -> list[dict[str, Any]]:
        filters = filters or {}
        matches = [
            doc
            for doc in self._collections.get(collection, {}).values()
            if isinstance(doc.get("timestamp"), datetime)
            and doc["timestamp"] > after
            and all(doc.get(k) == v for k, v in filters.items())
        ]
        matches.sort(key=lambda d: d["timestamp"], reverse=True)
        return [copy.deepcopy(d) for d in matches[:limit]]
