"""
ShadowWatch — Audit Recorder

Append-only writers for the historical trail: one auditHistory document
per tick (match or drift, before any alerting decision) and one
systemErrors document per failed tick.
"""

from __future__ import annotations

import traceback
from typing import TYPE_CHECKING

import structlog

from shadowwatch.primitives.common import utc_now
from shadowwatch.systems.divergence.types import (
    AUDIT_HISTORY,
    SYSTEM_ERRORS,
    AuditRecord,
    DivergenceResult,
    ErrorRecord,
)

if TYPE_CHECKING:
    from shadowwatch.clients.document_store import DocumentStore
    from shadowwatch.primitives.common import Clock

logger = structlog.get_logger()


class AuditRecorder:
    def __init__(self, store: DocumentStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._logger = logger.bind(system="divergence", component="audit_recorder")

    async def record(
        self,
        local_hash: str,
        anchored_hash: str,
        result: DivergenceResult,
    ) -> AuditRecord:
        record = AuditRecord(
            timestamp=self._clock(),
            local_hash=local_hash,
            anchored_hash=anchored_hash,
            divergence_score=result.score,
            status=result.status,
            hash_match=result.hash_match,
        )
        doc_id = await self._store.add(AUDIT_HISTORY, record.to_document())
        self._logger.info(
            "audit_recorded",
            doc_id=doc_id,
            status=record.status.value,
            hash_match=record.hash_match,
        )
        return record

    async def record_error(self, exc: BaseException, tick_id: str | None = None) -> ErrorRecord:
        """Persist a failed tick. Raises whatever the store raises."""
        stack = "".join(traceback.format_exception(exc)) if exc.__traceback__ else None
        record = ErrorRecord(
            timestamp=self._clock(),
            error=str(exc) or type(exc).__name__,
            error_class=type(exc).__name__,
            stack=stack,
            tick_id=tick_id,
        )
        doc_id = await self._store.add(SYSTEM_ERRORS, record.to_document())
        self._logger.info("error_recorded", doc_id=doc_id, error_class=record.error_class)
        return record
