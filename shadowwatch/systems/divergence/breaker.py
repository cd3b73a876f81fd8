"""
ShadowWatch — Alert Circuit Breaker

Suppresses a new CORE_DRIFT alert while another one sits inside the
cooldown window. State lives in the alerts collection, not in process,
so the breaker holds across restarts and overlapping ticks. It only ever
reads; two concurrent ticks can both decide to alert, never to clear.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import structlog

from shadowwatch.primitives.common import utc_now
from shadowwatch.systems.divergence.types import ALERTS, AlertType

if TYPE_CHECKING:
    from datetime import datetime

    from shadowwatch.clients.document_store import DocumentStore
    from shadowwatch.primitives.common import Clock

logger = structlog.get_logger()

DEFAULT_COOLDOWN_MS = 3_600_000

RecentAlertQuery = Callable[["datetime"], Awaitable[list[dict[str, Any]]]]


def store_alert_query(store: DocumentStore) -> RecentAlertQuery:
    """Bind the breaker's query to the alerts collection of *store*."""

    async def _query(after: datetime) -> list[dict[str, Any]]:
        return await store.find_after(
            ALERTS,
            after=after,
            filters={"type": AlertType.CORE_DRIFT.value},
            limit=1,
        )

    return _query


class AlertCircuitBreaker:
    """
    Pure predicate over an injected clock and an injected
    "alerts newer than t" query.
    """

    def __init__(
        self,
        query_recent: RecentAlertQuery,
        cooldown_ms: int = DEFAULT_COOLDOWN_MS,
        clock: Clock = utc_now,
    ) -> None:
        self._query_recent = query_recent
        self._cooldown = timedelta(milliseconds=cooldown_ms)
        self._clock = clock

    def cutoff(self) -> datetime:
        return self._clock() - self._cooldown

    async def should_suppress(self) -> bool:
        """True when a CORE_DRIFT alert exists with timestamp > now - cooldown."""
        cutoff = self.cutoff()
        recent = await self._query_recent(cutoff)
        if recent:
            logger.info(
                "alert_cooldown_active",
                system="divergence",
                cutoff=cutoff.isoformat(),
                last_alert=str(recent[0].get("timestamp")),
            )
        return bool(recent)
