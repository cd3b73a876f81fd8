"""
ShadowWatch — Alert Dispatcher

Escalates confirmed, non-suppressed drift:

  1. governanceProtocols/<protocol_id> is merged into RED_ALARM_CORE_DRIFT
  2. a CORE_DRIFT alert is appended to alerts
  3. the Notifier is told

The status goes first. If the alert append then fails the alarm is
already visible on dashboards, and since the circuit breaker only looks
at alerts the next tick will try the alert again. There is no rollback
between the two writes; either failure surfaces as PersistenceError.

The core never resets the protocol status. Operators do.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import structlog

from shadowwatch.primitives.common import short_hash, utc_now
from shadowwatch.systems.divergence.types import (
    ALERTS,
    GOVERNANCE_PROTOCOLS,
    AlertRecord,
    ProtocolStatusUpdate,
)

if TYPE_CHECKING:
    from shadowwatch.clients.document_store import DocumentStore
    from shadowwatch.primitives.common import Clock

logger = structlog.get_logger()


class Notifier(Protocol):
    """Outbound human-notification channel (email, SMS, chat, ...)."""

    async def notify(self, alert: AlertRecord) -> None:
        ...


class LogNotifier:
    """Default channel: a critical log line for whoever watches the logs."""

    async def notify(self, alert: AlertRecord) -> None:
        logger.critical(
            "council_alert_triggered",
            system="divergence",
            severity=alert.severity.value,
            divergence_score=alert.divergence_score,
            local_hash=short_hash(alert.local_hash),
            anchored_hash=short_hash(alert.anchored_hash),
            detail="Manual intervention required",
        )


class AlertDispatcher:
    def __init__(
        self,
        store: DocumentStore,
        protocol_id: str,
        notifier: Notifier | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._protocol_id = protocol_id
        self._notifier = notifier or LogNotifier()
        self._clock = clock
        self._logger = logger.bind(system="divergence", component="alert_dispatcher")

    async def dispatch(
        self,
        divergence_score: float,
        local_hash: str,
        anchored_hash: str,
    ) -> AlertRecord:
        now = self._clock()
        alert = AlertRecord(
            divergence_score=divergence_score,
            local_hash=local_hash,
            anchored_hash=anchored_hash,
            timestamp=now,
        )
        status = ProtocolStatusUpdate(
            divergence_score=divergence_score,
            last_divergence_check=now,
            drift_details=alert.message,
        )

        await self._store.update(
            GOVERNANCE_PROTOCOLS, self._protocol_id, status.to_document(),
        )
        self._logger.info(
            "protocol_status_alarmed",
            protocol_id=self._protocol_id,
            status=status.status.value,
        )

        alert_id = await self._store.add(ALERTS, alert.to_document())
        self._logger.info("alert_stored", alert_id=alert_id)

        await self._notifier.notify(alert)
        return alert
