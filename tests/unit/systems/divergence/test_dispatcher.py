"""
Tests for AlertDispatcher.

Covers:
  - Protocol status alarm + alert record + notifier on dispatch
  - Status-first write order and uncompensated partial failure
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from shadowwatch.clients.document_store import MemoryDocumentStore
from shadowwatch.systems.divergence.dispatcher import AlertDispatcher
from shadowwatch.systems.divergence.errors import PersistenceError
from shadowwatch.systems.divergence.types import (
    ALERTS,
    DRIFT_MESSAGE,
    GOVERNANCE_PROTOCOLS,
    AlertRecord,
)

_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
_PROTOCOL = "MITHAQ_PROTOCOL_V2"
LOCAL = "0x" + "11" * 32
ANCHORED = "0x" + "22" * 32


class _FailingAlertStore(MemoryDocumentStore):
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        if collection == ALERTS:
            raise PersistenceError("alerts unavailable")
        return await super().add(collection, data)


def _seeded(store: MemoryDocumentStore | None = None) -> MemoryDocumentStore:
    store = store or MemoryDocumentStore()
    store.seed(GOVERNANCE_PROTOCOLS, _PROTOCOL, {"status": "ACTIVE", "owner": "council"})
    return store


class TestAlertDispatcher:
    @pytest.mark.asyncio
    async def test_dispatch_alarms_status_and_appends_alert(self):
        store = _seeded()
        notifier = AsyncMock()
        dispatcher = AlertDispatcher(store, _PROTOCOL, notifier, clock=lambda: _NOW)

        alert = await dispatcher.dispatch(1.0, LOCAL, ANCHORED)

        status = await store.get(GOVERNANCE_PROTOCOLS, _PROTOCOL)
        assert status == {
            "status": "RED_ALARM_CORE_DRIFT",
            "owner": "council",
            "divergenceScore": 1.0,
            "lastDivergenceCheck": _NOW,
            "driftDetails": DRIFT_MESSAGE,
        }

        alerts = store.documents(ALERTS)
        assert len(alerts) == 1
        assert alerts[0]["type"] == "CORE_DRIFT"
        assert alerts[0]["severity"] == "CRITICAL"
        assert alerts[0]["acknowledged"] is False
        assert alerts[0]["localHash"] == LOCAL
        assert alerts[0]["anchoredHash"] == ANCHORED
        assert alerts[0]["divergenceScore"] == 1.0
        assert alerts[0]["timestamp"] == _NOW
        assert alerts[0]["message"] == DRIFT_MESSAGE

        assert isinstance(alert, AlertRecord)
        notifier.notify.assert_awaited_once_with(alert)

    @pytest.mark.asyncio
    async def test_missing_protocol_record_fails_before_alert(self):
        store = MemoryDocumentStore()
        notifier = AsyncMock()
        dispatcher = AlertDispatcher(store, _PROTOCOL, notifier, clock=lambda: _NOW)

        with pytest.raises(PersistenceError):
            await dispatcher.dispatch(1.0, LOCAL, ANCHORED)

        assert store.documents(ALERTS) == []
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_alert_failure_leaves_status_alarmed(self):
        store = _seeded(_FailingAlertStore())
        notifier = AsyncMock()
        dispatcher = AlertDispatcher(store, _PROTOCOL, notifier, clock=lambda: _NOW)

        with pytest.raises(PersistenceError):
            await dispatcher.dispatch(1.0, LOCAL, ANCHORED)

        status = await store.get(GOVERNANCE_PROTOCOLS, _PROTOCOL)
        assert status["status"] == "RED_ALARM_CORE_DRIFT"
        notifier.notify.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_default_notifier_logs(self):
        store = _seeded()
        dispatcher = AlertDispatcher(store, _PROTOCOL, clock=lambda: _NOW)

        await dispatcher.dispatch(1.0, LOCAL, ANCHORED)

        assert len(store.documents(ALERTS)) == 1
