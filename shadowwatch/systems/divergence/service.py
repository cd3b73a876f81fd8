"""
ShadowWatch — Proof-of-Divergence Audit Orchestrator

One call to ``run()`` is one tick:

  Idle → ComputingLocalHash → FetchingAnchor → Evaluating → Recording
       → (Suppressed | Alerting | NoAlertNeeded) → Idle

Steps run strictly in order and data only flows downward. Any failure
moves the tick to Failed: one systemErrors document is written (best
effort) and the original exception is re-raised for the scheduler.
A tick cancelled by the scheduler's timeout counts as a failure too.

The orchestrator takes no input and returns None. Everything it talks
to is injected; nothing here reaches for a process-wide client.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from shadowwatch.primitives.common import new_id, short_hash, utc_now
from shadowwatch.systems.divergence.anchor import AnchorReader, RetryPolicy, SleepFn
from shadowwatch.systems.divergence.breaker import AlertCircuitBreaker, store_alert_query
from shadowwatch.systems.divergence.dispatcher import AlertDispatcher, Notifier
from shadowwatch.systems.divergence.evaluator import DivergenceEvaluator
from shadowwatch.systems.divergence.fingerprint import FingerprintComputer
from shadowwatch.systems.divergence.recorder import AuditRecorder
from shadowwatch.systems.divergence.types import AuditStatus, TickReport, TickState

if TYPE_CHECKING:
    from shadowwatch.clients.document_store import DocumentStore
    from shadowwatch.clients.ledger import LedgerReader
    from shadowwatch.config import ShadowWatchConfig
    from shadowwatch.primitives.common import Clock

logger = structlog.get_logger()


class AuditOrchestrator:
    """Sequences one Proof-of-Divergence audit per scheduled tick."""

    def __init__(
        self,
        fingerprint: FingerprintComputer,
        anchor: AnchorReader,
        evaluator: DivergenceEvaluator,
        recorder: AuditRecorder,
        breaker: AlertCircuitBreaker,
        dispatcher: AlertDispatcher,
        clock: Clock = utc_now,
    ) -> None:
        self._fingerprint = fingerprint
        self._anchor = anchor
        self._evaluator = evaluator
        self._recorder = recorder
        self._breaker = breaker
        self._dispatcher = dispatcher
        self._clock = clock

        self._state = TickState.IDLE
        self._last_tick: TickReport | None = None
        self._counters: dict[str, int] = {
            "ticks": 0,
            "ok": 0,
            "drift": 0,
            "alerts": 0,
            "suppressed": 0,
            "failures": 0,
        }
        self._logger = logger.bind(system="divergence", component="orchestrator")

    @classmethod
    def from_config(
        cls,
        config: ShadowWatchConfig,
        store: DocumentStore,
        ledger: LedgerReader,
        notifier: Notifier | None = None,
        clock: Clock = utc_now,
        sleep: SleepFn = asyncio.sleep,
    ) -> AuditOrchestrator:
        """Wire every component from config around one store and one ledger reader."""
        audit = config.audit
        return cls(
            fingerprint=FingerprintComputer(store, audit.config_key),
            anchor=AnchorReader(
                ledger,
                rpc_url=config.ledger.rpc_url,
                contract_address=config.ledger.contract_address,
                policy=RetryPolicy.from_ms(
                    config.ledger.max_retries, config.ledger.backoff_base_ms,
                ),
                sleep=sleep,
            ),
            evaluator=DivergenceEvaluator(audit.divergence_threshold),
            recorder=AuditRecorder(store, clock=clock),
            breaker=AlertCircuitBreaker(
                store_alert_query(store),
                cooldown_ms=audit.alert_cooldown_ms,
                clock=clock,
            ),
            dispatcher=AlertDispatcher(store, audit.protocol_id, notifier, clock=clock),
            clock=clock,
        )

    # ── Tick ──────────────────────────────────────────────────────

    async def run(self) -> None:
        """Run one audit tick. Returns None, or re-raises the failure."""
        report = TickReport(tick_id=new_id(), started_at=self._clock())
        self._last_tick = report
        self._counters["ticks"] += 1
        log = self._logger.bind(tick_id=report.tick_id)
        log.info("audit_tick_started")

        try:
            self._enter(report, TickState.COMPUTING_LOCAL_HASH)
            local_hash = await self._fingerprint.compute()
            report.local_hash = local_hash

            self._enter(report, TickState.FETCHING_ANCHOR)
            anchored_hash = await self._anchor.read()
            report.anchored_hash = anchored_hash

            self._enter(report, TickState.EVALUATING)
            result = self._evaluator.evaluate(local_hash, anchored_hash)
            report.divergence_score = result.score
            report.status = result.status
            log.info(
                "divergence_scored",
                divergence_score=f"{result.score:.4f}",
                local_hash=short_hash(local_hash),
                anchored_hash=short_hash(anchored_hash),
            )

            self._enter(report, TickState.RECORDING)
            await self._recorder.record(local_hash, anchored_hash, result)

            if result.status is AuditStatus.DRIFT:
                self._counters["drift"] += 1
                log.error(
                    "core_drift_detected",
                    divergence_score=f"{result.score:.4f}",
                    threshold=self._evaluator.threshold,
                )
                if await self._breaker.should_suppress():
                    self._enter(report, TickState.SUPPRESSED)
                    report.suppressed = True
                    self._counters["suppressed"] += 1
                    log.info("duplicate_alert_skipped")
                else:
                    self._enter(report, TickState.ALERTING)
                    await self._dispatcher.dispatch(result.score, local_hash, anchored_hash)
                    report.alerted = True
                    self._counters["alerts"] += 1
            else:
                self._counters["ok"] += 1
                self._enter(report, TickState.NO_ALERT_NEEDED)
                log.info("integrity_verified", divergence_score=f"{result.score:.4f}")

        except asyncio.CancelledError as exc:
            # The scheduler's timeout arrives here as a cancellation
            await self._fail(report, exc, log)
            raise
        except Exception as exc:
            await self._fail(report, exc, log)
            raise
        finally:
            self._state = TickState.IDLE

        log.info("audit_tick_finished", outcome=report.state.value)
        return None

    def _enter(self, report: TickReport, state: TickState) -> None:
        self._state = state
        report.state = state

    async def _fail(
        self,
        report: TickReport,
        exc: BaseException,
        log: structlog.stdlib.BoundLogger,
    ) -> None:
        """Mark the tick failed and attempt one systemErrors entry. Never raises for write failures."""
        failed_in = report.state
        report.state = TickState.FAILED
        report.error = str(exc) or type(exc).__name__
        self._counters["failures"] += 1
        log.error(
            "audit_tick_failed",
            failed_in=failed_in.value,
            error=report.error,
            error_class=type(exc).__name__,
        )
        try:
            # Shielded so a cancelled tick still gets its record written
            await asyncio.shield(self._recorder.record_error(exc, tick_id=report.tick_id))
        except Exception as record_exc:
            log.error("error_record_write_failed", error=str(record_exc))

    # ── Observability ─────────────────────────────────────────────

    @property
    def state(self) -> TickState:
        return self._state

    @property
    def last_tick(self) -> TickReport | None:
        return self._last_tick

    @property
    def stats(self) -> dict[str, Any]:
        return {
            **self._counters,
            "state": self._state.value,
            "last_tick": self._last_tick.model_dump(mode="json") if self._last_tick else None,
        }
