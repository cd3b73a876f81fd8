"""
ShadowWatch — Divergence Audit Type Definitions

Records written by the audit core and the small value types passed
between its components. Field aliases are the document field names the
dashboards and operator tooling read.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import Field

from shadowwatch.primitives.common import WatchBaseModel, utc_now

# ─── Collections ──────────────────────────────────────────────────

SYSTEM_CONFIG = "systemConfig"
ALERTS = "alerts"
GOVERNANCE_PROTOCOLS = "governanceProtocols"
AUDIT_HISTORY = "auditHistory"
SYSTEM_ERRORS = "systemErrors"

DRIFT_MESSAGE = "Local axiom hash does not match immutable blockchain anchor"


# ─── Enums ────────────────────────────────────────────────────────


class AuditStatus(enum.StrEnum):
    OK = "OK"
    DRIFT = "DRIFT"


class AlertType(enum.StrEnum):
    CORE_DRIFT = "CORE_DRIFT"


class AlertSeverity(enum.StrEnum):
    CRITICAL = "CRITICAL"


class ProtocolState(enum.StrEnum):
    """Values of governanceProtocols/<id>.status this core may set."""

    RED_ALARM_CORE_DRIFT = "RED_ALARM_CORE_DRIFT"


class ErrorType(enum.StrEnum):
    AUDIT_FAILURE = "AUDIT_FAILURE"


class TickState(enum.StrEnum):
    """Where a tick is (or where it ended)."""

    IDLE = "idle"
    COMPUTING_LOCAL_HASH = "computing_local_hash"
    FETCHING_ANCHOR = "fetching_anchor"
    EVALUATING = "evaluating"
    RECORDING = "recording"
    SUPPRESSED = "suppressed"
    ALERTING = "alerting"
    NO_ALERT_NEEDED = "no_alert_needed"
    FAILED = "failed"


# ─── Values ───────────────────────────────────────────────────────


class AxiomConfiguration(WatchBaseModel):
    """The ordered weight vector read from systemConfig/<key>."""

    key: str
    weights: list[int | float]


class DivergenceResult(WatchBaseModel):
    score: float
    status: AuditStatus
    hash_match: bool


# ─── Records ──────────────────────────────────────────────────────


class AuditRecord(WatchBaseModel):
    """One per tick, append-only, written whatever the outcome."""

    timestamp: datetime = Field(default_factory=utc_now)
    local_hash: str = Field(alias="localHash")
    anchored_hash: str = Field(alias="anchoredHash")
    divergence_score: float = Field(alias="divergenceScore")
    status: AuditStatus
    hash_match: bool = Field(alias="hashMatch")


class AlertRecord(WatchBaseModel):
    """A council alert. ``acknowledged`` is only ever flipped by operators."""

    type: AlertType = AlertType.CORE_DRIFT
    severity: AlertSeverity = AlertSeverity.CRITICAL
    divergence_score: float = Field(alias="divergenceScore")
    local_hash: str = Field(alias="localHash")
    anchored_hash: str = Field(alias="anchoredHash")
    timestamp: datetime = Field(default_factory=utc_now)
    acknowledged: bool = False
    message: str = DRIFT_MESSAGE


class ProtocolStatusUpdate(WatchBaseModel):
    """Fields merged into the governanceProtocols singleton on alarm."""

    status: ProtocolState = ProtocolState.RED_ALARM_CORE_DRIFT
    divergence_score: float = Field(alias="divergenceScore")
    last_divergence_check: datetime = Field(
        default_factory=utc_now, alias="lastDivergenceCheck"
    )
    drift_details: str = Field(default=DRIFT_MESSAGE, alias="driftDetails")


class ErrorRecord(WatchBaseModel):
    """Written once when a tick fails."""

    timestamp: datetime = Field(default_factory=utc_now)
    type: ErrorType = ErrorType.AUDIT_FAILURE
    error: str
    error_class: str = Field(alias="errorClass")
    stack: str | None = None
    tick_id: str | None = Field(default=None, alias="tickId")


class TickReport(WatchBaseModel):
    """In-process summary of the most recent tick."""

    tick_id: str
    state: TickState = TickState.IDLE
    started_at: datetime = Field(default_factory=utc_now)
    local_hash: str | None = None
    anchored_hash: str | None = None
    divergence_score: float | None = None
    status: AuditStatus | None = None
    alerted: bool = False
    suppressed: bool = False
    error: str | None = None
