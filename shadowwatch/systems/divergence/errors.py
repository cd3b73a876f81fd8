"""
ShadowWatch -- Divergence Audit Error Hierarchy

All exceptions raised inside an audit tick.

Namespace: shadowwatch.systems.divergence.errors

Every one of these is fatal for the current tick. The orchestrator
records an AUDIT_FAILURE error document and re-raises, so the hosting
scheduler sees the failure. Anything that is not a ShadowWatchError is
an unexpected defect and follows the same path unchanged.

Severity guide:
  ConfigurationError  HIGH      -- deployment or config record is wrong; not retried
  NetworkError        HIGH      -- ledger unreachable after the retry budget
  PersistenceError    CRITICAL  -- document store read/write failed; audit trail at risk
"""

from __future__ import annotations


class ShadowWatchError(RuntimeError):
    """Base for all audit pipeline errors."""


class ConfigurationError(ShadowWatchError):
    """
    Local configuration record is missing or malformed, or the ledger
    endpoint / contract address is not configured.

    Recovery: operator fixes the deployment. Never retried in-process.
    """


class NetworkError(ShadowWatchError):
    """
    The ledger read failed on every attempt of the retry policy.

    Carries the number of attempts made; the last failure is chained
    as ``__cause__`` when available.
    """

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class PersistenceError(ShadowWatchError):
    """
    A document store operation failed (config read, alert append,
    status update, audit or error record append).

    Not retried by the core. An alert/status partial write is not
    compensated.
    """
