"""ShadowWatch — Divergence: Proof-of-Divergence audit of the axiom configuration."""

from shadowwatch.systems.divergence.anchor import AnchorReader, AnchorReadResult, RetryPolicy
from shadowwatch.systems.divergence.breaker import AlertCircuitBreaker, store_alert_query
from shadowwatch.systems.divergence.dispatcher import AlertDispatcher, LogNotifier, Notifier
from shadowwatch.systems.divergence.errors import (
    ConfigurationError,
    NetworkError,
    PersistenceError,
    ShadowWatchError,
)
from shadowwatch.systems.divergence.evaluator import DivergenceEvaluator
from shadowwatch.systems.divergence.fingerprint import FingerprintComputer, compute_axiom_hash
from shadowwatch.systems.divergence.recorder import AuditRecorder
from shadowwatch.systems.divergence.service import AuditOrchestrator

__all__ = [
    "AlertCircuitBreaker",
    "AlertDispatcher",
    "AnchorReadResult",
    "AnchorReader",
    "AuditOrchestrator",
    "AuditRecorder",
    "ConfigurationError",
    "DivergenceEvaluator",
    "FingerprintComputer",
    "LogNotifier",
    "NetworkError",
    "Notifier",
    "PersistenceError",
    "RetryPolicy",
    "ShadowWatchError",
    "compute_axiom_hash",
    "store_alert_query",
]
