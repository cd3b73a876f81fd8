"""
ShadowWatch — Divergence Evaluator

Exact-match policy: a score of 0.0 when the hashes agree (ignoring hex
case), 1.0 otherwise. The score is still compared against a threshold
so a graded similarity metric can replace it without touching callers.
"""

from __future__ import annotations

from shadowwatch.systems.divergence.types import AuditStatus, DivergenceResult

DEFAULT_THRESHOLD = 0.005


def normalize_hash(value: str) -> str:
    return value.lower()


def hashes_match(local_hash: str, anchored_hash: str) -> bool:
    return normalize_hash(local_hash) == normalize_hash(anchored_hash)


class DivergenceEvaluator:
    def __init__(self, threshold: float = DEFAULT_THRESHOLD) -> None:
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def evaluate(self, local_hash: str, anchored_hash: str) -> DivergenceResult:
        match = hashes_match(local_hash, anchored_hash)
        score = 0.0 if match else 1.0
        status = AuditStatus.OK if score <= self._threshold else AuditStatus.DRIFT
        return DivergenceResult(score=score, status=status, hash_match=match)
