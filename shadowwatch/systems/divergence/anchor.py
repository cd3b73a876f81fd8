"""
ShadowWatch — Anchor Reader

Fetches the immutable reference hash (``CORE_AXIOM_HASH``) from the
ledger with a bounded, exponentially backed-off retry loop.

The loop itself never raises for transient failures: ``fetch()`` returns
an ``AnchorReadResult`` saying whether a hash was obtained and after how
many attempts. ``read()`` is the raising form the orchestrator uses.

Schedule with the defaults (3 attempts, 1000 ms base):
  attempt 1 -> fail -> sleep 1s -> attempt 2 -> fail -> sleep 2s -> attempt 3
Sleeps happen only between attempts; there is no jitter.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

import structlog
from web3 import Web3

from shadowwatch.primitives.common import short_hash
from shadowwatch.systems.divergence.errors import ConfigurationError, NetworkError

if TYPE_CHECKING:
    from shadowwatch.clients.ledger import LedgerReader

logger = structlog.get_logger()

SleepFn = Callable[[float], Awaitable[None]]

_HASH_BYTES = 32


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between."""

    max_attempts: int = 3
    base_delay_s: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0:
            raise ValueError("base_delay_s must be >= 0")

    @classmethod
    def from_ms(cls, max_attempts: int, backoff_base_ms: int) -> RetryPolicy:
        return cls(max_attempts=max_attempts, base_delay_s=backoff_base_ms / 1000.0)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the failed 0-based *attempt*."""
        return self.base_delay_s * (2 ** attempt)


@dataclass(frozen=True)
class AnchorReadResult:
    ok: bool
    attempts: int
    anchored_hash: str | None = None
    error: str | None = None
    cause: BaseException | None = None

    def unwrap(self) -> str:
        """Return the hash or raise NetworkError with the last failure."""
        if self.ok and self.anchored_hash is not None:
            return self.anchored_hash
        raise NetworkError(
            f"Failed to fetch blockchain hash after {self.attempts} attempts: {self.error}",
            attempts=self.attempts,
        ) from self.cause


def _to_hash_hex(raw: bytes) -> str:
    if len(raw) != _HASH_BYTES:
        raise ValueError(f"Expected {_HASH_BYTES}-byte hash, got {len(raw)} bytes")
    return Web3.to_hex(raw)


class AnchorReader:
    """Reads the anchored hash for one (rpc_url, contract_address) pair."""

    def __init__(
        self,
        ledger: LedgerReader,
        rpc_url: str,
        contract_address: str,
        policy: RetryPolicy | None = None,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._ledger = ledger
        self._rpc_url = rpc_url
        self._contract_address = contract_address
        self._policy = policy or RetryPolicy()
        self._sleep = sleep
        self._logger = logger.bind(system="divergence", component="anchor_reader")

    def _check_preconditions(self) -> None:
        if not self._rpc_url or not self._contract_address:
            raise ConfigurationError("Blockchain configuration missing")
        if not Web3.is_address(self._contract_address):
            raise ConfigurationError(
                f"Ledger contract address is not a valid address: {self._contract_address}"
            )

    async def fetch(self) -> AnchorReadResult:
        """
        Try the ledger read up to ``policy.max_attempts`` times.

        Raises ConfigurationError (before any attempt) when the endpoint or
        address is unusable. Every other failure is reported in the result.
        """
        self._check_preconditions()

        last_error: BaseException | None = None
        attempts = self._policy.max_attempts
        for attempt in range(attempts):
            try:
                raw = await self._ledger.read_core_axiom_hash(
                    self._rpc_url, self._contract_address,
                )
                anchored_hash = _to_hash_hex(raw)
            except Exception as exc:
                last_error = exc
                self._logger.warning(
                    "ledger_fetch_attempt_failed",
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(exc),
                    error_class=type(exc).__name__,
                )
                if attempt < attempts - 1:
                    await self._sleep(self._policy.delay_for(attempt))
                continue

            self._logger.info(
                "anchor_hash_fetched",
                anchored_hash=short_hash(anchored_hash),
                attempts=attempt + 1,
            )
            return AnchorReadResult(ok=True, attempts=attempt + 1, anchored_hash=anchored_hash)

        return AnchorReadResult(
            ok=False,
            attempts=attempts,
            error=str(last_error) if last_error else None,
            cause=last_error,
        )

    async def read(self) -> str:
        """Return the anchored hash, raising NetworkError once retries are exhausted."""
        return (await self.fetch()).unwrap()
