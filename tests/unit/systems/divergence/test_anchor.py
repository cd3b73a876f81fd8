"""
Tests for AnchorReader and RetryPolicy.

Covers:
  - Exponential backoff schedule between attempts
  - Tagged result on success and on exhaustion
  - NetworkError only after the final attempt
  - Deployment errors raised before any attempt
"""

from __future__ import annotations

import pytest

from shadowwatch.systems.divergence.anchor import AnchorReader, RetryPolicy
from shadowwatch.systems.divergence.errors import ConfigurationError, NetworkError

RPC_URL = "https://rpc.example.org"
ADDRESS = "0x" + "ab" * 20
ANCHOR_BYTES = bytes.fromhex("cd" * 32)
ANCHOR_HEX = "0x" + "cd" * 32


class _FakeLedger:
    """Plays back a script of outcomes: bytes are returned, exceptions raised."""

    def __init__(self, outcomes: list[bytes | Exception]) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []

    async def read_core_axiom_hash(self, rpc_url: str, contract_address: str) -> bytes:
        self.calls.append((rpc_url, contract_address))
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _make_reader(
    ledger: _FakeLedger,
    delays: list[float],
    *,
    rpc_url: str = RPC_URL,
    address: str = ADDRESS,
    max_attempts: int = 3,
) -> AnchorReader:
    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    return AnchorReader(
        ledger,
        rpc_url=rpc_url,
        contract_address=address,
        policy=RetryPolicy(max_attempts=max_attempts, base_delay_s=1.0),
        sleep=_sleep,
    )


class TestRetryPolicy:
    def test_delays_double(self):
        policy = RetryPolicy(max_attempts=5, base_delay_s=1.0)
        assert [policy.delay_for(a) for a in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_from_ms(self):
        policy = RetryPolicy.from_ms(3, 1000)
        assert policy.max_attempts == 3
        assert policy.base_delay_s == 1.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestAnchorReader:
    @pytest.mark.asyncio
    async def test_first_attempt_success_does_not_sleep(self):
        delays: list[float] = []
        ledger = _FakeLedger([ANCHOR_BYTES])
        result = await _make_reader(ledger, delays).fetch()

        assert result.ok is True
        assert result.attempts == 1
        assert result.anchored_hash == ANCHOR_HEX
        assert delays == []
        assert ledger.calls == [(RPC_URL, ADDRESS)]

    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(self):
        delays: list[float] = []
        ledger = _FakeLedger([ConnectionError("down"), TimeoutError("slow"), ANCHOR_BYTES])

        anchored = await _make_reader(ledger, delays).read()

        assert anchored == ANCHOR_HEX
        assert delays == [1.0, 2.0]
        assert len(ledger.calls) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_returns_failed_result(self):
        delays: list[float] = []
        ledger = _FakeLedger([ConnectionError("a"), ConnectionError("b"), ConnectionError("c")])

        result = await _make_reader(ledger, delays).fetch()

        assert result.ok is False
        assert result.attempts == 3
        assert result.anchored_hash is None
        assert result.error == "c"
        # No sleep after the final attempt
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_read_raises_network_error_after_final_attempt(self):
        delays: list[float] = []
        last = ConnectionError("final")
        ledger = _FakeLedger([ConnectionError("a"), ConnectionError("b"), last])

        with pytest.raises(NetworkError) as exc_info:
            await _make_reader(ledger, delays).read()

        assert exc_info.value.attempts == 3
        assert exc_info.value.__cause__ is last
        assert len(ledger.calls) == 3

    @pytest.mark.asyncio
    async def test_longer_policy_keeps_doubling(self):
        delays: list[float] = []
        ledger = _FakeLedger([ConnectionError("x")] * 3 + [ANCHOR_BYTES])

        await _make_reader(ledger, delays, max_attempts=4).read()

        assert delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_wrong_length_response_counts_as_failed_attempt(self):
        delays: list[float] = []
        ledger = _FakeLedger([b"\x01" * 20, ANCHOR_BYTES])

        result = await _make_reader(ledger, delays).fetch()

        assert result.ok is True
        assert result.attempts == 2
        assert delays == [1.0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("rpc_url", "address"), [("", ADDRESS), (RPC_URL, ""), ("", "")])
    async def test_missing_endpoint_or_address_is_configuration_error(self, rpc_url, address):
        ledger = _FakeLedger([ANCHOR_BYTES])
        with pytest.raises(ConfigurationError):
            await _make_reader(ledger, [], rpc_url=rpc_url, address=address).read()
        assert ledger.calls == []

    @pytest.mark.asyncio
    async def test_malformed_address_is_configuration_error(self):
        ledger = _FakeLedger([ANCHOR_BYTES])
        with pytest.raises(ConfigurationError):
            await _make_reader(ledger, [], address="0xnot-an-address").read()
        assert ledger.calls == []
