"""
ShadowWatch — Ledger Reader (web3)

Read-only access to the anchoring contract. The only call the watcher
ever makes is ``CORE_AXIOM_HASH() view returns (bytes32)``: no
transactions, no signing, no key material.

A fresh provider is built per read and disconnected afterwards, so a
wedged HTTP session never survives into the next retry attempt.
"""

from __future__ import annotations

from typing import Any, Protocol

import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

logger = structlog.get_logger()

# ─── Contract ABI ─────────────────────────────────────────────────

LEDGER_READ_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "CORE_AXIOM_HASH",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32", "internalType": "bytes32"}],
    },
]


class LedgerReader(Protocol):
    """Minimal interface the anchor reader needs from a chain client."""

    async def read_core_axiom_hash(self, rpc_url: str, contract_address: str) -> bytes:
        """Perform one read-only call and return the raw bytes32 value."""
        ...


class Web3LedgerReader:
    """
    LedgerReader backed by web3's async HTTP provider.

    No retries here: a single attempt either returns bytes or raises.
    Retry policy belongs to AnchorReader.
    """

    async def read_core_axiom_hash(self, rpc_url: str, contract_address: str) -> bytes:
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        try:
            contract = w3.eth.contract(
                address=Web3.to_checksum_address(contract_address),
                abi=LEDGER_READ_ABI,
            )
            raw = await contract.functions.CORE_AXIOM_HASH().call()
        finally:
            try:
                await w3.provider.disconnect()
            except Exception as e:
                logger.debug("ledger_provider_disconnect_error", error=str(e))

        logger.debug("ledger_core_hash_read", contract=contract_address)
        return bytes(raw)
