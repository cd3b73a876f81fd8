"""
ShadowWatch — Axiom Fingerprint

Derives the local axiom hash that is compared against the ledger anchor.

The serialization is pinned bit-for-bit because the anchor on chain was
produced from it; any deviation reads as permanent drift:

  1. every weight is rendered the way ECMAScript ``Number#toString``
     renders it (shortest round-trip digits, ``1.0 -> "1"``,
     ``1e21 -> "1e+21"``, ``1e-7 -> "1e-7"``, ``-0 -> "0"``)
  2. the strings are written as a compact JSON array: ``["1","2","3"]``
  3. Keccak-256 over the UTF-8 bytes, rendered as lowercase 0x-hex
"""

from __future__ import annotations

import json
import math
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import structlog
from web3 import Web3

from shadowwatch.primitives.common import short_hash
from shadowwatch.systems.divergence.errors import ConfigurationError
from shadowwatch.systems.divergence.types import SYSTEM_CONFIG, AxiomConfiguration

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shadowwatch.clients.document_store import DocumentStore

logger = structlog.get_logger()

WEIGHTS_FIELD = "axiomaticWeights"


def js_number_to_string(value: float) -> str:
    """Render a finite float exactly as ECMAScript Number#toString does."""
    if value == 0:
        return "0"
    if value < 0:
        return "-" + js_number_to_string(-value)

    _, digit_tuple, exponent = Decimal(repr(value)).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1  # type: ignore[operator]

    s = "".join(str(d) for d in digits)
    k = len(s)
    n = int(exponent) + k  # value == 0.s * 10**n

    if k <= n <= 21:
        return s + "0" * (n - k)
    if 0 < n <= 21:
        return f"{s[:n]}.{s[n:]}"
    if -6 < n <= 0:
        return "0." + "0" * (-n) + s

    e = n - 1
    mantissa = s if k == 1 else f"{s[0]}.{s[1:]}"
    return f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def canonical_weight_vector(weights: Sequence[int | float]) -> str:
    """Compact JSON array of the canonical decimal strings."""
    return json.dumps(
        [js_number_to_string(float(w)) for w in weights],
        separators=(",", ":"),
        ensure_ascii=False,
    )


def compute_axiom_hash(weights: Sequence[int | float]) -> str:
    """Keccak-256 of the canonical weight vector, as lowercase 0x-hex."""
    payload = canonical_weight_vector(weights)
    return Web3.to_hex(Web3.keccak(text=payload))


def parse_axiom_configuration(key: str, doc: dict[str, Any] | None) -> AxiomConfiguration:
    """Validate a systemConfig document into an AxiomConfiguration."""
    if doc is None:
        raise ConfigurationError(f"SystemConfig {key} not found")

    weights = doc.get(WEIGHTS_FIELD)
    if not isinstance(weights, list | tuple):
        raise ConfigurationError(f"Invalid or missing axiomatic weights in {key}")
    if not weights:
        raise ConfigurationError(f"Axiomatic weights in {key} are empty")

    for index, w in enumerate(weights):
        # bool is an int subclass; a stored true/false is not a weight
        if isinstance(w, bool) or not isinstance(w, int | float):
            raise ConfigurationError(
                f"Axiomatic weight {index} in {key} is not a number: {w!r}"
            )
        try:
            finite = math.isfinite(float(w))
        except OverflowError:
            finite = False
        if not finite:
            raise ConfigurationError(f"Axiomatic weight {index} in {key} is not finite")

    return AxiomConfiguration(key=key, weights=list(weights))


class FingerprintComputer:
    """
    Loads the active axiom configuration and fingerprints it.

    Stateless between ticks: the hash is recomputed from the stored
    record every time.
    """

    def __init__(self, store: DocumentStore, config_key: str) -> None:
        self._store = store
        self._config_key = config_key
        self._logger = logger.bind(system="divergence", component="fingerprint")

    async def load(self) -> AxiomConfiguration:
        doc = await self._store.get(SYSTEM_CONFIG, self._config_key)
        return parse_axiom_configuration(self._config_key, doc)

    async def compute(self) -> str:
        """Read systemConfig/<key> and return its local axiom hash."""
        config = await self.load()
        local_hash = compute_axiom_hash(config.weights)
        self._logger.info(
            "local_axiom_hash_computed",
            local_hash=short_hash(local_hash),
            weight_count=len(config.weights),
        )
        return local_hash
