"""
ShadowWatch — Common Primitives

Shared ids, clock helpers and the base model used across the watcher.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import BaseModel
from ulid import ULID

Clock = Callable[[], datetime]


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def short_hash(value: str, length: int = 18) -> str:
    """Log-friendly prefix of a 0x hash."""
    return f"{value[:length]}..."


# ─── Base Models ──────────────────────────────────────────────────


class WatchBaseModel(BaseModel):
    """Base model for all ShadowWatch records. Field aliases are the stored names."""

    model_config = {"populate_by_name": True, "from_attributes": True}

    def to_document(self) -> dict[str, Any]:
        """Dump to the camelCase document shape written to the store."""
        return self.model_dump(by_alias=True, mode="python", exclude_none=True)
