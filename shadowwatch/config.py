"""
ShadowWatch — Configuration System

All configuration is Pydantic-validated and loaded from:
1. An optional YAML file (defaults)
2. Environment variables (overrides)

Every tunable parameter of the watcher lives here. Components receive
their sub-config explicitly; nothing below reads the environment.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─── Sub-configs ──────────────────────────────────────────────────


class LedgerConfig(BaseModel):
    rpc_url: str = ""  # Required: set via SHADOWWATCH_RPC_URL (or legacy RPC_URL)
    contract_address: str = ""  # Required: set via SHADOWWATCH_LEDGER_ADDRESS
    max_retries: int = Field(default=3, ge=1)
    backoff_base_ms: int = Field(default=1000, ge=0)

    @model_validator(mode="after")
    def _strip_values(self) -> LedgerConfig:
        # Secret managers can inject trailing \r\n into env vars
        object.__setattr__(self, "rpc_url", self.rpc_url.strip())
        object.__setattr__(self, "contract_address", self.contract_address.strip())
        return self


class AuditConfig(BaseModel):
    divergence_threshold: float = Field(default=0.005, ge=0.0, lt=1.0)
    alert_cooldown_ms: int = Field(default=3_600_000, ge=0)
    config_key: str = "EVS_Active_Axioms"
    protocol_id: str = "MITHAQ_PROTOCOL_V2"
    # Cron "M * * * *" in UTC; the hosted trigger runs at minute 0
    schedule_minute: int = Field(default=0, ge=0, le=59)
    tick_timeout_s: float = Field(default=300.0, gt=0)


class StoreConfig(BaseModel):
    backend: Literal["memory", "postgres"] = "memory"
    host: str = "postgres"
    port: int = 5432
    database: str = "shadowwatch"
    username: str = "shadowwatch"
    password: str = "shadowwatch_dev"
    pool_size: int = 5
    ssl: bool = False
    # YAML of {collection: {key: document}} loaded into the memory backend at startup
    seed_path: str = ""

    @property
    def dsn(self) -> str:
        return (
            f"postgresql://{self.username}:{self.password}"
            f"@{self.host}:{self.port}/{self.database}"
        )


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root ─────────────────────────────────────────────────────────


class ShadowWatchConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="SHADOWWATCH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    instance_id: str = "shadowwatch-default"

    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | Path | None = None) -> ShadowWatchConfig:
    """
    Load configuration from YAML file, then apply environment variable overrides.
    """
    raw: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = yaml.safe_load(f) or {}

    env: dict[str, Any] = {}

    # Legacy deployment names first so the prefixed ones win
    if rpc_url := os.environ.get("RPC_URL"):
        env.setdefault("ledger", {})["rpc_url"] = rpc_url
    if address := os.environ.get("ETHICAL_LEDGER_ADDRESS"):
        env.setdefault("ledger", {})["contract_address"] = address
    if rpc_url := os.environ.get("SHADOWWATCH_RPC_URL"):
        env.setdefault("ledger", {})["rpc_url"] = rpc_url
    if address := os.environ.get("SHADOWWATCH_LEDGER_ADDRESS"):
        env.setdefault("ledger", {})["contract_address"] = address
    if pg_pw := os.environ.get("SHADOWWATCH_POSTGRES_PASSWORD"):
        env.setdefault("store", {})["password"] = pg_pw
    if instance_id := os.environ.get("SHADOWWATCH_INSTANCE_ID"):
        env["instance_id"] = instance_id

    return ShadowWatchConfig(**_deep_merge(raw, env))
