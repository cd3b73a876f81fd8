"""
ShadowWatch — Audit Worker

Process entry point for the Proof-of-Divergence watcher.

Usage:
    shadowwatch                         # hourly ticks until SIGINT/SIGTERM
    shadowwatch --once                  # one tick, exit 1 on failure (external cron)
    shadowwatch --config /etc/shadowwatch/config.yaml

Graceful shutdown:
    SIGINT and SIGTERM stop the scheduler; a tick in flight is cancelled.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from pathlib import Path

import structlog
import yaml
from dotenv import load_dotenv

from shadowwatch.clients.document_store import DocumentStore, MemoryDocumentStore
from shadowwatch.clients.ledger import Web3LedgerReader
from shadowwatch.clients.postgres_store import PostgresDocumentStore
from shadowwatch.clients.scheduler import AuditScheduler
from shadowwatch.config import ShadowWatchConfig, load_config
from shadowwatch.systems.divergence.errors import ConfigurationError
from shadowwatch.systems.divergence.service import AuditOrchestrator
from shadowwatch.telemetry.logging import setup_logging

logger = structlog.get_logger()


async def _open_store(config: ShadowWatchConfig) -> tuple[DocumentStore, PostgresDocumentStore | None]:
    if config.store.backend == "postgres":
        pg = PostgresDocumentStore(config.store)
        await pg.connect()
        return pg, pg
    store = MemoryDocumentStore()
    logger.warning(
        "memory_store_selected",
        hint="Records are lost on exit; set SHADOWWATCH_STORE__BACKEND=postgres.",
    )
    if config.store.seed_path:
        seed_memory_store(store, config.store.seed_path)
    else:
        logger.warning(
            "memory_store_unseeded",
            hint=(
                "Ticks fail with ConfigurationError until systemConfig/"
                f"{config.audit.config_key} exists; set SHADOWWATCH_STORE__SEED_PATH."
            ),
        )
    return store, None


def seed_memory_store(store: MemoryDocumentStore, path: str | Path) -> int:
    """Load ``{collection: {key: document}}`` from YAML into *store*. Returns the document count."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Seed file {path} must map collections to documents")

    count = 0
    for collection, documents in raw.items():
        if not isinstance(documents, dict):
            raise ConfigurationError(f"Seed collection {collection!r} must map keys to documents")
        for key, data in documents.items():
            store.seed(str(collection), str(key), data or {})
            count += 1
    logger.info("memory_store_seeded", path=str(path), documents=count)
    return count


async def run_worker(config_path: str | None = None, once: bool = False) -> int:
    """Build the pipeline and run it. Returns the process exit code."""
    config = load_config(config_path)
    setup_logging(config.logging, instance_id=config.instance_id)
    log = logger.bind(instance_id=config.instance_id)

    store, pg = await _open_store(config)
    try:
        orchestrator = AuditOrchestrator.from_config(config, store, Web3LedgerReader())
        scheduler = AuditScheduler(
            orchestrator.run,
            minute=config.audit.schedule_minute,
            timeout_s=config.audit.tick_timeout_s,
        )

        if once:
            ok = await scheduler.run_tick()
            log.info("single_tick_done", ok=ok, stats=orchestrator.stats)
            return 0 if ok else 1

        shutdown_event = asyncio.Event()

        def _signal_handler() -> None:
            log.info("shutdown_signal_received")
            shutdown_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows has no add_signal_handler
                signal.signal(sig, lambda s, f: _signal_handler())

        await scheduler.start()
        log.info("worker_started")
        await shutdown_event.wait()
        await scheduler.stop()
        log.info("worker_stopped", stats=scheduler.stats)
        return 0
    finally:
        if pg is not None:
            await pg.close()


def main() -> None:
    """CLI entry point."""
    import argparse

    load_dotenv(dotenv_path=Path.cwd() / ".env")

    parser = argparse.ArgumentParser(description="ShadowWatch Proof-of-Divergence auditor")
    parser.add_argument(
        "--config",
        default=os.getenv("SHADOWWATCH_CONFIG_PATH"),
        help="Path to YAML config file (default: SHADOWWATCH_CONFIG_PATH env var)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single audit tick and exit (non-zero on failure)",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(run_worker(args.config, once=args.once)))


if __name__ == "__main__":
    main()
