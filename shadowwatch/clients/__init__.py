"""
ShadowWatch — External Service Clients

Document store backends (in-memory, Postgres), the web3 ledger reader,
and the hourly audit scheduler.
"""

from shadowwatch.clients.document_store import DocumentStore, MemoryDocumentStore
from shadowwatch.clients.ledger import LEDGER_READ_ABI, LedgerReader, Web3LedgerReader
from shadowwatch.clients.postgres_store import PostgresDocumentStore
from shadowwatch.clients.scheduler import AuditScheduler, next_run_after

__all__ = [
    "AuditScheduler",
    "DocumentStore",
    "LEDGER_READ_ABI",
    "LedgerReader",
    "MemoryDocumentStore",
    "PostgresDocumentStore",
    "Web3LedgerReader",
    "next_run_after",
]
