"""
Storage Layer for the Proof Registry

Provides:
- ProofStore abstraction (InMemory for dev, Postgres for durable hosts)
- Environment-based configuration
"""

from .store import (
    ProofStore,
    InMemoryProofStore,
    PostgresProofStore,
    WriteContext,
    ProofStoreError,
    TransactionStateError,
    LockTimeoutError,
)
from .config import DatabaseConfig, ProofStoreDriver, get_database_url, get_proofstore_driver

__all__ = [
    "ProofStore",
    "InMemoryProofStore",
    "PostgresProofStore",
    "WriteContext",
    "ProofStoreError",
    "TransactionStateError",
    "LockTimeoutError",
    "DatabaseConfig",
    "ProofStoreDriver",
    "get_database_url",
    "get_proofstore_driver",
]
