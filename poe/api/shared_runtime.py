"""
Shared Runtime Instance

Holds the process-wide Runtime used by the HTTP API.
Supports both in-memory (development) and PostgreSQL modes.

Mode is determined by environment variables:
- PROOFSTORE_DRIVER: Explicit driver selection (memory, psycopg2)
- DATABASE_URL or DATABASE_HOST: Database connection (auto-selects psycopg2)
- Neither set: Use in-memory (default for development)
"""

from threading import Lock
from typing import Optional

import psycopg2

from ..core import RegistryConfig, Runtime, RuntimeConfig
from ..db.config import DatabaseConfig, ProofStoreDriver, get_database_url, get_proofstore_driver
from ..db.store import InMemoryProofStore, PostgresProofStore, ProofStore
from ..observability import get_logger


logger = get_logger(__name__)

_runtime: Optional[Runtime] = None
_runtime_lock = Lock()


def _create_proof_store() -> ProofStore:
    """
    Create the ProofStore selected by configuration.

    Raises psycopg2.Error if PostgreSQL is selected but unreachable.
    """
    driver = get_proofstore_driver()

    if driver == ProofStoreDriver.MEMORY:
        logger.info("Using in-memory proof store (no persistence)")
        return InMemoryProofStore()

    db_url = get_database_url()
    if db_url is None:
        logger.warning(
            "Driver selected but no database configured; using in-memory proof store",
            driver=driver.value,
        )
        return InMemoryProofStore()

    config = DatabaseConfig.from_url(db_url)

    def connection_factory():
        return psycopg2.connect(config.to_dsn())

    store = PostgresProofStore(connection_factory)
    store.ensure_schema()
    logger.info(
        "PostgreSQL proof store ready",
        database=config.to_url(include_password=False),
    )
    return store


def get_runtime() -> Runtime:
    """Get (creating on first use) the shared Runtime."""
    global _runtime
    with _runtime_lock:
        if _runtime is None:
            _runtime = Runtime(
                store=_create_proof_store(),
                registry_config=RegistryConfig.from_env(),
                runtime_config=RuntimeConfig.from_env(),
            )
        return _runtime


def set_runtime(runtime: Optional[Runtime]) -> None:
    """Replace the shared Runtime (tests, embedding hosts)."""
    global _runtime
    with _runtime_lock:
        _runtime = runtime
