"""
Proof Store Abstraction

This module defines the ProofStore interface and provides two implementations:
- InMemoryProofStore: For development and testing
- PostgresProofStore: For deployments that need durability across restarts

The ProofStore is responsible for:
- Holding the claim -> OwnershipRecord mapping
- Single-writer-at-a-time write transactions
- All-or-nothing commit of staged changes

The ClaimRegistry retains responsibility for:
- Length bound, uniqueness and ownership rules
- Building notifications

TRANSACTION CONTRACT:
All writes MUST go through the begin_write() context manager:

    with store.begin_write() as tx:
        record = tx.get(claim)
        tx.put(claim, new_record)      # or tx.remove(claim)
        tx.commit()

Nothing staged on tx is visible to other readers until commit().
Leaving the block without commit() (or by exception) rolls back.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Generator, Optional

import psycopg2

from ..observability import get_logger
from ..schemas import OwnershipRecord


logger = get_logger(__name__)


# ============================================================
# EXCEPTIONS
# ============================================================

class ProofStoreError(Exception):
    """Base exception for proof store errors."""
    pass


class TransactionStateError(ProofStoreError):
    """Raised when a write context is used after commit or rollback."""
    pass


class LockTimeoutError(ProofStoreError):
    """Raised when lock acquisition times out (store busy)."""
    pass


# ============================================================
# DATA STRUCTURES
# ============================================================

@dataclass
class WriteContext:
    """
    Transaction context for one registry operation.

    Holds the connection (or lock marker) and the staged changes.
    A staged value of None means "remove this claim".

    THREAD SAFETY: All transaction state lives HERE, not on the store,
    so one store instance can be shared across threads.
    """
    _store: "ProofStore"
    _conn: Any = field(default=None)
    _cursor: Any = field(default=None)
    _staged: dict[bytes, Optional[OwnershipRecord]] = field(default_factory=dict)
    _committed: bool = field(default=False, init=False)
    _rolled_back: bool = field(default=False, init=False)

    def _require_open(self) -> None:
        if self._committed:
            raise TransactionStateError("Transaction already committed")
        if self._rolled_back:
            raise TransactionStateError("Transaction already rolled back")

    def get(self, claim: bytes) -> Optional[OwnershipRecord]:
        """Read a record, seeing this transaction's own staged writes."""
        self._require_open()
        key = bytes(claim)
        if key in self._staged:
            return self._staged[key]
        return self._store._read_for_update(self, key)

    def contains(self, claim: bytes) -> bool:
        return self.get(claim) is not None

    def put(self, claim: bytes, record: OwnershipRecord) -> None:
        """Stage an insert or overwrite."""
        self._require_open()
        self._staged[bytes(claim)] = record

    def remove(self, claim: bytes) -> None:
        """Stage a delete."""
        self._require_open()
        self._staged[bytes(claim)] = None

    @property
    def pending(self) -> int:
        """Number of staged changes."""
        return len(self._staged)

    def commit(self) -> None:
        """Apply every staged change atomically."""
        self._require_open()
        self._store._do_commit(self, dict(self._staged))
        self._committed = True
        self._staged.clear()

    def rollback(self) -> None:
        """Discard staged changes and release the transaction."""
        if not self._committed and not self._rolled_back:
            self._store._do_rollback(self)
            self._rolled_back = True
            self._staged.clear()


# ============================================================
# ABSTRACT BASE CLASS
# ============================================================

class ProofStore(ABC):
    """
    Abstract base class for proof storage.

    Implementations must ensure:
    1. At most one open write transaction touches a given claim at a time
    2. commit() applies all staged changes or none of them
    3. A transaction left without commit() changes nothing

    CRITICAL: Always use begin_write() for write operations:

        with store.begin_write() as tx:
            tx.put(claim, record)
            tx.commit()
    """

    @contextmanager
    @abstractmethod
    def begin_write(self) -> Generator[WriteContext, None, None]:
        """
        Begin a write transaction.

        Yields:
            WriteContext with get/put/remove/commit
        """
        pass

    @abstractmethod
    def _read_for_update(self, ctx: WriteContext, claim: bytes) -> Optional[OwnershipRecord]:
        """Internal: read inside ctx, locking the claim where the backend needs it."""
        pass

    @abstractmethod
    def _do_commit(
        self,
        ctx: WriteContext,
        staged: dict[bytes, Optional[OwnershipRecord]],
    ) -> None:
        """Internal: apply staged changes. Use ctx.commit() instead."""
        pass

    @abstractmethod
    def _do_rollback(self, ctx: WriteContext) -> None:
        """Internal: abandon the transaction. Use ctx.rollback() instead."""
        pass

    @abstractmethod
    def get(self, claim: bytes) -> Optional[OwnershipRecord]:
        """Point lookup outside any transaction."""
        pass

    @abstractmethod
    def count(self) -> int:
        """Number of live claims."""
        pass

    def contains(self, claim: bytes) -> bool:
        return self.get(claim) is not None


# ============================================================
# IN-MEMORY IMPLEMENTATION
# ============================================================

_IN_MEMORY_LOCK = "in_memory_lock"


class InMemoryProofStore(ProofStore):
    """
    In-memory implementation of ProofStore.

    Suitable for:
    - Development
    - Testing
    - Single-process hosts without persistence requirements

    NOT suitable for:
    - Anything that must survive a restart
    """

    def __init__(self):
        self._proofs: dict[bytes, OwnershipRecord] = {}
        self._lock = Lock()

    @contextmanager
    def begin_write(self) -> Generator[WriteContext, None, None]:
        """Begin a write transaction holding the store lock."""
        self._lock.acquire()
        ctx = WriteContext(_store=self, _conn=_IN_MEMORY_LOCK)
        try:
            yield ctx
        finally:
            if ctx._conn == _IN_MEMORY_LOCK:
                ctx.rollback()

    def _read_for_update(self, ctx: WriteContext, claim: bytes) -> Optional[OwnershipRecord]:
        if ctx._conn != _IN_MEMORY_LOCK:
            raise TransactionStateError("Read called outside transaction")
        return self._proofs.get(claim)

    def _do_commit(
        self,
        ctx: WriteContext,
        staged: dict[bytes, Optional[OwnershipRecord]],
    ) -> None:
        if ctx._conn != _IN_MEMORY_LOCK:
            raise TransactionStateError("_do_commit called outside transaction")
        try:
            for claim, record in staged.items():
                if record is None:
                    self._proofs.pop(claim, None)
                else:
                    self._proofs[claim] = record
        finally:
            ctx._conn = None
            self._lock.release()

    def _do_rollback(self, ctx: WriteContext) -> None:
        """Release lock without committing."""
        if ctx._conn == _IN_MEMORY_LOCK:
            ctx._conn = None
            self._lock.release()

    def get(self, claim: bytes) -> Optional[OwnershipRecord]:
        return self._proofs.get(bytes(claim))

    def count(self) -> int:
        return len(self._proofs)

    def snapshot(self) -> dict[bytes, OwnershipRecord]:
        """Copy of the full mapping (records are immutable)."""
        return dict(self._proofs)

    def clear(self) -> None:
        """Clear all proofs (for testing only)."""
        with self._lock:
            self._proofs.clear()


# ============================================================
# POSTGRESQL IMPLEMENTATION
# ============================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS proofs (
    claim BYTEA PRIMARY KEY,
    owner TEXT NOT NULL,
    registered_at BIGINT NOT NULL CHECK (registered_at >= 0)
)
"""


class PostgresProofStore(ProofStore):
    """
    PostgreSQL implementation of ProofStore.

    Provides:
    - Durability (proofs survive restarts)
    - Per-claim serialization via transaction-scoped advisory locks,
      which also cover claims that do not exist yet
    - Lock/statement timeouts to prevent hanging

    Usage:
        store = PostgresProofStore(connection_factory)
        store.ensure_schema()
    """

    LOCK_TIMEOUT_MS = 2000
    STATEMENT_TIMEOUT_MS = 10000

    PGCODE_LOCK_NOT_AVAILABLE = '55P03'
    PGCODE_QUERY_CANCELED = '57014'

    def __init__(
        self,
        connection_factory: Callable[[], Any],
        lock_timeout_ms: int = LOCK_TIMEOUT_MS,
        statement_timeout_ms: int = STATEMENT_TIMEOUT_MS,
    ):
        """
        Args:
            connection_factory: Callable that returns a psycopg2 connection.
            lock_timeout_ms: How long to wait for a claim lock (ms).
            statement_timeout_ms: Max statement execution time (ms).
        """
        self._connection_factory = connection_factory
        self._lock_timeout_ms = lock_timeout_ms
        self._statement_timeout_ms = statement_timeout_ms

    def ensure_schema(self) -> None:
        """Create the proofs table if missing."""
        conn = self._connection_factory()
        try:
            with conn.cursor() as cursor:
                cursor.execute(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def begin_write(self) -> Generator[WriteContext, None, None]:
        """
        Begin a write transaction on a dedicated connection.

        The connection is scoped to this context manager so locking reads
        and the final commit always share one transaction.
        """
        conn = self._connection_factory()
        conn.autocommit = False
        cursor = conn.cursor()
        ctx = None

        try:
            # SET LOCAL keeps timeouts transaction-scoped
            cursor.execute(f"SET LOCAL lock_timeout = '{int(self._lock_timeout_ms)}ms'")
            cursor.execute(f"SET LOCAL statement_timeout = '{int(self._statement_timeout_ms)}ms'")

            ctx = WriteContext(_store=self, _conn=conn, _cursor=cursor)
            yield ctx

        finally:
            if ctx is not None and not ctx._committed and not ctx._rolled_back:
                try:
                    conn.rollback()
                except psycopg2.Error as e:
                    logger.warning("Rollback failed on broken connection", error=str(e))
            try:
                cursor.close()
            finally:
                conn.close()

    def _timeout_kind(self, e: Exception) -> Optional[str]:
        """
        Classify a PostgreSQL failure as "lock", "statement", or None.

        57014 (query_canceled) covers both lock_timeout and
        statement_timeout; the message tells them apart.
        """
        pgcode = getattr(e, 'pgcode', None)
        err_msg = (getattr(e, 'pgerror', None) or str(e)).lower()

        if pgcode == self.PGCODE_LOCK_NOT_AVAILABLE:
            return "lock"

        if pgcode == self.PGCODE_QUERY_CANCELED:
            if 'lock timeout' in err_msg or 'lock_timeout' in err_msg:
                return "lock"
            if 'statement timeout' in err_msg or 'statement_timeout' in err_msg:
                return "statement"
            return "lock"

        return None

    def _execute(self, cursor, sql: str, params: tuple = ()) -> None:
        try:
            cursor.execute(sql, params)
        except psycopg2.Error as e:
            kind = self._timeout_kind(e)
            if kind == "lock":
                raise LockTimeoutError(
                    "Proof store busy - could not acquire claim lock. Try again."
                ) from e
            if kind == "statement":
                raise ProofStoreError(
                    "Query timed out - statement took too long."
                ) from e
            raise ProofStoreError(f"Proof store query failed: {e}") from e

    def _read_for_update(self, ctx: WriteContext, claim: bytes) -> Optional[OwnershipRecord]:
        if ctx._cursor is None:
            raise TransactionStateError("Read called outside begin_write context")

        cursor = ctx._cursor
        # Advisory lock first: FOR UPDATE alone cannot lock a row that is absent
        self._execute(
            cursor,
            "SELECT pg_advisory_xact_lock(hashtextextended(encode(%s, 'hex'), 0))",
            (psycopg2.Binary(claim),),
        )
        self._execute(
            cursor,
            "SELECT owner, registered_at FROM proofs WHERE claim = %s FOR UPDATE",
            (psycopg2.Binary(claim),),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return OwnershipRecord(owner=row[0], registered_at=row[1])

    def _do_commit(
        self,
        ctx: WriteContext,
        staged: dict[bytes, Optional[OwnershipRecord]],
    ) -> None:
        if ctx._cursor is None or ctx._conn is None:
            raise TransactionStateError("_do_commit called outside begin_write context")

        cursor = ctx._cursor
        for claim, record in staged.items():
            if record is None:
                self._execute(
                    cursor,
                    "DELETE FROM proofs WHERE claim = %s",
                    (psycopg2.Binary(claim),),
                )
            else:
                self._execute(
                    cursor,
                    """
                    INSERT INTO proofs (claim, owner, registered_at)
                    VALUES (%s, %s, %s)
                    ON CONFLICT (claim) DO UPDATE
                    SET owner = EXCLUDED.owner, registered_at = EXCLUDED.registered_at
                    """,
                    (psycopg2.Binary(claim), record.owner, record.registered_at),
                )

        try:
            ctx._conn.commit()
        except psycopg2.Error as e:
            raise ProofStoreError(f"Commit failed: {e}") from e

    def _do_rollback(self, ctx: WriteContext) -> None:
        if ctx._conn is not None:
            ctx._conn.rollback()

    def get(self, claim: bytes) -> Optional[OwnershipRecord]:
        conn = self._connection_factory()
        try:
            with conn.cursor() as cursor:
                self._execute(
                    cursor,
                    "SELECT owner, registered_at FROM proofs WHERE claim = %s",
                    (psycopg2.Binary(bytes(claim)),),
                )
                row = cursor.fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return OwnershipRecord(owner=row[0], registered_at=row[1])

    def count(self) -> int:
        conn = self._connection_factory()
        try:
            with conn.cursor() as cursor:
                self._execute(cursor, "SELECT COUNT(*) FROM proofs")
                return cursor.fetchone()[0]
        finally:
            conn.close()

    def clear(self) -> None:
        """Delete every proof (for testing only)."""
        conn = self._connection_factory()
        try:
            with conn.cursor() as cursor:
                self._execute(cursor, "DELETE FROM proofs")
            conn.commit()
        finally:
            conn.close()
