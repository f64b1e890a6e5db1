"""
Claim Registry - The Heart of the System

A proof-of-existence registry. Whoever registers a byte sequence first
holds the proof until they revoke it or hand it to someone else.

The registry:
- Accepts create / revoke / transfer from a verified caller
- Enforces the length bound, uniqueness and ownership rules
- Commits exactly one state change per successful operation
- Returns a notification and hands it to the host's sink

Rules (enforced in code, in this order):
- Claims longer than MaxClaimLength are rejected before any lookup
- A live claim can never be created again, not even by its owner
- Only the current owner can revoke or transfer
- Transfer replaces the record in place and refreshes registered_at,
  including when the receiver is the caller

ARCHITECTURE NOTE:
- ClaimRegistry: business rules, notifications
- ProofStore: atomic write transactions, storage

The caller identity and the logical clock are parameters of every call.
The registry never reads them from ambient state and keeps no state of
its own between calls.
"""

from typing import Callable, Optional

from ..db.store import InMemoryProofStore, ProofStore
from ..observability import get_logger
from ..schemas import (
    ClaimCreated,
    ClaimRevoked,
    ClaimState,
    ClaimTransferred,
    Notification,
    OwnershipRecord,
)
from .config import RegistryConfig


logger = get_logger(__name__)


NotificationSink = Callable[[Notification], None]


class RegistryError(Exception):
    """
    Base exception for rejected registry operations.

    Every subclass is an expected outcome of bad input or stale
    assumptions. `code` is stable and safe to show to end actors.
    """
    code = "RegistryError"

    def __init__(self, claim: bytes, message: str):
        self.claim = bytes(claim)
        super().__init__(message)


class ClaimTooLong(RegistryError):
    """Raised when a claim exceeds MaxClaimLength."""
    code = "ClaimTooLong"


class ProofAlreadyExist(RegistryError):
    """Raised when creating a claim that is already live."""
    code = "ProofAlreadyExist"


class ClaimNotExist(RegistryError):
    """Raised when revoking or transferring a claim that is not live."""
    code = "ClaimNotExist"


class NotClaimOwner(RegistryError):
    """Raised when someone other than the owner revokes or transfers."""
    code = "NotClaimOwner"


class ClaimRegistry:
    """
    The core claim registry.

    STATE GUARANTEES:
    - Every stored claim is at most max_claim_length bytes
    - A claim is stored iff it was created and not revoked since
    - registered_at is the clock value of the create/transfer that set the owner

    ATOMICITY GUARANTEES:
    - All checks run before any change is staged
    - The sink runs inside the write transaction; if it raises, nothing commits
    - A rejected operation changes nothing and notifies no one
    """

    def __init__(
        self,
        store: Optional[ProofStore] = None,
        config: Optional[RegistryConfig] = None,
        sink: Optional[NotificationSink] = None,
    ):
        """
        Initialize ClaimRegistry.

        Args:
            store: ProofStore holding the claim mapping.
                   If None, creates an InMemoryProofStore.
            config: Static parameters. If None, uses defaults.
            sink: Optional host callback receiving each notification.
        """
        if store is None:
            store = InMemoryProofStore()
        self._store = store
        self._config = config or RegistryConfig()
        self._sink = sink

    @property
    def store(self) -> ProofStore:
        return self._store

    @property
    def config(self) -> RegistryConfig:
        return self._config

    @property
    def max_claim_length(self) -> int:
        return self._config.max_claim_length

    # ================================================================
    # VALIDATION
    # ================================================================

    def _ensure_bounded(self, claim: bytes) -> bytes:
        """Length-only check. Runs before any lookup."""
        claim = bytes(claim)
        if len(claim) > self._config.max_claim_length:
            raise ClaimTooLong(
                claim,
                f"Claim is {len(claim)} bytes; "
                f"maximum is {self._config.max_claim_length}",
            )
        return claim

    def _ensure_owned_by(self, tx, claim: bytes, caller: str) -> OwnershipRecord:
        record = tx.get(claim)
        if record is None:
            raise ClaimNotExist(claim, "Claim does not exist")
        if record.owner != caller:
            raise NotClaimOwner(claim, "Caller is not the owner of this claim")
        return record

    def _emit(self, notification: Notification) -> None:
        if self._sink is not None:
            self._sink(notification)

    # ================================================================
    # OPERATIONS
    # ================================================================

    def create_claim(self, caller: str, claim: bytes, now: int) -> ClaimCreated:
        """
        Register a new proof of existence.

        Fails with ProofAlreadyExist if the claim is live, whoever owns it.
        """
        claim = self._ensure_bounded(claim)

        with self._store.begin_write() as tx:
            if tx.contains(claim):
                raise ProofAlreadyExist(claim, "Proof already exists for this claim")

            tx.put(claim, OwnershipRecord(owner=caller, registered_at=now))

            notification = ClaimCreated(who=caller, claim=claim)
            self._emit(notification)
            tx.commit()

        logger.debug("Claim created", owner=caller, claim_length=len(claim), block=now)
        return notification

    def revoke_claim(self, caller: str, claim: bytes) -> ClaimRevoked:
        """
        Erase a proof. Only the owner can revoke.

        The length check still runs first, so an oversized claim reports
        ClaimTooLong rather than ClaimNotExist.
        """
        claim = self._ensure_bounded(claim)

        with self._store.begin_write() as tx:
            self._ensure_owned_by(tx, claim, caller)

            tx.remove(claim)

            notification = ClaimRevoked(who=caller, claim=claim)
            self._emit(notification)
            tx.commit()

        logger.debug("Claim revoked", owner=caller, claim_length=len(claim))
        return notification

    def transfer_claim(
        self,
        caller: str,
        receiver: str,
        claim: bytes,
        now: int,
    ) -> ClaimTransferred:
        """
        Hand a proof to another actor.

        The record is overwritten under the same key, so the claim is
        never observably absent. receiver == caller is allowed and still
        refreshes registered_at.
        """
        claim = self._ensure_bounded(claim)

        with self._store.begin_write() as tx:
            self._ensure_owned_by(tx, claim, caller)

            tx.put(claim, OwnershipRecord(owner=receiver, registered_at=now))

            notification = ClaimTransferred(from_=caller, to=receiver, claim=claim)
            self._emit(notification)
            tx.commit()

        logger.debug(
            "Claim transferred",
            owner=caller,
            receiver=receiver,
            claim_length=len(claim),
            block=now,
        )
        return notification

    # ================================================================
    # QUERIES
    # ================================================================

    def get_proof(self, claim: bytes) -> Optional[OwnershipRecord]:
        """Exact-key lookup. None if the claim is not live."""
        return self._store.get(bytes(claim))

    def claim_state(self, claim: bytes) -> ClaimState:
        if self.get_proof(claim) is None:
            return ClaimState.ABSENT
        return ClaimState.OWNED

    def __contains__(self, claim: bytes) -> bool:
        return self._store.contains(bytes(claim))

    def __len__(self) -> int:
        return self._store.count()
