"""
Tests for the Claim Registry

Covers the three operations, their check ordering, and the
all-or-nothing guarantee:
1. Length bound checked first
2. Uniqueness on create
3. Existence and ownership on revoke / transfer
4. Lifecycle round trips
5. Failed operations change nothing and notify no one
"""

import pytest

from poe.core import (
    ClaimNotExist,
    ClaimRegistry,
    ClaimTooLong,
    NotClaimOwner,
    ProofAlreadyExist,
    RegistryConfig,
    RegistryError,
)
from poe.db import InMemoryProofStore
from poe.schemas import (
    ClaimCreated,
    ClaimRevoked,
    ClaimState,
    ClaimTransferred,
    OwnershipRecord,
    claim_from_hex,
    claim_to_hex,
)


ALICE = "alice"
BOB = "bob"
CAROL = "carol"


@pytest.fixture
def store():
    return InMemoryProofStore()


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def registry(store, notifications):
    return ClaimRegistry(
        store=store,
        config=RegistryConfig(max_claim_length=32),
        sink=notifications.append,
    )


class TestRegistryConfig:
    """MaxClaimLength is a positive integer fixed at setup."""

    def test_default_bound(self):
        assert RegistryConfig().max_claim_length == 512

    @pytest.mark.parametrize("value", [0, -1])
    def test_non_positive_rejected(self, value):
        with pytest.raises(ValueError, match="positive"):
            RegistryConfig(max_claim_length=value)

    def test_config_is_frozen(self):
        config = RegistryConfig(max_claim_length=8)
        with pytest.raises(AttributeError):
            config.max_claim_length = 9

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("POE_MAX_CLAIM_LENGTH", "64")
        assert RegistryConfig.from_env().max_claim_length == 64

    def test_from_env_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("POE_MAX_CLAIM_LENGTH", "lots")
        with pytest.raises(ValueError, match="POE_MAX_CLAIM_LENGTH"):
            RegistryConfig.from_env()

    def test_registry_defaults_to_in_memory_store(self):
        registry = ClaimRegistry()
        assert isinstance(registry.store, InMemoryProofStore)
        assert registry.max_claim_length == 512


class TestCreateClaim:

    def test_create_claim(self, registry, notifications):
        """Scenario 1: Alice registers doc1 at block 10."""
        notification = registry.create_claim(ALICE, b"doc1", 10)

        assert notification == ClaimCreated(who=ALICE, claim=b"doc1")
        assert notifications == [notification]
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=ALICE, registered_at=10)
        assert registry.claim_state(b"doc1") == ClaimState.OWNED
        assert b"doc1" in registry
        assert len(registry) == 1

    def test_cannot_create_existing_claim(self, registry, notifications):
        """Scenario 2: doc1 is already Alice's."""
        registry.create_claim(ALICE, b"doc1", 10)

        with pytest.raises(ProofAlreadyExist) as exc_info:
            registry.create_claim(BOB, b"doc1", 11)

        assert exc_info.value.code == "ProofAlreadyExist"
        assert exc_info.value.claim == b"doc1"
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=ALICE, registered_at=10)
        assert len(notifications) == 1

    def test_owner_cannot_create_own_claim_again(self, registry):
        registry.create_claim(ALICE, b"doc1", 10)

        with pytest.raises(ProofAlreadyExist):
            registry.create_claim(ALICE, b"doc1", 12)

        assert registry.get_proof(b"doc1").registered_at == 10

    def test_claim_too_long(self, registry, notifications):
        """Scenario 6: 33 bytes against a 32 byte bound."""
        with pytest.raises(ClaimTooLong) as exc_info:
            registry.create_claim(CAROL, b"x" * 33, 5)

        assert exc_info.value.code == "ClaimTooLong"
        assert len(registry) == 0
        assert notifications == []

    def test_claim_at_exact_bound_accepted(self, registry):
        registry.create_claim(CAROL, b"x" * 32, 5)
        assert registry.get_proof(b"x" * 32).owner == CAROL

    def test_empty_claim_accepted(self, registry):
        registry.create_claim(ALICE, b"", 0)
        assert registry.claim_state(b"") == ClaimState.OWNED

    def test_length_checked_before_lookup(self, store, notifications):
        """An oversized claim is rejected even if a record somehow exists for it."""
        long_claim = b"y" * 40
        with store.begin_write() as tx:
            tx.put(long_claim, OwnershipRecord(owner=ALICE, registered_at=1))
            tx.commit()

        registry = ClaimRegistry(store=store, config=RegistryConfig(max_claim_length=32))
        with pytest.raises(ClaimTooLong):
            registry.create_claim(BOB, long_claim, 2)

    def test_claims_compared_by_bytes(self, registry):
        registry.create_claim(ALICE, b"doc1", 1)
        registry.create_claim(BOB, bytearray(b"doc2"), 1)

        with pytest.raises(ProofAlreadyExist):
            registry.create_claim(BOB, bytearray(b"doc1"), 2)
        assert registry.get_proof(b"doc2").owner == BOB

    def test_identities_are_opaque(self, registry, notifications):
        """Any string is a valid owner, including the empty one."""
        registry.create_claim("", b"doc1", 1)
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner="", registered_at=1)

        with pytest.raises(NotClaimOwner):
            registry.revoke_claim(ALICE, b"doc1")
        registry.revoke_claim("", b"doc1")
        assert len(notifications) == 2


class TestRevokeClaim:

    def test_revoke_claim(self, registry, notifications):
        """Scenario 4."""
        registry.create_claim(ALICE, b"doc1", 10)

        notification = registry.revoke_claim(ALICE, b"doc1")

        assert notification == ClaimRevoked(who=ALICE, claim=b"doc1")
        assert notifications[-1] == notification
        assert registry.get_proof(b"doc1") is None
        assert registry.claim_state(b"doc1") == ClaimState.ABSENT

    def test_non_owner_cannot_revoke(self, registry, notifications):
        """Scenario 3."""
        registry.create_claim(ALICE, b"doc1", 10)

        with pytest.raises(NotClaimOwner) as exc_info:
            registry.revoke_claim(BOB, b"doc1")

        assert exc_info.value.code == "NotClaimOwner"
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=ALICE, registered_at=10)
        assert len(notifications) == 1

    def test_revoke_absent_claim(self, registry):
        with pytest.raises(ClaimNotExist) as exc_info:
            registry.revoke_claim(ALICE, b"never")
        assert exc_info.value.code == "ClaimNotExist"

    def test_revoke_oversized_reports_too_long(self, registry):
        """Length is checked before existence, even though it can never exist."""
        with pytest.raises(ClaimTooLong):
            registry.revoke_claim(ALICE, b"z" * 33)

    def test_cannot_revoke_twice(self, registry):
        registry.create_claim(ALICE, b"doc1", 10)
        registry.revoke_claim(ALICE, b"doc1")

        with pytest.raises(ClaimNotExist):
            registry.revoke_claim(ALICE, b"doc1")


class TestTransferClaim:

    def test_transfer_claim(self, registry, notifications):
        """Scenario 5."""
        registry.create_claim(ALICE, b"doc1", 10)

        notification = registry.transfer_claim(ALICE, BOB, b"doc1", 20)

        assert notification == ClaimTransferred(from_=ALICE, to=BOB, claim=b"doc1")
        assert notifications[-1] == notification
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=BOB, registered_at=20)

    def test_new_owner_controls_claim(self, registry):
        registry.create_claim(ALICE, b"doc1", 10)
        registry.transfer_claim(ALICE, BOB, b"doc1", 20)

        with pytest.raises(NotClaimOwner):
            registry.revoke_claim(ALICE, b"doc1")
        with pytest.raises(NotClaimOwner):
            registry.transfer_claim(ALICE, CAROL, b"doc1", 21)

        registry.transfer_claim(BOB, CAROL, b"doc1", 22)
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=CAROL, registered_at=22)

    def test_self_transfer_refreshes_registration(self, registry, notifications):
        registry.create_claim(ALICE, b"doc1", 10)

        notification = registry.transfer_claim(ALICE, ALICE, b"doc1", 30)

        assert notification == ClaimTransferred(from_=ALICE, to=ALICE, claim=b"doc1")
        assert notifications[-1] == notification
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=ALICE, registered_at=30)

    def test_non_owner_cannot_transfer(self, registry, notifications):
        registry.create_claim(ALICE, b"doc1", 10)

        with pytest.raises(NotClaimOwner):
            registry.transfer_claim(BOB, BOB, b"doc1", 20)

        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=ALICE, registered_at=10)
        assert len(notifications) == 1

    def test_transfer_absent_claim(self, registry):
        with pytest.raises(ClaimNotExist):
            registry.transfer_claim(ALICE, BOB, b"nothing", 3)

    def test_transfer_oversized_reports_too_long(self, registry):
        with pytest.raises(ClaimTooLong):
            registry.transfer_claim(ALICE, BOB, b"q" * 100, 3)

    def test_transfer_never_removes_presence(self, store):
        """Readers only ever see the old or new record, never an absent key."""
        observed = []

        def sink(notification):
            observed.append(store.get(b"doc1"))

        registry = ClaimRegistry(store=store, config=RegistryConfig(max_claim_length=32), sink=sink)
        registry.create_claim(ALICE, b"doc1", 1)
        registry.transfer_claim(ALICE, BOB, b"doc1", 2)

        assert observed[-1] == OwnershipRecord(owner=ALICE, registered_at=1)
        assert store.get(b"doc1") == OwnershipRecord(owner=BOB, registered_at=2)

    def test_transfer_to_empty_identity(self, registry):
        registry.create_claim(ALICE, b"doc1", 1)

        notification = registry.transfer_claim(ALICE, "", b"doc1", 2)

        assert notification == ClaimTransferred(from_=ALICE, to="", claim=b"doc1")
        assert registry.get_proof(b"doc1") == OwnershipRecord(owner="", registered_at=2)
        with pytest.raises(NotClaimOwner):
            registry.transfer_claim(ALICE, BOB, b"doc1", 3)


class TestLifecycle:

    def test_recreate_after_revoke(self, registry, notifications):
        registry.create_claim(ALICE, b"doc1", 1)
        registry.revoke_claim(ALICE, b"doc1")

        registry.create_claim(BOB, b"doc1", 2)

        assert registry.get_proof(b"doc1") == OwnershipRecord(owner=BOB, registered_at=2)
        assert [type(n) for n in notifications] == [ClaimCreated, ClaimRevoked, ClaimCreated]

    def test_claims_are_independent(self, registry):
        registry.create_claim(ALICE, b"a", 1)
        registry.create_claim(BOB, b"b", 1)
        registry.revoke_claim(ALICE, b"a")

        assert registry.claim_state(b"a") == ClaimState.ABSENT
        assert registry.get_proof(b"b").owner == BOB

    def test_errors_share_base_class(self):
        for error_type in (ClaimTooLong, ProofAlreadyExist, ClaimNotExist, NotClaimOwner):
            assert issubclass(error_type, RegistryError)
            assert error_type.code == error_type.__name__


class TestAtomicity:
    """A rejected operation changes nothing and emits nothing."""

    @pytest.fixture
    def seeded(self, registry, store, notifications):
        registry.create_claim(ALICE, b"doc1", 10)
        registry.create_claim(BOB, b"doc2", 11)
        notifications.clear()
        return store.snapshot()

    @pytest.mark.parametrize("operation", [
        lambda r: r.create_claim(BOB, b"doc1", 12),
        lambda r: r.create_claim(BOB, b"w" * 33, 12),
        lambda r: r.revoke_claim(ALICE, b"doc2"),
        lambda r: r.revoke_claim(ALICE, b"missing"),
        lambda r: r.revoke_claim(ALICE, b"w" * 33),
        lambda r: r.transfer_claim(BOB, CAROL, b"doc1", 12),
        lambda r: r.transfer_claim(ALICE, CAROL, b"missing", 12),
        lambda r: r.transfer_claim(ALICE, CAROL, b"w" * 33, 12),
    ])
    def test_rejection_leaves_state_unchanged(self, registry, store, notifications, seeded, operation):
        with pytest.raises(RegistryError):
            operation(registry)

        assert store.snapshot() == seeded
        assert notifications == []

    def test_sink_failure_rolls_back(self, store):
        def failing_sink(notification):
            raise RuntimeError("observer unavailable")

        registry = ClaimRegistry(
            store=store,
            config=RegistryConfig(max_claim_length=32),
            sink=failing_sink,
        )

        with pytest.raises(RuntimeError, match="observer unavailable"):
            registry.create_claim(ALICE, b"doc1", 1)

        assert store.get(b"doc1") is None
        assert store.count() == 0

    def test_store_usable_after_rejection(self, registry):
        with pytest.raises(ClaimNotExist):
            registry.revoke_claim(ALICE, b"doc1")

        # The write lock was released
        registry.create_claim(ALICE, b"doc1", 1)
        assert registry.get_proof(b"doc1").owner == ALICE


class TestClaimHex:

    @pytest.mark.parametrize("value", ["0x646f6331", "646f6331", "0X646F6331"])
    def test_accepted_spellings(self, value):
        assert claim_from_hex(value) == b"doc1"

    @pytest.mark.parametrize("value", ["64 6f 63 31", " 0x646f6331", "0x646f6331\n", "0x64\t6f6331"])
    def test_whitespace_rejected(self, value):
        with pytest.raises(ValueError, match="whitespace"):
            claim_from_hex(value)

    @pytest.mark.parametrize("value", ["0xzz", "0x646", "doc1"])
    def test_malformed_rejected(self, value):
        with pytest.raises(ValueError):
            claim_from_hex(value)

    def test_rendering_is_lowercase_prefixed(self):
        assert claim_to_hex(b"doc1") == "0x646f6331"
        assert claim_to_hex(b"") == "0x"
