"""
Demonstration: Complete Claim Lifecycle

Walks one document through the registry: created, contested,
transferred, revoked, and re-created by someone else.

Run with: python -m examples.demo_lifecycle
"""

from poe.core import (
    ManualBlockClock,
    RegistryConfig,
    RegistryError,
    Runtime,
    Signer,
)


def _section(title: str) -> None:
    print("=" * 60)
    print(title)
    print("=" * 60)


def _attempt(label: str, fn) -> None:
    try:
        notification, event = fn()
    except RegistryError as e:
        print(f"[REJECTED] {label}: {e.code}")
        return
    print(f"[OK] {label}")
    print(f"   Event: {event.event_type.value} (block {event.block_number})")
    print(f"   Hash:  {event.event_hash[:16]}...")


def main():
    _section("Proof-of-Existence Registry - Lifecycle Demonstration")
    print()

    clock = ManualBlockClock(start=10)
    runtime = Runtime(
        registry_config=RegistryConfig(max_claim_length=32),
        clock=clock,
    )

    _, alice = Signer.generate_keypair()
    _, bob = Signer.generate_keypair()
    _, carol = Signer.generate_keypair()
    doc = b"doc1"

    print(f"Alice: {alice[:16]}...")
    print(f"Bob:   {bob[:16]}...")
    print(f"Carol: {carol[:16]}...")
    print()

    _section("STEP 1: ALICE CREATES doc1 (block 10)")
    _attempt("Alice creates doc1", lambda: runtime.create_claim(alice, doc))
    print()

    _section("STEP 2: BOB TRIES TO CREATE doc1")
    clock.advance()
    _attempt("Bob creates doc1", lambda: runtime.create_claim(bob, doc))
    print()

    _section("STEP 3: BOB TRIES TO REVOKE doc1")
    _attempt("Bob revokes doc1", lambda: runtime.revoke_claim(bob, doc))
    print()

    _section("STEP 4: ALICE TRANSFERS doc1 TO BOB (block 20)")
    clock.set(20)
    _attempt("Alice transfers doc1 to Bob", lambda: runtime.transfer_claim(alice, bob, doc))
    record = runtime.registry.get_proof(doc)
    print(f"   Owner is Bob: {record.owner == bob}, registered_at: {record.registered_at}")
    print()

    _section("STEP 5: BOB REVOKES doc1")
    _attempt("Bob revokes doc1", lambda: runtime.revoke_claim(bob, doc))
    print(f"   doc1 state: {runtime.registry.claim_state(doc).value}")
    print()

    _section("STEP 6: CAROL TRIES A 33-BYTE CLAIM")
    _attempt("Carol creates 33 bytes", lambda: runtime.create_claim(carol, b"x" * 33))
    print()

    _section("STEP 7: CAROL CREATES doc1 AFRESH")
    _attempt("Carol creates doc1", lambda: runtime.create_claim(carol, doc))
    print()

    _section("JOURNAL")
    for event in runtime.journal.events():
        print(f"   #{event.sequence_number} {event.event_type.value:<17} block {event.block_number}")
    print()
    print(f"Chain verified: {runtime.journal.verify_chain_integrity()}")

    return runtime


if __name__ == "__main__":
    main()
