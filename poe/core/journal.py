"""
Event Journal

Host-side sink for registry notifications.

Each notification becomes a RegistryEvent that is:
- Numbered (0, 1, 2, ... no gaps)
- Stamped with the block it happened in
- Hashed and chained to the previous event

Anyone holding an exported journal can re-verify it without the registry.
"""

from datetime import datetime, timezone
from threading import Lock
from typing import Any, Iterable, Optional

from ..schemas import Notification, RegistryEvent, claim_to_hex
from .hasher import Hasher


class JournalIntegrityError(Exception):
    """Raised when a journal chain does not verify."""
    pass


def _hash_input(
    sequence_number: int,
    block_number: int,
    event_type: str,
    payload: dict[str, Any],
) -> dict[str, Any]:
    return {
        "sequence_number": sequence_number,
        "block_number": block_number,
        "event_type": event_type,
        "payload": payload,
    }


class EventJournal:
    """
    Append-only, hash-chained log of notifications.

    CHAIN GUARANTEES:
    - previous_event_hash is None ONLY for sequence 0
    - event_hash = SHA256(previous_hash ":" canonical(seq, block, type, payload))
    """

    def __init__(self):
        self._events: list[RegistryEvent] = []
        self._lock = Lock()

    @property
    def head(self) -> Optional[str]:
        """Hash of the last event (None when empty)."""
        return self._events[-1].event_hash if self._events else None

    def __len__(self) -> int:
        return len(self._events)

    def record(self, notification: Notification, block_number: int) -> RegistryEvent:
        """Append a notification and return the chained event."""
        payload = notification.model_dump(mode="json", by_alias=True, exclude={"event_type"})
        event_type = notification.event_type

        with self._lock:
            sequence_number = len(self._events)
            previous_hash = self.head
            event_hash = Hasher.hash_event(
                _hash_input(sequence_number, block_number, event_type.value, payload),
                previous_hash,
            )
            event = RegistryEvent(
                sequence_number=sequence_number,
                block_number=block_number,
                event_type=event_type,
                payload=payload,
                previous_event_hash=previous_hash,
                event_hash=event_hash,
                recorded_at=datetime.now(timezone.utc),
            )
            self._events.append(event)

        return event

    def events(self) -> list[RegistryEvent]:
        return list(self._events)

    def events_for_claim(self, claim: bytes) -> list[RegistryEvent]:
        """History of one claim, oldest first."""
        claim_hex = claim_to_hex(claim)
        return [e for e in self._events if e.claim_hex == claim_hex]

    def verify_chain_integrity(self) -> bool:
        try:
            self.verify_events(self.events())
        except JournalIntegrityError:
            return False
        return True

    @staticmethod
    def verify_events(events: Iterable[RegistryEvent]) -> None:
        """
        Verify an ordered sequence of events.

        Raises JournalIntegrityError on the first broken link.
        """
        previous_hash = None
        for expected_sequence, event in enumerate(events):
            if event.sequence_number != expected_sequence:
                raise JournalIntegrityError(
                    f"Sequence gap: expected {expected_sequence}, got {event.sequence_number}"
                )
            if event.previous_event_hash != previous_hash:
                raise JournalIntegrityError(
                    f"Event {event.sequence_number} does not link to its predecessor"
                )
            hash_input = _hash_input(
                event.sequence_number,
                event.block_number,
                event.event_type.value,
                event.payload,
            )
            if not Hasher.verify_chain(hash_input, event.event_hash, previous_hash):
                raise JournalIntegrityError(
                    f"Hash mismatch at event {event.sequence_number}"
                )
            previous_hash = event.event_hash
