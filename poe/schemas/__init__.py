# Canonical schemas for the proof-of-existence registry

from .claim import (
    ClaimState,
    OwnershipRecord,
    claim_from_hex,
    claim_to_hex,
)
from .events import (
    ClaimCreated,
    ClaimRevoked,
    ClaimTransferred,
    EventType,
    Notification,
    RegistryEvent,
)

__all__ = [
    # Claim
    "ClaimState",
    "OwnershipRecord",
    "claim_from_hex",
    "claim_to_hex",
    # Events
    "ClaimCreated",
    "ClaimRevoked",
    "ClaimTransferred",
    "EventType",
    "Notification",
    "RegistryEvent",
]
