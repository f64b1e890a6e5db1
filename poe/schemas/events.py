"""
Canonical Event Schema

Every successful registry operation produces exactly one notification.
The host decides where notifications go; the registry only returns them
and hands them to an optional sink.

Notifications are journaled by the host as RegistryEvent records, which
are hashed and chained.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class EventType(str, Enum):
    """
    All possible event types.
    You can add more later, never remove.
    """
    CLAIM_CREATED = "ClaimCreated"
    CLAIM_REVOKED = "ClaimRevoked"
    CLAIM_TRANSFERRED = "ClaimTransferred"


# ============================================================
# Notifications
# ============================================================

class _Notification(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    claim: bytes

    @field_serializer("claim", when_used="json")
    def _claim_as_hex(self, claim: bytes) -> str:
        return "0x" + claim.hex()


class ClaimCreated(_Notification):
    """Emitted when `who` registers `claim`."""
    event_type: Literal[EventType.CLAIM_CREATED] = EventType.CLAIM_CREATED
    who: str


class ClaimRevoked(_Notification):
    """Emitted when `who` revokes their registration of `claim`."""
    event_type: Literal[EventType.CLAIM_REVOKED] = EventType.CLAIM_REVOKED
    who: str


class ClaimTransferred(_Notification):
    """
    Emitted when ownership of `claim` moves from `from_` to `to`.

    `from_` serializes as "from". Self-transfers (from_ == to) are valid.
    """
    event_type: Literal[EventType.CLAIM_TRANSFERRED] = EventType.CLAIM_TRANSFERRED
    from_: str = Field(..., alias="from")
    to: str


Notification = Union[ClaimCreated, ClaimRevoked, ClaimTransferred]


# ============================================================
# Journaled Event
# ============================================================

class RegistryEvent(BaseModel):
    """
    A notification as recorded by the host journal.

    previous_event_hash is None ONLY for the genesis event (sequence 0).
    """
    sequence_number: int = Field(..., ge=0)
    block_number: int = Field(..., ge=0)
    event_type: EventType

    # Canonical payload: claim as 0x-hex, "from" not "from_"
    payload: dict[str, Any]

    previous_event_hash: Optional[str] = None
    event_hash: str = Field(..., min_length=64, max_length=64)

    recorded_at: datetime

    @property
    def is_genesis(self) -> bool:
        return self.sequence_number == 0

    @property
    def claim_hex(self) -> str:
        return self.payload["claim"]
