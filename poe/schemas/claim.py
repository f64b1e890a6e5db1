"""
Claim Schema

A claim is a raw byte sequence. Its registration is the proof:
whoever holds the live record registered those exact bytes first.

The registry is a plain mapping:

    claim bytes -> OwnershipRecord(owner, registered_at)

Nothing else is stored. Presence of a key IS the proof.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ClaimState(str, Enum):
    """
    Per-claim lifecycle state.

    ABSENT -> OWNED     (create_claim, the only way in)
    OWNED  -> OWNED     (transfer_claim, owner and registered_at refreshed)
    OWNED  -> ABSENT    (revoke_claim, the key may be created again later)
    """
    ABSENT = "absent"
    OWNED = "owned"


class OwnershipRecord(BaseModel):
    """
    The value stored against a live claim.

    Records are replaced, never edited in place.
    """
    model_config = ConfigDict(frozen=True)

    owner: str = Field(
        ...,
        description="Opaque identity of the current owner (compared for equality only)"
    )

    registered_at: int = Field(
        ...,
        ge=0,
        description="Logical clock value at the create or transfer that set the current owner"
    )


def claim_to_hex(claim: bytes) -> str:
    """Render claim bytes as 0x-prefixed lowercase hex."""
    return "0x" + bytes(claim).hex()


def claim_from_hex(value: str) -> bytes:
    """
    Parse a hex claim, with or without 0x prefix.

    Whitespace anywhere is rejected so every claim has a single spelling
    up to case and prefix.

    Raises ValueError on malformed input.
    """
    if any(c.isspace() for c in value):
        raise ValueError("Claim hex must not contain whitespace")
    text = value
    if text[:2].lower() == "0x":
        text = text[2:]
    return bytes.fromhex(text)
