"""
API Routes for the Proof Registry

Command endpoints (signed by the caller):
- POST /claims              - Create a proof of existence
- POST /claims/revoke       - Revoke a proof you own
- POST /claims/transfer     - Hand a proof you own to someone else

Query endpoints:
- GET /claims/{claim}           - Current owner and registration block
- GET /claims/{claim}/history   - Journal events for one claim
- GET /events                   - Full journal
- GET /events/verify            - Re-verify the journal hash chain
- GET /blocks/current           - Current logical block height
- GET /accounts/nonce?caller=   - Nonce for the caller's next signed call

Claims travel as hex (0x prefix optional).
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..core import (
    ClaimNotExist,
    ClaimTooLong,
    NotClaimOwner,
    ProofAlreadyExist,
    RegistryError,
    Runtime,
    Signer,
)
from ..observability import caller_id_var
from ..schemas import Notification, RegistryEvent, claim_from_hex, claim_to_hex
from .shared_runtime import get_runtime


router = APIRouter()


# Rejections map to a fixed status per error code
ERROR_STATUS: dict[type[RegistryError], int] = {
    ClaimTooLong: 422,
    ProofAlreadyExist: 409,
    ClaimNotExist: 404,
    NotClaimOwner: 403,
}


def status_for(error: RegistryError) -> int:
    return ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)


# ============================================================
# Request/Response Models
# ============================================================

class ClaimCallRequest(BaseModel):
    """A signed create or revoke call."""
    caller: str = Field(..., min_length=1, description="Base64 Ed25519 public key")
    claim: str = Field(..., description="Claim bytes as hex")
    signature: Optional[str] = Field(
        default=None,
        description="Base64 signature over the canonical call hash",
    )
    nonce: Optional[int] = Field(
        default=None,
        ge=0,
        description="Caller's current account nonce (GET /accounts/nonce)",
    )


class TransferCallRequest(ClaimCallRequest):
    """A signed transfer call."""
    receiver: str = Field(..., min_length=1, description="Base64 Ed25519 public key")


class DispatchResponse(BaseModel):
    """Outcome of a successful call."""
    event_type: str
    notification: dict[str, Any]
    block_number: int
    sequence_number: int
    event_hash: str


class ProofResponse(BaseModel):
    claim: str
    owner: str
    registered_at: int


class JournalEventResponse(BaseModel):
    sequence_number: int
    block_number: int
    event_type: str
    payload: dict[str, Any]
    previous_event_hash: Optional[str] = None
    event_hash: str
    recorded_at: str


class VerifyResponse(BaseModel):
    valid: bool
    event_count: int
    head: Optional[str] = None


class NonceResponse(BaseModel):
    caller: str
    nonce: int


# ============================================================
# Helpers
# ============================================================

def _parse_claim(value: str) -> bytes:
    try:
        return claim_from_hex(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Claim must be hex encoded",
        )


def _authenticate(
    runtime: Runtime,
    call: str,
    request: ClaimCallRequest,
    claim: bytes,
    receiver: Optional[str] = None,
) -> str:
    """
    Verify the caller's signature and consume their nonce.

    Returns the verified caller. A nonce is only consumed once the
    signature checks out, and stays consumed even if the registry then
    rejects the call.
    """
    if runtime.config.require_signatures:
        if (
            request.nonce is None
            or not request.signature
            or not Signer.verify_call(
                call, request.caller, claim, request.nonce, request.signature, receiver
            )
        ):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or missing signature",
            )
        if not runtime.use_nonce(request.caller, request.nonce):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Stale nonce; expected {runtime.account_nonce(request.caller)}",
            )
    caller_id_var.set(request.caller)
    return request.caller


def _dispatch_response(notification: Notification, event: RegistryEvent) -> DispatchResponse:
    return DispatchResponse(
        event_type=event.event_type.value,
        notification=notification.model_dump(mode="json", by_alias=True, exclude={"event_type"}),
        block_number=event.block_number,
        sequence_number=event.sequence_number,
        event_hash=event.event_hash,
    )


def _event_response(event: RegistryEvent) -> JournalEventResponse:
    return JournalEventResponse(
        sequence_number=event.sequence_number,
        block_number=event.block_number,
        event_type=event.event_type.value,
        payload=event.payload,
        previous_event_hash=event.previous_event_hash,
        event_hash=event.event_hash,
        recorded_at=event.recorded_at.isoformat(),
    )


# ============================================================
# Command Endpoints
# ============================================================

@router.post(
    "/claims",
    response_model=DispatchResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Registry Commands"],
    summary="Create a proof of existence",
)
def create_claim(
    request: ClaimCallRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """
    Register a claim to the caller at the current block.

    Fails with 409 if the claim is already live, whoever owns it.
    """
    claim = _parse_claim(request.claim)
    caller = _authenticate(runtime, "create_claim", request, claim)
    notification, event = runtime.create_claim(caller, claim)
    return _dispatch_response(notification, event)


@router.post(
    "/claims/revoke",
    response_model=DispatchResponse,
    tags=["Registry Commands"],
    summary="Revoke a proof of existence",
)
def revoke_claim(
    request: ClaimCallRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """Remove a claim owned by the caller."""
    claim = _parse_claim(request.claim)
    caller = _authenticate(runtime, "revoke_claim", request, claim)
    notification, event = runtime.revoke_claim(caller, claim)
    return _dispatch_response(notification, event)


@router.post(
    "/claims/transfer",
    response_model=DispatchResponse,
    tags=["Registry Commands"],
    summary="Transfer a proof of existence",
)
def transfer_claim(
    request: TransferCallRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """
    Give a claim owned by the caller to the receiver.

    The registration block is reset to the current block.
    """
    claim = _parse_claim(request.claim)
    caller = _authenticate(runtime, "transfer_claim", request, claim, request.receiver)
    notification, event = runtime.transfer_claim(caller, request.receiver, claim)
    return _dispatch_response(notification, event)


# ============================================================
# Query Endpoints
# ============================================================

@router.get(
    "/claims/{claim_hex}",
    response_model=ProofResponse,
    tags=["Registry Queries"],
    summary="Look up a proof",
)
def get_proof(claim_hex: str, runtime: Runtime = Depends(get_runtime)):
    claim = _parse_claim(claim_hex)
    record = runtime.registry.get_proof(claim)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Claim not found",
        )
    return ProofResponse(
        claim=claim_to_hex(claim),
        owner=record.owner,
        registered_at=record.registered_at,
    )


@router.get(
    "/claims/{claim_hex}/history",
    response_model=list[JournalEventResponse],
    tags=["Registry Queries"],
    summary="Journal events for one claim",
)
def get_claim_history(claim_hex: str, runtime: Runtime = Depends(get_runtime)):
    claim = _parse_claim(claim_hex)
    return [_event_response(e) for e in runtime.journal.events_for_claim(claim)]


@router.get(
    "/events",
    response_model=list[JournalEventResponse],
    tags=["Registry Queries"],
    summary="Full event journal",
)
def list_events(runtime: Runtime = Depends(get_runtime)):
    return [_event_response(e) for e in runtime.journal.events()]


@router.get(
    "/events/verify",
    response_model=VerifyResponse,
    tags=["Registry Queries"],
    summary="Verify the journal hash chain",
)
def verify_events(runtime: Runtime = Depends(get_runtime)):
    return VerifyResponse(
        valid=runtime.journal.verify_chain_integrity(),
        event_count=len(runtime.journal),
        head=runtime.journal.head,
    )


@router.get(
    "/blocks/current",
    tags=["Registry Queries"],
    summary="Current logical block height",
)
def current_block(runtime: Runtime = Depends(get_runtime)):
    return {"block_number": runtime.block_number}


@router.get(
    "/accounts/nonce",
    response_model=NonceResponse,
    tags=["Registry Queries"],
    summary="Nonce for the caller's next signed call",
)
def account_nonce(caller: str, runtime: Runtime = Depends(get_runtime)):
    return NonceResponse(caller=caller, nonce=runtime.account_nonce(caller))
