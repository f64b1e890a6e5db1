# Core registry services
from .config import RegistryConfig, RuntimeConfig
from .hasher import Hasher, CanonicalSerializationError
from .registry import (
    ClaimRegistry,
    RegistryError,
    ClaimTooLong,
    ProofAlreadyExist,
    ClaimNotExist,
    NotClaimOwner,
)
from .journal import EventJournal, JournalIntegrityError
from .signer import Signer
from .runtime import Runtime, ManualBlockClock, WallBlockClock

__all__ = [
    "RegistryConfig",
    "RuntimeConfig",
    "Hasher",
    "CanonicalSerializationError",
    "ClaimRegistry",
    "RegistryError",
    "ClaimTooLong",
    "ProofAlreadyExist",
    "ClaimNotExist",
    "NotClaimOwner",
    "EventJournal",
    "JournalIntegrityError",
    "Signer",
    "Runtime",
    "ManualBlockClock",
    "WallBlockClock",
]
