"""
Registry and Runtime Configuration

Environment Variables:
    POE_MAX_CLAIM_LENGTH: Maximum claim length in bytes (default 512)
    POE_BLOCK_TIME_MS: Wall-clock length of one logical block (default 6000)
    POE_REQUIRE_SIGNATURES: Reject unsigned calls at the API (default true)
    POE_GENESIS_TIME: Unix time (seconds) of block 0 (default 0)

MaxClaimLength is fixed at setup. RegistryConfig is frozen so a running
registry can never observe a different bound between operations.
"""

import os
from dataclasses import dataclass


DEFAULT_MAX_CLAIM_LENGTH = 512
DEFAULT_BLOCK_TIME_MS = 6000
DEFAULT_GENESIS_TIME = 0


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RegistryConfig:
    """Static registry parameters."""
    max_claim_length: int = DEFAULT_MAX_CLAIM_LENGTH

    def __post_init__(self):
        if isinstance(self.max_claim_length, bool) or not isinstance(self.max_claim_length, int):
            raise ValueError(
                f"max_claim_length must be an integer, got {type(self.max_claim_length).__name__}"
            )
        if self.max_claim_length <= 0:
            raise ValueError(
                f"max_claim_length must be positive, got {self.max_claim_length}"
            )

    @classmethod
    def from_env(cls) -> "RegistryConfig":
        """Load from POE_MAX_CLAIM_LENGTH."""
        raw = os.getenv("POE_MAX_CLAIM_LENGTH", str(DEFAULT_MAX_CLAIM_LENGTH))
        try:
            value = int(raw)
        except ValueError:
            raise ValueError(
                f"POE_MAX_CLAIM_LENGTH must be an integer, got {raw!r}"
            )
        return cls(max_claim_length=value)


@dataclass(frozen=True)
class RuntimeConfig:
    """Host runtime parameters."""
    block_time_ms: int = DEFAULT_BLOCK_TIME_MS
    require_signatures: bool = True

    # Unix time of block 0. Fixed so block height survives restarts.
    genesis_time: int = DEFAULT_GENESIS_TIME

    def __post_init__(self):
        if self.block_time_ms <= 0:
            raise ValueError(
                f"block_time_ms must be positive, got {self.block_time_ms}"
            )
        if self.genesis_time < 0:
            raise ValueError(
                f"genesis_time must be non-negative, got {self.genesis_time}"
            )

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        return cls(
            block_time_ms=int(os.getenv("POE_BLOCK_TIME_MS", str(DEFAULT_BLOCK_TIME_MS))),
            require_signatures=_env_bool("POE_REQUIRE_SIGNATURES", True),
            genesis_time=int(os.getenv("POE_GENESIS_TIME", str(DEFAULT_GENESIS_TIME))),
        )
