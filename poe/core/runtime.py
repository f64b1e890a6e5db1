"""
Reference Host Runtime

The registry needs three things from its host: a verified caller, a
logical clock, and somewhere to send notifications. The Runtime supplies
the last two and serializes dispatch so one call (including its
notification) finishes before the next is evaluated.

Callers are verified upstream (see poe.api.routes and Signer). The Runtime
keeps the per-caller nonces that make each signed call single use.
"""

import time
from threading import Lock
from typing import Callable, Optional, Protocol

from ..db.store import InMemoryProofStore, ProofStore
from ..observability import get_logger, get_metrics
from ..schemas import (
    ClaimCreated,
    ClaimRevoked,
    ClaimTransferred,
    Notification,
    RegistryEvent,
)
from .config import RegistryConfig, RuntimeConfig
from .journal import EventJournal
from .registry import ClaimRegistry, RegistryError


logger = get_logger(__name__)


# ============================================================
# BLOCK CLOCKS
# ============================================================

class BlockClock(Protocol):
    def current(self) -> int: ...


class ManualBlockClock:
    """Clock that only moves when told to. For tests and demos."""

    def __init__(self, start: int = 0):
        if start < 0:
            raise ValueError(f"start must be non-negative, got {start}")
        self._block = start

    def current(self) -> int:
        return self._block

    def advance(self, n: int = 1) -> int:
        if n < 0:
            raise ValueError(f"Block clock cannot move backwards (n={n})")
        self._block += n
        return self._block

    def set(self, block: int) -> None:
        if block < self._block:
            raise ValueError(
                f"Block clock cannot move backwards ({self._block} -> {block})"
            )
        self._block = block


class WallBlockClock:
    """
    Block height derived from wall time since a fixed genesis.

    Two clocks with the same genesis agree, so heights stay comparable
    across process restarts. The height never decreases, even if the
    system clock is stepped back.
    """

    def __init__(
        self,
        block_time_ms: int,
        genesis_time: float = 0,
        timer: Callable[[], float] = time.time,
    ):
        if block_time_ms <= 0:
            raise ValueError(f"block_time_ms must be positive, got {block_time_ms}")
        self._block_time_ms = block_time_ms
        self._genesis_time = genesis_time
        self._timer = timer
        self._last = 0

    def current(self) -> int:
        elapsed_ms = (self._timer() - self._genesis_time) * 1000
        block = int(elapsed_ms // self._block_time_ms)
        self._last = max(self._last, block)
        return self._last


# ============================================================
# RUNTIME
# ============================================================

class Runtime:
    """
    In-process host for one ClaimRegistry.

    Owns the store, registry, clock and journal.
    """

    def __init__(
        self,
        store: Optional[ProofStore] = None,
        registry_config: Optional[RegistryConfig] = None,
        runtime_config: Optional[RuntimeConfig] = None,
        clock: Optional[BlockClock] = None,
        journal: Optional[EventJournal] = None,
    ):
        self.config = runtime_config or RuntimeConfig()
        self.store = store if store is not None else InMemoryProofStore()
        self.clock = clock if clock is not None else WallBlockClock(
            self.config.block_time_ms, self.config.genesis_time
        )
        self.journal = journal if journal is not None else EventJournal()
        self._dispatch_lock = Lock()
        self._block_for_dispatch = 0
        self._last_event: Optional[RegistryEvent] = None
        self._nonces: dict[str, int] = {}
        self._nonce_lock = Lock()

        self.registry = ClaimRegistry(
            store=self.store,
            config=registry_config,
            sink=self._deposit_event,
        )

    @property
    def block_number(self) -> int:
        return self.clock.current()

    # ================================================================
    # ACCOUNT NONCES
    # ================================================================

    def account_nonce(self, caller: str) -> int:
        """Nonce the caller's next signed call must carry."""
        with self._nonce_lock:
            return self._nonces.get(caller, 0)

    def use_nonce(self, caller: str, nonce: int) -> bool:
        """
        Consume a nonce for caller.

        Only the current nonce is accepted; it then advances by one, so a
        signed call can be dispatched at most once.
        """
        with self._nonce_lock:
            expected = self._nonces.get(caller, 0)
            if nonce != expected:
                return False
            self._nonces[caller] = expected + 1
            return True

    def _deposit_event(self, notification: Notification) -> None:
        self._last_event = self.journal.record(notification, self._block_for_dispatch)

    def _dispatch(self, call: str, caller: str, fn) -> tuple[Notification, RegistryEvent]:
        metrics = get_metrics()
        start = time.perf_counter()

        with self._dispatch_lock:
            self._block_for_dispatch = self.clock.current()
            self._last_event = None
            try:
                notification = fn()
            except RegistryError as e:
                metrics.record_rejection(e.code)
                logger.info(
                    f"{call} rejected",
                    call=call,
                    caller=caller,
                    error=e.code,
                    block=self._block_for_dispatch,
                )
                raise
            event = self._last_event

        latency_ms = (time.perf_counter() - start) * 1000
        metrics.record_dispatch(call, latency_ms)
        logger.info(
            f"{call} dispatched",
            call=call,
            caller=caller,
            block=event.block_number,
            sequence=event.sequence_number,
        )
        return notification, event

    def create_claim(self, caller: str, claim: bytes) -> tuple[ClaimCreated, RegistryEvent]:
        return self._dispatch(
            "create_claim", caller,
            lambda: self.registry.create_claim(caller, claim, self._block_for_dispatch),
        )

    def revoke_claim(self, caller: str, claim: bytes) -> tuple[ClaimRevoked, RegistryEvent]:
        return self._dispatch(
            "revoke_claim", caller,
            lambda: self.registry.revoke_claim(caller, claim),
        )

    def transfer_claim(
        self,
        caller: str,
        receiver: str,
        claim: bytes,
    ) -> tuple[ClaimTransferred, RegistryEvent]:
        return self._dispatch(
            "transfer_claim", caller,
            lambda: self.registry.transfer_claim(caller, receiver, claim, self._block_for_dispatch),
        )
