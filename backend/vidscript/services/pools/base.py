"""
Round-robin resource pool with failure cooldowns.

Shared machinery for the API key pool and the proxy pool: selection among
available entries, exponential cooldown after failures, gradual recovery on
success, disabling on unrecoverable failures and usage statistics.

All reads-then-writes happen under a pool-scoped lock that is never held
across an await, so the pool can be shared by concurrent pipeline runs on
one event loop or by worker threads.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)


class FailureKind(str, Enum):
    """Pool-level classification of a failed draw."""

    QUOTA_EXHAUSTED = "quota_exceeded"
    RATE_LIMITED = "rate_limit"
    OVERLOADED = "model_overload"
    AUTH_FAILED = "auth_failed"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    UNKNOWN = "unknown"


class PoolConfigurationError(Exception):
    """Raised when a pool has no usable entries at all."""

    pass


@dataclass
class PoolEntry:
    """
    Health and usage state of one pooled resource.

    Attributes:
        id: Stable identifier ("key_0", "proxy_3")
        active: False once disabled; inactive entries are never selected
        fail_count: Consecutive failure count (decays by one per success)
        last_failed: Monotonic timestamp of the last failure
        last_used_at: Wall-clock time of the last draw
        total_requests: Number of draws
        success_requests: Number of successful draws
        disabled_reason: Failure kind that disabled the entry
    """

    id: str
    active: bool = True
    fail_count: int = 0
    last_failed: float | None = None
    last_used_at: datetime | None = None
    total_requests: int = 0
    success_requests: int = 0
    disabled_reason: FailureKind | None = field(default=None)

    @property
    def success_rate(self) -> float:
        """Successful draws as a percentage of all draws."""
        if self.total_requests == 0:
            return 0.0
        return self.success_requests / self.total_requests * 100


E = TypeVar("E", bound=PoolEntry)


class ResourcePool(ABC, Generic[E]):
    """
    Base class for load-balanced resource pools.

    Subclasses define how errors are classified and which failure kinds
    disable an entry permanently or until an explicit reset.

    Example:
        pool = CredentialPool(["key-a", "key-b"])
        key = pool.next()
        try:
            ...
            pool.mark_success(key)
        except AIClientError as e:
            pool.mark_failed(key, e)
    """

    # Used in log messages and stats
    label = "entry"

    # Failure kinds that disable an entry for good
    PERMANENT_DISABLE: frozenset[FailureKind] = frozenset({FailureKind.AUTH_FAILED})

    # Failure kinds that disable an entry until reset_cooldowns()
    RECOVERABLE_DISABLE: frozenset[FailureKind] = frozenset()

    def __init__(
        self,
        cooldown_base: float,
        cooldown_max: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize pool.

        Args:
            cooldown_base: Cooldown in seconds for the first failure level
            cooldown_max: Upper bound for the cooldown in seconds
            clock: Monotonic clock (injectable for tests)
        """
        self.cooldown_base = cooldown_base
        self.cooldown_max = cooldown_max
        self._clock = clock
        self._entries: list[E] = []
        self._cursor = 0
        self._lock = threading.Lock()

    # ═══════════════════════════════════════════════════════════════════════════
    # Health
    # ═══════════════════════════════════════════════════════════════════════════

    def cooldown(self, fail_count: int) -> float:
        """Cooldown in seconds: min(base * 2^fail_count, max)."""
        return min(self.cooldown_base * (2 ** fail_count), self.cooldown_max)

    def is_available(self, entry: E) -> bool:
        """
        Check if an entry can be selected right now.

        Args:
            entry: Pool entry

        Returns:
            False if inactive or still cooling down after a failure
        """
        if not entry.active:
            return False
        return not self._in_cooldown(entry)

    def _in_cooldown(self, entry: E) -> bool:
        if entry.last_failed is None:
            return False
        return (self._clock() - entry.last_failed) < self.cooldown(entry.fail_count)

    @abstractmethod
    def classify(self, error: BaseException) -> FailureKind:
        """Map an error to a failure kind."""
        ...

    # ═══════════════════════════════════════════════════════════════════════════
    # Selection
    # ═══════════════════════════════════════════════════════════════════════════

    def _draw(self) -> E | None:
        """
        Select the next entry round-robin among available ones.

        When nothing is available, clears every cooldown (emergency reset)
        and falls back to the first active entry. Returns None only when the
        pool is empty or every entry is disabled.
        """
        with self._lock:
            if not self._entries:
                return None

            available = [e for e in self._entries if self.is_available(e)]

            if available:
                selected = available[self._cursor % len(available)]
                self._cursor = (self._cursor + 1) % len(available)
            else:
                logger.warning(f"All {self.label}s unavailable, resetting cooldowns")
                self._clear_failures()
                active = [e for e in self._entries if e.active]
                if not active:
                    return None
                selected = active[0]

            selected.last_used_at = datetime.now()
            selected.total_requests += 1

            logger.debug(
                f"Using {self.label} {selected.id} "
                f"({selected.success_requests}/{selected.total_requests} ok)"
            )
            return selected

    def _advance(self) -> None:
        """Move the cursor so the next caller gets a different entry."""
        available = sum(1 for e in self._entries if self.is_available(e))
        if available:
            self._cursor = (self._cursor + 1) % available

    # ═══════════════════════════════════════════════════════════════════════════
    # Feedback
    # ═══════════════════════════════════════════════════════════════════════════

    def mark_failed(self, entry: E, error: BaseException) -> FailureKind:
        """
        Record a failed draw.

        Args:
            entry: Entry that was used
            error: Error raised by the call

        Returns:
            Failure kind the error was classified as
        """
        kind = self.classify(error)

        with self._lock:
            entry.fail_count += 1
            entry.last_failed = self._clock()

            logger.warning(
                f"{self.label.capitalize()} {entry.id} failed: {kind.value} "
                f"(fail count: {entry.fail_count})"
            )

            if kind in self.PERMANENT_DISABLE:
                entry.active = False
                entry.disabled_reason = kind
                logger.error(f"{self.label.capitalize()} {entry.id} permanently disabled ({kind.value})")
            elif kind in self.RECOVERABLE_DISABLE:
                entry.active = False
                entry.disabled_reason = kind
                logger.warning(f"{self.label.capitalize()} {entry.id} disabled until reset ({kind.value})")

            self._advance()

        return kind

    def mark_success(self, entry: E) -> None:
        """
        Record a successful draw.

        The failure count decays by one per success; cooldown state is
        cleared only once it reaches zero.

        Args:
            entry: Entry that was used
        """
        with self._lock:
            entry.success_requests += 1
            entry.fail_count = max(0, entry.fail_count - 1)
            if entry.fail_count == 0:
                entry.last_failed = None

    # ═══════════════════════════════════════════════════════════════════════════
    # Management
    # ═══════════════════════════════════════════════════════════════════════════

    def find(self, identifier: str) -> E | None:
        """Find an entry by its id."""
        with self._lock:
            return next((e for e in self._entries if e.id == identifier), None)

    def _append(self, entry: E) -> E:
        with self._lock:
            self._entries.append(entry)
        logger.info(f"Added {self.label} {entry.id}")
        return entry

    def _next_id(self, prefix: str) -> str:
        used = {e.id for e in self._entries}
        index = len(self._entries)
        while f"{prefix}_{index}" in used:
            index += 1
        return f"{prefix}_{index}"

    def remove(self, identifier: str) -> bool:
        """
        Remove an entry by id.

        Args:
            identifier: Entry id

        Returns:
            True if an entry was removed
        """
        with self._lock:
            for index, entry in enumerate(self._entries):
                if entry.id == identifier:
                    del self._entries[index]
                    if self._entries:
                        self._cursor %= len(self._entries)
                    else:
                        self._cursor = 0
                    logger.info(f"Removed {self.label} {identifier}")
                    return True
        return False

    def reset_cooldowns(self, include_permanent: bool = False) -> None:
        """
        Clear failure state pool-wide.

        Entries disabled by a recoverable kind (quota exhausted, proxy
        unavailable) are re-activated. Entries disabled by an auth failure
        stay disabled unless include_permanent is set.

        Args:
            include_permanent: Also re-activate permanently disabled entries
        """
        with self._lock:
            self._clear_failures()
            for entry in self._entries:
                if entry.active or entry.disabled_reason is None:
                    continue
                if entry.disabled_reason in self.RECOVERABLE_DISABLE or include_permanent:
                    entry.active = True
                    entry.disabled_reason = None
        logger.info(f"Reset cooldowns for all {self.label}s")

    def _clear_failures(self) -> None:
        for entry in self._entries:
            entry.last_failed = None
            entry.fail_count = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[E]:
        """Snapshot of the pool entries."""
        with self._lock:
            return list(self._entries)

    # ═══════════════════════════════════════════════════════════════════════════
    # Stats
    # ═══════════════════════════════════════════════════════════════════════════

    def _summarize(self, entry: E) -> dict:
        """Per-entry stats; subclasses add their own fields."""
        return {
            "id": entry.id,
            "is_active": entry.active,
            "fail_count": entry.fail_count,
            "success_rate": f"{entry.success_rate:.1f}%",
            "total_requests": entry.total_requests,
            "last_used": entry.last_used_at.isoformat() if entry.last_used_at else None,
            "in_cooldown": self._in_cooldown(entry),
            "disabled_reason": entry.disabled_reason.value if entry.disabled_reason else None,
        }

    def get_stats(self) -> dict:
        """
        Usage statistics for the pool.

        Returns:
            Dict with total/active/available counts, the entry the next
            draw will pick and a per-entry summary
        """
        with self._lock:
            available = [e for e in self._entries if self.is_available(e)]
            current = available[self._cursor % len(available)].id if available else None
            return {
                "total": len(self._entries),
                "active": sum(1 for e in self._entries if e.active),
                "available": len(available),
                "current": current,
                "entries": [self._summarize(e) for e in self._entries],
            }
