"""
API key pool for the upstream LLM API.

Load balances requests over several API keys and fails over when a key hits
rate limits, runs out of quota or turns out to be invalid.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from vidscript.config import Settings
from vidscript.services.ai_clients.base import AIClientError, ErrorKind

from .base import FailureKind, PoolConfigurationError, PoolEntry, ResourcePool

logger = logging.getLogger(__name__)

# ErrorKind from the client -> pool failure kind
_KIND_MAP = {
    ErrorKind.QUOTA_EXHAUSTED: FailureKind.QUOTA_EXHAUSTED,
    ErrorKind.RATE_LIMITED: FailureKind.RATE_LIMITED,
    ErrorKind.MODEL_OVERLOADED: FailureKind.OVERLOADED,
    ErrorKind.SERVICE_UNAVAILABLE: FailureKind.OVERLOADED,
    ErrorKind.INVALID_CREDENTIAL: FailureKind.AUTH_FAILED,
}


@dataclass
class Credential(PoolEntry):
    """An upstream API key and its health state."""

    secret: str = field(default="", repr=False)

    @property
    def preview(self) -> str:
        """Masked key for logs and stats."""
        if len(self.secret) <= 8:
            return "*" * len(self.secret)
        return f"{self.secret[:4]}...{self.secret[-4:]}"


class CredentialPool(ResourcePool[Credential]):
    """
    Round-robin pool of API keys.

    Quota exhaustion disables a key until reset_cooldowns(); an invalid key
    is disabled permanently. Rate limits and overloads only start a cooldown.

    Example:
        pool = CredentialPool.from_settings(settings)
        credential = pool.next()
        headers = {"x-goog-api-key": credential.secret}
    """

    label = "API key"
    PERMANENT_DISABLE = frozenset({FailureKind.AUTH_FAILED})
    RECOVERABLE_DISABLE = frozenset({FailureKind.QUOTA_EXHAUSTED})

    def __init__(
        self,
        api_keys: list[str] | None = None,
        cooldown_base: float = 60.0,
        cooldown_max: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize pool with API keys.

        Args:
            api_keys: Initial API keys (blank entries are skipped)
            cooldown_base: Cooldown for the first failure level, seconds
            cooldown_max: Maximum cooldown, seconds
            clock: Monotonic clock (injectable for tests)
        """
        super().__init__(cooldown_base, cooldown_max, clock)
        for key in api_keys or []:
            if key and key.strip():
                self.add(key)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialPool":
        """
        Create CredentialPool from application settings.

        Args:
            settings: Application settings

        Returns:
            Pool with keys from GEMINI_API_KEYS
        """
        return cls(
            api_keys=settings.api_key_list,
            cooldown_base=settings.key_cooldown_base,
            cooldown_max=settings.key_cooldown_max,
        )

    def next(self) -> Credential:
        """
        Get the next available API key.

        Returns:
            Selected credential

        Raises:
            PoolConfigurationError: If no keys are configured or all are disabled
        """
        credential = self._draw()
        if credential is None:
            if not len(self):
                raise PoolConfigurationError("No API keys configured")
            raise PoolConfigurationError("All API keys are disabled")
        return credential

    def classify(self, error: BaseException) -> FailureKind:
        """
        Categorize error type for different handling.

        Structured client errors map directly; anything else falls back to
        matching phrases in the message.
        """
        if isinstance(error, AIClientError):
            return _KIND_MAP.get(error.kind, FailureKind.UNKNOWN)

        message = str(error).lower()
        if "quota" in message or "exceeded" in message:
            return FailureKind.QUOTA_EXHAUSTED
        if "rate limit" in message or "too many requests" in message:
            return FailureKind.RATE_LIMITED
        if "overload" in message or "busy" in message:
            return FailureKind.OVERLOADED
        if "invalid" in message or "unauthorized" in message:
            return FailureKind.AUTH_FAILED
        return FailureKind.UNKNOWN

    def add(self, api_key: str) -> Credential:
        """
        Add new API key to the pool.

        Args:
            api_key: Key value

        Returns:
            Created credential (existing one if the key is already pooled)
        """
        api_key = api_key.strip()
        if not api_key:
            raise ValueError("API key must not be empty")

        existing = self.find_by_secret(api_key)
        if existing is not None:
            return existing

        with self._lock:
            credential = Credential(id=self._next_id("key"), secret=api_key)
        return self._append(credential)

    def find_by_secret(self, api_key: str) -> Credential | None:
        """Find a credential by its key value."""
        with self._lock:
            return next((c for c in self._entries if c.secret == api_key), None)

    def remove(self, identifier: str) -> bool:
        """
        Remove an API key by id or by key value.

        Args:
            identifier: Credential id ("key_0") or the key itself

        Returns:
            True if a key was removed
        """
        credential = self.find(identifier) or self.find_by_secret(identifier.strip())
        if credential is None:
            return False
        return super().remove(credential.id)

    def reload(self, api_keys: list[str]) -> None:
        """
        Replace all keys.

        Args:
            api_keys: New key list (blank entries are skipped)
        """
        with self._lock:
            self._entries = []
            self._cursor = 0
        for key in api_keys:
            if key and key.strip():
                self.add(key)
        logger.info(f"Reloaded API key pool: {len(self)} keys")

    def _summarize(self, entry: Credential) -> dict:
        summary = super()._summarize(entry)
        summary["preview"] = entry.preview
        return summary
