"""
Base definitions for upstream LLM clients.

Holds the structured error taxonomy shared by the client, the resource
pools, the retry policy and the fallback chain. Errors are classified once,
where the HTTP status and body are inspected, and carry an ``ErrorKind``
from then on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Category of an upstream call failure."""

    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    MODEL_OVERLOADED = "model_overloaded"
    QUOTA_EXHAUSTED = "quota_exhausted"
    INVALID_CREDENTIAL = "invalid_credential"
    BAD_REQUEST = "bad_request"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    NETWORK = "network"
    PARSE_ERROR = "parse_error"
    UNKNOWN = "unknown"


# Kinds that are worth retrying with backoff
TRANSIENT_KINDS = frozenset({
    ErrorKind.RATE_LIMITED,
    ErrorKind.SERVICE_UNAVAILABLE,
    ErrorKind.MODEL_OVERLOADED,
    ErrorKind.QUOTA_EXHAUSTED,
    ErrorKind.TIMEOUT,
})


@dataclass
class AIClientConfig:
    """
    Configuration for AI client instances.

    Attributes:
        base_url: API endpoint URL
        video_timeout: Timeout for video analysis requests in seconds
        text_timeout: Timeout for text-only requests in seconds
    """

    base_url: str
    video_timeout: float = 120.0
    text_timeout: float = 60.0


class AIClientError(Exception):
    """
    Base exception for AI client errors.

    Attributes:
        message: Error description
        kind: Structured failure category
        provider: AI provider name
        model: Model that caused the error
        status_code: HTTP status code if the upstream answered
        response_body: Truncated response body if available
        original_error: Underlying exception if available
    """

    default_kind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: ErrorKind | None = None,
        provider: str | None = None,
        model: str | None = None,
        status_code: int | None = None,
        response_body: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.kind = kind or self.default_kind
        self.provider = provider
        self.model = model
        self.status_code = status_code
        self.response_body = response_body
        self.original_error = original_error
        super().__init__(message)

    @property
    def is_server_error(self) -> bool:
        """True for 5xx-class upstream faults."""
        if self.status_code is not None:
            return self.status_code >= 500
        return self.kind == ErrorKind.SERVER_ERROR

    @property
    def is_transient(self) -> bool:
        """True if waiting and trying again may succeed."""
        return self.kind in TRANSIENT_KINDS

    def __str__(self) -> str:
        parts = [self.message, f"kind={self.kind.value}"]
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.model:
            parts.append(f"model={self.model}")
        return " | ".join(parts)


class AIClientTimeoutError(AIClientError):
    """Raised when a request times out."""

    default_kind = ErrorKind.TIMEOUT


class AIClientConnectionError(AIClientError):
    """Raised when connection to AI service fails."""

    default_kind = ErrorKind.NETWORK


class AIClientResponseError(AIClientError):
    """Raised when AI service returns a non-success HTTP status."""

    pass


class AIClientParseError(AIClientError):
    """Raised when a success response does not have the expected shape."""

    default_kind = ErrorKind.PARSE_ERROR


def classify_http_error(status_code: int, body: str) -> ErrorKind:
    """
    Map an upstream HTTP failure to an ErrorKind.

    Order matters: status codes are checked before body phrases, except that
    a 429 mentioning quota is a quota exhaustion rather than a plain rate
    limit, and a 400 complaining about the API key is a bad credential.

    Args:
        status_code: HTTP status code
        body: Response body text

    Returns:
        ErrorKind for the failure
    """
    text = (body or "").lower()

    if status_code == 429:
        if "quota" in text or "resource_exhausted" in text:
            return ErrorKind.QUOTA_EXHAUSTED
        return ErrorKind.RATE_LIMITED
    if status_code == 503:
        return ErrorKind.SERVICE_UNAVAILABLE
    if "overload" in text:
        return ErrorKind.MODEL_OVERLOADED
    if status_code == 400:
        if "api key" in text and ("invalid" in text or "not valid" in text):
            return ErrorKind.INVALID_CREDENTIAL
        return ErrorKind.BAD_REQUEST
    if status_code in (401, 403):
        return ErrorKind.INVALID_CREDENTIAL
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


class BaseAIClientImpl(ABC):
    """
    Abstract base class for AI client implementations.

    Provides the async context manager protocol; subclasses own their
    HTTP resources and release them in close().
    """

    def __init__(self, config: AIClientConfig):
        """
        Initialize AI client with configuration.

        Args:
            config: Client configuration with URL and timeouts
        """
        self.config = config

    @abstractmethod
    async def generate_text(self, prompt: str, model: str | None = None) -> str:
        """Generate text from a prompt."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the client and release resources."""
        pass

    async def __aenter__(self) -> "BaseAIClientImpl":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()


if __name__ == "__main__":
    """Run tests when executed directly."""

    print("Testing error classification...")

    assert classify_http_error(429, "Too many requests") == ErrorKind.RATE_LIMITED
    assert classify_http_error(429, "Quota exceeded for metric") == ErrorKind.QUOTA_EXHAUSTED
    assert classify_http_error(503, "The model is overloaded") == ErrorKind.SERVICE_UNAVAILABLE
    assert classify_http_error(500, "model overloaded") == ErrorKind.MODEL_OVERLOADED
    assert classify_http_error(400, "API key not valid") == ErrorKind.INVALID_CREDENTIAL
    assert classify_http_error(400, "bad field") == ErrorKind.BAD_REQUEST
    assert classify_http_error(401, "") == ErrorKind.INVALID_CREDENTIAL
    assert classify_http_error(500, "") == ErrorKind.SERVER_ERROR
    assert classify_http_error(418, "") == ErrorKind.UNKNOWN
    print("  classify_http_error: OK")

    error = AIClientResponseError("Test error", kind=ErrorKind.SERVER_ERROR, status_code=500, model="m")
    assert error.is_server_error
    assert str(error) == "Test error | kind=server_error | status=500 | model=m"
    assert AIClientTimeoutError("slow").is_transient
    print("  AIClientError: OK")

    print("\nAll base tests passed!")
