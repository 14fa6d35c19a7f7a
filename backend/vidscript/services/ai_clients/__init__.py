"""
AI Clients package for the Gemini API.

- base: error taxonomy (ErrorKind, AIClientError and subclasses) shared with
  the pools, the retry policy and the fallback chain
- gemini_client: GeminiClient, video analysis and text generation over
  pooled API keys and proxies

The client module depends on the pools and the retry policy, which in turn
depend on the error taxonomy, so only the base definitions are re-exported
here. Import the client from its module:

    from vidscript.services.ai_clients.gemini_client import GeminiClient

    async with GeminiClient.from_settings(settings, key_pool, proxy_pool) as client:
        text = await client.analyze_video(url, prompt)
"""

from vidscript.services.ai_clients.base import (
    TRANSIENT_KINDS,
    AIClientConfig,
    AIClientConnectionError,
    AIClientError,
    AIClientParseError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClientImpl,
    ErrorKind,
    classify_http_error,
)

__all__ = [
    # Base classes
    "BaseAIClientImpl",
    "AIClientConfig",
    # Errors
    "ErrorKind",
    "TRANSIENT_KINDS",
    "classify_http_error",
    "AIClientError",
    "AIClientTimeoutError",
    "AIClientConnectionError",
    "AIClientResponseError",
    "AIClientParseError",
]
