"""
Gemini AI client implementation.

Async HTTP client for the Gemini generateContent API. Every call draws an
API key from the credential pool and, when proxies are configured, an egress
path from the proxy pool, then reports the outcome back to both pools.

Video analysis calls are wrapped in the retry policy; script and text
generation make a single attempt (the fallback chain handles retries there).
"""

import logging
import time

import httpx

from vidscript.config import Settings
from vidscript.services.ai_clients.base import (
    AIClientConfig,
    AIClientConnectionError,
    AIClientError,
    AIClientParseError,
    AIClientResponseError,
    AIClientTimeoutError,
    BaseAIClientImpl,
    classify_http_error,
)
from vidscript.services.pools import Credential, CredentialPool, EgressPath, EgressPool
from vidscript.services.retry_policy import RetryPolicy, RetryProgressCallback

logger = logging.getLogger(__name__)

PROVIDER = "gemini"

# Response body excerpt kept on errors
MAX_ERROR_BODY = 500


class GeminiClient(BaseAIClientImpl):
    """
    Async client for Gemini video analysis and text generation.

    Example:
        client = GeminiClient.from_settings(settings, credential_pool, egress_pool)
        async with client:
            duration = await client.analyze_video(url, duration_prompt)
            script = await client.generate_script(prompt, "gemini-2.5-pro")
    """

    def __init__(
        self,
        config: AIClientConfig,
        credential_pool: CredentialPool,
        egress_pool: EgressPool | None = None,
        retry_policy: RetryPolicy | None = None,
        video_model: str = "gemini-1.5-flash",
        segment_model: str = "gemini-2.5-flash",
        text_model: str = "gemini-2.0-flash-exp",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Gemini client.

        Args:
            config: Client configuration with base URL and timeouts
            credential_pool: API key pool
            egress_pool: Optional proxy pool (None or empty = direct connection)
            retry_policy: Retry policy for video analysis calls
            video_model: Default model for analyze_video
            segment_model: Default model for analyze_video_segment
            text_model: Default model for generate_text
            transport: Custom transport (tests); proxies are not applied with it
        """
        super().__init__(config)
        self.credential_pool = credential_pool
        self.egress_pool = egress_pool
        self.retry_policy = retry_policy or RetryPolicy()
        self.video_model = video_model
        self.segment_model = segment_model
        self.text_model = text_model
        self._transport = transport

        # One HTTP client per egress path; None key = direct connection
        self._http_clients: dict[str | None, httpx.AsyncClient] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        credential_pool: CredentialPool,
        egress_pool: EgressPool | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> "GeminiClient":
        """
        Create GeminiClient from application settings.

        Args:
            settings: Application settings
            credential_pool: API key pool
            egress_pool: Optional proxy pool
            retry_policy: Optional retry policy (default: from settings)

        Returns:
            Configured GeminiClient instance
        """
        config = AIClientConfig(
            base_url=settings.gemini_base_url,
            video_timeout=settings.video_timeout,
            text_timeout=settings.text_timeout,
        )
        return cls(
            config=config,
            credential_pool=credential_pool,
            egress_pool=egress_pool,
            retry_policy=retry_policy or RetryPolicy.from_settings(settings),
            video_model=settings.duration_model,
            segment_model=settings.segment_model,
            text_model=settings.chat_model,
        )

    async def close(self) -> None:
        """Close all HTTP clients."""
        clients = list(self._http_clients.values())
        self._http_clients.clear()
        for client in clients:
            await client.aclose()

    async def prune_clients(self) -> int:
        """
        Close HTTP clients of proxies no longer in the egress pool.

        Returns:
            Number of clients closed
        """
        live = {p.proxy_url for p in self.egress_pool.entries} if self.egress_pool else set()
        stale = [key for key in self._http_clients if key is not None and key not in live]
        for key in stale:
            await self._http_clients.pop(key).aclose()
        if stale:
            logger.debug(f"Closed {len(stale)} client(s) of removed proxies")
        return len(stale)

    # ═══════════════════════════════════════════════════════════════════════════
    # Public operations
    # ═══════════════════════════════════════════════════════════════════════════

    async def analyze_video(
        self,
        video_url: str,
        prompt: str,
        model: str | None = None,
        context: str = "",
        on_retry: RetryProgressCallback | None = None,
    ) -> str:
        """
        Analyze a YouTube video with retries.

        Args:
            video_url: YouTube URL passed to the model as file data
            prompt: Instruction text
            model: Model name (default: video_model)
            context: Label for retry logs and events
            on_retry: Optional retry progress callback

        Returns:
            Model response text

        Raises:
            AIClientError: When the call fails and retries are exhausted
            PoolConfigurationError: If no API key is usable
        """
        model = model or self.video_model
        return await self.retry_policy.execute(
            lambda: self._generate_content(
                model, prompt, video_url, self.config.video_timeout
            ),
            context=context or f"Video analysis ({model})",
            on_progress=on_retry,
        )

    async def analyze_video_segment(
        self,
        video_url: str,
        prompt: str,
        model: str | None = None,
        context: str = "",
        on_retry: RetryProgressCallback | None = None,
    ) -> str:
        """Analyze one time segment of a video (segment_model by default)."""
        return await self.analyze_video(
            video_url,
            prompt,
            model=model or self.segment_model,
            context=context,
            on_retry=on_retry,
        )

    async def generate_script(self, prompt: str, model: str) -> str:
        """
        Generate a script from text in a single attempt.

        Args:
            prompt: Full script prompt including the transcript
            model: Model name

        Returns:
            Generated script text
        """
        return await self._generate_content(model, prompt, None, self.config.text_timeout)

    async def generate_text(self, prompt: str, model: str | None = None) -> str:
        """
        Generate text in a single attempt (segmentation, chat edits).

        Args:
            prompt: Prompt text
            model: Model name (default: text_model)

        Returns:
            Generated text
        """
        return await self._generate_content(
            model or self.text_model, prompt, None, self.config.text_timeout
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Wire protocol
    # ═══════════════════════════════════════════════════════════════════════════

    def _build_request(self, prompt: str, video_url: str | None) -> dict:
        parts: list[dict] = [{"text": prompt}]
        if video_url:
            parts.append({"file_data": {"file_uri": video_url}})
        return {"contents": [{"parts": parts}]}

    def _http_client(self, proxy: EgressPath | None) -> tuple[httpx.AsyncClient, EgressPath | None]:
        """
        Get (or create) the HTTP client for an egress path.

        Returns the client and the proxy actually in use: a proxy whose URL
        httpx cannot route is marked unavailable and the call goes direct.
        """
        if self._transport is not None:
            if None not in self._http_clients:
                self._http_clients[None] = httpx.AsyncClient(transport=self._transport)
            return self._http_clients[None], proxy

        key = proxy.proxy_url if proxy else None
        if key not in self._http_clients:
            try:
                options = proxy.client_options() if proxy else {}
                self._http_clients[key] = httpx.AsyncClient(**options)
            except ValueError as e:
                logger.warning(f"Proxy {proxy.id} cannot be used, going direct: {e}")
                self.egress_pool.mark_failed(proxy, ValueError(f"Proxy unavailable: {e}"))
                return self._http_client(None)
        return self._http_clients[key], proxy

    def _mark_failed(
        self,
        credential: Credential,
        proxy: EgressPath | None,
        error: AIClientError,
        transport_error: Exception | None = None,
    ) -> None:
        self.credential_pool.mark_failed(credential, error)
        if proxy is not None and transport_error is not None:
            self.egress_pool.mark_failed(proxy, transport_error)

    async def _generate_content(
        self,
        model: str,
        prompt: str,
        video_url: str | None,
        timeout: float,
    ) -> str:
        """
        Single generateContent call with pool bookkeeping.

        Raises:
            AIClientTimeoutError: Request timed out
            AIClientConnectionError: Connection or proxy failure
            AIClientResponseError: Non-2xx response (kind set from status/body)
            AIClientParseError: Response without candidate text
            PoolConfigurationError: If no API key is usable
        """
        credential = self.credential_pool.next()
        proxy = self.egress_pool.next() if self.egress_pool is not None else None
        http_client, proxy = self._http_client(proxy)

        url = f"{self.config.base_url}/models/{model}:generateContent"
        via = f" via {proxy.id}" if proxy else ""
        logger.debug(f"POST {model}:generateContent with {credential.id}{via}, prompt: {len(prompt)} chars")

        started = time.perf_counter()
        try:
            response = await http_client.post(
                url,
                json=self._build_request(prompt, video_url),
                headers={"x-goog-api-key": credential.secret},
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Gemini timeout with {model} ({credential.id}{via}): {e}")
            error = AIClientTimeoutError(
                f"Request timed out after {timeout:.0f}s",
                provider=PROVIDER,
                model=model,
                original_error=e,
            )
            self._mark_failed(credential, proxy, error, e)
            raise error from e
        except httpx.HTTPError as e:
            logger.error(f"Gemini connection error with {model} ({credential.id}{via}): {e}")
            error = AIClientConnectionError(
                f"Connection failed: {e}",
                provider=PROVIDER,
                model=model,
                original_error=e,
            )
            self._mark_failed(credential, proxy, error, e)
            raise error from e

        if proxy is not None:
            self.egress_pool.mark_success(proxy, (time.perf_counter() - started) * 1000)

        if not response.is_success:
            body = response.text
            kind = classify_http_error(response.status_code, body)
            logger.error(f"Gemini API error {response.status_code} ({kind.value}) with {model}, key {credential.id}")
            error = AIClientResponseError(
                f"Gemini API error: {response.status_code}",
                kind=kind,
                provider=PROVIDER,
                model=model,
                status_code=response.status_code,
                response_body=body[:MAX_ERROR_BODY],
            )
            self._mark_failed(credential, proxy, error)
            raise error

        try:
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Invalid response format from {model}: {response.text[:200]}")
            error = AIClientParseError(
                "Invalid response format from Gemini API",
                provider=PROVIDER,
                model=model,
                status_code=response.status_code,
                response_body=response.text[:MAX_ERROR_BODY],
                original_error=e,
            )
            self._mark_failed(credential, proxy, error)
            raise error from e

        self.credential_pool.mark_success(credential)
        logger.debug(f"Generated {len(text)} chars with {model}")
        return text
