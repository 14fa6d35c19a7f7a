"""
Final script generation with model fallback.

Tries an ordered list of models (best quality first). Each model gets a
bounded number of attempts with a short fixed wait in between; a server
error abandons the model immediately. The first success wins.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from tenacity import wait_fixed

from vidscript.config import Settings, load_prompt, load_script_models
from vidscript.models.schemas import ScriptConfig
from vidscript.services.ai_clients.base import AIClientError
from vidscript.services.ai_clients.gemini_client import GeminiClient
from vidscript.services.pools import PoolConfigurationError
from vidscript.services.retry_policy import RetryPolicy
from vidscript.services.script_prompt import build_script_prompt

logger = logging.getLogger(__name__)

DEFAULT_INPUT_TEMPLATE = "{prompt}\n\nTranscript of the clip to turn into a script:\n{transcript}"


class AllModelsFailedError(Exception):
    """
    Raised when every model in the chain failed.

    Attributes:
        last_error: Error from the final attempt
        models: Models that were tried
    """

    def __init__(self, last_error: BaseException | None, models: list[str]):
        self.last_error = last_error
        self.models = models
        detail = str(last_error) if last_error else "no models configured"
        super().__init__(f"All models failed. Last error: {detail}")


def is_server_fault(error: BaseException) -> bool:
    """True for 5xx-class upstream failures."""
    if isinstance(error, AIClientError):
        return error.is_server_error
    message = str(error).lower()
    return "500" in message or "internal server error" in message


@dataclass
class GeneratedScript:
    """Script text and the model that produced it."""

    script: str
    model: str


class ScriptFallbackChain:
    """
    Runs script generation across fallback models.

    Example:
        chain = ScriptFallbackChain(client, ["gemini-2.5-pro", "gemini-2.0-flash"])
        generated = await chain.generate(transcript, prompt)
    """

    def __init__(
        self,
        client: GeminiClient,
        models: list[str],
        attempts_per_model: int = 2,
        retry_delay: float = 2.0,
        input_template: str = DEFAULT_INPUT_TEMPLATE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize fallback chain.

        Args:
            client: Gemini client (generate_script is called directly)
            models: Model identifiers, best first
            attempts_per_model: Attempts per model
            retry_delay: Wait between attempts on the same model, seconds
            input_template: Template with {prompt} and {transcript}
            sleep: Async sleep function (injectable for tests)
        """
        self.client = client
        self.models = list(models)
        self.input_template = input_template
        self.policy = RetryPolicy(
            max_retries=max(attempts_per_model - 1, 0),
            retryable=lambda e: not isinstance(e, PoolConfigurationError),
            short_circuit=is_server_fault,
            wait=wait_fixed(retry_delay),
            sleep=sleep,
        )

    @classmethod
    def from_settings(cls, settings: Settings, client: GeminiClient) -> "ScriptFallbackChain":
        """
        Create chain from settings, models.yaml and the script_input prompt.

        Args:
            settings: Application settings
            client: Gemini client

        Returns:
            Configured ScriptFallbackChain
        """
        return cls(
            client=client,
            models=load_script_models(settings),
            attempts_per_model=settings.fallback_attempts_per_model,
            retry_delay=settings.fallback_retry_delay,
            input_template=load_prompt("script_input", settings),
        )

    async def generate(self, transcript: str, prompt: str) -> GeneratedScript:
        """
        Generate a script, falling back through the model list.

        Args:
            transcript: Aggregated transcript
            prompt: Script instructions

        Returns:
            GeneratedScript from the first model that succeeded

        Raises:
            AllModelsFailedError: If every model failed
            PoolConfigurationError: If no API key is usable
        """
        full_prompt = self.input_template.format(prompt=prompt, transcript=transcript)
        logger.info(f"Generating script: transcript {len(transcript)} chars, {len(self.models)} models")

        last_error: BaseException | None = None
        for index, model in enumerate(self.models, start=1):
            try:
                script = await self.policy.execute(
                    lambda: self.client.generate_script(full_prompt, model),
                    context=f"Script model {model} ({index}/{len(self.models)})",
                )
            except PoolConfigurationError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"Model {model} failed, moving on: {e}")
                continue

            logger.info(f"Script generated with {model}: {len(script)} chars")
            return GeneratedScript(script=script, model=model)

        raise AllModelsFailedError(last_error, self.models)


class ScriptGenerator:
    """
    Builds the prompt from user settings and runs the fallback chain.

    Example:
        generator = ScriptGenerator(chain)
        generated = await generator.generate(transcript, config)
    """

    def __init__(self, chain: ScriptFallbackChain):
        self.chain = chain

    async def generate(self, transcript: str, config: ScriptConfig) -> GeneratedScript:
        """
        Generate the final script for a transcript.

        Args:
            transcript: Aggregated transcript
            config: User script settings

        Returns:
            GeneratedScript

        Raises:
            ValueError: If the transcript is empty
            AllModelsFailedError: If every model failed
        """
        if not transcript or not transcript.strip():
            raise ValueError("Transcript is empty - cannot generate final script")

        logger.info(
            f"Script settings: {config.word_count} words, style={config.writing_style.value}, "
            f"language={config.language.value}, creativity={config.creativity}"
        )
        return await self.chain.generate(transcript, build_script_prompt(config))
