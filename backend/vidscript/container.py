"""
Service wiring for the application.

Pools, the Gemini client and the pipeline are long-lived: key and proxy
health must survive between requests, so everything is built once at
startup and shared through app.state.
"""

import logging
from dataclasses import dataclass

from vidscript.config import Settings, load_prompt
from vidscript.services.ai_clients.gemini_client import GeminiClient
from vidscript.services.fallback_chain import ScriptFallbackChain, ScriptGenerator
from vidscript.services.job_manager import JobManager
from vidscript.services.pipeline import PipelineOrchestrator
from vidscript.services.pools import CredentialPool, EgressPool
from vidscript.services.retry_policy import RetryPolicy
from vidscript.services.script_editor import ScriptEditor

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Shared service instances."""

    settings: Settings
    credential_pool: CredentialPool
    egress_pool: EgressPool
    client: GeminiClient
    script_generator: ScriptGenerator
    orchestrator: PipelineOrchestrator
    script_editor: ScriptEditor
    job_manager: JobManager

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceContainer":
        """Build all services from settings."""
        credential_pool = CredentialPool.from_settings(settings)
        egress_pool = EgressPool.from_settings(settings)
        client = GeminiClient.from_settings(
            settings,
            credential_pool=credential_pool,
            egress_pool=egress_pool,
            retry_policy=RetryPolicy.from_settings(settings),
        )
        script_generator = ScriptGenerator(ScriptFallbackChain.from_settings(settings, client))

        logger.info(
            f"Services ready: {len(credential_pool)} API keys, "
            f"{len(egress_pool)} proxies"
        )

        return cls(
            settings=settings,
            credential_pool=credential_pool,
            egress_pool=egress_pool,
            client=client,
            script_generator=script_generator,
            orchestrator=PipelineOrchestrator.from_settings(settings, client, script_generator),
            script_editor=ScriptEditor(client, load_prompt("chat", settings), model=settings.chat_model),
            job_manager=JobManager(),
        )

    async def close(self) -> None:
        """Release HTTP clients."""
        await self.client.close()
