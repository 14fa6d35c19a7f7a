"""
API routes for working with scripts outside the full pipeline.

- Generating a script from an existing transcript (resume after a
  transcript-only or partial run)
- Chat-style edits of a generated script
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from vidscript.api.deps import get_container, require_api_keys
from vidscript.api.routes import default_script_config
from vidscript.container import ServiceContainer
from vidscript.models.schemas import (
    ChatRequest,
    ChatResponse,
    GenerateScriptRequest,
    GenerateScriptResponse,
)
from vidscript.services.ai_clients import AIClientError
from vidscript.services.fallback_chain import AllModelsFailedError
from vidscript.services.pools import PoolConfigurationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["script"])


@router.post("/generate-script-only", response_model=GenerateScriptResponse)
async def generate_script_only(
    request: GenerateScriptRequest,
    container: ServiceContainer = Depends(get_container),
) -> GenerateScriptResponse:
    """
    Generate the final script from an existing transcript.

    Runs the same model fallback chain as step 5 of the pipeline.

    Raises:
        400: No API keys configured or empty transcript
        502: Every model failed
    """
    require_api_keys(container)

    config = request.config or default_script_config(container.settings)

    try:
        generated = await container.script_generator.generate(request.transcript, config)
    except (ValueError, PoolConfigurationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AllModelsFailedError as e:
        logger.error(f"Script generation failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    return GenerateScriptResponse(script=generated.script, model=generated.model)


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
async def chat(
    request: ChatRequest,
    container: ServiceContainer = Depends(get_container),
) -> ChatResponse:
    """
    Edit a generated script through a chat message.

    Returns:
        ChatResponse as {"response": ..., "updatedResult": ...}

    Raises:
        400: No API keys usable
        502: Upstream call failed
    """
    try:
        return await container.script_editor.edit(
            request.message,
            request.original_result,
            request.chat_history,
        )
    except PoolConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AIClientError as e:
        logger.error(f"Chat edit failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
