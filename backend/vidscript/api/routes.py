"""
HTTP API routes for video processing pipeline.

Provides endpoints for:
- Starting full pipeline processing
- Querying job status
- Streaming job progress via Server-Sent Events
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import StreamingResponse

from vidscript.api.deps import get_container, require_api_keys
from vidscript.config import Settings, load_prompt
from vidscript.container import ServiceContainer
from vidscript.models.schemas import (
    JobStatus,
    ProcessingJob,
    ProcessRequest,
    ScriptConfig,
)
from vidscript.services.job_manager import JobManager
from vidscript.services.pipeline import PipelineError, PipelineOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["pipeline"])

# Seconds without an event before a heartbeat comment is sent
HEARTBEAT_INTERVAL = 15.0


def default_script_config(settings: Settings) -> ScriptConfig:
    """Script settings with the built-in script template."""
    return ScriptConfig(prompt=load_prompt("script_template", settings))


async def run_pipeline(
    job_manager: JobManager,
    orchestrator: PipelineOrchestrator,
    job_id: str,
    video_url: str,
    config: ScriptConfig,
) -> None:
    """
    Background task to run pipeline processing.

    Args:
        job_manager: Job manager for progress updates
        orchestrator: Pipeline orchestrator
        job_id: Job identifier
        video_url: YouTube video URL
        config: Script settings
    """
    try:
        result = await orchestrator.process_video(
            video_url,
            config,
            on_progress=lambda event: job_manager.record_progress(job_id, event),
        )
        job_manager.complete_job(job_id, result)

    except PipelineError as e:
        job_manager.fail_job(job_id, str(e), step=e.step.value, artifacts=e.artifacts)
    except Exception as e:
        logger.exception(f"Pipeline error for job {job_id}")
        job_manager.fail_job(job_id, str(e))


@router.post("/process", response_model=ProcessingJob)
async def start_processing(
    request: ProcessRequest,
    background_tasks: BackgroundTasks,
    container: ServiceContainer = Depends(get_container),
) -> ProcessingJob:
    """
    Start video processing pipeline.

    Creates a new processing job and starts background processing.
    Use GET /api/progress/{job_id} to receive real-time progress updates.

    Args:
        request: ProcessRequest with video_url and optional script settings

    Returns:
        ProcessingJob with job_id for tracking

    Raises:
        400: No API keys configured
    """
    require_api_keys(container)

    config = request.config or default_script_config(container.settings)
    job = container.job_manager.create_job(request.video_url)

    background_tasks.add_task(
        run_pipeline,
        container.job_manager,
        container.orchestrator,
        job.job_id,
        request.video_url,
        config,
    )

    logger.info(f"Started processing job {job.job_id}: {request.video_url}")
    return job


@router.get("/jobs/{job_id}", response_model=ProcessingJob)
async def get_job_status(
    job_id: str,
    container: ServiceContainer = Depends(get_container),
) -> ProcessingJob:
    """
    Get processing job status.

    Raises:
        404: Job not found
    """
    job = container.job_manager.get_job(job_id)

    if not job:
        raise HTTPException(
            status_code=404,
            detail=f"Job not found: {job_id}",
        )

    return job


@router.get("/jobs", response_model=list[ProcessingJob])
async def list_jobs(container: ServiceContainer = Depends(get_container)) -> list[ProcessingJob]:
    """List all processing jobs, newest first."""
    return container.job_manager.list_jobs()


# ═══════════════════════════════════════════════════════════════════════════════
# SSE Progress
# ═══════════════════════════════════════════════════════════════════════════════


def _terminal_message(job: ProcessingJob) -> dict:
    """Final SSE message for a job that has already finished."""
    if job.status == JobStatus.COMPLETED:
        return {
            "type": "complete",
            "status": job.status.value,
            "progress": 100,
            "message": job.message,
            "result": job.result.model_dump(mode="json") if job.result else None,
        }
    return {
        "type": "error",
        "status": job.status.value,
        "progress": job.progress,
        "message": job.error,
        "error": job.error,
        "step": job.failed_step,
    }


async def job_events(
    job_manager: JobManager,
    job_id: str,
    heartbeat: float = HEARTBEAT_INTERVAL,
) -> AsyncGenerator[str, None]:
    """
    Stream job messages as SSE lines until the job completes or fails.

    Sends a ": heartbeat" comment when nothing happened for a while so
    proxies keep the connection open.
    """
    job = job_manager.get_job(job_id)
    if job is None:
        return

    if job.status in (JobStatus.COMPLETED, JobStatus.FAILED):
        yield f"data: {json.dumps(_terminal_message(job))}\n\n"
        return

    queue = job_manager.subscribe(job_id)
    try:
        while True:
            try:
                message = await asyncio.wait_for(queue.get(), timeout=heartbeat)
            except asyncio.TimeoutError:
                yield ": heartbeat\n\n"
                continue

            yield f"data: {json.dumps(message)}\n\n"

            if message["type"] in ("complete", "error"):
                break
    finally:
        job_manager.unsubscribe(job_id, queue)


def create_sse_response(generator: AsyncGenerator[str, None]) -> StreamingResponse:
    """Create SSE StreamingResponse with proper headers."""
    return StreamingResponse(
        generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )


@router.get("/progress/{job_id}")
async def stream_progress(
    job_id: str,
    container: ServiceContainer = Depends(get_container),
) -> StreamingResponse:
    """
    Stream job progress as Server-Sent Events.

    Each event is a JSON object with "type": "progress", "complete" or
    "error". The stream closes after the terminal event.

    Raises:
        404: Job not found
    """
    if container.job_manager.get_job(job_id) is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")

    return create_sse_response(job_events(container.job_manager, job_id))
