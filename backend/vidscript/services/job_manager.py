"""
Job manager for pipeline runs.

Handles job lifecycle and broadcasts progress to SSE subscribers.
"""

import asyncio
import logging
import uuid
from datetime import datetime

from vidscript.models.schemas import (
    JobStatus,
    PipelineArtifacts,
    PipelineResult,
    ProcessingJob,
    ProgressEvent,
)

logger = logging.getLogger(__name__)


class JobManager:
    """
    Manager for processing jobs with progress broadcasting.

    Stores jobs in-memory. Broadcasting never blocks: messages go to
    unbounded subscriber queues with put_nowait, so record_progress can be
    used directly as the pipeline's synchronous progress callback.

    Example:
        manager = JobManager()
        job = manager.create_job("https://youtu.be/abc")

        queue = manager.subscribe(job.job_id)
        result = await orchestrator.process_video(
            job.video_url, config,
            on_progress=lambda event: manager.record_progress(job.job_id, event),
        )
        manager.complete_job(job.job_id, result)
    """

    def __init__(self):
        """Initialize job manager with empty stores."""
        self._jobs: dict[str, ProcessingJob] = {}
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    def create_job(self, video_url: str) -> ProcessingJob:
        """
        Create a new processing job.

        Args:
            video_url: YouTube video URL

        Returns:
            Created ProcessingJob with unique ID
        """
        job_id = str(uuid.uuid4())[:8]

        job = ProcessingJob(job_id=job_id, video_url=video_url)

        self._jobs[job_id] = job
        self._subscribers[job_id] = []

        logger.info(f"Created job {job_id} for video {job.video_id or video_url}")
        return job

    def get_job(self, job_id: str) -> ProcessingJob | None:
        """Get job by ID (None if not found)."""
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[ProcessingJob]:
        """List all jobs, newest first."""
        return list(reversed(self._jobs.values()))

    def record_progress(self, job_id: str, event: ProgressEvent) -> None:
        """
        Update job state from a pipeline event and broadcast it.

        Args:
            job_id: Job identifier
            event: Progress event from the orchestrator
        """
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for progress update")
            return

        job.status = JobStatus.PROCESSING
        job.progress = event.progress_percent
        job.current_step = event.step.value
        job.message = event.message

        self._broadcast(job_id, {
            "type": "progress",
            **event.model_dump(mode="json"),
        })

    def complete_job(self, job_id: str, result: PipelineResult) -> None:
        """
        Mark job as completed with result.

        Transcript-only and partial outcomes also complete the job; the
        outcome and error are part of the result.

        Args:
            job_id: Job identifier
            result: Pipeline result
        """
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for completion")
            return

        job.status = JobStatus.COMPLETED
        job.progress = 100
        job.message = "Completed" if result.error is None else f"Completed ({result.outcome.value})"
        job.error = result.error
        job.failed_step = result.failed_step.value if result.failed_step else None
        job.completed_at = datetime.now()
        job.result = result

        self._broadcast(job_id, {
            "type": "complete",
            "status": JobStatus.COMPLETED.value,
            "progress": 100,
            "message": job.message,
            "timestamp": datetime.now().isoformat(),
            "result": result.model_dump(mode="json"),
        })

        logger.info(f"Job {job_id} completed: {result.outcome.value}")

    def fail_job(
        self,
        job_id: str,
        error: str,
        step: int | None = None,
        artifacts: PipelineArtifacts | None = None,
    ) -> None:
        """
        Mark job as failed with error.

        Args:
            job_id: Job identifier
            error: Error message
            step: Pipeline step that failed
            artifacts: Partial artifacts for a resume-from-transcript path
        """
        job = self._jobs.get(job_id)
        if not job:
            logger.warning(f"Job {job_id} not found for failure")
            return

        job.status = JobStatus.FAILED
        job.error = error
        job.failed_step = step
        job.artifacts = artifacts
        job.completed_at = datetime.now()

        self._broadcast(job_id, {
            "type": "error",
            "status": JobStatus.FAILED.value,
            "progress": job.progress,
            "message": error,
            "timestamp": datetime.now().isoformat(),
            "error": error,
            "step": step,
        })

        logger.error(f"Job {job_id} failed at step {step}: {error}")

    def subscribe(self, job_id: str) -> asyncio.Queue:
        """
        Subscribe to job progress updates.

        Args:
            job_id: Job identifier

        Returns:
            Queue that will receive progress messages
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.setdefault(job_id, []).append(queue)
        logger.debug(f"Client subscribed to job {job_id}")
        return queue

    def unsubscribe(self, job_id: str, queue: asyncio.Queue) -> None:
        """
        Unsubscribe from job progress updates.

        Args:
            job_id: Job identifier
            queue: Queue to remove
        """
        subscribers = self._subscribers.get(job_id, [])
        if queue in subscribers:
            subscribers.remove(queue)
            logger.debug(f"Client unsubscribed from job {job_id}")

    def _broadcast(self, job_id: str, message: dict) -> None:
        for queue in self._subscribers.get(job_id, []):
            queue.put_nowait(message)
