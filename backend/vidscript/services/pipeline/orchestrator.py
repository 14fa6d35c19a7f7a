"""
Pipeline orchestrator for video-to-script processing.

Runs the five steps of a pipeline run in order:
1. Duration query (video call)
2. Segmentation (LLM with arithmetic fallback)
3. Per-segment scene analysis with pacing pauses
4. Aggregation of segment transcripts
5. Final script through the model fallback chain

Completed work is never thrown away: a failed final script returns the
transcript, and a failure midway returns the segments analyzed so far.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from vidscript.config import Settings, get_settings, load_prompt
from vidscript.models.schemas import (
    PipelineArtifacts,
    PipelineOutcome,
    PipelineResult,
    PipelineStep,
    ProgressEvent,
    ScriptConfig,
    TimeSegment,
)
from vidscript.services.ai_clients.gemini_client import GeminiClient
from vidscript.services.fallback_chain import ScriptGenerator
from vidscript.services.retry_policy import RetryEvent
from vidscript.services.segmentation import SegmentationEngine

from .progress_manager import ProgressCallback, ProgressManager

logger = logging.getLogger(__name__)

SEGMENT_SEPARATOR = "\n\n--- Segment Break ---\n\n"


class PipelineError(Exception):
    """
    Pipeline step error with context.

    Attributes:
        step: Pipeline step where the error occurred
        message: Error description
        cause: Original exception (if any)
        artifacts: Partial artifacts produced before the failure
    """

    def __init__(
        self,
        step: PipelineStep,
        message: str,
        cause: Exception | None = None,
        artifacts: PipelineArtifacts | None = None,
    ):
        self.step = step
        self.message = message
        self.cause = cause
        self.artifacts = artifacts or PipelineArtifacts()
        super().__init__(f"[step {step.value}] {message}")


@dataclass
class PipelineRun:
    """State of one video being processed."""

    video_url: str
    config: ScriptConfig
    step: PipelineStep = PipelineStep.DURATION
    segment_index: int = 0
    segment_total: int = 0
    estimated_time: str | None = None
    progress_percent: float = 0.0
    artifacts: PipelineArtifacts = field(default_factory=PipelineArtifacts)

    @property
    def has_transcript(self) -> bool:
        """True once at least one segment produced usable text."""
        return any(t.strip() for t in self.artifacts.transcripts)

    def joined_transcript(self) -> str:
        return SEGMENT_SEPARATOR.join(self.artifacts.transcripts)


def estimate_minutes(segment_count: int) -> int:
    """Rough wall-clock estimate: 1.5 min per segment plus 5 min for the script."""
    return math.ceil(segment_count * 1.5 + 5)


class PipelineOrchestrator:
    """
    Pipeline orchestrator for video-to-script processing.

    Example:
        orchestrator = PipelineOrchestrator.from_settings(settings, client, generator)
        result = await orchestrator.process_video(url, config, on_progress=print)
        if result.outcome == PipelineOutcome.TRANSCRIPT_ONLY:
            ...
    """

    def __init__(
        self,
        client: GeminiClient,
        segmentation: SegmentationEngine,
        script_generator: ScriptGenerator,
        duration_prompt: str,
        scene_prompt: str,
        step_delay: float = 60.0,
        segment_delay: float = 60.0,
        pre_call_delay: float = 60.0,
        duration_model: str | None = None,
        segment_model: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize pipeline orchestrator.

        Args:
            client: Gemini client for the video calls
            segmentation: Segmentation engine
            script_generator: Final script generator (fallback chain)
            duration_prompt: Template with {video_url}
            scene_prompt: Template with {start} and {end}
            step_delay: Pause after step 1 and after step 4, seconds
            segment_delay: Pause between segments (not before the first), seconds
            pre_call_delay: Pause right before every segment call, seconds
            duration_model: Model for the duration query (client default if None)
            segment_model: Model for segment analysis (client default if None)
            sleep: Async sleep function (injectable for tests)
        """
        self.client = client
        self.segmentation = segmentation
        self.script_generator = script_generator
        self.duration_prompt = duration_prompt
        self.scene_prompt = scene_prompt
        self.step_delay = step_delay
        self.segment_delay = segment_delay
        self.pre_call_delay = pre_call_delay
        self.duration_model = duration_model
        self.segment_model = segment_model
        self._sleep = sleep
        self.progress_manager = ProgressManager()

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None,
        client: GeminiClient,
        script_generator: ScriptGenerator,
    ) -> "PipelineOrchestrator":
        """
        Create orchestrator with prompts, models and pacing from settings.

        Args:
            settings: Application settings (uses defaults if None)
            client: Gemini client
            script_generator: Final script generator

        Returns:
            Configured PipelineOrchestrator
        """
        settings = settings or get_settings()
        segmentation = SegmentationEngine(
            client=client,
            prompt_template=load_prompt("segmentation", settings),
            model=settings.segmentation_model,
            segment_seconds=settings.segment_seconds,
        )
        return cls(
            client=client,
            segmentation=segmentation,
            script_generator=script_generator,
            duration_prompt=load_prompt("duration", settings),
            scene_prompt=load_prompt("scene", settings),
            step_delay=settings.step_delay,
            segment_delay=settings.segment_delay,
            pre_call_delay=settings.pre_call_delay,
            duration_model=settings.duration_model,
            segment_model=settings.segment_model,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Full Pipeline
    # ═══════════════════════════════════════════════════════════════════════════

    async def process_video(
        self,
        video_url: str,
        config: ScriptConfig,
        on_progress: ProgressCallback | None = None,
    ) -> PipelineResult:
        """
        Process a video through the complete pipeline.

        Args:
            video_url: YouTube video URL
            config: User script settings
            on_progress: Optional synchronous callback for progress events

        Returns:
            PipelineResult: complete, transcript_only (script failed) or
            partial (failed midway with some segments analyzed)

        Raises:
            PipelineError: If the run failed before any transcript existed
        """
        run = PipelineRun(video_url=video_url, config=config)
        logger.info(f"Processing video: {video_url}")

        try:
            await self._do_duration(run, on_progress)
            await self._do_segmentation(run, on_progress)
            await self._do_segment_analysis(run, on_progress)
            await self._do_aggregation(run, on_progress)
        except Exception as e:
            return self._recover(run, e, on_progress)

        return await self._do_final_script(run, on_progress)

    # ═══════════════════════════════════════════════════════════════════════════
    # Steps
    # ═══════════════════════════════════════════════════════════════════════════

    async def _do_duration(self, run: PipelineRun, on_progress: ProgressCallback | None) -> None:
        """Step 1: ask the model for the video duration."""
        run.step = PipelineStep.DURATION
        self._emit(run, on_progress, "Getting video duration...", 0)

        duration = await self.client.analyze_video(
            run.video_url,
            self.duration_prompt.format(video_url=run.video_url),
            model=self.duration_model,
            context="Duration",
            on_retry=self._retry_forwarder(run, on_progress),
        )
        run.artifacts.duration = duration.strip()
        logger.info(f"Duration: {run.artifacts.duration[:50]}")

        self._emit(
            run, on_progress, "Duration received", 50,
            artifacts={"duration": run.artifacts.duration},
        )
        await self._pause(run, on_progress, self.step_delay, "before segmentation")

    async def _do_segmentation(self, run: PipelineRun, on_progress: ProgressCallback | None) -> None:
        """Step 2: split the duration into time segments."""
        run.step = PipelineStep.SEGMENTATION
        self._emit(run, on_progress, "Splitting video into segments...", 0)

        segments = await self.segmentation.plan(run.artifacts.duration or "")
        run.artifacts.segments = segments
        run.segment_total = len(segments)
        run.estimated_time = f"About {estimate_minutes(len(segments))} minutes"

        for index, segment in enumerate(segments, start=1):
            logger.debug(f"Segment {index}: {segment}")

        self._emit(
            run, on_progress, f"Created {len(segments)} segments", 100,
            artifacts={"segments": [s.model_dump() for s in segments]},
        )

    async def _do_segment_analysis(self, run: PipelineRun, on_progress: ProgressCallback | None) -> None:
        """Step 3: analyze each segment in order, with pacing pauses."""
        run.step = PipelineStep.SEGMENT_ANALYSIS
        total = run.segment_total
        self._emit(run, on_progress, f"Analyzing {total} segments...", 0)

        for index, segment in enumerate(run.artifacts.segments, start=1):
            run.segment_index = index

            if index > 1:
                await self._pause(run, on_progress, self.segment_delay, "between segments")
            await self._pause(run, on_progress, self.pre_call_delay, f"before segment {index}/{total}")

            self._emit(
                run, on_progress, f"Analyzing segment {index}/{total} ({segment})",
                (index - 1) / total * 100, segment=segment,
            )

            transcript = await self.client.analyze_video_segment(
                run.video_url,
                self.scene_prompt.format(start=segment.start, end=segment.end),
                model=self.segment_model,
                context=f"Segment {index}/{total}",
                on_retry=self._retry_forwarder(run, on_progress, segment),
            )
            run.artifacts.transcripts.append(transcript)
            logger.info(f"Segment {index}/{total} done: {len(transcript)} chars")

            self._emit(
                run, on_progress, f"Segment {index}/{total} analyzed",
                index / total * 100, segment=segment,
                artifacts={"transcripts": list(run.artifacts.transcripts)},
            )

    async def _do_aggregation(self, run: PipelineRun, on_progress: ProgressCallback | None) -> None:
        """Step 4: join segment transcripts."""
        run.step = PipelineStep.AGGREGATION
        run.segment_index = 0
        self._emit(run, on_progress, "Aggregating transcript...", 0)

        if not run.has_transcript:
            raise PipelineError(
                PipelineStep.AGGREGATION,
                "Transcript is empty - cannot generate final script",
                artifacts=run.artifacts,
            )

        run.artifacts.aggregated = run.joined_transcript()
        logger.info(
            f"Aggregated {len(run.artifacts.transcripts)} segments: "
            f"{len(run.artifacts.aggregated)} chars"
        )

        self._emit(
            run, on_progress, "Transcript aggregated", 50,
            artifacts={"aggregated": run.artifacts.aggregated},
        )
        await self._pause(run, on_progress, self.step_delay, "before the final script")

    async def _do_final_script(
        self,
        run: PipelineRun,
        on_progress: ProgressCallback | None,
    ) -> PipelineResult:
        """Step 5: final script; a failure returns the transcript instead."""
        run.step = PipelineStep.FINAL_SCRIPT
        self._emit(run, on_progress, "Generating final script (trying Gemini models)...", 0)

        try:
            generated = await self.script_generator.generate(run.artifacts.aggregated, run.config)
        except Exception as e:
            logger.error(f"Script generation failed, returning transcript: {e}")
            run.artifacts.final_result = run.artifacts.aggregated
            self._emit(
                run, on_progress, "Script generation failed, returning transcript", 100,
                artifacts={
                    "final_result": run.artifacts.aggregated,
                    "error": str(e),
                    "is_transcript_only": True,
                },
            )
            return PipelineResult(
                outcome=PipelineOutcome.TRANSCRIPT_ONLY,
                result=run.artifacts.aggregated,
                error=str(e),
                failed_step=PipelineStep.FINAL_SCRIPT,
                artifacts=run.artifacts,
            )

        run.artifacts.final_result = generated.script
        self._emit(
            run, on_progress, "Completed!", 100,
            artifacts={"final_result": generated.script, "model": generated.model},
        )
        logger.info(f"Video processed: {len(generated.script)} chars with {generated.model}")

        return PipelineResult(
            outcome=PipelineOutcome.COMPLETE,
            result=generated.script,
            model=generated.model,
            artifacts=run.artifacts,
        )

    # ═══════════════════════════════════════════════════════════════════════════
    # Recovery and helpers
    # ═══════════════════════════════════════════════════════════════════════════

    def _recover(
        self,
        run: PipelineRun,
        error: Exception,
        on_progress: ProgressCallback | None,
    ) -> PipelineResult:
        """Return the partial transcript, or raise if there is none."""
        step = error.step if isinstance(error, PipelineError) else run.step
        message = error.message if isinstance(error, PipelineError) else str(error)

        if not run.has_transcript:
            logger.error(f"Pipeline failed at step {step.value}: {message}")
            if isinstance(error, PipelineError):
                raise error
            raise PipelineError(step, message, cause=error, artifacts=run.artifacts) from error

        partial = run.joined_transcript()
        logger.warning(
            f"Pipeline failed at step {step.value}, returning partial transcript "
            f"({len(run.artifacts.transcripts)}/{run.segment_total} segments): {message}"
        )
        run.artifacts.final_result = partial
        self._emit(
            run, on_progress, "Workflow failed, returning partial transcript", 100,
            artifacts={"final_result": partial, "error": message, "is_partial_transcript": True},
        )
        return PipelineResult(
            outcome=PipelineOutcome.PARTIAL,
            result=partial,
            error=message,
            failed_step=step,
            artifacts=run.artifacts,
        )

    async def _pause(
        self,
        run: PipelineRun,
        on_progress: ProgressCallback | None,
        seconds: float,
        reason: str,
    ) -> None:
        if seconds <= 0:
            return
        message = f"Waiting {seconds:.0f}s {reason}..."
        logger.info(message)
        self._emit(run, on_progress, message, None)
        await self._sleep(seconds)

    def _emit(
        self,
        run: PipelineRun,
        on_progress: ProgressCallback | None,
        message: str,
        step_progress: float | None,
        segment: TimeSegment | None = None,
        artifacts: dict | None = None,
        retry: dict | None = None,
    ) -> None:
        """Build a progress event from run state; None keeps the last percentage."""
        if step_progress is not None:
            run.progress_percent = self.progress_manager.calculate_overall_progress(
                run.step, step_progress
            )

        self.progress_manager.emit(on_progress, ProgressEvent(
            step=run.step,
            segment_index=run.segment_index,
            segment_total=run.segment_total,
            segment_info=segment,
            estimated_time=run.estimated_time,
            message=message,
            progress_percent=run.progress_percent,
            artifacts=artifacts or {},
            retry=retry,
        ))

    def _retry_forwarder(
        self,
        run: PipelineRun,
        on_progress: ProgressCallback | None,
        segment: TimeSegment | None = None,
    ) -> Callable[[RetryEvent], None]:
        """Turn retry policy events into pipeline progress events."""

        def forward(event: RetryEvent) -> None:
            self._emit(
                run, on_progress, event.message, None, segment=segment,
                retry={
                    "status": event.status,
                    "attempt": event.attempt,
                    "max_attempts": event.max_attempts,
                    "delay": event.delay,
                    "error": event.error,
                },
            )

        return forward
