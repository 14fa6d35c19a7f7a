"""
Progress management for pipeline steps.

Calculates overall progress from step weights and delivers progress events
to the caller's callback without letting callback errors reach the pipeline.
"""

import logging
from typing import Callable

from vidscript.models.schemas import PipelineStep, ProgressEvent

logger = logging.getLogger(__name__)

# Type alias for progress callback
# Synchronous, fire-and-forget: the pipeline never awaits it
ProgressCallback = Callable[[ProgressEvent], None]


class ProgressManager:
    """
    Manages progress calculation and reporting for pipeline steps.

    Weights follow where the wall-clock time goes: per-segment analysis
    dominates (two pacing pauses plus a video call per segment).

    Example:
        manager = ProgressManager()
        overall = manager.calculate_overall_progress(
            PipelineStep.SEGMENT_ANALYSIS, 50
        )  # Returns 45.0 (5 + 5 + 35)
    """

    # Progress weights for each step (must sum to 100)
    STEP_WEIGHTS = {
        PipelineStep.DURATION: 5,            # 0-5%: one video call + pause
        PipelineStep.SEGMENTATION: 5,        # 5-10%: one text call
        PipelineStep.SEGMENT_ANALYSIS: 70,   # 10-80%: dominant step
        PipelineStep.AGGREGATION: 5,         # 80-85%: join + pause
        PipelineStep.FINAL_SCRIPT: 15,       # 85-100%: fallback chain
    }

    def calculate_overall_progress(
        self,
        current_step: PipelineStep,
        step_progress: float = 100,
    ) -> float:
        """
        Calculate overall progress percentage.

        Args:
            current_step: Current pipeline step
            step_progress: Progress within current step (0-100)

        Returns:
            Overall progress (0-100)
        """
        base_progress = sum(
            weight for step, weight in self.STEP_WEIGHTS.items() if step < current_step
        )
        current_weight = self.STEP_WEIGHTS.get(current_step, 0)
        step_progress = min(max(step_progress, 0), 100)

        return min(base_progress + (step_progress / 100) * current_weight, 100)

    def emit(self, callback: ProgressCallback | None, event: ProgressEvent) -> None:
        """
        Deliver a progress event via callback.

        Args:
            callback: Progress callback (may be None)
            event: Event to deliver
        """
        logger.debug(f"[step {event.step.value}] {event.progress_percent:.0f}% {event.message}")

        if callback is None:
            return

        try:
            callback(event)
        except Exception as e:
            # Never fail due to callback error
            logger.warning(f"Progress callback error: {e}")


if __name__ == "__main__":
    """Run tests when executed directly."""

    print("\nRunning ProgressManager tests...\n")

    manager = ProgressManager()

    assert sum(manager.STEP_WEIGHTS.values()) == 100
    assert manager.calculate_overall_progress(PipelineStep.DURATION, 0) == 0
    assert manager.calculate_overall_progress(PipelineStep.SEGMENT_ANALYSIS, 50) == 45
    assert manager.calculate_overall_progress(PipelineStep.FINAL_SCRIPT, 100) == 100
    print("calculate_overall_progress: OK")

    def failing_callback(event):
        raise RuntimeError("boom")

    manager.emit(failing_callback, ProgressEvent(step=PipelineStep.DURATION))
    manager.emit(None, ProgressEvent(step=PipelineStep.DURATION))
    print("emit: OK")

    print("\nAll ProgressManager tests passed!")
