"""
Pipeline module for video-to-script processing.

This package contains the pipeline components:
- orchestrator: Step sequencing, pacing and partial-failure recovery
- progress_manager: Progress calculation and callback delivery

Example:
    from vidscript.services.pipeline import PipelineOrchestrator, PipelineError

    orchestrator = PipelineOrchestrator.from_settings(settings, client, generator)
    result = await orchestrator.process_video(url, config, on_progress=handler)
"""

from .orchestrator import (
    SEGMENT_SEPARATOR,
    PipelineError,
    PipelineOrchestrator,
    PipelineRun,
    estimate_minutes,
)
from .progress_manager import ProgressCallback, ProgressManager

__all__ = [
    # Main orchestrator
    "PipelineOrchestrator",
    "PipelineError",
    "PipelineRun",
    "SEGMENT_SEPARATOR",
    "estimate_minutes",
    # Supporting classes
    "ProgressManager",
    "ProgressCallback",
]
