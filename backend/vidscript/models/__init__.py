"""
Pydantic models for the video-to-script pipeline.

Exports:
    - Script settings (ScriptConfig, WritingStyle, Language)
    - Pipeline models (TimeSegment, ProgressEvent, PipelineResult, etc.)
    - Job model (ProcessingJob)
"""

from vidscript.models.schemas import (
    JobStatus,
    Language,
    PipelineArtifacts,
    PipelineOutcome,
    PipelineResult,
    PipelineStep,
    ProcessingJob,
    ProgressEvent,
    ScriptConfig,
    TimeSegment,
    WritingStyle,
)

__all__ = [
    # Script settings
    "ScriptConfig",
    "WritingStyle",
    "Language",
    # Pipeline
    "TimeSegment",
    "PipelineStep",
    "PipelineArtifacts",
    "ProgressEvent",
    "PipelineOutcome",
    "PipelineResult",
    # Jobs
    "JobStatus",
    "ProcessingJob",
]
