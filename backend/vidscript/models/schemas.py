"""
Pydantic models for the video-to-script pipeline.
"""

from datetime import datetime
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from vidscript.utils.youtube import extract_video_id, is_youtube_url


class WritingStyle(str, Enum):
    """Tone of the final script."""
    HUMOROUS = "Hài hước"
    SERIOUS = "Nghiêm túc"
    DRAMATIC = "Kịch tính"
    TOUCHING = "Cảm động"
    ADVENTURE = "Phiêu lưu"


class Language(str, Enum):
    """Output language of the final script."""
    VIETNAMESE = "Tiếng Việt"
    ENGLISH = "English"
    CHINESE = "中文"
    JAPANESE = "日本語"


class ScriptConfig(BaseModel):
    """User settings for final script generation."""

    word_count: int = Field(default=4500, ge=100, le=20000)
    writing_style: WritingStyle = WritingStyle.HUMOROUS
    main_character: str = Field(default="Thánh Nhọ Rừng Sâu", min_length=1)
    language: Language = Language.VIETNAMESE
    creativity: int = Field(default=7, ge=1, le=10)
    prompt: str = Field(
        ...,
        min_length=50,
        description="Script prompt template; {word_count}, {main_character}, "
        "{writing_style} and {language} are substituted when present",
    )

    @field_validator("main_character")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Main character name is required")
        return value.strip()


class TimeSegment(BaseModel):
    """Time window of the source video, bounds as HH:MM:SS."""

    start: str
    end: str

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


class PipelineStep(IntEnum):
    """Pipeline steps in execution order."""
    DURATION = 1
    SEGMENTATION = 2
    SEGMENT_ANALYSIS = 3
    AGGREGATION = 4
    FINAL_SCRIPT = 5


class PipelineArtifacts(BaseModel):
    """Partial results accumulated by a pipeline run."""

    duration: str | None = None
    segments: list[TimeSegment] = Field(default_factory=list)
    transcripts: list[str] = Field(default_factory=list)
    aggregated: str | None = None
    final_result: str | None = None


class ProgressEvent(BaseModel):
    """
    Progress notification emitted at every pipeline state transition.

    ``artifacts`` carries only what became available with this event
    (e.g. {"duration": "00:12:30"}), not the whole run state.
    """

    step: PipelineStep
    segment_index: int = 0
    segment_total: int = 0
    segment_info: TimeSegment | None = None
    estimated_time: str | None = None
    message: str = ""
    progress_percent: float = Field(ge=0, le=100, default=0)
    artifacts: dict = Field(default_factory=dict)
    retry: dict | None = None
    timestamp: datetime = Field(default_factory=datetime.now)


class PipelineOutcome(str, Enum):
    """How a pipeline run ended (hard failures raise instead)."""
    COMPLETE = "complete"
    TRANSCRIPT_ONLY = "transcript_only"
    PARTIAL = "partial"


class PipelineResult(BaseModel):
    """Final artifact of a pipeline run."""

    outcome: PipelineOutcome
    result: str = Field(description="Final script, or the transcript it falls back to")
    error: str | None = None
    failed_step: PipelineStep | None = None
    model: str | None = Field(default=None, description="Model that produced the script")
    artifacts: PipelineArtifacts = Field(default_factory=PipelineArtifacts)

    @computed_field
    @property
    def is_transcript_only(self) -> bool:
        """True if script generation failed and the transcript is returned."""
        return self.outcome == PipelineOutcome.TRANSCRIPT_ONLY

    @computed_field
    @property
    def is_partial(self) -> bool:
        """True if the run failed midway and returns part of the transcript."""
        return self.outcome == PipelineOutcome.PARTIAL


class JobStatus(str, Enum):
    """Status of a processing job."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ProcessingJob(BaseModel):
    """Processing job state."""

    job_id: str
    video_url: str
    status: JobStatus = JobStatus.PENDING
    progress: float = Field(ge=0, le=100, default=0)
    current_step: int = 0
    message: str = ""
    error: str | None = None
    failed_step: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    result: PipelineResult | None = None
    artifacts: PipelineArtifacts | None = Field(
        default=None,
        description="Partial artifacts kept on hard failure for resume-from-transcript",
    )

    @computed_field
    @property
    def video_id(self) -> str | None:
        """YouTube video id."""
        return extract_video_id(self.video_url)


# ═══════════════════════════════════════════════════════════════════════════
# API Request/Response Models
# ═══════════════════════════════════════════════════════════════════════════


class ProcessRequest(BaseModel):
    """Request to start video processing."""

    video_url: str = Field(
        ...,
        description="YouTube video URL",
        examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
    )
    config: ScriptConfig | None = Field(
        default=None,
        description="Script settings (default template when omitted)",
    )

    @field_validator("video_url")
    @classmethod
    def _youtube_only(cls, value: str) -> str:
        value = value.strip()
        if not is_youtube_url(value):
            raise ValueError("Invalid YouTube URL")
        return value


class GenerateScriptRequest(BaseModel):
    """Request to generate a script from an existing transcript."""

    transcript: str = Field(..., min_length=1)
    config: ScriptConfig | None = None


class GenerateScriptResponse(BaseModel):
    """Generated script."""

    script: str
    model: str


class ChatMessage(BaseModel):
    """One turn of a script editing conversation."""

    role: str = Field(description='"user" or "assistant"')
    content: str


class ChatRequest(BaseModel):
    """Chat-style edit request for a generated script."""

    message: str = Field(..., min_length=1)
    original_result: str = Field(..., min_length=1)
    chat_history: list[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    """Reply to a chat edit; updatedResult is the original script when the model gave plain text."""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    updated_result: str = Field(alias="updatedResult")


class KeyAddRequest(BaseModel):
    """Request to add an API key."""

    api_key: str = Field(..., min_length=1)


class KeyRemoveRequest(BaseModel):
    """Request to remove an API key by id or value."""

    identifier: str = Field(..., min_length=1)


class ResetRequest(BaseModel):
    """Request to reset pool cooldowns."""

    include_permanent: bool = Field(
        default=False,
        description="Also re-activate entries disabled by auth failures",
    )


class ProxyAddRequest(BaseModel):
    """Request to add a proxy."""

    url: str = Field(..., min_length=1, examples=["socks5://127.0.0.1:1080"])
    type: str | None = Field(default=None, description="http, https, socks4 or socks5")
    username: str | None = None
    password: str | None = None
    country: str | None = None
    speed: str | None = None


class ProxyIdRequest(BaseModel):
    """Request addressing one proxy."""

    proxy_id: str = Field(..., min_length=1)


class ProxyTestResult(BaseModel):
    """Outcome of a live proxy probe."""

    proxy_id: str
    success: bool
    response_time: float | None = Field(default=None, description="Milliseconds")
    ip: str | None = Field(default=None, description="Probe response body (exit IP)")
    error: str | None = None
