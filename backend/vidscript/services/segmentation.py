"""
Segmentation engine: split a video duration into fixed-size time windows.

Primary path asks the LLM for the partition as JSON and validates it;
the fallback computes the windows arithmetically from the duration text.
The result is never empty: an emergency [00:00:00, 00:05:00] window is
used when nothing else is available.
"""

import logging
import re

from vidscript.models.schemas import TimeSegment
from vidscript.services.ai_clients.base import AIClientError
from vidscript.services.ai_clients.gemini_client import GeminiClient
from vidscript.utils.json_utils import load_json_object

logger = logging.getLogger(__name__)

SEGMENT_SECONDS = 300

# Assumed duration when the text contains no number at all
EMERGENCY_DURATION = 300

_HMS = re.compile(r"\b(\d+):(\d{2}):(\d{2})\b")
_MS = re.compile(r"\b(\d+):(\d{2})\b")
_NUMBER = re.compile(r"(\d+)")


def format_time(total_seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    hours, rest = divmod(int(total_seconds), 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def parse_time(text: str) -> int:
    """
    Parse an HH:MM:SS string to seconds.

    Raises:
        ValueError: If the text is not hours:MM:SS
    """
    match = _HMS.fullmatch(text.strip())
    if not match:
        raise ValueError(f"Invalid time: {text!r}")
    hours, minutes, seconds = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def parse_duration(text: str) -> int | None:
    """Seconds from the first HH:MM:SS substring, None if there is none."""
    match = _HMS.search(text or "")
    if not match:
        return None
    hours, minutes, seconds = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def parse_duration_flexible(text: str, default: int | None = EMERGENCY_DURATION) -> int | None:
    """
    Parse a duration in any format the model tends to answer with.

    Tries HH:MM:SS, then MM:SS, then a bare number of seconds.

    Args:
        text: Free-form model response
        default: Returned when the text has no number

    Returns:
        Duration in seconds
    """
    seconds = parse_duration(text)
    if seconds is not None:
        return seconds

    text = text or ""
    match = _MS.search(text)
    if match:
        return int(match.group(1)) * 60 + int(match.group(2))

    match = _NUMBER.search(text)
    if match:
        return int(match.group(1))

    logger.error(f"Could not parse any duration format: {text[:100]!r}")
    return default


def segments_from_seconds(total_seconds: int, window: int = SEGMENT_SECONDS) -> list[TimeSegment]:
    """
    Consecutive windows covering [0, total_seconds], the last one truncated.

    Args:
        total_seconds: Video duration
        window: Window length in seconds

    Returns:
        Segments (empty for a zero duration)
    """
    return [
        TimeSegment(
            start=format_time(start),
            end=format_time(min(start + window, total_seconds)),
        )
        for start in range(0, max(total_seconds, 0), window)
    ]


def create_segments(duration_text: str, window: int = SEGMENT_SECONDS) -> list[TimeSegment]:
    """
    Partition the duration found in free-form text into fixed windows.

    Args:
        duration_text: Text containing an HH:MM:SS duration (first match wins)
        window: Window length in seconds

    Returns:
        Segments covering the whole duration

    Raises:
        ValueError: If the text has no HH:MM:SS duration
    """
    total = parse_duration(duration_text)
    if total is None:
        raise ValueError(f"Could not extract duration from response: {duration_text[:100]!r}")
    return segments_from_seconds(total, window)


def emergency_segments() -> list[TimeSegment]:
    """Single five-minute window used when no segments could be produced."""
    return [TimeSegment(start="00:00:00", end=format_time(EMERGENCY_DURATION))]


def validate_segments(segments: list[TimeSegment], expected_total: int | None = None) -> None:
    """
    Check that segments start at zero, are contiguous and have positive length.

    Args:
        segments: Candidate segments
        expected_total: Duration the last segment must end at, if known

    Raises:
        ValueError: Describing the first violation found
    """
    if not segments:
        raise ValueError("no segments")

    cursor = 0
    for index, segment in enumerate(segments, start=1):
        start = parse_time(segment.start)
        end = parse_time(segment.end)
        if start != cursor:
            raise ValueError(f"segment {index} starts at {segment.start}, expected {format_time(cursor)}")
        if end <= start:
            raise ValueError(f"segment {index} has non-positive length")
        cursor = end

    if expected_total is not None and cursor != expected_total:
        raise ValueError(f"segments end at {format_time(cursor)}, expected {format_time(expected_total)}")


def parse_llm_segments(response: str, expected_total: int | None = None) -> list[TimeSegment]:
    """
    Parse and validate the model's {"items": [{"start", "end"}, ...]} answer.

    Bounds are normalized to HH:MM:SS.

    Args:
        response: Raw model response (may be wrapped in markdown fences)
        expected_total: Duration the segments must cover, if known

    Returns:
        Valid segments, or an empty list if the answer is unusable
    """
    data = load_json_object(response, default=None)
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        logger.warning("Segmentation response has no items list")
        return []

    try:
        segments = [
            TimeSegment(
                start=format_time(parse_time(str(item["start"]))),
                end=format_time(parse_time(str(item["end"]))),
            )
            for item in data["items"]
        ]
        validate_segments(segments, expected_total)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Rejected segmentation response: {e}")
        return []

    return segments


class SegmentationEngine:
    """
    Plans time segments for a video.

    Example:
        engine = SegmentationEngine(client, prompt_template=load_prompt("segmentation"))
        segments = await engine.plan("00:12:30")  # 3 segments
    """

    def __init__(
        self,
        client: GeminiClient | None = None,
        prompt_template: str | None = None,
        model: str | None = None,
        segment_seconds: int = SEGMENT_SECONDS,
    ):
        """
        Initialize segmentation engine.

        Args:
            client: Gemini client for the LLM path (None = arithmetic only)
            prompt_template: Segmentation prompt with {duration},
                {segment_minutes} and {segment_seconds} placeholders
            model: Model for the segmentation call
            segment_seconds: Window length in seconds
        """
        self.client = client
        self.prompt_template = prompt_template
        self.model = model
        self.segment_seconds = segment_seconds

    async def plan(self, duration_text: str) -> list[TimeSegment]:
        """
        Segment a video, LLM first with arithmetic fallback.

        A failed segmentation call is not fatal: the arithmetic windows
        are the same partition.

        Args:
            duration_text: Duration answer from the duration query

        Returns:
            Non-empty list of contiguous segments
        """
        expected_total = parse_duration_flexible(duration_text, default=None)

        if self.client is not None and self.prompt_template:
            prompt = self.prompt_template.format(
                duration=duration_text.strip(),
                segment_minutes=self.segment_seconds // 60,
                segment_seconds=self.segment_seconds,
            )
            try:
                response = await self.client.generate_text(prompt, model=self.model)
            except AIClientError as e:
                logger.warning(f"Segmentation call failed, using arithmetic fallback: {e}")
            else:
                segments = parse_llm_segments(response, expected_total)
                if segments:
                    logger.info(f"LLM segmentation: {len(segments)} segments")
                    return segments
                logger.warning("LLM segmentation unusable, using arithmetic fallback")

        return self.fallback(duration_text)

    def fallback(self, duration_text: str) -> list[TimeSegment]:
        """
        Arithmetic segmentation with the multi-format duration parser.

        Args:
            duration_text: Free-form duration text

        Returns:
            Non-empty list of segments
        """
        total = parse_duration_flexible(duration_text)
        segments = segments_from_seconds(total, self.segment_seconds)

        if not segments:
            logger.error("No segments created, using emergency segment")
            return emergency_segments()

        logger.info(f"Arithmetic segmentation: {len(segments)} segments for {total}s")
        return segments


if __name__ == "__main__":
    """Run tests when executed directly."""

    print("Testing segmentation...")

    segments = create_segments("The video is 00:12:30 long")
    assert [(s.start, s.end) for s in segments] == [
        ("00:00:00", "00:05:00"),
        ("00:05:00", "00:10:00"),
        ("00:10:00", "00:12:30"),
    ]
    print("  create_segments: OK")

    assert parse_duration_flexible("7:44") == 464
    assert parse_duration_flexible("about 95 seconds") == 95
    assert parse_duration_flexible("unknown") == 300
    print("  parse_duration_flexible: OK")

    assert len(parse_llm_segments('{"items": [{"start": "00:00:00", "end": "00:07:04"}]}', 424)) == 1
    assert parse_llm_segments('{"items": [{"start": "00:01:00", "end": "00:07:04"}]}') == []
    print("  parse_llm_segments: OK")

    assert SegmentationEngine().fallback("00:00:00") == emergency_segments()
    print("  emergency segment: OK")

    print("\nAll segmentation tests passed!")
