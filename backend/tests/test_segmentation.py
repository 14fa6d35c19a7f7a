"""Tests for duration parsing and segmentation."""

import asyncio

import pytest

from vidscript.services.ai_clients import AIClientError, ErrorKind
from vidscript.services.segmentation import (
    SegmentationEngine,
    create_segments,
    emergency_segments,
    format_time,
    parse_duration,
    parse_duration_flexible,
    parse_llm_segments,
    parse_time,
    validate_segments,
)

TEMPLATE = "Split {duration} into {segment_minutes}-minute ({segment_seconds}s) parts as JSON."


class FakeTextClient:
    def __init__(self, reply: str | Exception):
        self.reply = reply
        self.prompts: list[str] = []

    async def generate_text(self, prompt: str, model: str | None = None) -> str:
        self.prompts.append(prompt)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


def bounds(segments) -> list[tuple[str, str]]:
    return [(s.start, s.end) for s in segments]


def test_create_segments_twelve_and_a_half_minutes():
    segments = create_segments("Video length: 00:12:30.")

    assert bounds(segments) == [
        ("00:00:00", "00:05:00"),
        ("00:05:00", "00:10:00"),
        ("00:10:00", "00:12:30"),
    ]


@pytest.mark.parametrize("total", [1, 299, 300, 301, 3599, 3600, 7384])
def test_segments_cover_duration_contiguously(total):
    segments = create_segments(f"It lasts {format_time(total)}")

    assert segments[0].start == "00:00:00"
    assert parse_time(segments[-1].end) == total
    for previous, current in zip(segments, segments[1:]):
        assert previous.end == current.start
    assert all(parse_time(s.end) - parse_time(s.start) <= 300 for s in segments)


def test_create_segments_without_hms_raises():
    with pytest.raises(ValueError):
        create_segments("about twelve minutes")


def test_parse_duration_takes_first_match():
    assert parse_duration("from 00:01:00 to 00:02:00") == 60
    assert parse_duration("no time here") is None


def test_parse_duration_flexible_formats():
    assert parse_duration_flexible("1:02:03") == 3723
    assert parse_duration_flexible("duration 7:44") == 464
    assert parse_duration_flexible("95 seconds") == 95
    assert parse_duration_flexible("unknown") == 300
    assert parse_duration_flexible("unknown", default=None) is None


def test_parse_duration_flexible_keeps_long_minutes():
    assert parse_duration_flexible("125:30") == 7530
    assert parse_duration_flexible("length 100:00:00") == 360000
    assert parse_duration("125:30:00") == 451800


def test_parse_time_is_strict():
    assert parse_time("01:00:00") == 3600
    with pytest.raises(ValueError):
        parse_time("01:00")


def test_validate_segments_rejects_gaps_and_wrong_total():
    with pytest.raises(ValueError, match="starts at"):
        validate_segments(create_segments("00:10:00")[1:])
    with pytest.raises(ValueError, match="expected"):
        validate_segments(create_segments("00:10:00"), expected_total=900)
    with pytest.raises(ValueError):
        validate_segments([])


def test_parse_llm_segments_accepts_fenced_json_and_normalizes():
    response = '```json\n{"items": [{"start": "0:00:00", "end": "0:05:00"}, {"start": "0:05:00", "end": "0:07:04"}]}\n```'

    segments = parse_llm_segments(response, expected_total=424)

    assert bounds(segments) == [("00:00:00", "00:05:00"), ("00:05:00", "00:07:04")]


def test_parse_llm_segments_rejects_bad_answers():
    assert parse_llm_segments("I cannot do that") == []
    assert parse_llm_segments('{"items": [{"start": "00:00:00"}]}') == []
    assert parse_llm_segments('{"items": [{"start": "00:00:00", "end": "00:05:00"}]}', 600) == []


def test_engine_uses_valid_llm_answer():
    client = FakeTextClient('{"items": [{"start": "00:00:00", "end": "00:04:00"}, {"start": "00:04:00", "end": "00:08:00"}]}')
    engine = SegmentationEngine(client, prompt_template=TEMPLATE)

    segments = asyncio.run(engine.plan("00:08:00"))

    assert bounds(segments) == [("00:00:00", "00:04:00"), ("00:04:00", "00:08:00")]
    assert client.prompts == ["Split 00:08:00 into 5-minute (300s) parts as JSON."]


def test_engine_falls_back_on_invalid_llm_answer():
    client = FakeTextClient('{"items": [{"start": "00:00:00", "end": "00:03:00"}]}')
    engine = SegmentationEngine(client, prompt_template=TEMPLATE)

    segments = asyncio.run(engine.plan("00:08:00"))

    assert bounds(segments) == [("00:00:00", "00:05:00"), ("00:05:00", "00:08:00")]


def test_engine_falls_back_when_call_fails():
    client = FakeTextClient(AIClientError("overloaded", kind=ErrorKind.MODEL_OVERLOADED))
    engine = SegmentationEngine(client, prompt_template=TEMPLATE)

    assert len(asyncio.run(engine.plan("00:12:30"))) == 3


def test_engine_never_returns_empty():
    engine = SegmentationEngine()

    assert asyncio.run(engine.plan("00:00:00")) == emergency_segments()
    assert bounds(asyncio.run(engine.plan("no idea"))) == [("00:00:00", "00:05:00")]
