"""Shared fixtures and fakes for the test-suite."""

import json

import httpx
import pytest

from vidscript.models.schemas import ScriptConfig

SCRIPT_PROMPT = "Write a narrated story of about {word_count} words featuring {main_character}."


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def gemini_reply(text: str, status_code: int = 200) -> httpx.Response:
    """generateContent success body with one candidate."""
    return httpx.Response(
        status_code,
        json={"candidates": [{"content": {"parts": [{"text": text}]}}]},
    )


def gemini_error(status_code: int, message: str = "error") -> httpx.Response:
    return httpx.Response(status_code, text=json.dumps({"error": {"message": message}}))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def script_config() -> ScriptConfig:
    return ScriptConfig(prompt=SCRIPT_PROMPT)
