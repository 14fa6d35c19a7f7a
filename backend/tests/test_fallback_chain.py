"""Tests for the script model fallback chain."""

import asyncio

import pytest

from vidscript.services.ai_clients import AIClientError, ErrorKind
from vidscript.services.fallback_chain import (
    AllModelsFailedError,
    ScriptFallbackChain,
    ScriptGenerator,
    is_server_fault,
)
from vidscript.services.pools import PoolConfigurationError

MODELS = ["gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.0-flash"]


class FakeScriptClient:
    """generate_script double driven by a per-model outcome list."""

    def __init__(self, outcomes: dict[str, list]):
        self.outcomes = {model: list(results) for model, results in outcomes.items()}
        self.calls: list[str] = []
        self.prompts: list[str] = []

    async def generate_script(self, prompt: str, model: str) -> str:
        self.calls.append(model)
        self.prompts.append(prompt)
        result = self.outcomes[model].pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def server_error() -> AIClientError:
    return AIClientError("Gemini API error: 500", kind=ErrorKind.SERVER_ERROR, status_code=500)


def rate_limited() -> AIClientError:
    return AIClientError("Gemini API error: 429", kind=ErrorKind.RATE_LIMITED, status_code=429)


def make_chain(client, sleep, models=MODELS) -> ScriptFallbackChain:
    return ScriptFallbackChain(client, models, attempts_per_model=2, retry_delay=2.0, sleep=sleep)


def test_first_model_success(sleep):
    client = FakeScriptClient({MODELS[0]: ["the script"]})

    generated = asyncio.run(make_chain(client, sleep).generate("transcript", "Write it"))

    assert generated.script == "the script"
    assert generated.model == MODELS[0]
    assert client.prompts[0].startswith("Write it")
    assert "transcript" in client.prompts[0]


def test_server_error_skips_model_after_one_attempt(sleep):
    client = FakeScriptClient({
        MODELS[0]: [server_error()],
        MODELS[1]: ["flash script"],
    })

    generated = asyncio.run(make_chain(client, sleep).generate("transcript", "Write it"))

    assert generated.model == MODELS[1]
    assert client.calls == [MODELS[0], MODELS[1]]
    assert sleep.calls == []


def test_other_errors_get_second_attempt_with_fixed_wait(sleep):
    client = FakeScriptClient({
        MODELS[0]: [rate_limited(), rate_limited()],
        MODELS[1]: [RuntimeError("empty candidate"), "second try"],
    })

    generated = asyncio.run(make_chain(client, sleep).generate("transcript", "Write it"))

    assert generated.script == "second try"
    assert client.calls == [MODELS[0], MODELS[0], MODELS[1], MODELS[1]]
    assert sleep.calls == [2.0, 2.0]


def test_all_models_failed(sleep):
    client = FakeScriptClient({model: [server_error()] for model in MODELS})

    with pytest.raises(AllModelsFailedError, match="All models failed. Last error:") as exc_info:
        asyncio.run(make_chain(client, sleep).generate("transcript", "Write it"))

    assert exc_info.value.models == MODELS
    assert client.calls == MODELS


def test_pool_configuration_error_is_not_masked(sleep):
    client = FakeScriptClient({MODELS[0]: [PoolConfigurationError("No API keys configured")]})

    with pytest.raises(PoolConfigurationError):
        asyncio.run(make_chain(client, sleep).generate("transcript", "Write it"))

    assert client.calls == [MODELS[0]]


def test_is_server_fault():
    assert is_server_fault(server_error())
    assert not is_server_fault(rate_limited())
    assert is_server_fault(RuntimeError("500 Internal Server Error"))
    assert not is_server_fault(RuntimeError("timeout"))


def test_generator_rejects_empty_transcript(sleep, script_config):
    generator = ScriptGenerator(make_chain(FakeScriptClient({}), sleep))

    with pytest.raises(ValueError, match="empty"):
        asyncio.run(generator.generate("   ", script_config))


def test_generator_builds_prompt_from_config(sleep, script_config):
    client = FakeScriptClient({MODELS[0]: ["ok"]})
    generator = ScriptGenerator(make_chain(client, sleep))

    asyncio.run(generator.generate("the transcript", script_config))

    assert "4500 words featuring Thánh Nhọ Rừng Sâu" in client.prompts[0]
    assert "the transcript" in client.prompts[0]
