"""Tests for the script prompt builder and ScriptConfig validation."""

import pytest
from pydantic import ValidationError

from vidscript.models.schemas import Language, ScriptConfig, WritingStyle
from vidscript.services.script_prompt import build_script_prompt, creativity_instruction

FILLER = " Keep the narration lively and easy to follow for listeners."


def test_placeholders_are_substituted():
    config = ScriptConfig(
        prompt="Tell the story of {main_character} in {word_count} words, style {writing_style}, in {language}." + FILLER,
        word_count=1200,
        main_character="Bob",
        writing_style=WritingStyle.DRAMATIC,
        language=Language.ENGLISH,
    )

    prompt = build_script_prompt(config)

    assert "Tell the story of Bob in 1200 words, style Kịch tính, in English." in prompt
    assert "Main character:" not in prompt
    assert "{" not in prompt


def test_missing_placeholders_are_appended():
    config = ScriptConfig(prompt="Turn this transcript into a narrated video script." + FILLER)

    prompt = build_script_prompt(config)

    assert "Main character: Thánh Nhọ Rừng Sâu" in prompt
    assert "Writing style: Hài hước" in prompt
    assert "Language: Tiếng Việt" in prompt
    assert "4500" not in prompt


@pytest.mark.parametrize(
    ("level", "keyword"),
    [(1, "conservatively"), (3, "conservatively"), (4, "Balance"), (6, "Balance"),
     (7, "creatively, adding"), (8, "creatively, adding"), (9, "very creatively"), (10, "very creatively")],
)
def test_creativity_bands(level, keyword):
    assert keyword in creativity_instruction(level)


def test_creativity_instruction_always_last():
    config = ScriptConfig(prompt="Script about {main_character}." + FILLER, creativity=2)

    assert build_script_prompt(config).endswith(creativity_instruction(2))


def test_config_bounds():
    with pytest.raises(ValidationError):
        ScriptConfig(prompt="x" * 60, word_count=50)
    with pytest.raises(ValidationError):
        ScriptConfig(prompt="x" * 60, creativity=11)
    with pytest.raises(ValidationError):
        ScriptConfig(prompt="too short")
    with pytest.raises(ValidationError):
        ScriptConfig(prompt="x" * 60, main_character="   ")
    with pytest.raises(ValidationError):
        ScriptConfig(prompt="x" * 60, writing_style="Boring")
