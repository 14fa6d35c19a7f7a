"""
Script prompt builder.

Turns the user's ScriptConfig into the instruction text sent with the
transcript to the final script model.
"""

from vidscript.models.schemas import ScriptConfig

# (upper bound of creativity level, instruction)
CREATIVITY_LEVELS = (
    (3, "Write conservatively: stay close to the original content with little invention."),
    (6, "Balance faithfulness to the original content with creativity."),
    (8, "Write creatively, adding plenty of humor and drama."),
    (10, "Write very creatively, maximizing entertainment value and surprises."),
)


def creativity_instruction(level: int) -> str:
    """Instruction sentence for a creativity level 1-10."""
    for upper, instruction in CREATIVITY_LEVELS:
        if level <= upper:
            return instruction
    return CREATIVITY_LEVELS[-1][1]


def build_script_prompt(config: ScriptConfig) -> str:
    """
    Build the script instructions from user settings.

    Placeholders present in the template are substituted; settings without
    a placeholder are appended as separate lines. The creativity instruction
    is always appended.

    Args:
        config: User script settings

    Returns:
        Prompt text (without the transcript)

    Example:
        >>> config = ScriptConfig(prompt="Write about {word_count} words ..." + "." * 40)
        >>> "4500" in build_script_prompt(config)
        True
    """
    prompt = config.prompt
    values = {
        "word_count": (str(config.word_count), None),
        "main_character": (config.main_character, "Main character"),
        "writing_style": (config.writing_style.value, "Writing style"),
        "language": (config.language.value, "Language"),
    }

    appended: list[str] = []
    for name, (value, label) in values.items():
        placeholder = "{" + name + "}"
        if placeholder in prompt:
            prompt = prompt.replace(placeholder, value)
        elif label:
            appended.append(f"{label}: {value}")

    appended.append(creativity_instruction(config.creativity))
    return prompt.rstrip() + "\n\n" + "\n\n".join(appended)
