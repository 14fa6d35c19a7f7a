"""
JSON extraction from LLM responses.

Models often wrap JSON in markdown fences or add a sentence before it. These
helpers cut out the first balanced JSON object and parse it without raising.

Example:
    from vidscript.utils.json_utils import load_json_object

    data = load_json_object('```json\\n{"items": []}\\n```', default={})
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json_object(text: str) -> str:
    """
    Cut the first balanced {...} block out of a model response.

    Args:
        text: Raw model response

    Returns:
        JSON object text ("" if there is no opening brace)
    """
    if not text:
        return ""

    cleaned = text.strip()
    fenced = _FENCE.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()

    start = cleaned.find("{")
    if start == -1:
        return ""

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(cleaned)):
        char = cleaned[i]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif in_string:
            continue
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return cleaned[start : i + 1]

    # Unbalanced - let the parser report it
    return cleaned[start:]


def load_json_object(text: str, default: Any = None) -> Any:
    """
    Extract and parse a JSON object from a model response.

    Args:
        text: Raw model response
        default: Returned when nothing parseable is found

    Returns:
        Parsed object or default
    """
    candidate = extract_json_object(text)
    if not candidate:
        return default

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        preview = candidate[:200] + "..." if len(candidate) > 200 else candidate
        logger.warning(f"Failed to parse JSON: {e}. Input: {preview}")
        return default


if __name__ == "__main__":
    """Run tests when executed directly."""

    print("Testing json_utils...")

    assert extract_json_object('{"a": 1}') == '{"a": 1}'
    assert extract_json_object('```json\n{"a": {"b": 2}}\n```') == '{"a": {"b": 2}}'
    assert extract_json_object('Here: {"t": "x {y}"} done') == '{"t": "x {y}"}'
    assert extract_json_object("no json") == ""
    print("  extract_json_object: OK")

    assert load_json_object('{"items": []}') == {"items": []}
    assert load_json_object("{broken", default={}) == {}
    print("  load_json_object: OK")

    print("\nAll json_utils tests passed!")
