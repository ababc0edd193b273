"""Structured output parsing for AI responses.

Model output may wrap JSON in markdown fences or surround it with prose.
``parse_structured`` extracts the first JSON object, decodes it and
validates it against a pydantic model. Every failure is reported as
MalformedOutputError so the client can issue a single repair retry.
"""

from __future__ import annotations

import json
import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from specforge.errors import MalformedOutputError

T = TypeVar("T", bound=BaseModel)

_RAW_PREVIEW_CHARS = 500


def extract_json(text: str) -> str | None:
    """Extract a JSON object from text that may contain markdown or prose.

    Strategies, in order:
    1. A ```json fenced block
    2. Any fenced block whose content looks like an object
    3. The first balanced {...} span, respecting string literals

    Args:
        text: Text that may contain JSON

    Returns:
        Extracted JSON string or None if not found
    """
    markdown_match = re.search(r"```json\s*\n(.*?)\n\s*```", text, re.DOTALL | re.IGNORECASE)
    if markdown_match:
        return markdown_match.group(1).strip()

    code_block_match = re.search(r"```\s*\n(.*?)\n\s*```", text, re.DOTALL)
    if code_block_match:
        potential_json = code_block_match.group(1).strip()
        if potential_json.startswith("{") and potential_json.endswith("}"):
            return potential_json

    first_brace = text.find("{")
    if first_brace == -1:
        return None

    brace_count = 0
    in_string = False
    escape_next = False

    for i in range(first_brace, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if not in_string:
            if char == "{":
                brace_count += 1
            elif char == "}":
                brace_count -= 1
                if brace_count == 0:
                    return text[first_brace : i + 1]

    return None


def parse_structured(raw_output: str, schema: type[T]) -> T:
    """Parse model output into ``schema``.

    Args:
        raw_output: Raw text returned by the model
        schema: Pydantic model class to validate against

    Returns:
        Validated schema instance

    Raises:
        MalformedOutputError: If no JSON is found, it does not decode,
            or it fails schema validation.
    """
    preview = raw_output[:_RAW_PREVIEW_CHARS]

    json_str = extract_json(raw_output)
    if json_str is None:
        raise MalformedOutputError("No JSON object found in model output", preview)

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"Invalid JSON in model output: {e}", preview) from e

    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise MalformedOutputError(
            f"Model output does not match {schema.__name__}: {e}", preview
        ) from e
