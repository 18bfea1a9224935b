"""Helpers turning raw model text into validated structures."""

import json
import re
from typing import Any

from services.shared.exceptions import ResponseParseError


def parse_json_object(response_text: str) -> dict[str, Any]:
    """Extract and parse a JSON object from an LLM response.

    Handles common LLM quirks like markdown code blocks.

    Args:
        response_text: Raw LLM response

    Returns:
        Parsed JSON dict

    Raises:
        ResponseParseError: If no JSON object can be parsed
    """
    text = response_text.strip()
    if not text:
        raise ResponseParseError("Model returned an empty response")

    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)```", text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        # Fall back to the outermost braces when prose surrounds the object
        braces = re.search(r"\{[\s\S]*\}", text)
        if braces is None:
            raise ResponseParseError(
                "Model response is not valid JSON", {"response": response_text[:200]}
            ) from None
        try:
            parsed = json.loads(braces.group(0))
        except json.JSONDecodeError as e:
            raise ResponseParseError(
                f"Model response is not valid JSON: {e.msg}", {"response": response_text[:200]}
            ) from e

    if not isinstance(parsed, dict):
        raise ResponseParseError(
            f"Expected a JSON object, got {type(parsed).__name__}",
            {"response": response_text[:200]},
        )
    return parsed
