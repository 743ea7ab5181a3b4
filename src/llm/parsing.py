"""Helpers for reading structured output from LLM responses."""

import json
import re
from typing import Any


def extract_json(text: str) -> dict[str, Any]:
    """Extract a JSON object from LLM response text.

    Tries direct parse, then looks for fenced JSON blocks,
    then falls back to the first ``{...}`` substring.

    Returns:
        The parsed object, or ``{}`` when nothing parses.
    """
    candidates = [text]
    fenced = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if fenced:
        candidates.append(fenced.group(1))
    braces = re.search(r"\{.*\}", text, re.DOTALL)
    if braces:
        candidates.append(braces.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return {}


def estimate_tokens(text: str) -> int:
    """Rough token estimate (about four characters per token)."""
    return max(1, len(text) // 4)
