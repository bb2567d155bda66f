"""Shared utilities for parsing LLM responses."""

from __future__ import annotations

import json


def _strip_fences(text: str) -> str:
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        return "\n".join(lines)
    return text


def parse_llm_json(raw: str) -> dict:
    """Parse JSON from an LLM response, handling code fences and preamble text.

    Tries in order:
    1. Strip markdown code fences, then json.loads
    2. Extract substring between first '{' and last '}', then json.loads
    3. Return empty dict
    """
    if not raw:
        return {}

    try:
        parsed = json.loads(_strip_fences(raw.strip()))
        if isinstance(parsed, dict):
            return parsed
    except json.JSONDecodeError:
        pass

    start = raw.find("{")
    end = raw.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            parsed = json.loads(raw[start:end])
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            pass

    return {}


def parse_llm_json_strict(raw: str) -> dict:
    """Like parse_llm_json, but raise ValueError instead of returning {}."""
    parsed = parse_llm_json(raw)
    if not parsed:
        raise ValueError(f"LLM response is not a JSON object: {(raw or '')[:120]!r}")
    return parsed
