"""Helpers for pulling structured data out of free-form LLM replies."""

from __future__ import annotations

import json
from typing import Iterator, List


def _candidates(raw: str) -> Iterator[str]:
    """Texts worth trying as JSON: the fence-stripped reply, then the outermost {...}"""
    text = raw.strip()
    if text.startswith("```"):
        text = "\n".join(line for line in text.split("\n") if not line.strip().startswith("```"))
    yield text

    start, end = raw.find("{"), raw.rfind("}")
    if 0 <= start < end:
        yield raw[start:end + 1]


def parse_llm_json(raw: str) -> dict:
    """Parse a JSON object from an LLM reply.

    Tolerates markdown code fences and chatter around the object. Anything
    that does not yield a JSON object gives an empty dict.
    """
    if not raw:
        return {}

    for candidate in _candidates(raw):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return {}


def parse_question_list(raw: str, expected: int = 3) -> List[str]:
    """Pull a list of questions out of a {"questions": [...]} reply.

    Returns an empty list unless exactly ``expected`` non-empty strings are found.
    """
    questions = parse_llm_json(raw).get("questions")
    if not isinstance(questions, list):
        return []

    cleaned = [q.strip() for q in questions if isinstance(q, str) and q.strip()]
    return cleaned if len(cleaned) == expected else []
