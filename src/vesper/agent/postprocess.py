"""
Final-answer cleanup.

:func:`clean_final_text` takes the raw text of the model's final turn and returns what the user
should see.  It is the only place that edits model output.
"""

import json
import re
from typing import (
    Any,
    List,
)

from vesper.agent.language import script_counts

EMPTY_ANSWER_FALLBACK = "I could not put together a clear answer. Please try again."

# A paragraph written in the minority script is dropped only above this many letters.
MINORITY_PARAGRAPH_MIN_LETTERS = 20

_THINK_BLOCKS = re.compile(r"<(think|thinking|reasoning)>.*?</\1>", re.IGNORECASE | re.DOTALL)
_META_PATTERNS = [
    re.compile(r"✅\s*Step\s+\d+/\d+\s+completed[.!]?\s*", re.IGNORECASE),
    re.compile(r"Now proceeding to Step \d+/\d+\.{3,}\s*", re.IGNORECASE),
    re.compile(r"^\s*(?:Thought|Thinking|Reasoning|Plan)\s*:.*$", re.IGNORECASE | re.MULTILINE),
]
_JSON_DOCUMENT = re.compile(r"^\s*(\{.*\}|\[.*\])\s*$", re.DOTALL)
_JSON_CODE_BLOCK = re.compile(r"```(?:json)?\s*(\{.*?\}|\[.*?\])\s*```", re.DOTALL)
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")

_CONTENT_KEYS = ("text", "answer", "response", "message", "content", "result", "data")


def strip_thinking(text: str) -> str:
    """Remove chain-of-thought blocks and step progress markers."""
    cleaned = _THINK_BLOCKS.sub("", text)
    for pattern in _META_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def _json_content(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for key in _CONTENT_KEYS:
            content = _json_content(value.get(key))
            if content:
                return content
        return None
    if isinstance(value, list):
        parts = [part for part in (_json_content(item) for item in value) if part]
        return "\n".join(parts) if parts else None
    return None


def unwrap_json(text: str) -> str:
    """
    If the model answered with a JSON document (bare or in a ```json block), return its textual
    content.  Anything that does not parse is returned unchanged.
    """
    for pattern in (_JSON_DOCUMENT, _JSON_CODE_BLOCK):
        match = pattern.search(text)
        if not match:
            continue
        try:
            content = _json_content(json.loads(match.group(1)))
        except json.JSONDecodeError:
            continue
        if content and content.strip():
            return content.strip()
    return text


def dedupe_lines(text: str) -> str:
    """Drop repeated lines and repeated sentences, keeping the first occurrence."""
    seen_lines: set[str] = set()
    lines: List[str] = []
    for line in text.split("\n"):
        key = line.strip()
        if key and key in seen_lines:
            continue
        if key:
            seen_lines.add(key)
        lines.append(line)

    seen_sentences: set[str] = set()
    result: List[str] = []
    for line in lines:
        sentences = []
        for sentence in _SENTENCE_SPLIT.split(line):
            key = sentence.strip().lower()
            if len(key) > 1 and key in seen_sentences:
                continue
            seen_sentences.add(key)
            sentences.append(sentence)
        result.append(" ".join(sentences))
    return re.sub(r"\n{3,}", "\n\n", "\n".join(result)).strip()


def drop_minority_language(text: str) -> str:
    """
    Keep only paragraphs in the dominant script of *text*.

    Short paragraphs (:data:`MINORITY_PARAGRAPH_MIN_LETTERS` letters or fewer in the foreign script)
    are always kept.
    """
    totals = script_counts(text)
    dominant = max(totals, key=lambda code: totals[code])
    if totals[dominant] == 0:
        return text

    kept = []
    for paragraph in text.split("\n\n"):
        counts = script_counts(paragraph)
        foreign = max((count for code, count in counts.items() if code != dominant), default=0)
        if counts[dominant] >= foreign or foreign <= MINORITY_PARAGRAPH_MIN_LETTERS:
            kept.append(paragraph)
    return "\n\n".join(kept).strip()


def clean_final_text(raw: str | None) -> str:
    """Apply every cleanup stage to the model's final answer.  May return an empty string."""
    if not raw:
        return ""
    text = strip_thinking(raw)
    text = unwrap_json(text)
    text = dedupe_lines(text)
    text = drop_minority_language(text)
    return text.strip()
