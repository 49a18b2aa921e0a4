"""Script-based language detection for prompts and model answers."""

import re
from typing import Dict

_SCRIPTS: Dict[str, re.Pattern[str]] = {
    "he": re.compile(r"[\u0590-\u05FF]"),
    "en": re.compile(r"[A-Za-z]"),
    "ar": re.compile(r"[\u0600-\u06FF]"),
    "ru": re.compile(r"[\u0400-\u04FF]"),
}

_LANGUAGE_NAMES = {
    "he": "Hebrew",
    "en": "English",
    "ar": "Arabic",
    "ru": "Russian",
}

DEFAULT_LANGUAGE = "en"


def script_counts(text: str) -> Dict[str, int]:
    """Number of letters of each known script in *text*."""
    return {code: len(pattern.findall(text or "")) for code, pattern in _SCRIPTS.items()}


def detect_language(text: str | None) -> str:
    """
    Return the language code whose script dominates *text*.

    Ties are broken in the order he, en, ar, ru.  Text without any known letters is reported as
    :data:`DEFAULT_LANGUAGE`.
    """
    counts = script_counts(text or "")
    best = max(counts.values())
    if best == 0:
        return DEFAULT_LANGUAGE
    return next(code for code, count in counts.items() if count == best)


def language_instruction(language: str) -> str:
    """System-prompt line asking the model to answer in *language*."""
    name = _LANGUAGE_NAMES.get(language, _LANGUAGE_NAMES[DEFAULT_LANGUAGE])
    return (
        f"Always answer in {name}, the language of the user's request, "
        f"unless the user explicitly asks for another language."
    )


def extract_detection_text(prompt: str | None) -> str:
    """
    The part of *prompt* that reflects what the user wrote.

    Metadata blocks appended in brackets (``[quoted message] ...``) are dropped; without brackets
    the first line is used.
    """
    if not prompt:
        return ""
    bracket = prompt.find("[")
    if bracket > 0:
        return prompt[:bracket].strip()
    return prompt.split("\n", 1)[0].strip()
