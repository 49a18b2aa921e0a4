"""
Pattern rules used by the fallback engine to rewrite or split a failed generation prompt.

Everything here is a pure function over text so the rules can be tested on their own and swapped
for a model-based rewriter later.  English and Hebrew markers are recognised.
"""

import re
from typing import List

MIN_PROMPT_LENGTH = 10
DEFAULT_SPLIT_THRESHOLD = 200
IMPERATIVE_SPLIT_MIN_LENGTH = 150

_FLAGS = re.IGNORECASE

# ---------------------------------------------------------------------------
# Simplification
# ---------------------------------------------------------------------------
_SIMPLIFY_RULES = [
    # "big, red, shiny car" -> "car"
    (re.compile(r"(\w+,\s*){2,}(\w+)\s+(\w+)", _FLAGS), r"\3"),
    (re.compile(r"\b(?:in the style of|styled after|בסגנון)\s+.+?(?:,|\.|$)", _FLAGS), ""),
    (re.compile(r"\b(?:with (?:a |an )?background|ברקע|עם רקע)\s+.+?(?:,|\.|$)", _FLAGS), ""),
    (re.compile(r"\b(?:lighting|atmosphere|תאורה|אווירה):?\s+.+?(?:,|\.|$)", _FLAGS), ""),
]

# ---------------------------------------------------------------------------
# Generalization
# ---------------------------------------------------------------------------
_STYLE_CLAUSE = re.compile(r"\b(?:in the style of|styled after|בסגנון)\s+.+?(?:,|\.|$)", _FLAGS)
_BRAND = re.compile(r"\b(?:by|from|של|מבית)\s+[A-Z][a-z]+\b")
_YEAR_WITH_PREPOSITION = re.compile(r"\b(?:from|in|משנת|בשנת)\s+(?:19|20)\d{2}\b", _FLAGS)
_BARE_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")
_TECHNICAL = [
    re.compile(r"\b(?:resolution|quality|רזולוציה|איכות):?\s*\d+[a-z]*", _FLAGS),
    re.compile(r"\b\d{3,5}\s*[x×]\s*\d{3,5}\b", _FLAGS),
    re.compile(r"\b\d{3,4}p\b", _FLAGS),
    re.compile(r"\b[48]k\b", _FLAGS),
]
_HEX_COLOR = re.compile(r"#(?:[0-9a-f]{6}|[0-9a-f]{3})\b", _FLAGS)
_INTENSITY = re.compile(
    r"\b(?:very|extremely|super|incredibly|really|highly|מאוד|סופר|במיוחד)\s+", _FLAGS
)

# ---------------------------------------------------------------------------
# Splitting
# ---------------------------------------------------------------------------
_MULTI_REQUEST = re.compile(
    r"\bו(?:גם|אז|אחר כך|לאחר מכן)\b|\b(?:and then|after that|also|plus)\b", _FLAGS
)
_CONDITIONAL = re.compile(r"\b(?:if|when|אם|במידה)\b|\bכש", _FLAGS)
_STEP_MARKERS = re.compile(
    r"\b(?:first|second|third|last|step|קודם|ראשון|שני|שלישי|אחרון)\b", _FLAGS
)
_SPLIT_PATTERNS = [
    re.compile(r"\s+(?:ואז|ואחר כך|ולאחר מכן|וגם)\s+", _FLAGS),
    re.compile(r"\s+(?:and then|after that|afterwards|also)\s+", _FLAGS),
    re.compile(r"(?<=[.!?])\s+"),
]
_IMPERATIVE = re.compile(
    r"\b(?:create|make|generate|edit|analyze|add|צור|תצור|ערוך|תערוך|נתח|תנתח|הוסף|תוסיף)\s+[^,.]+",
    _FLAGS,
)


def _tidy(text: str) -> str:
    """Collapse whitespace and the empty comma runs left behind by removed clauses."""
    text = re.sub(r"\s+", " ", text)
    text = re.sub(r"\s+([,.])", r"\1", text)
    text = re.sub(r",(\s*,)+", ",", text)
    text = re.sub(r"^[\s,]+|[\s,]+$", "", text)
    return text.strip()


def simplify_prompt(prompt: str) -> str:
    """
    Strip compound qualifiers, style references and background / lighting descriptors.

    The rules are applied until the text stops changing, so ``simplify_prompt`` is idempotent.  When
    the result would be shorter than :data:`MIN_PROMPT_LENGTH`, or differs from the input only in
    spacing, the prompt is returned unchanged.
    """
    if not prompt:
        return prompt

    baseline = _tidy(prompt)
    simplified = prompt
    while True:
        previous = simplified
        for pattern, replacement in _SIMPLIFY_RULES:
            simplified = pattern.sub(replacement, simplified)
        simplified = _tidy(simplified)
        if simplified == previous:
            break

    if len(simplified) < MIN_PROMPT_LENGTH or simplified == baseline:
        return prompt
    return simplified


def generalize_prompt(prompt: str) -> str:
    """
    Remove details that commonly trip provider filters or validation.

    Strips style-reference clauses, brand / proper-noun references (``by Nike``), years, numeric
    technical qualifiers (``1920x1080``, ``4k``, ``quality: 90``), literal colour codes and
    intensity adverbs.

    >>> generalize_prompt(
    ...     "create an image of a cat, 1920x1080, #FF0000, in the style of Picasso, very vivid"
    ... )
    'create an image of a cat, vivid'
    """
    if not prompt:
        return prompt

    generic = _STYLE_CLAUSE.sub("", prompt)
    generic = _BRAND.sub("", generic)
    for pattern in _TECHNICAL:
        generic = pattern.sub("", generic)
    generic = _YEAR_WITH_PREPOSITION.sub("", generic)
    generic = _BARE_YEAR.sub("", generic)
    generic = _HEX_COLOR.sub("", generic)
    generic = _INTENSITY.sub("", generic)
    generic = _tidy(generic)

    if len(generic) < MIN_PROMPT_LENGTH or generic == _tidy(prompt):
        return prompt
    return generic


def should_split_task(prompt: str, threshold: int = DEFAULT_SPLIT_THRESHOLD) -> bool:
    """True when *prompt* looks like several requests in one and is longer than *threshold*."""
    if not prompt or len(prompt) <= threshold:
        return False
    return bool(
        _MULTI_REQUEST.search(prompt) or _CONDITIONAL.search(prompt) or _STEP_MARKERS.search(prompt)
    )


def split_task_into_steps(prompt: str) -> List[str]:
    """
    Segment *prompt* into sub-requests.

    Tries explicit connectors ("and then", "ואז" ...), then sentence boundaries.  Long prompts that
    cannot be split that way are cut into imperative phrases ("create ...", "add ...").  Returns
    ``[prompt]`` when nothing sensible comes out.
    """
    if not prompt:
        return [prompt]

    parts = [prompt]
    for pattern in _SPLIT_PATTERNS:
        if not pattern.search(prompt):
            continue
        candidates = [
            p.strip() for p in pattern.split(prompt) if len(p.strip()) > MIN_PROMPT_LENGTH
        ]
        if len(candidates) > 1:
            parts = candidates
            break

    if len(parts) <= 1 and len(prompt) > IMPERATIVE_SPLIT_MIN_LENGTH:
        phrases = [m.group(0).strip() for m in _IMPERATIVE.finditer(prompt)]
        if len(phrases) > 1:
            return phrases

    return parts if len(parts) > 1 else [prompt]
