"""Tests for final-answer cleanup and language detection."""

import pytest

from vesper.agent.language import (
    detect_language,
    extract_detection_text,
    language_instruction,
)
from vesper.agent.postprocess import (
    clean_final_text,
    dedupe_lines,
    drop_minority_language,
    strip_thinking,
    unwrap_json,
)


def test_strip_thinking_blocks_and_markers() -> None:
    raw = "<thinking>I should call tools</thinking>\nThought: hmm\nThe answer is 4."

    assert strip_thinking(raw) == "The answer is 4."
    assert strip_thinking("✅ Step 1/2 completed. Now proceeding to Step 2/2... Done") == "Done"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ('{"answer": "Here you go"}', "Here you go"),
        ('```json\n{"text": "Hi"}\n```', "Hi"),
        ('{"result": {"message": "Nested"}}', "Nested"),
        ("{not json}", "{not json}"),
        ("plain text", "plain text"),
    ],
)
def test_unwrap_json(raw: str, expected: str) -> None:
    assert unwrap_json(raw) == expected


def test_dedupe_lines_and_sentences() -> None:
    assert dedupe_lines("Here is your image.\nHere is your image.\nEnjoy!") == (
        "Here is your image.\nEnjoy!"
    )
    assert dedupe_lines("Great. The cat is ready. Great.") == "Great. The cat is ready."


def test_drop_minority_language_paragraph() -> None:
    english = (
        "Hello there, this is the answer in English. "
        "It covers everything you asked about today."
    )
    hebrew = "שלום זה טקסט ארוך בעברית שלא צריך להיות כאן בכלל"

    assert drop_minority_language(f"{english}\n\n{hebrew}") == english


def test_short_foreign_paragraph_is_kept() -> None:
    text = "Your poster is ready and looks great.\n\nתודה"

    assert drop_minority_language(text) == text


def test_clean_final_text_pipeline() -> None:
    raw = "<think>plan</think>\n```json\n{\"text\": \"Done. Done.\"}\n```"

    assert clean_final_text(raw) == "Done."
    assert clean_final_text(None) == ""
    assert clean_final_text("<think>only</think>") == ""


@pytest.mark.parametrize(
    "text, language",
    [
        ("שלום עולם hi", "he"),
        ("שלום world", "en"),
        ("ab אב", "he"),
        ("Привет, как дела", "ru"),
        ("مرحبا بالعالم", "ar"),
        ("12345", "en"),
        ("", "en"),
        (None, "en"),
    ],
)
def test_detect_language(text, language: str) -> None:
    assert detect_language(text) == language


def test_extract_detection_text() -> None:
    assert extract_detection_text("מה שלום? [quoted message] hello there") == "מה שלום?"
    assert extract_detection_text("first line\nsecond") == "first line"
    assert extract_detection_text(None) == ""


def test_language_instruction_names_language() -> None:
    assert "Hebrew" in language_instruction("he")
    assert "English" in language_instruction("xx")
