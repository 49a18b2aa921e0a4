import pytest

from vesper.agent.prompt_rules import (
    generalize_prompt,
    should_split_task,
    simplify_prompt,
    split_task_into_steps,
)

PROMPTS = [
    "draw a big, red, shiny car in the style of Monet, with a background of mountains",
    "portrait of an old sailor, lighting: golden hour, atmosphere: calm",
    "a cat",
    "צייר חתול בסגנון ואן גוך, עם רקע של שדה",
    "",
]


@pytest.mark.parametrize("prompt", PROMPTS)
def test_simplify_is_idempotent(prompt: str) -> None:
    once = simplify_prompt(prompt)
    assert simplify_prompt(once) == once


def test_simplify_strips_qualifiers() -> None:
    assert (
        simplify_prompt(
            "draw a big, red, shiny car in the style of Monet, with a background of mountains"
        )
        == "draw a car"
    )


def test_simplify_keeps_original_when_result_too_short() -> None:
    assert simplify_prompt("big, red, shiny car") == "big, red, shiny car"


def test_generalize_removes_technical_details() -> None:
    prompt = "create an image of a cat, 1920x1080, #FF0000, in the style of Picasso, very vivid"

    assert generalize_prompt(prompt) == "create an image of a cat, vivid"


def test_generalize_removes_brands_and_years() -> None:
    assert generalize_prompt("running shoes by Nike from 1985, 4k") == "running shoes"


def test_generalize_degenerate_input_returned_unchanged() -> None:
    assert generalize_prompt("4k 1080p") == "4k 1080p"
    assert generalize_prompt("") == ""


def test_should_split_task() -> None:
    compound = "make a logo for the bakery and then " + "describe it in detail " * 10

    assert should_split_task(compound) is True
    assert should_split_task("make a logo and then a poster") is False
    assert should_split_task("a" * 300) is False


def test_split_on_connectors() -> None:
    assert split_task_into_steps(
        "Create a logo for my bakery with warm colors and then write a short slogan for it"
    ) == ["Create a logo for my bakery with warm colors", "write a short slogan for it"]


def test_split_on_imperative_phrases() -> None:
    prompt = (
        "create a banner for the spring sale with flowers, add the store name in large letters, "
        "generate a short caption for social media that mentions the discount for members"
    )

    assert split_task_into_steps(prompt) == [
        "create a banner for the spring sale with flowers",
        "add the store name in large letters",
        "generate a short caption for social media that mentions the discount for members",
    ]


def test_split_returns_whole_prompt_when_atomic() -> None:
    assert split_task_into_steps("a cat on a sofa") == ["a cat on a sofa"]


def test_split_falls_back_to_sentences_when_connector_leaves_one_part() -> None:
    prompt = (
        "Create a portrait of an old fisherman at dawn. "
        "Write a short poem about the sea and the tides. "
        "Put a small logo in the corner also ok"
    )

    assert split_task_into_steps(prompt) == [
        "Create a portrait of an old fisherman at dawn.",
        "Write a short poem about the sea and the tides.",
        "Put a small logo in the corner also ok",
    ]


def test_spacing_only_changes_do_not_count_as_rewrites() -> None:
    prompt = "a  quiet   harbour at   night"

    assert simplify_prompt(prompt) == prompt
    assert generalize_prompt(prompt) == prompt
