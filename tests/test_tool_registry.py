"""Tests for the tool registry and the function_tool decorator."""

import pytest

from vesper.core.schema import (
    AgentContext,
    ToolResult,
)
from vesper.tools import (
    ToolRegistry,
    function_tool,
    parameters_from_signature,
)


@function_tool(
    "describe",
    params={"style": {"description": "Visual style", "enum": ["flat", "photo"]}},
)
async def _describe(subject: str, context: AgentContext, count: int = 1, style: str | None = None):
    """Describe a subject."""
    return ToolResult(success=True, data=f"{context.chat_id}:{subject}:{count}:{style}")


def test_signature_parameters() -> None:
    async def fn(prompt: str, ratio: float, flags: list, context: AgentContext, n: int = 2):
        return None

    params = parameters_from_signature(fn)

    assert list(params) == ["prompt", "ratio", "flags", "n"]
    assert params["prompt"].type == "string" and params["prompt"].required
    assert params["ratio"].type == "number"
    assert params["flags"].type == "array"
    assert params["n"].type == "integer" and not params["n"].required


def test_function_tool_declaration() -> None:
    declaration = _describe.declaration

    assert declaration.name == "describe"
    assert declaration.description == "Describe a subject."
    assert declaration.required_parameters() == ["subject"]
    schema = declaration.json_schema()
    assert schema["type"] == "object"
    assert schema["required"] == ["subject"]
    assert schema["properties"]["style"] == {
        "type": "string",
        "description": "Visual style",
        "enum": ["flat", "photo"],
    }
    assert "context" not in schema["properties"]


@pytest.mark.asyncio
async def test_function_tool_injects_context() -> None:
    result = await _describe.execute({"subject": "cat", "count": 3}, AgentContext(chat_id="c9"))

    assert result.data == "c9:cat:3:None"


def test_registry_order_and_lookup() -> None:
    registry = ToolRegistry()

    @function_tool("first", "1")
    async def first() -> ToolResult:
        return ToolResult(success=True)

    @function_tool("second", "2")
    async def second() -> ToolResult:
        return ToolResult(success=True)

    registry.register(first)
    registry.register(second)

    assert [d.name for d in registry.list_declarations()] == ["first", "second"]
    assert registry.get("second") is second
    assert registry.get("missing") is None
    assert "first" in registry and len(registry) == 2


def test_duplicate_registration_raises() -> None:
    registry = ToolRegistry()
    registry.register(_describe)

    with pytest.raises(ValueError, match="already registered"):
        registry.register(_describe)
