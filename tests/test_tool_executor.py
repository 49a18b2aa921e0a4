"""
Basic sanity tests for the tool executor.

Run with:
$ pytest -q
"""

import asyncio

import httpx
import pytest

from vesper.agent.tool_executor import execute_tool
from vesper.core.schema import (
    AgentContext,
    ToolInvocation,
    ToolResult,
)
from vesper.tools import (
    ToolRegistry,
    function_tool,
)


# Stub tools for testing purposes.
@function_tool("add", "Return the sum of two integers.")
async def _add(a: int, b: int) -> ToolResult:
    return ToolResult(success=True, data=str(a + b))


@function_tool("flaky", "Always fails with a network error.")
async def _flaky(url: str) -> ToolResult:
    raise httpx.ConnectError(f"connection refused: {url}")


@function_tool("as_dict", "Returns a plain dict.")
async def _as_dict(value: str) -> ToolResult:
    return {"data": value, "image_url": "https://cdn.test/x.png"}  # type: ignore[return-value]


@function_tool("quiet_failure", "Fails without saying why.")
async def _quiet_failure() -> ToolResult:
    return ToolResult(success=False)


@function_tool("slow", "Sleeps for a long time.")
async def _slow() -> ToolResult:
    await asyncio.sleep(10)
    return ToolResult(success=True)


@pytest.fixture
def tools() -> ToolRegistry:
    registry = ToolRegistry()
    for tool in (_add, _flaky, _as_dict, _quiet_failure, _slow):
        registry.register(tool)
    return registry


@pytest.fixture
def context() -> AgentContext:
    return AgentContext(chat_id="chat-1")


@pytest.mark.asyncio
async def test_execute_tool_success(tools: ToolRegistry, context: AgentContext) -> None:
    """Executor should return the tool's result when the call is valid."""
    result = await execute_tool(tools, ToolInvocation(name="add", args={"a": 2, "b": 3}), context)

    assert result.success is True
    assert result.data == "5"


@pytest.mark.asyncio
async def test_execute_tool_missing(tools: ToolRegistry, context: AgentContext) -> None:
    """An unknown tool comes back as a failure naming the tool."""
    result = await execute_tool(tools, ToolInvocation(name="not_a_tool"), context)

    assert result.success is False
    assert result.error == "Unknown tool: not_a_tool"


@pytest.mark.asyncio
async def test_execute_tool_bad_args(tools: ToolRegistry, context: AgentContext) -> None:
    """Missing required args fail before the tool runs."""
    result = await execute_tool(tools, ToolInvocation(name="add", args={"a": 2}), context)

    assert result.success is False
    assert "Invalid arguments" in result.error
    assert "b" in result.error


@pytest.mark.asyncio
async def test_execute_tool_wrong_types(tools: ToolRegistry, context: AgentContext) -> None:
    """Values of the wrong JSON type are rejected; booleans are not integers."""
    result = await execute_tool(
        tools, ToolInvocation(name="add", args={"a": "2", "b": True}), context
    )

    assert result.success is False
    assert result.error == (
        "Invalid arguments for tool 'add': wrong type for a (expected integer), "
        "b (expected integer)"
    )


@pytest.mark.asyncio
async def test_execute_tool_unexpected_args(tools: ToolRegistry, context: AgentContext) -> None:
    result = await execute_tool(
        tools, ToolInvocation(name="add", args={"a": 1, "b": 2, "c": 3}), context
    )

    assert result.success is False
    assert result.error.startswith("Invalid arguments for tool 'add'")


@pytest.mark.asyncio
async def test_execute_tool_blank_required_string(
    tools: ToolRegistry, context: AgentContext
) -> None:
    result = await execute_tool(tools, ToolInvocation(name="flaky", args={"url": "  "}), context)

    assert result.success is False
    assert "url" in result.error


@pytest.mark.asyncio
async def test_exception_becomes_failure(tools: ToolRegistry, context: AgentContext) -> None:
    """A tool raising never propagates past the dispatch boundary."""
    result = await execute_tool(
        tools, ToolInvocation(name="flaky", args={"url": "https://x"}), context
    )

    assert result.success is False
    assert result.error.startswith("Tool execution failed:")
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_dict_result_is_coerced(tools: ToolRegistry, context: AgentContext) -> None:
    result = await execute_tool(tools, ToolInvocation(name="as_dict", args={"value": "v"}), context)

    assert isinstance(result, ToolResult)
    assert result.success is True
    assert result.field("image_url") == "https://cdn.test/x.png"


@pytest.mark.asyncio
async def test_failure_without_message_gets_one(
    tools: ToolRegistry, context: AgentContext
) -> None:
    result = await execute_tool(tools, ToolInvocation(name="quiet_failure"), context)

    assert result.success is False
    assert result.error


@pytest.mark.asyncio
async def test_cancellation_is_not_swallowed(tools: ToolRegistry, context: AgentContext) -> None:
    task = asyncio.ensure_future(execute_tool(tools, ToolInvocation(name="slow"), context))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
