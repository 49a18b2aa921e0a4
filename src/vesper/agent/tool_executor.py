"""Dispatches tool calls registered on a :class:`ToolRegistry` and converts every failure into a
:class:`ToolResult`."""

import logging
from typing import (
    Any,
    Dict,
    Tuple,
)

from vesper.core.schema import (
    AgentContext,
    ToolInvocation,
    ToolResult,
)
from vesper.tools import (
    Tool,
    ToolRegistry,
)

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run with the given arguments."""


_PYTHON_TYPES: Dict[str, Tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


def _type_matches(value: Any, json_type: str) -> bool:
    expected = _PYTHON_TYPES.get(json_type)
    if expected is None:
        return True
    if isinstance(value, bool) and bool not in expected:
        return False
    return isinstance(value, expected)


def validate_args(tool: Tool, args: Dict[str, Any]) -> None:
    """
    Check *args* against the tool's declaration.

    Raises
    ------
    ToolExecutionError
        If a required parameter is missing or empty, or a value has the wrong JSON type.
    """
    declaration = tool.declaration
    missing = [
        name
        for name in declaration.required_parameters()
        if args.get(name) is None or (isinstance(args.get(name), str) and not args[name].strip())
    ]
    if missing:
        raise ToolExecutionError(
            f"Invalid arguments for tool '{declaration.name}': "
            f"missing required argument(s) {', '.join(missing)}"
        )

    wrong = [
        f"{name} (expected {spec.type})"
        for name, spec in declaration.parameters.items()
        if args.get(name) is not None and not _type_matches(args[name], spec.type)
    ]
    if wrong:
        raise ToolExecutionError(
            f"Invalid arguments for tool '{declaration.name}': wrong type for {', '.join(wrong)}"
        )


def _coerce_result(value: Any) -> ToolResult:
    if isinstance(value, ToolResult):
        return value
    if isinstance(value, dict):
        payload = dict(value)
        payload.setdefault("success", not payload.get("error"))
        return ToolResult.model_validate(payload)
    if value is None:
        return ToolResult(success=True)
    return ToolResult(success=True, data=str(value))


async def execute_tool(
    registry: ToolRegistry, invocation: ToolInvocation, context: AgentContext
) -> ToolResult:
    """
    Look up ``invocation.name`` in *registry* and run it with ``invocation.args``.

    Never raises for tool-level problems: unknown tools, bad arguments and exceptions raised by the
    tool all come back as ``ToolResult(success=False, error=...)``.  Task cancellation is not
    caught.
    """
    name = invocation.name
    args = invocation.args or {}

    tool = registry.get(name)
    if tool is None:
        logger.error("Unknown tool: %s", name)
        return ToolResult.failure(f"Unknown tool: {name}")

    try:
        validate_args(tool, args)
        logger.debug("Executing tool '%s' with args=%s", name, args)
        result = _coerce_result(await tool.execute(args, context))
    except ToolExecutionError as exc:
        logger.warning("%s", exc)
        return ToolResult.failure(str(exc))
    except TypeError as exc:
        # Argument mismatch; give the model a clean message.
        logger.exception("Argument error while executing tool '%s'", name)
        return ToolResult.failure(f"Invalid arguments for tool '{name}': {exc}")
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Unhandled error in tool '%s'", name)
        return ToolResult.failure(f"Tool execution failed: {exc}")

    if not result.success and not result.error:
        result.error = f"Tool '{name}' failed without an error message"
    return result
