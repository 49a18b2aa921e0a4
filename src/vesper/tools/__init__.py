"""
Tool registry for Vesper.

A tool is a :class:`ToolDeclaration` (what the model is told) plus an ``execute(args, context)``
coroutine returning a :class:`ToolResult`.  Tools are registered once at startup on a
:class:`ToolRegistry`; provider clients are handed to the tool factories explicitly, so there is no
hidden global state.

Plain async functions can be turned into tools with :func:`function_tool`, which derives the
parameter schema from the function signature:

    async def echo(text: str, context: AgentContext) -> ToolResult:
        return ToolResult(success=True, data=text)

    registry.register(function_tool("echo", "Echo the input text back.")(echo))
"""

import inspect
import logging
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Protocol,
    get_type_hints,
)

from vesper.core.schema import (
    AgentContext,
    ParameterSpec,
    ToolDeclaration,
    ToolResult,
)

logger = logging.getLogger(__name__)

Executor = Callable[[Dict[str, Any], AgentContext], Awaitable[ToolResult]]


class Tool(Protocol):
    """Anything with a declaration and an async ``execute``."""

    declaration: ToolDeclaration

    async def execute(self, args: Dict[str, Any], context: AgentContext) -> ToolResult: ...


@dataclass(frozen=True)
class FunctionTool:
    """A :class:`Tool` backed by a plain executor coroutine."""

    declaration: ToolDeclaration
    executor: Executor

    @property
    def name(self) -> str:
        return self.declaration.name

    async def execute(self, args: Dict[str, Any], context: AgentContext) -> ToolResult:
        return await self.executor(args, context)


class ToolRegistry:
    """Name -> tool mapping, in registration order."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> Tool:
        """
        Register *tool* under its declared name.

        Raises
        ------
        ValueError
            If a tool with the same name is already registered.
        """
        name = tool.declaration.name
        if name in self._tools:
            raise ValueError(f"Tool '{name}' is already registered.")
        logger.debug("Registering tool '%s'", name)
        self._tools[name] = tool
        return tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def list_declarations(self) -> List[ToolDeclaration]:
        """Declarations advertised to the model on every turn."""
        return [tool.declaration for tool in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())


# ---------------------------------------------------------------------------
# Declarations from function signatures
# ---------------------------------------------------------------------------
_JSON_TYPES: Mapping[Any, str] = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
}


def _json_type(annotation: Any) -> str:
    origin = getattr(annotation, "__origin__", None)
    if origin is not None and origin in _JSON_TYPES:
        return _JSON_TYPES[origin]
    args = getattr(annotation, "__args__", None)
    if args:
        # Optional[X] / X | None -> X
        non_null = [arg for arg in args if arg is not type(None)]
        if len(non_null) == 1:
            return _json_type(non_null[0])
    return _JSON_TYPES.get(annotation, "string")


def parameters_from_signature(
    fn: Callable[..., Any], overrides: Mapping[str, Mapping[str, Any]] | None = None
) -> Dict[str, ParameterSpec]:
    """
    Extract parameter information from *fn*.

    Parameters named ``context`` are injected by the executor and are not advertised.  A parameter
    is required when it has no default.  *overrides* may supply ``description`` / ``enum`` /
    ``type`` per parameter.
    """
    overrides = overrides or {}
    sig = inspect.signature(fn)
    type_hints = get_type_hints(fn)
    params: Dict[str, ParameterSpec] = {}
    for param_name, param in sig.parameters.items():
        if param_name == "context" or param.kind in (param.VAR_KEYWORD, param.VAR_POSITIONAL):
            continue
        extra = dict(overrides.get(param_name, {}))
        params[param_name] = ParameterSpec(
            type=extra.pop("type", _json_type(type_hints.get(param_name, str))),
            required=param.default is inspect.Parameter.empty,
            **extra,
        )
    return params


def function_tool(
    name: str,
    description: str | None = None,
    params: Mapping[str, Mapping[str, Any]] | None = None,
) -> Callable[[Callable[..., Awaitable[ToolResult]]], FunctionTool]:
    """
    Decorator turning ``async def fn(<params>, context)`` into a :class:`FunctionTool`.

    The docstring is used as the description when *description* is omitted.
    """

    def wrapper(fn: Callable[..., Awaitable[ToolResult]]) -> FunctionTool:
        declaration = ToolDeclaration(
            name=name,
            description=description or inspect.getdoc(fn) or "",
            parameters=parameters_from_signature(fn, params),
        )
        takes_context = "context" in inspect.signature(fn).parameters

        async def executor(args: Dict[str, Any], context: AgentContext) -> ToolResult:
            if takes_context:
                return await fn(**args, context=context)
            return await fn(**args)

        return FunctionTool(declaration=declaration, executor=executor)

    return wrapper
