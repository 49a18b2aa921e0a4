"""
Model transport for Vesper.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, tools,
memory) stays model-agnostic and talks to a :class:`ChatSession`:

    session = client.start_chat(system_instruction, history, registry.list_declarations())
    turn = await session.send("draw a cat")             # -> ModelTurn (text or tool invocations)
    turn = await session.send([ToolResponse(...), ...]) # feed tool results back

We support two back-ends out of the box, **OpenAI** and **Anthropic**, both through their async
SDKs.  Additional providers can be added by subclassing :class:`BaseModelClient` and registering via
:func:`register_model_client`.
"""

import json
import logging
import uuid
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Type,
)

from vesper.config import settings
from vesper.core.schema import (
    HistoryMessage,
    ModelTurn,
    ToolDeclaration,
    ToolInvocation,
    ToolResponse,
)

logger = logging.getLogger(__name__)


class ModelTransportError(RuntimeError):
    """The model transport failed or returned something that cannot be interpreted."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_CLIENT_REGISTRY: dict[str, Type["BaseModelClient"]] = {}


def register_model_client(name: str) -> Callable:
    """Decorator to register a model client class under *name*."""

    def wrapper(cls: Type["BaseModelClient"]) -> Type["BaseModelClient"]:
        _CLIENT_REGISTRY[name] = cls
        return cls

    return wrapper


def load_model_client(name: str | None = None, model: str | None = None) -> "BaseModelClient":
    """
    Factory that returns an instantiated model client.

    Fallback order:
    1. *name* arg
    2. ``settings.MODEL_BACKEND``
    """
    target = name or settings.MODEL_BACKEND
    cls = _CLIENT_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Model backend '{target}' is not registered.")
    return cls(model=model or settings.AGENT_MODEL)


# ---------------------------------------------------------------------------
# Base classes
# ---------------------------------------------------------------------------
class ChatSession(ABC):
    """A running conversation with the model."""

    @abstractmethod
    async def send(self, message: str | Sequence[ToolResponse]) -> ModelTurn:
        """Send a user message or a batch of tool results; return the model's next turn."""


class BaseModelClient(ABC):
    """Abstract model client."""

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def start_chat(
        self,
        system_instruction: str,
        history: Sequence[HistoryMessage] = (),
        declarations: Sequence[ToolDeclaration] = (),
    ) -> ChatSession:
        """Open a session seeded with *history* and advertising *declarations*."""

    @abstractmethod
    async def complete(self, system_instruction: str, message: str, json_mode: bool = False) -> str:
        """One-shot completion without tools."""


def _tool_payload(response: ToolResponse) -> str:
    return json.dumps(response.response.model_dump(exclude_none=True), ensure_ascii=False)


def _parse_arguments(name: str, raw: str | None) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ModelTransportError(f"Malformed arguments for tool '{name}': {raw!r}") from exc
    if not isinstance(args, dict):
        raise ModelTransportError(f"Arguments for tool '{name}' are not an object: {raw!r}")
    return args


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------
class OpenAIChatSession(ChatSession):
    """Chat Completions with function tools."""

    def __init__(self, client: Any, model: str, messages: List[Dict[str, Any]], tools: List[Dict]):
        self._client = client
        self._model = model
        self._messages = messages
        self._tools = tools

    async def send(self, message: str | Sequence[ToolResponse]) -> ModelTurn:
        import openai  # pylint: disable=import-outside-toplevel

        if isinstance(message, str):
            self._messages.append({"role": "user", "content": message})
        else:
            for response in message:
                self._messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": response.id or response.name,
                        "content": _tool_payload(response),
                    }
                )

        kwargs: Dict[str, Any] = {"model": self._model, "messages": self._messages}
        if self._tools:
            kwargs["tools"] = self._tools
        try:
            resp = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise ModelTransportError(f"OpenAI request failed: {exc}") from exc

        if not resp.choices:
            raise ModelTransportError("OpenAI returned no choices")
        msg = resp.choices[0].message

        invocations = []
        assistant: Dict[str, Any] = {"role": "assistant", "content": msg.content}
        if msg.tool_calls:
            assistant["tool_calls"] = []
            for call in msg.tool_calls:
                invocations.append(
                    ToolInvocation(
                        name=call.function.name,
                        args=_parse_arguments(call.function.name, call.function.arguments),
                        id=call.id,
                    )
                )
                assistant["tool_calls"].append(
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.function.name,
                            "arguments": call.function.arguments,
                        },
                    }
                )
        self._messages.append(assistant)

        logger.debug("OpenAI turn: text=%r tools=%s", msg.content, [i.name for i in invocations])
        return ModelTurn(text=msg.content, tool_invocations=invocations)


@register_model_client("openai")
class OpenAIModelClient(BaseModelClient):
    """OpenAI-based model client."""

    def __init__(self, model: str, client: Any = None):
        super().__init__(model)
        if client is None:
            import openai  # pylint: disable=import-outside-toplevel

            client = openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self._client = client

    def start_chat(
        self,
        system_instruction: str,
        history: Sequence[HistoryMessage] = (),
        declarations: Sequence[ToolDeclaration] = (),
    ) -> ChatSession:
        messages: List[Dict[str, Any]] = [{"role": "system", "content": system_instruction}]
        messages.extend({"role": m.role, "content": m.content} for m in history)
        tools = [
            {
                "type": "function",
                "function": {
                    "name": d.name,
                    "description": d.description,
                    "parameters": d.json_schema(),
                },
            }
            for d in declarations
        ]
        return OpenAIChatSession(self._client, self.model, messages, tools)

    async def complete(self, system_instruction: str, message: str, json_mode: bool = False) -> str:
        import openai  # pylint: disable=import-outside-toplevel

        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": message},
            ],
            "temperature": 0.2,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        try:
            resp = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise ModelTransportError(f"OpenAI request failed: {exc}") from exc
        if not resp.choices:
            raise ModelTransportError("OpenAI returned no choices")
        return resp.choices[0].message.content or ""


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
class AnthropicChatSession(ChatSession):
    """Messages API with tool_use / tool_result blocks."""

    def __init__(
        self,
        client: Any,
        model: str,
        system: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        max_tokens: int = 8192,
    ):
        self._client = client
        self._model = model
        self._system = system
        self._messages = messages
        self._tools = tools
        self._max_tokens = max_tokens

    async def send(self, message: str | Sequence[ToolResponse]) -> ModelTurn:
        import anthropic  # pylint: disable=import-outside-toplevel

        if isinstance(message, str):
            self._messages.append({"role": "user", "content": message})
        else:
            self._messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": response.id or response.name,
                            "content": _tool_payload(response),
                            "is_error": not response.response.success,
                        }
                        for response in message
                    ],
                }
            )

        kwargs: Dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "system": self._system,
            "messages": self._messages,
        }
        if self._tools:
            kwargs["tools"] = self._tools
        try:
            resp = await self._client.messages.create(**kwargs)
        except anthropic.AnthropicError as exc:
            raise ModelTransportError(f"Anthropic request failed: {exc}") from exc

        texts: List[str] = []
        invocations: List[ToolInvocation] = []
        content: List[Dict[str, Any]] = []
        for block in resp.content or []:
            if block.type == "text":
                texts.append(block.text)
                content.append({"type": "text", "text": block.text})
            elif block.type == "tool_use":
                if not isinstance(block.input, dict):
                    raise ModelTransportError(f"Malformed input for tool '{block.name}'")
                invocations.append(ToolInvocation(name=block.name, args=block.input, id=block.id))
                content.append(
                    {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
                )
        if not content:
            raise ModelTransportError("Anthropic returned an empty message")
        self._messages.append({"role": "assistant", "content": content})

        text = "\n".join(texts) if texts else None
        logger.debug("Anthropic turn: text=%r tools=%s", text, [i.name for i in invocations])
        return ModelTurn(text=text, tool_invocations=invocations)


@register_model_client("anthropic")
class AnthropicModelClient(BaseModelClient):
    """Anthropic Claude-based model client."""

    def __init__(self, model: str, client: Any = None):
        super().__init__(model)
        if client is None:
            import anthropic  # pylint: disable=import-outside-toplevel

            client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        self._client = client

    def start_chat(
        self,
        system_instruction: str,
        history: Sequence[HistoryMessage] = (),
        declarations: Sequence[ToolDeclaration] = (),
    ) -> ChatSession:
        messages = [{"role": m.role, "content": m.content} for m in history]
        tools = [
            {"name": d.name, "description": d.description, "input_schema": d.json_schema()}
            for d in declarations
        ]
        return AnthropicChatSession(self._client, self.model, system_instruction, messages, tools)

    async def complete(self, system_instruction: str, message: str, json_mode: bool = False) -> str:
        import anthropic  # pylint: disable=import-outside-toplevel

        try:
            resp = await self._client.messages.create(
                model=self.model,
                max_tokens=4096,
                system=system_instruction,
                messages=[{"role": "user", "content": message}],
                temperature=0.2,
            )
        except anthropic.AnthropicError as exc:
            raise ModelTransportError(f"Anthropic request failed: {exc}") from exc
        return "".join(block.text for block in resp.content if block.type == "text")


def new_call_id() -> str:
    """Correlation id for transports that do not supply one."""
    return f"call_{uuid.uuid4().hex[:12]}"
