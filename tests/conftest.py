"""Shared fakes for the test-suite: a scripted model, fake providers and a fake planner."""

import asyncio
from typing import (
    Any,
    Dict,
    List,
    Sequence,
)

import pytest

from vesper.agent.agent_loop import AgentLoop
from vesper.agent.context import ContextManager
from vesper.agent.model_interface import (
    BaseModelClient,
    ChatSession,
)
from vesper.agent.orchestrator import AgentOrchestrator
from vesper.agent.planner_interface import (
    BasePlanner,
    SingleStepPlanner,
)
from vesper.core.schema import (
    HistoryMessage,
    ModelTurn,
    Plan,
    ToolDeclaration,
    ToolInvocation,
    ToolResponse,
)
from vesper.memory.memory_store import InMemoryContextStore
from vesper.tools import ToolRegistry
from vesper.tools.providers import (
    ProviderResult,
    ProviderSet,
)


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------
def final(text: str) -> ModelTurn:
    return ModelTurn(text=text)


def calls(*invocations: tuple) -> ModelTurn:
    """``calls(("create_image", {"prompt": "cat"}), ...)``"""
    return ModelTurn(
        tool_invocations=[
            ToolInvocation(name=name, args=args, id=f"call_{i}")
            for i, (name, args) in enumerate(invocations)
        ]
    )


class ScriptedSession(ChatSession):
    def __init__(self, model: "ScriptedModel"):
        self._model = model

    async def send(self, message: str | Sequence[ToolResponse]) -> ModelTurn:
        self._model.sent.append(message if isinstance(message, str) else list(message))
        if not self._model.turns:
            return final("done")
        return self._model.turns.pop(0)


class ScriptedModel(BaseModelClient):
    """Replays a fixed list of turns; records everything it was sent."""

    def __init__(self, turns: Sequence[ModelTurn] = (), completion: str = ""):
        super().__init__(model="scripted")
        self.turns: List[ModelTurn] = list(turns)
        self.sent: List[Any] = []
        self.completion = completion
        self.sessions: List[Dict[str, Any]] = []

    def start_chat(
        self,
        system_instruction: str,
        history: Sequence[HistoryMessage] = (),
        declarations: Sequence[ToolDeclaration] = (),
    ) -> ChatSession:
        self.sessions.append(
            {
                "system": system_instruction,
                "history": list(history),
                "tools": [d.name for d in declarations],
            }
        )
        return ScriptedSession(self)

    async def complete(self, system_instruction: str, message: str, json_mode: bool = False) -> str:
        return self.completion


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------
class FakeProvider:
    """Generation provider with a canned outcome."""

    def __init__(
        self,
        name: str,
        url: str | None = None,
        error: str | None = None,
        raises: Exception | None = None,
        delay: float = 0.0,
    ):
        self.name = name
        self._url = url if url is not None else f"https://cdn.test/{name}.bin"
        self._error = error
        self._raises = raises
        self._delay = delay
        self.prompts: List[str] = []

    async def generate(self, prompt: str, **options: Any) -> ProviderResult:
        self.prompts.append(prompt)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._raises is not None:
            raise self._raises
        if self._error:
            return ProviderResult(provider=self.name, error=self._error)
        return ProviderResult(url=self._url, caption=f"by {self.name}", provider=self.name)


class FakeSearch:
    def __init__(self, results: List[Dict[str, str]] | None = None):
        self.results = results if results is not None else [
            {"title": "Eiffel Tower", "link": "https://example.org/eiffel", "snippet": "Iron tower"}
        ]
        self.queries: List[str] = []

    async def search(self, query: str, limit: int = 5) -> List[Dict[str, str]]:
        self.queries.append(query)
        return self.results[:limit]


class FakeTranslation:
    async def translate(self, text: str, target_language: str) -> str:
        return f"[{target_language}] {text}"


# ---------------------------------------------------------------------------
# Planner
# ---------------------------------------------------------------------------
class FakePlanner(BasePlanner):
    def __init__(self, plan: Plan | None = None, raises: Exception | None = None):
        self._plan = plan or Plan()
        self._raises = raises
        self.requests: List[str] = []

    async def plan(self, request_text: str) -> Plan:
        self.requests.append(request_text)
        if self._raises is not None:
            raise self._raises
        return self._plan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry()


@pytest.fixture
def store() -> InMemoryContextStore:
    return InMemoryContextStore()


@pytest.fixture
def provider_set() -> ProviderSet:
    return ProviderSet(
        image=[FakeProvider("gemini"), FakeProvider("openai"), FakeProvider("grok")],
        video=[FakeProvider("veo3"), FakeProvider("sora")],
        audio=[FakeProvider("elevenlabs")],
        speech=FakeProvider("elevenlabs"),
        search=FakeSearch(),
        translation=FakeTranslation(),
    )


def make_orchestrator(
    model: BaseModelClient,
    registry: ToolRegistry,
    store: InMemoryContextStore | None = None,
    planner: BasePlanner | None = None,
    **kwargs: Any,
) -> AgentOrchestrator:
    loop = AgentLoop(model, registry, max_iterations=kwargs.pop("max_iterations", 5))
    return AgentOrchestrator(
        loop,
        planner or SingleStepPlanner(),
        ContextManager(store if store is not None else InMemoryContextStore()),
        **kwargs,
    )
