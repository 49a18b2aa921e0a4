"""End-to-end tests for the orchestrator with a scripted model."""

import asyncio
from typing import (
    List,
    Tuple,
)

import pytest

from conftest import (
    FakePlanner,
    ScriptedModel,
    calls,
    final,
    make_orchestrator,
)
from vesper.agent.orchestrator import planner_input
from vesper.core.schema import (
    HistoryMessage,
    Plan,
    PlanStep,
    ToolResult,
)
from vesper.memory.memory_store import InMemoryContextStore
from vesper.tools import (
    ToolRegistry,
    function_tool,
)

cancelled: List[str] = []


@function_tool("sleepy", "Takes a very long time.")
async def _sleepy(seconds: float = 5.0) -> ToolResult:
    try:
        await asyncio.sleep(seconds)
    except asyncio.CancelledError:
        cancelled.append("sleepy")
        raise
    return ToolResult(success=True, data="rested")


@function_tool("draw", "Draw something.")
async def _draw(prompt: str) -> ToolResult:
    return ToolResult(success=True, image_url=f"https://cdn.test/{prompt}.png", caption=prompt)


class RecordingHistory:
    def __init__(
        self, messages: List[HistoryMessage] | None = None, snippets: List[str] | None = None
    ):
        self.messages = messages or []
        self.snippets = snippets or []
        self.searches: List[str] = []
        self.appended: List[Tuple[str, str, str]] = []

    async def recent(self, chat_id: str, limit: int = 10) -> List[HistoryMessage]:
        return self.messages[-limit:]

    async def relevant(self, chat_id: str, text: str, k: int = 3) -> List[str]:
        self.searches.append(text)
        return self.snippets[:k]

    async def append(self, chat_id: str, user: str, assistant: str) -> None:
        self.appended.append((chat_id, user, assistant))

    async def clear(self, chat_id: str) -> None:
        self.appended.clear()


@pytest.fixture
def tools(registry: ToolRegistry) -> ToolRegistry:
    cancelled.clear()
    registry.register(_sleepy)
    registry.register(_draw)
    return registry


@pytest.mark.asyncio
async def test_simple_request(tools: ToolRegistry) -> None:
    model = ScriptedModel([calls(("draw", {"prompt": "cat"})), final("Here is your cat")])
    orchestrator = make_orchestrator(model, tools)

    result = await orchestrator.execute("draw a cat", "chat-1")

    assert result.success is True
    assert result.text == "Here is your cat"
    assert result.image_url == "https://cdn.test/cat.png"
    assert result.iterations == 2
    assert result.multi_step is False


@pytest.mark.asyncio
async def test_timeout_cancels_running_tool(tools: ToolRegistry) -> None:
    model = ScriptedModel([calls(("sleepy", {"seconds": 5}))])
    orchestrator = make_orchestrator(model, tools, timeout_ms=200)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await orchestrator.execute("take a nap", "chat-1")
    elapsed = loop.time() - started

    assert result.success is False
    assert result.timeout is True
    assert "too long" in result.error
    assert elapsed < 0.7
    assert cancelled == ["sleepy"]


@pytest.mark.asyncio
async def test_timeout_from_request_options(tools: ToolRegistry) -> None:
    model = ScriptedModel([calls(("sleepy", {"seconds": 5}))])
    orchestrator = make_orchestrator(model, tools, timeout_ms=60_000)

    result = await orchestrator.execute("take a nap", "chat-1", {"timeout_ms": 100})

    assert result.timeout is True


@pytest.mark.asyncio
async def test_planner_failure_falls_back_to_single_step(tools: ToolRegistry) -> None:
    planner = FakePlanner(raises=RuntimeError("planner exploded"))
    model = ScriptedModel([final("Fine anyway")])

    result = await make_orchestrator(model, tools, planner=planner).execute("hello", "c")

    assert result.success is True
    assert result.text == "Fine anyway"
    assert planner.requests == ["hello"]


@pytest.mark.asyncio
async def test_planner_sees_user_text_only(tools: ToolRegistry) -> None:
    planner = FakePlanner()
    model = ScriptedModel([final("ok")])

    await make_orchestrator(model, tools, planner=planner).execute(
        "draw a cat [quoted message] some older text", "c"
    )

    assert planner.requests == ["draw a cat"]
    # the model still gets the full prompt
    assert model.sent[0] == "draw a cat [quoted message] some older text"


@pytest.mark.asyncio
async def test_answer_language_follows_request(tools: ToolRegistry) -> None:
    model = ScriptedModel([final("שלום")])

    await make_orchestrator(model, tools).execute("צייר לי חתול", "c")

    assert "Always answer in Hebrew" in model.sessions[0]["system"]


@pytest.mark.asyncio
async def test_multi_step_plan(tools: ToolRegistry) -> None:
    plan = Plan(
        is_multi_step=True,
        steps=[
            PlanStep(step_number=1, action="draw a cat", tool="draw"),
            PlanStep(step_number=2, action="describe the drawing", depends_on=[1]),
        ],
    )
    model = ScriptedModel(
        [calls(("draw", {"prompt": "cat"})), final("Cat drawn."), final("A sleepy cat.")]
    )
    orchestrator = make_orchestrator(model, tools, planner=FakePlanner(plan))

    result = await orchestrator.execute("draw a cat and then describe it", "c")

    assert result.success is True
    assert result.multi_step is True
    assert result.steps_completed == 2 and result.total_steps == 2
    assert result.text == "Cat drawn.\n\nA sleepy cat."
    assert result.image_url == "https://cdn.test/cat.png"
    assert result.iterations == 3
    assert len(model.sessions) == 2


@pytest.mark.asyncio
async def test_multi_step_plan_gets_extended_deadline(tools: ToolRegistry) -> None:
    plan = Plan(
        is_multi_step=True,
        steps=[
            PlanStep(step_number=1, action="rest", tool="sleepy"),
            PlanStep(step_number=2, action="report"),
        ],
    )
    model = ScriptedModel([calls(("sleepy", {"seconds": 0.3})), final("rested"), final("report")])
    orchestrator = make_orchestrator(
        model, tools, planner=FakePlanner(plan), timeout_ms=100, multi_step_min_timeout_ms=3_000
    )

    result = await orchestrator.execute("rest then report", "c")

    assert result.timeout is False
    assert result.success is True
    assert result.steps_completed == 2


@pytest.mark.asyncio
async def test_single_step_plan_is_not_multi_step(tools: ToolRegistry) -> None:
    plan = Plan(is_multi_step=True, steps=[PlanStep(step_number=1, action="draw")])
    model = ScriptedModel([final("done")])

    result = await make_orchestrator(model, tools, planner=FakePlanner(plan)).execute("draw", "c")

    assert result.multi_step is False


@pytest.mark.asyncio
async def test_context_saved_on_success_and_reloaded(tools: ToolRegistry) -> None:
    store = InMemoryContextStore()
    model = ScriptedModel(
        [calls(("draw", {"prompt": "cat"})), final("Here"), final("Still your cat")]
    )
    orchestrator = make_orchestrator(model, tools, store=store, context_memory_enabled=True)

    await orchestrator.execute("draw a cat", "c")
    snapshot = await store.get("c")
    second = await orchestrator.execute("show it again", "c")

    assert [call.tool for call in snapshot.tool_calls] == ["draw"]
    assert snapshot.generated_assets.images[0].url == "https://cdn.test/cat.png"
    # assets from the earlier request are visible to the next one
    assert second.image_url == "https://cdn.test/cat.png"


@pytest.mark.asyncio
async def test_context_not_saved_on_failure(tools: ToolRegistry) -> None:
    store = InMemoryContextStore()
    model = ScriptedModel([calls(("draw", {"prompt": "cat"}))])
    orchestrator = make_orchestrator(
        model, tools, store=store, context_memory_enabled=True, max_iterations=1
    )

    result = await orchestrator.execute("draw a cat", "c")

    assert result.success is False
    assert len(store) == 0


@pytest.mark.asyncio
async def test_context_memory_disabled_per_request(tools: ToolRegistry) -> None:
    store = InMemoryContextStore()
    model = ScriptedModel([final("ok")])
    orchestrator = make_orchestrator(model, tools, store=store, context_memory_enabled=True)

    await orchestrator.execute("hi", "c", {"context_memory": False})

    assert len(store) == 0


@pytest.mark.asyncio
async def test_history_seeds_session_and_is_appended(tools: ToolRegistry) -> None:
    history = RecordingHistory([HistoryMessage(role="user", content="earlier")])
    model = ScriptedModel([final("Hi again")])
    orchestrator = make_orchestrator(model, tools, history=history)

    await orchestrator.execute("hello", "c")

    assert model.sessions[0]["history"][0].content == "earlier"
    assert history.appended == [("c", "hello", "Hi again")]


@pytest.mark.asyncio
async def test_invalid_options_fail_without_running(tools: ToolRegistry) -> None:
    model = ScriptedModel([final("never")])

    result = await make_orchestrator(model, tools).execute("hi", "c", {"timeout_ms": "soon"})

    assert result.success is False
    assert result.error.startswith("Invalid request options: timeout_ms")
    assert model.sessions == []


@pytest.mark.asyncio
async def test_string_false_disables_context_memory(tools: ToolRegistry) -> None:
    store = InMemoryContextStore()
    model = ScriptedModel([calls(("draw", {"prompt": "cat"})), final("done")])
    orchestrator = make_orchestrator(model, tools, store=store, context_memory_enabled=True)

    result = await orchestrator.execute("draw a cat", "c", {"context_memory": "false"})

    assert result.success is True
    assert await store.get("c") is None


@pytest.mark.asyncio
async def test_planner_is_told_about_attached_media(tools: ToolRegistry) -> None:
    planner = FakePlanner()
    model = ScriptedModel([final("ok")])
    options = {"input": {"imageUrl": "https://cdn.test/photo.jpg"}}

    await make_orchestrator(model, tools, planner=planner).execute("animate this", "c", options)

    assert planner.requests == ["[attached image]\nanimate this"]


def test_planner_input_markers() -> None:
    assert planner_input("make it move", {"video_url": "https://v"}) == (
        "[attached video]\nmake it move"
    )
    assert planner_input("hi", {"image_url": None}) == "hi"
    assert planner_input("hi", None) == "hi"


@pytest.mark.asyncio
async def test_relevant_past_turns_reach_the_system_prompt(tools: ToolRegistry) -> None:
    history = RecordingHistory(snippets=["User: my dog is Rex\nAssistant: Nice name!"])
    model = ScriptedModel([final("Rex, of course")])

    await make_orchestrator(model, tools, history=history).execute("what is my dog called?", "c")

    assert history.searches == ["what is my dog called?"]
    system = model.sessions[0]["system"]
    assert "Relevant information from past conversations:" in system
    assert "my dog is Rex" in system
