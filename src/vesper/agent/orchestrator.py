"""
Top-level agent orchestrator.

Wires language detection, planning, context / history loading, and dispatch to either the
multi-step runner or a single :class:`AgentLoop` run, all under one wall-clock deadline.
"""

import asyncio
import logging
from typing import (
    Any,
    Dict,
    List,
    Tuple,
)

from pydantic import ValidationError

from vesper.agent.agent_loop import (
    AgentLoop,
    build_system_instruction,
)
from vesper.agent.context import ContextManager
from vesper.agent.language import (
    detect_language,
    extract_detection_text,
    language_instruction,
)
from vesper.agent.multi_step import MultiStepRunner
from vesper.agent.planner_interface import BasePlanner
from vesper.core.schema import (
    AgentContext,
    AgentResult,
    HistoryMessage,
    Plan,
    RequestOptions,
)
from vesper.memory.history import (
    ConversationHistory,
    NullHistory,
)

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "The request took too long and was stopped after {seconds:.0f} seconds."
RELEVANT_HEADER = "Relevant information from past conversations:"

_ATTACHMENT_MARKERS = (
    ("image_url", "imageUrl", "[attached image]"),
    ("video_url", "videoUrl", "[attached video]"),
    ("audio_url", "audioUrl", "[attached audio]"),
)


def planner_input(detection_text: str, original_input: Dict[str, Any] | None) -> str:
    """Prefix *detection_text* with a marker for the first kind of attached media."""
    attached = original_input or {}
    for snake, camel, marker in _ATTACHMENT_MARKERS:
        if attached.get(snake) or attached.get(camel):
            return f"{marker}\n{detection_text}"
    return detection_text


def relevant_section(snippets: List[str]) -> str | None:
    if not snippets:
        return None
    return RELEVANT_HEADER + "\n" + "\n\n".join(snippets)


class AgentOrchestrator:
    """Entry point for one user request."""

    def __init__(
        self,
        loop: AgentLoop,
        planner: BasePlanner,
        context_manager: ContextManager,
        history: ConversationHistory | None = None,
        multi_step: MultiStepRunner | None = None,
        timeout_ms: int = 240_000,
        multi_step_min_timeout_ms: int = 360_000,
        context_memory_enabled: bool = False,
        history_limit: int = 10,
        relevant_limit: int = 3,
    ):
        self._loop = loop
        self._planner = planner
        self._contexts = context_manager
        self._history = history or NullHistory()
        self._multi_step = multi_step or MultiStepRunner(loop)
        self._timeout_ms = timeout_ms
        self._multi_step_min_timeout_ms = multi_step_min_timeout_ms
        self._memory_enabled = context_memory_enabled
        self._history_limit = history_limit
        self._relevant_limit = relevant_limit

    @property
    def context_manager(self) -> ContextManager:
        return self._contexts

    @property
    def history(self) -> ConversationHistory:
        return self._history

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------
    async def _plan(self, text: str) -> Plan:
        try:
            plan = await self._planner.plan(text)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Planner raised; running as a single step")
            return Plan(fallback=True)
        return plan

    async def _load_state(
        self, chat_id: str, text: str, options: Dict[str, Any], memory_enabled: bool
    ) -> Tuple[AgentContext | None, List[HistoryMessage], List[str]]:
        loaded = None
        if memory_enabled:
            loaded = await self._contexts.load_previous(chat_id, options)
        try:
            history = await self._history.recent(chat_id, self._history_limit)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Could not load history for chat %s", chat_id)
            history = []
        try:
            relevant = await self._history.relevant(chat_id, text, self._relevant_limit)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Could not search history for chat %s", chat_id)
            relevant = []
        return loaded, history, relevant

    async def _remember(self, chat_id: str, prompt: str, result: AgentResult) -> None:
        try:
            await self._history.append(chat_id, prompt, result.text or "")
        except Exception:  # pylint: disable=broad-except
            logger.exception("Could not append history for chat %s", chat_id)

    # -----------------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------------
    async def execute(
        self, prompt: str, chat_id: str, options: Dict[str, Any] | None = None
    ) -> AgentResult:
        """
        Handle one request.

        Never raises except for model transport failures (:class:`ModelTransportError`); every other
        problem comes back as ``AgentResult(success=False, ...)``.
        """
        try:
            parsed = RequestOptions.model_validate(options or {})
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exc.errors()
            )
            logger.warning("Chat %s: rejected options (%s)", chat_id, problems)
            return AgentResult(success=False, error=f"Invalid request options: {problems}")
        options = parsed.model_dump(exclude_none=True)
        memory_enabled = (
            self._memory_enabled if parsed.context_memory is None else parsed.context_memory
        )
        timeout_ms = parsed.timeout_ms or self._timeout_ms

        detection_text = extract_detection_text(prompt) or prompt
        language = detect_language(detection_text)
        context = self._contexts.create_initial(chat_id, options)
        plan_text = planner_input(detection_text, context.original_input)
        extension: List[float] = []

        async def dispatch() -> AgentResult:
            nonlocal context
            plan, (loaded, history, relevant) = await asyncio.gather(
                self._plan(plan_text),
                self._load_state(chat_id, detection_text, options, memory_enabled),
            )
            if loaded is not None:
                context = loaded
            system_instruction = build_system_instruction(
                language_instruction(language), relevant_section(relevant)
            )

            if plan.is_multi_step and len(plan.steps) > 1 and not plan.fallback:
                remaining = self._multi_step_min_timeout_ms - timeout_ms
                if remaining > 0:
                    # Multi-step plans get the larger budget; extend the running deadline.
                    extension.append(remaining / 1000)
                logger.info("Chat %s: running %d-step plan", chat_id, len(plan.steps))
                return await self._multi_step.run(plan, context, system_instruction, history)
            return await self._loop.run(prompt, context, system_instruction, history)

        task = asyncio.ensure_future(dispatch())
        started = asyncio.get_running_loop().time()
        result = await self._await_with_deadline(task, started, timeout_ms / 1000, extension)

        if result is None:
            total = timeout_ms / 1000 + sum(extension)
            logger.warning("Chat %s timed out after %.1fs", chat_id, total)
            return AgentResult(
                success=False,
                timeout=True,
                error=TIMEOUT_ERROR.format(seconds=total),
                tools_used=list(context.previous_tool_results),
            )

        if result.success:
            if memory_enabled:
                await self._contexts.save(chat_id, context)
            await self._remember(chat_id, prompt, result)
        return result

    @staticmethod
    async def _await_with_deadline(
        task: "asyncio.Future[AgentResult]",
        started: float,
        timeout: float,
        extension: List[float],
    ) -> AgentResult | None:
        """
        Wait for *task* until ``started + timeout (+ extension)``; cancel it and return ``None`` on
        expiry.  *extension* may grow while the task runs.
        """
        loop = asyncio.get_running_loop()
        while True:
            remaining = started + timeout + sum(extension) - loop.time()
            if remaining <= 0:
                break
            try:
                done, _ = await asyncio.wait({task}, timeout=remaining)
            except asyncio.CancelledError:
                task.cancel()
                raise
            if done:
                return task.result()

        task.cancel()
        await asyncio.wait({task})
        if task.cancelled():
            return None
        # Finished while being cancelled.
        return task.result()


def create_orchestrator(
    cfg: Any = None,
    model: Any = None,
    providers: Any = None,
    store: Any = None,
    history: ConversationHistory | None = None,
    planner: BasePlanner | None = None,
) -> AgentOrchestrator:
    """
    Build an orchestrator from settings.  Any collaborator can be passed in to replace the one the
    settings describe.
    """
    # pylint: disable=import-outside-toplevel
    from vesper.agent.model_interface import load_model_client
    from vesper.agent.planner_interface import load_planner
    from vesper.config import settings
    from vesper.memory.history import create_history
    from vesper.memory.memory_store import create_context_store
    from vesper.tools.catalog import build_default_registry
    from vesper.tools.providers import build_provider_set

    cfg = cfg or settings
    model = model or load_model_client(cfg.MODEL_BACKEND, cfg.AGENT_MODEL)
    providers = providers or build_provider_set(cfg)
    registry = build_default_registry(providers, split_threshold=cfg.FALLBACK_SPLIT_THRESHOLD)

    loop = AgentLoop(
        model,
        registry,
        max_iterations=cfg.AGENT_MAX_ITERATIONS,
        max_parallel_tools=cfg.MAX_PARALLEL_TOOLS,
    )
    if planner is None:
        planner_kwargs: Dict[str, Any] = {}
        if cfg.PLANNER == "llm":
            planner_kwargs = {
                "client": load_model_client(cfg.MODEL_BACKEND, cfg.PLANNER_MODEL),
                "declarations": registry.list_declarations(),
            }
        planner = load_planner(cfg.PLANNER, **planner_kwargs)

    context_manager = ContextManager(
        store or create_context_store(cfg.CONTEXT_STORE, cfg.DATA_DIR),
        max_tool_calls=cfg.CONTEXT_MAX_TOOL_CALLS,
        max_assets=cfg.CONTEXT_MAX_ASSETS,
    )
    return AgentOrchestrator(
        loop,
        planner,
        context_manager,
        history=history
        or create_history(cfg.HISTORY_BACKEND, cfg.VECTOR_DB_HOST, cfg.VECTOR_DB_PORT),
        multi_step=MultiStepRunner(
            loop,
            per_step_iterations=cfg.AGENT_MAX_ITERATIONS,
            total_iterations=cfg.MULTI_STEP_MAX_ITERATIONS,
        ),
        timeout_ms=cfg.AGENT_TIMEOUT_MS,
        multi_step_min_timeout_ms=cfg.MULTI_STEP_MIN_TIMEOUT_MS,
        context_memory_enabled=cfg.AGENT_CONTEXT_MEMORY_ENABLED,
    )
