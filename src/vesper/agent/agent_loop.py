"""Main tool-calling loop for Vesper."""

import asyncio
import logging
from typing import (
    List,
    Sequence,
)

from vesper.agent.model_interface import (
    BaseModelClient,
    new_call_id,
)
from vesper.agent.postprocess import (
    EMPTY_ANSWER_FALLBACK,
    clean_final_text,
)
from vesper.agent.tool_executor import execute_tool
from vesper.core.schema import (
    AgentContext,
    AgentResult,
    GeneratedAsset,
    HistoryMessage,
    ToolCallRecord,
    ToolInvocation,
    ToolResponse,
    ToolResult,
)
from vesper.tools import ToolRegistry

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are Vesper, an autonomous assistant that can THINK and ACT.
Use the available tools whenever the request needs them; you may call several tools in one turn
when they are independent.  When a creation tool fails, you may retry with another provider
(retry_with_different_provider) or call smart_execute_with_fallback; never start with the fallback
tool.  Media you create is delivered to the user automatically, so do not paste its URL.  When you
are done, answer the user directly and briefly, without describing your reasoning.
"""

MAX_ITERATIONS_ERROR = (
    "I could not finish this request within {limit} steps. "
    "Please rephrase it or split it into smaller requests."
)

# (result field, asset list on GeneratedAssets)
_ASSET_FIELDS = (("image_url", "images"), ("video_url", "videos"), ("audio_url", "audio"))


def build_system_instruction(*extra: str | None) -> str:
    """The base system prompt followed by any non-empty *extra* sections."""
    parts = [SYSTEM_PROMPT.strip()] + [e.strip() for e in extra if e and e.strip()]
    return "\n\n".join(parts)


# ---------------------------------------------------------------------------
# Context folding
# ---------------------------------------------------------------------------
def record_result(context: AgentContext, invocation: ToolInvocation, result: ToolResult) -> None:
    """Fold one tool result into *context*.  The loop is the only caller that mutates context."""
    context.tool_calls.append(
        ToolCallRecord(
            tool=invocation.name, args=invocation.args, success=result.success, error=result.error
        )
    )
    context.previous_tool_results[invocation.name] = result

    if not result.success:
        return
    for url_field, kind in _ASSET_FIELDS:
        url = result.field(url_field)
        if not url:
            continue
        getattr(context.generated_assets, kind).append(
            GeneratedAsset(
                url=url,
                caption=result.field("caption"),
                prompt=invocation.args.get("prompt") or invocation.args.get("text"),
                provider=result.field("provider"),
            )
        )


def finalize(text: str | None, context: AgentContext, iterations: int) -> AgentResult:
    """Build the successful result: cleaned text plus the latest asset of each kind."""
    cleaned = clean_final_text(text)
    assets = context.generated_assets
    image = assets.latest("images")
    video = assets.latest("videos")
    audio = assets.latest("audio")

    if not cleaned and not (image or video or audio):
        if context.tool_calls or context.previous_tool_results:
            logger.debug("Final answer empty after cleaning; tools were used, leaving it empty")
        else:
            logger.warning("Final answer empty after cleaning; using the generic reply")
            cleaned = EMPTY_ANSWER_FALLBACK

    return AgentResult(
        success=True,
        text=cleaned,
        image_url=image.url if image else None,
        image_caption=image.caption if image else None,
        video_url=video.url if video else None,
        video_caption=video.caption if video else None,
        audio_url=audio.url if audio else None,
        tools_used=list(context.previous_tool_results),
        iterations=iterations,
    )


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Drives model turns and tool dispatch until the model gives a final answer.

    Every tool invocation of a turn runs concurrently (bounded by *max_parallel_tools*).  Results
    are folded into the context as they complete, and the whole batch goes back to the model in
    request order.
    """

    def __init__(
        self,
        model: BaseModelClient,
        registry: ToolRegistry,
        max_iterations: int = 5,
        max_parallel_tools: int = 8,
    ):
        self._model = model
        self._registry = registry
        self._max_iterations = max_iterations
        self._max_parallel_tools = max(1, max_parallel_tools)

    async def _dispatch(
        self, invocations: Sequence[ToolInvocation], context: AgentContext
    ) -> List[ToolResponse]:
        semaphore = asyncio.Semaphore(self._max_parallel_tools)

        async def run_one(invocation: ToolInvocation) -> ToolResponse:
            async with semaphore:
                result = await execute_tool(self._registry, invocation, context)
            record_result(context, invocation, result)
            logger.debug(
                "Tool '%s' finished (success=%s)%s",
                invocation.name,
                result.success,
                f": {result.error}" if result.error else "",
            )
            return ToolResponse(name=invocation.name, id=invocation.id, response=result)

        return list(await asyncio.gather(*(run_one(inv) for inv in invocations)))

    async def run(
        self,
        prompt: str,
        context: AgentContext,
        system_instruction: str | None = None,
        history: Sequence[HistoryMessage] = (),
        max_iterations: int | None = None,
    ) -> AgentResult:
        """Run one request to completion.  Raises only for model transport failures."""
        limit = max_iterations or self._max_iterations
        session = self._model.start_chat(
            system_instruction or build_system_instruction(),
            history,
            self._registry.list_declarations(),
        )

        message: str | List[ToolResponse] = prompt
        for iteration in range(1, limit + 1):
            logger.debug("Iteration %d/%d for chat %s", iteration, limit, context.chat_id)
            turn = await session.send(message)

            if turn.is_final:
                logger.info(
                    "Chat %s finished after %d iteration(s); tools used: %s",
                    context.chat_id,
                    iteration,
                    list(context.previous_tool_results) or "none",
                )
                return finalize(turn.text, context, iteration)

            invocations = [
                inv if inv.id else inv.model_copy(update={"id": new_call_id()})
                for inv in turn.tool_invocations
            ]
            logger.info(
                "Iteration %d: dispatching %d tool call(s): %s",
                iteration,
                len(invocations),
                [inv.name for inv in invocations],
            )
            message = await self._dispatch(invocations, context)

        logger.warning("Chat %s hit the iteration cap (%d)", context.chat_id, limit)
        return AgentResult(
            success=False,
            error=MAX_ITERATIONS_ERROR.format(limit=limit),
            tools_used=list(context.previous_tool_results),
            iterations=limit,
        )
