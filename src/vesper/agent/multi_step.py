"""Sequential execution of multi-step plans."""

import json
import logging
from typing import (
    List,
    Sequence,
    Set,
)

from vesper.agent.agent_loop import AgentLoop
from vesper.core.schema import (
    AgentContext,
    AgentResult,
    HistoryMessage,
    Plan,
    PlanStep,
)

logger = logging.getLogger(__name__)

# Characters of each previous step's answer quoted in the next step's prompt.
_SUMMARY_CHARS = 300


def summarize_previous(steps: Sequence[PlanStep], results: Sequence[AgentResult]) -> str:
    lines = []
    for step, result in zip(steps, results):
        if result.success:
            outcome = (result.text or "done")[:_SUMMARY_CHARS]
            media = [url for url in (result.image_url, result.video_url, result.audio_url) if url]
            if media:
                outcome += f" (media: {', '.join(media)})"
        else:
            outcome = f"FAILED: {result.error}"
        lines.append(f"Step {step.step_number} ({step.action}): {outcome}")
    return "\n".join(lines)


def build_step_prompt(
    step: PlanStep, total: int, previous: Sequence[PlanStep], results: Sequence[AgentResult]
) -> str:
    """Focused prompt for one step, with what the previous steps produced."""
    parts = [f"Step {step.step_number}/{total}: {step.action}"]
    if step.tool:
        hint = f"Use the tool '{step.tool}'"
        if step.parameters:
            hint += f" with parameters {json.dumps(step.parameters, ensure_ascii=False)}"
        parts.append(hint + ".")
    if previous:
        parts.append("Results of the previous steps:\n" + summarize_previous(previous, results))
    parts.append("Do only this step.")
    return "\n\n".join(parts)


class MultiStepRunner:
    """
    Runs the steps of a plan one after another, each through its own :class:`AgentLoop` session.

    All steps share the request's context, so later steps see earlier assets.  A failed step blocks
    only the steps that list it in ``depends_on``.  Each step gets at most *per_step_iterations*
    model turns, and the plan as a whole at most *total_iterations*.
    """

    def __init__(self, loop: AgentLoop, per_step_iterations: int = 5, total_iterations: int = 15):
        self._loop = loop
        self._per_step = per_step_iterations
        self._total = max(total_iterations, per_step_iterations)

    async def run(
        self,
        plan: Plan,
        context: AgentContext,
        system_instruction: str | None = None,
        history: Sequence[HistoryMessage] = (),
    ) -> AgentResult:
        steps = sorted(plan.steps, key=lambda s: s.step_number)
        total = len(steps)
        results: List[AgentResult] = []
        failed: Set[int] = set()
        budget = self._total

        for idx, step in enumerate(steps):
            blockers = sorted(set(step.depends_on) & failed)
            if blockers:
                logger.warning(
                    "Skipping step %d: depends on failed step(s) %s", step.step_number, blockers
                )
                result = AgentResult(
                    success=False,
                    error=f"Skipped because step(s) {', '.join(map(str, blockers))} failed",
                    iterations=0,
                )
            elif budget <= 0:
                result = AgentResult(
                    success=False,
                    error="Iteration budget for this request is exhausted",
                    iterations=0,
                )
            else:
                logger.info("Running step %d/%d: %s", step.step_number, total, step.action)
                prompt = build_step_prompt(step, total, steps[:idx], results)
                result = await self._loop.run(
                    prompt,
                    context,
                    system_instruction=system_instruction,
                    history=history if idx == 0 else (),
                    max_iterations=min(self._per_step, budget),
                )
                budget -= result.iterations or 0

            if not result.success:
                failed.add(step.step_number)
            results.append(result)

        return self._aggregate(steps, results, context)

    @staticmethod
    def _aggregate(
        steps: Sequence[PlanStep], results: Sequence[AgentResult], context: AgentContext
    ) -> AgentResult:
        completed = sum(1 for r in results if r.success)
        texts = [r.text for r in results if r.success and r.text]
        errors = [
            f"Step {step.step_number}: {r.error}"
            for step, r in zip(steps, results)
            if not r.success
        ]
        tools_used: List[str] = []
        for result in results:
            tools_used.extend(t for t in result.tools_used if t not in tools_used)

        assets = context.generated_assets
        image = assets.latest("images")
        video = assets.latest("videos")
        audio = assets.latest("audio")
        logger.info("Multi-step finished: %d/%d step(s) completed", completed, len(steps))

        return AgentResult(
            success=completed > 0,
            text="\n\n".join(texts) or None,
            image_url=image.url if image else None,
            image_caption=image.caption if image else None,
            video_url=video.url if video else None,
            video_caption=video.caption if video else None,
            audio_url=audio.url if audio else None,
            tools_used=tools_used,
            iterations=sum(r.iterations or 0 for r in results),
            error="; ".join(errors) or None,
            multi_step=True,
            steps_completed=completed,
            total_steps=len(steps),
            step_results=list(results),
        )
