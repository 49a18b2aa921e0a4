"""
Fallback strategy engine.

Runs after a generation attempt failed.  Strategies are tried in order and the first success wins:

1. alternate provider   - every other provider for the task type, skipping the ones already tried
2. simplified prompt    - :func:`simplify_prompt`, primary provider only
3. task split proposal  - a non-executing suggestion carrying ``subtasks``
4. generalized prompt   - :func:`generalize_prompt`, one provider distinct from the primary

The engine returns a :class:`ToolResult` and never touches the agent context.
"""

import logging
from typing import (
    List,
    Sequence,
)

from pydantic import (
    BaseModel,
    Field,
    field_validator,
)

from vesper.agent.prompt_rules import (
    DEFAULT_SPLIT_THRESHOLD,
    generalize_prompt,
    should_split_task,
    simplify_prompt,
    split_task_into_steps,
)
from vesper.core.schema import ToolResult
from vesper.tools.providers import (
    ProviderResult,
    ProviderSet,
    normalize_provider,
)

logger = logging.getLogger(__name__)

TASK_TYPES = ("image", "video", "audio")
URL_FIELDS = {"image": "image_url", "video": "video_url", "audio": "audio_url"}


class FallbackRequest(BaseModel):
    """What failed, and with which providers."""

    task_type: str
    original_prompt: str
    failure_reason: str | None = None
    providers_tried: List[str] = Field(default_factory=list)

    @field_validator("task_type")
    @classmethod
    def _normalize_task_type(cls, value: str) -> str:
        # Accept "image_creation", "Video", "music" ...
        kind = value.strip().lower().split("_")[0]
        if kind in ("music", "speech", "tts"):
            kind = "audio"
        if kind not in TASK_TYPES:
            raise ValueError(f"task_type must be one of {', '.join(TASK_TYPES)}")
        return kind

    @field_validator("providers_tried", mode="before")
    @classmethod
    def _normalize_providers(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [p for p in (normalize_provider(str(v)) for v in value) if p]


def rotate_after(order: Sequence[str], last: str | None) -> List[str]:
    """Return *order* rotated so it starts right after *last* (unchanged when *last* is absent)."""
    if last not in order:
        return list(order)
    idx = list(order).index(last)
    return list(order[idx + 1 :]) + list(order[: idx + 1])


class FallbackEngine:
    """Applies the recovery strategies against an injected :class:`ProviderSet`."""

    def __init__(self, providers: ProviderSet, split_threshold: int = DEFAULT_SPLIT_THRESHOLD):
        self._providers = providers
        self._split_threshold = split_threshold

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------
    async def _attempt(self, kind: str, provider_name: str, prompt: str) -> ProviderResult:
        provider = self._providers.get(kind, provider_name)
        if provider is None:
            return ProviderResult(provider=provider_name, error=f"Unknown {kind} provider")
        try:
            return await provider.generate(prompt)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Fallback attempt with %s failed: %s", provider_name, exc)
            return ProviderResult(provider=provider_name, error=str(exc))

    @staticmethod
    def _success(kind: str, result: ProviderResult, strategy: str, **extra: object) -> ToolResult:
        payload = {
            URL_FIELDS[kind]: result.url,
            "provider": result.provider,
            "strategy_used": strategy,
            **extra,
        }
        if result.caption:
            payload["caption"] = result.caption
        return ToolResult(
            success=True,
            data=f"Created the {kind} with {result.provider} (strategy: {strategy})",
            **payload,
        )

    # -----------------------------------------------------------------------
    # Strategies
    # -----------------------------------------------------------------------
    def alternate_providers(self, kind: str, tried: Sequence[str]) -> List[str]:
        """Providers for *kind* that were not tried yet, starting after the last tried one."""
        order = self._providers.order(kind)
        last = tried[-1] if tried else None
        return [name for name in rotate_after(order, last) if name not in tried]

    def generalization_provider(self, kind: str, attempted: Sequence[str]) -> str | None:
        order = self._providers.order(kind)
        if not order:
            return None
        primary = order[0]
        for name in order:
            if name != primary and name not in attempted:
                return name
        for name in order:
            if name != primary:
                return name
        return primary

    async def run(self, request: FallbackRequest) -> ToolResult:
        kind = request.task_type
        prompt = request.original_prompt
        tried = list(request.providers_tried)
        attempted: List[str] = []
        strategies: List[str] = []
        last_error = request.failure_reason

        logger.info(
            "Fallback for %s (tried: %s, reason: %s)", kind, tried or "none", last_error or "n/a"
        )

        # 1. Alternate provider
        alternates = self.alternate_providers(kind, tried)
        if alternates:
            strategies.append("different_provider")
        for name in alternates:
            attempted.append(name)
            result = await self._attempt(kind, name, prompt)
            if result.ok:
                return self._success(kind, result, "different_provider")
            last_error = result.error or last_error

        # 2. Simplified prompt
        primary = self._providers.primary(kind)
        simplified = simplify_prompt(prompt)
        if primary and simplified != prompt:
            strategies.append("simplified_prompt")
            logger.debug("Simplified prompt: %r -> %r", prompt, simplified)
            result = await self._attempt(kind, primary, simplified)
            if result.ok:
                return self._success(
                    kind,
                    result,
                    "simplified_prompt",
                    original_prompt=prompt,
                    simplified_prompt=simplified,
                )
            last_error = result.error or last_error

        # 3. Split proposal
        if should_split_task(prompt, self._split_threshold):
            subtasks = split_task_into_steps(prompt)
            if len(subtasks) > 1:
                listing = "\n".join(f"{i}. {task}" for i, task in enumerate(subtasks, start=1))
                return ToolResult(
                    success=False,
                    error="The request is too complex for a single generation; split it first.",
                    data=f"Suggested sub-tasks:\n{listing}",
                    strategy_used="suggest_split",
                    subtasks=subtasks,
                )

        # 4. Generalized prompt
        generic = generalize_prompt(prompt)
        provider_name = self.generalization_provider(kind, tried + attempted)
        if provider_name and generic != prompt:
            strategies.append("generic_prompt")
            logger.debug("Generalized prompt: %r -> %r", prompt, generic)
            result = await self._attempt(kind, provider_name, generic)
            if result.ok:
                return self._success(
                    kind, result, "generic_prompt", original_prompt=prompt, generic_prompt=generic
                )
            last_error = result.error or last_error

        logger.warning("All fallback strategies failed for %s: %s", kind, strategies)
        return ToolResult.failure(
            f"All fallback strategies failed for the {kind} request"
            + (f" (last error: {last_error})" if last_error else ""),
            strategies_attempted=strategies,
        )
