"""
Meta-tools: tools composed from the underlying operations of other tools.

They call the provider clients directly rather than going back through the registry.
"""

import logging
from typing import List

from vesper.agent.fallback import (
    FallbackEngine,
    FallbackRequest,
)
from vesper.core.schema import ToolResult
from vesper.tools import (
    FunctionTool,
    function_tool,
)
from vesper.tools.creation import (
    generate_media,
    run_provider,
)
from vesper.tools.providers import (
    ProviderSet,
    normalize_provider,
)

logger = logging.getLogger(__name__)

# How much of the search findings is folded into the image prompt.
_MAX_FINDINGS_CHARS = 400


def build_informed_prompt(topic: str, snippets: List[str], style: str | None = None) -> str:
    findings = " ".join(s.strip() for s in snippets if s and s.strip())[:_MAX_FINDINGS_CHARS]
    prompt = topic.strip()
    if findings:
        prompt = f"{prompt}. Relevant details: {findings}"
    if style:
        prompt = f"{prompt}. Style: {style.strip()}"
    return prompt


def meta_tools(providers: ProviderSet, engine: FallbackEngine) -> List[FunctionTool]:
    """Build the composite tools bound to *providers* and the fallback *engine*."""

    @function_tool(
        "search_and_create_image",
        "Look up a real-world subject on the web and create an accurate image of it. Use when the "
        "image depends on facts the model may not know (a specific building, product, event).",
        params={
            "topic": {"description": "What to search for and draw"},
            "style": {"description": "Optional visual style"},
        },
    )
    async def search_and_create_image(topic: str, style: str | None = None) -> ToolResult:
        snippets: List[str] = []
        sources: List[str] = []
        if providers.search is not None:
            results = await providers.search.search(topic, limit=3)
            snippets = [item.get("snippet", "") for item in results]
            sources = [item.get("link", "") for item in results if item.get("link")]
        else:
            logger.warning("search_and_create_image called without a search provider")

        prompt = build_informed_prompt(topic, snippets, style)
        result = await generate_media(providers, "image", prompt)
        payload = result.model_dump()
        if result.success:
            payload["data"] = f"Created an image of '{topic}' based on {len(sources)} source(s)"
        return ToolResult(**payload, sources=sources, prompt_used=prompt)

    @function_tool(
        "retry_with_different_provider",
        "Retry a failed creation with providers other than the one that failed. Use after a "
        "create_image / create_video / create_music call failed.",
        params={
            "task_type": {"description": "What to create", "enum": ["image", "video", "audio"]},
            "prompt": {"description": "The prompt that failed"},
            "avoid_provider": {"description": "The provider that already failed"},
        },
    )
    async def retry_with_different_provider(
        task_type: str, prompt: str, avoid_provider: str | None = None
    ) -> ToolResult:
        kind = task_type.strip().lower()
        if kind not in ("image", "video", "audio"):
            return ToolResult.failure(f"Unsupported task type '{task_type}'")
        avoid = normalize_provider(avoid_provider)
        candidates = [name for name in providers.order(kind) if name != avoid]
        if not candidates:
            return ToolResult.failure(f"No alternative {kind} provider is configured")

        errors = []
        for name in candidates:
            provider = providers.get(kind, name)
            if provider is None:
                continue
            try:
                result = await run_provider(provider, kind, prompt)
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Retry with %s failed: %s", name, exc)
                errors.append(f"{name}: {exc}")
                continue
            if result.success:
                return result
            errors.append(f"{name}: {result.error}")
        return ToolResult.failure(
            f"All alternative {kind} providers failed ({'; '.join(errors)})",
            providers_tried=candidates,
        )

    @function_tool(
        "smart_execute_with_fallback",
        "Recover from a FAILED creation by trying other providers, a simplified prompt and a more "
        "generic prompt, or by proposing to split the request. Never use it as the first attempt; "
        "call the regular creation tool first.",
        params={
            "task_type": {"description": "What failed", "enum": ["image", "video", "audio"]},
            "original_prompt": {"description": "The prompt that failed"},
            "failure_reason": {"description": "The error returned by the failed attempt"},
            "provider_tried": {"description": "Provider(s) already tried, comma separated"},
        },
    )
    async def smart_execute_with_fallback(
        task_type: str,
        original_prompt: str,
        failure_reason: str | None = None,
        provider_tried: str | None = None,
    ) -> ToolResult:
        request = FallbackRequest(
            task_type=task_type,
            original_prompt=original_prompt,
            failure_reason=failure_reason,
            providers_tried=provider_tried,
        )
        return await engine.run(request)

    return [search_and_create_image, retry_with_different_provider, smart_execute_with_fallback]
