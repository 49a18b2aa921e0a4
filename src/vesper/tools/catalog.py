"""The default tool set."""

from vesper.agent.fallback import FallbackEngine
from vesper.agent.prompt_rules import DEFAULT_SPLIT_THRESHOLD
from vesper.tools import ToolRegistry
from vesper.tools.context_tools import context_tools
from vesper.tools.creation import creation_tools
from vesper.tools.meta import meta_tools
from vesper.tools.providers import ProviderSet
from vesper.tools.search import search_tools


def build_default_registry(
    providers: ProviderSet,
    engine: FallbackEngine | None = None,
    split_threshold: int = DEFAULT_SPLIT_THRESHOLD,
) -> ToolRegistry:
    """Register every built-in tool, bound to the given *providers*."""
    engine = engine or FallbackEngine(providers, split_threshold=split_threshold)
    registry = ToolRegistry()
    for tool in (
        *creation_tools(providers),
        *search_tools(providers.search, providers.translation),
        *context_tools(),
        *meta_tools(providers, engine),
    ):
        registry.register(tool)
    return registry
