"""Web search and translation tools."""

import logging
from typing import (
    Dict,
    List,
)

from vesper.core.schema import ToolResult
from vesper.tools import (
    FunctionTool,
    function_tool,
)
from vesper.tools.providers import (
    SearchProvider,
    TranslationProvider,
)

logger = logging.getLogger(__name__)


def format_search_results(results: List[Dict[str, str]]) -> str:
    lines = []
    for i, item in enumerate(results, start=1):
        lines.append(f"{i}. {item.get('title', '')} - {item.get('link', '')}")
        if item.get("snippet"):
            lines.append(f"   {item['snippet']}")
    return "\n".join(lines)


def search_tools(
    search: SearchProvider | None, translation: TranslationProvider | None
) -> List[FunctionTool]:
    """Build ``search_web`` and ``translate_text``.  Missing providers yield failing tools."""

    @function_tool(
        "search_web",
        "Search the web for current information, facts, news or links.",
        params={
            "query": {"description": "Search query"},
            "limit": {"description": "Maximum number of results (default 5)"},
        },
    )
    async def search_web(query: str, limit: int = 5) -> ToolResult:
        if search is None:
            return ToolResult.failure("Web search is not configured")
        results = await search.search(query, limit=limit)
        if not results:
            return ToolResult(success=True, data=f"No results found for '{query}'", results=[])
        return ToolResult(success=True, data=format_search_results(results), results=results)

    @function_tool(
        "translate_text",
        "Translate text into another language.",
        params={
            "text": {"description": "Text to translate"},
            "target_language": {"description": "Target language, e.g. 'English' or 'he'"},
        },
    )
    async def translate_text(text: str, target_language: str) -> ToolResult:
        if translation is None:
            return ToolResult.failure("Translation is not configured")
        translated = await translation.translate(text, target_language)
        if not translated:
            return ToolResult.failure("The translation came back empty")
        return ToolResult(success=True, data=translated, target_language=target_language)

    return [search_web, translate_text]
