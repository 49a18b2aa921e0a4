"""
Context manager: creates, hydrates and persists :class:`AgentContext` objects.

Persistence is best-effort.  Store errors are logged and swallowed so a broken store never fails a
request.
"""

import logging
from typing import (
    Any,
    Dict,
)

from vesper.core.schema import (
    AgentContext,
    ContextSnapshot,
    GeneratedAssets,
    now_ms,
)
from vesper.memory.memory_store import ContextStore

logger = logging.getLogger(__name__)


class ContextManager:
    """Owns the persistence boundary of the agent context."""

    def __init__(self, store: ContextStore, max_tool_calls: int = 50, max_assets: int = 20):
        self._store = store
        self._max_tool_calls = max_tool_calls
        self._max_assets = max_assets

    def create_initial(self, chat_id: str, options: Dict[str, Any] | None = None) -> AgentContext:
        """A fresh, empty context for one request."""
        options = options or {}
        return AgentContext(chat_id=chat_id, original_input=options.get("input"))

    async def load_previous(
        self, chat_id: str, options: Dict[str, Any] | None = None
    ) -> AgentContext | None:
        """
        Fresh context hydrated with the persisted tool calls and assets of *chat_id*.

        Only the most recent ``max_tool_calls`` calls and ``max_assets`` assets per kind are kept.
        Returns ``None`` when nothing is stored or the store is unavailable.
        """
        try:
            snapshot = await self._store.get(chat_id)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Could not load context for chat %s", chat_id)
            return None
        if snapshot is None:
            return None

        context = self.create_initial(chat_id, options)
        context.tool_calls = snapshot.tool_calls[-self._max_tool_calls :]
        context.generated_assets = GeneratedAssets(
            images=snapshot.generated_assets.images[-self._max_assets :],
            videos=snapshot.generated_assets.videos[-self._max_assets :],
            audio=snapshot.generated_assets.audio[-self._max_assets :],
        )
        logger.debug(
            "Loaded context for chat %s: %d tool call(s), %d image(s), %d video(s), %d audio",
            chat_id,
            len(context.tool_calls),
            len(context.generated_assets.images),
            len(context.generated_assets.videos),
            len(context.generated_assets.audio),
        )
        return context

    async def save(self, chat_id: str, context: AgentContext) -> bool:
        """Persist tool calls and assets (never ``previous_tool_results``).  Returns success."""
        snapshot = ContextSnapshot(
            tool_calls=list(context.tool_calls),
            generated_assets=context.generated_assets.model_copy(deep=True),
            last_updated=now_ms(),
        )
        try:
            await self._store.put(chat_id, snapshot)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Could not save context for chat %s", chat_id)
            return False
        return True

    async def clear(self, chat_id: str) -> bool:
        try:
            return await self._store.delete(chat_id)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Could not clear context for chat %s", chat_id)
            return False
