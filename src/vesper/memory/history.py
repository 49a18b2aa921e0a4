"""Conversation history used to seed new chat sessions."""

import asyncio
import logging
import uuid
from typing import (
    List,
    Protocol,
)

from vesper.core.schema import (
    HistoryMessage,
    now_ms,
)

logger = logging.getLogger(__name__)


class ConversationHistory(Protocol):
    async def recent(self, chat_id: str, limit: int = 10) -> List[HistoryMessage]: ...

    async def relevant(self, chat_id: str, text: str, k: int = 3) -> List[str]: ...

    async def append(self, chat_id: str, user: str, assistant: str) -> None: ...

    async def clear(self, chat_id: str) -> None: ...


class NullHistory:
    """No history backend configured."""

    async def recent(self, chat_id: str, limit: int = 10) -> List[HistoryMessage]:
        return []

    async def relevant(self, chat_id: str, text: str, k: int = 3) -> List[str]:
        return []

    async def append(self, chat_id: str, user: str, assistant: str) -> None:
        return None

    async def clear(self, chat_id: str) -> None:
        return None


class VectorHistory:
    """History kept in a :class:`~vesper.memory.vector_memory.VectorMemory` collection."""

    def __init__(self, memory) -> None:
        self._memory = memory

    async def recent(self, chat_id: str, limit: int = 10) -> List[HistoryMessage]:
        turns = await asyncio.to_thread(self._memory.recent_turns, chat_id, limit)
        messages: List[HistoryMessage] = []
        for turn in turns:
            messages.append(HistoryMessage(role="user", content=str(turn.get("user", ""))))
            messages.append(
                HistoryMessage(role="assistant", content=str(turn.get("assistant", "")))
            )
        return messages

    async def relevant(self, chat_id: str, text: str, k: int = 3) -> List[str]:
        """Past turns of *chat_id* most similar to *text*."""
        return await asyncio.to_thread(self._memory.query, chat_id, text, k)

    async def append(self, chat_id: str, user: str, assistant: str) -> None:
        await asyncio.to_thread(
            self._memory.add_turn, str(uuid.uuid4()), chat_id, user, assistant, now_ms()
        )

    async def clear(self, chat_id: str) -> None:
        await asyncio.to_thread(self._memory.delete_chat, chat_id)


def create_history(backend: str, host: str = "chroma", port: int = 8000) -> ConversationHistory:
    """Build the history backend named by ``HISTORY_BACKEND``."""
    if backend == "none":
        return NullHistory()
    if backend == "chroma":
        # chromadb / sentence-transformers are heavy; only import when configured.
        from vesper.memory.vector_memory import (  # pylint: disable=import-outside-toplevel
            VectorMemory,
        )

        return VectorHistory(VectorMemory(host=host, port=port))
    raise ValueError(f"Unknown history backend '{backend}'. Options: none, chroma")
