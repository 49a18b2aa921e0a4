"""
Key-value stores for persisted agent context, keyed by chat id.

Each store keeps one :class:`ContextSnapshot` per conversation; ``put`` overwrites (last writer
wins).  The JSON store writes one document per chat under ``<DATA_DIR>/context`` and does its file
I/O in a worker thread so the event loop is never blocked.
"""

import asyncio
import logging
import os
import re
import tempfile
import time
from pathlib import Path
from typing import (
    Dict,
    Protocol,
)

from vesper.core.schema import ContextSnapshot

logger = logging.getLogger(__name__)


class ContextStore(Protocol):
    """Persistence boundary used by the context manager."""

    async def get(self, chat_id: str) -> ContextSnapshot | None: ...

    async def put(self, chat_id: str, snapshot: ContextSnapshot) -> None: ...

    async def delete(self, chat_id: str) -> bool: ...


class InMemoryContextStore:
    """Process-local store; snapshots are copied in and out."""

    def __init__(self) -> None:
        self._data: Dict[str, ContextSnapshot] = {}

    async def get(self, chat_id: str) -> ContextSnapshot | None:
        snapshot = self._data.get(chat_id)
        return snapshot.model_copy(deep=True) if snapshot else None

    async def put(self, chat_id: str, snapshot: ContextSnapshot) -> None:
        self._data[chat_id] = snapshot.model_copy(deep=True)

    async def delete(self, chat_id: str) -> bool:
        return self._data.pop(chat_id, None) is not None

    def __len__(self) -> int:
        return len(self._data)


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.@+-]")


class JsonFileContextStore:
    """
    One ``<chat_id>.json`` file per conversation.

    Writes go to a temporary file in the same directory followed by :func:`os.replace`, so a reader
    never sees a half-written snapshot.
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def init(self) -> None:
        """Create the storage directory.  Called at application startup."""
        self._dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, chat_id: str) -> Path:
        return self._dir / f"{_UNSAFE_CHARS.sub('_', chat_id)}.json"

    # ------------------------------------------------------------------ #
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------ #
    def _read(self, chat_id: str) -> ContextSnapshot | None:
        path = self.path_for(chat_id)
        if not path.exists():
            return None
        return ContextSnapshot.model_validate_json(path.read_text(encoding="utf-8"))

    def _write(self, chat_id: str, snapshot: ContextSnapshot) -> None:
        self.init()
        path = self.path_for(chat_id)
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(snapshot.model_dump_json())
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _delete(self, chat_id: str) -> bool:
        path = self.path_for(chat_id)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _cleanup(self, max_age_seconds: float) -> int:
        if not self._dir.exists():
            return 0
        cutoff = time.time() - max_age_seconds
        removed = 0
        for path in self._dir.glob("*.json"):
            if path.stat().st_mtime < cutoff:
                path.unlink(missing_ok=True)
                removed += 1
        return removed

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    async def get(self, chat_id: str) -> ContextSnapshot | None:
        return await asyncio.to_thread(self._read, chat_id)

    async def put(self, chat_id: str, snapshot: ContextSnapshot) -> None:
        await asyncio.to_thread(self._write, chat_id, snapshot)

    async def delete(self, chat_id: str) -> bool:
        return await asyncio.to_thread(self._delete, chat_id)

    async def cleanup_older_than(self, days: float) -> int:
        """Remove snapshots not written for *days* days; returns how many were removed."""
        removed = await asyncio.to_thread(self._cleanup, days * 86_400)
        if removed:
            logger.info("Removed %d stale context snapshot(s) from %s", removed, self._dir)
        return removed


def create_context_store(kind: str, data_dir: str | Path) -> ContextStore:
    """Build the store named by ``CONTEXT_STORE``."""
    if kind == "memory":
        return InMemoryContextStore()
    if kind == "json":
        store = JsonFileContextStore(Path(data_dir) / "context")
        store.init()
        return store
    raise ValueError(f"Unknown context store '{kind}'. Options: memory, json")
