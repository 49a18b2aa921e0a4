"""
Thin wrapper around Chroma for storing & querying conversation turns.

Each turn is stored as one document:
  text     = "User: ...\nAssistant: ..."
  metadata = { "chat_id": str, "timestamp": int, "user": str, "assistant": str }
"""

import logging
import os
from typing import (
    Any,
    Dict,
    List,
    cast,
)

import chromadb
from chromadb.api.types import EmbeddingFunction
from chromadb.utils import embedding_functions

logger = logging.getLogger(__name__)

_DEFAULT_EMBED_MODEL = os.getenv("VESPER_EMBED_MODEL", "all-MiniLM-L6-v2")  # small; runs CPU-only


class VectorMemory:
    """
    Chroma wrapper for per-chat conversation turns.
    """

    def __init__(
        self,
        collection_name: str = "vesper_turns",
        host: str = "chroma",  # service name in docker-compose
        port: int = 8000,
        client: Any = None,
        embedding_function: EmbeddingFunction | None = None,
    ):
        self._client = client or chromadb.HttpClient(host=host, port=port)
        self._embed_fn: EmbeddingFunction = (
            embedding_function
            or embedding_functions.SentenceTransformerEmbeddingFunction(
                model_name=_DEFAULT_EMBED_MODEL
            )
        )
        self._col = self._client.get_or_create_collection(
            name=collection_name, embedding_function=cast(EmbeddingFunction, self._embed_fn)
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def add_turn(
        self, doc_id: str, chat_id: str, user: str, assistant: str, timestamp: int
    ) -> None:
        """Add or upsert one user/assistant exchange."""
        self._col.upsert(
            ids=[doc_id],
            documents=[f"User: {user}\nAssistant: {assistant}"],
            metadatas=[
                {"chat_id": chat_id, "timestamp": timestamp, "user": user, "assistant": assistant}
            ],
        )

    def recent_turns(self, chat_id: str, limit: int = 10) -> List[Dict[str, Any]]:
        """Latest *limit* turns of *chat_id*, oldest first."""
        res = self._col.get(where={"chat_id": chat_id}, include=["metadatas"])
        metadatas = list(res.get("metadatas") or [])
        metadatas.sort(key=lambda m: m.get("timestamp", 0))
        return metadatas[-limit:] if limit else metadatas

    def query(self, chat_id: str, text: str, k: int = 5) -> List[str]:
        """Return top-k turns of *chat_id* similar to `text`."""
        res = self._col.query(
            query_texts=[text],
            n_results=k,
            where={"chat_id": chat_id},
            include=["documents"],
        )
        logger.debug("Memory query results: '%s'", res)
        if res and "documents" in res and res["documents"]:
            return res["documents"][0]
        return []

    def delete_chat(self, chat_id: str) -> None:
        self._col.delete(where={"chat_id": chat_id})

    # Convenience for tests / admin
    def count(self) -> int:
        """Return number of documents in the collection."""
        return self._col.count()
