"""Local embedding provider backed by Sentence Transformers."""
from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, List

from .base import EmbeddingProvider

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """Encode texts with a locally loaded SentenceTransformer model.

    The model is loaded on first use and encoding runs in a worker thread so
    the event loop is never blocked by inference.
    """

    def __init__(self, model_name_or_path: str = DEFAULT_MODEL_NAME, *, device: str | None = None) -> None:
        self.model_name = model_name_or_path
        self._device = device
        self._model: Any = None
        self._lock = threading.Lock()

    def _load(self) -> Any:
        with self._lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                LOGGER.info("Loading sentence-transformers model %s", self.model_name)
                self._model = SentenceTransformer(self.model_name, device=self._device)
        return self._model

    def _encode(self, text: str) -> List[float]:
        model = self._load()
        embedding = model.encode(
            [text],
            convert_to_numpy=True,
            show_progress_bar=False,
            normalize_embeddings=False,
        )
        return embedding[0].tolist()

    async def embed(self, text: str) -> List[float]:
        return await asyncio.to_thread(self._encode, text)


__all__ = ["DEFAULT_MODEL_NAME", "SentenceTransformerEmbeddingProvider"]
