"""Mock embedding provider for tests and offline development."""
from __future__ import annotations

import hashlib
import random
import re
from typing import List

from .base import EmbeddingProvider

_TOKEN_RE = re.compile(r"[\w'-]+")

MAX_RECORDED_CALLS = 256


class MockEmbeddingProvider(EmbeddingProvider):
    """Return deterministic embedding vectors for provided texts.

    Every token contributes a pseudo-random direction seeded from its hash, so
    texts sharing vocabulary end up with a positive cosine similarity.
    """

    model_name = "mock-hashed-embedding"

    def __init__(self, dimension: int = 64) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self.dimension = dimension
        self.calls: List[str] = []

    def _token_vector(self, token: str) -> List[float]:
        seed = hashlib.sha256(token.encode("utf-8")).hexdigest()
        rng = random.Random(seed)
        return [(rng.random() * 2.0) - 1.0 for _ in range(self.dimension)]

    def embed_sync(self, text: str) -> List[float]:
        vector = [0.0] * self.dimension
        for token in _TOKEN_RE.findall(text.lower()):
            for position, value in enumerate(self._token_vector(token)):
                vector[position] += value
        return vector

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        del self.calls[:-MAX_RECORDED_CALLS]
        return self.embed_sync(text)
