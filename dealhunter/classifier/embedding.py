"""Text embedding backends for the anchor classifier.

SentenceTransformerEmbedder is the real backend. HashingEmbedder is a
deterministic stand-in for offline development and tests (USE_MOCK_EMBEDDER).
"""

from __future__ import annotations

import hashlib
import re
from typing import Literal, Protocol

import numpy as np
import structlog

log = structlog.get_logger("classifier.embedding")

DEFAULT_DIMENSION = 384

EmbeddingBackend = Literal["sentence-transformers", "mock"]


class Embedder(Protocol):
    """Embeds a batch of strings into L2-normalized vectors of shape (n, D)."""

    def encode(self, texts: list[str]) -> np.ndarray: ...


class SentenceTransformerEmbedder:
    def __init__(self, model_name: str) -> None:
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self._model = SentenceTransformer(model_name)
        log.info(
            "embedding_model_loaded",
            model=model_name,
            dimension=self._model.get_sentence_embedding_dimension(),
        )

    def encode(self, texts: list[str]) -> np.ndarray:
        vectors = self._model.encode(
            texts,
            normalize_embeddings=True,
            convert_to_numpy=True,
            show_progress_bar=False,
        )
        return np.asarray(vectors, dtype=np.float32)


_TOKEN_RE = re.compile(r"[a-z0-9]+")


class HashingEmbedder:
    """Character-trigram feature hashing into a fixed-size, normalized vector.

    Texts sharing words share trigrams, so lexical overlap produces high
    cosine similarity. Identical texts always produce identical vectors.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self.dimension = dimension

    def _features(self, text: str) -> list[str]:
        features: list[str] = []
        for token in _TOKEN_RE.findall(text.lower()):
            padded = f"#{token}#"
            features.append(token)
            features.extend(padded[i : i + 3] for i in range(len(padded) - 2))
        return features

    def _embed_one(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=np.float32)
        for feature in self._features(text):
            digest = hashlib.md5(feature.encode("utf-8")).digest()
            bucket = int.from_bytes(digest[:4], "little") % self.dimension
            sign = 1.0 if digest[4] & 1 else -1.0
            vector[bucket] += sign
        norm = float(np.linalg.norm(vector))
        if norm > 0:
            vector /= norm
        return vector

    def encode(self, texts: list[str]) -> np.ndarray:
        if not texts:
            return np.zeros((0, self.dimension), dtype=np.float32)
        return np.stack([self._embed_one(t) for t in texts])


def load_embedder(backend: EmbeddingBackend, model_name: str) -> Embedder:
    """Build the configured embedder. Loading a real model can take seconds."""
    if backend == "mock":
        log.info("embedding_mock_backend", dimension=DEFAULT_DIMENSION)
        return HashingEmbedder()
    if backend == "sentence-transformers":
        return SentenceTransformerEmbedder(model_name)
    raise ValueError(f"Unknown embedding backend: {backend!r}")
