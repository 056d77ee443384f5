"""Nearest-anchor embedding classifier.

Every taxonomy subcategory is embedded once into an anchor vector. An item
is classified by embedding its name and picking the anchor with the highest
cosine similarity. Runs inside the classifier host process; the anchor cache
never leaves it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

import numpy as np
import structlog

from dealhunter.classifier.embedding import Embedder
from dealhunter.classifier.similarity import cosine_similarity
from dealhunter.classifier.taxonomy import (
    SUB_CATEGORIES,
    SubCategoryDescriptor,
    is_parent_category,
)
from dealhunter.errors import InitializationError
from dealhunter.models.contracts import ClassificationResult

log = structlog.get_logger("classifier.engine")

UNKNOWN_SUB_CATEGORY = "Unknown"
DEFAULT_FALLBACK_PARENT = "Pantry & Dry Goods"


class ClassifierState(StrEnum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"


@dataclass(frozen=True)
class AnchorVector:
    vector: np.ndarray
    sub_category_name: str
    parent_category_name: str


class EmbeddingClassifier:
    """Lazily-initialized anchor classifier.

    The embedder factory is only called on the first initialize(); a failed
    initialization leaves the classifier UNINITIALIZED so the next call retries.
    """

    def __init__(
        self,
        embedder_factory: Callable[[], Embedder],
        descriptors: list[SubCategoryDescriptor] | None = None,
        fallback_parent: str = DEFAULT_FALLBACK_PARENT,
    ) -> None:
        if not is_parent_category(fallback_parent):
            raise ValueError(f"Fallback parent {fallback_parent!r} is not a taxonomy parent")
        self._embedder_factory = embedder_factory
        self._descriptors = list(SUB_CATEGORIES if descriptors is None else descriptors)
        self._fallback_parent = fallback_parent
        self._embedder: Embedder | None = None
        self._anchors: list[AnchorVector] = []
        self._init_lock = asyncio.Lock()
        self.state = ClassifierState.UNINITIALIZED

    @property
    def anchor_count(self) -> int:
        return len(self._anchors)

    async def initialize(self) -> ClassifierState:
        if self.state is ClassifierState.READY:
            return self.state
        async with self._init_lock:
            # Another caller may have finished while we waited on the lock
            if self.state is ClassifierState.READY:
                return self.state
            try:
                anchors = await self._build_anchors()
            except Exception as exc:
                log.exception("classifier_initialization_failed")
                raise InitializationError(f"Classifier initialization failed: {exc}") from exc
            self._anchors = anchors
            self.state = ClassifierState.READY
            log.info("classifier_ready", anchors=len(anchors))
            return self.state

    async def _build_anchors(self) -> list[AnchorVector]:
        if self._embedder is None:
            self._embedder = await asyncio.to_thread(self._embedder_factory)
        if not self._descriptors:
            return []
        texts = [d.embedding_text for d in self._descriptors]
        vectors = await asyncio.to_thread(self._embedder.encode, texts)
        if len(vectors) != len(self._descriptors):
            raise ValueError(
                f"Embedder returned {len(vectors)} vectors for {len(self._descriptors)} anchors"
            )
        return [
            AnchorVector(
                vector=np.asarray(vec, dtype=np.float32),
                sub_category_name=desc.name,
                parent_category_name=desc.parent,
            )
            for vec, desc in zip(vectors, self._descriptors, strict=True)
        ]

    async def classify(self, text: str) -> ClassificationResult:
        await self.initialize()
        embedder = self._embedder
        if embedder is None or not self._anchors:
            return ClassificationResult(
                sub_category=UNKNOWN_SUB_CATEGORY,
                parent_category=self._fallback_parent,
                similarity=0.0,
            )

        item_vector = (await asyncio.to_thread(embedder.encode, [text]))[0]

        best = self._anchors[0]
        best_similarity = cosine_similarity(item_vector, best.vector)
        for anchor in self._anchors[1:]:
            similarity = cosine_similarity(item_vector, anchor.vector)
            # Strict comparison keeps the first maximum in anchor order
            if similarity > best_similarity:
                best = anchor
                best_similarity = similarity

        return ClassificationResult(
            sub_category=best.sub_category_name,
            parent_category=best.parent_category_name,
            similarity=best_similarity,
        )

    async def classify_batch(self, texts: list[str]) -> list[ClassificationResult]:
        """Classify texts concurrently; results are in input order."""
        await self.initialize()
        return list(await asyncio.gather(*(self.classify(t) for t in texts)))
