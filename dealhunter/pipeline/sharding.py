"""Shard map-reduce: normalize and classify raw ad items in parallel batches.

Map: every shard is dispatched at once. Each shard makes one normalization
call to the hosted model, then one classify_batch call to the local
classifier, then gets ids and categories attached.

Reduce: shard outputs are concatenated in shard order and tallied by
category.

Failure policy "abort" (default) fails the whole build on the first shard
error and cancels the shards still in flight. "partial" keeps the shards
that succeeded and reports the indices of the ones that did not.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from typing import Literal, Protocol, TypeVar
from uuid import uuid4

import structlog

from dealhunter.errors import ShardFailureError
from dealhunter.models.contracts import (
    ClassificationResult,
    InventoryResult,
    MasterInventoryItem,
    NormalizedItem,
    RawItem,
)

log = structlog.get_logger("pipeline.sharding")

SHARD_SIZE = 20

T = TypeVar("T")

FailurePolicy = Literal["abort", "partial"]
StatusCallback = Callable[[str], None]
NormalizeFn = Callable[[list[RawItem]], Awaitable[list[NormalizedItem]]]


class BatchClassifier(Protocol):
    async def classify_batch(self, items: list[str]) -> list[ClassificationResult]: ...


def create_shards(items: Sequence[T], shard_size: int) -> list[list[T]]:
    """Split items into consecutive slices of at most shard_size, in order."""
    if shard_size <= 0:
        raise ValueError(f"shard_size must be positive, got {shard_size}")
    return [list(items[i : i + shard_size]) for i in range(0, len(items), shard_size)]


class ProgressTracker:
    """Counts finished shards for status reporting."""

    def __init__(self, total: int) -> None:
        self.total = total
        self.current = 0

    @property
    def percentage(self) -> int:
        return round(self.current / self.total * 100) if self.total > 0 else 0

    def increment(self) -> None:
        self.current += 1

    def status(self, prefix: str) -> str:
        return f"{prefix} batch {self.current} of {self.total}"


def _classification_text(item: NormalizedItem) -> str:
    return item.normalized_name or item.raw_name or ""


async def process_shard(
    shard: list[RawItem],
    *,
    normalize: NormalizeFn,
    classifier: BatchClassifier,
) -> list[MasterInventoryItem]:
    """Map step for one shard: normalize, classify, then attach ids and categories."""
    normalized = await normalize(shard)
    classifications = await classifier.classify_batch(
        [_classification_text(item) for item in normalized]
    )
    return [
        MasterInventoryItem(
            **item.model_dump(),
            id=str(uuid4()),
            category=result.parent_category,
            subcategory=result.sub_category,
        )
        for item, result in zip(normalized, classifications, strict=True)
    ]


async def _gather_or_cancel(tasks: list[asyncio.Future[T]]) -> list[T]:
    """Await all tasks in order; on the first failure cancel the rest and re-raise."""
    if not tasks:
        return []
    try:
        _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise
    if pending:
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    for task in tasks:
        exc = None if task.cancelled() else task.exception()
        if exc is not None:
            raise exc
    return [task.result() for task in tasks]


async def build_inventory(
    raw_items: list[RawItem],
    *,
    normalize: NormalizeFn,
    classifier: BatchClassifier,
    shard_size: int = SHARD_SIZE,
    on_status: StatusCallback | None = None,
    failure_policy: FailurePolicy = "abort",
) -> InventoryResult:
    shards = create_shards(raw_items, shard_size)
    total = len(shards)
    tracker = ProgressTracker(total)
    log.info(
        "inventory_map_start",
        items=len(raw_items),
        shards=total,
        shard_size=shard_size,
        failure_policy=failure_policy,
    )
    if on_status:
        on_status(f"Normalizing {len(raw_items)} items in {total} batches...")

    async def _map(index: int, shard: list[RawItem]) -> list[MasterInventoryItem]:
        try:
            items = await process_shard(shard, normalize=normalize, classifier=classifier)
        except Exception as exc:
            log.error(
                "shard_failed",
                shard=index + 1,
                total=total,
                error=str(exc)[:300],
                error_type=type(exc).__name__,
            )
            raise ShardFailureError(index, total, exc) from exc
        tracker.increment()
        log.info("shard_normalized", shard=index + 1, total=total, items=len(items))
        if on_status:
            on_status(tracker.status("Normalized"))
        return items

    tasks = [asyncio.ensure_future(_map(i, shard)) for i, shard in enumerate(shards)]
    failed: list[int] = []
    if failure_policy == "abort":
        shard_results = await _gather_or_cancel(tasks)
    else:
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        shard_results = []
        errors: list[ShardFailureError] = []
        for outcome in outcomes:
            if isinstance(outcome, ShardFailureError):
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                shard_results.append(outcome)
        failed = [e.shard_index for e in errors]
        # Nothing survived: there is no partial result to return
        if errors and not shard_results:
            raise errors[0]

    items = [item for shard_items in shard_results for item in shard_items]
    counts = Counter(item.category for item in items)
    log.info(
        "inventory_reduce_complete",
        items=len(items),
        category_counts=dict(counts),
        failed_shards=failed,
    )
    return InventoryResult(items=items, category_counts=dict(counts), failed_shards=failed)
