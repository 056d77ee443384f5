"""Pipeline coordinator: extract -> normalize+classify -> interpret -> match.

Stages run strictly in sequence. Each transition reports a status string to
an optional callback (a pure side channel). The first failure moves the
coordinator to ERROR, records a user-facing PipelineFailure, and re-raises;
there is no stage retry and no partial result from a failed run.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from pathlib import Path
from typing import Protocol
from uuid import uuid4

import structlog

from dealhunter.classifier.client import ClassifierClient
from dealhunter.config import settings
from dealhunter.errors import DealHunterError, EmptyExtractionError
from dealhunter.models.contracts import (
    AdFile,
    AnalysisResult,
    MasterInventoryItem,
    MatchResponse,
    NormalizedItem,
    PipelineFailure,
    RawItem,
)
from dealhunter.oracle.agents import GeminiOracle
from dealhunter.oracle.files import load_ad_files
from dealhunter.pipeline.assembly import group_by_category, hydrate_matches
from dealhunter.pipeline.sharding import (
    BatchClassifier,
    FailurePolicy,
    StatusCallback,
    build_inventory,
)

log = structlog.get_logger("pipeline.coordinator")

NO_KEYWORDS_SUMMARY = "Your shopping list is empty, so there was nothing to match."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred while analyzing the ads."


class PipelineStage(StrEnum):
    EXTRACTING = "extracting"
    NORMALIZING = "normalizing"
    INTERPRETING = "interpreting"
    MATCHING = "matching"
    DONE = "done"
    ERROR = "error"


class DealOracle(Protocol):
    async def extract(self, files: list[AdFile]) -> list[RawItem]: ...

    async def normalize(self, shard: list[RawItem]) -> list[NormalizedItem]: ...

    async def interpret(self, grocery_list: str) -> list[str]: ...

    async def match(
        self, keywords: list[str], inventory: list[MasterInventoryItem]
    ) -> MatchResponse: ...


class PipelineCoordinator:
    def __init__(
        self,
        oracle: DealOracle,
        classifier: BatchClassifier,
        *,
        on_status: StatusCallback | None = None,
        shard_size: int | None = None,
        failure_policy: FailurePolicy | None = None,
    ) -> None:
        self.oracle = oracle
        self.classifier = classifier
        self.on_status = on_status
        self.shard_size = shard_size if shard_size is not None else settings.shard_size
        self.failure_policy: FailurePolicy = (
            failure_policy if failure_policy is not None else settings.shard_failure_policy
        )
        self.stage: PipelineStage | None = None
        self.error: PipelineFailure | None = None

    def _report(self, message: str) -> None:
        if self.on_status:
            self.on_status(message)

    def _enter(self, stage: PipelineStage, message: str) -> None:
        log.info("pipeline_stage", stage=stage.value, previous=self.stage and self.stage.value)
        self.stage = stage
        self._report(message)

    async def run(self, grocery_list: str, ad_files: list[AdFile]) -> AnalysisResult:
        self.stage = None
        self.error = None
        run_id = uuid4().hex[:12]
        with structlog.contextvars.bound_contextvars(run_id=run_id):
            log.info("pipeline_start", files=[f.name for f in ad_files])
            try:
                return await self._run_stages(grocery_list, ad_files)
            except Exception as exc:
                failed_stage = self.stage
                self.stage = PipelineStage.ERROR
                if isinstance(exc, DealHunterError):
                    message, retryable = exc.message, exc.retryable
                else:
                    message, retryable = UNEXPECTED_ERROR_MESSAGE, False
                self.error = PipelineFailure(
                    stage=failed_stage.value if failed_stage else "starting",
                    message=message,
                    retryable=retryable,
                )
                log.exception(
                    "pipeline_failed",
                    stage=self.error.stage,
                    error_type=type(exc).__name__,
                    retryable=retryable,
                )
                self._report(f"Error: {message}")
                raise

    async def _run_stages(self, grocery_list: str, ad_files: list[AdFile]) -> AnalysisResult:
        # --- Extraction ---
        self._enter(PipelineStage.EXTRACTING, "Scanning weekly ads for products...")
        raw_items = await self.oracle.extract(ad_files)
        if not raw_items:
            raise EmptyExtractionError()

        # --- Normalization + classification ---
        self._enter(
            PipelineStage.NORMALIZING,
            f"Organizing {len(raw_items)} found items into aisles...",
        )
        inventory = await build_inventory(
            raw_items,
            normalize=self.oracle.normalize,
            classifier=self.classifier,
            shard_size=self.shard_size,
            on_status=self.on_status,
            failure_policy=self.failure_policy,
        )

        # --- List interpretation ---
        self._enter(PipelineStage.INTERPRETING, "Refining and expanding your shopping list...")
        keywords = await self.oracle.interpret(grocery_list)

        # --- Matching ---
        self._enter(PipelineStage.MATCHING, "Comparing your list against local prices...")
        if keywords:
            response = await self.oracle.match(keywords, inventory.items)
            matches = hydrate_matches(response.matches, inventory.items)
            summary = response.summary
        else:
            matches, summary = [], NO_KEYWORDS_SUMMARY

        result = AnalysisResult(
            summary=summary,
            matches=matches,
            categorized_deals=group_by_category(inventory.items),
            category_counts=inventory.category_counts,
            failed_shards=inventory.failed_shards,
        )
        self._enter(PipelineStage.DONE, f"Found {len(matches)} matching deals.")
        log.info(
            "pipeline_complete",
            matches=len(matches),
            categories=len(result.categorized_deals),
            inventory=len(inventory.items),
        )
        return result


async def analyze_grocery_ads(
    grocery_list: str,
    ad_paths: Sequence[str | Path],
    on_status: StatusCallback | None = None,
) -> AnalysisResult:
    """Run the full pipeline on files from disk with a fresh classifier worker."""
    files = await load_ad_files(list(ad_paths))
    async with ClassifierClient() as classifier:
        coordinator = PipelineCoordinator(GeminiOracle(), classifier, on_status=on_status)
        return await coordinator.run(grocery_list, files)
