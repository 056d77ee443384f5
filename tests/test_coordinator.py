"""Tests for the pipeline coordinator (dealhunter/pipeline/coordinator.py).

A scripted fake oracle and an in-process classifier stand in for Gemini and
the worker process. Covers stage order and status reporting, the
empty-extraction and empty-list paths, and failure recording.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from dealhunter.errors import EmptyExtractionError, OracleError, ShardFailureError
from dealhunter.models.contracts import (
    AdFile,
    ClassificationResult,
    MatchItem,
    MatchResponse,
    NormalizedItem,
    RawItem,
)
from dealhunter.pipeline.coordinator import (
    NO_KEYWORDS_SUMMARY,
    UNEXPECTED_ERROR_MESSAGE,
    PipelineCoordinator,
    PipelineStage,
    analyze_grocery_ads,
)

FILES = [AdFile(name="safeway.pdf", mime_type="application/pdf", data=b"%PDF")]

CATEGORIES = {
    "Coca-Cola 12 Pack": ("Soda & Soft Drinks", "Beverages"),
    "Bananas": ("Fresh Fruit", "Produce"),
    "Tide Detergent": ("Laundry", "Household & Cleaning"),
}


class FakeOracle:
    def __init__(self, raw_names: list[str], keywords: list[str] | None = None):
        self.raw_names = raw_names
        self.keywords = ["soda"] if keywords is None else keywords
        self.calls: list[str] = []
        self.seen_inventory: list = []

    async def extract(self, files):
        self.calls.append("extract")
        return [RawItem(raw_name=n, price="$1", store_name="Safeway") for n in self.raw_names]

    async def normalize(self, shard):
        self.calls.append("normalize")
        return [
            NormalizedItem(
                store_name=i.store_name, raw_name=i.raw_name, normalized_name=i.raw_name, price=i.price
            )
            for i in shard
        ]

    async def interpret(self, grocery_list):
        self.calls.append("interpret")
        return self.keywords

    async def match(self, keywords, inventory):
        self.calls.append("match")
        self.seen_inventory = inventory
        soda = [i for i in inventory if i.category == "Beverages"]
        return MatchResponse(
            matches=[MatchItem(id=i.id, item_name="soda", confidence=0.9) for i in soda]
            + [MatchItem(id="made-up", item_name="caviar")],
            summary="Soda is on sale.",
        )


class LookupClassifier:
    async def classify_batch(self, items):
        return [
            ClassificationResult(sub_category=CATEGORIES[t][0], parent_category=CATEGORIES[t][1])
            for t in items
        ]


def _coordinator(oracle, **kwargs) -> tuple[PipelineCoordinator, list[str]]:
    statuses: list[str] = []
    coordinator = PipelineCoordinator(
        oracle, LookupClassifier(), on_status=statuses.append, **kwargs
    )
    return coordinator, statuses


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_full_run(self):
        oracle = FakeOracle(list(CATEGORIES))
        coordinator, statuses = _coordinator(oracle)

        result = await coordinator.run("soda", FILES)

        assert coordinator.stage is PipelineStage.DONE
        assert coordinator.error is None
        assert oracle.calls == ["extract", "normalize", "interpret", "match"]
        assert result.summary == "Soda is on sale."
        assert [m.product_name for m in result.matches] == ["Coca-Cola 12 Pack"]
        assert result.matches[0].confidence == 0.9
        assert [g.category for g in result.categorized_deals] == [
            "Produce",
            "Beverages",
            "Household & Cleaning",
        ]
        assert result.category_counts == {
            "Beverages": 1,
            "Produce": 1,
            "Household & Cleaning": 1,
        }
        assert result.failed_shards == []

    @pytest.mark.asyncio
    async def test_status_sequence(self):
        coordinator, statuses = _coordinator(FakeOracle(list(CATEGORIES)))
        await coordinator.run("soda", FILES)
        assert statuses == [
            "Scanning weekly ads for products...",
            "Organizing 3 found items into aisles...",
            "Normalizing 3 items in 1 batches...",
            "Normalized batch 1 of 1",
            "Refining and expanding your shopping list...",
            "Comparing your list against local prices...",
            "Found 1 matching deals.",
        ]

    @pytest.mark.asyncio
    async def test_stage_order(self):
        seen: list[PipelineStage | None] = []
        oracle = FakeOracle(list(CATEGORIES))
        coordinator = PipelineCoordinator(oracle, LookupClassifier())
        coordinator.on_status = lambda _: seen.append(coordinator.stage)

        await coordinator.run("soda", FILES)

        stages = [s for i, s in enumerate(seen) if i == 0 or s is not seen[i - 1]]
        assert stages == [
            PipelineStage.EXTRACTING,
            PipelineStage.NORMALIZING,
            PipelineStage.INTERPRETING,
            PipelineStage.MATCHING,
            PipelineStage.DONE,
        ]

    @pytest.mark.asyncio
    async def test_shard_size_is_used(self):
        oracle = FakeOracle(list(CATEGORIES))
        coordinator, _ = _coordinator(oracle, shard_size=1)
        await coordinator.run("soda", FILES)
        assert oracle.calls.count("normalize") == 3

    @pytest.mark.asyncio
    async def test_explicit_zero_shard_size_is_not_replaced(self):
        oracle = FakeOracle(list(CATEGORIES))
        coordinator, _ = _coordinator(oracle, shard_size=0)
        assert coordinator.shard_size == 0

        with pytest.raises(ValueError, match="shard_size must be positive"):
            await coordinator.run("soda", FILES)
        assert coordinator.error.stage == "normalizing"
        assert oracle.calls == ["extract"]

    @pytest.mark.asyncio
    async def test_binds_run_id_for_logging(self):
        bound: list[dict] = []

        class RecordingOracle(FakeOracle):
            async def extract(self, files):
                bound.append(structlog.contextvars.get_contextvars())
                return await super().extract(files)

        coordinator, _ = _coordinator(RecordingOracle(list(CATEGORIES)))
        await coordinator.run("soda", FILES)

        assert "run_id" in bound[0]
        assert "run_id" not in structlog.contextvars.get_contextvars()


class TestEdgeCases:
    @pytest.mark.asyncio
    async def test_empty_extraction(self):
        oracle = FakeOracle([])
        coordinator, statuses = _coordinator(oracle)

        with pytest.raises(EmptyExtractionError):
            await coordinator.run("soda", FILES)

        assert coordinator.stage is PipelineStage.ERROR
        assert coordinator.error.stage == "extracting"
        assert coordinator.error.message.startswith("Could not identify any products")
        assert coordinator.error.retryable is False
        assert oracle.calls == ["extract"]
        assert statuses[-1].startswith("Error: Could not identify")

    @pytest.mark.asyncio
    async def test_empty_keywords_skip_matcher(self):
        oracle = FakeOracle(list(CATEGORIES), keywords=[])
        coordinator, _ = _coordinator(oracle)

        result = await coordinator.run("", FILES)

        assert "match" not in oracle.calls
        assert result.matches == []
        assert result.summary == NO_KEYWORDS_SUMMARY
        assert len(result.categorized_deals) == 3
        assert coordinator.stage is PipelineStage.DONE


class TestFailures:
    @pytest.mark.asyncio
    async def test_oracle_failure_records_stage(self):
        oracle = FakeOracle(list(CATEGORIES))
        oracle.interpret = AsyncMock(side_effect=OracleError("Interpreter call failed"))
        coordinator, statuses = _coordinator(oracle)

        with pytest.raises(OracleError):
            await coordinator.run("soda", FILES)

        assert coordinator.stage is PipelineStage.ERROR
        assert coordinator.error.stage == "interpreting"
        assert coordinator.error.retryable is True
        assert statuses[-1] == "Error: Interpreter call failed"

    @pytest.mark.asyncio
    async def test_shard_failure_aborts_run(self):
        oracle = FakeOracle(list(CATEGORIES))
        oracle.normalize = AsyncMock(side_effect=OracleError("quota"))
        coordinator, _ = _coordinator(oracle)

        with pytest.raises(ShardFailureError):
            await coordinator.run("soda", FILES)

        assert coordinator.error.stage == "normalizing"
        assert coordinator.error.message.startswith("Batch 1 of 1 failed")

    @pytest.mark.asyncio
    async def test_partial_policy_reports_failed_shards(self):
        oracle = FakeOracle(list(CATEGORIES))
        original = oracle.normalize

        async def flaky(shard):
            if shard[0].raw_name == "Bananas":
                raise OracleError("quota")
            return await original(shard)

        oracle.normalize = flaky
        coordinator, _ = _coordinator(oracle, shard_size=1, failure_policy="partial")

        result = await coordinator.run("soda", FILES)

        assert result.failed_shards == [1]
        assert sum(result.category_counts.values()) == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_gets_generic_message(self):
        oracle = FakeOracle(list(CATEGORIES))
        oracle.match = AsyncMock(side_effect=KeyError("boom"))
        coordinator, _ = _coordinator(oracle)

        with pytest.raises(KeyError):
            await coordinator.run("soda", FILES)

        assert coordinator.error.stage == "matching"
        assert coordinator.error.message == UNEXPECTED_ERROR_MESSAGE
        assert coordinator.error.retryable is False

    @pytest.mark.asyncio
    async def test_rerun_clears_previous_error(self):
        oracle = FakeOracle([])
        coordinator, _ = _coordinator(oracle)
        with pytest.raises(EmptyExtractionError):
            await coordinator.run("soda", FILES)

        oracle.raw_names = list(CATEGORIES)
        await coordinator.run("soda", FILES)
        assert coordinator.error is None
        assert coordinator.stage is PipelineStage.DONE


class TestAnalyzeGroceryAds:
    @pytest.mark.asyncio
    async def test_wires_files_client_and_oracle(self, tmp_path):
        path = tmp_path / "ad.pdf"
        path.write_bytes(b"%PDF-1.4")
        oracle = FakeOracle(list(CATEGORIES))

        client = MagicMock()
        client.__aenter__ = AsyncMock(return_value=LookupClassifier())
        client.__aexit__ = AsyncMock(return_value=None)

        with (
            patch("dealhunter.pipeline.coordinator.ClassifierClient", return_value=client),
            patch("dealhunter.pipeline.coordinator.GeminiOracle", return_value=oracle),
        ):
            result = await analyze_grocery_ads("soda", [path])

        assert oracle.calls == ["extract", "normalize", "interpret", "match"]
        assert len(result.matches) == 1
        client.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bad_file_fails_before_worker_starts(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("milk")
        with patch("dealhunter.pipeline.coordinator.ClassifierClient") as mock_client:
            with pytest.raises(Exception, match="Only PDF and image"):
                await analyze_grocery_ads("milk", [path])
        mock_client.assert_not_called()


def test_stage_values():
    assert [s.value for s in PipelineStage] == [
        "extracting",
        "normalizing",
        "interpreting",
        "matching",
        "done",
        "error",
    ]
