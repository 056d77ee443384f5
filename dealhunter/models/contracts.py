"""Contract models for oracle payloads, classifier results and pipeline output.

Oracle-facing models use camelCase aliases because that is the JSON shape
the prompts ask the model to produce; Python code uses the snake_case names.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from dealhunter.classifier.taxonomy import PARENT_CATEGORIES, is_parent_category

DEFAULT_MATCH_SUMMARY = "Here are the best deals found for your list."


class _OracleModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Extraction (vision oracle) ===


class RawItem(_OracleModel):
    """One product tile as read off an ad page. No parsing, all free text."""

    raw_name: str = ""
    brand: str = ""
    price: str = ""
    unit: str = ""
    deal_text: str = ""
    store_name: str = "Unknown Store"
    validity: str = ""


# === Normalization (per shard) ===


class NormalizedItem(_OracleModel):
    store_name: str
    raw_name: str | None = None
    normalized_name: str
    brand: str = ""
    price: str
    unit: str = ""
    deal_description: str = ""
    is_loss_leader: bool = False
    valid_dates: str = ""
    original_price: str | None = None


class MasterInventoryItem(NormalizedItem):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    category: str
    subcategory: str | None = None

    @field_validator("category")
    @classmethod
    def _known_parent(cls, value: str) -> str:
        if not is_parent_category(value):
            raise ValueError(f"category must be one of {list(PARENT_CATEGORIES)}, got {value!r}")
        return value

    @computed_field  # type: ignore[prop-decorator]
    @property
    def product_name(self) -> str:
        return self.normalized_name

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_sale(self) -> bool:
        return self.is_loss_leader


# === Interpretation ===


class InterpretResponse(_OracleModel):
    expanded_keywords: list[str]


# === Matching ===


class MatchItem(_OracleModel):
    id: str
    item_name: str
    deal_description: str | None = None
    confidence: float | None = None


class MatchResponse(_OracleModel):
    matches: list[MatchItem]
    summary: str = DEFAULT_MATCH_SUMMARY


# === Classification ===


class ClassificationResult(BaseModel):
    sub_category: str
    parent_category: str
    similarity: float | None = None


# === Classifier worker protocol ===

RequestType = Literal["INITIALIZE", "CLASSIFY", "CLASSIFY_BATCH"]
ResponseType = Literal[
    "READY",
    "INITIALIZE_RESPONSE",
    "CLASSIFY_RESPONSE",
    "CLASSIFY_BATCH_RESPONSE",
    "ERROR",
]


class WorkerRequest(BaseModel):
    id: str
    type: RequestType
    payload: dict[str, Any] = {}


class WorkerResponse(BaseModel):
    type: ResponseType
    id: str | None = None
    payload: Any = None


class InitializeResult(BaseModel):
    success: bool
    message: str


class ClassifyPayload(BaseModel):
    text: str


class ClassifyBatchPayload(BaseModel):
    items: list[str]


# === Input files ===


class AdFile(BaseModel):
    name: str
    mime_type: str
    data: bytes


# === Pipeline output ===


class GroceryMatch(BaseModel):
    id: str
    item_name: str
    product_name: str
    store_name: str
    price: str
    quantity: str = ""
    brand: str = ""
    original_price: str | None = None
    deal_description: str = ""
    valid_dates: str = ""
    category: str
    is_sale: bool = False
    confidence: float = Field(ge=0, le=1, default=1.0)


class DealCategory(BaseModel):
    category: str
    items: list[GroceryMatch]


class PipelineFailure(BaseModel):
    stage: str
    message: str
    retryable: bool


class InventoryResult(BaseModel):
    items: list[MasterInventoryItem]
    category_counts: dict[str, int] = {}
    failed_shards: list[int] = []


class AnalysisResult(BaseModel):
    summary: str
    matches: list[GroceryMatch] = []
    categorized_deals: list[DealCategory] = []
    category_counts: dict[str, int] = {}
    failed_shards: list[int] = []
