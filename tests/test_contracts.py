"""Contract model tests: aliases, defaults, and category validation."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from dealhunter.models.contracts import (
    DEFAULT_MATCH_SUMMARY,
    GroceryMatch,
    InterpretResponse,
    MasterInventoryItem,
    MatchResponse,
    NormalizedItem,
    RawItem,
    WorkerRequest,
    WorkerResponse,
)


class TestRawItem:
    def test_parses_camel_case(self):
        item = RawItem.model_validate(
            {"rawName": "Coke 12pk", "price": "$5.99", "dealText": "BOGO", "storeName": "Kroger"}
        )
        assert item.raw_name == "Coke 12pk"
        assert item.deal_text == "BOGO"
        assert item.store_name == "Kroger"

    def test_defaults(self):
        item = RawItem()
        assert item.store_name == "Unknown Store"
        assert item.raw_name == ""

    def test_dumps_camel_case_by_alias(self):
        assert "rawName" in RawItem(raw_name="x").model_dump(by_alias=True)


class TestNormalizedItem:
    def test_required_fields(self):
        with pytest.raises(ValidationError):
            NormalizedItem.model_validate({"storeName": "A", "price": "$1"})

    def test_optional_fields(self):
        item = NormalizedItem.model_validate(
            {"storeName": "A", "normalizedName": "Milk", "price": "$3", "isLossLeader": True}
        )
        assert item.is_loss_leader is True
        assert item.original_price is None


class TestMasterInventoryItem:
    def _item(self, **kwargs) -> MasterInventoryItem:
        fields = {
            "id": "1",
            "store_name": "Safeway",
            "normalized_name": "Milk",
            "price": "$3",
            "category": "Dairy & Eggs",
        }
        fields.update(kwargs)
        return MasterInventoryItem(**fields)

    def test_category_must_be_parent(self):
        with pytest.raises(ValidationError):
            self._item(category="Milk & Cream")

    def test_computed_fields(self):
        item = self._item(is_loss_leader=True)
        assert item.product_name == "Milk"
        assert item.is_sale is True
        dumped = item.model_dump(by_alias=True)
        assert dumped["productName"] == "Milk"
        assert dumped["isSale"] is True

    def test_frozen(self):
        item = self._item()
        with pytest.raises(ValidationError):
            item.price = "$1"  # type: ignore[misc]


class TestOracleResponses:
    def test_interpret_response(self):
        parsed = InterpretResponse.model_validate({"expandedKeywords": ["milk", "2% milk"]})
        assert parsed.expanded_keywords == ["milk", "2% milk"]

    def test_match_response_default_summary(self):
        parsed = MatchResponse.model_validate({"matches": [{"id": "a", "itemName": "milk"}]})
        assert parsed.summary == DEFAULT_MATCH_SUMMARY
        assert parsed.matches[0].confidence is None

    def test_grocery_match_confidence_bounds(self):
        with pytest.raises(ValidationError):
            GroceryMatch(
                id="a",
                item_name="x",
                product_name="x",
                store_name="s",
                price="1",
                category="Produce",
                confidence=1.5,
            )


class TestWorkerMessages:
    def test_request_defaults_payload(self):
        assert WorkerRequest(id="msg_0", type="INITIALIZE").payload == {}

    def test_request_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            WorkerRequest.model_validate({"id": "msg_0", "type": "PING"})

    def test_response_ready_has_no_id(self):
        response = WorkerResponse.model_validate({"type": "READY"})
        assert response.id is None
        assert response.payload is None
