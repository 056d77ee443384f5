"""Tests for the classifier host message handling (dealhunter/classifier/worker_host.py).

handle_request() and serve() are exercised in-process with thread-safe
queues standing in for the multiprocessing ones.
"""

from __future__ import annotations

import asyncio
import queue

import pytest

from dealhunter.classifier.embedding import HashingEmbedder
from dealhunter.classifier.engine import EmbeddingClassifier
from dealhunter.classifier.taxonomy import SubCategoryDescriptor
from dealhunter.classifier.worker_host import handle_request, serve

DESCRIPTORS = [
    SubCategoryDescriptor(name="Soda", parent="Beverages", embedding_text="soda cola pop"),
    SubCategoryDescriptor(name="Bread", parent="Deli & Bakery", embedding_text="bread loaf bun"),
]


def _classifier() -> EmbeddingClassifier:
    return EmbeddingClassifier(HashingEmbedder, descriptors=DESCRIPTORS)


def _broken_classifier() -> EmbeddingClassifier:
    def factory():
        raise RuntimeError("no model on disk")

    return EmbeddingClassifier(factory, descriptors=DESCRIPTORS)


class TestHandleInitialize:
    @pytest.mark.asyncio
    async def test_first_initialize(self):
        response = await handle_request(_classifier(), {"id": "msg_0", "type": "INITIALIZE"})
        assert response == {
            "type": "INITIALIZE_RESPONSE",
            "id": "msg_0",
            "payload": {"success": True, "message": "Initialization complete"},
        }

    @pytest.mark.asyncio
    async def test_second_initialize_reports_already_initialized(self):
        classifier = _classifier()
        await handle_request(classifier, {"id": "msg_0", "type": "INITIALIZE"})
        response = await handle_request(classifier, {"id": "msg_1", "type": "INITIALIZE"})
        assert response["payload"] == {"success": True, "message": "Already initialized"}

    @pytest.mark.asyncio
    async def test_failed_initialize_is_not_an_error_message(self):
        response = await handle_request(
            _broken_classifier(), {"id": "msg_0", "type": "INITIALIZE", "payload": {}}
        )
        assert response["type"] == "INITIALIZE_RESPONSE"
        assert response["payload"]["success"] is False
        assert "no model on disk" in response["payload"]["message"]


class TestHandleClassify:
    @pytest.mark.asyncio
    async def test_classify(self):
        response = await handle_request(
            _classifier(),
            {"id": "msg_3", "type": "CLASSIFY", "payload": {"text": "cola 12 pack"}},
        )
        assert response["type"] == "CLASSIFY_RESPONSE"
        assert response["id"] == "msg_3"
        assert response["payload"]["sub_category"] == "Soda"
        assert response["payload"]["parent_category"] == "Beverages"

    @pytest.mark.asyncio
    async def test_classify_batch_preserves_order(self):
        response = await handle_request(
            _classifier(),
            {
                "id": "msg_4",
                "type": "CLASSIFY_BATCH",
                "payload": {"items": ["bread loaf", "cola", "bun"]},
            },
        )
        assert response["type"] == "CLASSIFY_BATCH_RESPONSE"
        assert [r["sub_category"] for r in response["payload"]] == ["Bread", "Soda", "Bread"]

    @pytest.mark.asyncio
    async def test_classify_on_broken_model_returns_error(self):
        response = await handle_request(
            _broken_classifier(),
            {"id": "msg_5", "type": "CLASSIFY", "payload": {"text": "cola"}},
        )
        assert response["type"] == "ERROR"
        assert response["id"] == "msg_5"
        assert "no model on disk" in response["payload"]["message"]

    @pytest.mark.asyncio
    async def test_missing_payload_field_returns_error(self):
        response = await handle_request(
            _classifier(), {"id": "msg_6", "type": "CLASSIFY", "payload": {}}
        )
        assert response["type"] == "ERROR"
        assert response["id"] == "msg_6"


class TestHandleBadRequests:
    @pytest.mark.asyncio
    async def test_unknown_type_keeps_id(self):
        response = await handle_request(_classifier(), {"id": "msg_7", "type": "PING"})
        assert response["type"] == "ERROR"
        assert response["id"] == "msg_7"
        assert response["payload"]["message"].startswith("Unrecognized request")

    @pytest.mark.asyncio
    async def test_missing_id(self):
        response = await handle_request(_classifier(), {"type": "CLASSIFY"})
        assert response["type"] == "ERROR"
        assert response["id"] is None

    @pytest.mark.asyncio
    async def test_not_a_dict(self):
        response = await handle_request(_classifier(), "CLASSIFY cola")
        assert response["type"] == "ERROR"
        assert response["id"] is None


class TestServe:
    @pytest.mark.asyncio
    async def test_ready_then_one_response_per_request(self):
        requests: queue.Queue = queue.Queue()
        responses: queue.Queue = queue.Queue()
        requests.put({"id": "msg_0", "type": "INITIALIZE"})
        requests.put({"id": "msg_1", "type": "CLASSIFY", "payload": {"text": "cola"}})
        requests.put({"id": "msg_2", "type": "PING"})
        requests.put(None)

        await asyncio.wait_for(serve(requests, responses, _classifier()), timeout=10)

        messages = []
        while not responses.empty():
            messages.append(responses.get_nowait())
        assert messages[0] == {"type": "READY", "id": None, "payload": None}
        by_id = {m["id"]: m for m in messages[1:]}
        assert set(by_id) == {"msg_0", "msg_1", "msg_2"}
        assert by_id["msg_0"]["type"] == "INITIALIZE_RESPONSE"
        assert by_id["msg_1"]["type"] == "CLASSIFY_RESPONSE"
        assert by_id["msg_2"]["type"] == "ERROR"

    @pytest.mark.asyncio
    async def test_shutdown_sentinel_stops_loop(self):
        requests: queue.Queue = queue.Queue()
        responses: queue.Queue = queue.Queue()
        requests.put(None)

        await asyncio.wait_for(serve(requests, responses, _classifier()), timeout=5)

        assert responses.get_nowait()["type"] == "READY"
        assert responses.empty()
