"""Classifier host process: runs EmbeddingClassifier behind a message queue.

Spawned by ClassifierClient. Model loading and inference happen here so they
never block the caller's event loop. All communication is via two
multiprocessing queues of plain dicts:

    requests:  {"id": ..., "type": "INITIALIZE" | "CLASSIFY" | "CLASSIFY_BATCH", "payload": {...}}
    responses: {"id": ..., "type": "<TYPE>_RESPONSE" | "ERROR" | "READY", "payload": ...}

READY is sent once, unsolicited, when the message loop is live (before the
model loads). A None on the request queue shuts the host down.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any

import structlog
from pydantic import ValidationError

from dealhunter.classifier.embedding import EmbeddingBackend, load_embedder
from dealhunter.classifier.engine import ClassifierState, EmbeddingClassifier
from dealhunter.errors import InitializationError
from dealhunter.logging import ROLE_CLASSIFIER_HOST, configure_logging
from dealhunter.models.contracts import (
    ClassifyBatchPayload,
    ClassifyPayload,
    InitializeResult,
    WorkerRequest,
    WorkerResponse,
)

log = structlog.get_logger("classifier.host")


def _response(type_: str, payload: Any, request_id: str | None = None) -> dict[str, Any]:
    return WorkerResponse(type=type_, id=request_id, payload=payload).model_dump()  # type: ignore[arg-type]


def _error(message: str, request_id: str | None) -> dict[str, Any]:
    return _response("ERROR", {"message": message}, request_id)


def _raw_id(raw: Any) -> str | None:
    if isinstance(raw, dict) and isinstance(raw.get("id"), str):
        return raw["id"]
    return None


async def handle_request(classifier: EmbeddingClassifier, raw: Any) -> dict[str, Any]:
    """Turn one raw request into exactly one response carrying the same id."""
    try:
        request = WorkerRequest.model_validate(raw)
    except ValidationError as exc:
        log.warning("classifier_host_bad_request", error=str(exc)[:200])
        return _error(f"Unrecognized request: {exc.errors()[0]['msg']}", _raw_id(raw))

    try:
        if request.type == "INITIALIZE":
            already_ready = classifier.state is ClassifierState.READY
            try:
                await classifier.initialize()
            except InitializationError as exc:
                result = InitializeResult(success=False, message=exc.message)
            else:
                message = "Already initialized" if already_ready else "Initialization complete"
                result = InitializeResult(success=True, message=message)
            return _response("INITIALIZE_RESPONSE", result.model_dump(), request.id)

        if request.type == "CLASSIFY":
            payload = ClassifyPayload.model_validate(request.payload)
            classified = await classifier.classify(payload.text)
            return _response("CLASSIFY_RESPONSE", classified.model_dump(), request.id)

        batch = ClassifyBatchPayload.model_validate(request.payload)
        results = await classifier.classify_batch(batch.items)
        return _response(
            "CLASSIFY_BATCH_RESPONSE", [r.model_dump() for r in results], request.id
        )
    except Exception as exc:
        log.exception("classifier_host_request_failed", request_id=request.id, type=request.type)
        return _error(str(exc) or type(exc).__name__, request.id)


async def serve(requests: Any, responses: Any, classifier: EmbeddingClassifier) -> None:
    """Message loop. Each request runs as its own task so batches overlap."""
    in_flight: set[asyncio.Task[None]] = set()

    async def _run(raw: Any) -> None:
        responses.put(await handle_request(classifier, raw))

    responses.put(_response("READY", None))
    log.info("classifier_host_ready")

    while True:
        raw = await asyncio.to_thread(requests.get)
        if raw is None:
            break
        task = asyncio.create_task(_run(raw))
        in_flight.add(task)
        task.add_done_callback(in_flight.discard)

    if in_flight:
        await asyncio.gather(*in_flight, return_exceptions=True)
    log.info("classifier_host_stopped")


def run_host(
    requests: Any,
    responses: Any,
    backend: EmbeddingBackend,
    model_name: str,
    fallback_parent: str,
) -> None:
    """Process entry point (must stay a module-level function for spawn)."""
    configure_logging(ROLE_CLASSIFIER_HOST)
    classifier = EmbeddingClassifier(
        embedder_factory=functools.partial(load_embedder, backend, model_name),
        fallback_parent=fallback_parent,
    )
    try:
        asyncio.run(serve(requests, responses, classifier))
    except KeyboardInterrupt:
        pass
