"""Async client for the classifier host process.

ClassifierClient owns one host process. It is created by the caller and
injected wherever classification is needed; nothing here is module-global.

Lifecycle: the first call spawns the host, waits for its READY signal, then
sends INITIALIZE and only returns once the model and anchors are loaded.
Concurrent callers during start-up all await the same start-up task.
terminate() kills the host; the next call starts a fresh one.

Requests are correlated by id ("msg_0", "msg_1", ...). A daemon thread
drains the response queue and hands each message to the event loop, where
the matching pending future is resolved. Each request has its own timeout.
"""

from __future__ import annotations

import asyncio
import itertools
import multiprocessing
import queue
import threading
from typing import Any, TypeVar

import structlog
from pydantic import ValidationError

from dealhunter.classifier.embedding import EmbeddingBackend
from dealhunter.classifier.worker_host import run_host
from dealhunter.config import settings
from dealhunter.errors import (
    ClassifierTimeoutError,
    DealHunterError,
    InitializationError,
    WorkerError,
)
from dealhunter.models.contracts import (
    ClassificationResult,
    InitializeResult,
    RequestType,
    WorkerRequest,
    WorkerResponse,
)

log = structlog.get_logger("classifier.client")

_READER_POLL_SECONDS = 0.2
_JOIN_TIMEOUT_SECONDS = 5.0

T = TypeVar("T")


def _default(value: T | None, fallback: T) -> T:
    """Explicit values win, including 0 and 0.0."""
    return fallback if value is None else value


class ClassifierClient:
    def __init__(
        self,
        *,
        backend: EmbeddingBackend | None = None,
        model_name: str | None = None,
        fallback_parent: str | None = None,
        classify_timeout: float | None = None,
        batch_timeout: float | None = None,
        initialize_timeout: float | None = None,
        start_timeout: float | None = None,
    ) -> None:
        if backend is None:
            backend = "mock" if settings.use_mock_embedder else "sentence-transformers"
        self.backend: EmbeddingBackend = backend
        self.model_name = _default(model_name, settings.embedding_model)
        self.fallback_parent = _default(fallback_parent, settings.fallback_parent_category)
        self.classify_timeout = _default(classify_timeout, settings.classify_timeout_seconds)
        self.batch_timeout = _default(batch_timeout, settings.batch_timeout_seconds)
        self.initialize_timeout = _default(
            initialize_timeout, settings.initialize_timeout_seconds
        )
        self.start_timeout = _default(start_timeout, settings.worker_start_timeout_seconds)

        self._ids = itertools.count()
        self._pending: dict[str, asyncio.Future[Any]] = {}
        self._generation = 0
        self._loop: asyncio.AbstractEventLoop | None = None
        self._process: Any = None
        self._requests: Any = None
        self._responses: Any = None
        self._reader: threading.Thread | None = None
        self._stop_reader: threading.Event | None = None
        self._ready: asyncio.Future[None] | None = None
        self._start_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> ClassifierClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.terminate()

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    # === Lifecycle ===

    async def start(self) -> None:
        """Start the host if needed and wait until the model is initialized."""
        if self._start_task is None:
            self._start_task = asyncio.ensure_future(self._start())
        task = self._start_task
        try:
            await asyncio.shield(task)
        except Exception:
            # Only a finished, failed start-up is cleared; the next call retries
            if task.done() and self._start_task is task:
                self._start_task = None
            raise

    async def _start(self) -> None:
        self._generation += 1
        generation = self._generation
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._ready = loop.create_future()

        ctx = multiprocessing.get_context("spawn")
        self._requests = ctx.Queue()
        self._responses = ctx.Queue()
        process = ctx.Process(
            target=run_host,
            args=(
                self._requests,
                self._responses,
                self.backend,
                self.model_name,
                self.fallback_parent,
            ),
            name="dealhunter-classifier",
            daemon=True,
        )

        log.info("classifier_worker_starting", backend=self.backend, model=self.model_name)
        try:
            await asyncio.to_thread(process.start)
            self._process = process
            self._start_reader(generation)

            try:
                await asyncio.wait_for(self._ready, timeout=self.start_timeout)
            except TimeoutError as exc:
                raise InitializationError(
                    f"Classifier worker did not become ready within {self.start_timeout}s"
                ) from exc

            try:
                payload = await self._send("INITIALIZE", {}, self.initialize_timeout)
            except (ClassifierTimeoutError, WorkerError) as exc:
                raise InitializationError(f"Classifier initialization failed: {exc}") from exc
            result = InitializeResult.model_validate(payload)
            if not result.success:
                raise InitializationError(result.message)
        except Exception as exc:
            log.error("classifier_worker_start_failed", error=str(exc)[:300])
            if self._generation == generation:
                self._teardown()
            if isinstance(exc, DealHunterError):
                raise
            raise InitializationError(f"Could not start classifier worker: {exc}") from exc

        log.info("classifier_worker_initialized", message=result.message, pid=process.pid)

    def terminate(self) -> None:
        """Kill the host. In-flight requests are abandoned and will time out."""
        if self._process is None and self._start_task is None:
            return
        log.info("classifier_worker_terminating", pending=len(self._pending))
        self._teardown()

    def _teardown(self) -> None:
        # Messages from the old host carry a stale generation and are ignored
        self._generation += 1
        if self._stop_reader is not None:
            self._stop_reader.set()

        process = self._process
        if process is not None:
            if process.is_alive():
                process.terminate()
            process.join(timeout=_JOIN_TIMEOUT_SECONDS)

        for q in (self._requests, self._responses):
            if q is not None:
                q.close()
                q.cancel_join_thread()

        self._process = None
        self._requests = None
        self._responses = None
        self._reader = None
        self._stop_reader = None
        self._ready = None
        self._start_task = None
        self._pending.clear()

    # === Response handling ===

    def _start_reader(self, generation: int) -> None:
        stop = threading.Event()
        responses = self._responses
        process = self._process
        loop = self._loop
        assert loop is not None

        def _read() -> None:
            while not stop.is_set():
                try:
                    message = responses.get(timeout=_READER_POLL_SECONDS)
                except queue.Empty:
                    if not process.is_alive():
                        _post(self._on_host_exit, generation, process.exitcode)
                        return
                    continue
                except (EOFError, OSError, ValueError):
                    return
                if not _post(self._dispatch, generation, message):
                    return

        def _post(callback: Any, *args: Any) -> bool:
            try:
                loop.call_soon_threadsafe(callback, *args)
            except RuntimeError:
                # Event loop already closed
                return False
            return True

        self._stop_reader = stop
        self._reader = threading.Thread(
            target=_read, name="dealhunter-classifier-reader", daemon=True
        )
        self._reader.start()

    def _dispatch(self, generation: int, message: Any) -> None:
        if generation != self._generation:
            return
        try:
            response = WorkerResponse.model_validate(message)
        except ValidationError:
            log.warning("classifier_response_malformed", message=repr(message)[:200])
            return

        if response.type == "READY":
            if self._ready is not None and not self._ready.done():
                self._ready.set_result(None)
            log.debug("classifier_worker_ready_signal")
            return

        future = self._pending.pop(response.id, None) if response.id else None
        if future is None or future.done():
            log.debug("classifier_response_orphaned", request_id=response.id, type=response.type)
            return

        if response.type == "ERROR":
            detail = response.payload.get("message") if isinstance(response.payload, dict) else None
            future.set_exception(WorkerError(detail or "Worker error"))
        else:
            future.set_result(response.payload)

    def _on_host_exit(self, generation: int, exitcode: int | None) -> None:
        if generation != self._generation:
            return
        log.error("classifier_worker_exited", exitcode=exitcode, pending=len(self._pending))
        if self._ready is not None and not self._ready.done():
            self._ready.set_exception(
                InitializationError(f"Classifier worker exited with code {exitcode}")
            )
            # _start() owns teardown while start-up is still in progress
            return
        for future in list(self._pending.values()):
            if not future.done():
                future.set_exception(WorkerError(f"Classifier worker exited with code {exitcode}"))
        # Next call spawns a fresh host
        self._teardown()

    # === Requests ===

    async def _send(self, type_: RequestType, payload: dict[str, Any], timeout: float) -> Any:
        if self._requests is None or self._loop is None:
            raise InitializationError("Classifier worker is not running")

        request_id = f"msg_{next(self._ids)}"
        future: asyncio.Future[Any] = self._loop.create_future()
        self._pending[request_id] = future
        self._requests.put(WorkerRequest(id=request_id, type=type_, payload=payload).model_dump())
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError as exc:
            log.warning("classifier_request_timeout", request_id=request_id, type=type_)
            raise ClassifierTimeoutError(
                f"Classifier request {type_} timed out after {timeout}s"
            ) from exc
        finally:
            self._pending.pop(request_id, None)

    async def classify_item(self, text: str) -> ClassificationResult:
        await self.start()
        payload = await self._send("CLASSIFY", {"text": text}, self.classify_timeout)
        return ClassificationResult.model_validate(payload)

    async def classify_batch(self, items: list[str]) -> list[ClassificationResult]:
        if not items:
            return []
        await self.start()
        payload = await self._send("CLASSIFY_BATCH", {"items": items}, self.batch_timeout)
        results = [ClassificationResult.model_validate(p) for p in payload]
        if len(results) != len(items):
            raise WorkerError(f"Classifier returned {len(results)} results for {len(items)} items")
        return results
