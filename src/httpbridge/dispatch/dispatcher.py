"""Bounded worker pool that executes rendered requests and emits documents.

WHY
───
Rendering a request is cheap and happens on the caller's thread; the HTTP
exchange is not. The Dispatcher moves each exchange onto a fixed-size
thread pool so the producer of input records never waits on the network,
and no single slow endpoint can hold more than one worker per request.

ARCHITECTURE
────────────
::

    Dispatcher(transport, normalizer, sink)
      ├── .submit(request)     ─ FIFO admission, never blocks by default
      ├── ._run(request)       ─ worker thread: execute → normalize → sink
      ├── .wait_idle(timeout)  ─ block until nothing is queued or running
      └── .shutdown(timeout)   ─ stop admissions, drain, bounded wait

    Per request, on the worker:
      transport.create_*  →  add_header (rendered order)  →  execute
        non-200          → log request_failed, stop
        TransportError   → log transport_failed, stop
        NormalizationErr → log normalization_failed, drop record
        document         → sink(document)

Each input record gets at most one HTTP attempt. Any failure is contained
in the worker that hit it: it is logged with its error context and never
reaches sibling requests or the pool.

BACKPRESSURE
────────────
By default the backlog is unbounded: nothing is ever dropped because the
pool is saturated. Setting ``max_pending`` bounds queued + running work and
``overflow_policy`` decides what a full backlog does: ``block`` makes
``submit`` wait for a slot, ``reject`` logs and returns False.

Example::

    dispatcher = Dispatcher(HttpxTransport(), ResponseNormalizer("xml"), print)
    dispatcher.submit(RenderedRequest(HttpMethod.GET, "http://host/feed"))
    dispatcher.shutdown(timeout=30)
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from httpbridge.core.enums import HttpMethod, OverflowPolicy
from httpbridge.core.errors import (
    BacklogFullError,
    DispatchError,
    DispatcherClosedError,
    HttpStatusError,
    NormalizationError,
    TransportError,
)
from httpbridge.core.logging import get_logger
from httpbridge.dispatch.models import RenderedRequest, TransportResponse
from httpbridge.dispatch.transport import Transport
from httpbridge.normalize.normalizer import ResponseNormalizer

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 20

Sink = Callable[[Any], None]


@dataclass
class DispatcherStats:
    """Counters for one dispatcher. Updated under the dispatcher lock."""

    submitted: int = 0
    completed: int = 0
    failed: int = 0
    dropped: int = 0
    rejected: int = 0
    active: int = 0
    peak_active: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "submitted": self.submitted,
            "completed": self.completed,
            "failed": self.failed,
            "dropped": self.dropped,
            "rejected": self.rejected,
            "active": self.active,
            "peak_active": self.peak_active,
        }


class Dispatcher:
    """Fixed-size thread pool executing :class:`RenderedRequest` objects."""

    def __init__(
        self,
        transport: Transport,
        normalizer: ResponseNormalizer,
        sink: Sink,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        timeout: float | None = None,
        max_pending: int | None = None,
        overflow_policy: OverflowPolicy = OverflowPolicy.BLOCK,
        name: str = "httpbridge",
    ):
        """
        Args:
            transport: Creates and executes HTTP requests.
            normalizer: Converts successful response bodies to documents.
            sink: Receives one document per successfully normalized response.
            max_workers: Concurrent in-flight requests.
            timeout: Per-request timeout in seconds; ``None`` or 0 uses the
                transport default.
            max_pending: Bound on queued + running requests; ``None`` is unbounded.
            overflow_policy: Behaviour of ``submit`` when ``max_pending`` is reached.
            name: Thread name prefix.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self._transport = transport
        self._normalizer = normalizer
        self._sink = sink
        self._timeout = timeout or None
        self._max_workers = max_workers
        self._overflow_policy = overflow_policy
        self._slots = threading.BoundedSemaphore(max_pending) if max_pending else None

        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._cond = threading.Condition()
        self._pending = 0
        self._closed = False
        self._stats = DispatcherStats()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Requests admitted but not finished (queued + running)."""
        with self._cond:
            return self._pending

    def get_stats(self) -> DispatcherStats:
        """Snapshot of the counters."""
        with self._cond:
            return DispatcherStats(**self._stats.to_dict())

    # ------------------------------------------------------------------ #
    # Admission
    # ------------------------------------------------------------------ #

    def submit(self, request: RenderedRequest) -> bool:
        """Queue ``request`` for execution. Returns False if it was not admitted."""
        if self._closed:
            self._reject(request, DispatcherClosedError("Dispatcher is shut down"))
            return False

        if self._slots is not None:
            blocking = self._overflow_policy is OverflowPolicy.BLOCK
            if not self._slots.acquire(blocking=blocking):
                self._reject(request, BacklogFullError("Dispatch backlog is full"))
                return False

        with self._cond:
            if self._closed:
                if self._slots is not None:
                    self._slots.release()
                admitted = False
            else:
                self._pending += 1
                self._stats.submitted += 1
                self._pool.submit(self._run, request)
                admitted = True

        if not admitted:
            self._reject(request, DispatcherClosedError("Dispatcher is shut down"))
        return admitted

    def _reject(self, request: RenderedRequest, error: DispatchError) -> None:
        with self._cond:
            self._stats.rejected += 1
        logger.warning("dispatch.rejected", url=request.url, method=request.method.value, reason=error.message)

    # ------------------------------------------------------------------ #
    # Worker
    # ------------------------------------------------------------------ #

    def _run(self, request: RenderedRequest) -> None:
        with self._cond:
            self._stats.active += 1
            self._stats.peak_active = max(self._stats.peak_active, self._stats.active)
        outcome = "failed"
        try:
            outcome = self._process(request)
        except Exception:
            logger.exception("dispatch.unexpected_error", url=request.url, method=request.method.value)
        finally:
            if self._slots is not None:
                self._slots.release()
            with self._cond:
                self._stats.active -= 1
                setattr(self._stats, outcome, getattr(self._stats, outcome) + 1)
                self._pending -= 1
                self._cond.notify_all()

    def _process(self, request: RenderedRequest) -> str:
        """Execute one request end to end. Returns the stats counter to bump."""
        log = logger.bind(method=request.method.value, url=request.url)

        try:
            response = self._send(request)
        except TransportError as e:
            log.error("dispatch.transport_failed", **e.to_dict())
            return "failed"

        if not response.ok:
            error = HttpStatusError(request.url, response.status_code, response.reason)
            log.error("dispatch.request_failed", **error.to_dict())
            return "failed"

        if not response.body:
            log.debug("dispatch.empty_body", http_status=response.status_code)
            return "completed"

        try:
            document = self._normalizer.normalize(response.body)
        except NormalizationError as e:
            log.error("dispatch.normalization_failed", **e.to_dict())
            return "dropped"

        try:
            self._sink(document)
        except Exception as e:
            log.error("dispatch.sink_failed", error=str(e), error_type=type(e).__name__)
            return "failed"
        return "completed"

    def _send(self, request: RenderedRequest) -> TransportResponse:
        if request.method is HttpMethod.POST:
            http_request = self._transport.create_post_request(
                request.url, request.body or "", request.content_type
            )
        elif request.method is HttpMethod.PUT:
            http_request = self._transport.create_put_request(
                request.url, (request.body or "").encode("utf-8"), request.content_type
            )
        else:
            http_request = self._transport.create_get_request(request.url)

        for name, value in request.headers:
            self._transport.add_header(http_request, name, value)

        return self._transport.execute(http_request, self._timeout)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until nothing is queued or running. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._pending == 0, timeout)

    def shutdown(self, timeout: float | None = 30.0) -> bool:
        """
        Stop admissions and drain.

        Already queued requests still run. Blocks until the backlog is empty
        or ``timeout`` expires; returns whether it drained.
        """
        with self._cond:
            if not self._closed:
                self._closed = True
                self._pool.shutdown(wait=False, cancel_futures=False)
                logger.info("dispatch.shutting_down", pending=self._pending)
            drained = self._cond.wait_for(lambda: self._pending == 0, timeout)
            stats = self._stats.to_dict()

        if drained:
            logger.info("dispatch.stopped", **stats)
        else:
            logger.warning("dispatch.drain_timeout", timeout=timeout, **stats)
        return drained

    def __enter__(self) -> Dispatcher:
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()
