"""Tests for httpbridge.dispatch.dispatcher.

Covers:
- Bounded concurrency and exactly-once execution
- Failure containment: non-200, transport errors, normalization errors, sink errors
- Request construction (method, body, header order, timeout)
- Shutdown drain, bounded shutdown wait, submission after shutdown
- Bounded backlog policies (block / reject)
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass, field

import pytest

from httpbridge.core.enums import HttpMethod, OverflowPolicy
from httpbridge.core.errors import NetworkError
from httpbridge.dispatch.dispatcher import Dispatcher
from httpbridge.dispatch.models import RenderedRequest, TransportResponse
from httpbridge.normalize.normalizer import ResponseNormalizer


# ── Helpers ──────────────────────────────────────────────────────────────


@dataclass
class FakeRequest:
    method: str
    url: str
    body: str | bytes | None = None
    content_type: str | None = None
    headers: list[tuple[str, str]] = field(default_factory=list)
    timeout: float | None = None


def _ok(request: FakeRequest) -> TransportResponse:
    return TransportResponse(200, "OK", '{"url": "%s"}' % request.url)


class FakeTransport:
    """In-process transport that records every executed request and peak concurrency."""

    def __init__(self, responder=_ok, delay: float = 0.0):
        self.responder = responder
        self.delay = delay
        self.executed: list[FakeRequest] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def create_get_request(self, url):
        return FakeRequest("GET", url)

    def create_post_request(self, url, body, content_type):
        return FakeRequest("POST", url, body, content_type)

    def create_put_request(self, url, data, content_type):
        return FakeRequest("PUT", url, data, content_type)

    def add_header(self, request, name, value):
        request.headers.append((name, value))

    def execute(self, request, timeout):
        request.timeout = timeout
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                time.sleep(self.delay)
            return self.responder(request)
        finally:
            with self._lock:
                self.active -= 1
                self.executed.append(request)

    def close(self):
        pass


class CollectingSink:
    def __init__(self):
        self.documents = []
        self._lock = threading.Lock()

    def __call__(self, document):
        with self._lock:
            self.documents.append(document)


def _get(url: str) -> RenderedRequest:
    return RenderedRequest(HttpMethod.GET, url)


def _dispatcher(transport, sink, **kwargs) -> Dispatcher:
    return Dispatcher(transport, ResponseNormalizer("json"), sink, **kwargs)


# ── Concurrency ──────────────────────────────────────────────────────────


class TestBoundedConcurrency:
    def test_fifty_requests_twenty_workers(self):
        transport = FakeTransport(delay=0.02)
        sink = CollectingSink()
        dispatcher = _dispatcher(transport, sink, max_workers=20)

        urls = [f"http://host/{i}" for i in range(50)]
        for url in urls:
            assert dispatcher.submit(_get(url)) is True
        assert dispatcher.shutdown(timeout=10) is True

        counts = Counter(r.url for r in transport.executed)
        assert set(counts) == set(urls)
        assert all(n == 1 for n in counts.values())
        assert 1 < transport.max_active <= 20
        assert len(sink.documents) == 50

        stats = dispatcher.get_stats()
        assert stats.submitted == 50
        assert stats.completed == 50
        assert stats.peak_active <= 20

    def test_zero_workers_rejected(self):
        with pytest.raises(ValueError):
            _dispatcher(FakeTransport(), CollectingSink(), max_workers=0)


# ── Failure containment ──────────────────────────────────────────────────


class TestFailureContainment:
    def test_non_200_not_normalized(self):
        transport = FakeTransport(lambda r: TransportResponse(503, "Service Unavailable", '{"x": 1}'))
        sink = CollectingSink()
        with _dispatcher(transport, sink) as dispatcher:
            dispatcher.submit(_get("http://host/a"))
        assert sink.documents == []
        assert dispatcher.get_stats().failed == 1

    def test_transport_error_does_not_affect_siblings(self):
        def responder(request):
            if "bad" in request.url:
                raise NetworkError("refused")
            return _ok(request)

        sink = CollectingSink()
        with _dispatcher(FakeTransport(responder), sink, max_workers=4) as dispatcher:
            for url in ["http://host/1", "http://bad/2", "http://host/3"]:
                dispatcher.submit(_get(url))
        assert sorted(d["url"] for d in sink.documents) == ["http://host/1", "http://host/3"]
        stats = dispatcher.get_stats()
        assert (stats.completed, stats.failed) == (2, 1)

    def test_normalization_error_drops_record(self):
        transport = FakeTransport(lambda r: TransportResponse(200, "OK", "{not json"))
        sink = CollectingSink()
        with _dispatcher(transport, sink) as dispatcher:
            dispatcher.submit(_get("http://host/a"))
        assert sink.documents == []
        assert dispatcher.get_stats().dropped == 1

    def test_empty_body_emits_nothing(self):
        transport = FakeTransport(lambda r: TransportResponse(200, "OK", ""))
        sink = CollectingSink()
        with _dispatcher(transport, sink) as dispatcher:
            dispatcher.submit(_get("http://host/a"))
        assert sink.documents == []
        assert dispatcher.get_stats().completed == 1

    def test_sink_error_contained(self):
        calls = []

        def sink(document):
            calls.append(document)
            if len(calls) == 1:
                raise RuntimeError("downstream unavailable")

        with _dispatcher(FakeTransport(), sink, max_workers=1) as dispatcher:
            dispatcher.submit(_get("http://host/1"))
            dispatcher.submit(_get("http://host/2"))
        assert len(calls) == 2
        stats = dispatcher.get_stats()
        assert (stats.completed, stats.failed) == (1, 1)


# ── Request construction ─────────────────────────────────────────────────


class TestRequestConstruction:
    def test_post_body_and_header_order(self):
        transport = FakeTransport()
        request = RenderedRequest(
            HttpMethod.POST,
            "http://host/items",
            headers=(("X-B", "2"), ("X-A", "1"), ("X-B", "3")),
            body='{"id": 42}',
            content_type="application/json",
        )
        with _dispatcher(transport, CollectingSink()) as dispatcher:
            dispatcher.submit(request)
        sent = transport.executed[0]
        assert sent.method == "POST"
        assert sent.body == '{"id": 42}'
        assert sent.content_type == "application/json"
        assert sent.headers == [("X-B", "2"), ("X-A", "1"), ("X-B", "3")]

    def test_put_sends_bytes(self):
        transport = FakeTransport()
        request = RenderedRequest(HttpMethod.PUT, "http://host/items/1", body="é", content_type="text/plain")
        with _dispatcher(transport, CollectingSink()) as dispatcher:
            dispatcher.submit(request)
        sent = transport.executed[0]
        assert sent.method == "PUT"
        assert sent.body == "é".encode("utf-8")

    def test_get_has_no_body(self):
        transport = FakeTransport()
        with _dispatcher(transport, CollectingSink()) as dispatcher:
            dispatcher.submit(_get("http://host/a"))
        assert transport.executed[0].body is None

    @pytest.mark.parametrize("configured,expected", [(5.0, 5.0), (None, None), (0, None)])
    def test_timeout_forwarded(self, configured, expected):
        transport = FakeTransport()
        with _dispatcher(transport, CollectingSink(), timeout=configured) as dispatcher:
            dispatcher.submit(_get("http://host/a"))
        assert transport.executed[0].timeout == expected


# ── Lifecycle ────────────────────────────────────────────────────────────


class TestShutdown:
    def test_drains_queued_work(self):
        transport = FakeTransport(delay=0.02)
        dispatcher = _dispatcher(transport, CollectingSink(), max_workers=1)
        for i in range(5):
            dispatcher.submit(_get(f"http://host/{i}"))
        assert dispatcher.shutdown(timeout=5) is True
        assert len(transport.executed) == 5
        assert dispatcher.pending == 0

    def test_submit_after_shutdown(self):
        dispatcher = _dispatcher(FakeTransport(), CollectingSink())
        dispatcher.shutdown()
        assert dispatcher.closed
        assert dispatcher.submit(_get("http://host/late")) is False
        assert dispatcher.get_stats().rejected == 1

    def test_bounded_wait(self):
        gate = threading.Event()

        def responder(request):
            gate.wait(5)
            return _ok(request)

        dispatcher = _dispatcher(FakeTransport(responder), CollectingSink())
        dispatcher.submit(_get("http://host/slow"))
        started = time.monotonic()
        assert dispatcher.shutdown(timeout=0.1) is False
        assert time.monotonic() - started < 2
        gate.set()
        assert dispatcher.wait_idle(timeout=5) is True

    def test_shutdown_twice(self):
        dispatcher = _dispatcher(FakeTransport(), CollectingSink())
        assert dispatcher.shutdown() is True
        assert dispatcher.shutdown() is True


class TestBacklog:
    def test_reject_policy(self):
        gate = threading.Event()

        def responder(request):
            gate.wait(5)
            return _ok(request)

        dispatcher = _dispatcher(
            FakeTransport(responder),
            CollectingSink(),
            max_workers=1,
            max_pending=1,
            overflow_policy=OverflowPolicy.REJECT,
        )
        assert dispatcher.submit(_get("http://host/1")) is True
        assert dispatcher.submit(_get("http://host/2")) is False
        gate.set()
        assert dispatcher.shutdown(timeout=5) is True
        stats = dispatcher.get_stats()
        assert (stats.completed, stats.rejected) == (1, 1)

    def test_block_policy_waits_for_slot(self):
        gate = threading.Event()

        def responder(request):
            gate.wait(5)
            return _ok(request)

        transport = FakeTransport(responder)
        dispatcher = _dispatcher(
            transport,
            CollectingSink(),
            max_workers=1,
            max_pending=1,
            overflow_policy=OverflowPolicy.BLOCK,
        )
        dispatcher.submit(_get("http://host/1"))

        results = []
        blocked = threading.Thread(target=lambda: results.append(dispatcher.submit(_get("http://host/2"))))
        blocked.start()
        time.sleep(0.1)
        assert blocked.is_alive()

        gate.set()
        blocked.join(timeout=5)
        assert results == [True]
        assert dispatcher.shutdown(timeout=5) is True
        assert len(transport.executed) == 2

    def test_unbounded_by_default(self):
        gate = threading.Event()

        def responder(request):
            gate.wait(5)
            return _ok(request)

        dispatcher = _dispatcher(FakeTransport(responder), CollectingSink(), max_workers=1)
        assert all(dispatcher.submit(_get(f"http://host/{i}")) for i in range(100))
        assert dispatcher.pending == 100
        gate.set()
        assert dispatcher.shutdown(timeout=10) is True
