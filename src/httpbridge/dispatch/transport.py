"""
HTTP transport capability.

The dispatcher never talks to an HTTP library directly. It asks a
:class:`Transport` to create a GET/POST/PUT request, adds the rendered
headers, and executes it with a timeout. :class:`HttpxTransport` is the
production implementation; tests plug in ``httpx.MockTransport`` or a fake
that implements the same protocol.

Every failure of the exchange surfaces as a
:class:`~httpbridge.core.errors.TransportError` subclass.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from httpbridge.core.errors import (
    InvalidUrlError,
    NetworkError,
    TimeoutError,
    TransportError,
)
from httpbridge.dispatch.models import TransportResponse

# Request extension holding the lower-cased names already set by add_header.
_ADDED_HEADERS = "httpbridge.added_headers"


@runtime_checkable
class Transport(Protocol):
    def create_get_request(self, url: str) -> Any: ...

    def create_post_request(self, url: str, body: str, content_type: str | None) -> Any: ...

    def create_put_request(self, url: str, data: bytes, content_type: str | None) -> Any: ...

    def add_header(self, request: Any, name: str, value: str) -> None: ...

    def execute(self, request: Any, timeout: float | None) -> TransportResponse:
        """Send ``request``; ``timeout`` of ``None`` means the transport default."""
        ...

    def close(self) -> None: ...


class HttpxTransport:
    """Transport backed by a shared, thread-safe :class:`httpx.Client`."""

    DEFAULT_TIMEOUT = 30.0

    def __init__(self, client: httpx.Client | None = None, *, default_timeout: float = DEFAULT_TIMEOUT):
        self._client = client or httpx.Client(timeout=default_timeout)
        self._owns_client = client is None

    def _build(self, method: str, url: str, content: bytes | None, content_type: str | None) -> httpx.Request:
        headers = {"Content-Type": content_type} if content is not None and content_type else None
        try:
            request = self._client.build_request(method, url, content=content, headers=headers)
        except (httpx.InvalidURL, httpx.UnsupportedProtocol) as e:
            raise InvalidUrlError(f"Malformed URL: {e}", cause=e).with_context(url=url, method=method)
        if request.url.scheme not in ("http", "https") or not request.url.host:
            raise InvalidUrlError(f"Malformed URL: {url}").with_context(url=url, method=method)
        return request

    def create_get_request(self, url: str) -> httpx.Request:
        return self._build("GET", url, None, None)

    def create_post_request(self, url: str, body: str, content_type: str | None) -> httpx.Request:
        return self._build("POST", url, body.encode("utf-8"), content_type)

    def create_put_request(self, url: str, data: bytes, content_type: str | None) -> httpx.Request:
        return self._build("PUT", url, data, content_type)

    def add_header(self, request: httpx.Request, name: str, value: str) -> None:
        """
        Append a rendered header.

        The first rendered value for a name replaces the client defaults and
        the build-time ``Content-Type``; later values for the same name are
        appended in order.
        """
        key = name.lower()
        added = request.extensions.get(_ADDED_HEADERS, frozenset())
        items = request.headers.multi_items()
        if key not in added:
            items = [(k, v) for k, v in items if k != key]
        # Headers.__setitem__ would collapse repeated names.
        request.headers = httpx.Headers([*items, (name, value)])
        request.extensions = {**request.extensions, _ADDED_HEADERS: added | {key}}

    def execute(self, request: httpx.Request, timeout: float | None) -> TransportResponse:
        url = str(request.url)
        if timeout:
            request.extensions = {**request.extensions, "timeout": httpx.Timeout(timeout).as_dict()}
        try:
            response = self._client.send(request)
        except httpx.TimeoutException as e:
            raise TimeoutError(f"Request timeout: {e}", cause=e).with_context(url=url, method=request.method)
        except httpx.ConnectError as e:
            raise NetworkError(f"Connection error: {e}", cause=e).with_context(url=url, method=request.method)
        except httpx.UnsupportedProtocol as e:
            raise InvalidUrlError(f"Malformed URL: {e}", cause=e).with_context(url=url, method=request.method)
        except httpx.HTTPError as e:
            raise TransportError(f"Request error: {e}", cause=e).with_context(url=url, method=request.method)

        try:
            body = response.text
        except (UnicodeDecodeError, LookupError) as e:
            raise TransportError(f"Unreadable response body: {e}", cause=e).with_context(
                url=url, http_status=response.status_code
            )
        return TransportResponse(
            status_code=response.status_code,
            reason=response.reason_phrase,
            body=body,
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpxTransport:
        return self

    def __exit__(self, *args) -> None:
        self.close()
