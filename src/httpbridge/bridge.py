"""
Request building and bridge wiring.

:class:`RequestBuilder` turns one input record into a
:class:`~httpbridge.dispatch.models.RenderedRequest` (URL, headers and body
rendered against that record) and hands it to the dispatcher.
:class:`HttpBridge` assembles builder, dispatcher, normalizer, schema
resolver and transport from :class:`~httpbridge.core.config.BridgeSettings`
and owns their shutdown.

Usage:
    from httpbridge.bridge import HttpBridge
    from httpbridge.core.config import get_settings
    from httpbridge.core.records import MappingRecord

    with HttpBridge.from_settings(get_settings(), sink=print) as bridge:
        bridge.process(MappingRecord.from_dict({"id": "42"}))
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from httpbridge.core.config import BridgeSettings
from httpbridge.core.enums import HttpMethod, ResponseFormat
from httpbridge.core.logging import get_logger
from httpbridge.core.records import FieldLookup
from httpbridge.dispatch.dispatcher import Dispatcher, Sink
from httpbridge.dispatch.models import RenderedRequest
from httpbridge.dispatch.transport import HttpxTransport, Transport
from httpbridge.normalize.normalizer import ResponseNormalizer
from httpbridge.normalize.schema import SchemaRegistry, SchemaResolver
from httpbridge.templating.clock import PollingClock, TimeTokenResolver, utcnow
from httpbridge.templating.engine import (
    RenderContext,
    Template,
    parse_header_specs,
    parse_header_templates,
    render_headers,
    render_with,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestTemplate:
    """The raw outbound templates of one bridge configuration."""

    url: str
    method: HttpMethod = HttpMethod.GET
    header_specs: tuple[str, ...] = ()
    body: str = ""
    content_type: str | None = "application/json"

    @classmethod
    def from_settings(cls, settings: BridgeSettings) -> RequestTemplate:
        return cls(
            url=settings.client_url,
            method=settings.http_method,
            header_specs=tuple(parse_header_specs(settings.headers)),
            body=settings.post_body,
            content_type=settings.post_content_type or None,
        )


class RequestBuilder:
    """Renders records into requests and submits them."""

    def __init__(
        self,
        template: RequestTemplate,
        clock: PollingClock,
        dispatcher: Dispatcher | None = None,
        *,
        now: Callable[[], datetime] = utcnow,
    ):
        self.template = template
        self._url = Template.parse(template.url)
        self._body = Template.parse(template.body)
        self._headers = parse_header_templates(template.header_specs)
        self._clock = clock
        self._dispatcher = dispatcher
        self._now = now

    @property
    def clock(self) -> PollingClock:
        return self._clock

    def set_clock(self, clock: PollingClock) -> None:
        """Swap in the clock for the next polling window."""
        self._clock = clock

    def build(self, record: FieldLookup) -> RenderedRequest:
        """Render URL, headers and (for POST/PUT) body against ``record``."""
        context = RenderContext(record, TimeTokenResolver(self._clock, now=self._now))
        method = self.template.method

        url = render_with(self._url, context)
        headers = render_headers(self._headers, context)
        body = render_with(self._body, context) if method.has_body else None

        logger.debug("request.rendered", method=method.value, url=url, headers=len(headers.headers))
        return RenderedRequest(
            method=method,
            url=url,
            headers=headers.headers,
            body=body,
            content_type=self.template.content_type if method.has_body else None,
        )

    def process(self, record: FieldLookup) -> RenderedRequest:
        """Build the request for ``record`` and submit it. Returns what was built."""
        if self._dispatcher is None:
            raise RuntimeError("RequestBuilder has no dispatcher")
        request = self.build(record)
        self._dispatcher.submit(request)
        return request


class HttpBridge:
    """Builder, dispatcher and resolver for one outbound configuration."""

    def __init__(
        self,
        builder: RequestBuilder,
        dispatcher: Dispatcher,
        *,
        transport: Transport | None = None,
        resolver: SchemaResolver | None = None,
        shutdown_timeout: float = 30.0,
    ):
        self.builder = builder
        self.dispatcher = dispatcher
        self.resolver = resolver
        self._transport = transport
        self._shutdown_timeout = shutdown_timeout

    @classmethod
    def from_settings(
        cls,
        settings: BridgeSettings,
        sink: Sink,
        *,
        registry: SchemaRegistry | None = None,
        transport: Transport | None = None,
        now: Callable[[], datetime] = utcnow,
    ) -> HttpBridge:
        """
        Wire a bridge from settings.

        Without a ``transport`` an :class:`HttpxTransport` is created and
        closed on shutdown. ``registry`` is required for delimited text in
        schema-reuse mode; in schema-creation mode it is optional and, when
        given, receives the synthesized ``field0..`` schemas.
        """
        resolver = SchemaResolver(registry) if registry is not None else None
        normalizer = ResponseNormalizer(
            settings.response_format,
            field_separator=settings.field_separator,
            create_schema=settings.create_schema,
            schema_name=settings.schema_name,
            resolver=resolver,
            build_geometry_from_fields=settings.build_geometry_from_fields,
        )

        if (
            resolver is not None
            and settings.create_schema
            and settings.response_format is ResponseFormat.CSV
        ):
            sink = _publishing_sink(sink, resolver, settings.schema_name)

        transport = transport or HttpxTransport()
        dispatcher = Dispatcher(
            transport,
            normalizer,
            sink,
            max_workers=settings.max_workers,
            timeout=settings.timeout,
            max_pending=settings.max_pending,
            overflow_policy=settings.overflow_policy,
        )
        clock = PollingClock(
            last_polling=settings.initial_polling_time(now()),
            use_epoch_milliseconds=settings.use_epoch_milliseconds,
        )
        builder = RequestBuilder(RequestTemplate.from_settings(settings), clock, dispatcher, now=now)
        return cls(
            builder,
            dispatcher,
            transport=transport,
            resolver=resolver,
            shutdown_timeout=settings.shutdown_timeout_seconds,
        )

    def process(self, record: FieldLookup) -> RenderedRequest:
        return self.builder.process(record)

    def advance_clock(self, to: datetime) -> PollingClock:
        """Move the polling window start forward to ``to``."""
        clock = self.builder.clock.advance(to)
        self.builder.set_clock(clock)
        return clock

    def shutdown(self) -> bool:
        """Drain in-flight work, release published schemas, close the transport."""
        drained = self.dispatcher.shutdown(timeout=self._shutdown_timeout)
        if self.resolver is not None:
            released = self.resolver.release_published()
            if released:
                logger.info("bridge.schemas_released", count=released)
        if self._transport is not None:
            self._transport.close()
        return drained

    def __enter__(self) -> HttpBridge:
        return self

    def __exit__(self, *args) -> None:
        self.shutdown()


def _publishing_sink(sink: Sink, resolver: SchemaResolver, schema_name: str) -> Sink:
    def publish_then_send(document: Any) -> None:
        if isinstance(document, dict):
            resolver.publish(schema_name, list(document.keys()))
        sink(document)

    return publish_then_send


__all__ = [
    "RequestTemplate",
    "RequestBuilder",
    "HttpBridge",
]

