"""
Template substitution for outbound requests.

A template is literal text with ``{name}`` placeholders::

    "http://host/{id}?since={$lastPollingDateTime}"

Each placeholder resolves, in order:

1. to the value of a field in the triggering record's schema (an absent
   value renders as the empty string);
2. to a special time token (see :mod:`httpbridge.templating.clock`);
3. to itself, braces included. Unknown names are passed through so literal
   braces in real URLs and bodies survive; a misspelled field name shows up
   as a failed request downstream rather than an error here.

``{}`` renders as the empty string without any lookup, and braces that do
not form a pair are literal text.

Everything here is a pure function of its inputs. The URL, body and every
header are rendered against one :class:`RenderContext` built per record, so
concurrent records never share mutable state.

Example::

    record = MappingRecord.from_dict({"id": "42"})
    tokens = TimeTokenResolver(PollingClock.from_epoch(1000))
    render("http://host/{id}?since={$lastPollingDateTime}", record, tokens)
    # 'http://host/42?since=1000'
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from httpbridge.core.errors import InvalidHeaderError
from httpbridge.core.logging import get_logger
from httpbridge.core.records import FieldLookup
from httpbridge.templating.clock import TimeTokenResolver

logger = get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")

HEADER_SEPARATOR = "|"


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Placeholder:
    name: str

    @property
    def raw(self) -> str:
        return "{" + self.name + "}"


Segment = Literal | Placeholder


@dataclass(frozen=True)
class Template:
    """Ordered literal and placeholder segments of one raw template string."""

    source: str
    segments: tuple[Segment, ...]

    @classmethod
    def parse(cls, source: str) -> Template:
        segments: list[Segment] = []
        position = 0
        for match in _PLACEHOLDER.finditer(source):
            if match.start() > position:
                segments.append(Literal(source[position:match.start()]))
            segments.append(Placeholder(match.group(1)))
            position = match.end()
        if position < len(source):
            segments.append(Literal(source[position:]))
        return cls(source=source, segments=tuple(segments))

    @property
    def placeholders(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.segments if isinstance(s, Placeholder))


def stringify(value: Any) -> str:
    """String form of a field value as it appears in a rendered request."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class RenderContext:
    """Request-scoped inputs: the triggering record and the time-token resolver."""

    record: FieldLookup
    tokens: TimeTokenResolver

    def resolve(self, placeholder: Placeholder) -> str:
        name = placeholder.name
        if not name:
            return ""
        if self.record.index_of(name) >= 0:
            return stringify(self.record.get_value(name))
        resolved = self.tokens.resolve(name)
        if resolved is not None:
            return resolved
        return placeholder.raw


def render(
    template: str | Template,
    field_lookup: FieldLookup,
    token_resolver: TimeTokenResolver,
) -> str:
    """Substitute every placeholder of ``template``."""
    return render_with(template, RenderContext(field_lookup, token_resolver))


def render_with(template: str | Template, context: RenderContext) -> str:
    if isinstance(template, str):
        template = Template.parse(template)
    parts = []
    for segment in template.segments:
        if isinstance(segment, Literal):
            parts.append(segment.text)
        else:
            parts.append(context.resolve(segment))
    return "".join(parts)


# =============================================================================
# HEADERS
# =============================================================================


def parse_header_specs(raw: str) -> list[str]:
    """Split the pipe-separated header configuration, skipping empty entries."""
    if not raw:
        return []
    return [spec for spec in raw.split(HEADER_SEPARATOR) if spec.strip()]


@dataclass(frozen=True)
class HeaderTemplate:
    """A ``name:value`` header spec split on the first ``:``, both halves parsed."""

    spec: str
    name: Template
    value: Template

    @classmethod
    def parse(cls, spec: str) -> HeaderTemplate:
        """
        Raises:
            InvalidHeaderError: no ``:`` in the spec
        """
        if ":" not in spec:
            raise InvalidHeaderError(spec)
        raw_name, raw_value = spec.split(":", 1)
        return cls(spec=spec, name=Template.parse(raw_name), value=Template.parse(raw_value))


def parse_header_templates(specs: Iterable[str]) -> tuple[HeaderTemplate, ...]:
    """Parse header specs once at setup; specs without ``:`` are logged and left out."""
    headers: list[HeaderTemplate] = []
    for spec in specs:
        try:
            headers.append(HeaderTemplate.parse(spec))
        except InvalidHeaderError as e:
            logger.error("template.invalid_header", **e.to_dict())
    return tuple(headers)


def render_header(header: str | HeaderTemplate, context: RenderContext) -> tuple[str, str]:
    """
    Render one header.

    The header is split on the first ``:`` so values may contain colons
    (``Authorization:Basic a:b``). Name and value are rendered independently.

    Raises:
        InvalidHeaderError: no ``:`` in a raw spec, or the name renders empty
    """
    if isinstance(header, str):
        header = HeaderTemplate.parse(header)
    name = render_with(header.name, context).strip()
    if not name:
        raise InvalidHeaderError(header.spec)
    value = render_with(header.value, context).lstrip()
    return name, value


@dataclass(frozen=True)
class RenderedHeaders:
    headers: tuple[tuple[str, str], ...]
    rejected: tuple[str, ...] = ()


def render_headers(headers: Iterable[str | HeaderTemplate], context: RenderContext) -> RenderedHeaders:
    """Render every header; invalid ones are logged and left out."""
    rendered: list[tuple[str, str]] = []
    rejected: list[str] = []
    for header in headers:
        try:
            rendered.append(render_header(header, context))
        except InvalidHeaderError as e:
            logger.error("template.invalid_header", **e.to_dict())
            rejected.append(e.spec)
    return RenderedHeaders(headers=tuple(rendered), rejected=tuple(rejected))
