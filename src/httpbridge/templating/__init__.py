"""Request templating: placeholder parsing, field and time-token substitution."""

from httpbridge.templating.clock import (
    CURRENT_DATETIME,
    LAST_POLLING_DATETIME,
    PollingClock,
    TimeTokenResolver,
)
from httpbridge.templating.engine import (
    RenderContext,
    HeaderTemplate,
    RenderedHeaders,
    Template,
    parse_header_specs,
    parse_header_templates,
    render,
    render_header,
    render_headers,
    render_with,
)

__all__ = [
    "CURRENT_DATETIME",
    "LAST_POLLING_DATETIME",
    "PollingClock",
    "TimeTokenResolver",
    "RenderContext",
    "HeaderTemplate",
    "RenderedHeaders",
    "Template",
    "parse_header_specs",
    "parse_header_templates",
    "render",
    "render_header",
    "render_headers",
    "render_with",
]
