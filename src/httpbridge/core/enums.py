"""
Shared enums for httpbridge.

Used by settings, the templating layer, the dispatcher and the normalizer.
Kept here so configuration can reference them without importing the
components themselves.

STDLIB ONLY - NO PYDANTIC.
"""

from enum import Enum


class HttpMethod(str, Enum):
    """Outbound HTTP methods the bridge can send."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"

    @property
    def has_body(self) -> bool:
        """POST and PUT carry a rendered body, GET never does."""
        return self is not HttpMethod.GET


class ResponseFormat(str, Enum):
    """Declared format of inbound response bodies."""

    JSON = "json"
    XML = "xml"
    CSV = "csv"

    @classmethod
    def parse(cls, value: "str | ResponseFormat") -> "ResponseFormat":
        """Case-insensitive lookup (``"CSV"`` and ``"csv"`` are the same format)."""
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class OverflowPolicy(str, Enum):
    """
    What the dispatcher does when a bounded backlog is full.

    Only consulted when ``max_pending`` is set; the default backlog is
    unbounded and never overflows.
    """

    BLOCK = "block"      # submit() waits for a free slot
    REJECT = "reject"    # submit() logs and returns False
