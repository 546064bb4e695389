"""Request and response value objects exchanged with the transport."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from httpbridge.core.enums import HttpMethod

HTTP_OK = 200


@dataclass(frozen=True)
class RenderedRequest:
    """
    A fully rendered outbound request.

    Immutable once built; the dispatcher task that executes it is its only
    reader.
    """

    method: HttpMethod
    url: str
    headers: tuple[tuple[str, str], ...] = ()
    body: str | None = None
    content_type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and CLI output."""
        result: dict[str, Any] = {
            "method": self.method.value,
            "url": self.url,
            "headers": [f"{name}:{value}" for name, value in self.headers],
        }
        if self.body is not None:
            result["body"] = self.body
            result["content_type"] = self.content_type
        return result


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    reason: str = ""
    body: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code == HTTP_OK
