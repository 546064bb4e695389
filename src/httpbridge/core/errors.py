"""
Structured error types for httpbridge.

Every failure inside the bridge is raised as a :class:`BridgeError` subclass
carrying a category, a retry flag and an :class:`ErrorContext` (URL, HTTP
status, schema name, ...). The dispatcher logs ``error.to_dict()`` for each
contained failure, so a log line always has enough context to diagnose the
request that produced it.

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       BridgeError                                │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ConfigError         TemplateError        TransportError         │
        │  (CONFIG)            (TEMPLATE)           (NETWORK)              │
        │       │                   │                    │                 │
        │  InvalidConfigError  InvalidHeaderError   NetworkError           │
        │                                           TimeoutError           │
        │                                           InvalidUrlError        │
        │                                           HttpStatusError        │
        │                                                                  │
        │  NormalizationError                   DispatchError              │
        │  (PARSE)                              (DISPATCH)                 │
        │       │                                    │                     │
        │  ParseError   SchemaNotFoundError     DispatcherClosedError      │
        │                                       BacklogFullError           │
        └─────────────────────────────────────────────────────────────────┘

Each input record produces at most one HTTP attempt, so nothing here is
retryable by default. The flag is kept so callers that wrap the bridge in
their own retry loop can still classify failures.

Usage:
    from httpbridge.core.errors import SchemaNotFoundError

    raise SchemaNotFoundError("No schema named 'feed'").with_context(
        schema_name="feed", field_count=3,
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories for classification and log routing."""

    NETWORK = "NETWORK"           # Connection, timeout, DNS, bad status
    PARSE = "PARSE"               # Malformed payloads, schema mismatches
    TEMPLATE = "TEMPLATE"         # Header/URL template problems
    CONFIG = "CONFIG"             # Missing or invalid settings
    DISPATCH = "DISPATCH"         # Worker pool admission
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only the fields that are set end up in :meth:`to_dict`; anything that
    has no dedicated attribute goes into ``metadata``.
    """

    # Request context
    url: str | None = None
    method: str | None = None
    http_status: int | None = None

    # Normalization context
    response_format: str | None = None
    schema_name: str | None = None

    # Additional metadata
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["url", "method", "http_status", "response_format", "schema_name"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BridgeError(Exception):
    """
    Base exception for all httpbridge errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance. ``cause`` is chained as ``__cause__`` so the
    original exception survives in tracebacks.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BridgeError:
        """
        Add context to this error (fluent API).

        Usage:
            raise TransportError("Failed").with_context(url="http://host/x")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(BridgeError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


class InvalidConfigError(ConfigError):
    """A configuration value could not be used."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        msg = message or f"Invalid value for {key}: {value!r}"
        super().__init__(msg)
        self.key = key
        self.value = value
        self.context.metadata["config_key"] = key


# =============================================================================
# TEMPLATE ERRORS
# =============================================================================


class TemplateError(BridgeError):
    """A template could not be rendered."""

    default_category = ErrorCategory.TEMPLATE


class InvalidHeaderError(TemplateError):
    """Header spec without a ``name:value`` separator."""

    def __init__(self, spec: str):
        super().__init__(f"Invalid header format for: {spec}")
        self.spec = spec
        self.context.metadata["header_spec"] = spec


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================


class TransportError(BridgeError):
    """The HTTP exchange for one request failed."""

    default_category = ErrorCategory.NETWORK


class NetworkError(TransportError):
    """Connection-level failure (DNS, refused, reset)."""


class TimeoutError(TransportError):
    """The request exceeded its per-request timeout."""


class InvalidUrlError(TransportError):
    """The rendered URL is not a usable absolute HTTP URL."""


class HttpStatusError(TransportError):
    """The server answered with a non-OK status."""

    def __init__(self, url: str, status_code: int, reason: str = ""):
        super().__init__(f"{url} :  Request failed({status_code} {reason})".rstrip())
        self.status_code = status_code
        self.reason = reason
        self.context.url = url
        self.context.http_status = status_code


# =============================================================================
# NORMALIZATION ERRORS
# =============================================================================


class NormalizationError(BridgeError):
    """The response body could not be turned into a canonical document."""

    default_category = ErrorCategory.PARSE


class ParseError(NormalizationError):
    """Payload is malformed for its declared format."""


class SchemaNotFoundError(NormalizationError):
    """No registered schema can describe a delimited-text payload."""


# =============================================================================
# DISPATCH ERRORS
# =============================================================================


class DispatchError(BridgeError):
    """A request was not admitted to the worker pool."""

    default_category = ErrorCategory.DISPATCH


class DispatcherClosedError(DispatchError):
    """Submission attempted after shutdown started."""


class BacklogFullError(DispatchError):
    """Bounded backlog is full and the overflow policy is ``reject``."""


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, BridgeError):
        return error.retryable
    return isinstance(error, (ConnectionError, BrokenPipeError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, BridgeError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.PARSE
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "BridgeError",
    "ConfigError",
    "InvalidConfigError",
    "TemplateError",
    "InvalidHeaderError",
    "TransportError",
    "NetworkError",
    "TimeoutError",
    "InvalidUrlError",
    "HttpStatusError",
    "NormalizationError",
    "ParseError",
    "SchemaNotFoundError",
    "DispatchError",
    "DispatcherClosedError",
    "BacklogFullError",
    "is_retryable",
    "categorize_error",
]
