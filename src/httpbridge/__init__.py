"""
httpbridge - record-driven HTTP request rendering and response normalization.

For each input record the bridge renders a request from URL, header and
body templates, executes it on a bounded worker pool and normalizes the
JSON, XML or delimited-text response into a document for the output sink.
"""

__version__ = "0.1.0"

from httpbridge.bridge import HttpBridge, RequestBuilder, RequestTemplate  # noqa: E402
from httpbridge.core.config import BridgeSettings, get_settings  # noqa: E402
from httpbridge.core.records import MappingRecord  # noqa: E402

__all__ = [
    "__version__",
    "HttpBridge",
    "RequestBuilder",
    "RequestTemplate",
    "BridgeSettings",
    "get_settings",
    "MappingRecord",
]
