"""Request dispatch: transport capability and the bounded worker pool."""

from httpbridge.dispatch.dispatcher import Dispatcher, DispatcherStats
from httpbridge.dispatch.models import RenderedRequest, TransportResponse
from httpbridge.dispatch.transport import HttpxTransport, Transport

__all__ = [
    "Dispatcher",
    "DispatcherStats",
    "RenderedRequest",
    "TransportResponse",
    "HttpxTransport",
    "Transport",
]
