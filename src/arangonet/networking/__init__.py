"""HTTP connection layer: options, transport, tracing, and errors."""

from .client import Connection
from .config import ConnectionMode, ConnectionOptions, Endpoint
from .errors import (
    ArangoNetError,
    ClientException,
    ConfigurationError,
    ConnectFailedError,
    MalformedResponseError,
    RequestTimeoutError,
    ServerException,
    TLSError,
    TransportError,
)
from .http import Request, Response
from .tracing import (
    BasicTracer,
    EnhancedTracer,
    TraceRequest,
    TraceResponse,
    Tracer,
)

__all__ = [
    "ArangoNetError",
    "BasicTracer",
    "ClientException",
    "ConfigurationError",
    "ConnectFailedError",
    "Connection",
    "ConnectionMode",
    "ConnectionOptions",
    "Endpoint",
    "EnhancedTracer",
    "MalformedResponseError",
    "Request",
    "RequestTimeoutError",
    "Response",
    "ServerException",
    "TLSError",
    "TraceRequest",
    "TraceResponse",
    "Tracer",
    "TransportError",
]
