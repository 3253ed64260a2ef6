"""Client-side HTTP connection layer for ArangoDB."""

from .networking import (
    ClientException,
    Connection,
    ConnectionMode,
    ConnectionOptions,
    ConfigurationError,
    Response,
    ServerException,
)

__version__ = "0.1.0"

__all__ = [
    "ClientException",
    "ConfigurationError",
    "Connection",
    "ConnectionMode",
    "ConnectionOptions",
    "Response",
    "ServerException",
    "__version__",
]
