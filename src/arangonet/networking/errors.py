"""Error taxonomy for the networking layer.

Three families are exposed to callers:

* ``ConfigurationError``: invalid option key/value or an illegal mutation.
  Raised before any bytes are sent.
* ``TransportError`` and subclasses (all ``ClientException``): failures on
  the client side of the wire such as timeouts, refused connections and TLS
  rejections. Timeouts always carry code 408.
* ``ServerException``: the server answered with HTTP status >= 400.
"""

from __future__ import annotations

from typing import Any


class ArangoNetError(Exception):
    """Base class for every error raised by arangonet."""

    default_code: int | None = None

    def __init__(self, message: str, code: int | None = None) -> None:
        self.message = message
        self.code = code if code is not None else self.default_code
        super().__init__(message)

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"[{self.code}] {self.message}"


class ClientException(ArangoNetError):
    """Failure that originated on the client side."""


class ConfigurationError(ClientException, ValueError):
    """Invalid option key, value, or mutation."""


class TransportError(ClientException):
    """Socket or TLS level failure."""

    default_code = 500


class ConnectFailedError(TransportError):
    """The endpoint refused or could not be reached."""

    default_code = 503


class TLSError(TransportError):
    """Certificate rejection or cipher negotiation failure."""

    default_code = 495


class RequestTimeoutError(TransportError):
    """Connect or read did not finish within the configured timeout."""

    default_code = 408


class MalformedResponseError(TransportError):
    """The server response could not be parsed."""

    default_code = 502


class ServerException(ArangoNetError):
    """The server answered with an HTTP error status."""

    def __init__(
        self,
        message: str,
        code: int,
        *,
        server_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        self.server_code = server_code
        self.details = details
        super().__init__(message, code)
