"""HTTP helpers: method constants and the Request/Response value types."""

from __future__ import annotations

import json
from dataclasses import dataclass
from http import HTTPStatus
from types import MappingProxyType
from typing import Any, Mapping

from requests.structures import CaseInsensitiveDict

from .errors import MalformedResponseError

METHOD_GET = "GET"
METHOD_HEAD = "HEAD"
METHOD_POST = "POST"
METHOD_PUT = "PUT"
METHOD_PATCH = "PATCH"
METHOD_DELETE = "DELETE"

METHODS = frozenset(
    {
        METHOD_GET,
        METHOD_HEAD,
        METHOD_POST,
        METHOD_PUT,
        METHOD_PATCH,
        METHOD_DELETE,
    }
)
IDEMPOTENT_METHODS = frozenset({METHOD_GET, METHOD_HEAD})

PROTOCOL = "HTTP/1.1"
SEPARATOR = "\r\n"
MIME_JSON = "application/json"


def status_definition(code: int) -> str:
    """Human readable phrase for an HTTP status code."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return "Unknown"


def _serialize(start_line: str, headers: Mapping[str, str], body: bytes) -> str:
    lines = [start_line]
    lines.extend(f"{name}: {value}" for name, value in headers.items())
    head = SEPARATOR.join(lines)
    return head + SEPARATOR + SEPARATOR + body.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Request:
    """A fully built request. Headers are read-only once built."""

    method: str
    path: str
    url: str
    headers: Mapping[str, str]
    body: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "headers", MappingProxyType(dict(self.headers))
        )

    @property
    def body_text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS

    def raw(self) -> str:
        """Wire representation, as written to the socket."""
        return _serialize(
            f"{self.method} {self.path} {PROTOCOL}", self.headers, self.body
        )


@dataclass(frozen=True)
class Response:
    """A fully read response."""

    status_code: int
    reason: str
    headers: Mapping[str, str]
    body: bytes
    url: str
    elapsed: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "headers", CaseInsensitiveDict(dict(self.headers))
        )

    @classmethod
    def from_requests(
        cls, response: Any, body: bytes, elapsed: float
    ) -> Response:
        return cls(
            status_code=int(response.status_code),
            reason=response.reason or status_definition(response.status_code),
            headers=dict(response.headers),
            body=bytes(body),
            url=response.url,
            elapsed=float(elapsed),
        )

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def status_definition(self) -> str:
        return status_definition(self.status_code)

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name, default)

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            MalformedResponseError: The body is not valid JSON.
        """
        try:
            return json.loads(self.body)
        except ValueError as exc:
            raise MalformedResponseError(
                f"response body is not valid JSON: {exc}"
            ) from exc

    def raw(self) -> str:
        return _serialize(
            f"{PROTOCOL} {self.status_code} {self.reason}",
            self.headers,
            self.body,
        )
