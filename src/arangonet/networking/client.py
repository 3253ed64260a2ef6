"""Synchronous connection to an ArangoDB server.

All requests issued by higher level handlers (collections, documents,
cursors) go through ``Connection.call``. One call is one logical request:

    build request -> tracer "send" -> transport -> tracer "receive"
    -> Response, or ServerException for status >= 400

A Connection is not safe for concurrent use by several threads when
``Keep-Alive`` is active; use one Connection per caller.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import quote

from .config import (
    OPTION_DATABASE,
    ConnectionOptions,
    Endpoint,
)
from .errors import (
    ClientException,
    ConfigurationError,
    ConnectFailedError,
    ServerException,
)
from .http import (
    METHOD_DELETE,
    METHOD_GET,
    METHOD_HEAD,
    METHOD_PATCH,
    METHOD_POST,
    METHOD_PUT,
    METHODS,
    MIME_JSON,
    Request,
    Response,
)
from .tracing import Tracer, make_tracer
from .transport import HttpTransport

LOGGER = logging.getLogger(__name__)

_MANAGED_HEADERS = frozenset(
    {
        "host",
        "connection",
        "content-length",
        "authorization",
        "accept-encoding",
    }
)


def _encode_body(body: Any) -> bytes:
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


def _basic_auth(user: str, password: str | None) -> str:
    token = base64.b64encode(f"{user}:{password or ''}".encode("utf-8"))
    return f"Basic {token.decode('ascii')}"


class Connection:
    """Connection to one server (or an ordered list of failover servers).

    Options may be given as a ``ConnectionOptions`` instance, a mapping of
    option keys, or keyword arguments::

        with Connection(endpoint="tcp://127.0.0.1:8529", auth_user="root") as conn:
            conn.get("/_api/version").json()
    """

    def __init__(
        self,
        options: ConnectionOptions | Mapping[str, Any] | None = None,
        **overrides: Any,
    ) -> None:
        if isinstance(options, ConnectionOptions):
            if overrides:
                raise ConfigurationError(
                    "keyword options cannot be combined with ConnectionOptions"
                )
            self._options = options
        else:
            self._options = ConnectionOptions.from_mapping(
                {**dict(options or {}), **overrides}
            )
        self._tracer: Tracer | None = make_tracer(
            self._options.trace, self._options.enhanced_trace
        )
        self._transport = HttpTransport(ciphers=self._options.ciphers)
        self._endpoint_index = 0

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"<Connection {self.current_endpoint.base_url} "
            f"db={self._options.database!r}>"
        )

    def close(self) -> None:
        """Release the underlying socket. The next call reopens it."""
        self._transport.close()

    @property
    def options(self) -> ConnectionOptions:
        return self._options

    @property
    def current_endpoint(self) -> Endpoint:
        endpoints = self._options.endpoints
        return endpoints[self._endpoint_index % len(endpoints)]

    def get_option(self, key: str) -> Any:
        return self._options.get(key)

    def set_option(self, key: str, value: Any) -> None:
        """Change a mutable option. Takes effect from the next request.

        Raises:
            ConfigurationError: unknown key, fixed key, or invalid value.
        """
        self._options = self._options.with_option(key, value)
        self._tracer = make_tracer(
            self._options.trace, self._options.enhanced_trace
        )

    def get_database(self) -> str:
        return self._options.database

    def set_database(self, name: str) -> None:
        self.set_option(OPTION_DATABASE, name)

    def _rotate_endpoint(self) -> None:
        endpoints = self._options.endpoints
        if len(endpoints) < 2:
            return
        failed = self.current_endpoint
        self._endpoint_index = (self._endpoint_index + 1) % len(endpoints)
        self._transport.close()
        LOGGER.warning(
            "endpoint %s unreachable, failing over to %s",
            failed.base_url,
            self.current_endpoint.base_url,
        )

    def _resolve_path(self, options: ConnectionOptions, path: str) -> str:
        if not path.startswith("/"):
            path = "/" + path
        if path.startswith("/_db/"):
            return path
        return f"/_db/{quote(options.database, safe='')}{path}"

    def _build_request(
        self,
        options: ConnectionOptions,
        method: str,
        path: str,
        body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Request:
        method = method.upper()
        if method not in METHODS:
            raise ClientException(f"unsupported HTTP method {method!r}")

        endpoint = self.current_endpoint
        full_path = self._resolve_path(options, path)
        payload = _encode_body(body)

        built: dict[str, str] = {
            "Host": endpoint.authority,
            "Connection": options.connection.value,
            "User-Agent": options.user_agent,
            "Accept": MIME_JSON,
            # http.client adds this itself when absent
            "Accept-Encoding": "identity",
        }
        if payload:
            built["Content-Type"] = MIME_JSON
        for name, value in (headers or {}).items():
            if name.lower() in _MANAGED_HEADERS:
                raise ConfigurationError(
                    f"header {name!r} is managed by the connection"
                )
            built[name] = str(value)
        if options.has_credentials:
            assert options.auth_user is not None
            built["Authorization"] = _basic_auth(
                options.auth_user, options.auth_passwd
            )
        built["Content-Length"] = str(len(payload))

        return Request(
            method=method,
            path=full_path,
            url=endpoint.base_url + full_path,
            headers=built,
            body=payload,
        )

    @staticmethod
    def _server_error(response: Response) -> ServerException:
        """Map an HTTP error response to a ServerException."""
        message = response.text or response.reason
        server_code = None
        details = None
        try:
            details = response.json()
        except ClientException:
            pass  # not a JSON error document
        if isinstance(details, dict):
            message = str(details.get("errorMessage") or message)
            server_code = details.get("errorNum")
        return ServerException(
            message,
            response.status_code,
            server_code=server_code,
            details=details,
        )

    def call(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> Response:
        """Issue one logical request.

        Args:
            method: One of GET, HEAD, POST, PUT, PATCH, DELETE.
            path: Server path; prefixed with ``/_db/<database>`` unless it
                already addresses a database.
            headers: Extra request headers.
            body: ``bytes``/``str`` sent as-is, anything else JSON-encoded.

        Returns:
            The Response for any status below 400.

        Raises:
            ConfigurationError: The request could not be built.
            ClientException: Transport failure (408 for timeouts).
            ServerException: The server answered with status >= 400.
        """
        options = self._options
        tracer = self._tracer
        request = self._build_request(options, method, path, body, headers)

        if tracer is not None:
            tracer.on_send(request)
        LOGGER.debug("sending %s %s", request.method, request.url)

        result = self._transport.send(request, options)
        if not result.ok:
            LOGGER.debug("request failed: %s", result.meta)
            if isinstance(result.error, ConnectFailedError):
                self._rotate_endpoint()
            raise result.error

        response = result.value
        LOGGER.debug(
            "received %s for %s %s in %.3fs (attempts=%s)",
            response.status_code,
            request.method,
            request.url,
            response.elapsed,
            result.meta.get("attempts"),
        )
        if tracer is not None:
            tracer.on_receive(response)
        if response.is_error:
            raise self._server_error(response)
        return response

    def batch(self, calls: Iterable[Sequence[Any]]) -> list[Response]:
        """Issue ``(method, path[, headers[, body]])`` calls in order.

        Returns the responses in the same order. The first failure raises
        and the remaining calls are not sent.
        """
        return [self.call(*call) for call in calls]

    def get(
        self, path: str, headers: Mapping[str, str] | None = None
    ) -> Response:
        return self.call(METHOD_GET, path, headers=headers)

    def head(
        self, path: str, headers: Mapping[str, str] | None = None
    ) -> Response:
        return self.call(METHOD_HEAD, path, headers=headers)

    def delete(
        self,
        path: str,
        headers: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> Response:
        return self.call(METHOD_DELETE, path, headers, body)

    def post(
        self,
        path: str,
        data: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self.call(METHOD_POST, path, headers, data)

    def put(
        self,
        path: str,
        data: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self.call(METHOD_PUT, path, headers, data)

    def patch(
        self,
        path: str,
        data: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return self.call(METHOD_PATCH, path, headers, data)
