"""Configuration model for the Connection.

Every option is a field of the frozen ``ConnectionOptions`` dataclass. The
field metadata tags each one as fixed (immutable after construction) or
mutable. Mutation never edits an instance in place: ``with_option`` returns
a fresh, fully validated snapshot, so a request that is already being built
keeps the options it started with.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Callable, Mapping, Sequence
from urllib.parse import urlsplit

from .errors import ConfigurationError

OPTION_ENDPOINT = "endpoint"
OPTION_HOST = "host"
OPTION_PORT = "port"
OPTION_VERIFY_CERT = "verify_cert"
OPTION_ALLOW_SELF_SIGNED = "allow_self_signed"
OPTION_CIPHERS = "ciphers"
OPTION_TIMEOUT = "timeout"
OPTION_CONNECT_TIMEOUT = "connect_timeout"
OPTION_REQUEST_TIMEOUT = "request_timeout"
OPTION_CONNECTION = "connection"
OPTION_RECONNECT = "reconnect"
OPTION_RETRY_NON_IDEMPOTENT = "retry_non_idempotent"
OPTION_DATABASE = "database"
OPTION_AUTH_USER = "auth_user"
OPTION_AUTH_PASSWD = "auth_passwd"
OPTION_TRACE = "trace"
OPTION_ENHANCED_TRACE = "enhanced_trace"
OPTION_USER_AGENT = "user_agent"

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_DATABASE = "_system"
DEFAULT_PORT = 8529
DEFAULT_USER_AGENT = "arangonet-python"

_SCHEMES = {
    "tcp": "http",
    "http": "http",
    "ssl": "https",
    "https": "https",
}


class ConnectionMode(str, Enum):
    """Value of the ``Connection`` header and socket reuse policy."""

    CLOSE = "Close"
    KEEP_ALIVE = "Keep-Alive"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Any) -> ConnectionMode:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for mode in cls:
                if mode.value.lower() == value.strip().lower():
                    return mode
        raise ConfigurationError(
            f"invalid value for option '{OPTION_CONNECTION}': {value!r} "
            "(expected 'Close' or 'Keep-Alive')"
        )


@dataclass(frozen=True)
class Endpoint:
    """One parsed server address."""

    scheme: str
    host: str
    port: int

    @classmethod
    def parse(cls, raw: str) -> Endpoint:
        if not isinstance(raw, str) or not raw.strip():
            raise ConfigurationError("endpoint must be a non-empty string")
        parts = urlsplit(raw.strip())
        scheme = _SCHEMES.get(parts.scheme.lower())
        if scheme is None:
            raise ConfigurationError(f"unsupported endpoint scheme in {raw!r}")
        try:
            port = parts.port
        except ValueError as exc:
            raise ConfigurationError(f"invalid port in endpoint {raw!r}") from exc
        if not parts.hostname:
            raise ConfigurationError(f"missing host in endpoint {raw!r}")
        return cls(
            scheme=scheme,
            host=parts.hostname,
            port=port if port is not None else DEFAULT_PORT,
        )

    @property
    def authority(self) -> str:
        """Host and port as used in the ``Host`` header."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.authority}"


def _fixed(default: Any, **kwargs: Any) -> Any:
    return field(default=default, metadata={"mutable": False}, **kwargs)


def _mutable(default: Any, **kwargs: Any) -> Any:
    return field(default=default, metadata={"mutable": True}, **kwargs)


def _is_positive_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and value > 0
    )


def _require_bool(key: str, value: Any) -> None:
    if not isinstance(value, bool):
        raise ConfigurationError(
            f"option '{key}' must be a boolean, got {value!r}"
        )


def _require_optional_str(key: str, value: Any) -> None:
    if value is not None and not isinstance(value, str):
        raise ConfigurationError(
            f"option '{key}' must be a string, got {type(value).__name__}"
        )


@dataclass(frozen=True)
class ConnectionOptions:
    """Validated connection configuration.

    Either ``endpoint`` or ``host`` (optionally with ``port``) must be given.
    ``endpoint`` may be a single address or a sequence of addresses used for
    failover, in order.
    """

    endpoint: str | Sequence[str] | None = _fixed(None)
    host: str | None = _fixed(None)
    port: int | None = _fixed(None)
    verify_cert: bool = _fixed(False)
    allow_self_signed: bool = _fixed(True)
    ciphers: str | None = _fixed(None)
    timeout: float = _mutable(DEFAULT_TIMEOUT_SECONDS)
    connect_timeout: float | None = _mutable(None)
    request_timeout: float | None = _mutable(None)
    connection: ConnectionMode = _mutable(ConnectionMode.CLOSE)
    reconnect: bool = _mutable(False)
    retry_non_idempotent: bool = _mutable(False)
    database: str = _mutable(DEFAULT_DATABASE)
    auth_user: str | None = _mutable(None)
    auth_passwd: str | None = _mutable(None, repr=False)
    trace: Callable[..., Any] | None = _mutable(None, repr=False)
    enhanced_trace: bool = _mutable(False)
    user_agent: str = _mutable(DEFAULT_USER_AGENT)
    endpoints: tuple[Endpoint, ...] = field(
        init=False, repr=False, compare=False, metadata={"derived": True}
    )

    def __post_init__(self) -> None:
        self._validate_endpoint()
        self._validate_tls()
        self._validate_timeouts()

        object.__setattr__(
            self, "connection", ConnectionMode.parse(self.connection)
        )
        _require_bool(OPTION_RECONNECT, self.reconnect)
        _require_bool(OPTION_RETRY_NON_IDEMPOTENT, self.retry_non_idempotent)

        if not isinstance(self.database, str) or not self.database:
            raise ConfigurationError("database must be a non-empty string")
        if "/" in self.database:
            raise ConfigurationError(
                f"invalid database name {self.database!r}"
            )

        _require_optional_str(OPTION_AUTH_USER, self.auth_user)
        _require_optional_str(OPTION_AUTH_PASSWD, self.auth_passwd)
        if self.auth_passwd and not self.auth_user:
            raise ConfigurationError(
                "auth_passwd requires auth_user to be set"
            )

        if self.trace is not None and not callable(self.trace):
            raise ConfigurationError("trace must be callable")
        _require_bool(OPTION_ENHANCED_TRACE, self.enhanced_trace)

        if not isinstance(self.user_agent, str) or not self.user_agent:
            raise ConfigurationError("user_agent must be a non-empty string")

    def _validate_endpoint(self) -> None:
        _require_optional_str(OPTION_HOST, self.host)
        if self.endpoint is None:
            if not self.host:
                raise ConfigurationError(
                    "either endpoint or host must be provided"
                )
            port = self._coerce_port(self.port or DEFAULT_PORT)
            host = f"[{self.host}]" if ":" in self.host else self.host
            object.__setattr__(self, "endpoint", f"tcp://{host}:{port}")

        raw = self.endpoint
        if isinstance(raw, str):
            parsed = (Endpoint.parse(raw),)
        elif isinstance(raw, Sequence) and raw:
            parsed = tuple(Endpoint.parse(item) for item in raw)
            object.__setattr__(self, "endpoint", tuple(raw))
        else:
            raise ConfigurationError(
                "endpoint must be a string or a non-empty list of strings"
            )

        primary = parsed[0]
        if self.host is not None and self.host.lower() != primary.host:
            raise ConfigurationError(
                f"host {self.host!r} does not match endpoint {primary.host!r}"
            )
        if self.port is not None and self._coerce_port(self.port) != primary.port:
            raise ConfigurationError(
                f"port {self.port!r} does not match endpoint {primary.port}"
            )
        object.__setattr__(self, "endpoints", parsed)
        object.__setattr__(self, "host", primary.host)
        object.__setattr__(self, "port", primary.port)

    @staticmethod
    def _coerce_port(value: Any) -> int:
        if isinstance(value, str) and value.isdigit():
            value = int(value)
        if (
            not isinstance(value, int)
            or isinstance(value, bool)
            or not 0 < value < 65536
        ):
            raise ConfigurationError(f"invalid port {value!r}")
        return value

    def _validate_tls(self) -> None:
        _require_bool(OPTION_VERIFY_CERT, self.verify_cert)
        _require_bool(OPTION_ALLOW_SELF_SIGNED, self.allow_self_signed)
        _require_optional_str(OPTION_CIPHERS, self.ciphers)
        if self.ciphers is not None and not self.ciphers.strip():
            raise ConfigurationError("ciphers must not be empty when provided")

    def _validate_timeouts(self) -> None:
        if not _is_positive_number(self.timeout):
            raise ConfigurationError(
                f"timeout must be a positive number, got {self.timeout!r}"
            )

        has_connect_timeout = self.connect_timeout is not None
        has_request_timeout = self.request_timeout is not None
        if has_connect_timeout != has_request_timeout:
            raise ConfigurationError(
                "connect_timeout and request_timeout must be set together"
            )
        for key in (OPTION_CONNECT_TIMEOUT, OPTION_REQUEST_TIMEOUT):
            value = getattr(self, key)
            if value is not None and not _is_positive_number(value):
                raise ConfigurationError(
                    f"{key} must be a positive number when provided"
                )

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> ConnectionOptions:
        """Build options from a plain ``{key: value}`` mapping."""
        unknown = sorted(set(options) - set(option_keys()))
        if unknown:
            raise ConfigurationError(f"unknown option(s): {', '.join(unknown)}")
        return cls(**dict(options))

    def get(self, key: str) -> Any:
        _option_field(key)
        return getattr(self, key)

    def with_option(self, key: str, value: Any) -> ConnectionOptions:
        """Return a copy with ``key`` set to ``value``.

        Raises:
            ConfigurationError: unknown key, a key that is fixed after
                construction, or a value that fails validation.
        """
        option = _option_field(key)
        if not option.metadata["mutable"]:
            raise ConfigurationError(
                f"option '{key}' cannot be changed after construction"
            )
        return replace(self, **{key: value})

    @property
    def timeouts(self) -> tuple[float, float]:
        """Return the ``(connect, read)`` timeout pair."""
        if self.connect_timeout is not None and self.request_timeout is not None:
            return (self.connect_timeout, self.request_timeout)
        return (self.timeout, self.timeout)

    @property
    def total_timeout(self) -> float:
        """Budget for one logical request, connect through last body byte."""
        if self.connect_timeout is not None and self.request_timeout is not None:
            return self.connect_timeout + self.request_timeout
        return self.timeout

    @property
    def keep_alive(self) -> bool:
        return self.connection is ConnectionMode.KEEP_ALIVE

    @property
    def has_credentials(self) -> bool:
        return bool(self.auth_user)


def _option_field(key: str) -> Any:
    for option in fields(ConnectionOptions):
        if option.name == key and "mutable" in option.metadata:
            return option
    raise ConfigurationError(f"unknown option '{key}'")


def option_keys() -> tuple[str, ...]:
    """Names of every recognized option."""
    return tuple(
        option.name
        for option in fields(ConnectionOptions)
        if "mutable" in option.metadata
    )


def is_mutable(key: str) -> bool:
    return bool(_option_field(key).metadata["mutable"])
