"""Blocking HTTP transport on top of a ``requests.Session``.

The transport owns at most one live session. With ``Keep-Alive`` and no
forced reconnect the session (and its pooled socket) is reused across calls;
otherwise a fresh session is opened for the call and closed afterwards on
every exit path.
"""

from __future__ import annotations

import logging
import ssl
from time import perf_counter
from typing import Any, Iterator

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import NewConnectionError
from urllib3.util.ssl_ import create_urllib3_context

from .config import ConnectionOptions
from .errors import (
    ConnectFailedError,
    MalformedResponseError,
    RequestTimeoutError,
    TLSError,
    TransportError,
)
from .http import Request, Response
from .types import Err, Ok, Result

LOGGER = logging.getLogger(__name__)

# X509_V_ERR_DEPTH_ZERO_SELF_SIGNED_CERT
_SELF_SIGNED_LEAF_CODE = 18

_CHUNK_SIZE = 16 * 1024


class CipherAdapter(HTTPAdapter):
    """HTTPAdapter whose TLS context is restricted to ``ciphers``."""

    def __init__(self, ciphers: str, **kwargs: Any) -> None:
        self._ciphers = ciphers
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["ssl_context"] = create_urllib3_context(ciphers=self._ciphers)
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, *args: Any, **kwargs: Any) -> Any:
        kwargs["ssl_context"] = create_urllib3_context(ciphers=self._ciphers)
        return super().proxy_manager_for(*args, **kwargs)


def _iter_causes(error: BaseException) -> Iterator[BaseException]:
    """Walk the wrapped-exception graph built by requests/urllib3."""
    seen: set[int] = set()
    stack = [error]
    while stack:
        current = stack.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend(
            arg for arg in current.args if isinstance(arg, BaseException)
        )
        reason = getattr(current, "reason", None)
        if isinstance(reason, BaseException):
            stack.append(reason)
        for linked in (current.__cause__, current.__context__):
            if linked is not None:
                stack.append(linked)


def is_self_signed_rejection(error: BaseException) -> bool:
    """Return True when a TLS failure was caused by a self-signed leaf."""
    for cause in _iter_causes(error):
        if (
            isinstance(cause, ssl.SSLCertVerificationError)
            and getattr(cause, "verify_code", None) == _SELF_SIGNED_LEAF_CODE
        ):
            return True
        text = str(cause).lower()
        if "certificate chain" in text:
            continue
        if "self-signed certificate" in text or "self signed certificate" in text:
            return True
    return False


def _check_deadline(deadline: float) -> None:
    if perf_counter() > deadline:
        raise requests.exceptions.ReadTimeout(
            "response not complete within the configured timeout"
        )


def _is_connect_failure(error: BaseException) -> bool:
    return any(isinstance(c, NewConnectionError) for c in _iter_causes(error))


class HttpTransport:
    """Sends one built Request and reads the full Response."""

    def __init__(self, ciphers: str | None = None) -> None:
        self._ciphers = ciphers
        self._session: requests.Session | None = None
        self._session_used = False

    @property
    def is_open(self) -> bool:
        return self._session is not None

    def _new_session(self) -> requests.Session:
        session = requests.Session()
        # Headers are built by the caller; nothing may be added implicitly.
        session.trust_env = False
        session.headers.clear()
        session.mount("http://", HTTPAdapter(max_retries=0))
        if self._ciphers:
            session.mount(
                "https://", CipherAdapter(self._ciphers, max_retries=0)
            )
        else:
            session.mount("https://", HTTPAdapter(max_retries=0))
        return session

    def _acquire(self, reuse: bool) -> tuple[requests.Session, bool]:
        """Return ``(session, reused)``."""
        if not reuse:
            self.close()
            return self._new_session(), False
        if self._session is None:
            self._session = self._new_session()
            self._session_used = False
        return self._session, self._session_used

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
        self._session = None
        self._session_used = False

    @staticmethod
    def _may_retry(
        request: Request,
        options: ConnectionOptions,
        error: requests.exceptions.RequestException,
    ) -> bool:
        """Only dropped reused sockets qualify for the silent retry."""
        if not (request.idempotent or options.retry_non_idempotent):
            return False
        if isinstance(
            error,
            (requests.exceptions.Timeout, requests.exceptions.SSLError),
        ):
            return False
        return isinstance(error, requests.exceptions.ConnectionError)

    @staticmethod
    def _build_meta(
        request: Request,
        attempts: int,
        timeout: tuple[float, float],
        verify: bool,
        response: Response | None = None,
        final_error: str | None = None,
    ) -> dict[str, Any]:
        """Construct metadata dictionary for one logical request."""
        meta: dict[str, Any] = {}
        meta["method"] = request.method
        meta["url"] = request.url
        meta["attempts"] = attempts
        meta["timeout_s"] = timeout
        meta["verify"] = verify
        if response is not None:
            meta["status_code"] = response.status_code
            meta["reason"] = response.reason
            meta["elapsed_s"] = response.elapsed
        if final_error is not None:
            meta["final_error"] = final_error
        return meta

    @staticmethod
    def _map_exception(
        error: requests.exceptions.RequestException,
    ) -> TransportError:
        """Map requests exceptions to transport errors."""
        if isinstance(error, requests.exceptions.Timeout):
            return RequestTimeoutError(f"request timed out: {error}")
        if isinstance(error, requests.exceptions.SSLError):
            return TLSError(f"TLS failure: {error}")
        if isinstance(
            error,
            (
                requests.exceptions.ChunkedEncodingError,
                requests.exceptions.ContentDecodingError,
                requests.exceptions.InvalidHeader,
            ),
        ):
            return MalformedResponseError(f"malformed response: {error}")
        if isinstance(
            error, requests.exceptions.ConnectionError
        ) and _is_connect_failure(error):
            return ConnectFailedError(f"cannot connect: {error}")
        return TransportError(str(error))

    def _exchange(
        self,
        session: requests.Session,
        request: Request,
        timeout: tuple[float, float],
        deadline: float,
        verify: bool,
    ) -> Response:
        """Write ``request`` and read the body until done or ``deadline``.

        The per-phase ``timeout`` bounds each socket wait; ``deadline`` bounds
        the whole round trip and is checked after the headers and after every
        body chunk.
        """
        prepared = session.prepare_request(
            requests.Request(
                method=request.method,
                url=request.url,
                headers=dict(request.headers),
                data=request.body or None,
            )
        )
        started = perf_counter()
        raw = session.send(
            prepared,
            timeout=timeout,
            verify=verify,
            allow_redirects=False,
            stream=True,
        )
        try:
            body = bytearray()
            _check_deadline(deadline)
            for chunk in raw.iter_content(chunk_size=_CHUNK_SIZE):
                body.extend(chunk)
                _check_deadline(deadline)
            return Response.from_requests(raw, body, perf_counter() - started)
        finally:
            raw.close()

    def send(
        self, request: Request, options: ConnectionOptions
    ) -> Result[Response, TransportError]:
        """Send ``request`` and read the full response.

        Returns:
            Ok with the Response, or Err with a TransportError. HTTP error
            statuses are not errors at this level.
        """
        timeout = options.timeouts
        deadline = perf_counter() + options.total_timeout
        reuse = options.keep_alive and not options.reconnect
        verify = options.verify_cert
        attempts = 0
        retried = False
        insecure_fallback = False

        while True:
            attempts += 1
            attempt_timeout = timeout
            if attempts > 1:
                remaining = deadline - perf_counter()
                if remaining <= 0:
                    return Err(
                        RequestTimeoutError(
                            "timeout expired before the retry"
                        ),
                        meta=self._build_meta(
                            request,
                            attempts - 1,
                            timeout,
                            verify,
                            final_error="ReadTimeout",
                        ),
                    )
                attempt_timeout = (
                    min(timeout[0], remaining),
                    min(timeout[1], remaining),
                )
            session, reused = self._acquire(reuse)
            try:
                response = self._exchange(
                    session, request, attempt_timeout, deadline, verify
                )
            except requests.exceptions.RequestException as exc:
                if reuse:
                    self.close()
                if (
                    verify
                    and options.allow_self_signed
                    and not insecure_fallback
                    and isinstance(exc, requests.exceptions.SSLError)
                    and is_self_signed_rejection(exc)
                ):
                    LOGGER.warning(
                        "accepting self-signed certificate from %s",
                        request.url,
                    )
                    insecure_fallback = True
                    verify = False
                    continue
                if reused and not retried and self._may_retry(
                    request, options, exc
                ):
                    LOGGER.warning(
                        "keep-alive connection dropped, reconnecting: %s %s",
                        request.method,
                        request.url,
                    )
                    retried = True
                    continue
                return Err(
                    self._map_exception(exc),
                    meta=self._build_meta(
                        request,
                        attempts,
                        timeout,
                        verify,
                        final_error=type(exc).__name__,
                    ),
                )
            finally:
                if not reuse:
                    session.close()

            if reuse:
                self._session_used = True
            return Ok(
                response,
                meta=self._build_meta(
                    request, attempts, timeout, verify, response=response
                ),
            )
