"""Request/response observers.

A tracer is notified at two fixed points of every logical request: once
after the request is fully built and before it is written, and once after
the full response has been read. Tracers only see read-only views.
Anything a tracer raises propagates to the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping

from .http import Request, Response

EVENT_SEND = "send"
EVENT_RECEIVE = "receive"


@dataclass(frozen=True)
class TraceRequest:
    headers: Mapping[str, str]
    body: str
    method: str
    request_url: str
    type: str = field(default="request", init=False)

    @classmethod
    def from_request(cls, request: Request) -> TraceRequest:
        return cls(
            headers=MappingProxyType(dict(request.headers)),
            body=request.body_text,
            method=request.method,
            request_url=request.url,
        )


@dataclass(frozen=True)
class TraceResponse:
    headers: Mapping[str, str]
    body: str
    http_code: int
    http_code_definition: str
    time_taken: float
    type: str = field(default="response", init=False)

    @classmethod
    def from_response(cls, response: Response) -> TraceResponse:
        return cls(
            headers=MappingProxyType(dict(response.headers)),
            body=response.text,
            http_code=response.status_code,
            http_code_definition=response.status_definition,
            time_taken=float(response.elapsed),
        )


class Tracer(ABC):
    """Observer invoked around every request."""

    @abstractmethod
    def on_send(self, request: Request) -> None: ...

    @abstractmethod
    def on_receive(self, response: Response) -> None: ...


class BasicTracer(Tracer):
    """Calls ``callback(event_type, raw_payload)`` with wire text."""

    def __init__(self, callback: Callable[[str, str], Any]) -> None:
        self._callback = callback

    def on_send(self, request: Request) -> None:
        self._callback(EVENT_SEND, request.raw())

    def on_receive(self, response: Response) -> None:
        self._callback(EVENT_RECEIVE, response.raw())


class EnhancedTracer(Tracer):
    """Calls ``callback(event)`` with a TraceRequest or TraceResponse."""

    def __init__(
        self, callback: Callable[[TraceRequest | TraceResponse], Any]
    ) -> None:
        self._callback = callback

    def on_send(self, request: Request) -> None:
        self._callback(TraceRequest.from_request(request))

    def on_receive(self, response: Response) -> None:
        self._callback(TraceResponse.from_response(response))


def make_tracer(
    callback: Callable[..., Any] | None, enhanced: bool = False
) -> Tracer | None:
    """Wrap ``callback`` in the matching tracer, or return None."""
    if callback is None:
        return None
    if enhanced:
        return EnhancedTracer(callback)
    return BasicTracer(callback)
