"""
HTTP transport used by the reporting channels.

Channels never talk to ``requests`` directly; they receive a `Transport`
(constructor injection) so tests can substitute a recording fake. The default
implementation wraps a ``requests.Session`` with a bounded timeout and turns
network-level failures into `TransportError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Protocol, Union

import requests

DEFAULT_TIMEOUT_S = 10.0


class TransportError(Exception):
    """Network-level failure (timeout, connection error, invalid URL)."""


@dataclass(frozen=True)
class HttpResponse:
    """
    Minimal response contract returned by a `Transport`.

    Parameters
    ----------
    status_code
        HTTP status code.
    text
        Decoded response body.
    """

    status_code: int
    text: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code == 200


class Transport(Protocol):
    """
    Protocol for the outbound HTTP calls made by the channels.

    Implementations must return an `HttpResponse` for any HTTP status and
    raise `TransportError` when no response was obtained.
    """

    def get(self, url: str, params: Optional[Mapping[str, Any]] = None) -> HttpResponse:
        ...

    def post(
        self,
        url: str,
        data: Union[str, Mapping[str, Any], None] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        ...


@dataclass
class RequestsTransport:
    """
    `Transport` backed by ``requests``.

    Parameters
    ----------
    timeout_s
        Per-request timeout in seconds. A request exceeding it is abandoned
        and reported as `TransportError`.
    verify_tls
        Whether to verify TLS certificates.
    session
        Optional pre-configured session (a new one is created otherwise).
    """

    timeout_s: float = DEFAULT_TIMEOUT_S
    verify_tls: bool = True
    session: requests.Session = field(default_factory=requests.Session)

    def get(self, url: str, params: Optional[Mapping[str, Any]] = None) -> HttpResponse:
        try:
            r = self.session.get(url, params=params, timeout=self.timeout_s, verify=self.verify_tls)
        except requests.RequestException as e:
            raise TransportError(f"GET {url} failed: {e!r}") from e
        return HttpResponse(status_code=r.status_code, text=r.text)

    def post(
        self,
        url: str,
        data: Union[str, Mapping[str, Any], None] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        req_headers: Dict[str, str] = dict(headers or {})
        try:
            r = self.session.post(
                url,
                data=data,
                headers=req_headers,
                timeout=self.timeout_s,
                verify=self.verify_tls,
            )
        except requests.RequestException as e:
            raise TransportError(f"POST {url} failed: {e!r}") from e
        return HttpResponse(status_code=r.status_code, text=r.text)

    def close(self) -> None:
        self.session.close()
