from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import requests

"""HTTP transport for SOAP envelopes.

The client only moves bytes and scrapes the vendor result tags; deciding
whether a response is a business success belongs to the classifier.
"""

__all__ = [
    "SoapResponse",
    "TransportError",
    "TransportClient",
    "build_headers",
    "parse_response",
    "CREATE_IDENTIFIER_TAGS",
    "UPDATE_IDENTIFIER_TAGS",
]

logger = logging.getLogger(__name__)

CREATE_IDENTIFIER_TAGS = ("CardID", "ID")
UPDATE_IDENTIFIER_TAGS = ("MediaID",)
DEFAULT_TIMEOUT_SECONDS = 30.0


class TransportError(Exception):
    """The request never produced an HTTP response (DNS, refused, timeout...)."""


@dataclass(frozen=True)
class SoapResponse:
    http_status: int
    vendor_code: str | None
    vendor_message: str | None
    identifier: str | None
    raw_body: str

    @property
    def http_ok(self) -> bool:
        return 200 <= self.http_status < 300


def build_headers(soap_version: str, action: str) -> dict[str, str]:
    """SOAP 1.1 puts the action in SOAPAction; 1.2 folds it into Content-Type."""
    if soap_version == "1.2":
        content_type = "application/soap+xml; charset=utf-8"
        if action and action.strip():
            content_type += f'; action="{action}"'
        return {"Content-Type": content_type}
    return {"Content-Type": "text/xml; charset=utf-8", "SOAPAction": action}


def _extract(body: str, tag: str) -> str | None:
    match = re.search(rf"<{tag}>(.*?)</{tag}>", body, re.IGNORECASE | re.DOTALL)
    return match.group(1).strip() if match else None


def parse_response(http_status: int, body: str, identifier_tags: Sequence[str] = CREATE_IDENTIFIER_TAGS) -> SoapResponse:
    """Scrape ErrCode / ErrMessage and the first identifier tag present."""
    identifier = None
    for tag in identifier_tags:
        identifier = _extract(body, tag)
        if identifier is not None:
            break
    return SoapResponse(
        http_status=http_status,
        vendor_code=_extract(body, "ErrCode"),
        vendor_message=_extract(body, "ErrMessage"),
        identifier=identifier,
        raw_body=body,
    )


class TransportClient:
    """POST envelopes with a bounded timeout.

    Each worker thread gets its own ``requests.Session`` (sessions are not
    shared between threads). ``close()`` closes every session the client
    opened, whichever thread opened it.
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self._session_factory = session_factory
        self._local = threading.local()
        self._sessions: list[requests.Session] = []
        self._lock = threading.Lock()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    def send(
        self,
        endpoint: str,
        envelope: str,
        soap_version: str,
        action: str,
        identifier_tags: Sequence[str] = CREATE_IDENTIFIER_TAGS,
    ) -> SoapResponse:
        headers = build_headers(soap_version, action)
        try:
            resp = self._session().post(
                endpoint,
                data=envelope.encode("utf-8"),
                headers=headers,
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise TransportError(str(e)) from e
        logger.debug(f"POST {endpoint} -> HTTP {resp.status_code}")
        return parse_response(resp.status_code, resp.text, identifier_tags)

    def close(self) -> None:
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

    def __enter__(self) -> TransportClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
