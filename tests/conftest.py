"""Pytest configuration for provkit tests."""

import os
import sys
from email.message import Message
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
import requests
import structlog
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict
from structlog._config import BoundLoggerLazyProxy

# Add src directory to sys.path for test imports
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate each test from PROVKIT_* environment and .env files.

    Runs every test from an empty working directory and resets the global
    settings instance so settings are re-read per test.
    """
    for name in list(os.environ):
        if name.startswith("PROVKIT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)

    from provkit.config import reset_settings

    reset_settings()


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Reset structlog after each test to prevent closed file handle errors."""
    yield
    structlog.reset_defaults()
    for module in list(sys.modules.values()):
        for attr in getattr(module, "__dict__", {}).values():
            if isinstance(attr, BoundLoggerLazyProxy):
                attr.__dict__.pop("bind", None)


def _raw_with_cookies(set_cookie: str | list[str]) -> SimpleNamespace:
    """Stand-in for urllib3's response, carrying only the parsed header block."""
    msg = Message()
    for value in [set_cookie] if isinstance(set_cookie, str) else set_cookie:
        msg["Set-Cookie"] = value
    return SimpleNamespace(_original_response=SimpleNamespace(msg=msg), close=lambda: None)


class RecordingTransport(BaseAdapter):
    """requests transport adapter that records requests and replays queued responses.

    Queue entries are ``(status, body)`` or ``(status, body, headers)`` tuples,
    or an exception instance to raise from ``send``. When the queue is empty
    every request gets ``default``. A ``Set-Cookie`` header (a string or a
    list of strings) reaches the session cookie jar the way a real response
    would.
    """

    def __init__(self, *responses: Any, default: tuple[int, str] = (200, "")) -> None:
        super().__init__()
        self.queue: list[Any] = list(responses)
        self.default = default
        self.requests: list[requests.PreparedRequest] = []
        self.timeouts: list[Any] = []

    def send(  # type: ignore[override]
        self,
        request: requests.PreparedRequest,
        stream: bool = False,
        timeout: Any = None,
        verify: Any = True,
        cert: Any = None,
        proxies: Any = None,
    ) -> requests.Response:
        self.requests.append(request)
        self.timeouts.append(timeout)
        entry = self.queue.pop(0) if self.queue else self.default
        if isinstance(entry, BaseException):
            raise entry
        status, body, *rest = entry
        headers = dict(rest[0]) if rest else {}
        set_cookie = headers.pop("Set-Cookie", None)

        response = requests.Response()
        response.status_code = status
        response._content = body.encode("utf-8")
        response.headers = CaseInsensitiveDict(headers)
        response.encoding = "utf-8"
        response.url = request.url or ""
        response.request = request
        if set_cookie is not None:
            response.raw = _raw_with_cookies(set_cookie)
        return response

    def close(self) -> None:
        pass

    @property
    def methods(self) -> list[str]:
        return [r.method or "" for r in self.requests]


@pytest.fixture
def transport() -> RecordingTransport:
    """An empty recording transport answering 200 with an empty body."""
    return RecordingTransport()


@pytest.fixture
def make_transport() -> type[RecordingTransport]:
    """The RecordingTransport class, for tests that queue responses."""
    return RecordingTransport


@pytest.fixture
def make_session(make_transport: type[RecordingTransport]):
    """Factory opening a ProvisioningSession over a recording transport.

    Returns a ``(session, transport)`` pair. The SSO domain is ``example.com``
    so tokens can be injected as cookies.
    """
    from provkit.config import ProvkitSettings
    from provkit.session import ProvisioningSession

    opened: list[Any] = []

    def factory(*responses: Any, token: str | None = None, **settings_overrides: Any):
        overrides = {"sso_domain": "example.com", **settings_overrides}
        transport = make_transport(*responses)
        session = ProvisioningSession.open(
            "alice",
            "s3cret",
            token,
            settings=ProvkitSettings(**overrides),
            transport=transport,
        )
        opened.append(session)
        return session, transport

    yield factory
    for session in opened:
        session.close()
