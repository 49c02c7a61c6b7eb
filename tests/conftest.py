"""
Shared fakes for the lnchk test suite.

No real network calls are made: tests hand ``check_page``/``probe_link`` a
``FakeSession`` whose ``get`` serves canned responses or raises canned
``requests`` exceptions.
"""
from __future__ import annotations

import threading
import time

import pytest


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"") -> None:
        self.status_code = status_code
        self.content = content
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Maps URLs to a status code, raw bytes (served as 200), a FakeResponse or an exception."""

    def __init__(self, routes: dict, delay: float = 0.0) -> None:
        self.routes = routes
        self.delay = delay
        self.calls: list[tuple[str, dict]] = []
        self.responses: list[FakeResponse] = []
        self._lock = threading.Lock()

    def get(self, url: str, **kwargs) -> FakeResponse:
        with self._lock:
            self.calls.append((url, kwargs))
        if self.delay:
            time.sleep(self.delay)

        target = self.routes.get(url, 404)
        if isinstance(target, Exception):
            raise target
        if isinstance(target, FakeResponse):
            resp = target
        elif isinstance(target, bytes):
            resp = FakeResponse(200, target)
        else:
            resp = FakeResponse(target)

        with self._lock:
            self.responses.append(resp)
        return resp

    def requested(self) -> list[str]:
        return [url for url, _ in self.calls]


@pytest.fixture
def fake_session():
    """Factory fixture: ``fake_session({url: status|bytes|FakeResponse|exception})``."""
    return FakeSession


@pytest.fixture
def fake_response():
    return FakeResponse
