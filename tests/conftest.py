"""Pytest configuration and shared fixtures."""

from collections import defaultdict, deque
from unittest.mock import patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from transport import Transport

ENDPOINT = "https://demo.supabase.co/storage/v1"
TUS_URL = ENDPOINT + "/upload/resumable"
LOCATION = TUS_URL + "/upload-123"


def make_response(status, headers=None, body=b""):
    """Build a real requests.Response without touching the network."""
    resp = requests.Response()
    resp.status_code = status
    resp.headers = CaseInsensitiveDict(headers or {})
    resp._content = body
    resp.encoding = "utf-8"
    return resp


class FakeSession:
    """Stands in for requests.Session: replays scripted replies per HTTP method.

    A scripted item is either a Response or an exception instance to raise.
    """

    def __init__(self):
        self.script = defaultdict(deque)
        self.calls = []
        self.closed = 0

    def queue(self, method, *items):
        self.script[method].extend(items)
        return self

    def request(self, method, url, headers=None, data=None, timeout=None):
        self.calls.append({"method": method, "url": url, "headers": dict(headers or {}), "data": data})
        if not self.script[method]:
            raise AssertionError(f"unexpected {method} {url}")
        item = self.script[method].popleft()
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed += 1

    def calls_for(self, method):
        return [c for c in self.calls if c["method"] == method]


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def transport(fake_session):
    return Transport(base_headers={"apikey": "anon", "Authorization": "Bearer anon"},
                     session_factory=lambda: fake_session)


@pytest.fixture(autouse=True)
def no_sleep():
    """Backoff waits are instant in tests."""
    with patch("uploader.time.sleep") as mock_sleep:
        yield mock_sleep


@pytest.fixture
def created():
    """A 201 reply pointing at LOCATION."""
    return make_response(201, {"Location": LOCATION})
