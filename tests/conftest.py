"""
Brief: Global pytest configuration and shared fixtures for bdixdns tests.

Inputs:
  - None

Outputs:
  - None
"""

import logging
import os
import signal
import sys

import pytest

# Ensure 'src' is on sys.path so 'bdixdns' is importable without installation
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from bdixdns.models import Answer, Response, ResponseStatus  # noqa: E402


def _alarm_handler(signum, frame):
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


@pytest.fixture
def restore_root_logging():
    """
    Brief: Restore root logger handlers/level after tests that call init_logging.

    Inputs:
      - None

    Outputs:
      - None
    """
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            h.close()
    root.handlers = handlers
    root.setLevel(level)


class FakeClock:
    """Brief: Manually advanced time source for cache tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SpyClient:
    """
    Brief: UpstreamClient stand-in that records calls and replays a result.

    Inputs:
      - result: Response to return, or an exception instance to raise.

    Outputs:
      - SpyClient with .calls list of (endpoint, name, record_type).
    """

    def __init__(self, result=None) -> None:
        self.result = result or Response(
            ResponseStatus.OK, (Answer("example.com", "A", 300, "93.184.216.34"),)
        )
        self.calls = []
        self.closed = False

    def fetch(self, endpoint, name, record_type):
        self.calls.append((endpoint, name, record_type))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def spy_client():
    return SpyClient()


@pytest.fixture
def make_spy():
    return SpyClient
