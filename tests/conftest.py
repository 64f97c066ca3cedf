import os
import socket
import sys
import urllib.request
from pathlib import Path

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
SRC = REPO_ROOT / "src"

# Prefer repo sources over any installed package.
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from listing_reference.config import ResolverConfig, reset_config_cache  # noqa: E402
from listing_reference.context import ResolverContext  # noqa: E402
from listing_reference.errors import NotFound  # noqa: E402


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    if os.getenv("LIVE") == "1":
        return

    real_connect = socket.socket.connect

    def guarded_connect(sock, address):
        host = address[0]
        if host not in ("127.0.0.1", "localhost"):
            raise RuntimeError("Network access blocked in tests")
        return real_connect(sock, address)

    monkeypatch.setattr(socket.socket, "connect", guarded_connect)
    monkeypatch.setattr(
        urllib.request,
        "urlopen",
        lambda *args, **kwargs: (_ for _ in ()).throw(
            RuntimeError("Network access blocked in tests")
        ),
    )


@pytest.fixture(autouse=True)
def fresh_config():
    reset_config_cache()
    yield
    reset_config_cache()


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeUpstream:
    """Stands in for the lookup service: reference -> listing path."""

    def __init__(self, routes=None, missing=("999999",)):
        self.routes = dict(routes or {})
        self.missing = set(missing)
        self.failures = []
        self.calls = []
        self.gate = None

    async def __call__(self, reference):
        self.calls.append(reference)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            raise self.failures.pop(0)
        if reference in self.missing:
            raise NotFound("Listing not available", reference=reference)
        return self.routes.get(
            reference, f"/listings/apartment-for-rent-at-east-legon-{reference}"
        )


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def upstream():
    return FakeUpstream()


@pytest.fixture()
def sleeps():
    return RecordingSleep()


@pytest.fixture()
def make_context(clock, upstream, sleeps):
    def _make(**overrides):
        options = {"rate_limit_per_window": 5}
        options.update(overrides)
        return ResolverContext.create(
            ResolverConfig(**options), fetch=upstream, clock=clock, sleep=sleeps
        )

    return _make
