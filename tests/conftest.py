import os
import threading
from typing import List, Optional, Sequence, Union

import httpx
import pytest

from qbclient.domain.interfaces.transport import Transport
from qbclient.infrastructure.config import settings as settings_module


class FakeClock:
    """Manually advanced clock; `sleep` moves time forward instead of blocking."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        self.sleeps.append(seconds)
        if cancel is not None and cancel.is_set():
            return True
        self.now += max(0.0, seconds)
        return False


class ScriptedTransport(Transport):
    """Replays a fixed script of responses (or exceptions to raise)."""

    def __init__(self, script: Sequence[Union[httpx.Response, Exception]]):
        self.script = list(script)
        self.requests: List[httpx.Request] = []

    def send(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.script:
            raise AssertionError("ScriptedTransport ran out of responses")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        item.request = request
        return item


def build_response(status_code: int = 200, json=None, headers=None) -> httpx.Response:
    request = httpx.Request("GET", "https://api.quickbase.com/v1/test")
    if json is None:
        return httpx.Response(status_code, headers=headers, request=request)
    return httpx.Response(status_code, json=json, headers=headers, request=request)


@pytest.fixture
def make_response():
    return build_response


@pytest.fixture
def scripted_transport():
    return ScriptedTransport


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Sleeper that records requested delays and returns immediately."""
    delays: List[float] = []

    def sleep(seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        delays.append(seconds)
        return cancel is not None and cancel.is_set()

    sleep.delays = delays
    return sleep


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keeps tests away from the developer's real environment and config files."""
    for key in list(os.environ):
        if key.startswith("QB_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(settings_module, "DEFAULT_CONFIG_FILE", tmp_path / "missing.yaml")
    monkeypatch.setattr(settings_module, "_config", {})
    monkeypatch.setattr(settings_module, "_loaded", False)
    yield
    settings_module.clear_test_config()
