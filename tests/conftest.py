"""Shared test fixtures for vizbridge."""

from __future__ import annotations

import httpx
import pytest

from tests._fixtures.callbacks import CallbackRecorder
from tests._fixtures.fake_host import FakeHost, shared_workspace
from vizbridge.callback import CallbackClient
from vizbridge.channel import ControlChannel
from vizbridge.config import BridgeSettings


@pytest.fixture(autouse=True)
def set_test_env(monkeypatch):
    """Keep developer .env values out of BridgeSettings."""
    monkeypatch.setenv("VIZBRIDGE_BASE_URL", "http://ext.test/app/")
    monkeypatch.setenv("VIZBRIDGE_LOG_LEVEL", "DEBUG")


@pytest.fixture
def bridge_settings() -> BridgeSettings:
    return BridgeSettings(base_url="http://ext.test/app/", range_bound=1e300)


@pytest.fixture
def host() -> FakeHost:
    """Panels A and B sharing data source ds1."""
    return shared_workspace()


@pytest.fixture
def channel() -> ControlChannel:
    return ControlChannel(max_buffer=100, queue_size=500)


@pytest.fixture
def recorder() -> CallbackRecorder:
    return CallbackRecorder()


@pytest.fixture
def callback_client(recorder) -> CallbackClient:
    """CallbackClient whose POSTs land in ``recorder``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return CallbackClient(client)
