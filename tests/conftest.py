"""Shared fixtures for unireq tests.

Requests never leave the process: every executor is built with a transport
factory returning an ``httpx.MockTransport`` around the test's handler.
"""

from __future__ import annotations

import os
from collections.abc import Callable

import httpx
import pytest

from unireq import ClientConfig, RequestExecutor, TransportOptions


Handler = Callable[[httpx.Request], httpx.Response]


class RecordingFactory:
    """Transport factory remembering the options of every transport it built."""

    def __init__(self, handler: Handler) -> None:
        self.handler = handler
        self.options: list[TransportOptions] = []

    def __call__(self, options: TransportOptions) -> httpx.AsyncBaseTransport:
        self.options.append(options)
        return httpx.MockTransport(self.handler)


@pytest.fixture
def no_env_proxies(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.lower().endswith("_proxy"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def recording_factory() -> type[RecordingFactory]:
    return RecordingFactory


@pytest.fixture
def make_executor() -> Callable[..., RequestExecutor]:
    def build(
        handler: Handler | RecordingFactory,
        config: ClientConfig | None = None,
    ) -> RequestExecutor:
        factory = handler if isinstance(handler, RecordingFactory) else RecordingFactory(handler)
        return RequestExecutor(
            config or ClientConfig(trust_env=False, http2=False),
            transport_factory=factory,
        )

    return build
