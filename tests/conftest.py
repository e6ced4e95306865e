"""Shared fixtures for tunnel tests."""

from __future__ import annotations

import pytest

from docks.environment.connector import RemoteEndpointConfig, TunnelKind
from tests.fakes import FakeConnector


@pytest.fixture
def endpoint() -> RemoteEndpointConfig:
    return RemoteEndpointConfig(
        remote_host="gamma-rabbit",
        remote_port=54321,
        local_port=56565,
        tunnel_kind=TunnelKind.SSH,
    )


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
