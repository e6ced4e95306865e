"""Tests for docks.environment.broker: scoped tunnels with guaranteed teardown."""

from __future__ import annotations

import pytest

from docks.environment.broker import TunnelBroker
from docks.environment.connector import TunnelKind, TunnelState
from docks.errors import ConnectTimeout, SpawnFailed
from tests.fakes import FakeConnector


def make_broker(connector, ready_check=lambda host, port: True, sleeps=None, **kwargs):
    recorded = sleeps if sleeps is not None else []
    return TunnelBroker(
        connectors={TunnelKind.SSH: connector},
        ready_check=ready_check,
        ready_interval=0.5,
        grace_period=0.01,
        sleep=recorded.append,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Teardown on every exit path
# ---------------------------------------------------------------------------


class TestTeardown:
    def test_success_terminates_once(self, connector, endpoint):
        broker = make_broker(connector)

        result = broker.with_tunnel(endpoint, 0.0, lambda handle: "ok")

        assert result == "ok"
        assert len(connector.spawned) == 1
        assert connector.spawned[0].terminate_calls == 1

    def test_body_failure_terminates_once_and_propagates(self, connector, endpoint):
        broker = make_broker(connector)

        def body(handle):
            raise ValueError("broker refused")

        with pytest.raises(ValueError, match="broker refused"):
            broker.with_tunnel(endpoint, 0.0, body)

        assert connector.spawned[0].terminate_calls == 1

    def test_keyboard_interrupt_terminates_once(self, connector, endpoint):
        """Cancellation of the body still tears the tunnel down."""
        broker = make_broker(connector)

        def body(handle):
            raise KeyboardInterrupt

        with pytest.raises(KeyboardInterrupt):
            broker.with_tunnel(endpoint, 0.0, body)

        assert connector.spawned[0].terminate_calls == 1

    @pytest.mark.parametrize("fail", [False, True])
    def test_kill_count_is_one_regardless_of_outcome(self, endpoint, fail):
        connector = FakeConnector()
        broker = make_broker(connector)

        def body(handle):
            if fail:
                raise RuntimeError("boom")
            return handle.local_port

        try:
            broker.with_tunnel(endpoint, 0.0, body)
        except RuntimeError:
            pass

        popen = connector.spawned[0]
        assert popen.terminate_calls + popen.kill_calls == 1

    def test_state_transitions(self, connector, endpoint):
        broker = make_broker(connector)
        seen = []

        with broker.tunnel(endpoint) as handle:
            seen.append(handle.state)

        assert seen == [TunnelState.READY]
        assert handle.state is TunnelState.CLOSED

    def test_handle_exposes_local_endpoint(self, connector, endpoint):
        broker = make_broker(connector)
        with broker.tunnel(endpoint) as handle:
            assert handle.local_host == "127.0.0.1"
            assert handle.local_port == 56565
            assert handle.local_url == "http://127.0.0.1:56565"


class TestTeardownFailure:
    def test_does_not_mask_success(self, endpoint):
        connector = FakeConnector(ignore_term=True, unkillable=True)
        broker = make_broker(connector)

        with broker.tunnel(endpoint) as handle:
            pass

        assert handle.state is TunnelState.FAILED

    def test_does_not_mask_body_failure(self, endpoint):
        connector = FakeConnector(ignore_term=True, unkillable=True)
        broker = make_broker(connector)

        def body(handle):
            raise ValueError("primary")

        with pytest.raises(ValueError, match="primary") as excinfo:
            broker.with_tunnel(endpoint, 0.0, body)

        notes = getattr(excinfo.value, "__notes__", [])
        assert any("teardown" in note for note in notes)

    def test_return_value_survives(self, endpoint):
        connector = FakeConnector(ignore_term=True, unkillable=True)
        broker = make_broker(connector)
        assert broker.with_tunnel(endpoint, 0.0, lambda handle: 42) == 42


# ---------------------------------------------------------------------------
# Failures before the body runs
# ---------------------------------------------------------------------------


class TestSpawnFailure:
    def test_missing_executable(self, endpoint):
        connector = FakeConnector(error=FileNotFoundError("ssh"))
        broker = make_broker(connector)
        calls = []

        with pytest.raises(SpawnFailed) as excinfo:
            broker.with_tunnel(endpoint, 0.0, calls.append)

        assert calls == []
        assert excinfo.value.kind == "SpawnFailed"

    def test_helper_exits_immediately(self, endpoint):
        connector = FakeConnector(exited=255, stderr=b"bind: Address already in use")
        broker = make_broker(connector)
        calls = []

        with pytest.raises(SpawnFailed, match="Address already in use"):
            broker.with_tunnel(endpoint, 0.0, calls.append)

        assert calls == []

    def test_helper_dies_during_settle(self, endpoint):
        connector = FakeConnector()
        calls = []

        def ready_check(host, port):
            connector.spawned[0].returncode = 1
            return False

        broker = make_broker(connector, ready_check=ready_check)

        with pytest.raises(SpawnFailed):
            broker.with_tunnel(endpoint, 0.0, calls.append)
        assert calls == []

    def test_unknown_tunnel_kind(self, endpoint):
        broker = TunnelBroker(connectors={})
        with pytest.raises(SpawnFailed):
            broker.with_tunnel(endpoint, 0.0, lambda handle: None)


class TestReadiness:
    def test_connect_timeout(self, connector, endpoint):
        sleeps: list[float] = []
        broker = make_broker(
            connector, ready_check=lambda host, port: False, sleeps=sleeps, ready_attempts=3
        )
        calls = []

        with pytest.raises(ConnectTimeout) as excinfo:
            broker.with_tunnel(endpoint, 2.0, calls.append)

        assert calls == []
        assert excinfo.value.kind == "ConnectTimeout"
        assert connector.spawned[0].terminate_calls == 1
        assert sleeps == [2.0, 0.5, 0.5, 0.5]

    def test_ready_check_retries_until_ready(self, connector, endpoint):
        answers = iter([False, False, True])
        checks = []

        def ready_check(host, port):
            checks.append((host, port))
            return next(answers)

        broker = make_broker(connector, ready_check=ready_check)
        broker.with_tunnel(endpoint, 0.0, lambda handle: None)

        assert checks == [("127.0.0.1", 56565)] * 3

    def test_settle_delay_honoured(self, connector, endpoint):
        sleeps: list[float] = []
        broker = make_broker(connector, sleeps=sleeps)

        broker.with_tunnel(endpoint, 5.0, lambda handle: None)

        assert sleeps == [5.0]

    def test_dry_run_skips_settle_and_ready_check(self, connector, endpoint):
        sleeps: list[float] = []
        checks = []

        def ready_check(host, port):
            checks.append(port)
            return False

        broker = make_broker(connector, ready_check=ready_check, sleeps=sleeps)
        result = broker.with_tunnel(endpoint, 5.0, lambda handle: "dry", dry_run=True)

        assert result == "dry"
        assert sleeps == []
        assert checks == []
        assert connector.spawned[0].terminate_calls == 1

    def test_ready_check_disabled_trusts_settle_delay(self, connector, endpoint):
        sleeps: list[float] = []
        broker = make_broker(connector, ready_check=None, sleeps=sleeps)
        broker.with_tunnel(endpoint, 3.0, lambda handle: None)
        assert sleeps == [3.0]
