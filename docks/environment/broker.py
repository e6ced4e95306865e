"""
TunnelBroker: scoped acquisition of forwarded local endpoints.

Every integration that needs a VPC-only service goes through
:meth:`TunnelBroker.tunnel` (or :meth:`TunnelBroker.with_tunnel`):

1. spawn the helper process (ssh or kubectl) for the endpoint
2. wait the settle delay, then poll the local port until it answers
3. hand the ready :class:`TunnelHandle` to the caller
4. terminate the helper on every exit path (return, exception, Ctrl-C)

Failures before the body runs raise :class:`SpawnFailed` or
:class:`ConnectTimeout`. Failures inside the body propagate unchanged
after teardown. Teardown failures are logged and never replace the
body's result or exception.

Example::

    broker = TunnelBroker()
    config = RemoteEndpointConfig("gamma-redis", 6379, 52221)
    with broker.tunnel(config, settle_delay=3.0) as handle:
        client = redis.Redis(port=handle.local_port)
        ...
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from docks.environment.connector import (
    Connector,
    RemoteEndpointConfig,
    TunnelHandle,
    TunnelKind,
    TunnelState,
)
from docks.environment.port_forward import PortForwardConnector
from docks.environment.process import DEFAULT_GRACE_PERIOD
from docks.environment.ssh_tunnel import SSHTunnelConnector, port_is_open
from docks.errors import ConnectTimeout, SpawnFailed, TeardownFailed

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Readiness checks after the settle delay
_READY_MAX_ATTEMPTS: int = 10
_READY_INTERVAL: float = 0.5


def default_connectors() -> dict[TunnelKind, Connector]:
    """Connectors for every supported tunnel kind."""
    return {
        TunnelKind.SSH: SSHTunnelConnector(),
        TunnelKind.PORT_FORWARD: PortForwardConnector(),
    }


class TunnelBroker:
    """
    Opens tunnels and guarantees their teardown.

    Args:
        connectors: Connector per tunnel kind. Defaults to ssh and
            kubectl port-forward.
        ready_check: ``ready_check(host, port) -> bool`` run after the
            settle delay. ``None`` disables the check and trusts the
            settle delay alone.
        ready_attempts: Maximum number of readiness checks.
        ready_interval: Seconds between readiness checks.
        grace_period: Seconds to wait after SIGTERM before SIGKILL.
        sleep: Sleep function (injectable for tests).
    """

    def __init__(
        self,
        connectors: dict[TunnelKind, Connector] | None = None,
        ready_check: Callable[[str, int], bool] | None = port_is_open,
        ready_attempts: int = _READY_MAX_ATTEMPTS,
        ready_interval: float = _READY_INTERVAL,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.connectors = connectors if connectors is not None else default_connectors()
        self.ready_check = ready_check
        self.ready_attempts = ready_attempts
        self.ready_interval = ready_interval
        self.grace_period = grace_period
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Scoped acquisition
    # ------------------------------------------------------------------

    def with_tunnel(
        self,
        config: RemoteEndpointConfig,
        settle_delay: float,
        body: Callable[[TunnelHandle], T],
        dry_run: bool = False,
    ) -> T:
        """
        Run *body* with a ready tunnel to *config*, then tear it down.

        Args:
            config: Endpoint to forward to.
            settle_delay: Seconds to wait before trusting the tunnel.
                Skipped entirely for dry runs.
            body: Called with the ready TunnelHandle.
            dry_run: When True, no real connection is expected; the
                settle delay and readiness check are skipped.

        Returns:
            Whatever *body* returns.

        Raises:
            SpawnFailed: The helper could not be started (body not run).
            ConnectTimeout: The tunnel never became reachable (body not run).
        """
        with self.tunnel(config, settle_delay, dry_run=dry_run) as handle:
            return body(handle)

    @contextmanager
    def tunnel(
        self,
        config: RemoteEndpointConfig,
        settle_delay: float = 0.0,
        dry_run: bool = False,
    ) -> Iterator[TunnelHandle]:
        """Context-manager form of :meth:`with_tunnel`."""
        handle = self.acquire(config)
        primary: BaseException | None = None
        try:
            if not dry_run:
                self._wait_ready(handle, settle_delay)
            handle.state = TunnelState.READY
            logger.info(
                "Tunnel ready: %s:%d -> %s:%d (pid=%d)",
                handle.local_host,
                handle.local_port,
                config.remote_host,
                config.remote_port,
                handle.process.pid,
            )
            yield handle
        except BaseException as exc:
            primary = exc
            raise
        finally:
            self.release(handle, primary)

    # ------------------------------------------------------------------
    # Lifecycle steps
    # ------------------------------------------------------------------

    def acquire(self, config: RemoteEndpointConfig) -> TunnelHandle:
        """
        Spawn the helper for *config*.

        Raises:
            SpawnFailed: If the helper cannot be executed or exits
                immediately.
        """
        connector = self.connectors.get(config.tunnel_kind)
        if connector is None:
            raise SpawnFailed(f"No connector for tunnel kind {config.tunnel_kind.value!r}")

        try:
            process = connector.spawn(config)
        except OSError as exc:
            raise SpawnFailed(
                f"Could not start tunnel helper {' '.join(connector.command(config))!r}: {exc}"
            ) from exc

        handle = TunnelHandle(config=config, process=process)
        if not process.is_running():
            handle.state = TunnelState.FAILED
            message = self._exit_message(handle)
            process.terminate(self.grace_period)
            raise SpawnFailed(message)
        return handle

    def release(
        self, handle: TunnelHandle, primary: BaseException | None = None
    ) -> None:
        """
        Terminate the helper behind *handle*.

        Never raises for teardown failures: they are logged and, when a
        primary exception is in flight, attached to it as a note.
        """
        failed = isinstance(primary, (SpawnFailed, ConnectTimeout))
        try:
            handle.process.terminate(self.grace_period)
        except TeardownFailed as exc:
            failed = True
            logger.warning("Tunnel teardown failed: %s", exc)
            if primary is not None:
                primary.add_note(f"Tunnel teardown also failed: {exc}")
        except BaseException:
            # Interrupted mid-teardown: make sure the helper dies anyway.
            handle.process.kill()
            handle.state = TunnelState.FAILED
            raise
        handle.state = TunnelState.FAILED if failed else TunnelState.CLOSED

    def _wait_ready(self, handle: TunnelHandle, settle_delay: float) -> None:
        """
        Wait for the tunnel to become usable.

        Raises:
            SpawnFailed: The helper exited while we were waiting.
            ConnectTimeout: The local port never accepted a connection.
        """
        if settle_delay > 0:
            self._sleep(settle_delay)

        if self.ready_check is None:
            if not handle.process.is_running():
                raise SpawnFailed(self._exit_message(handle))
            return

        for _ in range(self.ready_attempts):
            if not handle.process.is_running():
                raise SpawnFailed(self._exit_message(handle))
            if self.ready_check(handle.local_host, handle.local_port):
                return
            self._sleep(self.ready_interval)

        raise ConnectTimeout(
            f"Tunnel to {handle.config.remote_host}:{handle.config.remote_port} "
            f"not reachable on {handle.local_host}:{handle.local_port} after "
            f"{settle_delay + self.ready_attempts * self.ready_interval:.1f}s"
        )

    @staticmethod
    def _exit_message(handle: TunnelHandle) -> str:
        process = handle.process
        message = (
            f"Tunnel helper exited with code {process.returncode}: "
            f"{' '.join(process.command)}"
        )
        stderr = process.stderr_text()
        if stderr:
            message += f"\n{stderr}"
        return message
