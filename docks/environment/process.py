"""
ProcessHandle: a spawned helper process (tunnel or remote-exec helper).

Wraps :class:`subprocess.Popen` with the two signals the tunnel broker
needs: "has it exited?" and "terminate it, bounded". Termination is
idempotent; the underlying process is signalled at most once per
handle, then force-killed if it ignores SIGTERM.
"""

from __future__ import annotations

import logging
import subprocess
import tempfile
from typing import IO

from docks.errors import TeardownFailed

logger = logging.getLogger(__name__)

# Seconds to wait after SIGTERM before escalating to SIGKILL
DEFAULT_GRACE_PERIOD: float = 5.0
# Seconds to wait for the process to be reaped after SIGKILL
_KILL_WAIT: float = 2.0


def spawn(cmd: list[str]) -> ProcessHandle:
    """
    Start *cmd* as a detached-from-stdio child process.

    stdin/stdout are discarded. stderr goes to an anonymous temp file,
    so a chatty helper can never block on a full pipe, and diagnostics
    can still be reported if it dies early.

    Raises:
        OSError: If the executable is missing or cannot be run.
    """
    log_file = tempfile.TemporaryFile()
    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=log_file,
        )
    except OSError:
        log_file.close()
        raise
    return ProcessHandle(process, cmd, stderr_file=log_file)


class ProcessHandle:
    """
    Handle for a long-lived helper process.

    Attributes:
        command: The argv the process was started with.
        terminated: True once :meth:`terminate` has run.
    """

    def __init__(
        self,
        process: subprocess.Popen,  # type: ignore[type-arg]
        command: list[str] | None = None,
        stderr_file: IO[bytes] | None = None,
    ) -> None:
        self._process = process
        self._stderr_file = stderr_file
        self.command = list(command or [])
        self.terminated = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.poll()

    def is_running(self) -> bool:
        """Return True while the process has not exited."""
        return self._process.poll() is None

    def stderr_text(self) -> str:
        """
        Read whatever the process wrote to stderr.

        Returns an empty string when stderr was not captured or the
        stream has already been closed.
        """
        if self._stderr_file is not None:
            if self._stderr_file.closed:
                return ""
            self._stderr_file.seek(0)
            data = self._stderr_file.read()
        else:
            stream = self._process.stderr
            if stream is None or stream.closed:
                return ""
            data = stream.read()
        if isinstance(data, bytes):
            return data.decode(errors="replace").strip()
        return (data or "").strip()

    def terminate(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> None:
        """
        Stop the process: SIGTERM, wait *grace_period*, then SIGKILL.

        Calling this more than once is a no-op.

        Raises:
            TeardownFailed: If the process is still alive after SIGKILL.
        """
        if self.terminated:
            return
        self.terminated = True

        if self._process.poll() is not None:
            logger.debug("Helper (pid=%d) already exited.", self.pid)
            self._close_streams()
            return

        self._process.terminate()
        try:
            self._process.wait(timeout=grace_period)
            logger.info("Helper (pid=%d) terminated.", self.pid)
            self._close_streams()
            return
        except subprocess.TimeoutExpired:
            logger.warning(
                "Helper (pid=%d) did not exit gracefully, sending SIGKILL.",
                self.pid,
            )

        self._process.kill()
        try:
            self._process.wait(timeout=_KILL_WAIT)
        except subprocess.TimeoutExpired:
            raise TeardownFailed(
                f"Helper (pid={self.pid}) still running after SIGKILL"
            ) from None
        self._close_streams()

    def kill(self) -> None:
        """
        SIGKILL the process without waiting, if it is still running.

        Used when teardown itself is interrupted; unlike
        :meth:`terminate` it ignores the ``terminated`` flag.
        """
        self.terminated = True
        if self._process.poll() is None:
            self._process.kill()

    def _close_streams(self) -> None:
        if self._stderr_file is not None:
            self._stderr_file.close()
        if self._process.stderr is not None:
            self._process.stderr.close()
