"""
Error taxonomy for docks.

Every error the CLI knows how to render derives from :class:`DocksError`.
The ``level`` attribute decides how it is presented:

- ``"error"``: the action failed
- ``"warning"``: the action was refused or aborted by the operator

Tunnel errors carry a ``kind`` string (``"SpawnFailed"``,
``"ConnectTimeout"``, ``"TeardownFailed"``) so callers can branch on the
failure class without importing every subclass.

Failures raised by the body of a tunnel (protocol-client errors) are not
wrapped: they propagate unchanged once teardown has run.
"""

from __future__ import annotations


class DocksError(Exception):
    """Base class for all errors surfaced to the operator."""

    level: str = "error"


class InvalidArgumentError(DocksError):
    """An argument had an invalid or missing value."""

    level = "warning"


class AbortedError(DocksError):
    """The operator declined a confirmation prompt."""

    level = "warning"


class ConfigError(DocksError):
    """Configuration could not be resolved (env, service, or secret)."""


class PaginationStalled(DocksError):
    """A paginated endpoint returned the same continuation token twice."""

    def __init__(self, token: str | None, pages: int) -> None:
        self.token = token
        self.pages = pages
        super().__init__(
            f"Pagination stalled after {pages} page(s): "
            f"continuation token {token!r} did not advance"
        )


class TunnelError(DocksError):
    """Base class for tunnel lifecycle failures."""

    kind: str = "TunnelError"


class SpawnFailed(TunnelError):
    """The tunnel helper could not be started or exited immediately."""

    kind = "SpawnFailed"


class ConnectTimeout(TunnelError):
    """The tunnel never became reachable within the readiness window."""

    kind = "ConnectTimeout"


class TeardownFailed(TunnelError):
    """The tunnel helper did not exit within its grace period."""

    kind = "TeardownFailed"
