"""
DryRunGate: one decision point for simulated mutations.

Mutating calls (publish a job, remove a dock, terminate an instance) are
wrapped in :meth:`DryRunGate.guard` instead of branching on a ``dry``
flag at every call site. Both paths return a :class:`GateOutcome`, so
callers render real and simulated runs the same way.

Dry runs:
- never call the mutation
- take the gate's ``simulated_duration`` so timing stays comparable
- return ``GateOutcome(performed=False, ...)`` rather than raising
"""

from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

# How long a suppressed mutation "takes"
DEFAULT_SIMULATED_DURATION: float = 0.25


class IntentKind(str, enum.Enum):
    READ = "read"
    MUTATE = "mutate"


@dataclass(frozen=True)
class OperationIntent:
    """
    What the caller means to do.

    Attributes:
        kind: READ operations always run; MUTATE operations are gated.
        dry_run: Suppress the side effect of MUTATE operations.
    """

    kind: IntentKind = IntentKind.MUTATE
    dry_run: bool = False

    @classmethod
    def read(cls, dry_run: bool = False) -> OperationIntent:
        return cls(IntentKind.READ, dry_run)

    @classmethod
    def mutate(cls, dry_run: bool = False) -> OperationIntent:
        return cls(IntentKind.MUTATE, dry_run)

    @property
    def suppressed(self) -> bool:
        """True when a side effect must not happen."""
        return self.kind is IntentKind.MUTATE and self.dry_run


@dataclass(frozen=True)
class GateOutcome:
    """
    Result of a gated call.

    Attributes:
        performed: Whether the mutation actually ran.
        description: Human-readable description of the action.
        value: The mutation's return value (None when not performed).
    """

    performed: bool
    description: str
    value: Any = None

    def __str__(self) -> str:
        if self.performed:
            return self.description
        return f"{self.description} (dry run, not performed)"


class DryRunGate:
    """
    Gate that runs or suppresses mutations according to an intent.

    Args:
        simulated_duration: Seconds a suppressed mutation waits before
            returning.
        sleep: Sleep function (injectable for tests).
    """

    def __init__(
        self,
        simulated_duration: float = DEFAULT_SIMULATED_DURATION,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.simulated_duration = simulated_duration
        self._sleep = sleep

    def guard(
        self,
        intent: OperationIntent,
        mutate: Callable[[], Any],
        description: str = "",
    ) -> GateOutcome:
        """
        Run *mutate* unless *intent* says it must be suppressed.

        Args:
            intent: Caller intent.
            mutate: Zero-argument callable performing the side effect.
            description: What the action does, used for logging and as
                the outcome description.

        Returns:
            A GateOutcome. Exceptions from *mutate* propagate unchanged.
        """
        if intent.suppressed:
            if self.simulated_duration > 0:
                self._sleep(self.simulated_duration)
            logger.warning("NOT PERFORMED (dry run): %s", description)
            return GateOutcome(performed=False, description=description)

        logger.debug("Performing: %s", description)
        value = mutate()
        return GateOutcome(performed=True, description=description, value=value)
