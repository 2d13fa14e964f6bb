"""Domain types for a single reconciliation of a ``Pulp`` object."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum, StrEnum
from typing import Self

from structlog.stdlib import BoundLogger

from ...timeout import Timeout

__all__ = [
    "Continue",
    "Failure",
    "LoopAction",
    "LoopOutcome",
    "PhaseContext",
    "PhaseResult",
    "ReconcileRequest",
    "Requeue",
    "RequeueAfter",
    "Tier",
    "TierReport",
]


class Tier(StrEnum):
    """One layer of a Pulp deployment, reconciled in a fixed order."""

    DATABASE = "database"
    CACHE = "cache"
    API = "api"
    CONTENT = "content"
    WORKER = "worker"
    ROUTE = "route"
    WEB = "web"
    STATUS = "status"

    @property
    def label(self) -> str:
        """Human-readable name used in log messages."""
        if self == Tier.API:
            return "API"
        return self.value

    @property
    def condition_type(self) -> str:
        """Type of the status condition that reports on this tier."""
        return f"{self.value.capitalize()}-Ready"


@dataclass(frozen=True)
class ReconcileRequest:
    """Identity of a ``Pulp`` object to reconcile."""

    namespace: str
    """Namespace of the ``Pulp`` object."""

    name: str
    """Name of the ``Pulp`` object."""

    @property
    def key(self) -> str:
        """Key used to deduplicate requests and in log messages."""
        return f"{self.namespace}/{self.name}"

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True)
class Continue:
    """The tier is converged and the next tier may run."""

    message: str | None = None
    """Optional human-readable note recorded in the tier report."""


@dataclass(frozen=True)
class Requeue:
    """Stop the sequence and retry soon."""


@dataclass(frozen=True)
class RequeueAfter:
    """Stop the sequence and retry after a delay."""

    delay: timedelta
    """How long to wait before retrying."""


@dataclass(frozen=True)
class Failure:
    """Stop the sequence and report an error."""

    error: Exception
    """Error that stopped the tier."""


type PhaseResult = Continue | Requeue | RequeueAfter | Failure
"""Result of running the phase for one tier."""


class LoopAction(Enum):
    """What the dispatcher should do after an invocation."""

    DONE = "done"
    REQUEUE = "requeue"
    REQUEUE_AFTER = "requeue_after"


@dataclass(frozen=True)
class LoopOutcome:
    """Result of one invocation of the reconciliation loop."""

    action: LoopAction
    """Action to take."""

    delay: timedelta | None = None
    """Delay before retrying, set only for ``requeue_after``."""

    @classmethod
    def done(cls) -> Self:
        """Converged, nothing more to do until something changes."""
        return cls(action=LoopAction.DONE)

    @classmethod
    def requeue(cls) -> Self:
        """Retry using the dispatcher's backoff."""
        return cls(action=LoopAction.REQUEUE)

    @classmethod
    def requeue_after(cls, delay: timedelta) -> Self:
        """Retry after a fixed delay.

        Parameters
        ----------
        delay
            How long to wait before retrying.
        """
        return cls(action=LoopAction.REQUEUE_AFTER, delay=delay)

    @classmethod
    def from_result(cls, result: Requeue | RequeueAfter) -> Self:
        """Convert a phase result that halted the sequence.

        Parameters
        ----------
        result
            Result of the phase that stopped the sequence.

        Returns
        -------
        LoopOutcome
            Corresponding loop outcome.
        """
        match result:
            case RequeueAfter(delay=delay):
                return cls.requeue_after(delay)
            case Requeue():
                return cls.requeue()

    def __str__(self) -> str:
        if self.delay is not None:
            return f"{self.action.value} ({self.delay.total_seconds()}s)"
        return self.action.value


@dataclass(frozen=True)
class TierReport:
    """Record of a tier that converged during this invocation."""

    tier: Tier
    """Tier that converged."""

    message: str | None = None
    """Message returned by the tier's phase, if any."""


@dataclass
class PhaseContext:
    """Execution context handed to every phase of one invocation."""

    timeout: Timeout
    """Timeout for the whole invocation."""

    logger: BoundLogger
    """Logger bound to the identity of the ``Pulp`` being reconciled."""

    openshift: bool
    """Whether the cluster serves OpenShift routes."""

    reports: list[TierReport] = field(default_factory=list)
    """Reports of the tiers that have converged so far, in order."""
