"""Interface shared by every tier phase."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..models.domain.reconcile import PhaseContext, PhaseResult, Tier
from ..models.v1.pulp import Pulp

__all__ = [
    "Phase",
    "PhaseSet",
]


class Phase(Protocol):
    """Reconcile one tier of a Pulp deployment.

    Every phase must be idempotent and must read fresh cluster state on each
    call. Returning `~repomanager.models.domain.reconcile.Failure` and
    raising an exception are equivalent.
    """

    async def reconcile(
        self, pulp: Pulp, context: PhaseContext
    ) -> PhaseResult: ...


@dataclass(frozen=True, slots=True)
class PhaseSet:
    """One phase for each tier."""

    database: Phase
    cache: Phase
    api: Phase
    content: Phase
    worker: Phase
    route: Phase
    web: Phase
    status: Phase

    def for_tier(self, tier: Tier) -> Phase:
        """Return the phase that reconciles a tier.

        Parameters
        ----------
        tier
            Tier to look up.

        Returns
        -------
        Phase
            Phase for that tier.
        """
        return getattr(self, tier.value)
