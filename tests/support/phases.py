"""Phases that record their calls, for testing sequencing."""

from __future__ import annotations

from repomanager.models.domain.reconcile import (
    Continue,
    PhaseContext,
    PhaseResult,
    Tier,
)
from repomanager.models.v1.pulp import Pulp
from repomanager.phases.base import PhaseSet

__all__ = ["MockPhase", "build_mock_phase_set"]


class MockPhase:
    """Phase that returns a fixed result and counts its calls.

    Parameters
    ----------
    tier
        Tier the phase stands in for.
    calls
        Shared list to which the tier is appended on every call, used to
        check the order in which phases ran.
    result
        Result to return.
    """

    def __init__(
        self,
        tier: Tier,
        calls: list[Tier],
        result: PhaseResult | None = None,
    ) -> None:
        self.tier = tier
        self.result = result or Continue(f"{tier.value} done")
        self.count = 0
        self._calls = calls

    async def reconcile(
        self, pulp: Pulp, context: PhaseContext
    ) -> PhaseResult:
        self.count += 1
        self._calls.append(self.tier)
        return self.result


def build_mock_phase_set(calls: list[Tier]) -> PhaseSet:
    """Build a phase set in which every phase is a `MockPhase`."""
    return PhaseSet(**{t.value: MockPhase(t, calls) for t in Tier})
