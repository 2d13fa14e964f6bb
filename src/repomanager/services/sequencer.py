"""Ordered execution of the tier phases."""

from __future__ import annotations

from ..models.domain.reconcile import (
    Continue,
    Failure,
    LoopOutcome,
    PhaseContext,
    Requeue,
    RequeueAfter,
    Tier,
    TierReport,
)
from ..models.domain.storage import DatabaseMode
from ..models.v1.pulp import Pulp
from ..phases.base import Phase, PhaseSet

__all__ = [
    "PhaseSequencer",
    "select_phases",
]


def select_phases(pulp: Pulp, phases: PhaseSet) -> list[tuple[Tier, Phase]]:
    """Choose the phases to run for a ``Pulp``, in order.

    The database tier is skipped when an external database is used. Exactly
    one of the route and web tiers runs, depending on the ingress type.

    Parameters
    ----------
    pulp
        Object being reconciled.
    phases
        Available phases.

    Returns
    -------
    list of tuple
        Pairs of tier and phase, in execution order.
    """
    tiers = []
    if pulp.spec.database.mode != DatabaseMode.EXTERNAL:
        tiers.append(Tier.DATABASE)
    tiers.extend([Tier.CACHE, Tier.API, Tier.CONTENT, Tier.WORKER])
    tiers.append(Tier.ROUTE if pulp.spec.is_route else Tier.WEB)
    tiers.append(Tier.STATUS)
    return [(t, phases.for_tier(t)) for t in tiers]


class PhaseSequencer:
    """Run tier phases strictly one after another.

    The first phase that does not return
    `~repomanager.models.domain.reconcile.Continue` ends the sequence. Later
    phases are not run, and the work done by earlier phases is kept.
    """

    async def run(
        self,
        pulp: Pulp,
        phases: list[tuple[Tier, Phase]],
        context: PhaseContext,
    ) -> LoopOutcome:
        """Run the phases in order.

        Parameters
        ----------
        pulp
            Object being reconciled.
        phases
            Pairs of tier and phase, in execution order.
        context
            Execution context of this invocation. Reports of converged tiers
            are appended to it.

        Returns
        -------
        LoopOutcome
            Outcome of the sequence.

        Raises
        ------
        Exception
            Any error returned or raised by a phase, unchanged.
        """
        for tier, phase in phases:
            context.logger.info(f"Running {tier.label} tasks")
            result = await phase.reconcile(pulp, context)
            match result:
                case Continue(message=message):
                    context.reports.append(TierReport(tier, message))
                case Requeue() | RequeueAfter():
                    outcome = LoopOutcome.from_result(result)
                    context.logger.debug(
                        f"{tier.label.capitalize()} tier not converged",
                        outcome=str(outcome),
                    )
                    return outcome
                case Failure(error=error):
                    raise error
        return LoopOutcome.done()
