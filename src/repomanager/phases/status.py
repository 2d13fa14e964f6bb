"""Aggregation of tier results into the status of a ``Pulp``."""

from __future__ import annotations

from datetime import datetime

from safir.datetime import current_datetime
from structlog.stdlib import BoundLogger

from ..exceptions import (
    ControllerTimeoutError,
    KubernetesError,
    PulpValidationError,
)
from ..models.domain.reconcile import (
    Continue,
    PhaseContext,
    PhaseResult,
    Requeue,
    TierReport,
)
from ..models.v1.pulp import Condition, Pulp, PulpStatus
from ..storage.kubernetes.custom import PulpStorage
from ..timeout import Timeout

__all__ = ["StatusPhase"]

READY_CONDITION = "Ready"
"""Type of the condition summarizing the whole deployment."""


class StatusPhase:
    """Write the status conditions of a ``Pulp``.

    One condition is written for each tier that converged during the
    current invocation, plus an overall ``Ready`` condition. If nothing has
    changed since the last write, no write is made, so running the loop again
    on a converged deployment changes nothing.

    Parameters
    ----------
    storage
        Storage layer for ``Pulp`` objects.
    """

    def __init__(self, storage: PulpStorage) -> None:
        self._storage = storage

    async def reconcile(
        self, pulp: Pulp, context: PhaseContext
    ) -> PhaseResult:
        now = current_datetime()
        conditions = [
            self._build_condition(pulp, r, now) for r in context.reports
        ]
        ready = self._carry_over(
            pulp,
            Condition(
                type=READY_CONDITION,
                status="True",
                reason="Reconciled",
                message="All tiers are ready",
                observed_generation=pulp.metadata.generation,
            ),
            now,
        )
        conditions.append(ready)
        status = PulpStatus(
            conditions=conditions,
            observed_generation=pulp.metadata.generation,
        )
        if status.same_state(pulp.status):
            context.logger.debug("Status unchanged, not updating")
            return Continue("Status unchanged")

        try:
            await self._storage.replace_status(pulp, status, context.timeout)
        except KubernetesError as e:
            if e.is_conflict:
                context.logger.info("Pulp changed while updating status")
                return Requeue()
            raise
        return Continue("Status updated")

    async def set_failed(
        self,
        pulp: Pulp,
        error: Exception,
        timeout: Timeout,
        logger: BoundLogger,
    ) -> None:
        """Mark a ``Pulp`` as not ready because of an error.

        Conditions for individual tiers are kept as they were. This is
        best-effort. Failures are logged and otherwise ignored so that the
        caller can report the original error.

        Parameters
        ----------
        pulp
            Object whose reconciliation failed.
        error
            Error that stopped the reconciliation.
        timeout
            Timeout on operation.
        logger
            Logger to use.
        """
        if isinstance(error, PulpValidationError):
            reason = error.reason
        else:
            reason = "ReconcileError"
        now = current_datetime()
        ready = self._carry_over(
            pulp,
            Condition(
                type=READY_CONDITION,
                status="False",
                reason=reason,
                message=str(error),
                observed_generation=pulp.metadata.generation,
            ),
            now,
        )
        conditions = [
            c for c in pulp.status.conditions if c.type != READY_CONDITION
        ]
        conditions.append(ready)
        status = PulpStatus(
            conditions=conditions,
            observed_generation=pulp.status.observed_generation,
        )
        if status.same_state(pulp.status):
            return
        try:
            await self._storage.replace_status(pulp, status, timeout)
        except (ControllerTimeoutError, KubernetesError) as e:
            logger.warning("Unable to record failure in status", error=str(e))

    def _build_condition(
        self, pulp: Pulp, report: TierReport, now: datetime
    ) -> Condition:
        condition = Condition(
            type=report.tier.condition_type,
            status="True",
            reason="Ready",
            message=report.message or "",
            observed_generation=pulp.metadata.generation,
        )
        return self._carry_over(pulp, condition, now)

    def _carry_over(
        self, pulp: Pulp, condition: Condition, now: datetime
    ) -> Condition:
        """Set the transition time, keeping the old one if status is equal."""
        existing = pulp.status.get_condition(condition.type)
        if existing and existing.status == condition.status:
            transition = existing.last_transition_time or now
        else:
            transition = now
        update = {"last_transition_time": transition}
        return condition.model_copy(update=update)
