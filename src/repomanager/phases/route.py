"""Readiness gate for the OpenShift route."""

from __future__ import annotations

from datetime import timedelta

from ..models.domain.reconcile import (
    Continue,
    PhaseContext,
    PhaseResult,
    RequeueAfter,
)
from ..models.v1.pulp import Pulp
from ..storage.kubernetes.custom import RouteStorage

__all__ = ["RoutePhase"]


class RoutePhase:
    """Wait for the route named after the ``Pulp`` to be admitted.

    Parameters
    ----------
    storage
        Storage layer for routes.
    poll_interval
        How long to wait before checking again if the route is not admitted.
    """

    def __init__(
        self, storage: RouteStorage, poll_interval: timedelta
    ) -> None:
        self._storage = storage
        self._poll_interval = poll_interval

    async def reconcile(
        self, pulp: Pulp, context: PhaseContext
    ) -> PhaseResult:
        admitted = await self._storage.is_admitted(
            pulp.name, pulp.namespace, context.timeout
        )
        if not admitted:
            context.logger.info("Waiting for route to be admitted")
            return RequeueAfter(self._poll_interval)
        return Continue(f"Route {pulp.name} admitted")
