"""Readiness gates for the tiers that run as workloads."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, override

from ..models.domain.reconcile import (
    Continue,
    PhaseContext,
    PhaseResult,
    RequeueAfter,
    Tier,
)
from ..models.v1.pulp import Pulp
from ..storage.kubernetes.creator import KubernetesObjectReader

__all__ = [
    "CachePhase",
    "WorkloadPhase",
]


def _is_ready(workload: Any) -> bool:
    """Whether a ``Deployment`` or ``StatefulSet`` has fully rolled out."""
    generation = workload.metadata.generation
    status = workload.status
    if not status:
        return False
    if generation and (status.observed_generation or 0) < generation:
        return False
    desired = workload.spec.replicas if workload.spec else None
    if desired is None:
        desired = 1
    return (status.ready_replicas or 0) >= desired


class WorkloadPhase:
    """Wait for the workload of one tier to become ready.

    The workload itself is built by the tier builders. This phase only
    decides whether the sequence may move on to the next tier.

    Parameters
    ----------
    tier
        Tier this phase reports on.
    suffix
        Suffix appended to the name of the ``Pulp`` to form the name of the
        workload.
    storage
        Storage layer for the kind of workload the tier runs.
    poll_interval
        How long to wait before checking again if the workload is not ready.
    """

    def __init__(
        self,
        *,
        tier: Tier,
        suffix: str,
        storage: KubernetesObjectReader[Any],
        poll_interval: timedelta,
    ) -> None:
        self._tier = tier
        self._suffix = suffix
        self._storage = storage
        self._poll_interval = poll_interval

    async def reconcile(
        self, pulp: Pulp, context: PhaseContext
    ) -> PhaseResult:
        name = f"{pulp.name}-{self._suffix}"
        workload = await self._storage.read(
            name, pulp.namespace, context.timeout
        )
        if not workload:
            msg = f"Waiting for {self._tier.label} workload to be created"
            context.logger.info(msg, workload=name)
            return RequeueAfter(self._poll_interval)
        if not _is_ready(workload):
            msg = f"Waiting for {self._tier.label} workload to be ready"
            context.logger.info(msg, workload=name)
            return RequeueAfter(self._poll_interval)
        return Continue(f"{name} is ready")


class CachePhase(WorkloadPhase):
    """Wait for the Redis cache, if the operator runs one."""

    @override
    async def reconcile(
        self, pulp: Pulp, context: PhaseContext
    ) -> PhaseResult:
        if not pulp.spec.cache.enabled:
            return Continue("Cache disabled")
        if pulp.spec.cache.external_cache_secret:
            return Continue("Using external cache")
        return await super().reconcile(pulp, context)
