"""Tests for the readiness gates of workload tiers."""

from __future__ import annotations

from datetime import timedelta

import pytest
from kubernetes_asyncio.client import ApiException
from structlog.stdlib import BoundLogger

from repomanager.exceptions import KubernetesError
from repomanager.factory import Factory
from repomanager.models.domain.reconcile import (
    Continue,
    PhaseContext,
    RequeueAfter,
)
from repomanager.timeout import Timeout

from ..support.data import read_input_pulp
from ..support.kubernetes import (
    MockOperatorKubernetesApi,
    make_deployment,
    make_stateful_set,
)


def build_context(logger: BoundLogger) -> PhaseContext:
    timeout = Timeout("Reconcile", timedelta(seconds=10))
    return PhaseContext(timeout=timeout, logger=logger, openshift=False)


@pytest.mark.asyncio
async def test_deployment(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
) -> None:
    phases = factory.create_phase_set(factory.create_status_phase())
    pulp = read_input_pulp("basic")
    poll_interval = factory.config.poll_interval

    result = await phases.api.reconcile(pulp, build_context(logger))
    assert result == RequeueAfter(poll_interval)

    deployment = make_deployment("example-api", "pulp", ready=False)
    await mock_kubernetes.create_namespaced_deployment("pulp", deployment)
    result = await phases.api.reconcile(pulp, build_context(logger))
    assert result == RequeueAfter(poll_interval)

    deployment.status.ready_replicas = 1
    result = await phases.api.reconcile(pulp, build_context(logger))
    assert result == Continue("example-api is ready")

    # A new generation that has not been observed yet is not ready.
    deployment.metadata.generation = 2
    result = await phases.api.reconcile(pulp, build_context(logger))
    assert result == RequeueAfter(poll_interval)


@pytest.mark.asyncio
async def test_stateful_set(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
) -> None:
    phases = factory.create_phase_set(factory.create_status_phase())
    pulp = read_input_pulp("basic")

    stateful_set = make_stateful_set("example-database", "pulp")
    await mock_kubernetes.create_namespaced_stateful_set("pulp", stateful_set)
    result = await phases.database.reconcile(pulp, build_context(logger))
    assert result == Continue("example-database is ready")

    # The web tier is a separate workload.
    result = await phases.web.reconcile(pulp, build_context(logger))
    assert isinstance(result, RequeueAfter)


@pytest.mark.asyncio
async def test_cache(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
) -> None:
    phases = factory.create_phase_set(factory.create_status_phase())

    pulp = read_input_pulp("basic")
    result = await phases.cache.reconcile(pulp, build_context(logger))
    assert result == Continue("Cache disabled")

    pulp = read_input_pulp("cache-enabled")
    result = await phases.cache.reconcile(pulp, build_context(logger))
    assert isinstance(result, RequeueAfter)

    deployment = make_deployment("cached-redis", "pulp")
    await mock_kubernetes.create_namespaced_deployment("pulp", deployment)
    result = await phases.cache.reconcile(pulp, build_context(logger))
    assert result == Continue("cached-redis is ready")

    spec = pulp.spec.cache.model_copy(
        update={"external_cache_secret": "redis"}
    )
    pulp.spec.cache = spec
    result = await phases.cache.reconcile(pulp, build_context(logger))
    assert result == Continue("Using external cache")


@pytest.mark.asyncio
async def test_error(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
) -> None:
    phases = factory.create_phase_set(factory.create_status_phase())
    pulp = read_input_pulp("basic")

    def callback(method: str, *args: object) -> None:
        if method == "read_namespaced_deployment":
            raise ApiException(status=500, reason="Internal Server Error")

    mock_kubernetes.error_callback = callback
    with pytest.raises(KubernetesError) as excinfo:
        await phases.worker.reconcile(pulp, build_context(logger))
    assert excinfo.value.name == "example-worker"
    assert excinfo.value.kind == "Deployment"
