"""Tests for dispatching reconcile requests from kopf."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import kopf
import pytest
from kubernetes_asyncio.client import ApiException
from safir.slack.webhook import SlackWebhookClient
from safir.testing.slack import MockSlackWebhook
from structlog.stdlib import BoundLogger

from repomanager.factory import Factory
from repomanager.manager import OperatorManager
from repomanager.models.domain.reconcile import LoopOutcome, ReconcileRequest

from .support.data import create_pulp, create_workloads
from .support.kubernetes import MockOperatorKubernetesApi


def build_manager(
    factory: Factory,
    logger: BoundLogger,
    slack_client: SlackWebhookClient | None = None,
) -> OperatorManager:
    return OperatorManager(
        reconciler=factory.create_reconciler(),
        binding=factory.create_binding(),
        config=factory.config,
        slack_client=slack_client,
        logger=logger,
    )


@pytest.mark.asyncio
async def test_backoff(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
) -> None:
    manager = build_manager(factory, logger)
    assert manager.backoff(0) == timedelta(seconds=1)
    assert manager.backoff(3) == timedelta(seconds=8)
    assert manager.backoff(10) == timedelta(minutes=1)
    assert manager.backoff(10000) == timedelta(minutes=1)


@pytest.mark.asyncio
async def test_done(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
) -> None:
    manager = build_manager(factory, logger)
    pulp = await create_pulp(mock_kubernetes, "basic")
    await create_workloads(mock_kubernetes, pulp)

    await manager.handle_pulp(ReconcileRequest("pulp", "example"), 0)
    assert mock_kubernetes.status_writes == 1

    # A deleted Pulp is done as well.
    await manager.handle_pulp(ReconcileRequest("pulp", "missing"), 0)


@pytest.mark.asyncio
async def test_requeue_after(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
) -> None:
    manager = build_manager(factory, logger)
    await create_pulp(mock_kubernetes, "basic")

    with pytest.raises(kopf.TemporaryError) as excinfo:
        await manager.handle_pulp(ReconcileRequest("pulp", "example"), 4)
    poll_interval = factory.config.poll_interval.total_seconds()
    assert excinfo.value.delay == poll_interval


@pytest.mark.asyncio
async def test_requeue(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    reconciler = factory.create_reconciler()
    manager = OperatorManager(
        reconciler=reconciler,
        binding=factory.create_binding(),
        config=factory.config,
        slack_client=None,
        logger=logger,
    )
    monkeypatch.setattr(
        reconciler, "reconcile", AsyncMock(return_value=LoopOutcome.requeue())
    )

    with pytest.raises(kopf.TemporaryError) as excinfo:
        await manager.handle_pulp(ReconcileRequest("pulp", "example"), 2)
    assert excinfo.value.delay == 4


@pytest.mark.asyncio
async def test_invalid(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    mock_slack: MockSlackWebhook,
    logger: BoundLogger,
) -> None:
    slack_client = SlackWebhookClient(mock_slack.url, "Pulp operator", logger)
    manager = build_manager(factory, logger, slack_client)
    await create_pulp(mock_kubernetes, "mismatch")
    request = ReconcileRequest("pulp", "mismatch")

    with pytest.raises(kopf.TemporaryError) as excinfo:
        await manager.handle_pulp(request, 0)
    assert excinfo.value.delay == 1
    with pytest.raises(kopf.TemporaryError) as excinfo:
        await manager.handle_pulp(request, 1)
    assert excinfo.value.delay == 2

    # Invalid objects are the user's problem and are not alerted on.
    assert mock_slack.messages == []


@pytest.mark.asyncio
async def test_error(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    mock_slack: MockSlackWebhook,
    logger: BoundLogger,
) -> None:
    slack_client = SlackWebhookClient(mock_slack.url, "Pulp operator", logger)
    manager = build_manager(factory, logger, slack_client)
    pulp = await create_pulp(mock_kubernetes, "basic")
    await create_workloads(mock_kubernetes, pulp)

    def callback(method: str, *args: object) -> None:
        if method == "read_namespaced_deployment":
            raise ApiException(status=500, reason="Internal Server Error")

    mock_kubernetes.error_callback = callback
    with pytest.raises(kopf.TemporaryError) as excinfo:
        await manager.handle_pulp(ReconcileRequest("pulp", "example"), 0)
    assert excinfo.value.delay == 1
    assert len(mock_slack.messages) == 1


@pytest.mark.asyncio
async def test_owned_error(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    mock_slack: MockSlackWebhook,
    logger: BoundLogger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    reconciler = factory.create_reconciler()
    slack_client = SlackWebhookClient(mock_slack.url, "Pulp operator", logger)
    manager = OperatorManager(
        reconciler=reconciler,
        binding=factory.create_binding(),
        config=factory.config,
        slack_client=slack_client,
        logger=logger,
    )
    reconcile = AsyncMock(
        side_effect=[
            ConnectionResetError("Connection reset by peer"),
            LoopOutcome.done(),
        ]
    )
    monkeypatch.setattr(reconciler, "reconcile", reconcile)
    request = ReconcileRequest("pulp", "example")

    # An error that is not from Kubernetes does not stop the handling of
    # later changes.
    await manager.handle_owned(request)
    await manager.handle_owned(request)
    assert reconcile.await_count == 2
    assert len(mock_slack.messages) == 1


@pytest.mark.asyncio
async def test_serialized(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    reconciler = factory.create_reconciler()
    manager = OperatorManager(
        reconciler=reconciler,
        binding=factory.create_binding(),
        config=factory.config,
        slack_client=None,
        logger=logger,
    )
    example = ReconcileRequest("pulp", "example")
    other = ReconcileRequest("pulp", "other")
    calls: list[ReconcileRequest] = []
    running: list[ReconcileRequest] = []
    overlaps: list[ReconcileRequest] = []
    release = asyncio.Event()

    async def reconcile(request: ReconcileRequest) -> LoopOutcome:
        calls.append(request)
        if request in running:
            overlaps.append(request)
        running.append(request)
        await release.wait()
        running.remove(request)
        return LoopOutcome.done()

    monkeypatch.setattr(reconciler, "reconcile", reconcile)
    first = asyncio.create_task(manager.handle_owned(example))
    second = asyncio.create_task(manager.handle_owned(example))
    third = asyncio.create_task(manager.handle_owned(other))
    await asyncio.sleep(0.1)
    assert calls == [example, other]

    # A reconcile of example is already waiting, so this change is absorbed.
    await manager.handle_owned(example)

    release.set()
    await asyncio.gather(first, second, third)
    assert calls == [example, other, example]
    assert overlaps == []

    # Nothing is left behind once all reconciles are finished.
    await manager.handle_owned(example)
    assert len(calls) == 4


@pytest.mark.asyncio
async def test_run(
    factory: Factory,
    mock_kubernetes: MockOperatorKubernetesApi,
    logger: BoundLogger,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    operator = AsyncMock()
    monkeypatch.setattr(kopf, "operator", operator)

    await factory.create_manager().run()
    kwargs = operator.call_args.kwargs
    assert isinstance(kwargs["registry"], kopf.OperatorRegistry)
    assert kwargs["clusterwide"]
    assert kwargs["namespaces"] == []

    factory.config.watch_namespace = "pulp"
    stop_flag = asyncio.Event()
    await factory.create_manager().run(stop_flag)
    kwargs = operator.call_args.kwargs
    assert not kwargs["clusterwide"]
    assert kwargs["namespaces"] == ["pulp"]
    assert kwargs["stop_flag"] is stop_flag
