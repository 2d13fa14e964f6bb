"""Component factory and process-global context."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from typing import Self

import structlog
from kubernetes_asyncio.client import ApiClient
from safir.kubernetes import initialize_kubernetes
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import BoundLogger

from .config import Config
from .constants import ROOT_LOGGER
from .manager import OperatorManager
from .models.domain.reconcile import Tier
from .phases.base import PhaseSet
from .phases.route import RoutePhase
from .phases.status import StatusPhase
from .phases.workload import CachePhase, WorkloadPhase
from .services.binding import EventSourceBinding
from .services.credentials import DefaultCredentialProvisioner
from .services.reconciler import Reconciler
from .services.recorder import EventRecorder
from .services.sequencer import PhaseSequencer
from .storage.kubernetes.creator import (
    DeploymentStorage,
    EventStorage,
    SecretStorage,
    StatefulSetStorage,
)
from .storage.kubernetes.custom import PulpStorage, RouteStorage
from .storage.kubernetes.platform import PlatformStorage

__all__ = ["Factory", "ProcessContext"]


@dataclass(frozen=True, slots=True)
class ProcessContext:
    """Per-process global application state.

    This object holds all of the per-process singletons. It is used by the
    `Factory` class as a source of dependencies to inject into created
    service and storage objects.
    """

    config: Config
    """Operator configuration."""

    kubernetes_client: ApiClient
    """Shared Kubernetes client."""

    slack_client: SlackWebhookClient | None
    """Client for posting alerts to Slack, if configured."""

    @classmethod
    async def from_config(cls, config: Config) -> Self:
        """Create a new process context from the operator configuration.

        Parameters
        ----------
        config
            Operator configuration.

        Returns
        -------
        ProcessContext
            Shared context for an operator process.
        """
        await initialize_kubernetes()
        logger = structlog.get_logger(ROOT_LOGGER)
        slack_client = None
        if config.alert_hook:
            slack_client = SlackWebhookClient(
                config.alert_hook.get_secret_value(), "Pulp operator", logger
            )
        return cls(
            config=config,
            kubernetes_client=ApiClient(),
            slack_client=slack_client,
        )

    async def aclose(self) -> None:
        """Free allocated resources."""
        await self.kubernetes_client.close()


class Factory:
    """Build operator components.

    Uses the contents of a `ProcessContext` to construct the components of
    the operator on demand.

    Parameters
    ----------
    context
        Shared process context.
    logger
        Logger to use for messages.
    """

    @classmethod
    @asynccontextmanager
    async def standalone(cls, config: Config) -> AsyncIterator[Self]:
        """Async context manager for operator components.

        Intended for the command-line interface or the test suite.

        Parameters
        ----------
        config
            Operator configuration.

        Yields
        ------
        Factory
            Newly-created factory. Must be used as a context manager.
        """
        logger = structlog.get_logger(ROOT_LOGGER)
        context = await ProcessContext.from_config(config)
        factory = cls(context, logger)
        async with aclosing(factory):
            yield factory

    def __init__(self, context: ProcessContext, logger: BoundLogger) -> None:
        self._context = context
        self._logger = logger

    @property
    def config(self) -> Config:
        """Operator configuration, from the `ProcessContext`."""
        return self._context.config

    @property
    def slack_client(self) -> SlackWebhookClient | None:
        """Slack client for alerts, from the `ProcessContext`."""
        return self._context.slack_client

    async def aclose(self) -> None:
        """Shut down the factory and the process context."""
        await self._context.aclose()

    def create_binding(self) -> EventSourceBinding:
        """Create the watches that produce reconcile requests.

        Returns
        -------
        EventSourceBinding
            Newly-created event source binding.
        """
        return EventSourceBinding(
            resync_interval=self.config.resync_interval, logger=self._logger
        )

    def create_credential_provisioner(
        self, recorder: EventRecorder
    ) -> DefaultCredentialProvisioner:
        """Create the provisioner of the default pull secret.

        Parameters
        ----------
        recorder
            Event recorder used to note the creation of the secret.

        Returns
        -------
        DefaultCredentialProvisioner
            Newly-created provisioner.
        """
        return DefaultCredentialProvisioner(
            SecretStorage(self._context.kubernetes_client, self._logger),
            recorder,
            self._logger,
        )

    def create_event_recorder(self) -> EventRecorder:
        """Create an event recorder.

        Each recorder keeps its own rate-limiting state for warnings.

        Returns
        -------
        EventRecorder
            Newly-created event recorder.
        """
        return EventRecorder(
            EventStorage(self._context.kubernetes_client, self._logger),
            warning_interval=self.config.warning_event_interval,
            logger=self._logger,
        )

    def create_phase_set(self, status_phase: StatusPhase) -> PhaseSet:
        """Create the readiness phases for every tier.

        Parameters
        ----------
        status_phase
            Phase that writes the status, shared with the reconciler.

        Returns
        -------
        PhaseSet
            Newly-created phases.
        """
        api_client = self._context.kubernetes_client
        poll_interval = self.config.poll_interval
        deployments = DeploymentStorage(api_client, self._logger)

        def deployment(tier: Tier, suffix: str) -> WorkloadPhase:
            return WorkloadPhase(
                tier=tier,
                suffix=suffix,
                storage=deployments,
                poll_interval=poll_interval,
            )

        return PhaseSet(
            database=WorkloadPhase(
                tier=Tier.DATABASE,
                suffix="database",
                storage=StatefulSetStorage(api_client, self._logger),
                poll_interval=poll_interval,
            ),
            cache=CachePhase(
                tier=Tier.CACHE,
                suffix="redis",
                storage=deployments,
                poll_interval=poll_interval,
            ),
            api=deployment(Tier.API, "api"),
            content=deployment(Tier.CONTENT, "content"),
            worker=deployment(Tier.WORKER, "worker"),
            route=RoutePhase(
                RouteStorage(api_client, self._logger), poll_interval
            ),
            web=deployment(Tier.WEB, "web"),
            status=status_phase,
        )

    def create_status_phase(self) -> StatusPhase:
        """Create the phase that writes the status of a ``Pulp``.

        Returns
        -------
        StatusPhase
            Newly-created status phase.
        """
        api_client = self._context.kubernetes_client
        return StatusPhase(PulpStorage(api_client, self._logger))

    def create_manager(self) -> OperatorManager:
        """Create the manager that runs the reconciler under kopf.

        Returns
        -------
        OperatorManager
            Newly-created manager.
        """
        return OperatorManager(
            reconciler=self.create_reconciler(),
            binding=self.create_binding(),
            config=self.config,
            slack_client=self.slack_client,
            logger=self._logger,
        )

    def create_reconciler(self) -> Reconciler:
        """Create the reconciler.

        The reconciler holds the rate-limiting state of warning events, so
        only one should be created per process.

        Returns
        -------
        Reconciler
            Newly-created reconciler.
        """
        api_client = self._context.kubernetes_client
        pulp_storage = PulpStorage(api_client, self._logger)
        recorder = self.create_event_recorder()
        status_phase = self.create_status_phase()
        return Reconciler(
            config=self.config,
            pulp_storage=pulp_storage,
            platform_storage=PlatformStorage(api_client, self._logger),
            provisioner=self.create_credential_provisioner(recorder),
            recorder=recorder,
            phases=self.create_phase_set(status_phase),
            status_phase=status_phase,
            sequencer=PhaseSequencer(),
            logger=self._logger,
        )
