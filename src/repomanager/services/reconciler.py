"""Reconciliation of a single ``Pulp`` object."""

from __future__ import annotations

from structlog.stdlib import BoundLogger

from ..config import Config
from ..exceptions import KubernetesError, PulpValidationError
from ..models.domain.reconcile import (
    LoopOutcome,
    PhaseContext,
    ReconcileRequest,
)
from ..models.v1.pulp import Pulp
from ..phases.base import PhaseSet
from ..phases.status import StatusPhase
from ..storage.kubernetes.custom import PulpStorage
from ..storage.kubernetes.platform import PlatformStorage
from ..timeout import Timeout
from .credentials import DefaultCredentialProvisioner
from .recorder import EventRecorder
from .sequencer import PhaseSequencer, select_phases
from .validation import resolve_storage_modes, validate_preconditions

__all__ = ["Reconciler"]


class Reconciler:
    """Drive one ``Pulp`` object toward its desired state.

    Each call to `reconcile` is one invocation of the reconciliation loop. It
    reads everything it needs fresh from the cluster, so it can be called any
    number of times for the same object. The dispatcher guarantees that two
    invocations for the same object never run at the same time.

    Parameters
    ----------
    config
        Operator configuration.
    pulp_storage
        Storage layer for ``Pulp`` objects.
    platform_storage
        Storage layer for platform discovery.
    provisioner
        Provisioner of the default pull secret.
    recorder
        Event recorder.
    phases
        Phases for every tier.
    status_phase
        Status phase, also used to record failures.
    sequencer
        Runner for the selected phases.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        config: Config,
        pulp_storage: PulpStorage,
        platform_storage: PlatformStorage,
        provisioner: DefaultCredentialProvisioner,
        recorder: EventRecorder,
        phases: PhaseSet,
        status_phase: StatusPhase,
        sequencer: PhaseSequencer,
        logger: BoundLogger,
    ) -> None:
        self._config = config
        self._pulp_storage = pulp_storage
        self._platform = platform_storage
        self._provisioner = provisioner
        self._recorder = recorder
        self._phases = phases
        self._status = status_phase
        self._sequencer = sequencer
        self._logger = logger

    async def reconcile(self, request: ReconcileRequest) -> LoopOutcome:
        """Run one invocation of the reconciliation loop.

        Parameters
        ----------
        request
            Identity of the ``Pulp`` to reconcile.

        Returns
        -------
        LoopOutcome
            What the dispatcher should do next.

        Raises
        ------
        ControllerTimeoutError
            Raised if the invocation took longer than the reconcile timeout.
        InvalidPulpError
            Raised if the ``Pulp`` object could not be parsed.
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        PulpValidationError
            Raised if the ``Pulp`` object is internally inconsistent.
        """
        logger = self._logger.bind(
            namespace=request.namespace, name=request.name
        )
        timeout = Timeout(
            "Reconcile", self._config.reconcile_timeout, request.key
        )
        async with timeout.enforce():
            pulp = await self._pulp_storage.read_pulp(
                request.name, request.namespace, timeout
            )
            if not pulp:
                msg = "Pulp resource not found, ignoring since it was deleted"
                logger.info(msg)
                return LoopOutcome.done()

            openshift = await self._is_openshift(timeout, logger)
            context = PhaseContext(
                timeout=timeout, logger=logger, openshift=openshift
            )
            try:
                return await self._run(pulp, context)
            except PulpValidationError as e:
                logger.warning("Invalid Pulp", error=str(e), code=e.code)
                await self._report_failure(pulp, e, e.reason, context)
                raise
            except Exception as e:
                logger.warning("Reconcile failed", error=str(e))
                await self._report_failure(pulp, e, "ReconcileError", context)
                raise

    async def _run(self, pulp: Pulp, context: PhaseContext) -> LoopOutcome:
        """Validate the ``Pulp``, prepare its namespace, and run the phases."""
        validate_preconditions(pulp, openshift=context.openshift)
        modes = resolve_storage_modes(pulp)
        context.logger.debug(
            "Resolved storage", **{str(k): str(v) for k, v in modes.items()}
        )
        await self._provisioner.ensure(pulp.namespace, context.timeout, pulp)
        phases = select_phases(pulp, self._phases)
        return await self._sequencer.run(pulp, phases, context)

    async def _is_openshift(
        self, timeout: Timeout, logger: BoundLogger
    ) -> bool:
        """Determine the platform, honoring the configuration override.

        A failure to list the API groups is treated as a cluster without
        routes. Only a ``Pulp`` that asks for a route depends on the answer,
        and it then fails validation with a visible warning.
        """
        if self._config.openshift is not None:
            return self._config.openshift
        try:
            openshift = await self._platform.is_openshift(timeout)
        except KubernetesError as e:
            msg = "Unable to detect platform, assuming no routes"
            logger.warning(msg, error=str(e))
            return False
        if openshift:
            logger.debug("Running on OpenShift cluster")
        return openshift

    async def _report_failure(
        self,
        pulp: Pulp,
        error: Exception,
        reason: str,
        context: PhaseContext,
    ) -> None:
        """Tell the owner of the ``Pulp`` why reconciliation stopped."""
        await self._recorder.warning(
            pulp, reason, str(error), context.timeout
        )
        await self._status.set_failed(
            pulp, error, context.timeout, context.logger
        )
