"""Dispatch of reconcile requests from kopf to the reconciler."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

import kopf
import sentry_sdk
from safir.slack.blockkit import SlackException
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import BoundLogger

from .config import Config
from .constants import PULP_GROUP
from .exceptions import PulpValidationError
from .models.domain.reconcile import LoopAction, LoopOutcome, ReconcileRequest
from .services.binding import EventSourceBinding
from .services.reconciler import Reconciler

__all__ = ["OperatorManager"]


class OperatorManager:
    """Run the reconciler on behalf of a kopf operator.

    kopf runs the watches and calls back into this class for every change.
    One ``Pulp`` is never reconciled twice at the same time, and at most
    ``max_concurrent_reconciles`` objects are reconciled at once. A failure
    to reconcile one ``Pulp`` never stops the handling of later changes.

    Parameters
    ----------
    reconciler
        Reconciler to run on each request.
    binding
        Watches that produce requests.
    config
        Operator configuration.
    slack_client
        Optional Slack webhook client for alerts.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        reconciler: Reconciler,
        binding: EventSourceBinding,
        config: Config,
        slack_client: SlackWebhookClient | None,
        logger: BoundLogger,
    ) -> None:
        self._reconciler = reconciler
        self._binding = binding
        self._config = config
        self._slack = slack_client
        self._logger = logger

        self._workers = asyncio.Semaphore(config.max_concurrent_reconciles)
        self._locks: dict[ReconcileRequest, asyncio.Lock] = {}
        self._waiting: dict[ReconcileRequest, int] = {}

    def backoff(self, retry: int) -> timedelta:
        """Delay before the next attempt after consecutive failures.

        Parameters
        ----------
        retry
            Number of previous attempts that did not complete.

        Returns
        -------
        datetime.timedelta
            Exponential delay, capped at the configured maximum.
        """
        base = self._config.backoff_base.total_seconds()
        delay = base * 2.0 ** min(retry, 32)
        return min(timedelta(seconds=delay), self._config.backoff_max)

    def build_registry(self) -> kopf.OperatorRegistry:
        """Create the kopf registry holding every handler of the operator.

        Returns
        -------
        kopf.OperatorRegistry
            Registry to pass to `kopf.operator`.
        """
        registry = kopf.OperatorRegistry()
        workers = self._config.max_concurrent_reconciles

        @kopf.on.startup(registry=registry)
        def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
            # Events are recorded by the reconciler with rate limiting.
            settings.posting.enabled = False
            settings.persistence.progress_storage = (
                kopf.AnnotationsProgressStorage(prefix=PULP_GROUP)
            )
            settings.persistence.diffbase_storage = (
                kopf.AnnotationsDiffBaseStorage(
                    prefix=PULP_GROUP, key="last-handled-configuration"
                )
            )
            settings.execution.max_workers = workers

        @kopf.on.login(registry=registry)
        def login(**kwargs: Any) -> kopf.ConnectionInfo | None:
            return kopf.login_with_service_account(
                **kwargs
            ) or kopf.login_with_kubeconfig(**kwargs)

        self._binding.register(registry, self)
        return registry

    async def run(self, stop_flag: asyncio.Event | None = None) -> None:
        """Run the operator until cancelled or until the flag is set.

        Parameters
        ----------
        stop_flag
            If given, the operator exits cleanly once this is set.
        """
        namespace = self._config.watch_namespace
        self._logger.info(
            "Starting operator",
            namespace=namespace,
            workers=self._config.max_concurrent_reconciles,
        )
        await kopf.operator(
            registry=self.build_registry(),
            standalone=True,
            clusterwide=namespace is None,
            namespaces=[namespace] if namespace else [],
            stop_flag=stop_flag,
        )
        self._logger.info("Operator stopped")

    async def process(self, request: ReconcileRequest) -> LoopOutcome:
        """Reconcile one request, waiting for any running reconcile of it.

        Parameters
        ----------
        request
            Identity of the ``Pulp`` to reconcile.

        Returns
        -------
        LoopOutcome
            Outcome reported by the reconciler.
        """
        lock = self._locks.setdefault(request, asyncio.Lock())
        self._waiting[request] = self._waiting.get(request, 0) + 1
        acquired = False
        try:
            async with lock:
                acquired = True
                self._waiting[request] -= 1
                async with self._workers:
                    return await self._reconciler.reconcile(request)
        finally:
            if not acquired:
                self._waiting[request] -= 1
            if not self._waiting[request] and not lock.locked():
                del self._waiting[request]
                del self._locks[request]

    async def handle_pulp(
        self, request: ReconcileRequest, retry: int
    ) -> None:
        """Reconcile a changed ``Pulp`` and map the outcome to kopf.

        Parameters
        ----------
        request
            Identity of the ``Pulp`` to reconcile.
        retry
            Number of previous attempts, as counted by kopf.

        Raises
        ------
        kopf.TemporaryError
            Raised when the ``Pulp`` should be reconciled again, with the
            delay after which to do so.
        """
        logger = self._logger.bind(
            namespace=request.namespace, name=request.name
        )
        try:
            outcome = await self.process(request)
        except PulpValidationError as e:
            delay = self.backoff(retry)
            logger.warning(
                "Pulp is invalid, retrying",
                error=str(e),
                code=e.code,
                delay=delay.total_seconds(),
            )
            raise kopf.TemporaryError(
                str(e), delay=delay.total_seconds()
            ) from e
        except Exception as e:
            delay = self.backoff(retry)
            logger.exception(
                "Uncaught exception reconciling Pulp",
                delay=delay.total_seconds(),
            )
            await self._maybe_post_exception(e)
            raise kopf.TemporaryError(
                str(e), delay=delay.total_seconds()
            ) from e

        logger.debug("Reconcile finished", outcome=str(outcome))
        match outcome.action:
            case LoopAction.DONE:
                return
            case LoopAction.REQUEUE:
                delay = self.backoff(retry)
            case LoopAction.REQUEUE_AFTER:
                delay = outcome.delay or self.backoff(retry)
        raise kopf.TemporaryError(str(outcome), delay=delay.total_seconds())

    async def handle_owned(self, request: ReconcileRequest) -> None:
        """Reconcile a ``Pulp`` after a change to an object it owns.

        Nothing is done if a reconcile of the same ``Pulp`` is already
        waiting to start, since that reconcile will see this change. Errors
        are logged and reported but not raised, and the next change or the
        periodic resync tries again.

        Parameters
        ----------
        request
            Identity of the owning ``Pulp``.
        """
        if self._waiting.get(request):
            return
        logger = self._logger.bind(
            namespace=request.namespace, name=request.name
        )
        try:
            outcome = await self.process(request)
        except PulpValidationError as e:
            logger.warning("Pulp is invalid", error=str(e), code=e.code)
        except Exception as e:
            logger.exception("Uncaught exception reconciling Pulp")
            await self._maybe_post_exception(e)
        else:
            logger.debug("Reconcile finished", outcome=str(outcome))

    async def _maybe_post_exception(self, exc: Exception) -> None:
        """Post an exception to an external service.

        This will post the exception to Slack if Slack reporting is configured
        and Sentry if Sentry is enabled.

        Parameters
        ----------
        exc
            Exception to report.
        """
        sentry_sdk.capture_exception(exc)

        if not self._slack:
            return
        if isinstance(exc, SlackException):
            await self._slack.post_exception(exc)
        else:
            await self._slack.post_uncaught_exception(exc)
