"""Record Kubernetes events against ``Pulp`` objects."""

from __future__ import annotations

import time
from datetime import datetime, timedelta

from kubernetes_asyncio.client import CoreV1Event, V1EventSource, V1ObjectMeta
from safir.datetime import current_datetime
from structlog.stdlib import BoundLogger

from ..constants import EVENT_COMPONENT
from ..exceptions import ControllerTimeoutError, KubernetesError
from ..models.v1.pulp import Pulp
from ..storage.kubernetes.creator import EventStorage
from ..timeout import Timeout

__all__ = ["EventRecorder"]


class EventRecorder:
    """Record audit and warning events against ``Pulp`` objects.

    Events are how the operator tells the owner of a ``Pulp`` what it did or
    why it is stuck. Recording is best-effort: a failure to write an event is
    logged and otherwise ignored.

    Warnings are rate-limited per object and reason, since a ``Pulp`` that
    fails validation is retried with backoff and would otherwise accumulate
    an event for every retry.

    Parameters
    ----------
    storage
        Storage layer for events.
    warning_interval
        Minimum time between two warnings with the same reason for the same
        object.
    logger
        Logger to use.
    """

    def __init__(
        self,
        storage: EventStorage,
        *,
        warning_interval: timedelta,
        logger: BoundLogger,
    ) -> None:
        self._storage = storage
        self._warning_interval = warning_interval
        self._logger = logger
        self._last_warning: dict[tuple[str, str, str], datetime] = {}

    async def normal(
        self, pulp: Pulp, reason: str, message: str, timeout: Timeout
    ) -> None:
        """Record an informational event.

        Parameters
        ----------
        pulp
            Object the event is about.
        reason
            Short CamelCase reason.
        message
            Human-readable message.
        timeout
            Timeout on operation.
        """
        await self._record(pulp, "Normal", reason, message, timeout)

    async def warning(
        self, pulp: Pulp, reason: str, message: str, timeout: Timeout
    ) -> bool:
        """Record a warning event, unless one was recorded recently.

        Parameters
        ----------
        pulp
            Object the event is about.
        reason
            Short CamelCase reason.
        message
            Human-readable message.
        timeout
            Timeout on operation.

        Returns
        -------
        bool
            `True` if the event was sent, `False` if it was suppressed
            because a warning with the same reason was recorded for the same
            object within the warning interval.
        """
        key = (pulp.namespace, pulp.name, reason)
        now = current_datetime(microseconds=True)
        last = self._last_warning.get(key)
        if last and now - last < self._warning_interval:
            self._logger.debug("Suppressing repeated warning", reason=reason)
            return False
        self._forget_warnings_before(now - self._warning_interval)
        self._last_warning[key] = now
        await self._record(pulp, "Warning", reason, message, timeout)
        return True

    async def _record(
        self,
        pulp: Pulp,
        event_type: str,
        reason: str,
        message: str,
        timeout: Timeout,
    ) -> None:
        """Create the event, logging any failure."""
        now = current_datetime(microseconds=True)
        event = CoreV1Event(
            metadata=V1ObjectMeta(
                name=f"{pulp.name}.{time.time_ns():x}",
                namespace=pulp.namespace,
            ),
            involved_object=pulp.to_object_reference(),
            type=event_type,
            reason=reason,
            message=message,
            source=V1EventSource(component=EVENT_COMPONENT),
            reporting_component=EVENT_COMPONENT,
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )
        try:
            await self._storage.create(pulp.namespace, event, timeout)
        except (ControllerTimeoutError, KubernetesError) as e:
            self._logger.warning(
                "Unable to record event", reason=reason, error=str(e)
            )

    def _forget_warnings_before(self, cutoff: datetime) -> None:
        """Drop rate-limit entries that can no longer suppress a warning."""
        expired = [k for k, v in self._last_warning.items() if v <= cutoff]
        for key in expired:
            del self._last_warning[key]
