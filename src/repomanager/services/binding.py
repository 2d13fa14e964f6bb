"""Mapping of cluster changes to reconcile requests."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Protocol

import kopf
from structlog.stdlib import BoundLogger

from ..constants import PULP_GROUP, PULP_KIND, PULP_PLURAL, PULP_VERSION
from ..models.domain.kubernetes import OwnedKind
from ..models.domain.reconcile import ReconcileRequest

__all__ = ["EventSourceBinding", "RequestHandler"]


class RequestHandler(Protocol):
    """Receiver of the reconcile requests produced by the binding."""

    async def handle_pulp(
        self, request: ReconcileRequest, retry: int
    ) -> None:
        """Reconcile a ``Pulp`` that changed, raising to ask for a retry."""

    async def handle_owned(self, request: ReconcileRequest) -> None:
        """Reconcile a ``Pulp`` after a change to an object it owns."""


class EventSourceBinding:
    """Watch ``Pulp`` objects and the objects they own.

    Every change to a ``Pulp`` or to an object controlled by a ``Pulp``
    produces a reconcile request for that ``Pulp``. The watches themselves
    are run by kopf, which reconnects after errors and resumes from the last
    seen version.

    Changes to a ``Pulp`` go through kopf's change handlers, so a
    reconciliation that asks for a retry is retried by kopf until it
    completes. Every ``Pulp`` is also reconciled periodically, which picks
    up anything a reconciliation triggered by an owned object left undone.

    Parameters
    ----------
    resync_interval
        How often to reconcile every ``Pulp`` even without changes.
    logger
        Logger to use.
    """

    def __init__(
        self, *, resync_interval: timedelta, logger: BoundLogger
    ) -> None:
        self._resync_interval = resync_interval
        self._logger = logger

    @property
    def kinds(self) -> list[str]:
        """Kinds of objects that are watched."""
        return [PULP_KIND, *(k.value for k in OwnedKind)]

    def requests_for_object(
        self, obj: Mapping[str, Any], *, owned: bool
    ) -> list[ReconcileRequest]:
        """Determine which ``Pulp`` objects a changed object affects.

        Parameters
        ----------
        obj
            Raw changed object, as delivered by the watch.
        owned
            Whether the object is of an owned kind rather than a ``Pulp``.

        Returns
        -------
        list of ReconcileRequest
            Requests for the affected objects. This is empty if the object
            is not controlled by a ``Pulp``.
        """
        metadata = obj.get("metadata") or {}
        namespace = metadata.get("namespace")
        if not namespace:
            return []
        if not owned:
            name = metadata.get("name")
            return [ReconcileRequest(namespace, name)] if name else []
        for ref in metadata.get("ownerReferences") or []:
            if not ref.get("controller") or ref.get("kind") != PULP_KIND:
                continue
            group = (ref.get("apiVersion") or "").split("/", 1)[0]
            if group != PULP_GROUP or not ref.get("name"):
                continue
            return [ReconcileRequest(namespace, ref["name"])]
        return []

    async def on_pulp(
        self,
        handler: RequestHandler,
        body: Mapping[str, Any],
        retry: int,
    ) -> None:
        """Pass a changed ``Pulp`` to the handler.

        Exceptions from the handler are propagated so that kopf retries.
        """
        for request in self.requests_for_object(body, owned=False):
            await handler.handle_pulp(request, retry)

    async def on_owned(
        self, handler: RequestHandler, body: Mapping[str, Any]
    ) -> None:
        """Pass the owner of a changed object to the handler."""
        for request in self.requests_for_object(body, owned=True):
            await handler.handle_owned(request)

    def register(
        self, registry: kopf.OperatorRegistry, handler: RequestHandler
    ) -> None:
        """Register the watches with kopf.

        Parameters
        ----------
        registry
            Registry of the kopf operator that will run the watches.
        handler
            Receiver of the reconcile requests.
        """
        pulp = (PULP_GROUP, PULP_VERSION, PULP_PLURAL)

        async def pulp_changed(
            body: kopf.Body, retry: int, **_: Any
        ) -> None:
            await self.on_pulp(handler, body, retry)

        async def pulp_resync(body: kopf.Body, retry: int, **_: Any) -> None:
            await self.on_pulp(handler, body, retry)

        async def owned_changed(body: kopf.Body, **_: Any) -> None:
            await self.on_owned(handler, body)

        kopf.on.create(*pulp, id="create", registry=registry)(pulp_changed)
        kopf.on.update(
            *pulp, id="update", field="spec", registry=registry
        )(pulp_changed)
        kopf.on.resume(*pulp, id="resume", registry=registry)(pulp_changed)
        kopf.on.timer(
            *pulp,
            id="resync",
            interval=self._resync_interval.total_seconds(),
            idle=self._resync_interval.total_seconds(),
            registry=registry,
        )(pulp_resync)
        for kind in OwnedKind:
            kopf.on.event(
                kind.api_version,
                kind.plural,
                id=f"{kind.plural}-owner",
                registry=registry,
            )(owned_changed)
        self._logger.debug("Registered watches", kinds=self.kinds)
