"""Storage layer for Kubernetes custom objects."""

from __future__ import annotations

from typing import Any

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, ApiException
from structlog.stdlib import BoundLogger

from ...constants import (
    PULP_GROUP,
    PULP_KIND,
    PULP_PLURAL,
    PULP_VERSION,
    ROUTE_GROUP,
    ROUTE_PLURAL,
    ROUTE_VERSION,
)
from ...exceptions import KubernetesError
from ...models.v1.pulp import Pulp, PulpStatus
from ...timeout import Timeout

__all__ = [
    "CustomStorage",
    "PulpStorage",
    "RouteStorage",
]


class CustomStorage:
    """Storage layer for Kubernetes custom objects.

    Normally, this class should be subclassed to specialize it for a specific
    custom object type, which provides a slightly nicer API, but it can be
    used as-is if desired.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    group
        API group for the custom objects to handle.
    version
        API version for the custom objects to handle.
    plural
        API plural under which those custom objects are managed.
    kind
        Name of the custom object kind, used for error reporting.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        api_client: ApiClient,
        group: str,
        version: str,
        plural: str,
        kind: str,
        logger: BoundLogger,
    ) -> None:
        self._api = client.CustomObjectsApi(api_client)
        self._group = group
        self._version = version
        self._plural = plural
        self._kind = kind
        self._logger = logger

    async def read(
        self, name: str, namespace: str, timeout: Timeout
    ) -> dict[str, Any] | None:
        """Read a custom object.

        Parameters
        ----------
        name
            Name of the custom object.
        namespace
            Namespace of the custom object.
        timeout
            Timeout on operation.

        Returns
        -------
        dict or None
            Custom object, or `None` if it does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        """
        try:
            return await self._api.get_namespaced_custom_object(
                self._group,
                self._version,
                namespace,
                self._plural,
                name,
                _request_timeout=timeout.left(),
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubernetesError.from_exception(
                "Error reading object",
                e,
                kind=self._kind,
                namespace=namespace,
                name=name,
            ) from e


class PulpStorage(CustomStorage):
    """Storage layer for ``Pulp`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        super().__init__(
            api_client=api_client,
            group=PULP_GROUP,
            version=PULP_VERSION,
            plural=PULP_PLURAL,
            kind=PULP_KIND,
            logger=logger,
        )

    async def read_pulp(
        self, name: str, namespace: str, timeout: Timeout
    ) -> Pulp | None:
        """Read and parse a ``Pulp`` object.

        Parameters
        ----------
        name
            Name of the object.
        namespace
            Namespace of the object.
        timeout
            Timeout on operation.

        Returns
        -------
        Pulp or None
            Parsed object, or `None` if it does not exist.

        Raises
        ------
        InvalidPulpError
            Raised if the object could not be parsed.
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        """
        obj = await self.read(name, namespace, timeout)
        if obj is None:
            return None
        return Pulp.from_object(obj)

    async def replace_status(
        self, pulp: Pulp, status: PulpStatus, timeout: Timeout
    ) -> None:
        """Replace the status of a ``Pulp`` object.

        The request carries the resource version of the object as it was
        read, so the write fails with a conflict if the object has changed
        since then.

        Parameters
        ----------
        pulp
            Object whose status should be replaced, as last read.
        status
            New status.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server. A conflict
            has a ``status`` of 409.
        """
        body = {
            "apiVersion": pulp.api_version,
            "kind": pulp.kind,
            "metadata": {
                "name": pulp.name,
                "namespace": pulp.namespace,
                "resourceVersion": pulp.metadata.resource_version,
            },
            "status": status.to_dict(),
        }
        msg = f"Updating {self._kind} status"
        self._logger.debug(msg, name=pulp.name, namespace=pulp.namespace)
        try:
            await self._api.replace_namespaced_custom_object_status(
                self._group,
                self._version,
                pulp.namespace,
                self._plural,
                pulp.name,
                body,
                _request_timeout=timeout.left(),
            )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error updating object status",
                e,
                kind=self._kind,
                namespace=pulp.namespace,
                name=pulp.name,
            ) from e


class RouteStorage(CustomStorage):
    """Storage layer for OpenShift ``Route`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        super().__init__(
            api_client=api_client,
            group=ROUTE_GROUP,
            version=ROUTE_VERSION,
            plural=ROUTE_PLURAL,
            kind="Route",
            logger=logger,
        )

    async def is_admitted(
        self, name: str, namespace: str, timeout: Timeout
    ) -> bool:
        """Check whether a router has admitted a route.

        Parameters
        ----------
        name
            Name of the route.
        namespace
            Namespace of the route.
        timeout
            Timeout on operation.

        Returns
        -------
        bool
            `True` if the route exists and at least one router reports it as
            admitted, `False` otherwise.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        """
        route = await self.read(name, namespace, timeout)
        if not route:
            return False
        for ingress in route.get("status", {}).get("ingress") or []:
            for condition in ingress.get("conditions") or []:
                if (
                    condition.get("type") == "Admitted"
                    and condition.get("status") == "True"
                ):
                    return True
        return False
