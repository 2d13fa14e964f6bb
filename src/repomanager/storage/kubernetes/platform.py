"""Storage layer for discovery of the Kubernetes platform."""

from __future__ import annotations

from kubernetes_asyncio import client
from kubernetes_asyncio.client import ApiClient, ApiException
from structlog.stdlib import BoundLogger

from ...constants import ROUTE_GROUP
from ...exceptions import KubernetesError
from ...timeout import Timeout

__all__ = ["PlatformStorage"]


class PlatformStorage:
    """Discover capabilities of the cluster from the API server.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        self._api = client.ApisApi(api_client)
        self._logger = logger

    async def is_openshift(self, timeout: Timeout) -> bool:
        """Determine whether the cluster is OpenShift.

        OpenShift is recognized by the API server serving the
        ``route.openshift.io`` API group.

        Parameters
        ----------
        timeout
            Timeout on operation.

        Returns
        -------
        bool
            Whether the cluster serves OpenShift routes.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        """
        try:
            groups = await self._api.get_api_versions(
                _request_timeout=timeout.left()
            )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error listing API groups", e, kind="APIGroup"
            ) from e
        return any(g.name == ROUTE_GROUP for g in groups.groups or [])
