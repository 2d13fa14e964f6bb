"""Generic Kubernetes object storage supporting only read and create.

Provides generic Kubernetes object management classes and instantiations of
those classes for the core object types the operator touches. The operator
reads workloads built by the tier builders to decide whether a tier is ready,
and it only ever creates two kinds of objects itself: the default pull secret
and events.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from kubernetes_asyncio import client
from kubernetes_asyncio.client import (
    ApiClient,
    ApiException,
    CoreV1Event,
    V1Deployment,
    V1Secret,
    V1StatefulSet,
)
from structlog.stdlib import BoundLogger

from ...exceptions import KubernetesError
from ...models.domain.kubernetes import KubernetesModel
from ...timeout import Timeout

__all__ = [
    "DeploymentStorage",
    "EventStorage",
    "KubernetesObjectCreator",
    "KubernetesObjectReader",
    "SecretStorage",
    "StatefulSetStorage",
]


class KubernetesObjectReader[T: KubernetesModel]:
    """Generic Kubernetes object storage supporting read.

    This class provides a wrapper around any Kubernetes object type that
    implements a read operation with exception conversion. It is separate
    from `KubernetesObjectCreator` so that the mock only has to implement
    create for the object types the operator actually creates.

    This class is not meant to be used directly by code outside of the
    Kubernetes storage layer. Use one of the kind-specific storage classes
    built on top of it instead.

    Parameters
    ----------
    read_method
        Method to read this type of object.
    object_type
        Type of object being acted on.
    kind
        Kubernetes kind of object being acted on.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        read_method: Callable[..., Awaitable[Any]],
        object_type: type[T],
        kind: str,
        logger: BoundLogger,
    ) -> None:
        self._read = read_method
        self._type = object_type
        self._kind = kind
        self._logger = logger

    async def read(
        self, name: str, namespace: str, timeout: Timeout
    ) -> T | None:
        """Read a Kubernetes object.

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
        typing.Any or None
            Kubernetes object, or `None` if it does not exist.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server.
        """
        try:
            return await self._read(
                name, namespace, _request_timeout=timeout.left()
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


class KubernetesObjectCreator[T: KubernetesModel](KubernetesObjectReader[T]):
    """Generic Kubernetes object storage supporting create and read.

    Parameters
    ----------
    create_method
        Method to create this type of object.
    read_method
        Method to read this type of object.
    object_type
        Type of object being acted on.
    kind
        Kubernetes kind of object being acted on.
    logger
        Logger to use.
    """

    def __init__(
        self,
        *,
        create_method: Callable[..., Awaitable[Any]],
        read_method: Callable[..., Awaitable[Any]],
        object_type: type[T],
        kind: str,
        logger: BoundLogger,
    ) -> None:
        super().__init__(
            read_method=read_method,
            object_type=object_type,
            kind=kind,
            logger=logger,
        )
        self._create = create_method

    async def create(self, namespace: str, body: T, timeout: Timeout) -> None:
        """Create a new Kubernetes object.

        Parameters
        ----------
        namespace
            Namespace of the object.
        body
            New object.
        timeout
            Timeout on operation.

        Raises
        ------
        KubernetesError
            Raised for exceptions from the Kubernetes API server. A conflict
            with an existing object has a ``status`` of 409.
        """
        msg = f"Creating {self._kind}"
        self._logger.debug(msg, name=body.metadata.name, namespace=namespace)
        try:
            await self._create(
                namespace, body, _request_timeout=timeout.left()
            )
        except ApiException as e:
            raise KubernetesError.from_exception(
                "Error creating object",
                e,
                kind=self._kind,
                namespace=namespace,
                name=body.metadata.name,
            ) from e


class DeploymentStorage(KubernetesObjectReader[V1Deployment]):
    """Storage layer for ``Deployment`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.AppsV1Api(api_client)
        super().__init__(
            read_method=api.read_namespaced_deployment,
            object_type=V1Deployment,
            kind="Deployment",
            logger=logger,
        )


class EventStorage(KubernetesObjectCreator[CoreV1Event]):
    """Storage layer for ``Event`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.CoreV1Api(api_client)
        super().__init__(
            create_method=api.create_namespaced_event,
            read_method=api.read_namespaced_event,
            object_type=CoreV1Event,
            kind="Event",
            logger=logger,
        )


class SecretStorage(KubernetesObjectCreator[V1Secret]):
    """Storage layer for ``Secret`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.CoreV1Api(api_client)
        super().__init__(
            create_method=api.create_namespaced_secret,
            read_method=api.read_namespaced_secret,
            object_type=V1Secret,
            kind="Secret",
            logger=logger,
        )


class StatefulSetStorage(KubernetesObjectReader[V1StatefulSet]):
    """Storage layer for ``StatefulSet`` objects.

    Parameters
    ----------
    api_client
        Kubernetes API client.
    logger
        Logger to use.
    """

    def __init__(self, api_client: ApiClient, logger: BoundLogger) -> None:
        api = client.AppsV1Api(api_client)
        super().__init__(
            read_method=api.read_namespaced_stateful_set,
            object_type=V1StatefulSet,
            kind="StatefulSet",
            logger=logger,
        )
