"""Mock for the Kubernetes API.

Extends the Safir mock with the Apps, custom object status, event, and API
discovery calls made by the operator. Every call the operator makes is
implemented here so that the mock accepts the ``_request_timeout`` argument
the storage layer always passes.
"""

from __future__ import annotations

import copy
import os
from collections.abc import Iterator
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

from kubernetes_asyncio import client, config
from kubernetes_asyncio.client import (
    ApiException,
    CoreV1Event,
    V1APIGroup,
    V1APIGroupList,
    V1Deployment,
    V1DeploymentSpec,
    V1DeploymentStatus,
    V1GroupVersionForDiscovery,
    V1LabelSelector,
    V1ObjectMeta,
    V1PodTemplateSpec,
    V1Secret,
    V1StatefulSet,
    V1StatefulSetSpec,
    V1StatefulSetStatus,
)
from safir.testing.kubernetes import MockKubernetesApi

from repomanager.constants import ROUTE_GROUP, ROUTE_VERSION

__all__ = [
    "MockOperatorKubernetesApi",
    "make_deployment",
    "make_route",
    "make_stateful_set",
    "patch_kubernetes",
]


def make_deployment(
    name: str, namespace: str, *, ready: bool = True
) -> V1Deployment:
    """Construct a ``Deployment`` with one desired replica.

    Parameters
    ----------
    name
        Name of the deployment.
    namespace
        Namespace of the deployment.
    ready
        Whether the replica should be reported as ready.

    Returns
    -------
    kubernetes_asyncio.client.V1Deployment
        Constructed deployment.
    """
    return V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=V1ObjectMeta(name=name, namespace=namespace, generation=1),
        spec=V1DeploymentSpec(
            replicas=1,
            selector=V1LabelSelector(match_labels={"app": name}),
            template=V1PodTemplateSpec(),
        ),
        status=V1DeploymentStatus(
            observed_generation=1, ready_replicas=1 if ready else 0
        ),
    )


def make_stateful_set(
    name: str, namespace: str, *, ready: bool = True
) -> V1StatefulSet:
    """Construct a ``StatefulSet`` with one desired replica.

    Parameters
    ----------
    name
        Name of the stateful set.
    namespace
        Namespace of the stateful set.
    ready
        Whether the replica should be reported as ready.

    Returns
    -------
    kubernetes_asyncio.client.V1StatefulSet
        Constructed stateful set.
    """
    return V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=V1ObjectMeta(name=name, namespace=namespace, generation=1),
        spec=V1StatefulSetSpec(
            replicas=1,
            selector=V1LabelSelector(match_labels={"app": name}),
            service_name=name,
            template=V1PodTemplateSpec(),
        ),
        status=V1StatefulSetStatus(
            observed_generation=1,
            replicas=1,
            ready_replicas=1 if ready else 0,
        ),
    )


def make_route(name: str, *, admitted: bool) -> dict[str, Any]:
    """Construct an OpenShift ``Route`` with one router status entry."""
    status = "True" if admitted else "False"
    return {
        "apiVersion": f"{ROUTE_GROUP}/{ROUTE_VERSION}",
        "kind": "Route",
        "metadata": {"name": name},
        "spec": {"to": {"kind": "Service", "name": f"{name}-web"}},
        "status": {
            "ingress": [
                {
                    "host": f"{name}.apps.example.com",
                    "conditions": [{"type": "Admitted", "status": status}],
                }
            ]
        },
    }


class MockOperatorKubernetesApi(MockKubernetesApi):
    """Mock Kubernetes API for testing the operator.

    Objects created through this mock are kept in a private store keyed by
    namespace, kind, and name, independent of the storage of the parent
    class.

    Attributes
    ----------
    events
        All events created, in order.
    status_writes
        Number of successful writes to the status of custom objects.
    """

    def __init__(self) -> None:
        super().__init__()
        self.events: list[CoreV1Event] = []
        self.status_writes = 0
        self._api_groups = ["apps", "batch"]
        self._store: dict[tuple[str, str, str], Any] = {}

    def set_api_groups_for_test(self, groups: list[str]) -> None:
        """Set the API groups reported by ``get_api_versions``.

        Parameters
        ----------
        groups
            Names of the API groups served.
        """
        self._api_groups = groups

    def set_openshift_for_test(self) -> None:
        """Report the OpenShift route group as served."""
        self._api_groups = [*self._api_groups, ROUTE_GROUP]

    def get_events_for_test(
        self, event_type: str | None = None
    ) -> list[CoreV1Event]:
        """Return the events created, optionally filtered by type."""
        if event_type is None:
            return list(self.events)
        return [e for e in self.events if e.type == event_type]

    def replace_custom_object_for_test(
        self, group: str, plural: str, namespace: str, obj: dict[str, Any]
    ) -> None:
        """Replace a stored custom object, including its status."""
        key = (namespace, f"{group}/{plural}", obj["metadata"]["name"])
        self._store[key] = copy.deepcopy(obj)

    # API DISCOVERY

    async def get_api_versions(
        self, *, _request_timeout: float | None = None
    ) -> V1APIGroupList:
        self._maybe_error("get_api_versions")
        groups = [
            V1APIGroup(
                name=name,
                versions=[
                    V1GroupVersionForDiscovery(
                        group_version=f"{name}/v1", version="v1"
                    )
                ],
            )
            for name in self._api_groups
        ]
        return V1APIGroupList(groups=groups)

    # APPS API

    async def create_namespaced_deployment(
        self,
        namespace: str,
        body: V1Deployment,
        *,
        _request_timeout: float | None = None,
    ) -> None:
        self._maybe_error("create_namespaced_deployment", namespace, body)
        self._create(namespace, "Deployment", body.metadata.name, body)

    async def read_namespaced_deployment(
        self,
        name: str,
        namespace: str,
        *,
        _request_timeout: float | None = None,
    ) -> V1Deployment:
        self._maybe_error("read_namespaced_deployment", name, namespace)
        return self._read(namespace, "Deployment", name)

    async def create_namespaced_stateful_set(
        self,
        namespace: str,
        body: V1StatefulSet,
        *,
        _request_timeout: float | None = None,
    ) -> None:
        self._maybe_error("create_namespaced_stateful_set", namespace, body)
        self._create(namespace, "StatefulSet", body.metadata.name, body)

    async def read_namespaced_stateful_set(
        self,
        name: str,
        namespace: str,
        *,
        _request_timeout: float | None = None,
    ) -> V1StatefulSet:
        self._maybe_error("read_namespaced_stateful_set", name, namespace)
        return self._read(namespace, "StatefulSet", name)

    # CUSTOM OBJECT API

    async def create_namespaced_custom_object(
        self,
        group: str,
        version: str,
        namespace: str,
        plural: str,
        body: dict[str, Any],
        *,
        _request_timeout: float | None = None,
    ) -> None:
        self._maybe_error(
            "create_namespaced_custom_object",
            group,
            version,
            namespace,
            plural,
            body,
        )
        body = copy.deepcopy(body)
        metadata = body.setdefault("metadata", {})
        metadata["namespace"] = namespace
        metadata.setdefault("generation", 1)
        metadata["resourceVersion"] = "1"
        key = f"{group}/{plural}"
        self._create(namespace, key, metadata["name"], body)

    async def get_namespaced_custom_object(
        self,
        group: str,
        version: str,
        namespace: str,
        plural: str,
        name: str,
        *,
        _request_timeout: float | None = None,
    ) -> dict[str, Any]:
        self._maybe_error(
            "get_namespaced_custom_object",
            group,
            version,
            namespace,
            plural,
            name,
        )
        obj = self._read(namespace, f"{group}/{plural}", name)
        return copy.deepcopy(obj)

    async def replace_namespaced_custom_object_status(
        self,
        group: str,
        version: str,
        namespace: str,
        plural: str,
        name: str,
        body: dict[str, Any],
        *,
        _request_timeout: float | None = None,
    ) -> dict[str, Any]:
        self._maybe_error(
            "replace_namespaced_custom_object_status",
            group,
            version,
            namespace,
            plural,
            name,
            body,
        )
        obj = self._read(namespace, f"{group}/{plural}", name)
        current = obj["metadata"]["resourceVersion"]
        requested = body.get("metadata", {}).get("resourceVersion")
        if requested and requested != current:
            msg = f"Object {namespace}/{name} has been modified"
            raise ApiException(status=409, reason=msg)
        obj["status"] = copy.deepcopy(body.get("status", {}))
        obj["metadata"]["resourceVersion"] = str(int(current) + 1)
        self.status_writes += 1
        return copy.deepcopy(obj)

    # EVENTS API

    async def create_namespaced_event(
        self,
        namespace: str,
        body: CoreV1Event,
        *,
        _request_timeout: float | None = None,
    ) -> None:
        self._maybe_error("create_namespaced_event", namespace, body)
        self._create(namespace, "Event", body.metadata.name, body)
        self.events.append(body)

    async def read_namespaced_event(
        self,
        name: str,
        namespace: str,
        *,
        _request_timeout: float | None = None,
    ) -> CoreV1Event:
        self._maybe_error("read_namespaced_event", name, namespace)
        return self._read(namespace, "Event", name)

    # SECRETS API

    async def create_namespaced_secret(
        self,
        namespace: str,
        body: V1Secret,
        *,
        _request_timeout: float | None = None,
    ) -> None:
        self._maybe_error("create_namespaced_secret", namespace, body)
        if not body.metadata.namespace:
            body.metadata.namespace = namespace
        self._create(namespace, "Secret", body.metadata.name, body)

    async def read_namespaced_secret(
        self,
        name: str,
        namespace: str,
        *,
        _request_timeout: float | None = None,
    ) -> V1Secret:
        self._maybe_error("read_namespaced_secret", name, namespace)
        return self._read(namespace, "Secret", name)

    def _create(self, namespace: str, kind: str, name: str, obj: Any) -> None:
        if (namespace, kind, name) in self._store:
            msg = f"{kind} {namespace}/{name} already exists"
            raise ApiException(status=409, reason=msg)
        self._store[(namespace, kind, name)] = obj

    def _read(self, namespace: str, kind: str, name: str) -> Any:
        try:
            return self._store[(namespace, kind, name)]
        except KeyError:
            msg = f"{kind} {namespace}/{name} not found"
            raise ApiException(status=404, reason=msg) from None


def patch_kubernetes() -> Iterator[MockOperatorKubernetesApi]:
    """Replace the Kubernetes API with a mock class.

    Derived from `safir.testing.kubernetes.patch_kubernetes`, with the type
    of the mock class changed and the Apps and API discovery interfaces also
    replaced.

    Returns
    -------
    MockOperatorKubernetesApi
        The mock Kubernetes API object.
    """
    mock_api = MockOperatorKubernetesApi()
    with patch.object(config, "load_incluster_config"):
        patchers = []
        for api in ("AppsV1Api", "ApisApi", "CoreV1Api", "CustomObjectsApi"):
            patcher = patch.object(client, api)
            mock_class = patcher.start()
            mock_class.return_value = mock_api
            patchers.append(patcher)
        mock_api_client = Mock(spec=client.ApiClient)
        mock_api_client.close = AsyncMock()
        with patch.object(client, "ApiClient") as mock_client:
            mock_client.return_value = mock_api_client
            os.environ["KUBERNETES_PORT"] = "tcp://10.0.0.1:443"
            yield mock_api
            del os.environ["KUBERNETES_PORT"]
        for patcher in patchers:
            patcher.stop()
