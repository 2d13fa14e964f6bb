"""Data types for interacting with Kubernetes."""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol

from kubernetes_asyncio.client import V1ObjectMeta

__all__ = [
    "KubernetesModel",
    "OwnedKind",
]


class KubernetesModel(Protocol):
    """Protocol for Kubernetes object models.

    kubernetes-asyncio_ doesn't currently expose type information, so this
    tells mypy that all the object models we deal with will have a metadata
    attribute.
    """

    metadata: V1ObjectMeta

    def to_dict(self, *, serialize: bool = False) -> dict[str, Any]: ...


class OwnedKind(Enum):
    """Kinds of Kubernetes objects created on behalf of a ``Pulp``.

    Changes to objects of these kinds trigger reconciliation of the ``Pulp``
    that owns them.
    """

    STATEFUL_SET = "StatefulSet"
    DEPLOYMENT = "Deployment"
    SERVICE = "Service"
    SECRET = "Secret"
    CONFIG_MAP = "ConfigMap"

    @property
    def api_version(self) -> str:
        """API group and version serving objects of this kind."""
        match self:
            case OwnedKind.STATEFUL_SET | OwnedKind.DEPLOYMENT:
                return "apps/v1"
            case _:
                return "v1"

    @property
    def plural(self) -> str:
        """Resource name under which objects of this kind are served."""
        return self.value.lower() + "s"
