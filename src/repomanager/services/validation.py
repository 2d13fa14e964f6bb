"""Checks of a ``Pulp`` object that must pass before anything is changed."""

from __future__ import annotations

from ..exceptions import (
    IngressPlatformError,
    MultipleStorageBackendsError,
    VersionMismatchError,
)
from ..models.domain.storage import StorageKind, StorageResource
from ..models.v1.pulp import Pulp

__all__ = [
    "resolve_storage_modes",
    "validate_preconditions",
]


def validate_preconditions(pulp: Pulp, *, openshift: bool) -> None:
    """Check the global consistency rules of a ``Pulp`` object.

    Parameters
    ----------
    pulp
        Object to check.
    openshift
        Whether the cluster serves OpenShift routes.

    Raises
    ------
    IngressPlatformError
        Raised if a route is requested on a cluster without routes.
    VersionMismatchError
        Raised if the web tier would run a different release than the API
        tier.
    """
    spec = pulp.spec
    if not spec.is_route and spec.image_version != spec.image_web_version:
        raise VersionMismatchError(spec.image_version, spec.image_web_version)
    if spec.is_route and not openshift:
        raise IngressPlatformError(spec.ingress_type)


def resolve_storage_modes(
    pulp: Pulp,
) -> dict[StorageResource, StorageKind | None]:
    """Determine the storage backend of each resource.

    Parameters
    ----------
    pulp
        Object to check.

    Returns
    -------
    dict of StorageKind or None
        Storage backend for each resource, or `None` if the resource uses
        ephemeral storage.

    Raises
    ------
    MultipleStorageBackendsError
        Raised if more than one backend is configured for a resource.
    """
    modes: dict[StorageResource, StorageKind | None] = {}
    for resource in StorageResource:
        backends = pulp.spec.configured_backends(resource)
        if len(backends) > 1:
            raise MultipleStorageBackendsError(
                resource.value, [str(b) for b in backends]
            )
        modes[resource] = backends[0] if backends else None
    return modes
