"""Storage backend kinds for the resources of a Pulp deployment."""

from __future__ import annotations

from enum import StrEnum

__all__ = [
    "DatabaseMode",
    "StorageKind",
    "StorageResource",
]


class StorageResource(StrEnum):
    """Logical resource of a Pulp deployment that needs storage."""

    PULP = "Pulp"
    CACHE = "Cache"
    DATABASE = "Database"


class StorageKind(StrEnum):
    """Kind of storage backend that may be configured for a resource.

    A resource with no configured backend uses an ephemeral ``emptyDir``.
    """

    OBJECT_STORAGE_AZURE = "ObjectStorageAzure"
    OBJECT_STORAGE_S3 = "ObjectStorageS3"
    STORAGE_CLASS = "StorageClass"
    PVC = "PVC"
    EXTERNAL_CACHE = "ExternalCache"
    EXTERNAL_DATABASE = "ExternalDatabase"


class DatabaseMode(StrEnum):
    """How the database tier is provided."""

    EXTERNAL = "external"
    """An existing database outside the deployment is used."""

    MANAGED = "managed"
    """The operator runs the database with explicitly configured storage."""

    UNSET = "unset"
    """The operator runs the database with ephemeral storage."""
