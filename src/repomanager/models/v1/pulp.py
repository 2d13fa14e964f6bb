"""Models for the ``Pulp`` custom resource.

The ``Pulp`` object is the desired state of one Pulp deployment. Only the
fields the reconciliation loop itself reads are modeled here. Everything
else in the object is ignored and left to the tier builders.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Self

from kubernetes_asyncio.client import V1ObjectReference
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel

from ...constants import PULP_GROUP, PULP_KIND, PULP_VERSION
from ...exceptions import InvalidPulpError
from ..domain.storage import DatabaseMode, StorageKind, StorageResource

__all__ = [
    "CacheConfig",
    "Condition",
    "DatabaseConfig",
    "ExternalDatabase",
    "Pulp",
    "PulpMetadata",
    "PulpSpec",
    "PulpStatus",
]


def _blank_to_none(v: Any) -> Any:
    """Normalize blank strings so that "configured" means non-blank."""
    if isinstance(v, str) and not v.strip():
        return None
    return v


class ExternalDatabase(BaseModel):
    """Reference to a database that is not managed by the operator."""

    secret_name: Annotated[
        str,
        Field(
            title="Connection secret",
            description="Secret holding the database connection details",
        ),
    ]


class DatabaseConfig(BaseModel):
    """Database settings of a ``Pulp``."""

    model_config = ConfigDict(extra="ignore")

    external_db_secret: Annotated[
        str | None,
        Field(
            title="External database secret",
            description=(
                "Secret with the connection details of an existing"
                " PostgreSQL database. If set, the operator does not run a"
                " database."
            ),
        ),
    ] = None

    postgres_storage_class: Annotated[
        str | None,
        Field(
            title="Database storage class",
            description="Storage class for the managed database volume",
        ),
    ] = None

    pvc: Annotated[
        str | None,
        Field(
            title="Database PVC",
            description="Existing claim for the managed database volume",
        ),
    ] = None

    @field_validator(
        "external_db_secret", "postgres_storage_class", "pvc", mode="before"
    )
    @classmethod
    def _validate_blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @property
    def external(self) -> ExternalDatabase | None:
        """The external database reference, if one is configured."""
        if self.external_db_secret is None:
            return None
        return ExternalDatabase(secret_name=self.external_db_secret)

    @property
    def mode(self) -> DatabaseMode:
        """How the database tier is provided."""
        if self.external_db_secret is not None:
            return DatabaseMode.EXTERNAL
        if self.postgres_storage_class is not None or self.pvc is not None:
            return DatabaseMode.MANAGED
        return DatabaseMode.UNSET

    def configured_backends(self) -> list[StorageKind]:
        """List the storage backends configured for the database."""
        backends = []
        if self.postgres_storage_class is not None:
            backends.append(StorageKind.STORAGE_CLASS)
        if self.pvc is not None:
            backends.append(StorageKind.PVC)
        if self.external_db_secret is not None:
            backends.append(StorageKind.EXTERNAL_DATABASE)
        return backends


class CacheConfig(BaseModel):
    """Redis cache settings of a ``Pulp``."""

    model_config = ConfigDict(extra="ignore")

    enabled: Annotated[
        bool,
        Field(title="Cache enabled", description="Whether to run a cache"),
    ] = False

    external_cache_secret: Annotated[
        str | None,
        Field(
            title="External cache secret",
            description="Secret with the connection details of a Redis",
        ),
    ] = None

    redis_storage_class: Annotated[
        str | None,
        Field(
            title="Cache storage class",
            description="Storage class for the managed cache volume",
        ),
    ] = None

    pvc: Annotated[
        str | None,
        Field(
            title="Cache PVC",
            description="Existing claim for the managed cache volume",
        ),
    ] = None

    @field_validator(
        "external_cache_secret", "redis_storage_class", "pvc", mode="before"
    )
    @classmethod
    def _validate_blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    def configured_backends(self) -> list[StorageKind]:
        """List the storage backends configured for the cache."""
        backends = []
        if self.redis_storage_class is not None:
            backends.append(StorageKind.STORAGE_CLASS)
        if self.pvc is not None:
            backends.append(StorageKind.PVC)
        if self.external_cache_secret is not None:
            backends.append(StorageKind.EXTERNAL_CACHE)
        return backends


class PulpSpec(BaseModel):
    """Desired state of a Pulp deployment."""

    model_config = ConfigDict(extra="ignore")

    ingress_type: Annotated[
        str,
        Field(
            title="Ingress type",
            description=(
                "How the deployment is exposed. The value ``route`` selects"
                " an OpenShift route instead of the web tier."
            ),
            examples=["route", "ingress", "nodeport"],
        ),
    ] = ""

    image_version: Annotated[
        str, Field(title="Image version", examples=["3.49"])
    ] = ""

    image_web_version: Annotated[
        str, Field(title="Web image version", examples=["3.49"])
    ] = ""

    object_storage_azure_secret: Annotated[
        str | None, Field(title="Azure Blob storage secret")
    ] = None

    object_storage_s3_secret: Annotated[
        str | None, Field(title="S3 storage secret")
    ] = None

    file_storage_class: Annotated[
        str | None, Field(title="Content storage class")
    ] = None

    pvc: Annotated[str | None, Field(title="Content PVC")] = None

    database: Annotated[
        DatabaseConfig, Field(default_factory=DatabaseConfig)
    ]

    cache: Annotated[CacheConfig, Field(default_factory=CacheConfig)]

    @field_validator(
        "object_storage_azure_secret",
        "object_storage_s3_secret",
        "file_storage_class",
        "pvc",
        mode="before",
    )
    @classmethod
    def _validate_blank(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator(
        "ingress_type", "image_version", "image_web_version", mode="before"
    )
    @classmethod
    def _validate_null_string(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("database", "cache", mode="before")
    @classmethod
    def _validate_null_block(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def is_route(self) -> bool:
        """Whether the deployment is exposed through an OpenShift route."""
        return self.ingress_type.lower() == "route"

    def configured_backends(
        self, resource: StorageResource
    ) -> list[StorageKind]:
        """List the storage backends configured for a resource.

        Parameters
        ----------
        resource
            Logical resource to check.

        Returns
        -------
        list of StorageKind
            Configured backend kinds, in a stable order.
        """
        match resource:
            case StorageResource.DATABASE:
                return self.database.configured_backends()
            case StorageResource.CACHE:
                return self.cache.configured_backends()
            case StorageResource.PULP:
                backends = []
                if self.object_storage_azure_secret is not None:
                    backends.append(StorageKind.OBJECT_STORAGE_AZURE)
                if self.object_storage_s3_secret is not None:
                    backends.append(StorageKind.OBJECT_STORAGE_S3)
                if self.file_storage_class is not None:
                    backends.append(StorageKind.STORAGE_CLASS)
                if self.pvc is not None:
                    backends.append(StorageKind.PVC)
                return backends


class PulpMetadata(BaseModel):
    """Metadata of a ``Pulp`` object."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="ignore", populate_by_name=True
    )

    name: str
    namespace: str
    uid: str | None = None
    generation: int = 0
    resource_version: str | None = None


class Condition(BaseModel):
    """One condition in the status of a ``Pulp``.

    This follows the standard Kubernetes condition shape.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, extra="ignore", populate_by_name=True
    )

    type: Annotated[str, Field(examples=["Ready", "Api-Ready"])]

    status: Annotated[str, Field(examples=["True", "False", "Unknown"])]

    reason: str = ""

    message: str = ""

    last_transition_time: datetime | None = None

    observed_generation: int | None = None

    def same_state(self, other: Condition) -> bool:
        """Whether two conditions are equal, ignoring transition time."""
        return (
            self.type == other.type
            and self.status == other.status
            and self.reason == other.reason
            and self.message == other.message
            and self.observed_generation == other.observed_generation
        )


class PulpStatus(BaseModel):
    """Observed state of a ``Pulp``."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="ignore", populate_by_name=True
    )

    conditions: list[Condition] = Field(default_factory=list)

    observed_generation: int | None = None

    def get_condition(self, condition_type: str) -> Condition | None:
        """Find a condition by type.

        Parameters
        ----------
        condition_type
            Type of the condition.

        Returns
        -------
        Condition or None
            The condition, or `None` if the status does not have one.
        """
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None

    def same_state(self, other: PulpStatus) -> bool:
        """Whether two statuses are equal, ignoring transition times."""
        if self.observed_generation != other.observed_generation:
            return False
        if len(self.conditions) != len(other.conditions):
            return False
        return all(
            a.same_state(b)
            for a, b in zip(self.conditions, other.conditions, strict=True)
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the status subresource."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Pulp(BaseModel):
    """A ``Pulp`` custom object."""

    model_config = ConfigDict(
        alias_generator=to_camel, extra="ignore", populate_by_name=True
    )

    api_version: str = f"{PULP_GROUP}/{PULP_VERSION}"

    kind: str = PULP_KIND

    metadata: PulpMetadata

    spec: PulpSpec = Field(default_factory=PulpSpec)

    status: PulpStatus = Field(default_factory=PulpStatus)

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> Self:
        """Parse a custom object returned by the Kubernetes API.

        Parameters
        ----------
        obj
            Raw custom object.

        Returns
        -------
        Pulp
            Parsed object.

        Raises
        ------
        InvalidPulpError
            Raised if the object could not be parsed.
        """
        try:
            return cls.model_validate(obj)
        except ValidationError as e:
            raise InvalidPulpError.from_exception(e) from e

    @property
    def name(self) -> str:
        """Name of the object."""
        return self.metadata.name

    @property
    def namespace(self) -> str:
        """Namespace of the object."""
        return self.metadata.namespace

    def to_object_reference(self) -> V1ObjectReference:
        """Build a reference for the ``involvedObject`` of an event."""
        return V1ObjectReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            namespace=self.metadata.namespace,
            resource_version=self.metadata.resource_version,
            uid=self.metadata.uid,
        )
