"""Exceptions for the Pulp operator."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Self, override

from kubernetes_asyncio.client import ApiException
from pydantic import ValidationError
from safir.datetime import format_datetime_for_logging
from safir.slack.blockkit import (
    SlackBaseField,
    SlackCodeBlock,
    SlackException,
    SlackMessage,
    SlackTextBlock,
    SlackTextField,
)
from safir.slack.sentry import SentryEventInfo

__all__ = [
    "ControllerTimeoutError",
    "IngressPlatformError",
    "InvalidPulpError",
    "KubernetesError",
    "MultipleStorageBackendsError",
    "PulpValidationError",
    "VersionMismatchError",
]


class ControllerTimeoutError(SlackException):
    """Wraps `TimeoutError` with additional context and Slack support.

    Parameters
    ----------
    operation
        Operation that timed out.
    key
        Key of the Pulp object being acted on, if any.
    started_at
        Start time of the operation.
    failed_at
        Time at which the operation timed out.
    """

    def __init__(
        self,
        operation: str,
        key: str | None = None,
        *,
        started_at: datetime,
        failed_at: datetime,
    ) -> None:
        self.started_at = started_at
        self.key = key
        elapsed = failed_at - started_at
        msg = f"{operation} timed out after {elapsed.total_seconds()}s"
        super().__init__(msg, failed_at=failed_at)

    @override
    def to_slack(self) -> SlackMessage:
        """Format the exception as a Slack message.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting with
            `~safir.slack.webhook.SlackWebhookClient`.
        """
        started_at = format_datetime_for_logging(self.started_at)
        failed_at = format_datetime_for_logging(self.failed_at)
        fields: list[SlackBaseField] = [
            SlackTextField(heading="Started at", text=started_at),
            SlackTextField(heading="Failed at", text=failed_at),
        ]
        if self.key:
            fields.append(SlackTextField(heading="Object", text=self.key))
        return SlackMessage(message=str(self), fields=fields)

    @override
    def to_sentry(self) -> SentryEventInfo:
        """Return a collection of Sentry event metadata about the exception.

        Returns
        -------
        safir.slack.sentry.SentryEventInfo
            Sentry event metadata for use with \
            `~safir.sentry.before_send_handler`
        """
        info = super().to_sentry()
        if self.key:
            info.tags["object"] = self.key
        return info


class KubernetesError(SlackException):
    """An API call to Kubernetes failed.

    Parameters
    ----------
    message
        Summary of error.
    namespace
        Namespace of object being acted on.
    name
        Name of object being acted on.
    kind
        Kind of object being acted on.
    status
        Status code of failure, if any.
    body
        Body of failure message, if any.
    """

    @classmethod
    def from_exception(
        cls,
        message: str,
        exc: ApiException,
        *,
        kind: str | None = None,
        namespace: str | None = None,
        name: str | None = None,
    ) -> Self:
        """Create an exception from a Kubernetes API exception.

        Parameters
        ----------
        message
            Brief explanation of what was being attempted.
        exc
            Kubernetes API exception.
        kind
            Kind of object being acted on.
        namespace
            Namespace of object being acted on.
        name
            Name of object being acted on.

        Returns
        -------
        KubernetesError
            Newly-created exception.
        """
        return cls(
            message,
            kind=kind,
            namespace=namespace,
            name=name,
            status=exc.status,
            body=exc.body if exc.body else exc.reason,
        )

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        namespace: str | None = None,
        name: str | None = None,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.namespace = namespace
        self.name = name
        self.status = status
        self.body = body

    @property
    def is_conflict(self) -> bool:
        """Whether this error was an optimistic-concurrency conflict."""
        return self.status == 409

    @override
    def __str__(self) -> str:
        result = self._summary()
        if self.body:
            result += f": {self.body}"
        return result

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        message.message = self._summary()
        if self.status:
            field = SlackTextField(heading="Status", text=str(self.status))
            message.fields.append(field)
        if self.name:
            kind = f"{self.kind} " if self.kind else ""
            if self.namespace:
                obj = f"{kind}{self.namespace}/{self.name}"
            else:
                obj = f"{kind}{self.name}"
            message.blocks.append(SlackTextBlock(heading="Object", text=obj))
        elif self.kind:
            if self.namespace:
                obj = f"{self.kind} in namespace {self.namespace}"
            else:
                obj = self.kind
            block = SlackTextBlock(heading="Object", text=obj)
            message.blocks.append(block)
        if self.body:
            code = SlackCodeBlock(heading="Error", code=self.body)
            message.blocks.append(code)
        return message

    @override
    def to_sentry(self) -> SentryEventInfo:
        """Return a collection of Sentry event metadata about the exception.

        Returns
        -------
        safir.slack.sentry.SentryEventInfo
            Sentry event metadata for use with \
            `~safir.sentry.before_send_handler`
        """
        info = super().to_sentry()
        if self.status:
            info.tags["status"] = str(self.status)
        if self.name:
            info.tags["name"] = self.name
        if self.kind:
            info.tags["kind"] = self.kind
        if self.namespace:
            info.tags["namespace"] = self.namespace
        if self.body:
            info.attachments["body"] = self.body
        return info

    def _summary(self) -> str:
        """Summarize the exception.

        Produces a single-line summary, used for the main part of the Slack
        message and part of the stringification.
        """
        result = self.message
        if self.name or self.kind or self.status:
            result += " ("
            if self.name:
                kind = f"{self.kind} " if self.kind else ""
                if self.namespace:
                    result += f"{kind}{self.namespace}/{self.name}"
                else:
                    result += f"{kind}{self.name}"
                if self.status:
                    result += ", "
            elif self.kind:
                result += self.kind
                if self.status:
                    result += ", "
            if self.status:
                result += f"status {self.status}"
            result += ")"
        return result


class PulpValidationError(SlackException):
    """The ``Pulp`` desired state is internally inconsistent.

    These errors cannot be fixed by retrying. They clear only when the
    ``Pulp`` object is edited, so they are reported to the user through
    Kubernetes events and the object status rather than through Slack.

    Exceptions inheriting from this class should set the class variable
    ``code`` to a unique error code and ``reason`` to the CamelCase reason
    used for events and status conditions.
    """

    code: ClassVar[str] = "invalid-pulp"
    """Stable error code for this type of validation error."""

    reason: ClassVar[str] = "InvalidSpec"
    """Reason recorded on Kubernetes events and status conditions."""


class InvalidPulpError(PulpValidationError):
    """The ``Pulp`` custom object could not be parsed.

    Parameters
    ----------
    message
        Summary error message.
    error
        Detailed error message, possibly multi-line.
    """

    code = "invalid-pulp"
    reason = "InvalidSpec"

    @classmethod
    def from_exception(cls, exc: ValidationError) -> Self:
        """Create an exception from a Pydantic parse failure.

        Parameters
        ----------
        exc
            Pydantic exception.

        Returns
        -------
        InvalidPulpError
            Constructed exception.
        """
        error = f"{type(exc).__name__}: {exc!s}"
        return cls("Unable to parse Pulp object", error)

    def __init__(self, message: str, error: str) -> None:
        super().__init__(message)
        self.error = error

    @override
    def __str__(self) -> str:
        return f"{self.message}: {self.error}"


class VersionMismatchError(PulpValidationError):
    """Image versions differ while the web tier serves the content.

    Outside of route mode, the web tier and the API tier must run the same
    release.

    Parameters
    ----------
    image_version
        Requested image version.
    image_web_version
        Requested web image version.
    """

    code = "version-mismatch"
    reason = "VersionMismatch"

    def __init__(self, image_version: str, image_web_version: str) -> None:
        msg = (
            f"image_version ({image_version}) and image_web_version"
            f" ({image_web_version}) must be equal unless ingress_type is"
            " route"
        )
        super().__init__(msg)
        self.image_version = image_version
        self.image_web_version = image_web_version


class IngressPlatformError(PulpValidationError):
    """Route ingress was requested on a cluster that does not serve routes.

    Parameters
    ----------
    ingress_type
        Ingress type as given in the ``Pulp`` object.
    """

    code = "route-unavailable"
    reason = "RouteUnavailable"

    def __init__(self, ingress_type: str) -> None:
        msg = (
            f"ingress_type {ingress_type} requires an OpenShift cluster"
            " serving route.openshift.io"
        )
        super().__init__(msg)
        self.ingress_type = ingress_type


class MultipleStorageBackendsError(PulpValidationError):
    """More than one storage backend was configured for one resource.

    Parameters
    ----------
    resource
        Logical resource whose storage is ambiguous.
    kinds
        Storage backend kinds that were configured for that resource.
    """

    code = "multiple-storage-backends"
    reason = "MultipleStorageBackends"

    def __init__(self, resource: str, kinds: list[str]) -> None:
        found = ", ".join(kinds)
        msg = (
            f"found more than one storage type ({found}) for {resource}."
            " Choose only one storage type or none to use emptyDir"
        )
        super().__init__(msg)
        self.resource = resource
        self.kinds = kinds

    @override
    def to_slack(self) -> SlackMessage:
        """Convert to a Slack message for Slack alerting.

        Returns
        -------
        safir.slack.blockkit.SlackMessage
            Slack message suitable for posting as an alert.
        """
        message = super().to_slack()
        message.fields.append(
            SlackTextField(heading="Resource", text=self.resource)
        )
        return message
