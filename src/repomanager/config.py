"""Configuration for the Pulp operator."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Annotated, Self

import yaml
from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)
from safir.logging import LogLevel, Profile, configure_logging
from safir.pydantic import HumanTimedelta

from .constants import ENV_PREFIX, ROOT_LOGGER

__all__ = ["Config", "EnvFirstSettings"]


class EnvFirstSettings(BaseSettings):
    """Base class for Pydantic settings with environment overrides.

    Classes that inherit from this base class will prioritize environment
    variables over arguments to the class constructor.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX, extra="forbid", validate_by_name=True
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Override the sources of settings.

        Deactivate :file:`.env` and secret file support, since the operator
        is configured from a mounted YAML file and its environment. Allow
        environment variables to override init parameters, since init
        parameters come from the YAML configuration file and we want
        environment variables to take precedence.
        """
        return (env_settings, init_settings)


class Config(EnvFirstSettings):
    """Configuration for the Pulp operator."""

    debug: Annotated[
        bool,
        Field(
            title="Show debug output and log style",
            description=(
                "If True, then log level will be set to debug and will"
                " non-structured, human-readable output."
            ),
        ),
    ] = False

    log_profile: Annotated[
        Profile,
        Field(
            title="Logging profile",
            validation_alias=AliasChoices(
                ENV_PREFIX + "LOG_PROFILE", "logProfile"
            ),
        ),
    ] = Profile.production

    log_level: Annotated[
        LogLevel,
        Field(
            title="Log level",
            validation_alias=AliasChoices(
                ENV_PREFIX + "LOG_LEVEL", "logLevel"
            ),
        ),
    ] = LogLevel.INFO

    add_timestamp: Annotated[
        bool,
        Field(
            title="Add timestamp to log lines",
            validation_alias=AliasChoices(
                ENV_PREFIX + "ADD_TIMESTAMP", "addTimestamp"
            ),
        ),
    ] = False

    watch_namespace: Annotated[
        str | None,
        Field(
            title="Namespace to watch",
            description=(
                "If set, only ``Pulp`` objects in this namespace are"
                " reconciled. Otherwise, all namespaces are watched."
            ),
            validation_alias=AliasChoices(
                ENV_PREFIX + "WATCH_NAMESPACE", "watchNamespace"
            ),
        ),
    ] = None

    max_concurrent_reconciles: Annotated[
        int,
        Field(
            title="Reconcile workers",
            description=(
                "Number of ``Pulp`` objects that may be reconciled at the"
                " same time. One object is never reconciled twice at once."
            ),
            ge=1,
            validation_alias=AliasChoices(
                ENV_PREFIX + "MAX_CONCURRENT_RECONCILES",
                "maxConcurrentReconciles",
            ),
        ),
    ] = 3

    reconcile_timeout: Annotated[
        HumanTimedelta,
        Field(
            title="Reconcile timeout",
            description="Maximum duration of one reconciliation",
            validation_alias=AliasChoices(
                ENV_PREFIX + "RECONCILE_TIMEOUT", "reconcileTimeout"
            ),
        ),
    ] = timedelta(minutes=5)

    poll_interval: Annotated[
        HumanTimedelta,
        Field(
            title="Readiness poll interval",
            description=(
                "How long to wait before checking again on a tier whose"
                " workload is not yet ready"
            ),
            validation_alias=AliasChoices(
                ENV_PREFIX + "POLL_INTERVAL", "pollInterval"
            ),
        ),
    ] = timedelta(seconds=10)

    backoff_base: Annotated[
        HumanTimedelta,
        Field(
            title="Initial retry delay",
            description=(
                "Delay before the first retry of a failed reconciliation."
                " The delay doubles with each consecutive failure."
            ),
            validation_alias=AliasChoices(
                ENV_PREFIX + "BACKOFF_BASE", "backoffBase"
            ),
        ),
    ] = timedelta(seconds=1)

    backoff_max: Annotated[
        HumanTimedelta,
        Field(
            title="Maximum retry delay",
            validation_alias=AliasChoices(
                ENV_PREFIX + "BACKOFF_MAX", "backoffMax"
            ),
        ),
    ] = timedelta(minutes=16)

    resync_interval: Annotated[
        HumanTimedelta,
        Field(
            title="Resync interval",
            description=(
                "How often every ``Pulp`` is reconciled even if nothing"
                " changed. This also retries reconciliations triggered by a"
                " change to an owned object that failed."
            ),
            validation_alias=AliasChoices(
                ENV_PREFIX + "RESYNC_INTERVAL", "resyncInterval"
            ),
        ),
    ] = timedelta(minutes=5)

    warning_event_interval: Annotated[
        HumanTimedelta,
        Field(
            title="Warning event interval",
            description=(
                "Minimum time between two warning events with the same"
                " reason for the same ``Pulp`` object"
            ),
            validation_alias=AliasChoices(
                ENV_PREFIX + "WARNING_EVENT_INTERVAL", "warningEventInterval"
            ),
        ),
    ] = timedelta(minutes=5)

    openshift: Annotated[
        bool | None,
        Field(
            title="Running on OpenShift",
            description=(
                "Override detection of the platform. If not set, the"
                " operator checks whether the API server serves OpenShift"
                " routes."
            ),
            validation_alias=AliasChoices(
                ENV_PREFIX + "OPENSHIFT", "openshift"
            ),
        ),
    ] = None

    alert_hook: Annotated[
        SecretStr | None,
        Field(
            title="Slack webhook URL used for sending alerts",
            description=(
                "An https URL, which should be considered secret."
                " If not set or set to `None`, this feature will be disabled."
            ),
            validation_alias=AliasChoices(
                ENV_PREFIX + "ALERT_HOOK", "alertHook"
            ),
        ),
    ] = None

    @classmethod
    def from_file(cls, path: Path) -> Self:
        """Construct the configuration from a YAML file.

        Parameters
        ----------
        path
            Path to the configuration file in YAML.

        Returns
        -------
        Config
            The corresponding configuration.
        """
        with path.open("r") as f:
            config = cls(**(yaml.safe_load(f) or {}))
        config.configure_logging()
        return config

    def configure_logging(self) -> None:
        """Configure logging based on the operator configuration."""
        if self.debug:
            log_level = LogLevel.DEBUG
            log_profile = Profile.development
        else:
            log_level = self.log_level
            log_profile = self.log_profile

        configure_logging(
            profile=log_profile,
            log_level=log_level,
            add_timestamp=self.add_timestamp,
            name=ROOT_LOGGER,
        )
