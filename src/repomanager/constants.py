"""Global constants."""

from pathlib import Path

__all__ = [
    "ALERT_HOOK_ENV_VAR",
    "CONFIG_FILE",
    "CONFIG_FILE_ENV_VAR",
    "DEFAULT_PULL_SECRET_DATA",
    "DEFAULT_PULL_SECRET_NAME",
    "ENV_PREFIX",
    "EVENT_COMPONENT",
    "PULP_GROUP",
    "PULP_KIND",
    "PULP_PLURAL",
    "PULP_VERSION",
    "ROOT_LOGGER",
    "ROUTE_GROUP",
    "ROUTE_PLURAL",
    "ROUTE_VERSION",
]

CONFIG_FILE = Path("/etc/repomanager/config.yaml")
"""Default path to the operator configuration."""

ENV_PREFIX = "REPOMANAGER_"
"""Prefix for all environment variables that override configuration."""

ALERT_HOOK_ENV_VAR = f"{ENV_PREFIX}ALERT_HOOK"
"""Environment variable holding the Slack webhook for CLI error reports."""

CONFIG_FILE_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
"""Environment variable that overrides the configuration file path."""

ROOT_LOGGER = "repomanager"
"""Name of the root structlog logger."""

PULP_GROUP = "repo-manager.pulpproject.org"
"""API group of the ``Pulp`` custom resource."""

PULP_VERSION = "v1beta2"
"""API version of the ``Pulp`` custom resource."""

PULP_PLURAL = "pulps"
"""Plural under which ``Pulp`` objects are served."""

PULP_KIND = "Pulp"
"""Kind of the desired-state custom resource."""

ROUTE_GROUP = "route.openshift.io"
"""API group of OpenShift routes.

The presence of this group in the API server discovery document is how the
operator decides that it is running on OpenShift.
"""

ROUTE_VERSION = "v1"
"""API version of OpenShift routes."""

ROUTE_PLURAL = "routes"
"""Plural under which OpenShift routes are served."""

DEFAULT_PULL_SECRET_NAME = "redhat-operators-pull-secret"
"""Name of the image pull secret that must exist in every Pulp namespace."""

DEFAULT_PULL_SECRET_DATA = {"operator": "pulp"}
"""Placeholder string data for a newly-created default pull secret."""

EVENT_COMPONENT = "repomanager"
"""Component name reported as the source of Kubernetes events."""
