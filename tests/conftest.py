"""Test fixtures for the Pulp operator."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
import respx
import structlog
from pydantic import SecretStr
from safir.testing.slack import MockSlackWebhook, mock_slack_webhook
from structlog.stdlib import BoundLogger

from repomanager.config import Config
from repomanager.constants import ROOT_LOGGER
from repomanager.factory import Factory
from repomanager.services.reconciler import Reconciler

from .support.config import configure
from .support.kubernetes import MockOperatorKubernetesApi, patch_kubernetes


@pytest.fixture
def config() -> Config:
    """Construct default configuration for tests."""
    return configure("standard")


@pytest_asyncio.fixture
async def factory(
    config: Config, mock_kubernetes: MockOperatorKubernetesApi
) -> AsyncIterator[Factory]:
    """Create a component factory for tests."""
    async with Factory.standalone(config) as factory:
        yield factory


@pytest.fixture
def logger() -> BoundLogger:
    return structlog.get_logger(ROOT_LOGGER)


@pytest.fixture
def mock_kubernetes() -> Iterator[MockOperatorKubernetesApi]:
    yield from patch_kubernetes()


@pytest.fixture
def mock_slack(
    config: Config, respx_mock: respx.Router
) -> Iterator[MockSlackWebhook]:
    hook = "https://slack.example.com/webhook"
    config.alert_hook = SecretStr(hook)
    yield mock_slack_webhook(hook, respx_mock)
    config.alert_hook = None


@pytest.fixture
def reconciler(factory: Factory) -> Reconciler:
    """Create the reconciler, which holds the event rate-limiting state."""
    return factory.create_reconciler()
