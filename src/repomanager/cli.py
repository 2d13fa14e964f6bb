"""Command-line interface for the Pulp operator."""

from __future__ import annotations

import functools
import os
from collections.abc import Awaitable, Callable
from pathlib import Path

import click
from safir.asyncio import run_with_asyncio
from safir.click import display_help
from safir.sentry import initialize_sentry, report_exception
from safir.slack.webhook import SlackWebhookClient
from structlog.stdlib import get_logger

from . import __version__
from .config import Config
from .constants import (
    ALERT_HOOK_ENV_VAR,
    CONFIG_FILE,
    CONFIG_FILE_ENV_VAR,
    ROOT_LOGGER,
)
from .factory import Factory
from .models.domain.reconcile import ReconcileRequest

__all__ = ["main", "main_with_sentry"]


def _common[**P, R](
    func: Callable[P, Awaitable[R]],
) -> Callable[P, R]:
    """Add common Click options and error reporting to a command."""

    @click.option(
        "--debug",
        "-d",
        is_flag=True,
        help="Enable debug logging",
    )
    @click.option(
        "--config-file",
        "-c",
        help="Operator configuration file",
        type=Path,
        default=CONFIG_FILE,
    )
    @run_with_asyncio
    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        # Configure slack alerting and report any exceptions
        logger = get_logger(ROOT_LOGGER)
        if alert_hook := os.environ.get(ALERT_HOOK_ENV_VAR, None):
            slack_client = SlackWebhookClient(
                alert_hook,
                "Pulp operator",
                logger=logger,
            )
        else:
            slack_client = None

        try:
            return await func(*args, **kwargs)
        except Exception as exc:
            await report_exception(exc, slack_client)
            raise

    return wrapper


def _load_config(config_file: Path, *, debug: bool) -> Config:
    """Load the configuration, overriding it from CLI options."""
    if env_config_path := os.getenv(CONFIG_FILE_ENV_VAR):
        config_file = Path(env_config_path)
    config = Config.from_file(config_file)
    if debug:
        config.debug = debug
        config.configure_logging()
    return config


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Pulp operator command-line interface."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.argument("subtopic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None, subtopic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic, subtopic)


@main.command
@_common
async def run(*, config_file: Path, debug: bool) -> None:
    """Reconcile Pulp objects until interrupted."""
    config = _load_config(config_file, debug=debug)
    async with Factory.standalone(config) as factory:
        await factory.create_manager().run()


@main.command
@click.argument("namespace")
@click.argument("name")
@_common
async def reconcile(
    namespace: str, name: str, *, config_file: Path, debug: bool
) -> None:
    """Reconcile one Pulp object once and print the outcome."""
    config = _load_config(config_file, debug=debug)
    async with Factory.standalone(config) as factory:
        reconciler = factory.create_reconciler()
        request = ReconcileRequest(namespace, name)
        outcome = await reconciler.reconcile(request)
    print(outcome)


def main_with_sentry() -> None:
    """Call the main command group after initializing Sentry."""
    initialize_sentry(release=__version__)
    main()
