"""Timeout class for Kubernetes operations."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from .exceptions import ControllerTimeoutError

__all__ = ["Timeout"]


class Timeout:
    """Track a cumulative timeout on a series of operations.

    A single reconciliation of a ``Pulp`` object makes many Kubernetes API
    calls, each of which supports an individual timeout, but all of them
    must complete within the overall reconcile timeout. This class
    encapsulates that type of timeout and provides methods to retrieve
    timeouts for individual calls.

    Parameters
    ----------
    operation
        Human-readable name of operation, for error reporting.
    timeout
        Duration of the timeout.
    key
        If given, key of the object being reconciled, for error reporting.
    """

    def __init__(
        self, operation: str, timeout: timedelta, key: str | None = None
    ) -> None:
        self._operation = operation
        self._timeout = timeout
        self._key = key
        self._start = datetime.now(tz=UTC)

    def elapsed(self) -> float:
        """Elapsed time since the timeout started.

        Returns
        -------
        float
            Seconds elapsed since the object was created.
        """
        now = datetime.now(tz=UTC)
        return (now - self._start).total_seconds()

    @asynccontextmanager
    async def enforce(self) -> AsyncIterator[None]:
        """Enforce the timeout and translate `TimeoutError`.

        Used to wrap a block of code in `asyncio.timeout` and catch any
        `TimeoutError`, translating it into
        `~repomanager.exceptions.ControllerTimeoutError` with additional
        context.

        Raises
        ------
        ControllerTimeoutError
            Raised if `TimeoutError` was raised inside the enclosed operation.
        """
        try:
            async with asyncio.timeout(self.left()):
                yield
        except (ControllerTimeoutError, TimeoutError) as e:
            now = datetime.now(tz=UTC)
            raise ControllerTimeoutError(
                self._operation,
                self._key,
                started_at=self._start,
                failed_at=now,
            ) from e

    def left(self) -> float:
        """Return the amount of time remaining in seconds.

        Returns
        -------
        float
            Time remaining in the timeout in seconds.

        Raises
        ------
        ControllerTimeoutError
            Raised if the timeout has expired.
        """
        now = datetime.now(tz=UTC)
        left = (self._timeout - (now - self._start)).total_seconds()
        if left <= 0.0:
            raise ControllerTimeoutError(
                self._operation,
                self._key,
                started_at=self._start,
                failed_at=now,
            )
        return left
