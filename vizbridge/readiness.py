"""One-shot readiness gate for the host extension runtime.

Host initialization is asynchronous, and every component's first workspace
access must be sequenced after it.  The gate is a single deferred value:

- ``fulfill()`` / ``reject(cause)`` settle it; the first call wins and later
  calls never overwrite the terminal state.
- ``await_ready()`` may be awaited by any number of consumers, before or
  after settlement; all of them observe the same outcome.  On rejection each
  consumer receives the *same* ``InitError`` instance.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

from vizbridge.exceptions import InitError

log = logging.getLogger(__name__)

__all__ = ["ReadinessGate", "ReadinessState"]


class ReadinessState(StrEnum):
    """Lifecycle of the readiness signal."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class ReadinessGate:
    """Single-fulfilment future shared by every workspace consumer."""

    def __init__(self) -> None:
        self._future: asyncio.Future[None] | None = None

    def _get_future(self) -> asyncio.Future[None]:
        # Created lazily so the gate can be constructed outside a running loop.
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def state(self) -> ReadinessState:
        fut = self._future
        if fut is None or not fut.done():
            return ReadinessState.PENDING
        if fut.exception() is not None:
            return ReadinessState.REJECTED
        return ReadinessState.FULFILLED

    @property
    def is_ready(self) -> bool:
        return self.state is ReadinessState.FULFILLED

    def fulfill(self) -> bool:
        """Mark the host as ready.  Returns False if the gate was already settled."""
        fut = self._get_future()
        if fut.done():
            log.debug("readiness gate already %s; fulfill ignored", self.state)
            return False
        fut.set_result(None)
        log.info("host runtime ready")
        return True

    def reject(self, cause: BaseException | str) -> bool:
        """Mark host initialization as failed.  Returns False if already settled."""
        fut = self._get_future()
        if fut.done():
            log.debug("readiness gate already %s; reject ignored", self.state)
            return False
        error = cause if isinstance(cause, InitError) else InitError(cause)
        if isinstance(cause, BaseException) and error is not cause:
            error.__cause__ = cause
        fut.set_exception(error)
        # Marks the exception retrieved; asyncio must not report an unawaited rejection.
        fut.exception()
        log.error("host runtime initialization failed: %s", error.detail)
        return True

    async def await_ready(self) -> None:
        """Wait until the gate settles.

        Raises
        ------
        InitError
            If the host runtime failed to initialize.
        """
        # shield: one consumer being cancelled must not cancel the shared future.
        await asyncio.shield(self._get_future())
