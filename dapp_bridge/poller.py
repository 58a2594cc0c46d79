"""Cancellable, timeout-bounded status polling."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PollerState(Enum):
    """Lifecycle of a :class:`StatusPoller`."""

    IDLE = auto()
    POLLING = auto()
    COMPLETED = auto()
    TIMED_OUT = auto()
    CANCELLED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self not in (PollerState.IDLE, PollerState.POLLING)


class PollTimeoutError(TimeoutError):
    """Delivered when no status arrived before the poller's timeout."""


@dataclass
class PollOutcome:
    state: PollerState
    result: Any = None
    error: Optional[BaseException] = None


FetchFn = Callable[[], Awaitable[Any]]
PollCallback = Callable[[PollOutcome], Any]


def _is_empty(result: Any) -> bool:
    if result is None:
        return True
    if isinstance(result, (dict, list, tuple, str, bytes)):
        return len(result) == 0
    return False


class StatusPoller:
    """Repeatedly await *fetch* until it yields something, fails, or times out.

    The first attempt fires as soon as the poller starts; subsequent attempts
    are spaced ``poll_interval`` seconds apart.  Attempts never overlap: the
    next tick is only scheduled once the previous fetch has returned.  The
    callback receives a single :class:`PollOutcome` for ``COMPLETED``,
    ``FAILED`` and ``TIMED_OUT``; cancellation is silent.
    """

    def __init__(
        self,
        fetch: FetchFn,
        callback: PollCallback | None = None,
        *,
        poll_interval: float = 1.0,
        timeout: float = 60.0,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._fetch = fetch
        self._callback = callback
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.state = PollerState.IDLE
        self.outcome: PollOutcome | None = None
        self.attempts = 0
        self._task: asyncio.Task[None] | None = None

    def start(self) -> "StatusPoller":
        if self.state is not PollerState.IDLE:
            raise RuntimeError(f"Poller already started (state={self.state.name})")
        self.state = PollerState.POLLING
        self._task = asyncio.get_running_loop().create_task(self._run())
        return self

    def cancel(self) -> None:
        if self.state is not PollerState.POLLING:
            return
        self._finish(PollOutcome(PollerState.CANCELLED))
        if self._task is not None:
            self._task.cancel()

    async def wait(self) -> PollOutcome:
        """Wait for the poller to reach a terminal state and return the outcome."""

        if self._task is None:
            raise RuntimeError("Poller has not been started")
        await asyncio.wait({self._task})
        if self.outcome is None and self._task.cancelled():
            # the task was cancelled before its first step ran
            self._finish(PollOutcome(PollerState.CANCELLED))
        if self.outcome is None:
            raise RuntimeError("Poller task ended without recording an outcome")
        return self.outcome

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        try:
            while self.state is PollerState.POLLING:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    await self._deliver(self._timed_out())
                    return
                self.attempts += 1
                try:
                    result = await asyncio.wait_for(self._fetch(), remaining)
                except asyncio.TimeoutError:
                    await self._settle_deadline(loop, deadline)
                    await self._deliver(self._timed_out())
                    return
                except Exception as exc:
                    logger.debug("Status fetch failed on attempt %d: %s", self.attempts, exc)
                    await self._deliver(PollOutcome(PollerState.FAILED, error=exc))
                    return
                if not _is_empty(result):
                    await self._deliver(PollOutcome(PollerState.COMPLETED, result=result))
                    return
                await asyncio.sleep(min(self.poll_interval, max(deadline - loop.time(), 0)))
        except asyncio.CancelledError:
            self._finish(PollOutcome(PollerState.CANCELLED))
            raise
        finally:
            if self.outcome is None:
                self._finish(PollOutcome(PollerState.CANCELLED))

    @staticmethod
    async def _settle_deadline(loop: asyncio.AbstractEventLoop, deadline: float) -> None:
        # timer callbacks may fire a hair before the deadline
        while loop.time() < deadline:
            await asyncio.sleep(deadline - loop.time())

    def _timed_out(self) -> PollOutcome:
        error = PollTimeoutError(f"No status received within {self.timeout:g}s")
        return PollOutcome(PollerState.TIMED_OUT, error=error)

    def _finish(self, outcome: PollOutcome) -> bool:
        if self.state.is_terminal:
            return False
        self.state = outcome.state
        self.outcome = outcome
        return True

    async def _deliver(self, outcome: PollOutcome) -> None:
        if not self._finish(outcome) or self._callback is None:
            return
        try:
            maybe_awaitable = self._callback(outcome)
            if inspect.isawaitable(maybe_awaitable):
                await maybe_awaitable
        except Exception:
            logger.exception("Poller callback raised for outcome %s", outcome.state.name)
