"""Restart-on-request process control and the external supervisor loop."""

from __future__ import annotations

import asyncio
import subprocess
import time
from typing import Any, Callable

from loguru import logger

CLEAN_EXIT_CODE = 0
FATAL_EXIT_CODE = 1
RESTART_EXIT_CODE = 3

INITIAL_BACKOFF_S = 1.0
MAX_BACKOFF_S = 30.0


class ProcessControl:
    """
    Carries the exit code the serving process should terminate with.

    Applying a module enable/disable toggle needs a full restart: the serve
    command exits with RESTART_EXIT_CODE and the supervisor starts it again.
    """

    def __init__(self) -> None:
        self._stopped = asyncio.Event()
        self.exit_code: int | None = None

    @property
    def stopping(self) -> bool:
        return self._stopped.is_set()

    def stop(self, exit_code: int = CLEAN_EXIT_CODE) -> None:
        if self._stopped.is_set():
            return
        self.exit_code = exit_code
        self._stopped.set()

    def request_restart(self, delay: float = 0.0) -> None:
        """Exit with RESTART_EXIT_CODE after `delay` seconds."""
        logger.info(f"Restart requested; exiting in {delay:.1f}s")
        asyncio.get_running_loop().call_later(max(0.0, delay), self.stop, RESTART_EXIT_CODE)

    def handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        """Event-loop exception handler: unrecovered faults stop the process."""
        exc = context.get("exception")
        message = context.get("message", "unhandled error")
        logger.error(f"Fatal error in event loop: {message} {exc!r}")
        self.stop(FATAL_EXIT_CODE)

    async def wait(self) -> int:
        await self._stopped.wait()
        return CLEAN_EXIT_CODE if self.exit_code is None else self.exit_code


def next_backoff(current: float) -> float:
    """Double the restart delay, capped at MAX_BACKOFF_S."""
    return min(current * 2, MAX_BACKOFF_S)


def supervise(
    command: list[str],
    *,
    runner: Callable[[list[str]], int] = subprocess.call,
    sleep: Callable[[float], None] = time.sleep,
    max_starts: int | None = None,
) -> int:
    """
    Run `command` and restart it according to its exit code.

    0 stops the supervisor, RESTART_EXIT_CODE restarts immediately, anything
    else restarts after an exponential backoff (1s doubling to 30s).
    """
    delay = INITIAL_BACKOFF_S
    starts = 0
    code = CLEAN_EXIT_CODE
    while max_starts is None or starts < max_starts:
        starts += 1
        try:
            code = runner(command)
        except OSError as e:
            logger.error(f"Failed to start child process: {e}")
            code = FATAL_EXIT_CODE

        if code == CLEAN_EXIT_CODE:
            logger.info("Child exited with code 0, exiting supervisor.")
            return CLEAN_EXIT_CODE
        if code == RESTART_EXIT_CODE:
            logger.info("Child requested clean restart, restarting immediately.")
            continue

        logger.error(f"Child exited with code {code}. Restarting in {delay:.0f}s")
        sleep(delay)
        delay = next_backoff(delay)
    return code
