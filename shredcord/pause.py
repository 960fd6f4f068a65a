"""Backs off deletion while the account is being used interactively."""

import logging
import threading
import time
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

DEFAULT_QUIET_WINDOW = 30


class PauseController:
    """Single-slot debounce between the event thread and the deletion loop.

    :meth:`signal` marks the slot and returns immediately; signals that land
    between checkpoints coalesce into one. :meth:`checkpoint` blocks for a
    quiet window whenever the slot is set, restarting the window on every
    further signal, so it only returns once ``quiet_window`` seconds pass
    with no activity. :meth:`stop` cuts any wait short.
    """

    def __init__(self, quiet_window: float = DEFAULT_QUIET_WINDOW,
                 clock: Callable[[], float] = time.monotonic):
        self.quiet_window = quiet_window
        self._clock = clock
        self._cond = threading.Condition()
        self._pending = False
        self._stopped = False
        self.pauses = 0

    def signal(self) -> None:
        with self._cond:
            self._pending = True
            self._cond.notify_all()

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def pending(self) -> bool:
        return self._pending

    def checkpoint(self) -> bool:
        """Wait out any pending quiet window.

        Returns ``False`` if stopped (before or during the wait), ``True``
        when processing may continue.
        """
        with self._cond:
            if self._stopped:
                return False
            if not self._pending:
                return True

            self.pauses += 1
            logger.info(f"Activity detected, pausing until {self.quiet_window}s pass without messages")
            started = self._clock()
            while self._pending:
                self._pending = False
                deadline = self._clock() + self.quiet_window
                while not self._pending and not self._stopped:
                    remaining = deadline - self._clock()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                if self._stopped:
                    logger.info("Stopped while paused")
                    return False

            logger.info(f"Resuming after {self._clock() - started:.1f}s pause")
            return True


def self_message_handler(self_id: int, pause: PauseController) -> Callable[[Dict[str, Any]], None]:
    """Build a MESSAGE_CREATE callback that pauses on the account's own messages.

    The event transport calls it from its own thread with the dispatch data.
    """
    def on_message_create(event: Dict[str, Any]) -> None:
        author = event.get('author') or {}
        if str(author.get('id')) == str(self_id):
            pause.signal()

    return on_message_create
