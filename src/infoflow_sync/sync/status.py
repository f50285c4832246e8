"""Throttled progress message queue.

Messages are shown one at a time, each for its own display timeout.
Anything that wants to surface progress (the engine, the scheduler) calls
``enqueue``; whoever owns the display calls ``tick`` periodically.  The
sink receives the message to show, or ``""`` to clear.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

PREFIX = "infoflow: "
MAX_MESSAGE_LENGTH = 120


@dataclass(frozen=True)
class StatusMessage:
    text: str
    timeout: float


def _log_sink(text: str) -> None:
    if text:
        logger.info("%s", text)


class StatusQueue:
    """FIFO of status messages with per-message display time.

    Args:
        sink: Receives each message as it is displayed (``""`` clears).
            Defaults to logging at INFO.
        clock: Monotonic clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        sink: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._sink = sink or _log_sink
        self._clock = clock
        self._messages: deque[StatusMessage] = deque()
        self._current: StatusMessage | None = None
        self._shown_at: float | None = None
        self._lock = threading.Lock()

    @property
    def current(self) -> str | None:
        """Text currently displayed, if any."""
        return self._current.text if self._current else None

    @property
    def pending(self) -> list[str]:
        """Texts waiting to be displayed, oldest first."""
        return [m.text for m in self._messages]

    def enqueue(
        self, message: str, timeout_seconds: float, forcing: bool = False
    ) -> None:
        """Queue *message* for display.

        The message is prefixed and cut to 120 characters.  A message equal
        to the head of the queue is dropped.  ``forcing`` clears whatever is
        currently displayed so the queue advances immediately.
        """
        text = f"{PREFIX}{message[:MAX_MESSAGE_LENGTH]}"
        with self._lock:
            if self._messages and self._messages[0].text == text:
                return
            self._messages.append(StatusMessage(text, float(timeout_seconds)))
            if forcing:
                self._current = None
                self._shown_at = None
                self._sink("")
        self.tick()

    def tick(self) -> None:
        """Advance the display if the current message has expired."""
        with self._lock:
            if self._current is not None:
                age = self._clock() - (self._shown_at or 0.0)
                if age < self._current.timeout:
                    return
                self._current = None
                self._shown_at = None

            if not self._messages:
                self._sink("")
                return

            self._current = self._messages.popleft()
            self._shown_at = self._clock()
            self._sink(self._current.text)
