"""
Coordination primitives for the pipeline threads.

A `CancellationToken` is shared by every task: the first fatal error is kept
and every blocked send or receive gives up once it fires. A `Channel` is a
small bounded hand-off queue whose blocking operations race that token.
"""

import queue
import threading
from typing import Generic, Optional, TypeVar

from systemaddons.constants import CHANNEL_CAPACITY, CHANNEL_POLL_INTERVAL
from systemaddons.exceptions import CancellationError
from systemaddons.log_utils import logger

T = TypeVar("T")


class ChannelClosed(Exception):
    """Raised by `Channel.receive` once the channel is closed and drained."""


class CancellationToken:
    """
    One-shot, broadcast cancellation signal with a first-error-wins slot.

    Setting the signal is idempotent: only the first reported error is kept,
    later reports are logged at debug level and dropped.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def error(self) -> Optional[BaseException]:
        """The error that triggered cancellation, if any."""
        with self._lock:
            return self._error

    def fail(self, error: BaseException) -> bool:
        """
        Record a fatal error and fire the signal.

        Parameters:
            error (BaseException): The error that ended a task.

        Returns:
            bool: `True` if this call recorded the first error, `False` if an
            earlier error was already recorded.
        """
        with self._lock:
            first = self._error is None
            if first:
                self._error = error
            self._event.set()
        if first:
            logger.debug(f"Pipeline cancelled: {error}")
        else:
            logger.debug(f"Ignoring error reported after cancellation: {error}")
        return first

    def cancel(self, reason: str = "pipeline cancelled") -> bool:
        """Fire the signal without an underlying task failure."""
        return self.fail(CancellationError(reason))

    def raise_if_cancelled(self, context: str = "operation") -> None:
        """
        Raise a CancellationError if the signal has fired.

        Parameters:
            context (str): Name of the operation, used in the error message.

        Raises:
            CancellationError: When the token is cancelled.
        """
        if self._event.is_set():
            raise CancellationError(f"{context} canceled")

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)


class Channel(Generic[T]):
    """
    Bounded hand-off queue between pipeline threads.

    `send` blocks while the channel is full and `receive` blocks while it is
    empty; both wake up every `poll_interval` seconds to check the
    cancellation token, so a fired token stops them within one interval.
    """

    def __init__(
        self,
        name: str,
        capacity: int = CHANNEL_CAPACITY,
        poll_interval: float = CHANNEL_POLL_INTERVAL,
    ) -> None:
        self.name = name
        self._queue: "queue.Queue[T]" = queue.Queue(maxsize=capacity)
        self._closed = threading.Event()
        self._poll_interval = poll_interval

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def send(self, item: T, token: CancellationToken) -> None:
        """
        Hand an item to a receiver, giving up if the token fires first.

        Raises:
            CancellationError: When the token fires before the item was queued.
            ChannelClosed: When the channel was already closed.
        """
        if self._closed.is_set():
            raise ChannelClosed(f"send on closed channel {self.name}")
        while True:
            token.raise_if_cancelled(f"send on {self.name}")
            try:
                self._queue.put(item, timeout=self._poll_interval)
                return
            except queue.Full:
                continue

    def receive(self, token: CancellationToken) -> T:
        """
        Take the next item, waiting until one is available.

        Raises:
            CancellationError: When the token fires while waiting.
            ChannelClosed: When the channel is closed and no item is left.
        """
        while True:
            token.raise_if_cancelled(f"receive on {self.name}")
            try:
                return self._queue.get(timeout=self._poll_interval)
            except queue.Empty:
                if self._closed.is_set() and self._queue.empty():
                    raise ChannelClosed(self.name) from None

    def close(self) -> None:
        """Mark the channel closed; queued items remain receivable."""
        self._closed.set()
