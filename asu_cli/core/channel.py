"""
Fan-in plumbing: every task worker writes to its own `EventSender`, and all
senders feed one shared queue that the orchestrator drains.
"""

import asyncio
import logging

from asu_cli.models.events import ProgressEvent, is_terminal

log = logging.getLogger(__name__)


class StreamClosed:
    """Marker put on the queue when a task's stream ends."""

    def __repr__(self) -> str:
        return "StreamClosed"


STREAM_CLOSED = StreamClosed()


class EventSender:
    """
    The write end of one task's event stream.

    Events from a single sender arrive in the order they were sent. At most
    one terminal event may be sent, and nothing may follow `close()`.
    """

    def __init__(self, queue: asyncio.Queue, index: int):
        self._queue = queue
        self.index = index
        self._terminal_sent = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError(f"Event stream {self.index} is closed.")
        if self._terminal_sent:
            raise RuntimeError(
                f"Event stream {self.index} already sent its terminal event."
            )
        if is_terminal(event):
            self._terminal_sent = True
        self._queue.put_nowait((self.index, event))

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait((self.index, STREAM_CLOSED))


def open_streams(count: int) -> tuple[asyncio.Queue, list[EventSender]]:
    """Creates the shared queue and one sender per task."""
    queue: asyncio.Queue = asyncio.Queue()
    return queue, [EventSender(queue, i) for i in range(count)]
