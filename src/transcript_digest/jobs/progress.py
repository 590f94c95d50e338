"""
Push-style progress stream owned by a job controller.

Observers either subscribe a callback, which receives every event
published after subscription, or iterate the stream, which yields every
event of the job in order and stops after the terminal event. Delivery is
at most once per event and there is no replay for late subscribers.
"""

import logging
import threading
from queue import Empty, Queue
from typing import Callable, Iterator, List, Optional

from ..models import ProgressEvent

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

_END = object()


class ProgressStream:
    """Ordered stream of progress events for one job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._subscribers: List[ProgressCallback] = []
        self._queue: Queue = Queue()
        self._latest: Optional[ProgressEvent] = None
        self._closed = False
        self._lock = threading.Lock()

    @property
    def latest(self) -> Optional[ProgressEvent]:
        """Most recently published event."""
        return self._latest

    @property
    def closed(self) -> bool:
        """True once the terminal event has been published."""
        return self._closed

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """
        Register a callback for future events.

        Returns:
            Function that removes the callback again
        """
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        """Deliver an event to every subscriber; closes the stream on a terminal event."""
        with self._lock:
            if self._closed:
                return
            self._latest = event
            subscribers = list(self._subscribers)
            self._queue.put(event)
            if event.state.is_terminal:
                self._closed = True
                self._queue.put(_END)

        for callback in subscribers:
            try:
                callback(event)
            except Exception as e:
                logger.warning(f"Progress subscriber failed for job {self.job_id}: {e}")

    def events(self, timeout: Optional[float] = None) -> Iterator[ProgressEvent]:
        """
        Yield events in order until the terminal event.

        Args:
            timeout: Maximum seconds to wait for each next event

        Raises:
            TimeoutError: If no event arrived within the timeout
        """
        while True:
            try:
                item = self._queue.get(timeout=timeout)
            except Empty:
                raise TimeoutError(f"No progress from job {self.job_id} within {timeout} seconds")
            if item is _END:
                return
            yield item

    def __iter__(self) -> Iterator[ProgressEvent]:
        return self.events()
