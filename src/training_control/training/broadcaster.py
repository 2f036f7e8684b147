"""
Progress broadcaster.

Fans events out to listeners without ever blocking the publisher. Every
listener gets its own FIFO queue and dispatcher thread, so a slow listener
only delays its own deliveries and per-agent ordering is preserved.
"""

import logging
import threading
import time
from queue import Empty, Queue
from typing import Dict, List, Optional

from .events import TrainingEvent, TrainingProgressListener

logger = logging.getLogger(__name__)

_STOP = object()


class _FlushMarker:
    def __init__(self):
        self.done = threading.Event()


class _ListenerChannel:
    """Queue plus dispatcher thread for a single listener"""

    def __init__(self, listener: TrainingProgressListener, name: str):
        self.listener = listener
        self.queue: Queue = Queue()
        self.delivered = 0
        self.failures = 0
        self.thread = threading.Thread(target=self._run_loop, name=name, daemon=True)
        self.thread.start()

    def put(self, item) -> None:
        self.queue.put_nowait(item)

    def _run_loop(self):
        while True:
            item = self.queue.get()
            if item is _STOP:
                break
            if isinstance(item, _FlushMarker):
                item.done.set()
                continue
            try:
                item.dispatch(self.listener)
                self.delivered += 1
            except Exception:
                self.failures += 1
                logger.error(
                    f"Listener {self.listener!r} failed handling {type(item).__name__} "
                    f"for {item.agent_type}",
                    exc_info=True,
                )

        # Release anyone waiting on a flush that raced with removal
        while True:
            try:
                item = self.queue.get_nowait()
            except Empty:
                break
            if isinstance(item, _FlushMarker):
                item.done.set()


class ProgressBroadcaster:
    """
    Publish-subscribe hub for training lifecycle events.

    Listeners may be added or removed from any thread, including from inside
    their own callbacks. A listener registered mid-training only sees events
    published after registration.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[int, _ListenerChannel] = {}
        self._closed = False
        self._published = 0

    def add_listener(self, listener: TrainingProgressListener) -> None:
        """Register a listener. Registering the same object twice is a no-op."""
        with self._lock:
            if self._closed:
                logger.warning("Ignoring listener registration on closed broadcaster")
                return
            key = id(listener)
            if key in self._channels:
                return
            self._channels[key] = _ListenerChannel(
                listener, name=f"progress-listener-{type(listener).__name__}"
            )
        logger.debug(f"Registered progress listener {listener!r}")

    def remove_listener(self, listener: TrainingProgressListener) -> bool:
        """
        Deregister a listener.

        Events already queued for it are still delivered; nothing published
        afterwards reaches it. Returns False if the listener was unknown.
        """
        with self._lock:
            channel = self._channels.pop(id(listener), None)
        if channel is None:
            return False
        channel.put(_STOP)
        logger.debug(f"Removed progress listener {listener!r}")
        return True

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._channels)

    @property
    def published_count(self) -> int:
        return self._published

    def publish(self, event: TrainingEvent) -> None:
        """Enqueue an event for every current listener and return immediately."""
        with self._lock:
            if self._closed:
                return
            self._published += 1
            for channel in self._channels.values():
                channel.put(event)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every event published before this call has been handled.

        Returns False if the timeout expired first.
        """
        markers: List[_FlushMarker] = []
        with self._lock:
            for channel in self._channels.values():
                marker = _FlushMarker()
                channel.put(marker)
                markers.append(marker)

        deadline = None if timeout is None else time.monotonic() + timeout
        for marker in markers:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not marker.done.wait(remaining):
                return False
        return True

    def close(self, timeout: Optional[float] = None) -> None:
        """Deliver pending events, then stop all dispatcher threads."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            channels = list(self._channels.values())
            self._channels.clear()

        current = threading.current_thread()
        deadline = None if timeout is None else time.monotonic() + timeout
        for channel in channels:
            channel.put(_STOP)
        for channel in channels:
            if channel.thread is current:
                continue
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            channel.thread.join(remaining)
            if channel.thread.is_alive():
                logger.warning(f"Listener {channel.listener!r} did not drain before close")
        logger.debug(f"Broadcaster closed after {self._published} events")
