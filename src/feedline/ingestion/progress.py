"""Fire-and-forget progress events for ingestion runs."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from feedline.ingestion.models import FetchProgress

logger = logging.getLogger(__name__)

ProgressListener = Callable[[FetchProgress], None]


class ProgressReporter:
    """Broadcasts :class:`FetchProgress` events to registered listeners.

    A failing listener is logged and skipped; it never aborts the run that
    emitted the event. The last event per feed is kept so an observer that
    subscribes after a background run was triggered can still read its
    terminal status through :meth:`last_event`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[ProgressListener] = []
        self._last_events: dict[str, FetchProgress] = {}

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it."""

        with self._lock:
            self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ProgressListener) -> None:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

    def emit(self, event: FetchProgress) -> None:
        with self._lock:
            self._last_events[event.feed_id] = event
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(event)
            except Exception:  # noqa: BLE001
                logger.warning(
                    "Progress listener %r failed for feed %s (%s)",
                    listener,
                    event.feed_id,
                    event.status.value,
                    exc_info=True,
                )

    def last_event(self, feed_id: str) -> FetchProgress | None:
        with self._lock:
            return self._last_events.get(feed_id)
