"""
Sync status events for the presentation layer
"""

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from station_sync.core.timeutils import utc_now, to_iso

SYNCING = 'syncing'
COMPLETED = 'completed'
ERROR = 'error'

StatusListener = Callable[['SyncStatusEvent'], Any]


@dataclass
class SyncStatusEvent:
    """One progress/completion/error notification"""
    status: str
    message: str
    progress: Optional[Dict[str, int]] = None
    stats: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'status': self.status,
            'message': self.message,
            'progress': self.progress,
            'stats': self.stats,
            'error': self.error,
            'timestamp': to_iso(self.timestamp)
        }
        return {k: v for k, v in data.items() if v is not None}


class StatusBroadcaster:
    """Fans sync events out to subscribers and keeps a short history"""

    def __init__(self, history_size: int = 50):
        self.logger = logging.getLogger(__name__)
        self._listeners: List[StatusListener] = []
        self._history: Deque[SyncStatusEvent] = deque(maxlen=history_size)
        self._pending: set = set()

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: SyncStatusEvent) -> None:
        self._history.append(event)

        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                self.logger.warning(f"Status listener failed: {e}")

    def _listener_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.warning(f"Status listener failed: {task.exception()}")

    @property
    def last_event(self) -> Optional[SyncStatusEvent]:
        return self._history[-1] if self._history else None

    def recent(self, limit: int = 10) -> List[SyncStatusEvent]:
        return list(self._history)[-limit:]
