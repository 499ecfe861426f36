# chartbuddies/services/pending_writes.py
"""
Debounced persistence for free-text form fields.

Edits are staged locally and echoed back immediately; they are written once
the field has been quiet for the debounce interval, or all at once on
`flush()` when the user navigates away. Each key has at most one write in
flight. A value staged while its key is being written waits for the next
flush. Leaving without calling `flush()` drops whatever is still staged.

This is a client-side helper: the service itself saves each PATCH as it
arrives, and editors wrap their calls to it in a queue like this one.
"""
import threading
import time
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

import structlog

from ..config import get_settings

logger = structlog.get_logger(__name__)

Writer = Callable[[Hashable, Any], None]


class PendingWriteQueue:

    def __init__(self, writer: Writer, quiet_period: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.writer = writer
        self.quiet_period = quiet_period if quiet_period is not None else get_settings().field_debounce_seconds
        self.clock = clock
        self._pending: Dict[Hashable, Tuple[Any, float]] = {}
        self._persisted: Dict[Hashable, Any] = {}
        self._in_flight: set = set()
        self._lock = threading.Lock()

    def stage(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._pending[key] = (value, self.clock())

    def current(self, key: Hashable, default: Any = None) -> Any:
        """Latest value for `key`: the staged one if any, else the last persisted."""
        with self._lock:
            if key in self._pending:
                return self._pending[key][0]
            return self._persisted.get(key, default)

    def is_pending(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._pending

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight

    def flush_due(self) -> List[Hashable]:
        """Persist fields that have been quiet for at least the debounce interval."""
        now = self.clock()
        with self._lock:
            due = [k for k, (_, staged_at) in self._pending.items()
                   if now - staged_at >= self.quiet_period and k not in self._in_flight]
        return self._write_keys(due)

    def flush(self) -> List[Hashable]:
        """Persist everything staged, regardless of age."""
        with self._lock:
            keys = [k for k in self._pending if k not in self._in_flight]
        return self._write_keys(keys)

    def _write_keys(self, keys: List[Hashable]) -> List[Hashable]:
        written = []
        for key in keys:
            if self._write(key):
                written.append(key)
        return written

    def _write(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._in_flight or key not in self._pending:
                return False
            value, staged_at = self._pending.pop(key)
            self._in_flight.add(key)

        try:
            self.writer(key, value)
        except Exception:
            with self._lock:
                # Keep the value unless a newer one was staged meanwhile
                self._pending.setdefault(key, (value, staged_at))
                self._in_flight.discard(key)
            logger.warning("pending_write_failed", key=str(key), exc_info=True)
            raise

        with self._lock:
            self._persisted[key] = value
            self._in_flight.discard(key)
        logger.debug("pending_write_persisted", key=str(key))
        return True
