from datetime import datetime
from typing import Dict, Optional

from app.domain.models import BufferKey

class ThrottleTracker:
    """
    Last successful send per (participant, rule).

    Process-local: a second instance consuming the same event stream keeps
    its own map and can send inside another instance's throttle window.
    """

    def __init__(self) -> None:
        self._last_sent: Dict[BufferKey, datetime] = {}

    def last_sent(self, key: BufferKey) -> Optional[datetime]:
        return self._last_sent.get(key)

    def seconds_since_last(self, key: BufferKey, now: datetime) -> Optional[float]:
        last = self._last_sent.get(key)
        if last is None:
            return None
        return (now - last).total_seconds()

    def is_throttled(self, key: BufferKey, now: datetime, throttle_sec: int) -> bool:
        elapsed = self.seconds_since_last(key, now)
        return elapsed is not None and elapsed < throttle_sec

    def mark_sent(self, key: BufferKey, now: datetime) -> None:
        self._last_sent[key] = now

    def __len__(self) -> int:
        return len(self._last_sent)
