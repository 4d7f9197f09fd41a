# kafka_canary/services/sample_ring.py
import collections
import threading
from typing import Deque, NamedTuple


class RingSnapshot(NamedTuple):
    head: int
    tail: int
    count: int

    @property
    def delta(self) -> int:
        return self.head - self.tail


class SampleRing:
    """
    Fixed-capacity ring of cumulative counters, one slot per sampling tick.

    `head()` is the newest counter and `tail()` the oldest one still inside
    the window, so `head() - tail()` is what happened during the window.
    Once full, each append evicts the single oldest sample.

    One writer, any number of readers: every access holds the lock, and
    `snapshot()` returns head/tail/count read together.
    """

    def __init__(self, capacity: int):
        capacity = int(capacity)
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._cap = capacity
        self._buf: Deque[int] = collections.deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._cap

    def append(self, counter: int) -> None:
        with self._lock:
            self._buf.append(int(counter))

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._buf)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._buf

    def head(self) -> int:
        with self._lock:
            return self._buf[-1] if self._buf else 0

    def tail(self) -> int:
        with self._lock:
            return self._buf[0] if self._buf else 0

    def snapshot(self) -> RingSnapshot:
        with self._lock:
            if not self._buf:
                return RingSnapshot(0, 0, 0)
            return RingSnapshot(self._buf[-1], self._buf[0], len(self._buf))

    def __repr__(self) -> str:
        snap = self.snapshot()
        return f"SampleRing(capacity={self._cap}, count={snap.count}, head={snap.head}, tail={snap.tail})"
