from __future__ import annotations
import threading
from collections import deque
from .types import CaptureStats


class PerformanceMonitor:
    """Tracks per-attempt step timings and outcome counts."""

    def __init__(self, history_len: int = 50):
        self.acquire_ms = deque(maxlen=history_len)
        self.crop_ms = deque(maxlen=history_len)
        self.encode_ms = deque(maxlen=history_len)
        self.submit_ms = deque(maxlen=history_len)
        self.total_ms = deque(maxlen=history_len)
        self.successes = 0
        self.errors = 0
        self._lock = threading.Lock()

    def record(self, stats: CaptureStats):
        with self._lock:
            self.acquire_ms.append(stats.t_acquire_ms)
            self.crop_ms.append(stats.t_crop_ms)
            self.encode_ms.append(stats.t_encode_ms)
            self.submit_ms.append(stats.t_submit_ms)
            self.total_ms.append(stats.t_total_ms)
            if stats.ok:
                self.successes += 1
            else:
                self.errors += 1

    def summary(self) -> dict:
        def avg(q):
            return float(sum(q) / len(q)) if q else 0.0
        with self._lock:
            return {
                "attempts": self.successes + self.errors,
                "successes": self.successes,
                "errors": self.errors,
                "avg_acquire_ms": avg(self.acquire_ms),
                "avg_crop_ms": avg(self.crop_ms),
                "avg_encode_ms": avg(self.encode_ms),
                "avg_submit_ms": avg(self.submit_ms),
                "avg_total_ms": avg(self.total_ms),
            }
