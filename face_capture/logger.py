from __future__ import annotations
import threading
import time
from typing import Optional, Callable


class EventLogger:
    """Session log for the capture app: console or UI callback plus an optional file.

    Emits `[ts] name LEVEL: msg` lines. Safe to call from the frame producer
    and from capture worker threads at the same time.
    """

    def __init__(self, name: str = "face_capture", ui_logger: Optional[Callable[[str], None]] = None,
                 log_file_path: Optional[str] = None, min_level: str = "DEBUG"):
        self.name = name
        self.ui_logger = ui_logger
        self.log_file_path = log_file_path
        self.min_level = min_level
        self._lock = threading.Lock()
        self._file = None
        if log_file_path:
            try:
                self._file = open(log_file_path, "a", encoding="utf-8")
            except OSError:
                self._file = None

    _LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

    def _emit(self, level: str, msg: str):
        if self._LEVELS[level] < self._LEVELS.get(self.min_level, 10):
            return
        ts = time.strftime("%Y-%m-%d %H:%M:%S")
        line = f"[{ts}] {self.name} {level}: {msg}"
        with self._lock:
            if self.ui_logger:
                try:
                    self.ui_logger(line)
                except Exception:
                    pass
            if self._file:
                try:
                    self._file.write(line + "\n")
                    self._file.flush()
                except OSError:
                    pass

    def debug(self, msg: str):
        self._emit("DEBUG", msg)

    def info(self, msg: str):
        self._emit("INFO", msg)

    def warning(self, msg: str):
        self._emit("WARNING", msg)

    def error(self, msg: str):
        self._emit("ERROR", msg)

    def close(self):
        with self._lock:
            if self._file:
                try:
                    self._file.close()
                except OSError:
                    pass
                self._file = None
