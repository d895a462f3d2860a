from typing import Optional, Tuple, Dict, Any
import cv2
import numpy as np
import queue
import threading
import time


_BACKENDS = {
    'ANY': cv2.CAP_ANY,
    'DSHOW': cv2.CAP_DSHOW,
    'MSMF': cv2.CAP_MSMF,
    'V4L2': cv2.CAP_V4L2,
}


class VideoCapture:
    """OpenCV capture on a background thread: the frame producer.

    Frames go through a small queue that drops the oldest entry when full, so
    consumers always see the latest frame and never build a backlog.
    The most recent good frame is also kept for still captures.

    Expects cfg keys: capture_index, width, height, fps, backend, fourcc,
    buffersize, reinit_fail_threshold.
    """

    def __init__(self, cfg: Dict[str, Any]):
        self.index = int(cfg.get('capture_index', 0) or 0)
        self.width = int(cfg.get('width', 1280) or 1280)
        self.height = int(cfg.get('height', 720) or 720)
        self.target_fps = float(cfg.get('fps', 30) or 30)
        self.backend = (cfg.get('backend') or 'ANY').upper()
        self.fourcc = (cfg.get('fourcc') or 'MJPG').upper()
        self.buffersize = int(cfg.get('buffersize', 1) or 1)
        # Reopen the device after this many consecutive read failures
        self.reinit_fail_threshold = int(cfg.get('reinit_fail_threshold', 30) or 30)

        self.cap: Optional[cv2.VideoCapture] = None
        self._queue: queue.Queue = queue.Queue(maxsize=max(1, self.buffersize))
        self._frame_lock = threading.Lock()
        self._running: bool = False
        self._capture_thread: Optional[threading.Thread] = None
        self._last_frame: Optional[np.ndarray] = None
        self._last_frame_ts: float = 0.0
        self._fps_count: int = 0
        self._fps_start: float = time.time()
        self._fail_count: int = 0
        self._reinit_attempts: int = 0

        if not self._open_capture():
            raise RuntimeError(f"could not open camera {self.index} (backend {self.backend})")
        self._running = True
        self._capture_thread = threading.Thread(target=self._capture_loop, name="video-capture", daemon=True)
        self._capture_thread.start()

    @property
    def is_running(self) -> bool:
        return self._running and self.cap is not None

    def _open_capture(self) -> bool:
        """Open camera with backend and apply tuned properties; return success."""
        backend_flag = _BACKENDS.get(self.backend, cv2.CAP_ANY)
        cap = cv2.VideoCapture(self.index, backend_flag)
        if not cap or not cap.isOpened():
            return False
        # Some backends ignore certain properties; set() just returns False then
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self.width))
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self.height))
        cap.set(cv2.CAP_PROP_FPS, float(self.target_fps))
        cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*self.fourcc))
        cap.set(cv2.CAP_PROP_BUFFERSIZE, int(self.buffersize))
        self._close_capture()
        self.cap = cap
        self._fail_count = 0
        return True

    def _close_capture(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def _capture_loop(self):
        while self._running:
            ok, frame = (self.cap.read() if self.cap is not None else (False, None))
            if ok and frame is not None:
                self._fps_count += 1
                self._fail_count = 0
                with self._frame_lock:
                    self._last_frame = frame
                    self._last_frame_ts = time.time()
                self._offer(frame)
                continue

            self._fail_count += 1
            if self._fail_count >= self.reinit_fail_threshold:
                self._reinit_attempts += 1
                self._open_capture()
                self._fail_count = 0
            time.sleep(0.01)

    def _offer(self, frame) -> None:
        # Latest value wins
        try:
            if self._queue.full():
                self._queue.get_nowait()
            self._queue.put_nowait(frame)
        except (queue.Empty, queue.Full):
            pass

    def _current_fps(self) -> float:
        now = time.time()
        elapsed = max(1e-3, now - self._fps_start)
        fps = float(self._fps_count) / elapsed
        if elapsed >= 1.0:
            self._fps_start = now
            self._fps_count = 0
        return fps

    def get_frame(self, timeout: float = 0.05) -> Tuple[bool, Optional[np.ndarray]]:
        if not self._running:
            return False, None
        try:
            return True, self._queue.get(timeout=timeout)
        except queue.Empty:
            return False, None

    def latest_frame(self) -> Tuple[Optional[np.ndarray], float]:
        """Copy of the most recent good frame and its timestamp."""
        with self._frame_lock:
            if self._last_frame is None:
                return None, 0.0
            return self._last_frame.copy(), self._last_frame_ts

    def get_status(self) -> Dict[str, Any]:
        return {
            'connected': bool(self.cap is not None and self.cap.isOpened()),
            'resolution': (self.width, self.height),
            'fps_target': self.target_fps,
            'fps_measured': self._current_fps(),
            'backend': self.backend,
            'fourcc': self.fourcc,
            'fail_count': self._fail_count,
            'reinit_attempts': self._reinit_attempts,
        }

    def release(self) -> None:
        self._running = False
        if self._capture_thread:
            self._capture_thread.join(timeout=0.5)
        self._close_capture()
        while not self._queue.empty():
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
