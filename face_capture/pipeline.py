from __future__ import annotations
import threading
import time
from datetime import datetime, timezone
from typing import Optional, Callable

from .types import (
    CaptureState, CaptureResult, CaptureStats, CapturedPhoto, Dimensions, FaceBounds,
    STATUS_IDLE, STATUS_CAPTURING, STATUS_CROPPING, STATUS_ENCODING, STATUS_SUBMITTING, STATUS_ERRORED,
)
from .errors import CaptureError, AcquisitionError
from .logger import EventLogger
from .monitor import PerformanceMonitor


def _now_ms() -> float:
    return time.time() * 1000.0


class CapturePipeline:
    """Throttled, single-flight capture: photo → crop/encode → submit → callbacks.

    `capture()` is the only entry point. It is non-blocking: the guard runs
    under a lock and flips `is_capturing` before the attempt is handed to a
    worker, so two frames racing through the gate cannot both get in.

    Every attempt fires `on_capture_start` followed by exactly one of
    `on_capture_success(payload)` / `on_capture_error(error)`, and always
    deletes the photo it acquired. Callbacks are dropped for an attempt that
    outlives a `reset_session()`.
    """

    def __init__(self, camera, encoder, sink, mapper, config,
                 logger: Optional[EventLogger] = None,
                 perf_monitor: Optional[PerformanceMonitor] = None,
                 on_capture_start: Optional[Callable[[], None]] = None,
                 on_capture_success: Optional[Callable[[str], None]] = None,
                 on_capture_error: Optional[Callable[[Exception], None]] = None,
                 clock: Optional[Callable[[], float]] = None,
                 spawn: Optional[Callable[[Callable[[], None]], None]] = None):
        self.camera = camera
        self.encoder = encoder
        self.sink = sink
        self.mapper = mapper
        self.config = config
        self.log = logger or EventLogger()
        self.perf = perf_monitor or PerformanceMonitor()
        self.on_capture_start = on_capture_start
        self.on_capture_success = on_capture_success
        self.on_capture_error = on_capture_error
        self.state = CaptureState()
        self.last_result: Optional[CaptureResult] = None
        self._clock = clock or _now_ms
        self._spawn = spawn or self._spawn_thread
        self._lock = threading.Lock()
        self._generation = 0  # bumped by reset_session
        self._worker: Optional[threading.Thread] = None

    # --- Config helpers ---
    def _throttle_ms(self) -> float:
        val = self.config.get('capture', 'throttle_ms')
        return 2000.0 if val is None else max(0.0, float(val))

    def _flag(self, key: str) -> bool:
        return bool(self.config.get('capture', key))

    def _camera_active(self) -> bool:
        return self.camera is not None and bool(getattr(self.camera, 'is_active', True))

    # --- Entry point ---
    def capture(self, bounds: Optional[FaceBounds] = None,
                preview_width: Optional[float] = None,
                preview_height: Optional[float] = None) -> bool:
        """Start a capture attempt unless guarded; returns True if accepted."""
        if not self._camera_active():
            self.log.debug("capture skipped: camera not ready")
            return False

        with self._lock:
            if self.state.is_capturing:
                self.log.debug("capture skipped: already capturing")
                return False
            now = float(self._clock())
            elapsed = now - self.state.last_capture_time
            throttle = self._throttle_ms()
            if elapsed < throttle:
                self.log.debug(f"capture throttled, wait {throttle - elapsed:.0f}ms")
                return False
            previous_time = self.state.last_capture_time
            self.state.is_capturing = True
            self.state.last_capture_time = now
            self.state.status = STATUS_CAPTURING
            self.state.last_error = None
            generation = self._generation

        try:
            self._spawn(lambda: self._run_attempt(bounds, preview_width, preview_height, now, generation))
        except RuntimeError as e:
            self.log.error(f"could not start capture worker: {e}")
            with self._lock:
                # a start that never ran must not throttle the next one
                if self.state.last_capture_time == now:
                    self.state.last_capture_time = previous_time
            self._finish()
            return False
        return True

    def _spawn_thread(self, fn: Callable[[], None]) -> None:
        worker = threading.Thread(target=fn, name="face-capture-attempt", daemon=True)
        self._worker = worker
        worker.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the current worker thread; True if no attempt is running afterwards."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout=timeout)
        return not self.state.is_capturing

    def reset_session(self) -> None:
        """Reset flags for a new screen activation.

        An in-flight attempt keeps its guard until it finishes, but it belongs
        to the old session: it will not latch or notify this one.
        """
        with self._lock:
            self._generation += 1
            in_flight = self.state.is_capturing
            status = self.state.status
            self.state.reset()
            if in_flight:
                self.state.is_capturing = True
                self.state.status = status
        self.last_result = None

    # --- Attempt ---
    def _run_attempt(self, bounds: Optional[FaceBounds], preview_width: Optional[float],
                     preview_height: Optional[float], accepted_at_ms: float,
                     generation: int = 0) -> CaptureResult:
        stats = CaptureStats()
        t_total0 = time.time()
        photo: Optional[CapturedPhoto] = None
        result: Optional[CaptureResult] = None
        try:
            self._notify(generation, self.on_capture_start)
            self.log.info("starting image capture")

            # 1) Acquire
            t0 = time.time()
            try:
                photo = self._acquire()
            finally:
                stats.t_acquire_ms = (time.time() - t0) * 1000.0
            self.log.info(f"photo captured at {photo.path}")

            # 2) Crop + encode, or encode the full photo
            crop_rect = None
            if bounds is not None and preview_width is not None and preview_height is not None:
                self._set_status(STATUS_CROPPING)
                t0 = time.time()
                try:
                    photo_size = self.encoder.read_size(photo.path)
                    crop_rect = self.mapper.compute_crop_rect(
                        bounds, Dimensions(preview_width, preview_height), photo_size)
                finally:
                    stats.t_crop_ms = (time.time() - t0) * 1000.0

                self._set_status(STATUS_ENCODING)
                t0 = time.time()
                try:
                    payload = self.encoder.crop_and_encode(photo.path, crop_rect)
                finally:
                    stats.t_encode_ms = (time.time() - t0) * 1000.0
                self.log.info(f"face cropped to {crop_rect}, base64 size {len(payload)} chars")
            else:
                self._set_status(STATUS_ENCODING)
                t0 = time.time()
                try:
                    payload = self.encoder.encode_full(photo.path)
                finally:
                    stats.t_encode_ms = (time.time() - t0) * 1000.0
                self.log.info(f"full image converted, base64 size {len(payload)} chars")

            # 3) Submit
            self._set_status(STATUS_SUBMITTING)
            t0 = time.time()
            try:
                captured_at = datetime.fromtimestamp(accepted_at_ms / 1000.0, tz=timezone.utc)
                response = self.sink.submit(payload, captured_at=captured_at)
            finally:
                stats.t_submit_ms = (time.time() - t0) * 1000.0

            result = CaptureResult(ok=True, payload=payload, crop_rect=crop_rect, response=response)
        except CaptureError as e:
            result = self._fail(e, generation)
        except Exception as e:
            err = CaptureError(f"unexpected capture failure: {e}")
            err.__cause__ = e
            result = self._fail(err, generation)
        else:
            # 4) One-shot latch, then notify
            with self._lock:
                current = generation == self._generation
                if current:
                    self.state.has_completed = True
            if current:
                self.log.info("capture process completed successfully")
            else:
                self.log.info("capture from a previous session finished, result dropped")
            self._notify(generation, self.on_capture_success, result.payload)
        finally:
            # 5) Cleanup, 6) release the guard
            if photo is not None:
                self._delete_photo(photo)
            stats.ok = bool(result is not None and result.ok)
            stats.t_total_ms = (time.time() - t_total0) * 1000.0
            self.perf.record(stats)
            if self._is_current(generation):
                self.last_result = result
            self._finish()
        return result

    def _acquire(self) -> CapturedPhoto:
        try:
            photo = self.camera.take_photo(
                flash=self._flag('flash'),
                enable_shutter_sound=self._flag('enable_shutter_sound'),
            )
        except AcquisitionError:
            raise
        except Exception as e:
            raise AcquisitionError(f"take_photo failed: {e}") from e
        if photo is None or not getattr(photo, 'path', None):
            raise AcquisitionError("camera returned no photo")
        return photo

    def _fail(self, error: CaptureError, generation: int = 0) -> CaptureResult:
        with self._lock:
            if generation == self._generation:
                self.state.status = STATUS_ERRORED
                self.state.last_error = error
        self.log.error(f"capture failed: {type(error).__name__}: {error}")
        self._notify(generation, self.on_capture_error, error)
        return CaptureResult(ok=False, error=error)

    def _delete_photo(self, photo: CapturedPhoto) -> None:
        try:
            self.camera.delete_photo(photo)
            self.log.debug(f"temporary file deleted: {photo.path}")
        except Exception as e:
            self.log.warning(f"could not delete {photo.path}: {e}")

    def _set_status(self, status: str) -> None:
        with self._lock:
            self.state.status = status

    def _finish(self) -> None:
        with self._lock:
            self.state.is_capturing = False
            self.state.status = STATUS_IDLE

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _notify(self, generation: int, callback, *args) -> None:
        if callback is None or not self._is_current(generation):
            return
        try:
            callback(*args)
        except Exception as e:
            self.log.error(f"callback {getattr(callback, '__name__', callback)} raised: {e}")
