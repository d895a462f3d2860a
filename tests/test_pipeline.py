import threading
from datetime import datetime, timezone

import pytest

from face_capture.coordinates import CoordinateMapper
from face_capture.errors import AcquisitionError, CaptureError, EncodingError, SubmissionError
from face_capture.logger import EventLogger
from face_capture.monitor import PerformanceMonitor
from face_capture.pipeline import CapturePipeline
from face_capture.types import CapturedPhoto, Dimensions, FaceBounds, PREVIEW_SPACE, STATUS_IDLE
from config import Config


class FakeCamera:
    def __init__(self, fail=False, delete_fail=False, gate=None):
        self.is_active = True
        self.fail = fail
        self.delete_fail = delete_fail
        self.gate = gate
        self.taken = []
        self.deleted = []
        self.flags = []

    def take_photo(self, flash=False, enable_shutter_sound=False):
        self.flags.append((flash, enable_shutter_sound))
        if self.gate is not None:
            self.gate.wait(timeout=5.0)
        if self.fail:
            raise RuntimeError("camera busy")
        photo = CapturedPhoto(path=f"/tmp/photo_{len(self.taken)}.jpg")
        self.taken.append(photo)
        return photo

    def delete_photo(self, photo):
        self.deleted.append(photo.path)
        if self.delete_fail:
            raise OSError("file locked")


class FakeEncoder:
    def __init__(self, size=Dimensions(3000, 4000), crop_error=None):
        self.size = size
        self.crop_error = crop_error
        self.rects = []
        self.full = []

    def read_size(self, path):
        return self.size

    def crop_and_encode(self, path, rect):
        self.rects.append(rect)
        if self.crop_error is not None:
            raise self.crop_error
        return "Y3JvcA=="

    def encode_full(self, path):
        self.full.append(path)
        return "ZnVsbA=="


class FakeSink:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def submit(self, payload, captured_at=None):
        self.calls.append((payload, captured_at))
        if self.fail:
            raise SubmissionError("503 Service Unavailable")
        return {"status": "saved"}


class FakeClock:
    def __init__(self, t=10_000.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, ms):
        self.t += ms


BOUNDS = FaceBounds(282.47, 90.94, 49.12, 181.88, PREVIEW_SPACE)


def make_pipeline(camera=None, encoder=None, sink=None, throttle_ms=2000, spawn="sync", clock=None, lines=None):
    cfg = Config()
    cfg.set('capture', 'throttle_ms', throttle_ms)
    events = []
    pipeline = CapturePipeline(
        camera or FakeCamera(),
        encoder or FakeEncoder(),
        sink or FakeSink(),
        CoordinateMapper(cfg),
        cfg,
        logger=EventLogger(ui_logger=(lines.append if lines is not None else None)),
        perf_monitor=PerformanceMonitor(),
        on_capture_start=lambda: events.append(("start",)),
        on_capture_success=lambda payload: events.append(("success", payload)),
        on_capture_error=lambda err: events.append(("error", err)),
        clock=clock or FakeClock(),
        spawn=(lambda fn: fn()) if spawn == "sync" else spawn,
    )
    return pipeline, events


def test_capture_with_bounds_crops_and_submits():
    camera, encoder, sink = FakeCamera(), FakeEncoder(), FakeSink()
    pipeline, events = make_pipeline(camera, encoder, sink)
    assert pipeline.capture(BOUNDS, 393, 873) is True

    assert events == [("start",), ("success", "Y3JvcA==")]
    assert camera.flags == [(False, False)]
    assert len(encoder.rects) == 1
    rect = encoder.rects[0]
    assert 0 <= rect.origin_x and rect.origin_x + rect.width <= 3000
    assert 0 <= rect.origin_y and rect.origin_y + rect.height <= 4000
    assert sink.calls[0][0] == "Y3JvcA=="
    assert camera.deleted == ["/tmp/photo_0.jpg"]
    assert pipeline.state.is_capturing is False
    assert pipeline.state.has_completed is True
    assert pipeline.state.status == STATUS_IDLE
    assert pipeline.last_result.ok and pipeline.last_result.crop_rect == rect
    assert pipeline.last_result.response == {"status": "saved"}


def test_capture_without_bounds_encodes_full_photo():
    encoder = FakeEncoder()
    pipeline, events = make_pipeline(encoder=encoder)
    assert pipeline.capture() is True
    assert encoder.rects == []
    assert encoder.full == ["/tmp/photo_0.jpg"]
    assert events[-1] == ("success", "ZnVsbA==")


def test_submission_timestamp_is_accept_time():
    sink = FakeSink()
    pipeline, _ = make_pipeline(sink=sink, clock=FakeClock(10_000.0))
    pipeline.capture()
    assert sink.calls[0][1] == datetime.fromtimestamp(10.0, tz=timezone.utc)


def test_throttle_rejects_second_call_within_window():
    camera = FakeCamera()
    clock = FakeClock()
    pipeline, events = make_pipeline(camera=camera, clock=clock, throttle_ms=2000)
    assert pipeline.capture() is True
    clock.advance(500)
    assert pipeline.capture() is False
    assert len(camera.taken) == 1
    assert [e[0] for e in events] == ["start", "success"]

    clock.advance(1500)
    assert pipeline.capture() is True
    assert len(camera.taken) == 2


def test_throttle_still_applies_after_failure():
    clock = FakeClock()
    pipeline, events = make_pipeline(sink=FakeSink(fail=True), clock=clock)
    assert pipeline.capture() is True
    clock.advance(100)
    assert pipeline.capture() is False
    assert [e[0] for e in events] == ["start", "error"]


def test_single_flight_while_attempt_pending():
    pending = []
    camera = FakeCamera()
    pipeline, events = make_pipeline(camera=camera, throttle_ms=0, spawn=pending.append)
    assert pipeline.capture(BOUNDS, 393, 873) is True
    assert pipeline.state.is_capturing is True
    assert pipeline.capture(BOUNDS, 393, 873) is False
    assert len(pending) == 1

    pending.pop()()
    assert pipeline.state.is_capturing is False
    assert len(camera.taken) == 1
    assert pipeline.capture() is True


def test_concurrent_callers_start_one_acquisition():
    gate = threading.Event()
    camera = FakeCamera(gate=gate)
    # spawn=None: real worker threads
    pipeline, events = make_pipeline(camera=camera, throttle_ms=0, spawn=None)

    accepted = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        accepted.append(pipeline.capture(BOUNDS, 393, 873))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    gate.set()
    assert pipeline.wait(timeout=5.0) is True
    assert accepted.count(True) == 1
    assert len(camera.flags) == 1
    assert [e[0] for e in events] == ["start", "success"]


@pytest.mark.parametrize("encoder,sink,expected", [
    (FakeEncoder(), FakeSink(), None),
    (FakeEncoder(crop_error=EncodingError("bad crop")), FakeSink(), EncodingError),
    (FakeEncoder(), FakeSink(fail=True), SubmissionError),
])
def test_photo_deleted_exactly_once(encoder, sink, expected):
    camera = FakeCamera()
    pipeline, events = make_pipeline(camera=camera, encoder=encoder, sink=sink)
    pipeline.capture(BOUNDS, 393, 873)

    assert camera.deleted == ["/tmp/photo_0.jpg"]
    assert pipeline.state.is_capturing is False
    if expected is None:
        assert [e[0] for e in events] == ["start", "success"]
    else:
        assert [e[0] for e in events] == ["start", "error"]
        assert isinstance(events[1][1], expected)
        assert pipeline.state.has_completed is False
        assert isinstance(pipeline.state.last_error, expected)


def test_acquisition_failure_reports_error_without_cleanup():
    camera = FakeCamera(fail=True)
    pipeline, events = make_pipeline(camera=camera)
    pipeline.capture(BOUNDS, 393, 873)
    assert [e[0] for e in events] == ["start", "error"]
    assert isinstance(events[1][1], AcquisitionError)
    assert camera.deleted == []
    assert pipeline.state.is_capturing is False
    assert pipeline.last_result.ok is False


def test_crop_outside_photo_is_a_capture_error():
    camera = FakeCamera()
    pipeline, events = make_pipeline(camera=camera)
    pipeline.capture(FaceBounds(500, 10, 20, 20, PREVIEW_SPACE), 393, 873)
    assert events[-1][0] == "error"
    assert camera.deleted == ["/tmp/photo_0.jpg"]


def test_unexpected_exception_becomes_capture_error():
    camera = FakeCamera()
    pipeline, events = make_pipeline(camera=camera, encoder=FakeEncoder(crop_error=ValueError("boom")))
    pipeline.capture(BOUNDS, 393, 873)
    assert events[-1][0] == "error"
    assert isinstance(events[-1][1], CaptureError)
    assert isinstance(events[-1][1].__cause__, ValueError)
    assert camera.deleted == ["/tmp/photo_0.jpg"]


def test_delete_failure_is_only_logged():
    lines = []
    camera = FakeCamera(delete_fail=True)
    pipeline, events = make_pipeline(camera=camera, lines=lines)
    pipeline.capture(BOUNDS, 393, 873)
    assert [e[0] for e in events] == ["start", "success"]
    assert camera.deleted == ["/tmp/photo_0.jpg"]
    assert any("WARNING: could not delete" in line for line in lines)


def test_inactive_camera_is_silently_skipped():
    camera = FakeCamera()
    camera.is_active = False
    pipeline, events = make_pipeline(camera=camera)
    assert pipeline.capture(BOUNDS, 393, 873) is False
    assert events == []
    assert pipeline.state.last_capture_time == 0.0


def test_success_callback_error_does_not_fire_error_callback():
    cfg = Config()
    errors = []

    def on_success(payload):
        raise RuntimeError("navigation failed")

    pipeline = CapturePipeline(
        FakeCamera(), FakeEncoder(), FakeSink(), CoordinateMapper(cfg), cfg,
        on_capture_success=on_success, on_capture_error=errors.append,
        clock=FakeClock(), spawn=lambda fn: fn(),
    )
    pipeline.capture()
    assert errors == []
    assert pipeline.last_result.ok is True


def test_reset_session_clears_latch_and_throttle():
    clock = FakeClock()
    pipeline, _ = make_pipeline(clock=clock)
    pipeline.capture()
    assert pipeline.state.has_completed is True
    pipeline.reset_session()
    assert pipeline.state.has_completed is False
    assert pipeline.state.last_capture_time == 0.0
    assert pipeline.capture() is True


def test_stats_recorded_per_attempt():
    clock = FakeClock()
    pipeline, _ = make_pipeline(clock=clock, sink=FakeSink(fail=True))
    pipeline.capture()
    summary = pipeline.perf.summary()
    assert summary["attempts"] == 1
    assert summary["errors"] == 1
    assert summary["successes"] == 0


def test_attempt_from_previous_session_does_not_latch_new_one():
    pending = []
    camera = FakeCamera()
    pipeline, events = make_pipeline(camera=camera, spawn=pending.append)
    assert pipeline.capture(BOUNDS, 393, 873) is True

    pipeline.reset_session()
    assert pipeline.state.is_capturing is True
    assert pipeline.capture(BOUNDS, 393, 873) is False

    pending.pop()()
    assert camera.deleted == ["/tmp/photo_0.jpg"]
    assert pipeline.state.is_capturing is False
    assert pipeline.state.has_completed is False
    assert pipeline.last_result is None
    assert events == []

    assert pipeline.capture(BOUNDS, 393, 873) is True
    pending.pop()()
    assert pipeline.state.has_completed is True
    assert [e[0] for e in events] == ["start", "success"]


def test_failed_attempt_from_previous_session_is_not_reported():
    pending = []
    pipeline, events = make_pipeline(sink=FakeSink(fail=True), spawn=pending.append)
    pipeline.capture()
    pipeline.reset_session()
    pending.pop()()
    assert events == []
    assert pipeline.state.last_error is None
    assert pipeline.state.is_capturing is False


def test_worker_start_failure_does_not_throttle_next_attempt():
    starts = []

    def spawn(fn):
        if not starts:
            starts.append("refused")
            raise RuntimeError("can't start new thread")
        fn()

    clock = FakeClock()
    camera = FakeCamera()
    pipeline, events = make_pipeline(camera=camera, clock=clock, spawn=spawn)
    pipeline.state.last_capture_time = 5_000.0
    assert pipeline.capture() is False
    assert pipeline.state.is_capturing is False
    assert pipeline.state.last_capture_time == 5_000.0

    clock.advance(10)
    assert pipeline.capture() is True
    assert len(camera.taken) == 1
    assert [e[0] for e in events] == ["start", "success"]
