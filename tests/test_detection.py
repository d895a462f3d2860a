from types import SimpleNamespace

import numpy as np
import pytest

pytest.importorskip("mediapipe")

from face_capture.detection import MediaPipeFaceDetectorAdapter
from face_capture.errors import FaceDetectionError
from face_capture.types import FRAME_SPACE


class FakeMPDetector:
    def __init__(self, boxes=None, error=None):
        self.boxes = boxes or []
        self.error = error

    def process(self, rgb):
        if self.error is not None:
            raise self.error
        detections = [
            SimpleNamespace(location_data=SimpleNamespace(relative_bounding_box=SimpleNamespace(
                xmin=x, ymin=y, width=w, height=h)))
            for x, y, w, h in self.boxes
        ]
        return SimpleNamespace(detections=detections or None)

    def close(self):
        pass


def make_adapter(fake):
    adapter = MediaPipeFaceDetectorAdapter.__new__(MediaPipeFaceDetectorAdapter)
    adapter.config = None
    adapter._detector = fake
    return adapter


def test_relative_boxes_become_frame_pixels():
    adapter = make_adapter(FakeMPDetector(boxes=[(0.25, 0.5, 0.1, 0.2)]))
    faces = adapter.detect(np.zeros((480, 640, 3), dtype=np.uint8))
    assert len(faces) == 1
    face = faces[0]
    assert face.space == FRAME_SPACE
    assert (face.x, face.y, face.width, face.height) == pytest.approx((160.0, 240.0, 64.0, 96.0))


def test_no_detections_is_empty_list():
    adapter = make_adapter(FakeMPDetector())
    assert adapter.detect(np.zeros((10, 10, 3), dtype=np.uint8)) == []


def test_detector_failure_raises():
    adapter = make_adapter(FakeMPDetector(error=RuntimeError("graph error")))
    with pytest.raises(FaceDetectionError):
        adapter.detect(np.zeros((10, 10, 3), dtype=np.uint8))
    with pytest.raises(FaceDetectionError):
        adapter.detect(None)
