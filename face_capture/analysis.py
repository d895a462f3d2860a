from __future__ import annotations
from typing import Iterable, Optional

from .types import AnalysisOutcome, Dimensions, FaceBounds
from .errors import CoordinateError, FaceDetectionError
from .logger import EventLogger


def select_primary_face(faces: Iterable[FaceBounds]) -> Optional[FaceBounds]:
    """Largest face by box area; the first one wins ties. None for no faces."""
    best = None
    for face in faces or ():
        if best is None or face.area > best.area:
            best = face
    return best


class FrameAnalysisLoop:
    """Per-frame selection, eligibility gate and capture trigger.

    Runs on the frame producer. It only reads the pipeline's CaptureState and
    never waits on a capture: `pipeline.capture()` returns immediately.
    """

    def __init__(self, pipeline, mapper, logger: Optional[EventLogger] = None):
        self.pipeline = pipeline
        self.mapper = mapper
        self.log = logger or EventLogger()
        self.preview_size: Optional[Dimensions] = None
        self.frame_size: Optional[Dimensions] = None

    def on_preview_layout(self, width: float, height: float) -> None:
        # Realized preview size is fixed for the session; later layouts are ignored
        if self.preview_size is not None:
            return
        if width <= 0 or height <= 0:
            self.log.debug(f"ignoring empty preview layout {width}x{height}")
            return
        self.preview_size = Dimensions(width=float(width), height=float(height))
        self.log.info(f"preview layout {width}x{height}")

    def reset(self) -> None:
        self.preview_size = None
        self.frame_size = None

    def on_faces(self, faces, frame_width: Optional[float], frame_height: Optional[float]) -> AnalysisOutcome:
        faces = list(faces or [])
        if frame_width and frame_height:
            self.frame_size = Dimensions(width=float(frame_width), height=float(frame_height))

        face = select_primary_face(faces)
        if face is None:
            return AnalysisOutcome(selected=None, preview_bounds=None, triggered=False, reason="no_face")

        state = self.pipeline.state
        if state.is_capturing:
            return AnalysisOutcome(selected=face, preview_bounds=None, triggered=False, reason="capture_in_flight")
        if state.has_completed:
            return AnalysisOutcome(selected=face, preview_bounds=None, triggered=False, reason="already_captured")
        if self.preview_size is None:
            return AnalysisOutcome(selected=face, preview_bounds=None, triggered=False, reason="preview_not_ready")
        if self.frame_size is None:
            return AnalysisOutcome(selected=face, preview_bounds=None, triggered=False, reason="frame_not_ready")

        try:
            preview_bounds = self.mapper.frame_to_preview(face, self.frame_size, self.preview_size)
        except CoordinateError as e:
            self.log.error(f"coordinate error: {e}")
            return AnalysisOutcome(selected=face, preview_bounds=None, triggered=False, reason="coordinate_error")

        accepted = self.pipeline.capture(preview_bounds, self.preview_size.width, self.preview_size.height)
        if accepted:
            self.log.info(f"{len(faces)} face(s) detected, capture triggered")
        return AnalysisOutcome(
            selected=face,
            preview_bounds=preview_bounds,
            triggered=accepted,
            reason="triggered" if accepted else "rejected",
        )

    def process_frame(self, frame, detector) -> AnalysisOutcome:
        """Detect faces in `frame` and run the gate; detector failures count as no face."""
        h, w = frame.shape[:2]
        try:
            faces = detector.detect(frame)
        except FaceDetectionError as e:
            self.log.error(f"detection error: {e}")
            faces = []
        return self.on_faces(faces, w, h)
