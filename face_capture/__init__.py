"""
face_capture package
Face-triggered, throttled single-shot photo capture: frame analysis,
coordinate mapping, crop/encode and submission to a remote sink.
"""

from .types import (
    FaceBounds,
    Dimensions,
    CropRect,
    CapturedPhoto,
    CaptureState,
    CaptureResult,
    CaptureStats,
    AnalysisOutcome,
    FRAME_SPACE,
    PREVIEW_SPACE,
)
from .errors import (
    CaptureError,
    AcquisitionError,
    CoordinateError,
    EncodingError,
    SubmissionError,
    FaceDetectionError,
)
from .logger import EventLogger
from .coordinates import CoordinateMapper
from .encoding import ImageEncoder
from .sink import RemoteSink
from .monitor import PerformanceMonitor
from .pipeline import CapturePipeline
from .analysis import FrameAnalysisLoop, select_primary_face

__all__ = [
    "FaceBounds",
    "Dimensions",
    "CropRect",
    "CapturedPhoto",
    "CaptureState",
    "CaptureResult",
    "CaptureStats",
    "AnalysisOutcome",
    "FRAME_SPACE",
    "PREVIEW_SPACE",
    "CaptureError",
    "AcquisitionError",
    "CoordinateError",
    "EncodingError",
    "SubmissionError",
    "FaceDetectionError",
    "EventLogger",
    "CoordinateMapper",
    "ImageEncoder",
    "RemoteSink",
    "PerformanceMonitor",
    "CapturePipeline",
    "FrameAnalysisLoop",
    "select_primary_face",
]
