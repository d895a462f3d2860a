from dataclasses import dataclass, field
from typing import Optional, Dict, Any
import time


FRAME_SPACE = "frame"
PREVIEW_SPACE = "preview"

STATUS_IDLE = "idle"
STATUS_CAPTURING = "capturing"
STATUS_CROPPING = "cropping"
STATUS_ENCODING = "encoding"
STATUS_SUBMITTING = "submitting"
STATUS_ERRORED = "errored"


@dataclass
class FaceBounds:
    """Axis-aligned face rectangle tagged with the coordinate space it lives in."""
    x: float
    y: float
    width: float
    height: float
    space: str  # FRAME_SPACE or PREVIEW_SPACE

    @property
    def area(self) -> float:
        return float(self.width) * float(self.height)


@dataclass(frozen=True)
class Dimensions:
    width: float
    height: float


@dataclass(frozen=True)
class CropRect:
    """Integer rectangle in full-resolution photo pixel space."""
    origin_x: int
    origin_y: int
    width: int
    height: int


@dataclass
class CapturedPhoto:
    """Transient full-resolution photo owned by a single capture attempt."""
    path: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CaptureState:
    """Session flags owned by the capture pipeline.

    The frame analysis loop only reads these for its eligibility gate.
    """
    is_capturing: bool = False
    last_capture_time: float = 0.0  # ms
    has_completed: bool = False  # one-shot latch
    status: str = STATUS_IDLE
    last_error: Optional[Exception] = None

    def reset(self) -> None:
        self.is_capturing = False
        self.last_capture_time = 0.0
        self.has_completed = False
        self.status = STATUS_IDLE
        self.last_error = None


@dataclass
class CaptureResult:
    """Outcome of one capture attempt."""
    ok: bool
    payload: Optional[str] = None
    error: Optional[Exception] = None
    crop_rect: Optional[CropRect] = None
    response: Optional[Dict[str, Any]] = None


@dataclass
class CaptureStats:
    """Timing metrics for each step of a capture attempt."""
    t_acquire_ms: float = 0.0
    t_crop_ms: float = 0.0
    t_encode_ms: float = 0.0
    t_submit_ms: float = 0.0
    t_total_ms: float = 0.0
    ok: bool = False


@dataclass
class AnalysisOutcome:
    """Per-frame decision of the frame analysis loop."""
    selected: Optional[FaceBounds]
    preview_bounds: Optional[FaceBounds]
    triggered: bool
    reason: str  # e.g. "no_face", "capture_in_flight", "throttled", "triggered"
