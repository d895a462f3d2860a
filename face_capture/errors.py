class CaptureError(Exception):
    """Base class for failures surfaced through the capture error callback."""


class AcquisitionError(CaptureError):
    """Raised when the camera cannot produce a full-resolution photo."""


class CoordinateError(CaptureError):
    """Raised when bounds cannot be transformed into a valid crop rectangle."""


class EncodingError(CaptureError):
    """Raised when the photo or its crop cannot be encoded to a payload."""


class SubmissionError(CaptureError):
    """Raised when the remote sink rejects or fails to receive the payload."""


class FaceDetectionError(Exception):
    """Raised when face detection fails or yields invalid data."""
