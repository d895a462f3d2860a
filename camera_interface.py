from typing import Tuple, Any, Optional
import os
import tempfile
import time

import cv2

from face_capture.types import CapturedPhoto
from face_capture.errors import AcquisitionError
from video_capture import VideoCapture


class CameraInterface:
    """Camera session over a VideoCapture: live frames plus full-resolution stills.

    Stills are written to a temporary JPEG that the capture attempt owns and
    deletes through `delete_photo`.
    """

    def __init__(self, ob_video_capture: VideoCapture, temp_dir: Optional[str] = None, logger=None):
        self.ob_video_capture = ob_video_capture
        self.temp_dir = temp_dir
        self.log = logger

    @property
    def is_active(self) -> bool:
        return self.ob_video_capture is not None and self.ob_video_capture.is_running

    def grab_frame(self) -> Tuple[Any, float]:
        b_ok, ob_frame = self.ob_video_capture.get_frame()
        f_timestamp_s = time.time()
        return (ob_frame if b_ok else None), f_timestamp_s

    def take_photo(self, flash: bool = False, enable_shutter_sound: bool = False) -> CapturedPhoto:
        if not self.is_active:
            raise AcquisitionError("camera is not active")
        if (flash or enable_shutter_sound) and self.log:
            # Webcams have neither
            self.log.debug("flash/shutter sound not supported by this camera; ignored")

        ob_frame, f_timestamp_s = self.ob_video_capture.latest_frame()
        if ob_frame is None:
            raise AcquisitionError("no frame available yet")

        fd, path = tempfile.mkstemp(prefix="face_capture_", suffix=".jpg", dir=self.temp_dir)
        os.close(fd)
        if not cv2.imwrite(path, ob_frame, [cv2.IMWRITE_JPEG_QUALITY, 100]):
            os.remove(path)
            raise AcquisitionError(f"could not write photo to {path}")
        return CapturedPhoto(path=path, timestamp=f_timestamp_s)

    def delete_photo(self, photo: CapturedPhoto) -> None:
        os.remove(photo.path)
