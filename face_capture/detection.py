from __future__ import annotations
from typing import List

import cv2
import mediapipe as mp

from .types import FaceBounds, FRAME_SPACE
from .errors import FaceDetectionError


class IFaceDetector:
    """Interface for face detection components.

    Implementations return every face found in the frame as frame-space
    bounds in pixels; an empty list means no face.
    """

    def detect(self, frame) -> List[FaceBounds]:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MediaPipeFaceDetectorAdapter(IFaceDetector):
    """Adapter wrapping MediaPipe face detection as a black-box detector.

    - Runs on BGR frames from OpenCV
    - Converts relative bounding boxes to frame pixels
    """

    def __init__(self, config):
        self.config = config
        try:
            model_selection = int(config.get('detection', 'model_selection') or 0)
            min_conf = float(config.get('detection', 'min_detection_confidence') or 0.5)
        except Exception as e:
            raise FaceDetectionError(f"invalid detection config: {e}")
        self._detector = mp.solutions.face_detection.FaceDetection(
            model_selection=model_selection,
            min_detection_confidence=min_conf,
        )

    def detect(self, frame) -> List[FaceBounds]:
        if frame is None:
            raise FaceDetectionError("no frame")
        h, w = frame.shape[:2]
        try:
            results = self._detector.process(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
        except Exception as e:
            raise FaceDetectionError(f"face detection failed: {e}") from e

        faces: List[FaceBounds] = []
        for detection in results.detections or []:
            bbox = detection.location_data.relative_bounding_box
            faces.append(FaceBounds(
                x=float(bbox.xmin) * w,
                y=float(bbox.ymin) * h,
                width=max(0.0, float(bbox.width) * w),
                height=max(0.0, float(bbox.height) * h),
                space=FRAME_SPACE,
            ))
        return faces

    def close(self) -> None:
        self._detector.close()
