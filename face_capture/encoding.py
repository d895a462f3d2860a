from __future__ import annotations
import base64

import cv2
from PIL import Image

from .types import Dimensions, CropRect
from .errors import CoordinateError, EncodingError

# EXIF orientations that rotate the stored raster by 90°/270°
_EXIF_ORIENTATION_TAG = 0x0112
_ROTATED_ORIENTATIONS = (5, 6, 7, 8)


class ImageEncoder:
    """Crop and encode engine for captured photos.

    Sizes are read from the file header with Pillow, pixels with OpenCV.
    OpenCV applies the EXIF orientation on read, so reported sizes do too.
    """

    def __init__(self, jpeg_quality: float = 0.9):
        if not (0.0 < float(jpeg_quality) <= 1.0):
            raise ValueError(f"jpeg_quality must be in (0, 1]: {jpeg_quality}")
        self.jpeg_quality = float(jpeg_quality)

    @classmethod
    def from_config(cls, config) -> "ImageEncoder":
        return cls(jpeg_quality=float(config.get('capture', 'jpeg_quality') or 0.9))

    def read_size(self, path: str) -> Dimensions:
        try:
            with Image.open(path) as img:
                width, height = img.size
                orientation = img.getexif().get(_EXIF_ORIENTATION_TAG, 1)
        except (OSError, ValueError) as e:
            raise CoordinateError(f"could not read image size of {path}: {e}") from e
        if orientation in _ROTATED_ORIENTATIONS:
            width, height = height, width
        return Dimensions(width=width, height=height)

    def crop_and_encode(self, path: str, rect: CropRect) -> str:
        img = cv2.imread(path, cv2.IMREAD_COLOR)
        if img is None:
            raise EncodingError(f"could not read image {path}")
        h, w = img.shape[:2]
        if rect.origin_x + rect.width > w or rect.origin_y + rect.height > h:
            raise EncodingError(f"crop {rect} exceeds image {w}x{h}")
        crop = img[rect.origin_y:rect.origin_y + rect.height, rect.origin_x:rect.origin_x + rect.width]
        if crop.size == 0:
            raise EncodingError(f"empty crop {rect}")
        quality = int(round(self.jpeg_quality * 100))
        ok, buf = cv2.imencode(".jpg", crop, [cv2.IMWRITE_JPEG_QUALITY, quality])
        if not ok:
            raise EncodingError("JPEG encode failed")
        return base64.b64encode(buf.tobytes()).decode("ascii")

    def encode_full(self, path: str) -> str:
        try:
            with open(path, "rb") as fh:
                data = fh.read()
        except OSError as e:
            raise EncodingError(f"could not read photo {path}: {e}") from e
        if not data:
            raise EncodingError(f"photo {path} is empty")
        return base64.b64encode(data).decode("ascii")
