from __future__ import annotations
import math
from typing import Tuple

import numpy as np

from .types import FaceBounds, Dimensions, CropRect, FRAME_SPACE, PREVIEW_SPACE
from .errors import CoordinateError


class CoordinateMapper:
    """Maps face bounds from detector frame space to preview space, and from
    preview space to a padded, clamped crop rectangle in photo pixel space.

    Responsibilities:
    - Undo the 90° sensor/display axis swap (configurable)
    - Mirror horizontally for front-facing cameras, here and only here
    - Scale preview bounds into the captured photo
    - Pad the face box by face-relative ratios and clamp to the photo
    """

    def __init__(self, config):
        self.config = config

    # --- Config helpers ---
    def _transform_flags(self) -> Tuple[bool, bool]:
        try:
            mirrored = bool(self.config.get('transform', 'mirrored'))
            swap = self.config.get('transform', 'swap_axes')
            swap_axes = True if swap is None else bool(swap)
        except Exception as e:
            raise CoordinateError(f"invalid transform config: {e}")
        return mirrored, swap_axes

    def _pad_ratios(self) -> Tuple[float, float, float]:
        try:
            top = float(self.config.get('crop', 'top_pad_ratio') or 0.0)
            bottom = float(self.config.get('crop', 'bottom_pad_ratio') or 0.0)
            side = float(self.config.get('crop', 'side_pad_ratio') or 0.0)
        except Exception as e:
            raise CoordinateError(f"invalid crop config: {e}")
        if min(top, bottom, side) < 0.0:
            raise CoordinateError("padding ratios must be >= 0")
        return top, bottom, side

    # --- Validation ---
    @staticmethod
    def _check_bounds(bounds: FaceBounds, space: str) -> None:
        if bounds.space != space:
            raise CoordinateError(f"expected {space} bounds, got {bounds.space}")
        values = (bounds.x, bounds.y, bounds.width, bounds.height)
        if not all(math.isfinite(float(v)) for v in values):
            raise CoordinateError(f"non-finite bounds: {bounds}")
        if bounds.width < 0 or bounds.height < 0:
            raise CoordinateError(f"negative bounds size: {bounds}")

    @staticmethod
    def _check_dims(dims: Dimensions, label: str) -> None:
        w, h = float(dims.width), float(dims.height)
        if not (math.isfinite(w) and math.isfinite(h)) or w <= 0 or h <= 0:
            raise CoordinateError(f"{label} dimensions must be positive: {dims}")

    # --- Frame -> preview ---
    def frame_to_preview(self, bounds: FaceBounds, frame_size: Dimensions, preview_size: Dimensions) -> FaceBounds:
        self._check_bounds(bounds, FRAME_SPACE)
        self._check_dims(frame_size, "frame")
        self._check_dims(preview_size, "preview")
        mirrored, swap_axes = self._transform_flags()

        pw, ph = float(preview_size.width), float(preview_size.height)
        if swap_axes:
            # Sensor frames arrive rotated 90°: frame height runs along the preview's x
            scale_x = pw / float(frame_size.height)
            scale_y = ph / float(frame_size.width)
        else:
            scale_x = pw / float(frame_size.width)
            scale_y = ph / float(frame_size.height)

        scaled_x = float(bounds.x) * scale_x
        scaled_y = float(bounds.y) * scale_y
        scaled_w = float(bounds.width) * scale_x
        scaled_h = float(bounds.height) * scale_y

        x = pw - scaled_x - scaled_w if mirrored else scaled_x
        return FaceBounds(x=x, y=scaled_y, width=scaled_w, height=scaled_h, space=PREVIEW_SPACE)

    # --- Preview -> photo crop ---
    def compute_crop_rect(self, bounds: FaceBounds, preview_size: Dimensions, photo_size: Dimensions) -> CropRect:
        self._check_bounds(bounds, PREVIEW_SPACE)
        self._check_dims(preview_size, "preview")
        self._check_dims(photo_size, "photo")
        top_ratio, bottom_ratio, side_ratio = self._pad_ratios()

        photo_w, photo_h = float(photo_size.width), float(photo_size.height)
        scale_x = photo_w / float(preview_size.width)
        scale_y = photo_h / float(preview_size.height)

        x = float(bounds.x) * scale_x
        y = float(bounds.y) * scale_y
        w = float(bounds.width) * scale_x
        h = float(bounds.height) * scale_y

        top_pad = h * top_ratio
        bottom_pad = h * bottom_ratio
        side_pad = w * side_ratio

        origin_x = max(0.0, x - side_pad)
        origin_y = max(0.0, y - top_pad)
        width = w + 2.0 * side_pad
        height = h + top_pad + bottom_pad

        if origin_x + width > photo_w:
            width = photo_w - origin_x
        if origin_y + height > photo_h:
            height = photo_h - origin_y

        if width <= 0 or height <= 0:
            # Padding plus clamping collapsed the box: use the bare face box
            origin_x = float(np.clip(x, 0.0, photo_w))
            origin_y = float(np.clip(y, 0.0, photo_h))
            width = min(x + w, photo_w) - origin_x
            height = min(y + h, photo_h) - origin_y
            if width <= 0 or height <= 0:
                raise CoordinateError(f"face bounds fall outside the {photo_w:.0f}x{photo_h:.0f} photo")

        return self._to_pixels(origin_x, origin_y, width, height, int(photo_w), int(photo_h))

    @staticmethod
    def _to_pixels(origin_x: float, origin_y: float, width: float, height: float,
                   photo_w: int, photo_h: int) -> CropRect:
        # Rounding each edge independently can overshoot by a pixel; clamp again
        ox = int(np.clip(round(origin_x), 0, photo_w - 1))
        oy = int(np.clip(round(origin_y), 0, photo_h - 1))
        w = int(min(max(1, round(width)), photo_w - ox))
        h = int(min(max(1, round(height)), photo_h - oy))
        return CropRect(origin_x=ox, origin_y=oy, width=w, height=h)
