from typing import Any, Dict


class Config:
    """Minimal config shim providing nested dict access via get/set.

    Defaults match the portrait-mode phone capture flow: back camera,
    sensor frames rotated 90° relative to the preview, 2s between captures.
    """

    def __init__(self):
        self._cfg: Dict[str, Dict[str, Any]] = {
            'capture': {
                'throttle_ms': 2000,
                'jpeg_quality': 0.9,      # 0..1, mapped to OpenCV's 0..100
                'flash': False,
                'enable_shutter_sound': False,
            },
            'crop': {
                # Padding as a fraction of the face box in photo pixels
                'top_pad_ratio': 0.30,
                'bottom_pad_ratio': 0.30,
                'side_pad_ratio': 0.20,
            },
            'transform': {
                'mirrored': False,   # front-facing camera
                'swap_axes': True,   # sensor frame rotated 90° vs. display
            },
            'sink': {
                'url': 'http://127.0.0.1:5000/save-base64',
                'timeout_s': 10.0,   # None waits forever
            },
            'video': {
                'capture_index': 0,
                'width': 1280,
                'height': 720,
                'fps': 30,
                'backend': 'ANY',    # ANY | DSHOW | MSMF | V4L2
                'fourcc': 'MJPG',
                'buffersize': 1,
                # Watchdog: reinitialize capture after N consecutive read failures
                'reinit_fail_threshold': 30,
            },
            'detection': {
                'model_selection': 0,  # 0: short range (<2m), 1: full range
                'min_detection_confidence': 0.5,
            },
            'camera': {
                'temp_dir': None,    # None: system temp dir
            },
            'logging': {
                'log_file_path': None,
                'level': 'INFO',
            },
        }

    def get(self, section: str, key: str = None):
        sec = self._cfg.get(section, {})
        if key is None:
            return sec
        return sec.get(key)

    def set(self, section: str, key: str, value: Any) -> None:
        self._cfg.setdefault(section, {})[key] = value
