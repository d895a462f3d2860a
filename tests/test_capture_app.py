from capture_app import build_config, parse_args
from face_capture.coordinates import CoordinateMapper
from face_capture.types import CropRect, Dimensions, FaceBounds, FRAME_SPACE


def test_build_config_from_flags():
    args = parse_args([
        '--sink-url', 'http://10.0.0.5:5000/save-base64',
        '--throttle-ms', '3000',
        '--front',
        '--rotated-frames',
        '--camera-index', '2',
    ])
    cfg = build_config(args)
    assert cfg.get('sink', 'url') == 'http://10.0.0.5:5000/save-base64'
    assert cfg.get('capture', 'throttle_ms') == 3000.0
    assert cfg.get('transform', 'mirrored') is True
    assert cfg.get('transform', 'swap_axes') is True
    assert cfg.get('video', 'capture_index') == 2


def test_default_cli_crop_contains_face_in_webcam_frame():
    # Headless run: the 1280x720 frame is both the preview and the photo
    cfg = build_config(parse_args([]))
    assert cfg.get('transform', 'swap_axes') is False
    assert cfg.get('capture', 'throttle_ms') == 2000

    mapper = CoordinateMapper(cfg)
    frame = Dimensions(1280, 720)
    face = FaceBounds(600, 300, 100, 100, FRAME_SPACE)
    preview_face = mapper.frame_to_preview(face, frame, frame)
    assert (preview_face.x, preview_face.y, preview_face.width, preview_face.height) == (600, 300, 100, 100)

    rect = mapper.compute_crop_rect(preview_face, frame, frame)
    assert rect == CropRect(580, 270, 140, 160)
    assert rect.origin_x <= 600 and rect.origin_x + rect.width >= 700
    assert rect.origin_y <= 300 and rect.origin_y + rect.height >= 400
