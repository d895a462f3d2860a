import argparse
import sys
import threading
from typing import Optional

from config import Config
from camera_interface import CameraInterface
from video_capture import VideoCapture
from face_capture import (
    EventLogger,
    CoordinateMapper,
    ImageEncoder,
    RemoteSink,
    PerformanceMonitor,
    CapturePipeline,
    FrameAnalysisLoop,
)

PREVIEW_CHARS = 100


def build_config(args: argparse.Namespace) -> Config:
    cfg = Config()
    if args.sink_url:
        cfg.set('sink', 'url', args.sink_url)
    if args.throttle_ms is not None:
        cfg.set('capture', 'throttle_ms', args.throttle_ms)
    if args.camera_index is not None:
        cfg.set('video', 'capture_index', args.camera_index)
    if args.log_file:
        cfg.set('logging', 'log_file_path', args.log_file)
    cfg.set('transform', 'mirrored', bool(args.front))
    # the CLI shows each frame 1:1 as its own preview, so only a sensor that
    # reports landscape frames for a portrait preview needs the axis swap
    cfg.set('transform', 'swap_axes', bool(args.rotated_frames))
    return cfg


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Capture one face photo and post it to the ingestion endpoint")
    parser.add_argument('--sink-url', help="POST endpoint for {image, timestamp}")
    parser.add_argument('--throttle-ms', type=float, help="minimum time between capture attempts")
    parser.add_argument('--camera-index', type=int)
    parser.add_argument('--front', action='store_true', help="front-facing camera (mirror preview)")
    parser.add_argument('--rotated-frames', action='store_true',
                        help="frames arrive rotated 90° from the display (swap axes)")
    parser.add_argument('--max-frames', type=int, default=0, help="stop after N frames (0 = no limit)")
    parser.add_argument('--log-file')
    return parser.parse_args(argv)


def run(cfg: Config, max_frames: int = 0) -> Optional[str]:
    """Run the capture session until the first successful capture. Returns the payload."""
    # Imported here so the rest of the package works without MediaPipe installed
    from face_capture.detection import MediaPipeFaceDetectorAdapter

    logger = EventLogger(
        ui_logger=print,
        log_file_path=cfg.get('logging', 'log_file_path'),
        min_level=cfg.get('logging', 'level') or 'INFO',
    )
    done = threading.Event()
    captured = {}

    def on_start():
        logger.info("capture started")

    def on_success(payload: str):
        captured['payload'] = payload
        done.set()

    def on_error(error: Exception):
        logger.error(f"capture failed: {error}")

    vc = VideoCapture(cfg.get('video'))
    camera = CameraInterface(vc, temp_dir=cfg.get('camera', 'temp_dir'), logger=logger)
    detector = MediaPipeFaceDetectorAdapter(cfg)
    mapper = CoordinateMapper(cfg)
    sink = RemoteSink.from_config(cfg, logger=logger)
    perf = PerformanceMonitor()
    pipeline = CapturePipeline(
        camera, ImageEncoder.from_config(cfg), sink, mapper, cfg,
        logger=logger, perf_monitor=perf,
        on_capture_start=on_start, on_capture_success=on_success, on_capture_error=on_error,
    )
    loop = FrameAnalysisLoop(pipeline, mapper, logger=logger)

    n_frames = 0
    try:
        while not done.is_set():
            frame, _ = camera.grab_frame()
            if frame is None:
                continue
            n_frames += 1
            if loop.preview_size is None:
                # Headless: the preview is the frame shown 1:1
                h, w = frame.shape[:2]
                loop.on_preview_layout(w, h)
            loop.process_frame(frame, detector)
            if max_frames and n_frames >= max_frames:
                logger.info(f"stopping after {n_frames} frames")
                break
    except KeyboardInterrupt:
        logger.info("interrupted")
    finally:
        pipeline.wait(timeout=5.0)
        logger.info(f"capture stats: {perf.summary()}")
        detector.close()
        vc.release()
        sink.close()
        logger.close()
    return captured.get('payload')


def main(argv=None) -> int:
    args = parse_args(argv)
    payload = run(build_config(args), max_frames=args.max_frames)
    if payload is None:
        return 1
    print("Face captured successfully")
    print(f"Base64 preview: {payload[:PREVIEW_CHARS]}...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
