import logging
import os
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from itertools import islice
from typing import Iterator, List, Optional

import cv2
import numpy as np
from fastapi import UploadFile

from .exceptions import MalformedFrameError, VideoProcessingError

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0
UPLOAD_CHUNK_BYTES = 1024 * 1024


class FrameSource(ABC):
    """Supplies RGBA frames to a liveness run, one per capture tick."""

    @abstractmethod
    def capture_frame(self) -> np.ndarray:
        """
        Returns:
            (H, W, 4) uint8 RGBA array owned by the caller

        Raises:
            MalformedFrameError: the capture is zero-sized or unreadable
        """
        pass


def to_rgba(frame: np.ndarray) -> np.ndarray:
    """Convert an OpenCV frame (BGR, BGRA or grayscale) to RGBA."""
    if frame is None or frame.size == 0:
        raise MalformedFrameError("empty frame")
    if frame.ndim == 2:
        return cv2.cvtColor(frame, cv2.COLOR_GRAY2RGBA)
    if frame.ndim == 3 and frame.shape[2] == 3:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGBA)
    if frame.ndim == 3 and frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2RGBA)
    raise MalformedFrameError(f"unsupported frame shape {frame.shape}")


class VideoFrameSource(FrameSource):
    """
    Replays decoded video frames against a clock.

    Each capture returns the frame shown at the clock's current time since
    the source was created; after the end of the video the last frame is
    repeated, like a camera that froze.
    """

    def __init__(self, frames: List[np.ndarray], fps: float, clock):
        self.frames = frames
        self.fps = fps if fps and fps > 0 else DEFAULT_FPS
        self.clock = clock
        self._origin = clock.now()
        self.capture_count = 0

    def capture_frame(self) -> np.ndarray:
        if not self.frames:
            raise MalformedFrameError("video has no frames")
        self.capture_count += 1
        index = int((self.clock.now() - self._origin) * self.fps)
        index = min(max(index, 0), len(self.frames) - 1)
        return to_rgba(self.frames[index])


@contextmanager
def open_video(video_path: str) -> Iterator[cv2.VideoCapture]:
    """Open ``video_path`` for decoding and release it on exit."""
    capture = cv2.VideoCapture(video_path)
    try:
        if not capture.isOpened():
            raise VideoProcessingError(video_path, "could not open video file")
        yield capture
    finally:
        capture.release()


def iter_frames(capture: cv2.VideoCapture) -> Iterator[np.ndarray]:
    """Yield BGR frames until the stream ends or a read fails."""
    while True:
        ok, frame = capture.read()
        if not ok:
            return
        yield frame


def extract_frames(video_path: str, max_frames: Optional[int] = None) -> List[np.ndarray]:
    """
    Decode the first ``max_frames`` frames of a video (all of them for None).

    Decoding stops as soon as the limit is reached, so only the frames a run
    can replay are ever held in memory.
    """
    with open_video(video_path) as capture:
        frames = list(islice(iter_frames(capture), max_frames))
    logger.debug(f"Decoded {len(frames)} frames from {video_path}")
    return frames


def get_video_info(video_path: str) -> dict:
    """Stream properties reported by the container: fps, frame count, duration and size."""
    with open_video(video_path) as capture:
        fps = capture.get(cv2.CAP_PROP_FPS)
        frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT))
        width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))

    return {
        "fps": fps,
        "frame_count": frame_count,
        "duration": frame_count / fps if fps > 0 else 0,
        "width": width,
        "height": height
    }


async def save_uploaded_file(upload_file: UploadFile) -> str:
    """Write an upload to a named temporary file in chunks and return its path."""
    suffix = os.path.splitext(upload_file.filename or "")[1] or ".mp4"
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as temp_file:
        while True:
            chunk = await upload_file.read(UPLOAD_CHUNK_BYTES)
            if not chunk:
                break
            temp_file.write(chunk)
    return temp_file.name


def cleanup_temp_file(file_path: str) -> None:
    try:
        os.unlink(file_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not delete temp file {file_path}: {e}")
