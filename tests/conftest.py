import itertools

import numpy as np
import pytest

# Add the project root to the path to allow imports from 'proof_of_life'
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from proof_of_life.config import Config
from proof_of_life.exceptions import MalformedFrameError
from proof_of_life.face_locator import FaceLocator
from proof_of_life.video_processor import FrameSource


def flat_frame(width=100, height=100, value=128):
    frame = np.full((height, width, 4), value, dtype=np.uint8)
    frame[..., 3] = 255
    return frame


def face_frame(width=100, height=100):
    """Flat background with a high-contrast checkerboard in the central region."""
    frame = flat_frame(width, height)
    cx, cy = int(width * 0.2), int(height * 0.2)
    cw, ch = int(width * 0.6), int(height * 0.6)
    yy, xx = np.mgrid[0:ch, 0:cw]
    checker = np.where((yy + xx) % 2 == 0, 30, 220).astype(np.uint8)
    frame[cy:cy + ch, cx:cx + cw, :3] = checker[..., None]
    return frame


class StubFrameSource(FrameSource):
    """Cycles through the given frames; raises MalformedFrameError for None entries."""

    def __init__(self, frames):
        self._frames = itertools.cycle(frames)
        self.calls = 0

    def capture_frame(self):
        self.calls += 1
        frame = next(self._frames)
        if frame is None:
            raise MalformedFrameError("no signal")
        return frame.copy()


class ScriptedLocator(FaceLocator):
    """Returns boxes in order; the last one repeats."""

    def __init__(self, boxes):
        self.boxes = list(boxes)
        self.calls = 0

    def locate(self, frame):
        box = self.boxes[min(self.calls, len(self.boxes) - 1)]
        self.calls += 1
        return box


@pytest.fixture
def config():
    """A fresh default configuration per test."""
    return Config()
