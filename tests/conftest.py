"""Shared fixtures and test doubles."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from face_attendance.db import FaceDatabase
from face_attendance.engine import Box


def make_descriptor(*leading, length=128):
    """Descriptor whose first values are `leading` and the rest zero."""
    descriptor = np.zeros(length, dtype=np.float64)
    descriptor[:len(leading)] = leading
    return descriptor


class FakeCamera:
    """Frame source returning blank frames."""

    def __init__(self, size=(640, 480)):
        self.size = size
        self.started = 0
        self.stopped = 0
        self.reads = 0
        self.is_open = False
        self.on_start = None

    def start(self):
        self.started += 1
        if self.on_start is not None:
            self.on_start()
        self.is_open = True
        return self.size

    def read(self):
        if not self.is_open:
            raise RuntimeError("Camera is not started")
        self.reads += 1
        width, height = self.size
        return np.zeros((height, width, 3), dtype=np.uint8)

    def stop(self):
        self.stopped += 1
        self.is_open = False


class FakeEngine:
    """
    Scripted engine. Each detect() call consumes the next script entry, the
    last entry repeating forever. An entry is None (no face) or a list of
    (box, score, descriptor) tuples.
    """

    def __init__(self, script=None, loaded=True):
        self.script = list(script or [None])
        self.is_loaded = loaded
        self.detect_calls = 0
        self.min_face_sizes = []
        self._descriptors = {}

    def load(self):
        self.is_loaded = True

    def detect(self, rgb_image, input_size, min_face_size=None):
        self.min_face_sizes.append(min_face_size)
        index = min(self.detect_calls, len(self.script) - 1)
        self.detect_calls += 1
        faces = self.script[index] or []
        self._descriptors = {box: descriptor for box, _, descriptor in faces}
        return [(box, score) for box, score, _ in faces]

    def describe(self, rgb_image, box):
        return self._descriptors[box]


def face(descriptor, width=200, score=0.95, x=50):
    """One scripted face entry."""
    return (Box(x, 40, width, width), score, descriptor)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "face_db.json"


@pytest.fixture
def database(db_path):
    return FaceDatabase(path=db_path)


@pytest.fixture
def camera():
    return FakeCamera()
