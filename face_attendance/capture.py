"""Module for reading frames from the webcam."""

import logging

import cv2

from face_attendance.config import CAMERA_INDEX, DEFAULT_FRAME_SIZE

logger = logging.getLogger(__name__)


class Camera:
    """Thin wrapper around cv2.VideoCapture."""

    def __init__(self, index=None):
        """
        Args:
            index: Webcam index (defaults to config value)
        """
        if index is None:
            index = CAMERA_INDEX

        self.index = index
        self._cap = None

    @property
    def is_open(self):
        return self._cap is not None

    def start(self):
        """
        Open the camera.

        Returns:
            Native (width, height) of the stream, falling back to 640x480

        Raises:
            RuntimeError: If the camera can't be opened
        """
        if self._cap is not None:
            return self.frame_size()

        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Failed to open camera at index {self.index}")

        self._cap = cap
        width, height = self.frame_size()
        logger.info(f"Camera {self.index} opened at {width}x{height}")
        return width, height

    def frame_size(self):
        """Return the stream's (width, height)."""
        if self._cap is None:
            return DEFAULT_FRAME_SIZE

        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if width <= 0 or height <= 0:
            return DEFAULT_FRAME_SIZE
        return width, height

    def read(self):
        """
        Grab the current BGR frame.

        Raises:
            RuntimeError: If the camera isn't open or the read fails
        """
        if self._cap is None:
            raise RuntimeError("Camera is not started")

        ret, frame = self._cap.read()
        if not ret:
            raise RuntimeError("Failed to read from camera")
        return frame

    def stop(self):
        """Release the camera."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info(f"Camera {self.index} released")
