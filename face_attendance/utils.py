"""Utility functions for face attendance system."""

import cv2
import numpy as np
from typing import Callable, List, Optional, Tuple

GREEN = (0, 255, 0)
RED = (68, 68, 255)  # BGR
LINE_HEIGHT = 22


def l2_distance(a: np.ndarray, b: np.ndarray) -> float:
    """
    Calculate L2 (Euclidean) distance between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Euclidean distance
    """
    return float(np.linalg.norm(np.asarray(a) - np.asarray(b)))


def draw_text(canvas: np.ndarray, lines: List[str], x: int = 10, y: int = 24,
              color: Tuple[int, int, int] = GREEN) -> None:
    """
    Draw one or more lines of text onto the overlay, top to bottom.

    Args:
        canvas: BGR image to draw on (modified in place)
        lines: Text lines
        x: Left edge of the text
        y: Baseline of the first line
        color: BGR color
    """
    for line in lines:
        cv2.putText(canvas, line, (int(x), int(y)), cv2.FONT_HERSHEY_SIMPLEX,
                    0.55, color, 2)
        y += LINE_HEIGHT


def draw_box(canvas: np.ndarray, box, color: Tuple[int, int, int] = GREEN) -> None:
    """Draw a face box (anything with x, y, width, height) onto the overlay."""
    top_left = (int(box.x), int(box.y))
    bottom_right = (int(box.x + box.width), int(box.y + box.height))
    cv2.rectangle(canvas, top_left, bottom_right, color, 2)


class WindowDisplay:
    """Shows overlay frames in an OpenCV window and reports 'q' presses."""

    def __init__(self, title: str, on_quit: Optional[Callable[[], None]] = None):
        self.title = title
        self.on_quit = on_quit

    def __call__(self, frame: np.ndarray) -> None:
        cv2.imshow(self.title, frame)
        key = cv2.waitKey(1) & 0xFF
        if key in (ord('q'), ord('Q')) and self.on_quit is not None:
            self.on_quit()

    def close(self) -> None:
        cv2.destroyAllWindows()
