"""Module for face recognition: enrollment, verification and matching."""

import logging
import threading
from dataclasses import dataclass

import cv2
import face_recognition
import numpy as np

from face_attendance.capture import Camera
from face_attendance.config import (
    DISTANCE_THRESHOLD, SECOND_BEST_MARGIN, MIN_BOX_WIDTH, MIN_DETECTION_SCORE,
    DETECTION_INPUT_SIZE, SAMPLES_PER_POSE, POSE_INSTRUCTIONS, TICK_DELAY,
    POSE_PAUSE, DEFAULT_FRAME_SIZE
)
from face_attendance.db import FaceDatabase
from face_attendance.engine import Box, FaceEngine
from face_attendance.utils import RED, draw_box, draw_text

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


class EnrollmentError(RuntimeError):
    """Raised when enrollment ends without a single usable face sample."""


@dataclass(frozen=True)
class Detection:
    box: Box
    score: float
    descriptor: np.ndarray


@dataclass(frozen=True)
class MatchResult:
    best_name: str
    best_distance: float
    second_best: float


@dataclass(frozen=True)
class EnrollProgress:
    """Emitted after every accepted enrollment sample."""

    pose_index: int
    pose_count: int
    total: int


@dataclass(frozen=True)
class VerifyResult:
    """Emitted once per verification tick."""

    name: str
    distance: float


def match_descriptor(descriptor, known_encodings_dict):
    """
    Find the closest enrolled user and the closest competing user.

    Args:
        descriptor: Face descriptor to match (128-dim numpy array)
        known_encodings_dict: Dictionary mapping username to list of descriptors

    Returns:
        MatchResult with the best name, its distance, and the best distance
        of any *other* user (infinity if there is none)
    """
    best_name = UNKNOWN
    best_distance = float('inf')
    second_best = float('inf')

    for username, user_encodings in known_encodings_dict.items():
        if len(user_encodings) == 0:
            continue

        # Closest sample of this user
        distances = face_recognition.face_distance(np.asarray(user_encodings), descriptor)
        person_best = float(np.min(distances))

        if person_best < best_distance:
            second_best = best_distance
            best_distance = person_best
            best_name = username
        elif person_best < second_best:
            second_best = person_best

    return MatchResult(best_name, best_distance, second_best)


def is_accepted(match, distance_threshold, second_best_margin):
    """Both bounds are inclusive."""
    return (match.best_distance <= distance_threshold
            and (match.second_best - match.best_distance) >= second_best_margin)


class FaceRecognizer:
    """Guided multi-pose enrollment and live verification over a camera feed."""

    def __init__(self, camera=None, engine=None, database=None,
                 distance_threshold=None, second_best_margin=None,
                 min_box_width=None, min_detection_score=None,
                 samples_per_pose=None, pose_instructions=None,
                 detection_input_size=None, tick_delay=None, pose_pause=None,
                 display=None):
        """
        Args:
            camera: Frame source (defaults to the configured webcam)
            engine: Detection/embedding engine (defaults to FaceEngine)
            database: Descriptor store (defaults to FaceDatabase)
            distance_threshold: Max distance for a match
            second_best_margin: Min gap between best and runner-up user
            min_box_width: Faces narrower than this (px) are ignored
            min_detection_score: Detector confidence floor
            samples_per_pose: Samples collected for each pose
            pose_instructions: List of (pose label, instruction) pairs
            detection_input_size: Longest frame side fed to the detector
            tick_delay: Pause between loop iterations (seconds)
            pose_pause: Pause after finishing a pose (seconds)
            display: Optional callable receiving every rendered overlay frame
        """
        self.camera = camera if camera is not None else Camera()
        self.engine = engine if engine is not None else FaceEngine()
        self.database = database if database is not None else FaceDatabase()

        self.distance_threshold = DISTANCE_THRESHOLD if distance_threshold is None else distance_threshold
        self.second_best_margin = SECOND_BEST_MARGIN if second_best_margin is None else second_best_margin
        self.min_box_width = MIN_BOX_WIDTH if min_box_width is None else min_box_width
        self.min_detection_score = MIN_DETECTION_SCORE if min_detection_score is None else min_detection_score
        self.samples_per_pose = SAMPLES_PER_POSE if samples_per_pose is None else samples_per_pose
        self.pose_instructions = list(POSE_INSTRUCTIONS if pose_instructions is None else pose_instructions)
        self.detection_input_size = DETECTION_INPUT_SIZE if detection_input_size is None else detection_input_size
        self.tick_delay = TICK_DELAY if tick_delay is None else tick_delay
        self.pose_pause = POSE_PAUSE if pose_pause is None else pose_pause
        self.display = display

        self.frame_size = DEFAULT_FRAME_SIZE
        self.canvas = None

        # Set means "not running"; loops clear it on start
        self._stop_event = threading.Event()
        self._stop_event.set()

    @property
    def running(self):
        return not self._stop_event.is_set()

    def init(self):
        """Load the model bundles. Must finish before any detection."""
        self.engine.load()

    def start_video(self):
        """Open the camera and size the overlay to its native resolution."""
        self.frame_size = self.camera.start()
        self.clear_canvas()

    def stop_video(self):
        """Release the camera and clear the overlay."""
        self._stop_event.set()
        self.camera.stop()
        self.canvas = None

    def stop(self):
        """Ask a running enroll/verify loop to finish after the current tick."""
        self._stop_event.set()

    def clear_canvas(self):
        width, height = self.frame_size
        self.canvas = np.zeros((height, width, 3), dtype=np.uint8)

    def set_thresholds(self, distance_threshold=None, second_best_margin=None):
        """Update either threshold at runtime; None leaves it unchanged."""
        if distance_threshold is not None:
            self.distance_threshold = distance_threshold
        if second_best_margin is not None:
            self.second_best_margin = second_best_margin
        logger.info(f"Thresholds: distance <= {self.distance_threshold}, margin >= {self.second_best_margin}")

    def replace(self, username, descriptors):
        self.database.replace(username, descriptors)

    def delete(self, username):
        return self.database.delete(username)

    def detect_one(self, frame=None):
        """
        Detect the most confident face in a frame and compute its descriptor.

        Args:
            frame: BGR frame (defaults to the camera's current frame)

        Returns:
            Detection, or None if no face passes the score and width limits
        """
        if not self.engine.is_loaded:
            raise RuntimeError("Face models not loaded; call init() first")

        if frame is None:
            frame = self.camera.read()

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

        candidates = [
            (box, score) for box, score in self.engine.detect(rgb_frame, self.detection_input_size, self.min_box_width)
            if score >= self.min_detection_score
        ]
        if len(candidates) == 0:
            return None

        box, score = max(candidates, key=lambda candidate: candidate[1])
        if box.width < self.min_box_width:
            logger.debug(f"Face too small: {box.width:.0f}px < {self.min_box_width}px")
            return None

        descriptor = self.engine.describe(rgb_frame, box)
        return Detection(box, score, descriptor)

    def encode_image(self, image_path):
        """
        Detect and describe a face in an image file.

        Returns:
            Detection, or None if no usable face is found
        """
        image = face_recognition.load_image_file(str(image_path))
        return self.detect_one(cv2.cvtColor(image, cv2.COLOR_RGB2BGR))

    def match_descriptor(self, descriptor):
        return match_descriptor(descriptor, self.database.snapshot())

    def is_accepted(self, match):
        return is_accepted(match, self.distance_threshold, self.second_best_margin)

    def enroll(self, username, on_progress=None):
        """
        Run guided multi-pose enrollment for a user.

        Walks through the pose plan, collecting samples_per_pose descriptors
        per pose, until the plan is done or stop() is called. The collected
        descriptors replace anything previously stored for the user.

        Args:
            username: Name to enroll
            on_progress: Optional callable receiving EnrollProgress events

        Returns:
            Number of descriptors stored

        Raises:
            ValueError: If username is empty
            EnrollmentError: If no usable sample was collected
        """
        username = (username or "").strip()
        if not username:
            raise ValueError("Username cannot be empty")

        # Cleared before the camera opens so a stop() during start-up is kept
        self._stop_event.clear()

        collected = []
        pose_index = 0
        pose_count = 0
        total_needed = len(self.pose_instructions) * self.samples_per_pose
        logger.info(f"Enrolling {username!r}: {len(self.pose_instructions)} pose(s) x {self.samples_per_pose}")

        try:
            self.start_video()
            while not self._stop_event.is_set() and pose_index < len(self.pose_instructions):
                frame = self.camera.read()
                self.canvas = frame.copy()

                pose_name, pose_message = self.pose_instructions[pose_index]
                draw_text(self.canvas, [
                    f"Pose: {pose_name} ({pose_count}/{self.samples_per_pose})",
                    pose_message,
                    f"Total: {len(collected)}/{total_needed}",
                ])

                pose_done = False
                detection = self.detect_one(frame)
                if detection is not None:
                    draw_box(self.canvas, detection.box)

                    collected.append(detection.descriptor)
                    pose_count += 1
                    if on_progress is not None:
                        on_progress(EnrollProgress(pose_index, pose_count, len(collected)))

                    if pose_count >= self.samples_per_pose:
                        logger.debug(f"Pose {pose_name} complete")
                        pose_index += 1
                        pose_count = 0
                        pose_done = True

                self._show()

                if pose_done:
                    self._stop_event.wait(self.pose_pause)
                self._stop_event.wait(self.tick_delay)
        finally:
            self.stop_video()

        if len(collected) == 0:
            raise EnrollmentError("No high-quality face samples collected. "
                                  "Try better lighting and keep still.")

        self.replace(username, collected)
        return len(collected)

    def verify(self, on_result=None):
        """
        Run live verification until stop() is called.

        Args:
            on_result: Optional callable receiving a VerifyResult every tick
        """
        # Cleared before the camera opens so a stop() during start-up is kept
        self._stop_event.clear()
        logger.info(f"Verifying against {len(self.database)} enrolled user(s)")

        try:
            self.start_video()
            while not self._stop_event.is_set():
                frame = self.camera.read()
                self.canvas = frame.copy()

                name = UNKNOWN
                distance = 0.0

                detection = self.detect_one(frame)
                if detection is not None:
                    box = detection.box
                    draw_box(self.canvas, box)

                    match = self.match_descriptor(detection.descriptor)
                    name = match.best_name if self.is_accepted(match) else UNKNOWN
                    distance = match.best_distance

                    draw_text(self.canvas, [f"{name} (dist: {distance:.3f})"],
                              max(10, box.x), max(20, box.y - 8))
                else:
                    draw_text(self.canvas, ["No face / low score / too small"], color=RED)

                self._show()

                if on_result is not None:
                    on_result(VerifyResult(name, distance))

                self._stop_event.wait(self.tick_delay)
        finally:
            self.stop_video()

    def _show(self):
        if self.display is not None and self.canvas is not None:
            self.display(self.canvas)
