"""Configuration settings for the face attendance system."""

import os
from pathlib import Path

import face_recognition_models

# Base directory (parent of face_attendance/)
BASE_DIR = Path(__file__).parent.parent

# Recognition settings
DISTANCE_THRESHOLD = float(os.environ.get("FACE_DISTANCE_THRESHOLD", 0.5))  # Lower is better
SECOND_BEST_MARGIN = float(os.environ.get("FACE_SECOND_BEST_MARGIN", 0.05))  # Best must beat runner-up by this much
MIN_BOX_WIDTH = int(os.environ.get("FACE_MIN_BOX_WIDTH", 120))  # px
MIN_DETECTION_SCORE = float(os.environ.get("FACE_MIN_DETECTION_SCORE", 0.8))
DETECTION_INPUT_SIZE = 320  # Longest side of the frame fed to the detector
DETECTOR_MODEL = os.environ.get("FACE_DETECTOR_MODEL", "hog")  # "hog" or "cnn"

# Enrollment settings
SAMPLES_PER_POSE = int(os.environ.get("FACE_SAMPLES_PER_POSE", 3))
POSE_INSTRUCTIONS = [
    ("Center", "Look straight ahead"),
    ("Left", "Turn your head slightly to the left"),
    ("Right", "Turn your head slightly to the right"),
    ("Up", "Tilt your head up a bit"),
    ("Down", "Tilt your head down a bit"),
]

# Loop timing (seconds)
TICK_DELAY = 0.06  # ~16 FPS ceiling
POSE_PAUSE = 0.5  # Time for the user to change pose

# Camera settings
CAMERA_INDEX = int(os.environ.get("FACE_CAMERA_INDEX", 0))
DEFAULT_FRAME_SIZE = (640, 480)

# Model bundles: local directory or http(s) base URL
MODEL_URL = os.environ.get(
    "FACE_MODEL_URL",
    str(Path(face_recognition_models.face_recognition_model_location()).parent)
)
MODEL_BUNDLES = {
    "detector": "mmod_human_face_detector.dat",
    "landmarks": "shape_predictor_68_face_landmarks.dat",
    "recognition": "dlib_face_recognition_resnet_model_v1.dat",
}

# File paths
DATA_DIR = BASE_DIR / "data"
DB_FILE = Path(os.environ.get("FACE_DB_FILE", DATA_DIR / "face_db.json"))
DB_KEY = "face-db:v1"
MODELS_DIR = DATA_DIR / "models"  # Local copies of remotely fetched bundles

# Offline asset cache
CACHE_NAME = "face-attendance-v1"
CACHE_DIR = DATA_DIR / "cache"
ASSET_ORIGIN = os.environ.get("FACE_ASSET_ORIGIN", "http://localhost:8000/scanner/")
FETCH_TIMEOUT = 10
APP_SHELL = [
    "./",
    "./face.html",
    "./manifest.webmanifest",
    "./style.css",
    "./icons/apple-touch-icon.png",
    "./icons/icon-192.png",
    "./icons/icon-512.png",
    # External model mirror
    "https://raw.githubusercontent.com/ageitgey/face_recognition_models/master/"
    "face_recognition_models/models/dlib_face_recognition_resnet_model_v1.dat",
]

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
