"""dlib-based face detection, landmarks and 128-d descriptors."""

import cv2
import dlib
import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Tuple
from pathlib import Path
import logging
import time
from face_attendance.asset_cache import AssetCache
from face_attendance.config import (
    MODEL_URL, MODEL_BUNDLES, MODELS_DIR, DETECTOR_MODEL
)

logger = logging.getLogger(__name__)

DETECTOR_WINDOW = 80  # px, smallest face dlib's HOG/mmod detectors find
MAX_UPSAMPLE = 2


@dataclass(frozen=True)
class Box:
    """Face bounding box in frame pixels."""

    x: float
    y: float
    width: float
    height: float


def _is_remote(location: str) -> bool:
    return location.startswith(("http://", "https://"))


class FaceEngine:
    """Wraps the detector, landmark predictor and recognition network."""

    def __init__(self, model_url: Optional[str] = None,
                 detector_model: Optional[str] = None,
                 asset_cache: Optional[AssetCache] = None,
                 models_dir: Optional[Path] = None,
                 num_jitters: int = 1):
        """
        Args:
            model_url: Local directory or http(s) base URL of the model bundles
            detector_model: "hog" (dlib's built-in detector) or "cnn" (mmod bundle)
            asset_cache: Cache used for remote bundles (created on demand)
            models_dir: Where remote bundles are written for dlib to open
            num_jitters: Re-samples per descriptor; higher is slower but steadier
        """
        if model_url is None:
            model_url = MODEL_URL

        if detector_model is None:
            detector_model = DETECTOR_MODEL

        if detector_model not in ("hog", "cnn"):
            raise ValueError(f"Unknown detector model {detector_model!r}, expected 'hog' or 'cnn'")

        self.model_url = str(model_url)
        self.detector_model = detector_model
        self.asset_cache = asset_cache
        self.models_dir = Path(models_dir or MODELS_DIR)
        self.num_jitters = num_jitters

        self._detector = None
        self._landmarks = None
        self._encoder = None

    @property
    def is_loaded(self) -> bool:
        return self._detector is not None and self._landmarks is not None and self._encoder is not None

    def load(self) -> None:
        """
        Load all model bundles. Any failure propagates.

        Raises:
            FileNotFoundError: A local bundle is missing
            requests.HTTPError: A remote bundle couldn't be fetched
        """
        load_start = time.time()

        if self.detector_model == "cnn":
            self._detector = dlib.cnn_face_detection_model_v1(str(self._resolve_bundle(MODEL_BUNDLES["detector"])))
        else:
            self._detector = dlib.get_frontal_face_detector()

        self._landmarks = dlib.shape_predictor(str(self._resolve_bundle(MODEL_BUNDLES["landmarks"])))
        self._encoder = dlib.face_recognition_model_v1(str(self._resolve_bundle(MODEL_BUNDLES["recognition"])))

        logger.info(f"Face models loaded from {self.model_url} "
                    f"(detector={self.detector_model}) in {time.time() - load_start:.2f}s")

    def _resolve_bundle(self, filename: str) -> Path:
        """Return a local path for a bundle, downloading it through the cache if remote."""
        if not _is_remote(self.model_url):
            path = Path(self.model_url) / filename
            if not path.exists():
                raise FileNotFoundError(f"Model bundle not found: {path}")
            return path

        if self.asset_cache is None:
            self.asset_cache = AssetCache()

        url = self.model_url.rstrip("/") + "/" + filename
        response = self.asset_cache.fetch(url)
        response.raise_for_status()

        self.models_dir.mkdir(parents=True, exist_ok=True)
        path = self.models_dir / filename
        path.write_bytes(response.content)
        logger.debug(f"Bundle {filename} ready ({len(response.content)} bytes, cached={response.from_cache})")
        return path

    def upsample_for(self, min_face_size: Optional[float], scale: float) -> int:
        """
        Number of 2x pyramid upsamples needed for a face of min_face_size
        full-frame pixels to fill the detector window after downscaling.
        """
        if not min_face_size:
            return 0
        upsample = 0
        while min_face_size * scale * (2 ** upsample) < DETECTOR_WINDOW and upsample < MAX_UPSAMPLE:
            upsample += 1
        return upsample

    def detect(self, rgb_image: np.ndarray, input_size: int,
               min_face_size: Optional[float] = None) -> List[Tuple[Box, float]]:
        """
        Find faces in an RGB image.

        The image is downscaled so its longest side is at most input_size
        before detection; boxes are mapped back to full-resolution pixels.
        When min_face_size is given, the detector upsamples enough for a face
        that wide in the full frame to still be found.

        Args:
            rgb_image: RGB uint8 image
            input_size: Longest side fed to the detector
            min_face_size: Smallest face width (full-frame px) that must be detectable

        Returns:
            List of (box, score) tuples
        """
        if not self.is_loaded:
            raise RuntimeError("Face models not loaded; call load() first")

        height, width = rgb_image.shape[:2]
        scale = min(1.0, input_size / float(max(height, width)))
        small = rgb_image
        if scale < 1.0:
            small = cv2.resize(rgb_image, (max(1, round(width * scale)), max(1, round(height * scale))),
                               interpolation=cv2.INTER_AREA)
        small = np.ascontiguousarray(small)
        upsample = self.upsample_for(min_face_size, scale)

        # dlib reports rects in the coordinates of the image it was given
        if self.detector_model == "cnn":
            found = [(d.rect, float(d.confidence)) for d in self._detector(small, upsample)]
        else:
            rects, scores, _ = self._detector.run(small, upsample, 0.0)
            found = list(zip(rects, (float(s) for s in scores)))

        detections = []
        for rect, score in found:
            left = max(0.0, rect.left() / scale)
            top = max(0.0, rect.top() / scale)
            right = min(float(width), rect.right() / scale)
            bottom = min(float(height), rect.bottom() / scale)
            detections.append((Box(left, top, right - left, bottom - top), score))

        logger.debug(f"Detector found {len(detections)} face(s)")
        return detections

    def describe(self, rgb_image: np.ndarray, box: Box) -> np.ndarray:
        """
        Compute the 128-d descriptor for the face inside box.

        Args:
            rgb_image: Full-resolution RGB uint8 image
            box: Face box from detect()

        Returns:
            Descriptor as a float64 numpy array
        """
        if not self.is_loaded:
            raise RuntimeError("Face models not loaded; call load() first")

        rgb_image = np.ascontiguousarray(rgb_image)
        rect = dlib.rectangle(int(box.x), int(box.y), int(box.x + box.width), int(box.y + box.height))
        shape = self._landmarks(rgb_image, rect)
        descriptor = self._encoder.compute_face_descriptor(rgb_image, shape, self.num_jitters)
        return np.array(descriptor, dtype=np.float64)
