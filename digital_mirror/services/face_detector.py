"""
Face landmark detection capability.

The tracker treats detectors as black boxes that may return zero or more
face records per frame, raise, or be missing entirely.
"""
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import cv2
import numpy as np

from ..exceptions import DetectionFailedError, DetectorUnavailableError

logger = logging.getLogger(__name__)


class FaceDetector(ABC):
    """
    Abstract interface for landmark detection backends.

    `detect` returns raw face records; the landmark normalizer is responsible
    for interpreting their shape.
    """

    @abstractmethod
    def detect(self, frame: np.ndarray) -> List[Any]:
        """
        Detect faces in a frame.

        Args:
            frame: BGR image array (OpenCV format)

        Returns:
            List of raw face records, possibly empty

        Raises:
            DetectorUnavailableError: if the backend cannot be used at all
            DetectionFailedError: if this particular call failed
        """

    @abstractmethod
    def is_available(self) -> bool:
        """True if the detector can be used"""

    @abstractmethod
    def get_name(self) -> str:
        """Short backend name"""

    def close(self) -> None:
        """Release backend resources. Override if needed."""


class NullFaceDetector(FaceDetector):
    """Stands for total absence of a detection capability"""

    def detect(self, frame: np.ndarray) -> List[Any]:
        raise DetectorUnavailableError("No face detector configured")

    def is_available(self) -> bool:
        return False

    def get_name(self) -> str:
        return "none"


class MediaPipeFaceDetector(FaceDetector):
    """
    Detects 468-point face meshes with the MediaPipe FaceLandmarker.

    Both the mediapipe package and the landmarker model are loaded lazily,
    so a missing package or model file only marks the detector unavailable.
    """

    def __init__(self, model_path: Optional[str] = None):
        self.model_path = model_path
        self._mediapipe = None
        self._mediapipe_available = None
        self._face_landmarker = None
        self._load_failed = False

    @property
    def mediapipe_available(self) -> bool:
        """
        Check if the mediapipe package can be imported.

        Returns:
            bool: True if mediapipe is importable, False otherwise
        """
        if self._mediapipe_available is None:
            try:
                import mediapipe
                self._mediapipe = mediapipe
                self._mediapipe_available = True
            except ImportError:
                logger.warning("mediapipe is not installed; landmark detection disabled")
                self._mediapipe_available = False
        return self._mediapipe_available

    @property
    def face_landmarker(self):
        """
        Lazy initialization of the MediaPipe FaceLandmarker.

        Returns None if the package or model cannot be loaded.
        """
        if self._face_landmarker is None and not self._load_failed:
            if not self.mediapipe_available:
                self._load_failed = True
                return None

            if self.model_path is None or not os.path.exists(self.model_path):
                logger.warning(
                    f"MediaPipe model not found at {self.model_path}. "
                    "Set MEDIAPIPE_MODEL_PATH to a face_landmarker.task file."
                )
                self._load_failed = True
                return None

            mp = self._mediapipe
            try:
                base_options = mp.tasks.BaseOptions(model_asset_path=self.model_path)
                options = mp.tasks.vision.FaceLandmarkerOptions(
                    base_options=base_options,
                    running_mode=mp.tasks.vision.RunningMode.IMAGE,
                    num_faces=1,
                    min_face_detection_confidence=0.3,
                    min_face_presence_confidence=0.3,
                    output_face_blendshapes=False,
                    output_facial_transformation_matrixes=False
                )
                self._face_landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
            except Exception as e:
                logger.error(f"Failed to initialize MediaPipe FaceLandmarker: {e}")
                self._load_failed = True
                return None

        return self._face_landmarker

    def is_available(self) -> bool:
        return self.face_landmarker is not None

    def get_name(self) -> str:
        return "mediapipe"

    def preprocess_frame(self, frame: np.ndarray) -> np.ndarray:
        """Convert a BGR frame to the RGB layout MediaPipe expects"""
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def detect(self, frame: np.ndarray) -> List[Any]:
        landmarker = self.face_landmarker
        if landmarker is None:
            raise DetectorUnavailableError("MediaPipe FaceLandmarker is not loaded")
        if frame is None or frame.size == 0:
            return []

        try:
            rgb_frame = self.preprocess_frame(frame)
            mp_image = self._mediapipe.Image(image_format=self._mediapipe.ImageFormat.SRGB, data=rgb_frame)
            detection_result = landmarker.detect(mp_image)
        except Exception as e:
            raise DetectionFailedError(f"MediaPipe detection failed: {e}") from e

        # Off-frame landmarks fall outside [0, 1]; emit pixels. z shares the x scale.
        height, width = frame.shape[:2]
        faces = []
        for face_landmarks in detection_result.face_landmarks or []:
            faces.append({
                "keypoints": [(lm.x * width, lm.y * height, lm.z * width) for lm in face_landmarks]
            })
        return faces

    def close(self) -> None:
        if self._face_landmarker is not None:
            self._face_landmarker.close()
            self._face_landmarker = None


def create_face_detector(model_path: Optional[str] = None) -> FaceDetector:
    """Build the best available detector for the given model path"""
    if model_path is None:
        return NullFaceDetector()
    return MediaPipeFaceDetector(model_path=model_path)
