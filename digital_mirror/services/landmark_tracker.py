"""
Landmark tracker: keeps a temporally smooth landmark frame and face box
across video frames, synthesizing plausible motion when no detector output
is available.
"""
import logging
import math
import time
from typing import Callable, Optional, Tuple

import numpy as np

from ..exceptions import DetectorUnavailableError
from ..models.data_models import (
    BASIC_LANDMARK_COUNT,
    BoundingBox,
    TrackedFace,
    TrackingMode,
)
from .face_detector import FaceDetector
from .landmark_normalizer import basic_landmarks_from_box, normalize_face_record

logger = logging.getLogger(__name__)


class FallbackTracker:
    """
    Time-driven synthetic face box.

    The box is a pure function of the timestamp, so the same timestamp always
    yields the same box.
    """

    # Normalized base box (center and extent)
    BASE_CENTER_X = 0.5
    BASE_CENTER_Y = 0.45
    BASE_WIDTH = 0.30
    BASE_HEIGHT = 0.40

    # Oscillation amplitudes (normalized) and angular speeds (rad/s)
    JITTER_X = 0.02
    JITTER_Y = 0.015
    JITTER_SIZE = 0.01
    SPEED_X = 1.3
    SPEED_Y = 1.7
    SPEED_WIDTH = 0.9
    SPEED_HEIGHT = 1.1

    def box_at(self, timestamp: float) -> Tuple[float, float, float, float]:
        """
        Normalized (center_x, center_y, width, height) at a timestamp.
        """
        center_x = self.BASE_CENTER_X + self.JITTER_X * math.sin(timestamp * self.SPEED_X)
        center_y = self.BASE_CENTER_Y + self.JITTER_Y * math.sin(timestamp * self.SPEED_Y + 0.5)
        width = self.BASE_WIDTH + self.JITTER_SIZE * math.sin(timestamp * self.SPEED_WIDTH)
        height = self.BASE_HEIGHT + self.JITTER_SIZE * math.sin(timestamp * self.SPEED_HEIGHT + 1.0)
        return center_x, center_y, width, height

    def landmarks_at(self, timestamp: float, frame_width: int, frame_height: int) -> np.ndarray:
        """Basic 6-point landmark set, in pixels, derived from the box at a timestamp"""
        center_x, center_y, width, height = self.box_at(timestamp)
        return basic_landmarks_from_box(
            center_x * frame_width,
            center_y * frame_height,
            width * frame_width,
            height * frame_height,
        )


def _frame_size(frame) -> Tuple[int, int]:
    if isinstance(frame, np.ndarray) and frame.ndim >= 2:
        return int(frame.shape[1]), int(frame.shape[0])
    return 0, 0


class LandmarkTracker:
    """
    Owns the tracked face across frames.

    Each call to `update` runs one tracking step: it tries the detector and,
    if that yields nothing usable, falls back to synthetic landmarks for this
    frame only. Nothing raised by the detector ever escapes `update`.
    """

    def __init__(
        self,
        detector: Optional[FaceDetector] = None,
        smoothing_factor: float = 0.7,
        box_smoothing_factor: float = 0.3,
        default_frame_size: Tuple[int, int] = (640, 480),
        clock: Callable[[], float] = time.time,
        fallback: Optional[FallbackTracker] = None
    ):
        """
        Args:
            detector: Landmark detection backend, or None when unavailable
            smoothing_factor: Exponential filter weight for landmarks
            box_smoothing_factor: Slower filter weight for the display box
            default_frame_size: (width, height) used by fallback tracking when
                the frame source reports no size
            clock: Wall-clock source for fallback motion
            fallback: Synthetic box generator
        """
        for name, alpha in (("smoothing_factor", smoothing_factor),
                            ("box_smoothing_factor", box_smoothing_factor)):
            if not 0.0 < alpha <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {alpha}")

        self.detector = detector
        self.smoothing_factor = smoothing_factor
        self.box_smoothing_factor = box_smoothing_factor
        self.default_frame_size = default_frame_size
        self.clock = clock
        self.fallback = fallback or FallbackTracker()

        self.detector_disabled = detector is None
        self.tracked_face: Optional[TrackedFace] = None
        self.mode = TrackingMode.FALLBACK
        self.frames_tracked = 0

    def update(
        self,
        frame: Optional[np.ndarray] = None,
        frame_size: Optional[Tuple[int, int]] = None,
        timestamp: Optional[float] = None
    ) -> TrackedFace:
        """
        Run one tracking step.

        Args:
            frame: Current video frame (BGR) or None
            frame_size: (width, height) of the frame; read from the frame if omitted
            timestamp: Wall-clock time for this step; taken from the clock if omitted

        Returns:
            TrackedFace: The updated tracker state
        """
        now = self.clock() if timestamp is None else timestamp
        width, height = frame_size if frame_size is not None else _frame_size(frame)

        raw = self._detect(frame, width, height)
        if raw is not None:
            mode = TrackingMode.DETECTED
            size = (width, height)
        else:
            mode = TrackingMode.FALLBACK
            size = (width, height) if width > 0 and height > 0 else self.default_frame_size
            raw = self.fallback.landmarks_at(now, size[0], size[1])

        if mode is not self.mode:
            logger.info(f"Tracking mode changed: {self.mode.value} -> {mode.value}")
        self.mode = mode
        self._apply(raw, mode, size, now)
        self.frames_tracked += 1
        return self.tracked_face

    def _detect(self, frame, width: int, height: int) -> Optional[np.ndarray]:
        """Landmarks from the detector for this frame, or None to fall back"""
        if self.detector_disabled or frame is None or width <= 0 or height <= 0:
            return None

        try:
            faces = self.detector.detect(frame)
        except DetectorUnavailableError as e:
            logger.warning(f"Face detector unavailable, using fallback tracking: {e}")
            self.detector_disabled = True
            return None
        except Exception as e:
            logger.debug(f"Detection failed for this frame: {e}")
            return None

        if not faces:
            logger.debug("Detector returned no faces")
            return None

        landmarks = normalize_face_record(faces[0], width, height)
        if landmarks.shape[0] < BASIC_LANDMARK_COUNT:
            logger.debug(f"Face record yielded {landmarks.shape[0]} landmarks, falling back")
            return None
        return landmarks

    def _apply(self, raw: np.ndarray, mode: TrackingMode, size: Tuple[int, int], now: float) -> None:
        face = self.tracked_face
        if face is None or face.landmarks.shape != raw.shape:
            # First data, or the landmark layout changed: no history to smooth against
            landmarks = raw.copy()
            box = BoundingBox.from_landmarks(landmarks)
            if face is None:
                self.tracked_face = TrackedFace(
                    landmarks=landmarks,
                    bounding_box=box,
                    display_box=box,
                    mode=mode,
                    frame_size=size,
                    updated_at=now,
                )
                return
            face.landmarks = landmarks
            face.display_box = face.display_box.smoothed_toward(box, self.box_smoothing_factor)
        else:
            face.landmarks = face.landmarks + (raw - face.landmarks) * self.smoothing_factor
            box = BoundingBox.from_landmarks(face.landmarks)
            face.display_box = face.display_box.smoothed_toward(box, self.box_smoothing_factor)

        face.bounding_box = box
        face.mode = mode
        face.frame_size = size
        face.updated_at = now

    def reset(self) -> None:
        """Discard tracked state; the next step starts from scratch"""
        self.tracked_face = None
        self.mode = TrackingMode.FALLBACK
        self.frames_tracked = 0

    def close(self) -> None:
        if self.detector is not None:
            self.detector.close()
