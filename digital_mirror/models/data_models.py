"""
Data models for the verification engine
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

import numpy as np


# Landmark frame sizes with a stable index contract
BASIC_LANDMARK_COUNT = 6
FULL_MESH_LANDMARK_COUNT = 468

# Basic set ordering
BASIC_LEFT_EYE = 0
BASIC_RIGHT_EYE = 1
BASIC_NOSE = 2
BASIC_LEFT_MOUTH = 3
BASIC_RIGHT_MOUTH = 4
BASIC_CHIN = 5

# MediaPipe FaceMesh topology
MESH_NOSE_TIP = 1
MESH_UPPER_LIP = 13
MESH_LOWER_LIP = 14
MESH_LEFT_EYE_OUTER = 33
MESH_LEFT_EYE_INNER = 133
MESH_RIGHT_EYE_INNER = 362
MESH_RIGHT_EYE_OUTER = 263
MESH_LEFT_MOUTH = 61
MESH_RIGHT_MOUTH = 291
MESH_CHIN = 152


def empty_landmark_frame() -> np.ndarray:
    """A frame with no detection"""
    return np.zeros((0, 3), dtype=np.float64)


class TrackingMode(Enum):
    """Where the current landmarks came from"""
    DETECTED = "detected"
    FALLBACK = "fallback"


class ChallengePhase(Enum):
    """Phases of the challenge state machine"""
    IDLE = "idle"
    AWAITING_CLAIM = "awaiting_claim"
    PROCESSING = "processing"
    ANALYZING = "analyzing"
    SCORED = "scored"
    OFFER = "offer"
    FAILED = "failed"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self in (ChallengePhase.FAILED, ChallengePhase.REJECTED)


class ChallengeEvent(Enum):
    """Inputs that drive the challenge state machine"""
    START = "start"
    CLAIM = "claim"
    CLAIM_PROCESSED = "claim_processed"
    HUMANITY_EXHAUSTED = "humanity_exhausted"
    ANALYSIS_COMPLETE = "analysis_complete"
    RETRY = "retry"
    MAX_LEVEL_REACHED = "max_level_reached"
    CHOOSE_TUTORIAL = "choose_tutorial"
    CHOOSE_REJECTION = "choose_rejection"
    RESET = "reset"


class OfferChoice(Enum):
    """Options presented once the final level has been scored"""
    TUTORIAL = "tutorial"
    FINAL_REJECTION = "final_rejection"


class CaptchaOutcome(Enum):
    """Result of a reverse CAPTCHA answer"""
    MACHINE_DETECTED = "machine_detected"
    HUMAN_LIMITATIONS = "human_limitations"
    TIME_EXPIRED = "time_expired"


@dataclass(frozen=True)
class BoundingBox:
    """Face region described by its center and extents, in video pixels"""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x, self.y)

    @classmethod
    def from_landmarks(cls, landmarks: np.ndarray) -> "BoundingBox":
        """Min/max extents of a landmark frame"""
        xs = landmarks[:, 0]
        ys = landmarks[:, 1]
        min_x, max_x = float(np.min(xs)), float(np.max(xs))
        min_y, max_y = float(np.min(ys)), float(np.max(ys))
        return cls(
            x=(min_x + max_x) / 2.0,
            y=(min_y + max_y) / 2.0,
            width=max_x - min_x,
            height=max_y - min_y,
        )

    def smoothed_toward(self, target: "BoundingBox", alpha: float) -> "BoundingBox":
        return BoundingBox(
            x=self.x + (target.x - self.x) * alpha,
            y=self.y + (target.y - self.y) * alpha,
            width=self.width + (target.width - self.width) * alpha,
            height=self.height + (target.height - self.height) * alpha,
        )


@dataclass
class TrackedFace:
    """
    Persistent tracker state, mutated once per tracked frame.

    `bounding_box` is always the extent of `landmarks`; `display_box` follows
    it with a slower filter for drawing.
    """
    landmarks: np.ndarray
    bounding_box: BoundingBox
    display_box: BoundingBox
    mode: TrackingMode = TrackingMode.FALLBACK
    frame_size: Tuple[int, int] = (0, 0)
    updated_at: float = field(default_factory=time.time)

    @property
    def face_center(self) -> Tuple[float, float]:
        return self.bounding_box.center

    @property
    def has_full_mesh(self) -> bool:
        return self.landmarks.shape[0] >= FULL_MESH_LANDMARK_COUNT


@dataclass(frozen=True)
class SubMetrics:
    """Percentages in [0, 100] derived per scoring call"""
    mouth_curvature: float
    eye_symmetry: float
    smile_intensity: float
    mouth_width: float
    facial_tension: float

    def as_dict(self) -> dict:
        return {
            "mouth_curvature": self.mouth_curvature,
            "eye_symmetry": self.eye_symmetry,
            "smile_intensity": self.smile_intensity,
            "mouth_width": self.mouth_width,
            "facial_tension": self.facial_tension,
        }


@dataclass(frozen=True)
class ChallengeAttempt:
    """Outcome of one analysis cycle"""
    level: int
    score: float
    sub_metrics: SubMetrics
    passing_threshold: float = 80.0
    geometric: bool = False
    captcha_outcome: Optional[CaptchaOutcome] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def passed(self) -> bool:
        return self.score >= self.passing_threshold


@dataclass(frozen=True)
class SessionState:
    """Snapshot of the controller state for status display"""
    level: int
    humanity_percentage: int
    phase: ChallengePhase
