"""
Scoring Engine for humanity challenge attempts
"""
import logging
from typing import Optional, Tuple

import numpy as np

from ..config import ChallengeRules
from ..models.data_models import (
    MESH_LEFT_EYE_INNER,
    MESH_LEFT_EYE_OUTER,
    MESH_LEFT_MOUTH,
    MESH_LOWER_LIP,
    MESH_NOSE_TIP,
    MESH_RIGHT_EYE_INNER,
    MESH_RIGHT_EYE_OUTER,
    MESH_RIGHT_MOUTH,
    MESH_UPPER_LIP,
    ChallengeAttempt,
    SubMetrics,
    TrackedFace,
)

logger = logging.getLogger(__name__)


def _distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a[:2] - b[:2]))


def _clamp(value: float, low: float, high: float) -> float:
    return float(min(max(value, low), high))


class ScoringEngine:
    """
    Turns tracked facial measurements into a challenge score.

    The score reacts to input and carries noise, but is clamped into a band
    that falls with every level and finally into [SCORE_FLOOR, SCORE_CEILING].
    SCORE_CEILING sits below the passing threshold, so no attempt can pass.
    """

    # Weights for the base score (sum to 1.0)
    MOUTH_CURVATURE_WEIGHT = 0.3
    EYE_SYMMETRY_WEIGHT = 0.2
    SMILE_INTENSITY_WEIGHT = 0.3
    MOUTH_WIDTH_WEIGHT = 0.1
    RELAXATION_WEIGHT = 0.1

    # Ranges for synthesized sub-metrics when no full mesh is tracked
    SYNTHETIC_RANGES = {
        "mouth_curvature": (40.0, 70.0),
        "eye_symmetry": (60.0, 90.0),
        "smile_intensity": (30.0, 60.0),
        "mouth_width": (50.0, 80.0),
        "facial_tension": (30.0, 70.0),
    }

    # facial_tension is never derived from geometry
    TENSION_RANGE = (30.0, 70.0)

    def __init__(
        self,
        rules: Optional[ChallengeRules] = None,
        rng: Optional[np.random.Generator] = None
    ):
        """
        Args:
            rules: Challenge rules providing bands, noise and limits
            rng: Random generator; seed it for reproducible scores
        """
        self.rules = rules or ChallengeRules()
        self.rng = rng if rng is not None else np.random.default_rng()
        self.bands = self.rules.bands

    @property
    def passing_threshold(self) -> float:
        return self.rules.passing_threshold

    def compute_sub_metrics(self, landmarks: np.ndarray) -> SubMetrics:
        """
        Geometric sub-metrics from a full 468-point mesh.

        Args:
            landmarks: Landmark frame of shape (>=468, 3)

        Returns:
            SubMetrics: Each value clamped to [0, 100]
        """
        top_lip = landmarks[MESH_UPPER_LIP]
        bottom_lip = landmarks[MESH_LOWER_LIP]
        left_corner = landmarks[MESH_LEFT_MOUTH]
        right_corner = landmarks[MESH_RIGHT_MOUTH]
        nose = landmarks[MESH_NOSE_TIP]

        mouth_span = _distance(left_corner, right_corner)
        lip_gap = _distance(top_lip, bottom_lip)
        mouth_curvature = (lip_gap / mouth_span) * 50.0 if mouth_span > 0 else 0.0

        left_eye_width = _distance(landmarks[MESH_LEFT_EYE_OUTER], landmarks[MESH_LEFT_EYE_INNER])
        right_eye_width = _distance(landmarks[MESH_RIGHT_EYE_INNER], landmarks[MESH_RIGHT_EYE_OUTER])
        widest = max(left_eye_width, right_eye_width)
        if widest > 0:
            eye_symmetry = 100.0 - abs(left_eye_width - right_eye_width) / widest * 100.0
        else:
            eye_symmetry = 100.0

        nose_y = float(nose[1])
        corner_y = (float(left_corner[1]) + float(right_corner[1])) / 2.0
        if nose_y != 0:
            smile_intensity = max(0.0, (nose_y - corner_y) / nose_y * 100.0)
        else:
            smile_intensity = 0.0

        mouth_width = mouth_span * 10.0
        facial_tension = float(self.rng.uniform(*self.TENSION_RANGE))

        return SubMetrics(
            mouth_curvature=_clamp(mouth_curvature, 0.0, 100.0),
            eye_symmetry=_clamp(eye_symmetry, 0.0, 100.0),
            smile_intensity=_clamp(smile_intensity, 0.0, 100.0),
            mouth_width=_clamp(mouth_width, 0.0, 100.0),
            facial_tension=facial_tension,
        )

    def synthesize_sub_metrics(self) -> SubMetrics:
        """Plausible sub-metrics for when no full mesh is tracked"""
        values = {
            name: float(self.rng.uniform(low, high))
            for name, (low, high) in self.SYNTHETIC_RANGES.items()
        }
        return SubMetrics(**values)

    def compute_base_score(self, metrics: SubMetrics) -> float:
        """Weighted combination of sub-metrics; tension counts against the score"""
        return (
            self.MOUTH_CURVATURE_WEIGHT * metrics.mouth_curvature +
            self.EYE_SYMMETRY_WEIGHT * metrics.eye_symmetry +
            self.SMILE_INTENSITY_WEIGHT * metrics.smile_intensity +
            self.MOUTH_WIDTH_WEIGHT * metrics.mouth_width +
            self.RELAXATION_WEIGHT * (100.0 - _clamp(metrics.facial_tension, 0.0, 100.0))
        )

    def band_for_level(self, level: int) -> Tuple[float, float]:
        """Score band for a level; levels past the table use its last band"""
        levels = sorted(self.bands)
        if level <= levels[0]:
            return self.bands[levels[0]]
        if level >= levels[-1]:
            return self.bands[levels[-1]]
        return self.bands[level]

    def calibrate(self, base_score: float, level: int, noise: float = 0.0) -> float:
        """
        Force a base score into the level band, add noise, then clamp globally.

        Args:
            base_score: Weighted base score
            level: Challenge level (1-based)
            noise: Offset to add after band clamping; limited to +/- SCORE_NOISE

        Returns:
            float: Final score in [score_floor, score_ceiling]
        """
        low, high = self.band_for_level(level)
        banded = _clamp(base_score, low, high)
        amplitude = self.rules.score_noise
        noisy = banded + _clamp(noise, -amplitude, amplitude)
        return _clamp(noisy, self.rules.score_floor, self.rules.score_ceiling)

    def score_metrics(self, level: int, metrics: SubMetrics, geometric: bool = False) -> ChallengeAttempt:
        """Score a given set of sub-metrics at a level"""
        base_score = self.compute_base_score(metrics)
        noise = float(self.rng.uniform(-self.rules.score_noise, self.rules.score_noise))
        final_score = self.calibrate(base_score, level, noise)

        logger.info(
            f"Level {level} scored {final_score:.1f} "
            f"(base={base_score:.1f}, band={self.band_for_level(level)}, geometric={geometric})"
        )
        return ChallengeAttempt(
            level=level,
            score=final_score,
            sub_metrics=metrics,
            passing_threshold=self.passing_threshold,
            geometric=geometric,
        )

    def score(self, level: int, tracked_face: Optional[TrackedFace]) -> ChallengeAttempt:
        """
        Produce a challenge attempt from the tracker's current state.

        Uses geometric sub-metrics when a full mesh is tracked, synthetic
        ones otherwise.

        Args:
            level: Challenge level (1-based)
            tracked_face: Current tracker state, or None if nothing is tracked

        Returns:
            ChallengeAttempt: Always below the passing threshold
        """
        if tracked_face is not None and tracked_face.has_full_mesh:
            return self.score_metrics(level, self.compute_sub_metrics(tracked_face.landmarks), geometric=True)
        return self.score_metrics(level, self.synthesize_sub_metrics())
