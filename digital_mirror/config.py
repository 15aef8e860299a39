"""
Configuration management for the verification engine
"""
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple
from dotenv import load_dotenv

load_dotenv()


class ChallengeVariant(Enum):
    """Known challenge flavours, each with its own humanity decay and level cap"""
    SMILE_GATE = "smile_gate"
    REVERSE_CAPTCHA = "reverse_captcha"


# (max_level, humanity decay per level)
VARIANT_PRESETS = {
    ChallengeVariant.SMILE_GATE: (3, 25),
    ChallengeVariant.REVERSE_CAPTCHA: (5, 20),
}

# Score band per level; must strictly decrease as the level rises
DEFAULT_LEVEL_BANDS = {
    1: (55.0, 75.0),
    2: (40.0, 65.0),
    3: (25.0, 45.0),
    4: (15.0, 35.0),
    5: (8.0, 25.0),
}


@dataclass(frozen=True)
class ChallengeRules:
    """
    Immutable rule set shared by the controller and the scoring engine.

    Raises ValueError on construction if the rules could ever let a score
    reach the passing threshold.
    """
    variant: ChallengeVariant = ChallengeVariant.SMILE_GATE
    max_level: int = 3
    humanity_decay: int = 25
    passing_threshold: float = 80.0
    score_floor: float = 5.0
    score_ceiling: float = 79.0
    score_noise: float = 3.0
    analysis_steps: int = 4
    analysis_step_seconds: float = 1.0
    claim_delay_seconds: float = 1.0
    failure_delay_seconds: float = 1.0
    result_display_seconds: float = 2.0
    captcha_base_seconds: float = 5.0
    captcha_time_increment: float = 2.0
    level_bands: Tuple[Tuple[int, float, float], ...] = tuple(
        (level, low, high) for level, (low, high) in sorted(DEFAULT_LEVEL_BANDS.items())
    )

    def __post_init__(self):
        if self.max_level < 1:
            raise ValueError(f"max_level must be at least 1, got {self.max_level}")
        if self.humanity_decay <= 0:
            raise ValueError(f"humanity_decay must be positive, got {self.humanity_decay}")
        if self.score_ceiling >= self.passing_threshold:
            raise ValueError(
                f"score_ceiling {self.score_ceiling} must stay below "
                f"passing_threshold {self.passing_threshold}"
            )
        if self.score_floor > self.score_ceiling:
            raise ValueError("score_floor must not exceed score_ceiling")
        if self.analysis_steps < 1:
            raise ValueError("analysis_steps must be at least 1")
        if not self.level_bands:
            raise ValueError("level_bands must not be empty")

        previous = None
        for _, low, high in self.level_bands:
            if low > high:
                raise ValueError(f"Invalid score band [{low}, {high}]")
            if previous is not None and not (low < previous[0] and high < previous[1]):
                raise ValueError("Score bands must strictly decrease as the level rises")
            previous = (low, high)

    @property
    def bands(self) -> Dict[int, Tuple[float, float]]:
        return {level: (low, high) for level, low, high in self.level_bands}

    def humanity_for_level(self, level: int) -> int:
        """Humanity percentage left after `level` claims, never below zero"""
        return max(0, 100 - level * self.humanity_decay)

    @classmethod
    def for_variant(cls, variant: ChallengeVariant, **overrides) -> "ChallengeRules":
        max_level, decay = VARIANT_PRESETS[variant]
        values = {"variant": variant, "max_level": max_level, "humanity_decay": decay}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


class Config:
    """Application configuration"""

    # Challenge Configuration
    CHALLENGE_VARIANT = ChallengeVariant(os.getenv('CHALLENGE_VARIANT', 'smile_gate'))
    MAX_LEVEL = _optional_int('MAX_LEVEL')
    HUMANITY_DECAY_PER_LEVEL = _optional_int('HUMANITY_DECAY_PER_LEVEL')

    # Scoring Configuration
    PASSING_THRESHOLD = float(os.getenv('PASSING_THRESHOLD', '80'))
    SCORE_FLOOR = float(os.getenv('SCORE_FLOOR', '5'))
    SCORE_CEILING = float(os.getenv('SCORE_CEILING', '79'))
    SCORE_NOISE = float(os.getenv('SCORE_NOISE', '3'))

    # Timing Configuration
    ANALYSIS_STEPS = int(os.getenv('ANALYSIS_STEPS', '4'))
    ANALYSIS_STEP_SECONDS = float(os.getenv('ANALYSIS_STEP_SECONDS', '1.0'))
    CLAIM_DELAY_SECONDS = float(os.getenv('CLAIM_DELAY_SECONDS', '1.0'))
    FAILURE_DELAY_SECONDS = float(os.getenv('FAILURE_DELAY_SECONDS', '1.0'))
    RESULT_DISPLAY_SECONDS = float(os.getenv('RESULT_DISPLAY_SECONDS', '2.0'))
    CLAIM_COOLDOWN_SECONDS = float(os.getenv('CLAIM_COOLDOWN_SECONDS', '2.0'))
    CAPTCHA_BASE_SECONDS = float(os.getenv('CAPTCHA_BASE_SECONDS', '5.0'))
    CAPTCHA_TIME_INCREMENT = float(os.getenv('CAPTCHA_TIME_INCREMENT', '2.0'))

    # Tracking Configuration
    SMOOTHING_FACTOR = float(os.getenv('SMOOTHING_FACTOR', '0.7'))
    BOX_SMOOTHING_FACTOR = float(os.getenv('BOX_SMOOTHING_FACTOR', '0.3'))
    FRAME_INTERVAL_SECONDS = float(os.getenv('FRAME_INTERVAL_SECONDS', str(1 / 30)))
    DEFAULT_FRAME_WIDTH = int(os.getenv('DEFAULT_FRAME_WIDTH', '640'))
    DEFAULT_FRAME_HEIGHT = int(os.getenv('DEFAULT_FRAME_HEIGHT', '480'))

    # ML Model Configuration
    MEDIAPIPE_MODEL_PATH = os.getenv('MEDIAPIPE_MODEL_PATH')

    # Logging Configuration
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    def challenge_rules(self) -> ChallengeRules:
        """Build the rule set for the configured variant"""
        return ChallengeRules.for_variant(
            self.CHALLENGE_VARIANT,
            max_level=self.MAX_LEVEL,
            humanity_decay=self.HUMANITY_DECAY_PER_LEVEL,
            passing_threshold=self.PASSING_THRESHOLD,
            score_floor=self.SCORE_FLOOR,
            score_ceiling=self.SCORE_CEILING,
            score_noise=self.SCORE_NOISE,
            analysis_steps=self.ANALYSIS_STEPS,
            analysis_step_seconds=self.ANALYSIS_STEP_SECONDS,
            claim_delay_seconds=self.CLAIM_DELAY_SECONDS,
            failure_delay_seconds=self.FAILURE_DELAY_SECONDS,
            result_display_seconds=self.RESULT_DISPLAY_SECONDS,
            captcha_base_seconds=self.CAPTCHA_BASE_SECONDS,
            captcha_time_increment=self.CAPTCHA_TIME_INCREMENT,
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Apply the configured log level to the root logger"""
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


config = Config()
