"""
Reverse CAPTCHA: a code hidden in a near-white bitmap that a machine reads
trivially and a human can barely see.
"""
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from ..models.data_models import CaptchaOutcome

logger = logging.getLogger(__name__)

CODE_LENGTH = 8
BACKGROUND_LEVEL = 254
CODE_LEVEL = 255
BLUE_CHANNEL = 2

# Segments a (top), b (top right), c (bottom right), d (bottom),
# e (bottom left), f (top left), g (middle)
SEVEN_SEGMENT_PATTERNS = {
    "0": (1, 1, 1, 0, 1, 1, 1),
    "1": (0, 0, 1, 0, 0, 1, 0),
    "2": (1, 0, 1, 1, 1, 0, 1),
    "3": (1, 0, 1, 1, 0, 1, 1),
    "4": (0, 1, 1, 1, 0, 1, 0),
    "5": (1, 1, 0, 1, 0, 1, 1),
    "6": (1, 1, 0, 1, 1, 1, 1),
    "7": (1, 0, 1, 0, 0, 1, 0),
    "8": (1, 1, 1, 1, 1, 1, 1),
    "9": (1, 1, 1, 1, 0, 1, 1),
}
BLANK_PATTERN = (0, 0, 0, 0, 0, 0, 0)

Segment = Tuple[float, float, float, float]


def segment_pattern(digit: str) -> Tuple[int, ...]:
    return SEVEN_SEGMENT_PATTERNS.get(digit, BLANK_PATTERN)


def digit_segments(start_x: float, start_y: float, digit_width: float, digit_height: float) -> List[Segment]:
    """Line endpoints (x1, y1, x2, y2) of the seven segments in one digit cell"""
    center_x = start_x + digit_width / 2.0
    center_y = start_y + digit_height / 2.0
    half = min(digit_width, digit_height) * 0.3 / 2.0
    return [
        (center_x - half, center_y - half, center_x + half, center_y - half),  # a
        (center_x + half, center_y - half, center_x + half, center_y),         # b
        (center_x + half, center_y, center_x + half, center_y + half),         # c
        (center_x - half, center_y + half, center_x + half, center_y + half),  # d
        (center_x - half, center_y, center_x - half, center_y + half),         # e
        (center_x - half, center_y - half, center_x - half, center_y),         # f
        (center_x - half, center_y, center_x + half, center_y),                # g
    ]


def _draw_segment(image: np.ndarray, segment: Segment, thickness: int) -> None:
    x1, y1, x2, y2 = segment
    dx, dy = x2 - x1, y2 - y1
    steps = max(1, math.ceil(math.hypot(dx, dy)))
    height, width = image.shape[:2]
    for i in range(steps + 1):
        t = i / steps
        x = int(round(x1 + dx * t))
        y = int(round(y1 + dy * t))
        top, left = max(0, y - thickness), max(0, x - thickness)
        bottom, right = min(height, y + thickness + 1), min(width, x + thickness + 1)
        if top < bottom and left < right:
            image[top:bottom, left:right, BLUE_CHANNEL] = CODE_LEVEL


def render_code_bitmap(code: str, width: int = 400, height: int = 80, thickness: int = 2) -> np.ndarray:
    """
    Hide a code in an RGB bitmap.

    The background is (254, 254, 254); segment strokes only raise the blue
    channel to 255.
    """
    image = np.full((height, width, 3), BACKGROUND_LEVEL, dtype=np.uint8)
    digit_width = width // max(len(code), 1)
    for i, digit in enumerate(code):
        segments = digit_segments(i * digit_width, 0, digit_width, height)
        for segment, active in zip(segments, segment_pattern(digit)):
            if active:
                _draw_segment(image, segment, thickness)
    return image


def read_code_bitmap(image: np.ndarray, length: int = CODE_LENGTH) -> str:
    """
    Recover a hidden code by sampling each segment's midpoint.

    Unrecognized cells read as '?'.
    """
    height, width = image.shape[:2]
    digit_width = width // max(length, 1)
    lookup = {pattern: digit for digit, pattern in SEVEN_SEGMENT_PATTERNS.items()}

    digits = []
    for i in range(length):
        pattern = []
        for x1, y1, x2, y2 in digit_segments(i * digit_width, 0, digit_width, height):
            x = int(round((x1 + x2) / 2.0))
            y = int(round((y1 + y2) / 2.0))
            pattern.append(1 if image[y, x, BLUE_CHANNEL] == CODE_LEVEL else 0)
        digits.append(lookup.get(tuple(pattern), "?"))
    return "".join(digits)


@dataclass(frozen=True)
class CaptchaPuzzle:
    """One issued reverse CAPTCHA"""
    code: str
    level: int
    time_allowance: float
    image: np.ndarray = field(repr=False, compare=False)
    issued_at: float = field(default_factory=time.time)

    def remaining(self, now: float) -> float:
        return max(0.0, self.time_allowance - (now - self.issued_at))


class ReverseCaptcha:
    """
    Issues and checks reverse CAPTCHA puzzles.

    The time allowance grows with the level: base + (level - 1) * increment.
    """

    def __init__(
        self,
        base_seconds: float = 5.0,
        time_increment: float = 2.0,
        width: int = 400,
        height: int = 80,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], float] = time.time
    ):
        self.base_seconds = base_seconds
        self.time_increment = time_increment
        self.width = width
        self.height = height
        self.rng = rng if rng is not None else np.random.default_rng()
        self.clock = clock

    def generate_code(self) -> str:
        """Random 8-digit numeric code"""
        return "".join(str(int(d)) for d in self.rng.integers(0, 10, size=CODE_LENGTH))

    def time_allowance(self, level: int) -> float:
        return self.base_seconds + (max(level, 1) - 1) * self.time_increment

    def issue(self, level: int) -> CaptchaPuzzle:
        code = self.generate_code()
        puzzle = CaptchaPuzzle(
            code=code,
            level=level,
            time_allowance=self.time_allowance(level),
            image=render_code_bitmap(code, self.width, self.height),
            issued_at=self.clock(),
        )
        logger.info(f"Reverse CAPTCHA level {level}: {puzzle.time_allowance:.1f} seconds allowed")
        logger.debug(f"Hidden code: {code}")
        return puzzle

    def check(self, puzzle: CaptchaPuzzle, answer: Optional[str]) -> CaptchaOutcome:
        """
        Judge an answer.

        A correct answer in time means machine behaviour was detected; a wrong
        one means human limitations were detected.
        """
        elapsed = self.clock() - puzzle.issued_at
        if elapsed > puzzle.time_allowance:
            outcome = CaptchaOutcome.TIME_EXPIRED
        elif answer is not None and answer.strip() == puzzle.code:
            outcome = CaptchaOutcome.MACHINE_DETECTED
        else:
            outcome = CaptchaOutcome.HUMAN_LIMITATIONS
        logger.info(f"Reverse CAPTCHA level {puzzle.level}: {outcome.value}")
        return outcome
