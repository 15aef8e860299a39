"""
Claim trigger matching: decides whether speech, key or click input counts as
a "human" claim. Wiring those inputs up is the host's job.
"""
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

HUMAN_PHRASES = (
    "i am human",
    "i am a human",
    "i am the human",
    "i am human being",
    "i am a human being",
    "i am the human being",
    "i am human person",
    "i am a human person",
    "i am the human person",
)

CLAIM_KEYS = ("space", " ", "h")


def is_human_claim(transcript: Optional[str]) -> bool:
    """True if a speech transcript contains an "I am human" phrase"""
    if not transcript:
        return False
    normalized = " ".join(transcript.lower().split())
    return any(phrase in normalized for phrase in HUMAN_PHRASES)


def is_claim_key(key: Optional[str]) -> bool:
    """True for the Space bar or the H key"""
    if not key:
        return False
    return key.lower() in CLAIM_KEYS


class ClaimTrigger:
    """
    Forwards trigger input to the controller, at most once per cooldown window.
    """

    def __init__(
        self,
        controller,
        cooldown_seconds: float = 2.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.controller = controller
        self.cooldown_seconds = cooldown_seconds
        self.clock = clock
        self.last_trigger_time: Optional[float] = None

    def fire(self) -> bool:
        """
        Submit a claim unless one was accepted within the cooldown.

        Claims the controller ignores do not start a cooldown.

        Returns:
            bool: True if the controller accepted the claim
        """
        now = self.clock()
        if self.last_trigger_time is not None and now - self.last_trigger_time < self.cooldown_seconds:
            logger.debug("Claim trigger within cooldown, ignored")
            return False
        accepted = self.controller.submit_claim()
        if accepted:
            self.last_trigger_time = now
        return accepted

    def on_transcript(self, transcript: str) -> bool:
        if not is_human_claim(transcript):
            return False
        logger.info(f"Human phrase detected: {transcript!r}")
        return self.fire()

    def on_key(self, key: str) -> bool:
        return is_claim_key(key) and self.fire()

    def on_click(self) -> bool:
        return self.fire()

    def reset(self) -> None:
        self.last_trigger_time = None
