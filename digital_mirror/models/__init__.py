from .data_models import (
    BoundingBox,
    CaptchaOutcome,
    ChallengeAttempt,
    ChallengeEvent,
    ChallengePhase,
    OfferChoice,
    SessionState,
    SubMetrics,
    TrackedFace,
    TrackingMode,
)

__all__ = [
    "BoundingBox",
    "CaptchaOutcome",
    "ChallengeAttempt",
    "ChallengeEvent",
    "ChallengePhase",
    "OfferChoice",
    "SessionState",
    "SubMetrics",
    "TrackedFace",
    "TrackingMode",
]
