from .challenge_controller import AsyncioScheduler, ChallengeController
from .claim_trigger import ClaimTrigger, is_claim_key, is_human_claim
from .face_detector import FaceDetector, MediaPipeFaceDetector, NullFaceDetector, create_face_detector
from .landmark_normalizer import basic_landmarks_from_box, normalize_face_record
from .landmark_tracker import FallbackTracker, LandmarkTracker
from .mirror_session import MirrorSession
from .overlay_projector import OverlayFrame, OverlayProjector
from .reverse_captcha import ReverseCaptcha
from .scoring_engine import ScoringEngine

__all__ = [
    "AsyncioScheduler",
    "ChallengeController",
    "ClaimTrigger",
    "FaceDetector",
    "FallbackTracker",
    "LandmarkTracker",
    "MediaPipeFaceDetector",
    "MirrorSession",
    "NullFaceDetector",
    "OverlayFrame",
    "OverlayProjector",
    "ReverseCaptcha",
    "ScoringEngine",
    "basic_landmarks_from_box",
    "create_face_detector",
    "is_claim_key",
    "is_human_claim",
    "normalize_face_record",
]
