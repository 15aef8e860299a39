"""
Digital Mirror: a face-tracking humanity verification challenge that no one
ever passes.
"""
from .config import ChallengeRules, ChallengeVariant, config, configure_logging
from .services import MirrorSession

__version__ = "0.1.0"

__all__ = [
    "ChallengeRules",
    "ChallengeVariant",
    "MirrorSession",
    "config",
    "configure_logging",
]
