"""
Mirror session: one explicitly owned challenge session tying the tracker,
scoring engine, controller and overlay projector together.
"""
import asyncio
import logging
import time
from typing import Any, Callable, Optional, Tuple

import numpy as np

from ..config import ChallengeRules, Config, config as default_config
from ..models.data_models import (
    ChallengeAttempt,
    ChallengePhase,
    SessionState,
    TrackedFace,
)
from .challenge_controller import ChallengeController
from .claim_trigger import ClaimTrigger
from .face_detector import FaceDetector, create_face_detector
from .landmark_tracker import LandmarkTracker
from .overlay_projector import OverlayFrame, OverlayProjector
from .scoring_engine import ScoringEngine

logger = logging.getLogger(__name__)


class MirrorSession:
    """
    A single local, ephemeral challenge session.

    Tracking runs as a cooperative asyncio task, independent of the challenge
    phase, until a terminal phase is reached or the session is closed.
    `reset()` restarts it. After `close()` nothing mutates session state.
    """

    def __init__(
        self,
        rules: Optional[ChallengeRules] = None,
        detector: Optional[FaceDetector] = None,
        display_size: Tuple[int, int] = (1280, 720),
        scheduler: Optional[Any] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], float] = time.time,
        settings: Config = default_config
    ):
        self.settings = settings
        self.rules = rules or settings.challenge_rules()
        self.frame_interval = settings.FRAME_INTERVAL_SECONDS

        self.tracker = LandmarkTracker(
            detector=detector,
            smoothing_factor=settings.SMOOTHING_FACTOR,
            box_smoothing_factor=settings.BOX_SMOOTHING_FACTOR,
            default_frame_size=(settings.DEFAULT_FRAME_WIDTH, settings.DEFAULT_FRAME_HEIGHT),
            clock=clock,
        )
        self.scoring_engine = ScoringEngine(self.rules, rng)
        self.controller = ChallengeController(
            self.tracker,
            self.scoring_engine,
            self.rules,
            scheduler=scheduler,
        )
        self.projector = OverlayProjector(*display_size)
        self.trigger = ClaimTrigger(self.controller, settings.CLAIM_COOLDOWN_SECONDS)

        self.controller.subscribe(self._on_phase_change)

        self._frame_source = None
        self._task: Optional[asyncio.Task] = None
        self._tracking = False
        self._closed = False

    @classmethod
    def from_config(cls, settings: Config = default_config, **kwargs) -> "MirrorSession":
        """Build a session with the detector and rules named by the configuration"""
        detector = create_face_detector(settings.MEDIAPIPE_MODEL_PATH)
        return cls(rules=settings.challenge_rules(), detector=detector, settings=settings, **kwargs)

    @property
    def state(self) -> SessionState:
        return self.controller.state

    @property
    def last_attempt(self) -> Optional[ChallengeAttempt]:
        return self.controller.last_attempt

    @property
    def tracked_face(self) -> Optional[TrackedFace]:
        return self.tracker.tracked_face

    @property
    def tracking(self) -> bool:
        return self._tracking

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, frame_source=None) -> None:
        """
        Open the session for claims and, given a frame source, start tracking.

        Without a frame source the host drives tracking through
        `track_frame`. With one, this must be called from within a running
        event loop.
        """
        if self._closed:
            raise RuntimeError("Session is closed")
        self.controller.start()
        self._tracking = True
        if frame_source is not None:
            self.start_tracking(frame_source)

    def start_tracking(self, frame_source) -> asyncio.Task:
        """Launch the per-frame tracking task"""
        self._frame_source = frame_source
        if self._task is not None and not self._task.done():
            return self._task
        self._tracking = True
        self._task = asyncio.get_running_loop().create_task(self.run(frame_source))
        return self._task

    def stop_tracking(self) -> None:
        self._tracking = False
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def run(self, frame_source) -> None:
        """
        Per-frame tracking loop.

        The frame source provides `read()` returning the current frame (or
        None) and, optionally, `frame_size` as (width, height).
        """
        self._tracking = True
        logger.info("Tracking loop started")
        try:
            while self._tracking and not self._closed:
                frame = frame_source.read()
                self.track_frame(frame, getattr(frame_source, "frame_size", None))
                await asyncio.sleep(self.frame_interval)
        finally:
            logger.info("Tracking loop stopped")

    def track_frame(
        self,
        frame: Optional[np.ndarray],
        frame_size: Optional[Tuple[int, int]] = None
    ) -> Optional[TrackedFace]:
        """Run one tracking step unless tracking has been stopped"""
        if self._closed or not self._tracking:
            return None
        return self.tracker.update(frame, frame_size)

    def submit_claim(self) -> bool:
        return self.controller.submit_claim()

    def overlay(self) -> OverlayFrame:
        attempt = self.controller.last_attempt
        metrics = attempt.sub_metrics if attempt is not None else None
        return self.projector.project(self.tracker.tracked_face, metrics)

    def _on_phase_change(self, previous: ChallengePhase, current: ChallengePhase, state: SessionState) -> None:
        if current.is_terminal:
            logger.info(f"Terminal phase {current.value} reached, stopping tracking")
            self.stop_tracking()

    def reset(self) -> None:
        """Return to the initial state and resume tracking"""
        if self._closed:
            return
        self.stop_tracking()
        self.controller.reset()
        self.trigger.reset()
        self._tracking = True
        if self._frame_source is not None:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running event loop; tracking resumes on the next run()")
                return
            self.start_tracking(self._frame_source)

    def close(self) -> None:
        """Stop tracking, cancel every timer and release the detector"""
        if self._closed:
            return
        self.stop_tracking()
        self.controller.close()
        self.tracker.close()
        self._closed = True
        logger.info("Session closed")
