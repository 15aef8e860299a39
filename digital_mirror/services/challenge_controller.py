"""
Challenge controller: the state machine that sequences claim, analysis,
scored result, retry and terminal outcomes.
"""
import asyncio
import dataclasses
import logging
import math
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import ChallengeRules, ChallengeVariant
from ..models.data_models import (
    CaptchaOutcome,
    ChallengeAttempt,
    ChallengeEvent,
    ChallengePhase,
    OfferChoice,
    SessionState,
)
from .landmark_tracker import LandmarkTracker
from .reverse_captcha import CaptchaPuzzle, ReverseCaptcha
from .scoring_engine import ScoringEngine

logger = logging.getLogger(__name__)

Phase = ChallengePhase
Event = ChallengeEvent

# Every legal transition; anything else is ignored
TRANSITIONS: Dict[Tuple[ChallengePhase, ChallengeEvent], ChallengePhase] = {
    (Phase.IDLE, Event.START): Phase.AWAITING_CLAIM,
    (Phase.AWAITING_CLAIM, Event.CLAIM): Phase.PROCESSING,
    (Phase.PROCESSING, Event.CLAIM_PROCESSED): Phase.ANALYZING,
    (Phase.PROCESSING, Event.HUMANITY_EXHAUSTED): Phase.FAILED,
    (Phase.ANALYZING, Event.ANALYSIS_COMPLETE): Phase.SCORED,
    (Phase.SCORED, Event.RETRY): Phase.AWAITING_CLAIM,
    (Phase.SCORED, Event.MAX_LEVEL_REACHED): Phase.OFFER,
    (Phase.OFFER, Event.CHOOSE_TUTORIAL): Phase.AWAITING_CLAIM,
    (Phase.OFFER, Event.CHOOSE_REJECTION): Phase.REJECTED,
    (Phase.IDLE, Event.RESET): Phase.IDLE,
}
# Reset is legal from every phase, terminal ones included
TRANSITIONS.update({
    (phase, Event.RESET): Phase.AWAITING_CLAIM
    for phase in Phase
    if phase is not Phase.IDLE
})

PhaseListener = Callable[[ChallengePhase, ChallengePhase, SessionState], None]


class AsyncioScheduler:
    """Schedules timer callbacks on the running asyncio loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        """
        Raises:
            RuntimeError: if no loop was given and none is running
        """
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class ChallengeController:
    """
    Coordinates challenge level, humanity accounting, analysis timing and
    terminal outcomes.

    All mutation happens on a single thread of control: trigger calls and
    timer callbacks. Claims that arrive while a cycle is in progress are
    ignored rather than queued.
    """

    def __init__(
        self,
        tracker: LandmarkTracker,
        scoring_engine: ScoringEngine,
        rules: Optional[ChallengeRules] = None,
        scheduler: Optional[Any] = None,
        captcha: Optional[ReverseCaptcha] = None
    ):
        """
        Args:
            tracker: Landmark tracker whose state is scored at analysis expiry
            scoring_engine: Produces challenge attempts
            rules: Level cap, humanity decay and timing
            scheduler: Object with call_later(delay, callback) returning a
                cancellable handle; defaults to the running asyncio loop
            captcha: Puzzle issuer, used by the reverse CAPTCHA variant
        """
        self.tracker = tracker
        self.scoring_engine = scoring_engine
        self.rules = rules or scoring_engine.rules
        self.scheduler = scheduler or AsyncioScheduler()
        if captcha is None and self.rules.variant is ChallengeVariant.REVERSE_CAPTCHA:
            captcha = ReverseCaptcha(
                base_seconds=self.rules.captcha_base_seconds,
                time_increment=self.rules.captcha_time_increment,
            )
        self.captcha = captcha

        self.level = 0
        self.phase = ChallengePhase.IDLE
        self.last_attempt: Optional[ChallengeAttempt] = None
        self.countdown_remaining = 0
        self.active_puzzle: Optional[CaptchaPuzzle] = None
        self.tutorials_shown = 0

        self._listeners: List[PhaseListener] = []
        self._timers: List[Any] = []
        self._generation = 0
        self._closed = False

    @property
    def max_level(self) -> int:
        return self.rules.max_level

    @property
    def humanity_percentage(self) -> int:
        return self.rules.humanity_for_level(self.level)

    @property
    def state(self) -> SessionState:
        return SessionState(
            level=self.level,
            humanity_percentage=self.humanity_percentage,
            phase=self.phase,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: PhaseListener) -> None:
        """Register a callback invoked as listener(old_phase, new_phase, state)"""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _fire(self, event: ChallengeEvent) -> bool:
        target = TRANSITIONS.get((self.phase, event))
        if target is None:
            logger.debug(f"Ignoring {event.value} in phase {self.phase.value}")
            return False
        self._enter(target)
        return True

    def _enter(self, target: ChallengePhase) -> None:
        previous = self.phase
        self.phase = target
        logger.info(
            f"Challenge phase {previous.value} -> {target.value} "
            f"(level={self.level}, humanity={self.humanity_percentage}%)"
        )
        state = self.state
        for listener in list(self._listeners):
            listener(previous, target, state)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _schedule(self, delay: float, action: Callable[[], None]) -> None:
        generation = self._generation

        def fire():
            if self._closed or generation != self._generation:
                return
            if handle in self._timers:
                self._timers.remove(handle)
            action()

        handle = self.scheduler.call_later(delay, fire)
        self._timers.append(handle)

    def _cancel_timers(self) -> None:
        self._generation += 1
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Open the session for claims"""
        if self._closed:
            return False
        return self._fire(ChallengeEvent.START)

    def submit_claim(self) -> bool:
        """
        Register a "human" claim.

        Ignored once the final level has been reached and whenever a cycle is
        already in progress.

        Returns:
            bool: True if the claim advanced the level
        """
        if self._closed or self.level >= self.max_level:
            logger.debug(f"Claim ignored at level {self.level}/{self.max_level}")
            return False
        if self.phase is not ChallengePhase.AWAITING_CLAIM:
            logger.debug(f"Claim ignored in phase {self.phase.value}")
            return False

        # Schedule first: a scheduler failure must leave level and phase untouched
        next_level = self.level + 1
        if self.rules.humanity_for_level(next_level) <= 0:
            self._schedule(self.rules.failure_delay_seconds, self._exhaust_humanity)
        else:
            self._schedule(self.rules.claim_delay_seconds, self._begin_analysis)

        self.level = next_level
        self._fire(ChallengeEvent.CLAIM)
        return True

    def _exhaust_humanity(self) -> None:
        logger.info("Humanity exhausted")
        self._fire(ChallengeEvent.HUMANITY_EXHAUSTED)

    def _begin_analysis(self) -> None:
        if not self._fire(ChallengeEvent.CLAIM_PROCESSED):
            return

        steps = self.rules.analysis_steps
        if self.captcha is not None:
            self.active_puzzle = self.captcha.issue(self.level)
            steps = max(1, math.ceil(self.active_puzzle.time_allowance / self.rules.analysis_step_seconds))

        self.countdown_remaining = steps
        self._schedule(self.rules.analysis_step_seconds, self._countdown_tick)

    def _countdown_tick(self) -> None:
        self.countdown_remaining -= 1
        if self.countdown_remaining > 0:
            self._schedule(self.rules.analysis_step_seconds, self._countdown_tick)
            return
        outcome = CaptchaOutcome.TIME_EXPIRED if self.active_puzzle is not None else None
        self._complete_analysis(outcome)

    def submit_captcha_answer(self, answer: str) -> Optional[CaptchaOutcome]:
        """
        Answer the active reverse CAPTCHA, ending the analysis window early.

        Returns:
            The outcome, or None if no puzzle is being analyzed
        """
        if self._closed or self.phase is not ChallengePhase.ANALYZING or self.active_puzzle is None:
            return None
        outcome = self.captcha.check(self.active_puzzle, answer)
        self._complete_analysis(outcome)
        return outcome

    def _complete_analysis(self, captcha_outcome: Optional[CaptchaOutcome] = None) -> None:
        self._cancel_timers()
        self.countdown_remaining = 0

        attempt = self.scoring_engine.score(self.level, self.tracker.tracked_face)
        if captcha_outcome is not None:
            attempt = dataclasses.replace(attempt, captcha_outcome=captcha_outcome)
        self.last_attempt = attempt
        self.active_puzzle = None

        self._fire(ChallengeEvent.ANALYSIS_COMPLETE)
        self._schedule(self.rules.result_display_seconds, self._leave_scored)

    def _leave_scored(self) -> None:
        if self.level < self.max_level:
            self._fire(ChallengeEvent.RETRY)
        else:
            self._fire(ChallengeEvent.MAX_LEVEL_REACHED)

    def choose(self, choice: OfferChoice) -> bool:
        """
        Pick one of the options offered after the final level.

        The tutorial is cosmetic and returns to awaiting a claim; the final
        rejection is terminal.
        """
        if self._closed:
            return False
        if choice is OfferChoice.TUTORIAL:
            accepted = self._fire(ChallengeEvent.CHOOSE_TUTORIAL)
            if accepted:
                self.tutorials_shown += 1
            return accepted
        return self._fire(ChallengeEvent.CHOOSE_REJECTION)

    def reset(self) -> None:
        """Return to the initial state from any phase"""
        if self._closed:
            return
        self._cancel_timers()
        self.level = 0
        self.last_attempt = None
        self.countdown_remaining = 0
        self.active_puzzle = None
        self.tutorials_shown = 0
        self.tracker.reset()

        logger.info("Challenge reset")
        self._fire(ChallengeEvent.RESET)

    def close(self) -> None:
        """Cancel every pending timer; later callbacks are no-ops"""
        if self._closed:
            return
        self._cancel_timers()
        self._closed = True
        logger.info("Challenge controller closed")
