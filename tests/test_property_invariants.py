"""
Property-based tests for the challenge session invariants
"""
import numpy as np
from hypothesis import given, strategies as st, settings

from digital_mirror.config import ChallengeRules, ChallengeVariant
from digital_mirror.models.data_models import ChallengePhase, OfferChoice
from digital_mirror.services.challenge_controller import ChallengeController
from digital_mirror.services.landmark_tracker import LandmarkTracker
from digital_mirror.services.scoring_engine import ScoringEngine

from conftest import FakeScheduler


actions = st.lists(
    st.one_of(
        st.just("claim"),
        st.just("reset"),
        st.just("tutorial"),
        st.just("reject"),
        st.floats(min_value=0.0, max_value=6.0, allow_nan=False),
    ),
    max_size=60,
)

variants = st.sampled_from(list(ChallengeVariant))


def build(variant, seed):
    rules = ChallengeRules.for_variant(variant)
    scheduler = FakeScheduler()
    controller = ChallengeController(
        LandmarkTracker(clock=lambda: 0.0),
        ScoringEngine(rules, rng=np.random.default_rng(seed)),
        rules,
        scheduler=scheduler,
    )
    controller.start()
    return controller, scheduler


def apply(controller, scheduler, action):
    if action == "claim":
        controller.submit_claim()
    elif action == "reset":
        controller.reset()
    elif action == "tutorial":
        controller.choose(OfferChoice.TUTORIAL)
    elif action == "reject":
        controller.choose(OfferChoice.FINAL_REJECTION)
    else:
        scheduler.advance(action)


class TestHumanityInvariant:
    """
    Humanity is always derived from the level and never leaves [0, 100].
    """

    @given(variant=variants, steps=actions, seed=st.integers(min_value=0, max_value=1000))
    @settings(max_examples=100, deadline=None)
    def test_humanity_tracks_level(self, variant, steps, seed):
        controller, scheduler = build(variant, seed)
        decay = controller.rules.humanity_decay

        for action in steps:
            apply(controller, scheduler, action)
            state = controller.state
            assert 0 <= state.level <= controller.max_level
            assert state.humanity_percentage == max(0, 100 - state.level * decay)


class TestNoPassInvariant:
    """
    No sequence of inputs ever produces a passing attempt.
    """

    @given(variant=variants, steps=actions, seed=st.integers(min_value=0, max_value=1000))
    @settings(max_examples=100, deadline=None)
    def test_no_attempt_passes(self, variant, steps, seed):
        controller, scheduler = build(variant, seed)

        for action in steps:
            apply(controller, scheduler, action)
            attempt = controller.last_attempt
            if attempt is not None:
                assert attempt.score < 80.0
                assert attempt.passed is False


class TestSingleCycleInvariant:
    """
    Claims made while a cycle is in progress never change the level.
    """

    @given(
        claims=st.integers(min_value=1, max_value=20),
        delay=st.floats(min_value=0.0, max_value=4.9, allow_nan=False)
    )
    @settings(max_examples=100, deadline=None)
    def test_repeated_claims_during_cycle_ignored(self, claims, delay):
        controller, scheduler = build(ChallengeVariant.SMILE_GATE, 0)
        controller.submit_claim()
        scheduler.advance(delay)

        for _ in range(claims):
            controller.submit_claim()

        assert controller.level == 1
        assert controller.phase in (ChallengePhase.PROCESSING, ChallengePhase.ANALYZING)


class TestTerminalInvariant:
    """
    Terminal phases accept nothing but reset.
    """

    @given(variant=variants, steps=actions)
    @settings(max_examples=100, deadline=None)
    def test_terminal_phase_is_sticky(self, variant, steps):
        controller, scheduler = build(variant, 0)

        for action in steps:
            was_terminal = controller.phase.is_terminal
            level = controller.level
            apply(controller, scheduler, action)
            if was_terminal and action != "reset":
                assert controller.phase.is_terminal
                assert controller.level == level
