"""
Shared helpers for the verification engine tests
"""
import numpy as np

from digital_mirror.models.data_models import (
    FULL_MESH_LANDMARK_COUNT,
    MESH_CHIN,
    MESH_LEFT_EYE_INNER,
    MESH_LEFT_EYE_OUTER,
    MESH_LEFT_MOUTH,
    MESH_LOWER_LIP,
    MESH_NOSE_TIP,
    MESH_RIGHT_EYE_INNER,
    MESH_RIGHT_EYE_OUTER,
    MESH_RIGHT_MOUTH,
    MESH_UPPER_LIP,
)


class FakeTimerHandle:
    """Timer handle recorded by FakeScheduler"""

    def __init__(self, when, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """Manually advanced clock with call_later semantics"""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, callback):
        handle = FakeTimerHandle(self.now + delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds):
        """Move time forward, firing due callbacks in order"""
        target = self.now + seconds
        while True:
            due = [h for h in self.pending if h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target


def make_mesh(
    upper_lip=(320.0, 300.0),
    lower_lip=(320.0, 310.0),
    left_mouth=(300.0, 305.0),
    right_mouth=(340.0, 305.0),
    left_eye=((280.0, 200.0), (300.0, 200.0)),
    right_eye=((340.0, 200.0), (364.0, 200.0)),
    nose=(320.0, 260.0),
    chin=(320.0, 380.0)
):
    """468-point mesh in pixel space with only the scored landmarks placed"""
    mesh = np.zeros((FULL_MESH_LANDMARK_COUNT, 3), dtype=np.float64)
    mesh[:, 0] = 320.0
    mesh[:, 1] = 240.0
    mesh[MESH_UPPER_LIP, :2] = upper_lip
    mesh[MESH_LOWER_LIP, :2] = lower_lip
    mesh[MESH_LEFT_MOUTH, :2] = left_mouth
    mesh[MESH_RIGHT_MOUTH, :2] = right_mouth
    mesh[MESH_LEFT_EYE_OUTER, :2] = left_eye[0]
    mesh[MESH_LEFT_EYE_INNER, :2] = left_eye[1]
    mesh[MESH_RIGHT_EYE_INNER, :2] = right_eye[0]
    mesh[MESH_RIGHT_EYE_OUTER, :2] = right_eye[1]
    mesh[MESH_NOSE_TIP, :2] = nose
    mesh[MESH_CHIN, :2] = chin
    return mesh


def run_cycle(controller, scheduler):
    """Submit a claim and let the analysis and result display run out"""
    accepted = controller.submit_claim()
    scheduler.advance(controller.rules.claim_delay_seconds)
    scheduler.advance(controller.countdown_remaining * controller.rules.analysis_step_seconds)
    scheduler.advance(controller.rules.result_display_seconds)
    return accepted

