"""
Unit tests for LandmarkTracker and FallbackTracker
"""
import math

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from digital_mirror.exceptions import DetectionFailedError, DetectorUnavailableError
from digital_mirror.models.data_models import BoundingBox, TrackingMode
from digital_mirror.services.face_detector import FaceDetector
from digital_mirror.services.landmark_tracker import FallbackTracker, LandmarkTracker

from conftest import make_mesh


def blank_frame(width=640, height=480):
    return np.zeros((height, width, 3), dtype=np.uint8)


def pixel_points(offset=0.0, count=6):
    """Pixel-space keypoints well outside the normalized [0, 1] range"""
    return [(100.0 + 20.0 * i + offset, 150.0 + 10.0 * i + offset, 0.0) for i in range(count)]


class TestFallbackTracker:
    """Test suite for the time-driven synthetic box"""

    def setup_method(self):
        self.fallback = FallbackTracker()

    def test_box_at_zero(self):
        center_x, center_y, width, height = self.fallback.box_at(0.0)

        assert center_x == pytest.approx(0.5)
        assert center_y == pytest.approx(0.45 + 0.015 * math.sin(0.5))
        assert width == pytest.approx(0.30)
        assert height == pytest.approx(0.40 + 0.01 * math.sin(1.0))

    def test_same_timestamp_same_box(self):
        assert self.fallback.box_at(12.5) == self.fallback.box_at(12.5)

    def test_box_moves_over_time(self):
        assert self.fallback.box_at(0.0) != self.fallback.box_at(1.0)

    def test_motion_stays_near_base(self):
        for t in np.linspace(0.0, 60.0, 200):
            center_x, center_y, width, height = self.fallback.box_at(float(t))
            assert abs(center_x - 0.5) <= 0.02 + 1e-12
            assert abs(center_y - 0.45) <= 0.015 + 1e-12
            assert abs(width - 0.30) <= 0.01 + 1e-12
            assert abs(height - 0.40) <= 0.01 + 1e-12

    def test_landmarks_in_pixels(self):
        landmarks = self.fallback.landmarks_at(0.0, 640, 480)

        assert landmarks.shape == (6, 3)
        assert np.all(landmarks[:, 0] > 1.0)
        assert np.all(landmarks[:, 0] < 640.0)
        assert np.all(landmarks[:, 1] < 480.0)


class TestLandmarkTracker:
    """Test suite for LandmarkTracker class"""

    def setup_method(self):
        self.now = 100.0
        self.clock = lambda: self.now

    def make_tracker(self, detector=None, **kwargs):
        return LandmarkTracker(detector=detector, clock=self.clock, **kwargs)

    def make_detector(self, mocker, *results):
        detector = mocker.MagicMock(spec=FaceDetector)
        detector.detect.side_effect = list(results)
        return detector

    def test_invalid_smoothing_factor(self):
        with pytest.raises(ValueError):
            LandmarkTracker(smoothing_factor=0.0)
        with pytest.raises(ValueError):
            LandmarkTracker(box_smoothing_factor=1.5)

    def test_no_detector_uses_fallback(self):
        tracker = self.make_tracker()

        face = tracker.update(blank_frame())

        assert face.mode is TrackingMode.FALLBACK
        assert face.landmarks.shape == (6, 3)
        assert tracker.mode is TrackingMode.FALLBACK

    def test_hundred_empty_frames_stay_in_fallback(self, mocker):
        """Detector returns nothing for 100 frames; tracking never stops"""
        detector = mocker.MagicMock(spec=FaceDetector)
        detector.detect.return_value = []
        tracker = self.make_tracker(detector)

        for i in range(100):
            self.now = 100.0 + i / 30.0
            face = tracker.update(blank_frame())
            assert face.mode is TrackingMode.FALLBACK
            assert face.bounding_box.width > 0

        assert tracker.frames_tracked == 100

    def test_fallback_box_deterministic_for_timestamp(self):
        first = self.make_tracker().update(None, (640, 480), timestamp=3.0)
        second = self.make_tracker().update(None, (640, 480), timestamp=3.0)

        np.testing.assert_array_equal(first.landmarks, second.landmarks)
        assert first.bounding_box == second.bounding_box

    def test_missing_frame_size_uses_default(self):
        tracker = self.make_tracker(default_frame_size=(800, 600))

        face = tracker.update(None)

        assert face.frame_size == (800, 600)

    def test_zero_frame_size_skips_detector(self, mocker):
        detector = self.make_detector(mocker)
        tracker = self.make_tracker(detector)

        face = tracker.update(blank_frame(), frame_size=(0, 0))

        detector.detect.assert_not_called()
        assert face.mode is TrackingMode.FALLBACK

    def test_detected_keypoints(self, mocker):
        detector = self.make_detector(mocker, [{"keypoints": pixel_points()}])
        tracker = self.make_tracker(detector)

        face = tracker.update(blank_frame())

        assert face.mode is TrackingMode.DETECTED
        np.testing.assert_allclose(face.landmarks, np.array(pixel_points()))
        assert face.frame_size == (640, 480)

    def test_smoothing_moves_by_alpha_times_delta(self, mocker):
        """A step change moves every smoothed coordinate by exactly delta * alpha"""
        delta = 10.0
        detector = self.make_detector(
            mocker,
            [{"keypoints": pixel_points()}],
            [{"keypoints": pixel_points(offset=delta)}],
        )
        tracker = self.make_tracker(detector)

        before = tracker.update(blank_frame()).landmarks.copy()
        after = tracker.update(blank_frame()).landmarks

        np.testing.assert_allclose(after[:, :2] - before[:, :2], delta * 0.7)

    def test_bounding_box_is_extent_of_smoothed_landmarks(self, mocker):
        detector = self.make_detector(
            mocker,
            [{"keypoints": pixel_points()}],
            [{"keypoints": pixel_points(offset=25.0)}],
        )
        tracker = self.make_tracker(detector)

        tracker.update(blank_frame())
        face = tracker.update(blank_frame())

        assert face.bounding_box == BoundingBox.from_landmarks(face.landmarks)

    def test_display_box_follows_slowly(self, mocker):
        detector = self.make_detector(
            mocker,
            [{"keypoints": pixel_points()}],
            [{"keypoints": pixel_points(offset=40.0)}],
        )
        tracker = self.make_tracker(detector)

        first = tracker.update(blank_frame()).display_box
        face = tracker.update(blank_frame())

        expected_x = first.x + (face.bounding_box.x - first.x) * 0.3
        assert face.display_box.x == pytest.approx(expected_x)
        assert face.display_box.x < face.bounding_box.x

    def test_detector_exception_falls_back_for_one_frame(self, mocker):
        detector = self.make_detector(
            mocker,
            DetectionFailedError("boom"),
            [{"keypoints": pixel_points()}],
        )
        tracker = self.make_tracker(detector)

        assert tracker.update(blank_frame()).mode is TrackingMode.FALLBACK
        assert tracker.update(blank_frame()).mode is TrackingMode.DETECTED
        assert tracker.detector_disabled is False

    def test_arbitrary_detector_error_never_escapes(self, mocker):
        detector = self.make_detector(mocker, RuntimeError("backend crashed"))
        tracker = self.make_tracker(detector)

        face = tracker.update(blank_frame())

        assert face.mode is TrackingMode.FALLBACK

    def test_unavailable_detector_disabled_for_session(self, mocker):
        detector = self.make_detector(mocker, DetectorUnavailableError("no model"))
        tracker = self.make_tracker(detector)

        tracker.update(blank_frame())
        tracker.update(blank_frame())
        tracker.update(blank_frame())

        assert tracker.detector_disabled is True
        assert detector.detect.call_count == 1

    def test_malformed_record_falls_back(self, mocker):
        detector = self.make_detector(mocker, [{"score": 0.99}])
        tracker = self.make_tracker(detector)

        assert tracker.update(blank_frame()).mode is TrackingMode.FALLBACK

    def test_too_few_keypoints_fall_back(self, mocker):
        detector = self.make_detector(mocker, [{"keypoints": pixel_points(count=3)}])
        tracker = self.make_tracker(detector)

        assert tracker.update(blank_frame()).mode is TrackingMode.FALLBACK

    def test_layout_change_reinitializes(self, mocker):
        """Switching from 6 points to a full mesh starts over without blending"""
        mesh = make_mesh()
        detector = self.make_detector(mocker, [], [{"keypoints": mesh}])
        tracker = self.make_tracker(detector)

        assert tracker.update(blank_frame()).landmarks.shape == (6, 3)
        face = tracker.update(blank_frame())

        assert face.landmarks.shape == (468, 3)
        assert face.has_full_mesh
        np.testing.assert_allclose(face.landmarks, mesh)

    def test_reset_discards_state(self):
        tracker = self.make_tracker()
        tracker.update(blank_frame())

        tracker.reset()

        assert tracker.tracked_face is None
        assert tracker.frames_tracked == 0

    def test_close_releases_detector(self, mocker):
        detector = mocker.MagicMock(spec=FaceDetector)
        tracker = self.make_tracker(detector)

        tracker.close()

        detector.close.assert_called_once()

    def test_updated_at_uses_clock(self):
        tracker = self.make_tracker()
        self.now = 250.0

        assert tracker.update(blank_frame()).updated_at == 250.0


class SequenceDetector(FaceDetector):
    """Replays a fixed list of face record lists"""

    def __init__(self, results):
        self.results = list(results)

    def detect(self, frame):
        return self.results.pop(0)

    def is_available(self):
        return True

    def get_name(self):
        return "sequence"


class TestSmoothingProperties:

    @given(
        delta_x=st.floats(min_value=-50.0, max_value=50.0, allow_nan=False),
        delta_y=st.floats(min_value=-50.0, max_value=50.0, allow_nan=False),
        alpha=st.floats(min_value=0.05, max_value=1.0, allow_nan=False)
    )
    @settings(max_examples=100)
    def test_step_change_moves_by_alpha_times_delta(self, delta_x, delta_y, alpha):
        start = [(200.0 + 10.0 * i, 200.0 + 5.0 * i, 0.0) for i in range(6)]
        moved = [(x + delta_x, y + delta_y, z) for x, y, z in start]
        tracker = LandmarkTracker(
            SequenceDetector([[{"keypoints": start}], [{"keypoints": moved}]]),
            smoothing_factor=alpha,
            clock=lambda: 0.0,
        )

        before = tracker.update(blank_frame()).landmarks.copy()
        after = tracker.update(blank_frame()).landmarks

        np.testing.assert_allclose(after[:, 0] - before[:, 0], delta_x * alpha, atol=1e-9)
        np.testing.assert_allclose(after[:, 1] - before[:, 1], delta_y * alpha, atol=1e-9)
