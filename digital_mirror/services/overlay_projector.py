"""
Overlay projector: maps tracked landmarks into mirrored screen-space draw
primitives. Drawing itself is left to the presentation layer.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import cv2
import numpy as np

from ..models.data_models import (
    BASIC_LANDMARK_COUNT,
    MESH_CHIN,
    MESH_LEFT_EYE_OUTER,
    MESH_LEFT_MOUTH,
    MESH_NOSE_TIP,
    MESH_RIGHT_EYE_OUTER,
    MESH_RIGHT_MOUTH,
    BoundingBox,
    SubMetrics,
    TrackedFace,
)

KEY_POINT_LABELS = ("left_eye", "right_eye", "nose", "left_mouth", "right_mouth", "chin")
MESH_KEY_POINTS = (
    MESH_LEFT_EYE_OUTER,
    MESH_RIGHT_EYE_OUTER,
    MESH_NOSE_TIP,
    MESH_LEFT_MOUTH,
    MESH_RIGHT_MOUTH,
    MESH_CHIN,
)


@dataclass(frozen=True)
class HullPolygon:
    points: Tuple[Tuple[float, float], ...]


@dataclass(frozen=True)
class KeyPointMarker:
    x: float
    y: float
    label: str


@dataclass(frozen=True)
class BoxOutline:
    """Axis-aligned box given by its top-left corner and size, in screen space"""
    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class MetricBar:
    label: str
    value: float
    fill: float


@dataclass
class OverlayFrame:
    hull: Optional[HullPolygon] = None
    markers: List[KeyPointMarker] = field(default_factory=list)
    box: Optional[BoxOutline] = None
    bars: List[MetricBar] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.hull is None and not self.markers and self.box is None and not self.bars


class OverlayProjector:
    """
    Projects tracker state from video pixels onto a display of a given size.

    With `mirror` set, x coordinates are flipped so the overlay lines up with
    a selfie-style mirrored video.
    """

    def __init__(self, display_width: int, display_height: int, mirror: bool = True):
        self.display_width = display_width
        self.display_height = display_height
        self.mirror = mirror

    def _scale(self, frame_size: Tuple[int, int]) -> Tuple[float, float]:
        width, height = frame_size
        scale_x = self.display_width / width if width > 0 else 1.0
        scale_y = self.display_height / height if height > 0 else 1.0
        return scale_x, scale_y

    def project_points(self, landmarks: np.ndarray, frame_size: Tuple[int, int]) -> np.ndarray:
        """(N, 2) screen coordinates for an (N, 3) landmark frame"""
        scale_x, scale_y = self._scale(frame_size)
        points = np.empty((landmarks.shape[0], 2), dtype=np.float64)
        points[:, 0] = landmarks[:, 0] * scale_x
        points[:, 1] = landmarks[:, 1] * scale_y
        if self.mirror:
            points[:, 0] = self.display_width - points[:, 0]
        return points

    def project_box(self, box: BoundingBox, frame_size: Tuple[int, int]) -> BoxOutline:
        scale_x, scale_y = self._scale(frame_size)
        center_x = box.x * scale_x
        if self.mirror:
            center_x = self.display_width - center_x
        width = box.width * scale_x
        height = box.height * scale_y
        return BoxOutline(
            left=center_x - width / 2.0,
            top=box.y * scale_y - height / 2.0,
            width=width,
            height=height,
        )

    def hull(self, points: np.ndarray) -> Optional[HullPolygon]:
        if points.shape[0] < 3:
            return None
        hull = cv2.convexHull(points.astype(np.float32))
        return HullPolygon(points=tuple((float(x), float(y)) for x, y in hull.reshape(-1, 2)))

    def markers(self, points: np.ndarray) -> List[KeyPointMarker]:
        if points.shape[0] == BASIC_LANDMARK_COUNT:
            indices = range(BASIC_LANDMARK_COUNT)
        elif points.shape[0] > max(MESH_KEY_POINTS):
            indices = MESH_KEY_POINTS
        else:
            return []
        return [
            KeyPointMarker(x=float(points[i, 0]), y=float(points[i, 1]), label=label)
            for i, label in zip(indices, KEY_POINT_LABELS)
        ]

    def metric_bars(self, metrics: SubMetrics) -> List[MetricBar]:
        bars = []
        for label, value in metrics.as_dict().items():
            fill = min(max(value, 0.0), 100.0) / 100.0
            bars.append(MetricBar(label=label, value=value, fill=fill))
        return bars

    def project(self, face: Optional[TrackedFace], metrics: Optional[SubMetrics] = None) -> OverlayFrame:
        """
        Build the draw primitives for one display frame.

        Args:
            face: Current tracker state, or None if nothing is tracked yet
            metrics: Sub-metrics of the latest attempt, shown as bars

        Returns:
            OverlayFrame: Empty when there is no tracked face
        """
        overlay = OverlayFrame()
        if face is None or face.landmarks.shape[0] == 0:
            return overlay

        points = self.project_points(face.landmarks, face.frame_size)
        overlay.hull = self.hull(points)
        overlay.markers = self.markers(points)
        overlay.box = self.project_box(face.display_box, face.frame_size)
        if metrics is not None:
            overlay.bars = self.metric_bars(metrics)
        return overlay
