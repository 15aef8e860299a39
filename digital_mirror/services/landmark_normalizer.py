"""
Landmark normalizer: converts raw detector face records into canonical
landmark frames in video pixel space.
"""
import logging
import math
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, List, Tuple

import numpy as np

from ..exceptions import MalformedFaceRecordError
from ..models.data_models import BASIC_LANDMARK_COUNT, empty_landmark_frame

logger = logging.getLogger(__name__)


class FaceRecordShape(Enum):
    """The closed set of face record layouts the normalizer accepts"""
    KEYPOINTS = "keypoints"
    BOUNDING_BOX = "bounding_box"


# Fields that may hold per-point keypoints, in order of preference
KEYPOINT_FIELDS = ("keypoints", "scaledMesh", "landmarks", "mesh")

# Normalized detectors report points of a partly off-frame face slightly outside [0, 1]
NORMALIZED_MARGIN = 0.25

# Basic landmark layout relative to the face box: (dx, dy) as fractions of width/height
BASIC_LAYOUT = (
    (-0.18, -0.12),  # left eye
    (0.18, -0.12),   # right eye
    (0.0, 0.05),     # nose
    (-0.14, 0.22),   # left mouth corner
    (0.14, 0.22),    # right mouth corner
    (0.0, 0.45),     # chin
)


def basic_landmarks_from_box(
    center_x: float,
    center_y: float,
    width: float,
    height: float
) -> np.ndarray:
    """
    Derive the 6-point basic landmark set from a face box.

    The result is in the same coordinate space as the box.
    """
    landmarks = np.zeros((BASIC_LANDMARK_COUNT, 3), dtype=np.float64)
    for i, (dx, dy) in enumerate(BASIC_LAYOUT):
        landmarks[i, 0] = center_x + dx * width
        landmarks[i, 1] = center_y + dy * height
    return landmarks


def _is_normalized(x: float, y: float) -> bool:
    low, high = -NORMALIZED_MARGIN, 1.0 + NORMALIZED_MARGIN
    return low <= x <= high and low <= y <= high


def _finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


def _parse_point(point: Any) -> Tuple[float, float, float]:
    """Read one keypoint from {x, y, z?}, (x, y, z?) or an object with x/y/z attributes"""
    try:
        if isinstance(point, Mapping):
            x, y, z = point["x"], point["y"], point.get("z", 0.0)
        elif isinstance(point, Sequence) and not isinstance(point, (str, bytes)):
            if len(point) not in (2, 3):
                raise MalformedFaceRecordError(f"Keypoint has {len(point)} components")
            x, y = point[0], point[1]
            z = point[2] if len(point) == 3 else 0.0
        elif isinstance(point, np.ndarray) and point.shape in ((2,), (3,)):
            x, y = point[0], point[1]
            z = point[2] if point.shape == (3,) else 0.0
        elif hasattr(point, "x") and hasattr(point, "y"):
            x, y, z = point.x, point.y, getattr(point, "z", 0.0)
        else:
            raise MalformedFaceRecordError(f"Unrecognized keypoint type {type(point).__name__}")
        x, y, z = float(x), float(y), float(z if z is not None else 0.0)
    except (KeyError, TypeError, ValueError) as e:
        raise MalformedFaceRecordError(f"Unreadable keypoint: {e}") from e

    if not _finite(x, y, z):
        raise MalformedFaceRecordError("Keypoint contains non-finite coordinates")
    return x, y, z


def _parse_box(record: Mapping) -> Tuple[float, float, float, float]:
    """Return (center_x, center_y, width, height) from a box summary"""
    try:
        if "box" in record:
            box = record["box"]
            x_min, y_min = float(box["xMin"]), float(box["yMin"])
            if "width" in box and "height" in box:
                width, height = float(box["width"]), float(box["height"])
            else:
                width = float(box["xMax"]) - x_min
                height = float(box["yMax"]) - y_min
        else:
            box = record["boundingBox"]
            x_min, y_min = float(box["topLeft"][0]), float(box["topLeft"][1])
            width = float(box["bottomRight"][0]) - x_min
            height = float(box["bottomRight"][1]) - y_min
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise MalformedFaceRecordError(f"Unreadable bounding box: {e}") from e

    if not _finite(x_min, y_min, width, height) or width <= 0 or height <= 0:
        raise MalformedFaceRecordError("Bounding box has no usable extent")
    return x_min + width / 2.0, y_min + height / 2.0, width, height


def _keypoints_of(record: Mapping):
    """First non-empty keypoint field of the record, or None"""
    for field_name in KEYPOINT_FIELDS:
        points = record.get(field_name)
        if points is None:
            continue
        try:
            if len(points) > 0:
                return points
        except TypeError as e:
            raise MalformedFaceRecordError(f"Field '{field_name}' is not a point list") from e
    return None


def classify_face_record(record: Any) -> FaceRecordShape:
    """
    Tag a raw face record with the shape it matches.

    Raises:
        MalformedFaceRecordError: if the record matches no accepted shape
    """
    if not isinstance(record, Mapping):
        raise MalformedFaceRecordError(f"Face record must be a mapping, got {type(record).__name__}")
    if _keypoints_of(record) is not None:
        return FaceRecordShape.KEYPOINTS
    if "box" in record or "boundingBox" in record:
        return FaceRecordShape.BOUNDING_BOX
    raise MalformedFaceRecordError("Face record has neither keypoints nor a bounding box")


def _keypoints_to_frame(points: Sequence, frame_width: int, frame_height: int) -> np.ndarray:
    parsed: List[Tuple[float, float, float]] = []
    for point in points:
        x, y, z = _parse_point(point)
        if _is_normalized(x, y):
            x, y = x * frame_width, y * frame_height
        parsed.append((x, y, z))
    return np.array(parsed, dtype=np.float64)


def _box_to_frame(record: Mapping, frame_width: int, frame_height: int) -> np.ndarray:
    center_x, center_y, width, height = _parse_box(record)
    corner_x, corner_y = center_x - width / 2.0, center_y - height / 2.0
    if _is_normalized(corner_x, corner_y) and width <= 1.0 and height <= 1.0:
        center_x, width = center_x * frame_width, width * frame_width
        center_y, height = center_y * frame_height, height * frame_height
    return basic_landmarks_from_box(center_x, center_y, width, height)


def normalize_face_record(record: Any, frame_width: int, frame_height: int) -> np.ndarray:
    """
    Convert one detector face record into an (N, 3) landmark frame in pixel space.

    Keypoints are preferred; a bounding-box-only record yields the basic
    6-point set. Unusable records yield an empty frame. Pure and
    deterministic for identical input.

    Args:
        record: Raw face record from the detector
        frame_width: Current video frame width in pixels
        frame_height: Current video frame height in pixels

    Returns:
        np.ndarray: Landmark frame of shape (N, 3), N == 0 when unusable
    """
    try:
        shape = classify_face_record(record)
        if shape is FaceRecordShape.KEYPOINTS:
            return _keypoints_to_frame(_keypoints_of(record), frame_width, frame_height)
        return _box_to_frame(record, frame_width, frame_height)
    except MalformedFaceRecordError as e:
        logger.debug(f"Discarding malformed face record: {e}")
        return empty_landmark_frame()
