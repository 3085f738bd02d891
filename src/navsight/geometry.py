import math
from typing import Iterable, List, Optional, Tuple

from .common import BoundingBox, DetectedObject, Position

MIN_CONFIDENCE = 0.60

# Multipliers on the frame centre; the "ahead" cone is [0.7c, 1.3c].
LEFT_EDGE_FACTOR = 0.7
RIGHT_EDGE_FACTOR = 1.3

# Monocular heuristic: distance ~ 0.8 / sqrt(area fraction).
DISTANCE_SCALE = 0.8


def horizontal_position(box: BoundingBox, frame_width: float) -> Position:
    center = frame_width / 2
    if box.center_x < center * LEFT_EDGE_FACTOR:
        return Position.LEFT
    if box.center_x > center * RIGHT_EDGE_FACTOR:
        return Position.RIGHT
    return Position.AHEAD


def estimate_distance(box: BoundingBox, frame_width: float, frame_height: float) -> Optional[float]:
    """
    Approximate distance in meters from the share of the frame the box covers.
    Returns None when no defensible distance exists (zero/negative area or an
    empty frame).
    """
    if box.w <= 0 or box.h <= 0 or frame_width <= 0 or frame_height <= 0:
        return None
    size_ratio = box.area / (frame_width * frame_height)
    return DISTANCE_SCALE / math.sqrt(size_ratio)


def classify_box(box: BoundingBox, frame_width: float, frame_height: float) -> Optional[Tuple[Position, float]]:
    distance = estimate_distance(box, frame_width, frame_height)
    if distance is None:
        return None
    return horizontal_position(box, frame_width), distance


def identity_key(label: str, position: Position, distance: float) -> str:
    # Crossing an integer-meter boundary yields a new identity on purpose.
    return f"{label}-{Position(position).value}-{math.floor(distance)}"


def _as_box(raw_box) -> Optional[BoundingBox]:
    if isinstance(raw_box, BoundingBox):
        return raw_box
    try:
        x, y, w, h = raw_box
        return BoundingBox(float(x), float(y), float(w), float(h))
    except (TypeError, ValueError):
        return None


def classify_detections(
    raw_detections: Optional[Iterable[dict]],
    frame_width: float,
    frame_height: float,
    observed_at: float,
    min_confidence: float = MIN_CONFIDENCE,
) -> List[DetectedObject]:
    """
    Turn raw detector output ({"label", "confidence", "box": (x, y, w, h)})
    into classified objects. Low-confidence and degenerate boxes are dropped.
    """
    objects: List[DetectedObject] = []
    if not raw_detections:
        return objects

    for det in raw_detections:
        confidence = float(det.get("confidence", 0.0))
        if confidence <= min_confidence:
            continue
        label = det.get("label")
        box = _as_box(det.get("box"))
        if not label or box is None:
            continue
        classified = classify_box(box, frame_width, frame_height)
        if classified is None:
            continue
        position, distance = classified
        objects.append(DetectedObject(
            label=label,
            confidence=confidence,
            box=box,
            position=position,
            distance=distance,
            identity_key=identity_key(label, position, distance),
            observed_at=observed_at,
        ))
    return objects
