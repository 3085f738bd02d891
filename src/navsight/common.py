"""Objects that are shared across multiple modules."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional


class Position(str, Enum):
    LEFT = "left"
    AHEAD = "ahead"
    RIGHT = "right"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    NORMAL = "normal"
    LOW = "low"


class Verbosity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "Verbosity":
        try:
            return cls(value)
        except ValueError:
            return cls.MEDIUM

    def next(self) -> "Verbosity":
        levels: List[Verbosity] = list(Verbosity)
        return levels[(levels.index(self) + 1) % len(levels)]

    def describe_limit(self, available: int) -> int:
        """How many objects a full-scene description reads out."""
        if self is Verbosity.LOW:
            return min(2, available)
        if self is Verbosity.MEDIUM:
            return min(4, available)
        return available


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in source-frame pixels."""
    x: float
    y: float
    w: float
    h: float

    @property
    def center_x(self) -> float:
        return self.x + self.w / 2

    @property
    def area(self) -> float:
        return self.w * self.h


@dataclass(frozen=True)
class DetectedObject:
    """
    A single classified detection for one tick.
    Built by the geometry classifier and never mutated afterwards.
    """
    label: str
    confidence: float
    box: BoundingBox
    position: Position
    distance: float
    identity_key: str
    observed_at: float


@dataclass(frozen=True)
class SpeechOptions:
    rate: float = 1.1       # multiplier on the engine's base rate
    pitch: float = 1.0
    volume: float = 1.0
    voice: Optional[str] = None


@dataclass
class AnnouncementRequest:
    text: str
    priority: Priority = Priority.NORMAL
    on_start: Optional[Callable[[], None]] = None
    on_end: Optional[Callable[[], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    options: Optional[SpeechOptions] = field(default=None, repr=False)
