from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .common import DetectedObject, Position


@dataclass
class TrackedObject:
    first_seen: float
    last_seen: float
    label: str
    position: Position
    distance: float
    announce_count: int = 0

    @property
    def persisted_for(self) -> float:
        return self.last_seen - self.first_seen

    def is_notable_departure(self, close_distance: float = 3.0, min_persistence: float = 3.0) -> bool:
        """Close objects that stayed a while are worth a "no longer detected"."""
        return self.distance < close_distance and self.persisted_for >= min_persistence


@dataclass
class TrackerUpdate:
    continuing: List[DetectedObject] = field(default_factory=list)
    newly_appeared: List[DetectedObject] = field(default_factory=list)
    just_vanished: List[TrackedObject] = field(default_factory=list)


class DetectionMemory:
    def __init__(self, vanish_grace=2.0, stale_after=30.0, interesting_distance=8.0):
        """
        vanish_grace: seconds an absent object is kept before it counts as vanished
        stale_after: hard ceiling in seconds after which an entry is dropped silently
        interesting_distance: meters below which a new object is reported as new
        """
        self.vanish_grace = vanish_grace
        self.stale_after = stale_after
        self.interesting_distance = interesting_distance
        self.history: Dict[str, TrackedObject] = {}

    def update(self, batch: Optional[Iterable[DetectedObject]], now: float) -> TrackerUpdate:
        result = TrackerUpdate()
        if batch is None:
            return result

        current_keys = set()
        for obj in batch:
            key = obj.identity_key
            if key in current_keys:
                # Same bucket twice in one frame: keep the latest reading only
                self._refresh(self.history[key], obj, now)
                continue
            current_keys.add(key)

            existing = self.history.get(key)
            if existing is None:
                self.history[key] = TrackedObject(
                    first_seen=now,
                    last_seen=now,
                    label=obj.label,
                    position=obj.position,
                    distance=obj.distance,
                )
                if obj.distance < self.interesting_distance:
                    result.newly_appeared.append(obj)
            else:
                self._refresh(existing, obj, now)
                result.continuing.append(obj)

        for key in list(self.history):
            if key in current_keys:
                continue
            tracked = self.history[key]
            absent_for = now - tracked.last_seen
            if absent_for > self.stale_after:
                del self.history[key]
            elif absent_for > self.vanish_grace:
                del self.history[key]
                result.just_vanished.append(tracked)

        return result

    @staticmethod
    def _refresh(tracked: TrackedObject, obj: DetectedObject, now: float) -> None:
        tracked.last_seen = now
        tracked.position = obj.position
        tracked.distance = obj.distance

    def mark_announced(self, key: str) -> None:
        tracked = self.history.get(key)
        if tracked is not None:
            tracked.announce_count += 1

    def get(self, key: str) -> Optional[TrackedObject]:
        return self.history.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self.history

    def __len__(self) -> int:
        return len(self.history)

    def clear_memory(self):
        # Manually clear all tracked objects.
        self.history.clear()
