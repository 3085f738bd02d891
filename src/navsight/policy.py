"""Turns tracker output into announcement requests."""
import logging
from typing import Dict, Iterable, List, Optional

from .announcer import AnnouncementScheduler
from .common import DetectedObject, Priority, Verbosity
from .config_loader import NavigationSettings
from .memory import DetectionMemory, TrackedObject, TrackerUpdate
from .timers import TimerLoop

logger = logging.getLogger(__name__)


def distance_priority(distance: float) -> Priority:
    if distance < 1.5:
        return Priority.HIGH
    if distance < 3:
        return Priority.MEDIUM
    return Priority.LOW


def describe_object(obj: DetectedObject) -> str:
    return f"{obj.label} {obj.position.value}, {obj.distance:.1f} meters"


def speak_distance_notification(scheduler: AnnouncementScheduler, obj: DetectedObject) -> bool:
    priority = distance_priority(obj.distance)
    message = describe_object(obj)
    if priority is Priority.HIGH:
        message = f"Warning: {message}"
    return scheduler.speak(message, priority)


def announce_new_object(scheduler: AnnouncementScheduler, obj: DetectedObject) -> bool:
    message = f"New {obj.label} detected {obj.position.value}, {obj.distance:.1f} meters away"
    priority = Priority.MEDIUM if obj.distance < 3 else Priority.LOW
    return scheduler.speak(message, priority)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


class NavigationPolicy:
    NEW_OBJECT_LIMIT = 3
    NEW_OBJECT_SPACING = 1.5
    DESCRIBE_DEBOUNCE = 2.0
    READOUT_START_DELAY = 1.2
    READOUT_SPACING = 1.5
    NOTICE_DISTANCE = 5.0

    def __init__(
        self,
        scheduler: AnnouncementScheduler,
        loop: TimerLoop,
        settings: Optional[NavigationSettings] = None,
        memory: Optional[DetectionMemory] = None,
    ):
        self.scheduler = scheduler
        self.loop = loop
        self.settings = settings if settings is not None else NavigationSettings()
        self.memory = memory if memory is not None else DetectionMemory()

        self.navigating = False
        self.snapshot: List[DetectedObject] = []
        self.last_announced: Dict[str, float] = {}

        self._describe_timer = None
        self._new_object_timers: list = []
        self._readout_timers: list = []

    # ---------------------------------------------------------------------
    #                         Session lifecycle
    # ---------------------------------------------------------------------
    def start_navigation(self) -> None:
        self.navigating = True
        self.memory.clear_memory()
        self.last_announced.clear()
        logger.info("Navigation started")
        self.scheduler.speak("Navigation started. Processing camera feed.")

    def stop_navigation(self, announce: bool = True) -> None:
        self.navigating = False
        self.snapshot = []
        self._cancel_describe()
        self._cancel_timers(self._new_object_timers)
        self._cancel_timers(self._readout_timers)
        self.scheduler.reset()
        logger.info("Navigation stopped")
        if announce:
            self.scheduler.speak("Navigation stopped.")

    def set_hidden(self, hidden: bool) -> None:
        self.scheduler.set_hidden(hidden)

    # ---------------------------------------------------------------------
    #                         Per-tick processing
    # ---------------------------------------------------------------------
    def process_tick(self, objects: Optional[Iterable[DetectedObject]], now: Optional[float] = None) -> TrackerUpdate:
        if not self.navigating or objects is None:
            return TrackerUpdate()
        now = self.loop.time() if now is None else now

        self.snapshot = list(objects)
        update = self.memory.update(self.snapshot, now)
        self._announce_departures(update.just_vanished)

        if self.settings.announce_all_mode:
            if update.newly_appeared:
                self._cancel_describe()
                self.announce_new_objects(update.newly_appeared)
            elif self.snapshot:
                self._arm_describe()
            else:
                self._cancel_describe()
        else:
            self.report_closest_obstacle(now)
        return update

    def _announce_departures(self, vanished: List[TrackedObject]) -> None:
        if not self.settings.speech_enabled or self.settings.verbosity is Verbosity.LOW:
            return
        for tracked in vanished:
            if tracked.is_notable_departure():
                self.scheduler.speak(f"{tracked.label} no longer detected", Priority.LOW)

    # ---------------------------------------------------------------------
    #                         Strategy A: announce all
    # ---------------------------------------------------------------------
    def announce_new_objects(self, new_objects: List[DetectedObject]) -> None:
        if not self.settings.speech_enabled or not new_objects:
            return
        now = self.loop.time()
        self._new_object_timers[:] = [handle for handle in self._new_object_timers if handle.time > now]

        ordered = sorted(new_objects, key=lambda obj: obj.distance)
        to_announce = ordered[:self.NEW_OBJECT_LIMIT]
        remaining = len(ordered) - len(to_announce)

        for index, obj in enumerate(to_announce):
            is_last = index == len(to_announce) - 1
            summary = remaining if is_last else 0
            if index == 0:
                self._announce_new(obj, summary)
            else:
                self._new_object_timers.append(self.loop.call_later(
                    index * self.NEW_OBJECT_SPACING, self._announce_new, obj, summary))

    def _announce_new(self, obj: DetectedObject, remaining: int) -> None:
        if announce_new_object(self.scheduler, obj):
            self.memory.mark_announced(obj.identity_key)
        if remaining:
            self.scheduler.speak(f"And {_plural(remaining, 'more new object')}", Priority.LOW)

    def _arm_describe(self) -> None:
        self._cancel_describe()
        self._describe_timer = self.loop.call_later(self.DESCRIBE_DEBOUNCE, self._describe_from_debounce)

    def _cancel_describe(self) -> None:
        self.loop.cancel(self._describe_timer)
        self._describe_timer = None

    def _describe_from_debounce(self) -> None:
        self._describe_timer = None
        self.announce_all_objects(self.snapshot, self.loop.time())

    def announce_all_objects(self, objects: List[DetectedObject], now: float) -> None:
        if not self.settings.speech_enabled or not objects:
            return
        self._cancel_timers(self._readout_timers)

        ordered = sorted(objects, key=lambda obj: obj.distance)
        count = self.settings.verbosity.describe_limit(len(ordered))

        self.scheduler.speak(f"{_plural(len(ordered), 'object')} detected.", Priority.MEDIUM)

        for index, obj in enumerate(ordered[:count]):
            self.last_announced[obj.identity_key] = now
            delay = self.READOUT_START_DELAY + index * self.READOUT_SPACING
            self._readout_timers.append(self.loop.call_later(delay, self._read_out, obj))

        remaining = len(ordered) - count
        if remaining > 0:
            delay = self.READOUT_START_DELAY + count * self.READOUT_SPACING
            self._readout_timers.append(self.loop.call_later(
                delay, self.scheduler.speak,
                f"And {_plural(remaining, 'more object')} further away", Priority.LOW))

    def _read_out(self, obj: DetectedObject) -> None:
        if self.scheduler.speak(describe_object(obj), distance_priority(obj.distance)):
            self.memory.mark_announced(obj.identity_key)

    def describe_surroundings(self) -> None:
        """Manual trigger: describe the latest snapshot right now."""
        self._cancel_describe()
        if not self.snapshot:
            self.scheduler.speak("No objects detected in view")
            return
        self.announce_all_objects(self.snapshot, self.loop.time())

    # ---------------------------------------------------------------------
    #                         Strategy B: closest only
    # ---------------------------------------------------------------------
    def _repeat_interval(self, distance: float) -> Optional[float]:
        high = self.settings.verbosity is Verbosity.HIGH
        if distance < 1.5:
            return 2.0 if high else 3.0
        if distance < 3:
            return 4.0 if high else 6.0
        if self.settings.verbosity is Verbosity.LOW:
            return None
        return 10.0

    def report_closest_obstacle(self, now: float) -> None:
        if not self.settings.speech_enabled or not self.snapshot:
            return
        closest = min(self.snapshot, key=lambda obj: obj.distance)
        if closest.distance >= self.NOTICE_DISTANCE:
            return

        interval = self._repeat_interval(closest.distance)
        if interval is None:
            return
        last = self.last_announced.get(closest.identity_key)
        if last is not None and now - last <= interval:
            return

        if speak_distance_notification(self.scheduler, closest):
            self.memory.mark_announced(closest.identity_key)
        self.last_announced[closest.identity_key] = now

    # ---------------------------------------------------------------------
    #                         Live settings
    # ---------------------------------------------------------------------
    def toggle_speech(self) -> bool:
        self.settings.speech_enabled = not self.settings.speech_enabled
        self.scheduler.speak("Speech enabled" if self.settings.speech_enabled else "Speech disabled")
        return self.settings.speech_enabled

    def cycle_verbosity(self) -> Verbosity:
        self.settings.verbosity = self.settings.verbosity.next()
        self.scheduler.speak(f"Verbosity level set to {self.settings.verbosity.value}")
        return self.settings.verbosity

    def toggle_announce_all(self) -> bool:
        self.settings.announce_all_mode = not self.settings.announce_all_mode
        self._cancel_describe()
        if self.settings.announce_all_mode:
            self.scheduler.speak("Switched to announce all objects mode")
        else:
            self.scheduler.speak("Switched to closest object only mode")
        logger.info("Announce-all mode: %s", self.settings.announce_all_mode)
        return self.settings.announce_all_mode

    def _cancel_timers(self, timers: list) -> None:
        for handle in timers:
            self.loop.cancel(handle)
        timers.clear()
