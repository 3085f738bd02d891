"""
Announcement scheduler: the only gateway to the speech engine.

Requests are queued by priority:

* ``high``   interrupts whatever is being said and jumps the queue
* ``medium`` goes right behind the queued ``high`` requests
* ``normal`` goes to the tail (ahead of disposable ``low`` requests)
* ``low``    is only accepted while the queue is short

Identical text spoken less than two seconds ago is dropped, whatever its
priority. A watchdog recovers from an engine that never reports completion.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .common import AnnouncementRequest, Priority, SpeechOptions
from .timers import TimerLoop
from .tts import SpeechEngine

logger = logging.getLogger(__name__)

_ABBREVIATIONS = (
    (re.compile(r"\bSt\."), "Street"),
    (re.compile(r"\bAve\."), "Avenue"),
    (re.compile(r"\bRd\."), "Road"),
)
_WARNING = re.compile(r"\bwarning\b:?\s*", re.IGNORECASE)
_TIGHT_PUNCTUATION = re.compile(r"([,.!?])(?=[A-Za-z])")


def clean_text_for_speech(text) -> str:
    if not text:
        return ""
    cleaned = re.sub(r"\s+", " ", str(text).strip())
    for pattern, replacement in _ABBREVIATIONS:
        cleaned = pattern.sub(replacement, cleaned)
    cleaned = _TIGHT_PUNCTUATION.sub(r"\1 ", cleaned)
    cleaned = _WARNING.sub("Warning: ", cleaned)
    return cleaned.strip()


@dataclass
class SchedulerState:
    queue: List[AnnouncementRequest] = field(default_factory=list)
    active: Optional[AnnouncementRequest] = None
    last_spoken_text: str = ""
    last_spoken_at: Optional[float] = None

    @property
    def is_speaking(self) -> bool:
        return self.active is not None


class AnnouncementScheduler:
    DRAIN_INTERVAL = 0.25
    INTER_UTTERANCE_PAUSE = 0.15
    DEDUP_WINDOW = 2.0
    LOW_PRIORITY_QUEUE_LIMIT = 2
    WATCHDOG_TIMEOUT = 10.0
    WATCHDOG_RESUME_DELAY = 0.5

    def __init__(self, engine: SpeechEngine, loop: TimerLoop, options: Optional[SpeechOptions] = None):
        self.engine = engine
        self.loop = loop
        self.options = options if options is not None else SpeechOptions()
        self.state = SchedulerState()

        self._utterance_id = 0
        self._drain_timer = None
        self._watchdog = None
        self._dispatch_pending = None
        # Earliest time a non-high request may start after the last completion
        self._resume_at: Optional[float] = None

    # ------------------------------------------------------------------ #
    #   Lifecycle
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        if self._drain_timer is None:
            self._drain_timer = self.loop.call_every(self.DRAIN_INTERVAL, self.process_queue)

    def shutdown(self) -> None:
        self.reset()
        self.loop.cancel(self._drain_timer)
        self._drain_timer = None

    def reset(self) -> None:
        """Cancel the active utterance and drop everything queued."""
        self.state.queue.clear()
        if self.state.active is not None:
            self._cancel_active()
        self.loop.cancel(self._dispatch_pending)
        self._dispatch_pending = None

    stop_speaking = reset

    def set_hidden(self, hidden: bool) -> None:
        if hidden:
            logger.info("Host hidden, clearing speech queue")
            self.reset()

    @property
    def is_speaking(self) -> bool:
        return self.state.is_speaking

    # ------------------------------------------------------------------ #
    #   Enqueue
    # ------------------------------------------------------------------ #
    def speak(
        self,
        text: str,
        priority=Priority.NORMAL,
        on_start: Optional[Callable[[], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        options: Optional[SpeechOptions] = None,
    ) -> bool:
        request = AnnouncementRequest(
            text=text,
            priority=Priority(priority),
            on_start=on_start,
            on_end=on_end,
            on_error=on_error,
            options=options,
        )
        return self.enqueue(request)

    def enqueue(self, request: AnnouncementRequest) -> bool:
        """Queue a request. Returns False when it was dropped."""
        request.text = clean_text_for_speech(request.text)
        if not request.text:
            return False
        if self._recently_spoken(request.text):
            logger.debug("Dropping repeated announcement: %s", request.text)
            return False

        queue = self.state.queue
        priority = request.priority

        if priority is Priority.HIGH:
            if self.state.active is not None:
                self._cancel_active()
                queue[:] = [item for item in queue if item.priority is Priority.HIGH]
            queue.insert(0, request)
            self.process_queue()
            return True

        if priority is Priority.MEDIUM:
            queue.insert(self._first_index(lambda item: item.priority is not Priority.HIGH), request)
        elif priority is Priority.LOW:
            if len(queue) > self.LOW_PRIORITY_QUEUE_LIMIT:
                logger.debug("Queue busy, dropping low priority: %s", request.text)
                return False
            queue.append(request)
        else:
            queue.insert(self._first_index(lambda item: item.priority is Priority.LOW), request)

        if self.state.active is None and self._dispatch_pending is None:
            self._schedule_dispatch_at(self._earliest_dispatch())
        return True

    def _first_index(self, predicate) -> int:
        for index, item in enumerate(self.state.queue):
            if predicate(item):
                return index
        return len(self.state.queue)

    def _recently_spoken(self, text: str) -> bool:
        last_at = self.state.last_spoken_at
        return (
            last_at is not None
            and text == self.state.last_spoken_text
            and self.loop.time() - last_at < self.DEDUP_WINDOW
        )

    # ------------------------------------------------------------------ #
    #   Dispatch
    # ------------------------------------------------------------------ #
    def _earliest_dispatch(self) -> float:
        now = self.loop.time()
        if self._resume_at is None or self._resume_at < now:
            return now
        return self._resume_at

    def _in_pause(self) -> bool:
        return self._resume_at is not None and self.loop.time() < self._resume_at

    def _schedule_dispatch_at(self, when: float) -> None:
        self.loop.cancel(self._dispatch_pending)
        self._dispatch_pending = self.loop.call_at(when, self._run_scheduled_dispatch)

    def _run_scheduled_dispatch(self) -> None:
        self._dispatch_pending = None
        self.process_queue()

    def process_queue(self) -> None:
        if self.state.active is not None or not self.state.queue:
            return
        if self.state.queue[0].priority is not Priority.HIGH and self._in_pause():
            return
        self._speak_now(self.state.queue.pop(0))

    def _options_for(self, request: AnnouncementRequest) -> SpeechOptions:
        options = request.options or self.options
        if request.priority is Priority.HIGH:
            # Urgent messages are spoken slower and at full volume
            options = SpeechOptions(rate=0.9, pitch=options.pitch, volume=1.0, voice=options.voice)
        return options

    def _speak_now(self, request: AnnouncementRequest) -> None:
        now = self.loop.time()
        self._utterance_id += 1
        utterance_id = self._utterance_id

        self.state.active = request
        self.state.last_spoken_text = request.text
        self.state.last_spoken_at = now
        self._watchdog = self.loop.call_later(self.WATCHDOG_TIMEOUT, self._check_stuck, utterance_id)

        try:
            self.engine.speak(
                request.text,
                self._options_for(request),
                on_start=lambda: self._handle_start(utterance_id),
                on_end=lambda: self._handle_end(utterance_id),
                on_error=lambda error=None: self._handle_error(utterance_id, error),
            )
        except Exception as exc:
            self._handle_error(utterance_id, exc)

    def _is_current(self, utterance_id: int) -> bool:
        return utterance_id == self._utterance_id and self.state.active is not None

    def _handle_start(self, utterance_id: int) -> None:
        if self._is_current(utterance_id):
            self._invoke(self.state.active.on_start)

    def _handle_end(self, utterance_id: int) -> None:
        if not self._is_current(utterance_id):
            return
        request = self._finish()
        self._invoke(request.on_end)
        self._continue_after_pause()

    def _handle_error(self, utterance_id: int, error) -> None:
        if not self._is_current(utterance_id):
            return
        logger.error("Speech synthesis error for %r: %s", self.state.active.text, error)
        request = self._finish()
        self._invoke(request.on_error, error)
        self._continue_after_pause()

    def _finish(self) -> AnnouncementRequest:
        request = self.state.active
        self.state.active = None
        self.loop.cancel(self._watchdog)
        self._watchdog = None
        return request

    def _continue_after_pause(self) -> None:
        self._resume_at = self.loop.time() + self.INTER_UTTERANCE_PAUSE
        if self.state.queue:
            self._schedule_dispatch_at(self._resume_at)

    def _cancel_active(self) -> None:
        self._finish()
        try:
            self.engine.cancel()
        except Exception as exc:
            logger.error("Speech engine cancel failed: %s", exc)

    def _check_stuck(self, utterance_id: int) -> None:
        if not self._is_current(utterance_id):
            return
        logger.warning("Speech appears stuck, resetting...")
        self._cancel_active()
        self._schedule_dispatch_at(self.loop.time() + self.WATCHDOG_RESUME_DELAY)

    @staticmethod
    def _invoke(callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Announcement callback failed")
