import logging
import threading
from queue import Empty, Queue
from typing import Callable, Iterable, Optional

import pyttsx3

from .common import SpeechOptions
from .timers import TimerLoop

logger = logging.getLogger(__name__)

ACCESSIBLE_VOICE_MARKERS = ("enhanced", "premium", "accessibility")


class SpeechEngine:
    """
    The speech primitive the scheduler talks to. Implementations report
    progress through the callbacks and must deliver them on the loop thread.
    """

    def speak(
        self,
        text: str,
        options: SpeechOptions,
        on_start: Optional[Callable[[], None]] = None,
        on_end: Optional[Callable[[], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        raise NotImplementedError

    def cancel(self) -> None:
        raise NotImplementedError

    def shutdown(self) -> None:
        self.cancel()


def _voice_languages(voice) -> list:
    languages = []
    for lang in getattr(voice, "languages", None) or []:
        if isinstance(lang, bytes):
            # espeak prefixes the language code with a priority byte
            lang = lang[1:].decode("ascii", errors="ignore")
        languages.append(str(lang).lower())
    return languages


def is_english_voice(voice) -> bool:
    if any(lang.startswith("en") for lang in _voice_languages(voice)):
        return True
    voice_id = str(getattr(voice, "id", "")).lower()
    return "en-" in voice_id or "en_" in voice_id or voice_id.endswith("english")


def find_accessible_voice(voices: Iterable):
    """Pick an accessibility-tuned voice, else an English one, else any."""
    voices = list(voices or [])
    for voice in voices:
        name = str(getattr(voice, "name", "")).lower()
        if any(marker in name for marker in ACCESSIBLE_VOICE_MARKERS):
            return voice
    for voice in voices:
        if is_english_voice(voice):
            return voice
    return voices[0] if voices else None


class Pyttsx3Speaker(SpeechEngine):
    BASE_RATE_WPM = 175

    def __init__(self, loop: TimerLoop, engine=None, voice_id: Optional[str] = None):
        self.loop = loop
        self.engine = engine if engine is not None else pyttsx3.init()
        self.voice_id = voice_id or self._default_voice_id()
        self.queue: Queue = Queue()
        self._generation = 0
        self._lock = threading.Lock()
        self.thread = threading.Thread(target=self._process_queue, daemon=True)
        self.thread.start()

    def _default_voice_id(self) -> Optional[str]:
        try:
            voice = find_accessible_voice(self.engine.getProperty("voices"))
        except Exception as exc:  # driver-specific failures
            logger.warning("Could not list voices: %s", exc)
            return None
        return getattr(voice, "id", None)

    def speak(self, text, options, on_start=None, on_end=None, on_error=None):
        with self._lock:
            generation = self._generation
        self.queue.put((generation, text, options, on_start, on_end, on_error))

    def cancel(self):
        with self._lock:
            self._generation += 1
        while True:
            try:
                self.queue.get_nowait()
                self.queue.task_done()
            except Empty:
                break
        try:
            self.engine.stop()
        except Exception as exc:
            logger.debug("Engine stop failed: %s", exc)

    def shutdown(self):
        self.cancel()
        self.queue.put(None)
        self.thread.join(timeout=2.0)

    def _apply_options(self, options: SpeechOptions) -> None:
        self.engine.setProperty("rate", int(self.BASE_RATE_WPM * options.rate))
        self.engine.setProperty("volume", max(0.0, min(1.0, options.volume)))
        voice = options.voice or self.voice_id
        if voice:
            self.engine.setProperty("voice", voice)
        # pyttsx3 exposes no portable pitch control; options.pitch is ignored

    def _notify(self, callback, *args) -> None:
        if callback is not None:
            self.loop.call_soon(callback, *args)

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _process_queue(self):
        while True:
            item = self.queue.get()
            if item is None:
                self.queue.task_done()
                break
            generation, text, options, on_start, on_end, on_error = item
            try:
                if not self._is_current(generation):
                    continue
                self._apply_options(options)
                self._notify(on_start)
                self.engine.say(text)
                self.engine.runAndWait()
            except Exception as exc:  # pyttsx3 drivers raise assorted errors
                self._notify(on_error, exc)
            else:
                self._notify(on_end)
            finally:
                self.queue.task_done()
