import logging
import textwrap
import time
from typing import List, Optional

import cv2
import numpy as np

from .announcer import AnnouncementScheduler
from .camera import CameraStream
from .common import DetectedObject, SpeechOptions
from .config_loader import NavigationSettings, load_config, save_config
from .geometry import classify_detections
from .memory import DetectionMemory
from .policy import NavigationPolicy
from .timers import TimerLoop

logger = logging.getLogger(__name__)

WINDOW_NAME = "NavSight"
SUBTITLE_SECONDS = 3.0
SUBTITLE_LINE_HEIGHT = 25
SUBTITLE_COLOR = (230, 230, 230)
WARNING_COLOR = (0, 215, 255)


def draw_subtitle(frame: np.ndarray, text: str, max_chars: int = 60, margin: int = 10) -> np.ndarray:
    """Caption the bottom of the frame on a dark band. Warnings are drawn in amber."""
    lines = textwrap.wrap(text, max_chars)
    if not lines:
        return frame
    height, width = frame.shape[:2]
    top = max(height - margin - SUBTITLE_LINE_HEIGHT * len(lines), 0)
    cv2.rectangle(frame, (0, top), (width, height), (0, 0, 0), cv2.FILLED)

    color = WARNING_COLOR if text.startswith("Warning:") else SUBTITLE_COLOR
    for i, line in enumerate(lines):
        baseline = top + (i + 1) * SUBTITLE_LINE_HEIGHT - 6
        cv2.putText(frame, line, (margin, baseline), cv2.FONT_HERSHEY_SIMPLEX,
                    0.6, color, 2, cv2.LINE_AA)
    return frame


class NavigationApp:
    def __init__(self, detector, speaker, camera: Optional[CameraStream] = None,
                 config: Optional[dict] = None, loop: Optional[TimerLoop] = None,
                 config_path: Optional[str] = None):
        self.detector = detector
        self.speaker = speaker
        self.config_path = config_path
        self.config = config if config is not None else load_config(config_path)
        self.loop = loop if loop is not None else TimerLoop()
        self.camera = camera if camera is not None else CameraStream.from_config(self.config)

        self.settings = NavigationSettings.from_config(self.config)
        self.scheduler = AnnouncementScheduler(speaker, self.loop, SpeechOptions(
            rate=float(self.config.get("speech_rate", 1.1)),
            pitch=float(self.config.get("speech_pitch", 1.0)),
            volume=float(self.config.get("speech_volume", 1.0)),
        ))
        self.policy = NavigationPolicy(self.scheduler, self.loop, self.settings, DetectionMemory())

        self.process_interval = float(self.config.get("process_interval", 0.5))
        self.last_process_time: Optional[float] = None
        self.detected_objects: List[DetectedObject] = []

    def update_live_config(self, new_config: dict):
        self.config.update(new_config)
        live = NavigationSettings.from_config(self.config)
        # Update in place: the policy holds this same object
        self.settings.speech_enabled = live.speech_enabled
        self.settings.verbosity = live.verbosity
        self.settings.announce_all_mode = live.announce_all_mode
        self.process_interval = float(self.config.get("process_interval", 0.5))
        save_config(self.config, self.config_path)

    def process_frame(self, frame: np.ndarray, now: Optional[float] = None) -> List[DetectedObject]:
        """Detect, classify and feed one frame to the policy."""
        if frame is None or not hasattr(frame, "shape") or frame.shape[0] == 0:
            return []
        now = self.loop.time() if now is None else now
        h, w = frame.shape[:2]

        try:
            raw_detections = self.detector.detect(frame)
        except Exception as exc:  # a bad frame must not stop the loop
            logger.error("Detection failed: %s", exc)
            return []

        objects = classify_detections(
            raw_detections, w, h, now,
            min_confidence=float(self.config.get("confidence_threshold", 0.6)),
        )
        self.detected_objects = objects
        self.policy.process_tick(objects, now)
        return objects

    def handle_key(self, key: int) -> bool:
        """Apply a keyboard command. Returns False when the app should quit."""
        if key in (ord('q'), ord('Q')):
            return False
        if key in (ord(' '), ord('d'), ord('D')):
            self.policy.describe_surroundings()
        elif key in (ord('m'), ord('M')):
            self.policy.toggle_speech()
            self.update_live_config(self.settings.to_config())
        elif key in (ord('v'), ord('V')):
            self.policy.cycle_verbosity()
            self.update_live_config(self.settings.to_config())
        elif key in (ord('a'), ord('A')):
            self.policy.toggle_announce_all()
            self.update_live_config(self.settings.to_config())
        elif key in (ord('c'), ord('C')):
            self.policy.memory.clear_memory()
            logger.info("Detection memory cleared.")
        return True

    def _current_subtitle(self, now: float) -> str:
        state = self.scheduler.state
        if state.last_spoken_at is None or now - state.last_spoken_at >= SUBTITLE_SECONDS:
            return ""
        return state.last_spoken_text

    def run(self):
        logger.info("NavSight is running. Keys: q quit, space describe, m mute, "
                    "v verbosity, a announce mode, c clear memory.")
        cv2.namedWindow(WINDOW_NAME, cv2.WINDOW_NORMAL)
        self.scheduler.start()
        self.policy.start_navigation()

        try:
            while True:
                self.loop.run_pending()

                ret, frame = self.camera.read()
                if not ret or frame is None:
                    time.sleep(0.01)
                    continue

                now = self.loop.time()
                if self.last_process_time is None or now - self.last_process_time >= self.process_interval:
                    self.last_process_time = now
                    self.process_frame(frame, now)

                if self.config.get("show_subtitles", True):
                    subtitle = self._current_subtitle(now)
                    if subtitle:
                        frame = draw_subtitle(frame.copy(), subtitle)

                cv2.imshow(WINDOW_NAME, frame)
                key = cv2.waitKey(1) & 0xFF

                if cv2.getWindowProperty(WINDOW_NAME, cv2.WND_PROP_VISIBLE) < 1:
                    break
                if not self.handle_key(key):
                    break
        finally:
            self.shutdown()

    def shutdown(self):
        # The speech worker is about to go away, so nothing is announced here
        self.policy.stop_navigation(announce=False)
        self.scheduler.shutdown()
        self.speaker.shutdown()
        self.camera.stop()
        cv2.destroyAllWindows()
        logger.info("NavSight shut down.")
