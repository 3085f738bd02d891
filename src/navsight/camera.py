import logging
import threading
import time

import cv2

logger = logging.getLogger(__name__)


class CameraStream:
    """
    Holds the most recent frame from a capture device. A daemon thread keeps
    reading so the host loop never blocks on the camera; `read()` hands back
    whatever arrived last.
    """

    RETRY_DELAY = 0.01
    ERROR_DELAY = 0.1
    # ~1 s of consecutive empty reads before complaining
    STALL_WARNING_AFTER = 100

    def __init__(self, src=0, width=640, height=480, capture=None):
        self.src = src
        self.size = (width, height)
        self.cap = capture if capture is not None else cv2.VideoCapture(src)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        self._lock = threading.Lock()
        self.ret = False
        self.frame = None
        self.frames_read = 0
        self._misses = 0

        if not self._grab():
            logger.warning("Camera %s returned no initial frame", src)

        self.running = True
        self.thread = threading.Thread(target=self._capture_loop, name="camera", daemon=True)
        self.thread.start()

    @classmethod
    def from_config(cls, config: dict) -> "CameraStream":
        return cls(
            config.get("camera_index", 0),
            width=int(config.get("frame_width", 640)),
            height=int(config.get("frame_height", 480)),
        )

    def _grab(self) -> bool:
        ret, frame = self.cap.read()
        ok = bool(ret) and frame is not None
        with self._lock:
            self.ret = ok
            if ok:
                self.frame = cv2.resize(frame, self.size)
                self.frames_read += 1
        return ok

    def _capture_loop(self):
        while self.running:
            try:
                ok = self._grab()
            except cv2.error as exc:
                logger.error("Camera read failed: %s", exc)
                with self._lock:
                    self.ret = False
                time.sleep(self.ERROR_DELAY)
                continue

            if ok:
                self._misses = 0
                continue
            self._misses += 1
            if self._misses == self.STALL_WARNING_AFTER:
                logger.warning("Camera %s stopped delivering frames", self.src)
            time.sleep(self.RETRY_DELAY)

    def read(self):
        with self._lock:
            return self.ret, self.frame

    def stop(self):
        self.running = False
        self.thread.join(timeout=1.0)
        if self.cap.isOpened():
            self.cap.release()
