import pytest

from navsight.announcer import AnnouncementScheduler
from navsight.common import BoundingBox, DetectedObject, Position
from navsight.config_loader import NavigationSettings
from navsight.geometry import identity_key
from navsight.policy import NavigationPolicy
from navsight.timers import TimerLoop
from navsight.tts import SpeechEngine


class ManualClock:
    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now


class FakeEngine(SpeechEngine):
    """Records utterances; completion is driven by the test unless auto_finish."""

    def __init__(self, auto_finish=False):
        self.auto_finish = auto_finish
        self.spoken = []
        self.cancelled = 0
        self.callbacks = None

    @property
    def texts(self):
        return [text for text, _ in self.spoken]

    def speak(self, text, options, on_start=None, on_end=None, on_error=None):
        self.spoken.append((text, options))
        self.callbacks = (on_start, on_end, on_error)
        if on_start:
            on_start()
        if self.auto_finish:
            self.finish()

    def cancel(self):
        self.cancelled += 1
        self.callbacks = None

    def finish(self):
        _, on_end, _ = self.callbacks
        self.callbacks = None
        on_end()

    def fail(self, error):
        _, _, on_error = self.callbacks
        self.callbacks = None
        on_error(error)


class RecordingScheduler(AnnouncementScheduler):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.requests = []

    def enqueue(self, request):
        accepted = super().enqueue(request)
        self.requests.append((request.text, request.priority, accepted))
        return accepted

    def accepted(self):
        return [(text, priority) for text, priority, ok in self.requests if ok]

    def accepted_texts(self):
        return [text for text, _ in self.accepted()]


def make_object(label="chair", distance=2.0, position=Position.AHEAD, now=0.0, confidence=0.9):
    return DetectedObject(
        label=label,
        confidence=confidence,
        box=BoundingBox(0, 0, 10, 10),
        position=position,
        distance=distance,
        identity_key=identity_key(label, position, distance),
        observed_at=now,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def loop(clock):
    return TimerLoop(timefunc=clock)


@pytest.fixture
def advance(clock, loop):
    """Move the clock forward, firing timers at their own deadlines."""
    def _advance(seconds=0.0):
        target = clock.now + seconds
        while True:
            deadline = loop.next_deadline()
            if deadline is None or deadline > target:
                break
            clock.now = max(clock.now, deadline)
            loop.run_pending()
        clock.now = target
        loop.run_pending()
    return _advance


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def scheduler(engine, loop):
    return RecordingScheduler(engine, loop)


@pytest.fixture
def settings():
    return NavigationSettings()


@pytest.fixture
def policy(loop, settings, advance):
    speaker = FakeEngine(auto_finish=True)
    navigation = NavigationPolicy(RecordingScheduler(speaker, loop), loop, settings)
    navigation.start_navigation()
    advance(0.0)
    navigation.scheduler.requests.clear()
    return navigation
