import logging

import pytest

from navsight.announcer import clean_text_for_speech
from navsight.common import AnnouncementRequest, Priority


def speak_through(engine, advance, count):
    """Let `count` utterances finish one after another."""
    for _ in range(count):
        engine.finish()
        advance(0.2)


def test_drain_order_follows_priority(scheduler, engine, advance):
    scheduler.speak("low note", Priority.LOW)
    scheduler.speak("normal note", Priority.NORMAL)
    scheduler.speak("high note", Priority.HIGH)

    # high dispatches synchronously, ahead of the pending drain
    assert engine.texts == ["high note"]

    advance(0.0)
    speak_through(engine, advance, 2)

    assert engine.texts == ["high note", "normal note", "low note"]


def test_non_high_waits_for_the_loop(scheduler, engine, advance):
    scheduler.speak("hello")
    assert engine.texts == []
    advance(0.0)
    assert engine.texts == ["hello"]
    assert scheduler.is_speaking


def test_pause_between_utterances(scheduler, engine, advance):
    scheduler.speak("first")
    scheduler.speak("second")
    advance(0.0)

    engine.finish()
    advance(0.1)
    assert engine.texts == ["first"]
    advance(0.05)
    assert engine.texts == ["first", "second"]


def test_request_arriving_during_pause_still_waits(scheduler, engine, advance):
    scheduler.speak("first")
    scheduler.speak("second")
    advance(0.0)
    engine.finish()

    advance(0.01)
    scheduler.speak("third")
    advance(0.0)
    assert engine.texts == ["first"]

    advance(0.15)
    assert engine.texts == ["first", "second"]


def test_request_into_empty_queue_waits_out_pause(scheduler, engine, advance):
    scheduler.speak("first")
    advance(0.0)
    engine.finish()

    advance(0.05)
    scheduler.speak("second")
    advance(0.05)
    assert engine.texts == ["first"]
    advance(0.1)
    assert engine.texts == ["first", "second"]


def test_drain_tick_respects_pause(scheduler, engine, advance):
    scheduler.start()
    scheduler.speak("first")
    scheduler.speak("second")
    advance(0.0)
    advance(0.2)
    engine.finish()

    advance(0.06)
    assert engine.texts == ["first"]
    advance(0.1)
    assert engine.texts == ["first", "second"]
    scheduler.shutdown()


def test_high_priority_skips_pause(scheduler, engine, advance):
    scheduler.speak("first")
    advance(0.0)
    engine.finish()

    scheduler.speak("Warning: wall", Priority.HIGH)

    assert engine.texts == ["first", "Warning: wall"]


@pytest.mark.parametrize("priority", list(Priority))
def test_repeat_within_two_seconds_is_dropped(scheduler, engine, advance, priority):
    scheduler.speak("chair ahead")
    advance(0.0)
    engine.finish()
    advance(1.0)

    assert scheduler.speak("chair ahead", priority) is False

    advance(1.0)
    assert scheduler.speak("chair ahead", priority) is True


def test_low_priority_dropped_when_queue_is_long(scheduler):
    for text in ("one", "two", "three"):
        scheduler.speak(text)

    assert scheduler.speak("extra detail", Priority.LOW) is False
    assert scheduler.speak("still normal", Priority.NORMAL) is True
    assert scheduler.speak("still medium", Priority.MEDIUM) is True
    assert [item.text for item in scheduler.state.queue] == [
        "still medium", "one", "two", "three", "still normal"]


def test_low_priority_accepted_when_queue_is_short(scheduler):
    scheduler.speak("one")
    scheduler.speak("two")
    assert scheduler.speak("detail", Priority.LOW) is True


def test_high_interrupts_and_keeps_only_highs(scheduler, engine, advance):
    scheduler.speak("describing the room")
    advance(0.0)
    scheduler.speak("more detail", Priority.NORMAL)
    scheduler.speak("closer thing", Priority.MEDIUM)
    stale_callbacks = engine.callbacks

    scheduler.speak("Warning: wall ahead", Priority.HIGH)

    assert engine.cancelled == 1
    assert engine.texts[-1] == "Warning: wall ahead"
    assert scheduler.state.queue == []

    # The interrupted utterance reporting late must not end the new one
    stale_callbacks[1]()
    assert scheduler.is_speaking
    assert scheduler.state.active.text == "Warning: wall ahead"


def test_medium_goes_behind_leading_highs(scheduler, engine, advance):
    scheduler.speak("talking")
    advance(0.0)
    scheduler.state.queue[:] = [
        AnnouncementRequest("urgent one", Priority.HIGH),
        AnnouncementRequest("urgent two", Priority.HIGH),
        AnnouncementRequest("later", Priority.NORMAL),
    ]

    scheduler.speak("soon", Priority.MEDIUM)

    assert [item.text for item in scheduler.state.queue] == ["urgent one", "urgent two", "soon", "later"]


def test_high_priority_uses_slower_full_volume_voice(scheduler, engine):
    scheduler.speak("Warning: step", Priority.HIGH)
    _, options = engine.spoken[-1]
    assert options.rate == 0.9
    assert options.volume == 1.0


def test_error_advances_the_queue(scheduler, engine, advance, caplog):
    errors = []
    scheduler.speak("broken", on_error=errors.append)
    scheduler.speak("next one")
    advance(0.0)

    with caplog.at_level(logging.ERROR, logger="navsight.announcer"):
        engine.fail(RuntimeError("driver crashed"))

    assert not scheduler.is_speaking
    assert [str(error) for error in errors] == ["driver crashed"]
    assert "driver crashed" in caplog.text
    advance(0.15)
    assert engine.texts == ["broken", "next one"]


def test_engine_raising_is_contained(scheduler, engine, advance, monkeypatch):
    def explode(*args, **kwargs):
        raise OSError("no audio device")
    monkeypatch.setattr(engine, "speak", explode)

    scheduler.speak("hello")
    advance(0.0)

    assert not scheduler.is_speaking
    assert scheduler.state.last_spoken_text == "hello"


def test_lifecycle_callbacks(scheduler, engine, advance):
    events = []
    scheduler.speak("hello", on_start=lambda: events.append("start"), on_end=lambda: events.append("end"))
    advance(0.0)
    assert events == ["start"]
    engine.finish()
    assert events == ["start", "end"]


def test_failing_callback_does_not_break_scheduler(scheduler, engine, advance):
    def bad_callback():
        raise ValueError("listener bug")

    scheduler.speak("hello", on_end=bad_callback)
    scheduler.speak("world")
    advance(0.0)
    engine.finish()
    advance(0.2)
    assert engine.texts == ["hello", "world"]


def test_watchdog_recovers_stuck_speech(scheduler, engine, advance):
    scheduler.speak("never ends")
    scheduler.speak("waiting")
    advance(0.0)

    advance(9.9)
    assert scheduler.is_speaking

    advance(0.101)
    assert not scheduler.is_speaking
    assert engine.cancelled == 1

    advance(0.5)
    assert engine.texts == ["never ends", "waiting"]


def test_watchdog_disarmed_after_completion(scheduler, engine, advance):
    scheduler.speak("quick")
    advance(0.0)
    engine.finish()
    scheduler.speak("slow")
    advance(0.0)

    advance(9.5)
    assert scheduler.is_speaking
    assert engine.cancelled == 0


def test_drain_tick_picks_up_queued_requests(scheduler, engine, advance):
    scheduler.start()
    scheduler.state.queue.append(AnnouncementRequest("queued directly"))

    advance(0.25)

    assert engine.texts == ["queued directly"]
    scheduler.shutdown()


def test_reset_clears_everything(scheduler, engine, advance):
    scheduler.speak("one")
    scheduler.speak("two")
    advance(0.0)

    scheduler.set_hidden(True)

    assert engine.cancelled == 1
    assert not scheduler.is_speaking
    assert scheduler.state.queue == []
    advance(1.0)
    assert engine.texts == ["one"]


def test_visible_again_keeps_state(scheduler, engine, advance):
    scheduler.speak("one")
    advance(0.0)
    scheduler.set_hidden(False)
    assert scheduler.is_speaking


def test_empty_text_is_ignored(scheduler):
    assert scheduler.speak("   ") is False
    assert scheduler.state.queue == []


@pytest.mark.parametrize("raw, cleaned", [
    ("  chair   ahead ", "chair ahead"),
    ("Turn onto Main St. then Oak Ave.", "Turn onto Main Street then Oak Avenue"),
    ("warning chair", "Warning: chair"),
    ("Warning: chair ahead, 1.2 meters", "Warning: chair ahead, 1.2 meters"),
    ("left,right", "left, right"),
    ("", ""),
])
def test_clean_text_for_speech(raw, cleaned):
    assert clean_text_for_speech(raw) == cleaned
