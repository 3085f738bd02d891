from navsight.timers import TimerLoop


def test_callbacks_run_in_deadline_order(loop, advance):
    fired = []
    loop.call_later(2.0, fired.append, "late")
    loop.call_later(0.5, fired.append, "early")
    loop.call_soon(fired.append, "now")

    loop.run_pending()
    assert fired == ["now"]
    advance(3.0)
    assert fired == ["now", "early", "late"]


def test_cancelled_callback_never_runs(loop, advance):
    fired = []
    handle = loop.call_later(1.0, fired.append, "x")
    loop.cancel(handle)
    advance(2.0)

    assert fired == []
    loop.cancel(handle)     # cancelling twice is harmless
    loop.cancel(None)


def test_call_every_repeats_until_cancelled(loop, advance):
    ticks = []
    timer = loop.call_every(0.25, lambda: ticks.append(loop.time()))

    advance(1.0)
    assert ticks == [0.25, 0.5, 0.75, 1.0]

    loop.cancel(timer)
    advance(1.0)
    assert len(ticks) == 4
    assert len(loop) == 0


def test_failing_callback_does_not_stop_others(loop, advance):
    fired = []

    def broken():
        raise RuntimeError("boom")

    loop.call_later(0.1, broken)
    loop.call_later(0.2, fired.append, "after")
    advance(1.0)

    assert fired == ["after"]


def test_next_deadline_and_cancel_all(loop):
    assert loop.next_deadline() is None
    loop.call_later(3.0, print)
    loop.call_later(1.0, print)
    assert loop.next_deadline() == 1.0

    loop.cancel_all()
    assert loop.next_deadline() is None


def test_default_clock_is_monotonic():
    loop = TimerLoop()
    first = loop.time()
    assert loop.time() >= first
