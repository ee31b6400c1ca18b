import threading

from shared.periodic import PeriodicTimer


def test_run_immediately_fires_before_first_interval():
    fired = threading.Event()
    timer = PeriodicTimer(60, fired.set, name="immediate", run_immediately=True).start()
    try:
        assert fired.wait(2)
    finally:
        timer.cancel()
        timer.join()


def test_timer_repeats_until_cancelled():
    calls = []
    enough = threading.Event()

    def tick():
        calls.append(1)
        if len(calls) >= 3:
            enough.set()

    timer = PeriodicTimer(0.01, tick, name="repeat").start()
    assert enough.wait(2)
    timer.cancel()
    timer.join()
    count = len(calls)

    assert not timer.running
    assert not timer._thread.is_alive()
    assert len(calls) == count


def test_callback_errors_do_not_kill_the_timer():
    calls = []
    second = threading.Event()

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")
        second.set()

    timer = PeriodicTimer(0.01, flaky, name="flaky").start()
    try:
        assert second.wait(2)
    finally:
        timer.cancel()
        timer.join()


def test_cancelled_before_start_never_fires():
    calls = []
    timer = PeriodicTimer(0.01, lambda: calls.append(1), run_immediately=True)
    timer.cancel()
    timer.start()
    timer.join()
    assert calls == []
