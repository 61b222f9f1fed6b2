"""
Tests for timer scheduling.
"""
import threading
import time

import pytest

from thus_spoke_npc.scheduler import ManualScheduler, ThreadingScheduler


class TestManualScheduler:

    def test_fires_when_due(self):
        sched = ManualScheduler()
        fired = []
        sched.call_later(100, lambda: fired.append(sched.now))

        assert sched.advance(99) == 0
        assert fired == []
        assert sched.advance(1) == 1
        assert fired == [100]

    def test_order_by_due_time_then_schedule_order(self):
        sched = ManualScheduler()
        fired = []
        sched.call_later(20, lambda: fired.append("b"))
        sched.call_later(10, lambda: fired.append("a"))
        sched.call_later(20, lambda: fired.append("c"))

        sched.advance(50)
        assert fired == ["a", "b", "c"]

    def test_cancelled_timer_does_not_fire(self):
        sched = ManualScheduler()
        fired = []
        handle = sched.call_later(10, lambda: fired.append(1))
        handle.cancel()
        handle.cancel()

        assert sched.advance(100) == 0
        assert fired == []
        assert not handle.active

    def test_cancel_after_fire_is_harmless(self):
        sched = ManualScheduler()
        handle = sched.call_later(10, lambda: None)
        sched.advance(10)
        assert not handle.active
        handle.cancel()

    def test_callbacks_scheduled_inside_window_fire(self):
        sched = ManualScheduler()
        fired = []

        def tick():
            fired.append(sched.now)
            sched.call_later(10, tick)

        sched.call_later(10, tick)
        sched.advance(35)
        assert fired == [10, 20, 30]
        assert sched.now == 35
        assert sched.pending == 1

    def test_cannot_go_backwards(self):
        with pytest.raises(ValueError):
            ManualScheduler().advance(-1)

    def test_shutdown_cancels_everything(self):
        sched = ManualScheduler()
        handles = [sched.call_later(10, lambda: None) for _ in range(3)]
        sched.shutdown()
        assert sched.pending == 0
        assert all(h.cancelled for h in handles)


class TestThreadingScheduler:

    def test_fires(self):
        sched = ThreadingScheduler()
        done = threading.Event()
        sched.call_later(10, done.set)
        assert done.wait(timeout=2.0)

    def test_cancel(self):
        sched = ThreadingScheduler()
        fired = []
        handle = sched.call_later(50, lambda: fired.append(1))
        handle.cancel()
        time.sleep(0.15)
        assert fired == []

    def test_cancel_releases_handle(self):
        sched = ThreadingScheduler()
        for _ in range(50):
            sched.call_later(10, lambda: None).cancel()
        assert sched._handles == set()
        assert sched.pending == 0

    def test_fired_handle_released(self):
        sched = ThreadingScheduler()
        done = threading.Event()
        handle = sched.call_later(10, done.set)
        assert done.wait(timeout=2.0)
        assert handle not in sched._handles
        handle.cancel()
        assert sched._handles == set()

    def test_callback_waits_for_lock(self):
        sched = ThreadingScheduler()
        done = threading.Event()
        fired = []

        def callback():
            fired.append(1)
            done.set()

        with sched.lock:
            sched.call_later(10, callback)
            time.sleep(0.1)
            assert fired == []

        assert done.wait(timeout=2.0)
        assert fired == [1]

    def test_failing_callback_is_logged_not_raised(self, caplog):
        sched = ThreadingScheduler()
        done = threading.Event()

        def boom():
            done.set()
            raise RuntimeError("boom")

        sched.call_later(10, boom)
        assert done.wait(timeout=2.0)
        time.sleep(0.05)
        assert "Timer callback failed" in caplog.text

    def test_shutdown(self):
        sched = ThreadingScheduler()
        fired = []
        for _ in range(3):
            sched.call_later(100, lambda: fired.append(1))
        assert sched.pending == 3
        sched.shutdown()
        time.sleep(0.2)
        assert fired == []
        assert sched.pending == 0
