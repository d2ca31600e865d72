import logging

from bipseed.services.cycle.timers import BackgroundTimerService, ManualTimerService


def test_manual_timers_fire_in_deadline_order():
    timers = ManualTimerService(start=0.0)
    fired = []
    timers.call_later(2, lambda: fired.append('b'), name='b')
    timers.call_later(1, lambda: fired.append('a'), name='a')
    timers.advance(1.5)
    assert fired == ['a']
    assert timers.now() == 1.5
    timers.advance(1)
    assert fired == ['a', 'b']
    assert timers.pending == []


def test_cancelled_timer_never_fires():
    timers = ManualTimerService(start=0.0)
    fired = []
    handle = timers.call_later(1, lambda: fired.append('x'))
    handle.cancel()
    handle.cancel()
    timers.advance(10)
    assert fired == []
    assert not handle.active


def test_callback_can_schedule_within_same_advance():
    timers = ManualTimerService(start=0.0)
    fired = []

    def first():
        fired.append(timers.now())
        timers.call_later(1, lambda: fired.append(timers.now()))

    timers.call_later(1, first)
    timers.advance(5)
    assert fired == [1.0, 2.0]


def test_interval_repeats_until_cancelled():
    timers = ManualTimerService(start=0.0)
    fired = []
    handle = timers.call_every(1, lambda: fired.append(timers.now()))
    timers.advance(3)
    assert fired == [1.0, 2.0, 3.0]
    handle.cancel()
    timers.advance(3)
    assert len(fired) == 3


class FakeSocketIO:
    """Runs background tasks inline and records sleeps."""

    def __init__(self, clock):
        self.clock = clock
        self.slept = []

    def start_background_task(self, target, *args):
        target(*args)

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.clock[0] += seconds


def test_background_timer_heartbeat_steps(monkeypatch):
    clock = [100.0]
    sio = FakeSocketIO(clock)
    timers = BackgroundTimerService(sio, heartbeat_sec=2)
    monkeypatch.setattr(timers, 'now', lambda: clock[0])
    fired = []
    handle = timers.call_later(5, lambda: fired.append(clock[0]), name='cycle')
    assert sio.slept == [2, 2, 1]
    assert fired == [105.0]
    assert handle.fired


def test_background_timer_cancelled_before_expiry(monkeypatch):
    clock = [0.0]
    sio = FakeSocketIO(clock)
    tasks = []
    # queue tasks instead of running them so the handle can be cancelled first
    sio.start_background_task = lambda target, *args: tasks.append((target, args))
    timers = BackgroundTimerService(sio)
    monkeypatch.setattr(timers, 'now', lambda: clock[0])
    fired = []
    handle = timers.call_later(3, lambda: fired.append(True))
    handle.cancel()
    for target, args in tasks:
        target(*args)
    assert fired == []
    assert not handle.fired
    assert sio.slept == []


def test_background_cancel_all():
    sio = FakeSocketIO([0.0])
    sio.start_background_task = lambda target, *args: None
    timers = BackgroundTimerService(sio)
    a = timers.call_later(10, lambda: None)
    b = timers.call_every(1, lambda: None)
    timers.cancel_all()
    assert a.cancelled and b.cancelled


def test_background_one_shot_error_is_logged(caplog):
    sio = FakeSocketIO([0.0])
    timers = BackgroundTimerService(sio, logger=logging.getLogger('bipseed.test.timers'))
    timers.now = lambda: sio.clock[0]

    def explode():
        raise RuntimeError('emit failed')

    with caplog.at_level(logging.ERROR, logger='bipseed.test.timers'):
        handle = timers.call_later(1, explode, name='input-phase')

    assert handle.fired
    assert any('[timer-error] input-phase' in r.getMessage() for r in caplog.records)
