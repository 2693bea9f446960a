import pytest

from infinitecanvas.scheduler import RepaintScheduler, Debouncer


def test_repaint_requests_coalesce(scheduler):
    calls = []
    repaint = RepaintScheduler(scheduler, lambda: calls.append(1))

    repaint.request()
    repaint.request()
    assert repaint.pending
    scheduler.advance()

    assert calls == [1]
    assert not repaint.pending


def test_debouncer_waits_for_quiet(scheduler):
    calls = []
    debouncer = Debouncer(scheduler, 0.5, lambda: calls.append(scheduler.now))

    debouncer.trigger()
    scheduler.advance(0.4)
    debouncer.trigger()
    scheduler.advance(0.4)
    assert calls == []
    scheduler.advance(0.2)

    assert calls == [pytest.approx(0.9)]


def test_debouncer_flush_and_cancel(scheduler):
    calls = []
    debouncer = Debouncer(scheduler, 0.5, lambda: calls.append(1))

    debouncer.flush()
    assert calls == []

    debouncer.trigger()
    debouncer.flush()
    assert calls == [1]

    debouncer.trigger()
    debouncer.cancel()
    scheduler.advance(1)
    assert calls == [1]
