from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from pennyekart.database import SessionLocal
from pennyekart.models import FlashSale
from pennyekart.observability import get_metrics_snapshot
from pennyekart.services.flash_sale_watcher import ActiveFlashSaleWatcher, CountdownTicker

END = datetime(2026, 3, 14, 18, 0, tzinfo=timezone.utc)


class _SteppingClock:
    """Returns the queued instants in order, then repeats the last one."""

    def __init__(self, *instants):
        self._instants = list(instants)
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            if len(self._instants) > 1:
                return self._instants.pop(0)
            return self._instants[0]


# ---------------------------
# CountdownTicker
# ---------------------------


def test_ticker_ticks_immediately_and_skips_thread_when_expired():
    ticks = []
    ticker = CountdownTicker(END, ticks.append, interval=0.01, clock=lambda: END + timedelta(seconds=5))

    ticker.start()

    assert len(ticks) == 1
    assert ticks[0].expired
    assert not ticker.running
    ticker.stop()


def test_ticker_stops_itself_at_zero():
    ticks = []
    done = threading.Event()

    def on_tick(countdown):
        ticks.append(countdown)
        if countdown.expired:
            done.set()

    clock = _SteppingClock(END - timedelta(seconds=2), END - timedelta(seconds=1), END)
    with CountdownTicker(END, on_tick, interval=0.01, clock=clock) as ticker:
        assert done.wait(2)
        ticker._thread.join(1)
        assert not ticker.running

    assert [countdown.seconds for countdown in ticks] == [2, 1, 0]


def test_ticker_stop_is_idempotent_and_final():
    ticks = []
    ticker = CountdownTicker(END, ticks.append, interval=0.01, clock=lambda: END - timedelta(hours=1))
    ticker.start()
    ticker.stop()
    ticker.stop()
    count_after_stop = len(ticks)

    threading.Event().wait(0.05)

    assert len(ticks) == count_after_stop
    assert not ticker.running

    never_started = CountdownTicker(END, ticks.append, clock=lambda: END)
    never_started.stop()
    with pytest.raises(RuntimeError):
        never_started.start()


def test_independent_tickers_do_not_share_state():
    first_ticks, second_ticks = [], []
    first = CountdownTicker(END, first_ticks.append, interval=0.01, clock=lambda: END - timedelta(minutes=1))
    second = CountdownTicker(END, second_ticks.append, interval=0.01, clock=lambda: END - timedelta(minutes=1))
    first.start()
    second.start()

    first.stop()
    threading.Event().wait(0.05)

    assert second.running
    second.stop()
    assert first_ticks and second_ticks


# ---------------------------
# ActiveFlashSaleWatcher
# ---------------------------


def test_refresh_delivers_visible_sales_and_sets_gauge(live_flash_sale):
    updates = []
    watcher = ActiveFlashSaleWatcher(SessionLocal, on_update=updates.append, interval=60)

    visible = watcher.refresh_now()

    assert [sale["id"] for sale in visible] == [live_flash_sale.flashSaleID]
    assert updates == [visible]
    assert watcher.latest == visible
    gauge = get_metrics_snapshot()["gauges"]["flash_sales_visible"][0]
    assert gauge["value"] == 1


def test_refresh_after_stop_is_discarded(live_flash_sale):
    updates = []
    watcher = ActiveFlashSaleWatcher(SessionLocal, on_update=updates.append, interval=60)
    watcher.stop()

    assert watcher.refresh_now() is None
    assert updates == []
    assert watcher.latest == []


def test_watcher_wakes_early_for_next_boundary(db_session):
    now = datetime.now(timezone.utc)
    db_session.add(
        FlashSale(title="Starts soon", start_time=now + timedelta(seconds=10), end_time=now + timedelta(hours=1))
    )
    db_session.commit()

    watcher = ActiveFlashSaleWatcher(SessionLocal, interval=60, clock=lambda: now)
    watcher.refresh_now()

    assert watcher.next_delay == pytest.approx(11, abs=0.01)


def test_watcher_uses_full_interval_without_upcoming_boundaries(db_session):
    watcher = ActiveFlashSaleWatcher(SessionLocal, interval=60)
    watcher.refresh_now()
    assert watcher.next_delay == 60


def test_watcher_thread_keeps_running_after_failures(live_flash_sale):
    delivered = threading.Event()
    attempts = {"count": 0}

    def flaky_factory():
        attempts["count"] += 1
        if attempts["count"] == 1:
            raise RuntimeError("pool exhausted")
        return SessionLocal()

    def on_update(visible):
        if visible:
            delivered.set()

    with ActiveFlashSaleWatcher(flaky_factory, on_update=on_update, interval=0.02):
        assert delivered.wait(2)

    assert attempts["count"] >= 2


def test_refresh_closes_its_session_even_when_the_query_fails(monkeypatch):
    from sqlalchemy.exc import OperationalError

    from pennyekart.services import flash_sale_watcher

    opened = []

    def tracking_factory():
        session = SessionLocal()
        opened.append(session)
        return session

    def broken_query(self, now=None):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(flash_sale_watcher.FlashSaleService, "get_visible_flash_sales", broken_query)
    watcher = ActiveFlashSaleWatcher(tracking_factory, interval=60)

    with pytest.raises(OperationalError):
        watcher.refresh_now()

    assert len(opened) == 1
    assert not opened[0].in_transaction()
    assert watcher.latest == []
