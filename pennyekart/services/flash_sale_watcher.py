"""
Background timers for flash sales.

CountdownTicker drives one countdown display; ActiveFlashSaleWatcher keeps the
visible banner set fresh. Each instance owns its thread and stop event, so
stopping one never affects another.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from pennyekart.config import Config
from pennyekart.database import SessionLocal, session_scope
from pennyekart.models import as_utc
from pennyekart.observability import record_event, set_gauge
from pennyekart.services.flash_sale_lifecycle import Countdown, compute_countdown, next_boundary, utcnow
from pennyekart.services.flash_sale_service import FlashSaleService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# A campaign is still live at its exact end instant
BOUNDARY_GRACE = timedelta(seconds=1)


class CountdownTicker:
    """Calls `on_tick` with the remaining time now and then once per interval."""

    def __init__(
        self,
        end_time: datetime,
        on_tick: Callable[[Countdown], Any],
        interval: Optional[float] = None,
        clock: Clock = utcnow,
    ):
        self.end_time = as_utc(end_time)
        self._on_tick = on_tick
        self._interval = Config.COUNTDOWN_TICK_SECONDS if interval is None else interval
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._started = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "CountdownTicker":
        if self._started:
            return self
        if self._stop_event.is_set():
            raise RuntimeError("A stopped countdown ticker cannot be restarted")
        self._started = True

        if self._tick().expired:
            return self
        self._thread = threading.Thread(target=self._run, name="countdown-ticker", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(self._interval, 1.0) * 2)

    def _tick(self) -> Countdown:
        countdown = compute_countdown(self.end_time, self._clock())
        self._on_tick(countdown)
        return countdown

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                if self._tick().expired:
                    break
            except Exception:
                logger.exception("Countdown tick failed")

    def __enter__(self) -> "CountdownTicker":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()


class ActiveFlashSaleWatcher:
    """
    Re-runs the visible flash sale query on a fixed period.

    The watcher wakes early when a campaign starts or ends before the next
    scheduled refresh. Every cycle opens its own session. Anything fetched
    after `stop()` is dropped instead of being handed to `on_update`.
    """

    def __init__(
        self,
        session_factory: Callable[[], Any] = SessionLocal,
        on_update: Optional[Callable[[List[Dict[str, Any]]], Any]] = None,
        interval: Optional[float] = None,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self._on_update = on_update
        self.interval = float(Config.FLASH_SALE_POLL_SECONDS if interval is None else interval)
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._latest: List[Dict[str, Any]] = []
        self._next_delay = self.interval

    @property
    def latest(self) -> List[Dict[str, Any]]:
        return list(self._latest)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def next_delay(self) -> float:
        return self._next_delay

    def refresh_now(self) -> Optional[List[Dict[str, Any]]]:
        """Run one query cycle; returns None when the result was discarded."""
        now = as_utc(self._clock())
        with session_scope(self._session_factory) as session:
            service = FlashSaleService(session)
            visible = service.get_visible_flash_sales(now)
            boundary = next_boundary(service.get_unfinished_flash_sales(now), now)

        self._next_delay = self._delay_until(boundary, now)
        if self._stop_event.is_set():
            logger.debug("Discarding flash sale refresh that finished after stop")
            return None

        previous_ids = [sale["id"] for sale in self._latest]
        current_ids = [sale["id"] for sale in visible]
        self._latest = visible
        set_gauge("flash_sales_visible", len(visible))
        if previous_ids != current_ids:
            record_event("flash_sales_visible_changed", {"flash_sale_ids": current_ids})
            logger.info("Visible flash sales changed: %s", current_ids)

        if self._on_update is not None:
            self._on_update(visible)
        return visible

    def _delay_until(self, boundary: Optional[datetime], now: datetime) -> float:
        if boundary is None:
            return self.interval
        until_boundary = (boundary + BOUNDARY_GRACE - now).total_seconds()
        return max(0.0, min(self.interval, until_boundary))

    def start(self) -> "ActiveFlashSaleWatcher":
        if self.running:
            logger.warning("Flash sale watcher already running")
            return self
        if self._stop_event.is_set():
            raise RuntimeError("A stopped flash sale watcher cannot be restarted")

        self._thread = threading.Thread(target=self._run, name="flash-sale-watcher", daemon=True)
        self._thread.start()
        logger.info(f"Started flash sale watcher (poll interval: {self.interval}s)")
        return self

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        logger.info("Stopped flash sale watcher")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.refresh_now()
            except Exception:
                logger.exception("Flash sale refresh failed")
                self._next_delay = self.interval
            if self._stop_event.wait(self._next_delay):
                break

    def __enter__(self) -> "ActiveFlashSaleWatcher":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
