# Overview: Polling Synchronizer; keeps monitor boards and PDV views converged without a push channel.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable

from flask import Flask, current_app

from ..extensions import db
from .order_store import orders_changed
from .tab_service import Tab, TabAggregator, TabSummary, tab_aggregator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TabSnapshot:
    """What one view shows: the monitor board plus the tab currently open, if any."""
    tabs: tuple[TabSummary, ...]
    tab: Tab | None = None

    def to_dict(self) -> dict:
        return {
            "tabs": [summary.to_dict() for summary in self.tabs],
            "tab": self.tab.to_dict() if self.tab is not None else None,
        }


Subscriber = Callable[[TabSnapshot], None]


class TabSynchronizer:
    """
    Re-reads the Order Store on a fixed interval and whenever an
    `orders_changed` signal arrives for the same company.

    Reads only: polling never mutates state, so any number of synchronizers
    watching the same key converge on the same snapshot once a write is
    visible. Subscribers are called only when the snapshot changed.
    """

    def __init__(
        self,
        company_id: int,
        *,
        aggregator: TabAggregator | None = None,
        interval: float | None = None,
        app: Flask | None = None,
    ):
        self.company_id = company_id
        self.aggregator = aggregator or tab_aggregator
        self.app = app or current_app._get_current_object()
        self.interval = interval if interval is not None else self.app.config.get("POLL_INTERVAL_SECONDS", 3)
        self._subscribers: list[Subscriber] = []
        self._watched: tuple[str, str] | None = None
        self._last: TabSnapshot | None = None
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._connected = False

    @property
    def snapshot(self) -> TabSnapshot | None:
        return self._last

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def watch(self, target_type, target_number) -> None:
        """Follow one tab in addition to the board (the PDV's open table)."""
        self._watched = (target_type, target_number)

    def unwatch(self) -> None:
        self._watched = None

    def _read(self) -> TabSnapshot:
        tabs = tuple(self.aggregator.get_all_tabs(self.company_id))
        tab = None
        if self._watched is not None:
            tab = self.aggregator.get_tab(self._watched[0], self._watched[1], self.company_id)
        return TabSnapshot(tabs=tabs, tab=tab)

    def poll_once(self) -> TabSnapshot:
        """Read the current state and notify subscribers if it changed. Needs an app context."""
        with self._lock:
            snapshot = self._read()
            changed = snapshot != self._last
            self._last = snapshot
        if changed:
            for callback in list(self._subscribers):
                try:
                    callback(snapshot)
                except Exception:
                    logger.exception("Tab subscriber failed for company %s", self.company_id)
        return snapshot

    def _on_orders_changed(self, sender, company_id: int | None = None, **extra) -> None:
        if company_id != self.company_id:
            return
        try:
            self.poll_once()
        except Exception:
            logger.exception("Tab refresh after write failed for company %s", self.company_id)

    def connect(self) -> None:
        """Refresh immediately on writes made in this process."""
        if not self._connected:
            orders_changed.connect(self._on_orders_changed)
            self._connected = True

    def disconnect(self) -> None:
        if self._connected:
            orders_changed.disconnect(self._on_orders_changed)
            self._connected = False

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            with self.app.app_context():
                try:
                    self.poll_once()
                except Exception:
                    logger.exception("Tab poll failed for company %s", self.company_id)
                finally:
                    db.session.remove()

    def start(self) -> None:
        if self.is_running:
            return
        self.connect()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run,
            name=f"tab-sync-{self.company_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self.disconnect()
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
