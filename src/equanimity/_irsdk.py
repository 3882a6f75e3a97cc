"""iRacing telemetry runtime built on pyirsdk.

pyirsdk reads the simulator's shared memory synchronously, so polling
happens on a background thread and events are handed to the asyncio
loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

import irsdk
from pydantic import ValidationError

from equanimity.exceptions import EquanimityReloadError, EquanimitySourceError
from equanimity.models import SessionSnapshot
from equanimity.source import SimEvent

_SESSION_KEY = "DriverInfo"


class IRacingRuntime:
    """Threaded pyirsdk poller that emits :class:`SimEvent` onto an asyncio loop."""

    def __init__(
        self,
        *,
        poll_interval: float = 0.1,
        reconnect_interval: float = 1.0,
        sdk_factory: Callable[[], Any] = irsdk.IRSDK,
        logger: logging.Logger | None = None,
    ) -> None:
        self._poll_interval = poll_interval
        self._reconnect_interval = reconnect_interval
        self._sdk_factory = sdk_factory
        self._logger = logger or logging.getLogger(__name__)
        self._ir: Any = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_event: Callable[[SimEvent], None] | None = None
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._connected = False
        self._last_update: int | None = None
        self._last_snapshot: SessionSnapshot | None = None
        self._next_startup = 0.0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_connected(self) -> bool:
        return self._connected

    def start(self, on_event: Callable[[SimEvent], None]) -> None:
        """Start polling. Must be called from the event loop thread."""
        self.stop()
        self._loop = asyncio.get_running_loop()
        self._on_event = on_event
        self._ir = self._sdk_factory()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="equanimity-irsdk", daemon=True)
        self._thread.start()
        self._logger.debug("iRacing poll thread started")

    def stop(self) -> None:
        thread = self._thread
        self._thread = None
        if thread is None:
            return
        self._stop.set()
        thread.join(timeout=max(self._poll_interval, self._reconnect_interval) * 5)
        try:
            if self._ir is not None:
                self._ir.shutdown()
        finally:
            self._connected = False
            self._last_update = None
            self._last_snapshot = None
            self._logger.debug("iRacing poll thread stopped")

    async def request_reload(self, slot: int | None) -> None:
        ir = self._ir
        loop = self._loop
        if ir is None or loop is None:
            raise EquanimitySourceError("iRacing runtime is not running")
        if not self._connected:
            raise EquanimityReloadError("Not connected to iRacing", slot=slot)

        if slot is None:
            call: Callable[[], Any] = ir.reload_all_textures
        else:
            call = functools.partial(ir.reload_texture, slot)
        try:
            await loop.run_in_executor(None, call)
        except OSError as exc:
            raise EquanimityReloadError(f"Reload broadcast failed: {exc}", slot=slot) from exc

    # ------------------------------------------------------------------
    # Poll thread
    # ------------------------------------------------------------------

    def _emit(self, event: SimEvent) -> None:
        loop = self._loop
        on_event = self._on_event
        if loop is None or on_event is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(on_event, event)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._poll()
            except Exception:
                self._logger.debug("iRacing poll failure", exc_info=True)
            self._stop.wait(self._poll_interval)

    def _sdk_alive(self) -> bool:
        ir = self._ir
        return bool(ir.is_initialized and ir.is_connected)

    def _poll(self) -> None:
        ir = self._ir
        if self._connected and not self._sdk_alive():
            self._connected = False
            self._last_update = None
            self._last_snapshot = None
            ir.shutdown()
            self._emit(SimEvent.disconnected())

        if not self._connected:
            now = time.monotonic()
            if now < self._next_startup:
                return
            self._next_startup = now + self._reconnect_interval
            if not (ir.startup() and self._sdk_alive()):
                return
            self._connected = True
            self._emit(SimEvent.connected())

        self._check_session_info()

    def _check_session_info(self) -> None:
        ir = self._ir
        driver_info = ir[_SESSION_KEY]
        weekend_info = ir["WeekendInfo"]
        if not isinstance(driver_info, dict) or not isinstance(weekend_info, dict):
            return

        update = ir.get_session_info_update_by_key(_SESSION_KEY)
        if update is not None and update == self._last_update:
            return
        self._last_update = update

        try:
            snapshot = SessionSnapshot.from_session_info(weekend_info, driver_info)
        except ValidationError as exc:
            self._logger.warning("Malformed session info (update %s): %s", update, exc)
            return
        if snapshot == self._last_snapshot:
            return
        self._last_snapshot = snapshot
        self._logger.debug(
            "Session info update %s: session=%s drivers=%d",
            update,
            snapshot.session_id,
            len(snapshot.participants),
        )
        self._emit(SimEvent.session_info(snapshot))
