"""Application wiring: telemetry events, console commands and shutdown."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random

from aioconsole import ainput

from equanimity.config import EquanimityConfig
from equanimity.dispatcher import ReloadDispatcher
from equanimity.options import Options, load_options
from equanimity.provisioner import AssetProvisioner, purge_participant_assets
from equanimity.source import SimEvent, SimEventKind, SimSource
from equanimity.tracker import SessionTracker

_logger = logging.getLogger(__name__)

QUIT_COMMANDS = frozenset({"q", "quit", "exit"})
RERUN_COMMANDS = frozenset({"r", "rerun"})
OPTIONS_COMMANDS = frozenset({"o", "options"})


class EquanimityApp:
    """Run one connection-scoped paint session against a :class:`SimSource`.

    Usage::

        app = EquanimityApp(config, options, IRacingRuntime())
        exit_code = await app.run()
    """

    def __init__(
        self,
        config: EquanimityConfig,
        options: Options,
        source: SimSource,
        *,
        rng: random.Random | None = None,
        console: bool = True,
    ) -> None:
        self._config = config
        self._source = source
        self._console = console
        self._stop_event = asyncio.Event()
        self._events: asyncio.Queue[SimEvent] = asyncio.Queue()
        self._tasks: list[asyncio.Task[None]] = []

        full_random = config.random_per_driver
        self.provisioner = AssetProvisioner(
            config.paint_root,
            options,
            rng=rng,
            stage_per_participant=full_random,
        )
        self.dispatcher = ReloadDispatcher(
            source.request_reload,
            throttle=config.reload_throttle,
            quit_after_batch=options.quit_after_copy,
            on_quit=self.request_stop,
        )
        self.tracker = SessionTracker(
            self.provisioner,
            self.dispatcher,
            settle_delay=config.settle_delay,
            full_random=full_random,
            cleanup=self.cleanup,
        )

    @property
    def options(self) -> Options:
        return self.provisioner.options

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def request_stop(self) -> None:
        if not self._stop_event.is_set():
            _logger.info("Exiting gracefully...")
        self._stop_event.set()

    def cleanup(self) -> None:
        """Delete provisioned paints when ``DeletePaintsFolder`` is set."""
        if self.options.delete_paints_folder:
            self.provisioner.remove_provisioned()

    def reload_options(self) -> Options:
        options = load_options(self._config.options_path)
        self.provisioner.update_options(options)
        self.dispatcher.set_quit_after_batch(options.quit_after_copy)
        _logger.info("Options reloaded from %s", self._config.options_path)
        return options

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _on_event(self, event: SimEvent) -> None:
        self._events.put_nowait(event)

    async def handle_event(self, event: SimEvent) -> None:
        if event.kind is SimEventKind.CONNECTED:
            self.tracker.on_connected()
        elif event.kind is SimEventKind.DISCONNECTED:
            await self.tracker.on_disconnected()
        elif event.kind is SimEventKind.SESSION_INFO and event.snapshot is not None:
            await self.tracker.on_session_info(event.snapshot)

    async def _event_worker(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self.handle_event(event)
            except Exception:
                _logger.exception("Failed to handle %s event", event.kind)
            finally:
                self._events.task_done()

    # ------------------------------------------------------------------
    # Console
    # ------------------------------------------------------------------

    async def handle_command(self, text: str) -> None:
        command = text.strip().lower()
        if not command:
            return
        if command in QUIT_COMMANDS:
            self.request_stop()
        elif command in RERUN_COMMANDS:
            if not await self.tracker.rerun() and not self.tracker.connected:
                _logger.info("Not connected, nothing to re-run")
        elif command in OPTIONS_COMMANDS:
            self.reload_options()
        else:
            _logger.info("Unknown command %r. Type q then Enter to quit, r then Enter to force a re-run.", command)

    async def _console_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                line = await ainput("")
            except EOFError:
                self.request_stop()
                return
            await self.handle_command(line)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self) -> int:
        loop = asyncio.get_running_loop()
        self.dispatcher.start()
        self._tasks.append(loop.create_task(self._event_worker(), name="equanimity-events"))
        if self._console:
            self._tasks.append(loop.create_task(self._console_loop(), name="equanimity-console"))
        self._source.start(self._on_event)
        _logger.info("Application started. Type q then Enter to quit, r then Enter to force a re-run.")
        _logger.info("Use Ctrl-R in game to force the paints to update.")

        try:
            await self._stop_event.wait()
        finally:
            await self.shutdown()
        return 0

    async def shutdown(self) -> None:
        self._stop_event.set()
        self.tracker.stop()
        try:
            self._source.stop()
        except Exception:
            _logger.exception("Failed to stop telemetry source")

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self.dispatcher.close()
        if not self._config.skip_cleanup:
            self.cleanup()


async def reset_paints(config: EquanimityConfig, source: SimSource, *, connect_timeout: float = 5.0) -> int:
    """Delete every participant paint, then ask the simulator to reload all cars.

    Returns the number of files removed. When the simulator is not
    running the files are still deleted.
    """
    removed = purge_participant_assets(config.paint_root)

    connected = asyncio.Event()

    def on_event(event: SimEvent) -> None:
        if event.kind is SimEventKind.CONNECTED:
            connected.set()

    source.start(on_event)
    try:
        try:
            await asyncio.wait_for(connected.wait(), connect_timeout)
        except TimeoutError:
            _logger.warning("Simulator not running, skipping global reload")
            return len(removed)
        try:
            await source.request_reload(None)
            _logger.info("Requested reload of all cars")
        except Exception as exc:
            _logger.warning("Global reload failed: %s", exc)
    finally:
        source.stop()
    return len(removed)
