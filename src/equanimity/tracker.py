"""Session lifecycle tracking and the per-session provisioning pass.

The tracker is the only writer of session state. Session updates (and
the manual re-run) go through one ``asyncio.Lock``; a second update that
arrives while one is in flight waits for it, including its settle delay,
and then runs in arrival order.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
from collections.abc import Callable
from enum import StrEnum

from equanimity.dispatcher import ReloadDispatcher
from equanimity.models import ParticipantDescriptor, ReloadRequest, SessionSnapshot
from equanimity.provisioner import AssetProvisioner
from equanimity.state.cache import ParticipantCache

_logger = logging.getLogger(__name__)


class ConnectionState(StrEnum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclasses.dataclass
class SessionContext:
    """Mutable session state owned by :class:`SessionTracker`."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    current_session_id: int | None = None
    local_slot_index: int | None = None
    latest: SessionSnapshot | None = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED


class SessionTracker:
    """React to connect, disconnect and session-info notifications."""

    def __init__(
        self,
        provisioner: AssetProvisioner,
        dispatcher: ReloadDispatcher,
        *,
        cache: ParticipantCache | None = None,
        settle_delay: float = 1.5,
        full_random: bool = False,
        cleanup: Callable[[], None] | None = None,
    ) -> None:
        self._provisioner = provisioner
        self._dispatcher = dispatcher
        self._cache = cache if cache is not None else ParticipantCache()
        self._settle_delay = settle_delay
        self._full_random = full_random
        self._cleanup = cleanup
        self._context = SessionContext()
        self._gate = asyncio.Lock()
        self._stopping = asyncio.Event()

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def cache(self) -> ParticipantCache:
        return self._cache

    @property
    def connected(self) -> bool:
        return self._context.connected

    @property
    def busy(self) -> bool:
        return self._gate.locked()

    def stop(self) -> None:
        """Abort any settle delay in progress and skip pending passes."""
        self._stopping.set()

    # ------------------------------------------------------------------
    # Connection edges
    # ------------------------------------------------------------------

    def on_connected(self) -> None:
        self._context.state = ConnectionState.CONNECTED
        _logger.info("Connected to the simulator")
        if not self._full_random:
            self._provisioner.roll_spec_map()
            self._provisioner.reset_staging()

    async def on_disconnected(self) -> None:
        async with self._gate:
            self._context.state = ConnectionState.DISCONNECTED
            self._context.current_session_id = None
            self._cache.clear()
            _logger.info("Disconnected from the simulator")
            if self._cleanup is not None:
                try:
                    self._cleanup()
                except Exception:
                    _logger.exception("Cleanup after disconnect failed")

    # ------------------------------------------------------------------
    # Session updates
    # ------------------------------------------------------------------

    async def on_session_info(self, snapshot: SessionSnapshot) -> int:
        """Process one session-info update. Returns how many participants were provisioned."""
        if self._filtered(snapshot):
            return 0

        async with self._gate:
            return await self._guarded_update(snapshot)

    def _filtered(self, snapshot: SessionSnapshot) -> bool:
        if self._provisioner.options.only_races and not snapshot.is_race:
            _logger.debug("Ignoring %r session %s (OnlyRaces)", snapshot.event_type, snapshot.session_id)
            return True
        return False

    async def _guarded_update(self, snapshot: SessionSnapshot) -> int:
        try:
            return await self._update(snapshot)
        except Exception:
            _logger.exception("Session update %s failed", snapshot.session_id)
            return 0

    async def _update(self, snapshot: SessionSnapshot) -> int:
        context = self._context
        context.latest = snapshot
        context.local_slot_index = snapshot.local_slot

        if snapshot.session_id != context.current_session_id:
            context.current_session_id = snapshot.session_id
            _logger.info("New session! %s", snapshot.session_id)
            self._cache.clear()
            if not await self._settle():
                return 0

        return self.provisioning_pass(snapshot.participants, snapshot.local_slot)

    async def _settle(self) -> bool:
        """Wait the settle delay. Returns ``False`` if shutdown started meanwhile."""
        if self._settle_delay > 0:
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), self._settle_delay)
        return not self._stopping.is_set()

    def provisioning_pass(self, participants: tuple[ParticipantDescriptor, ...], local_slot: int) -> int:
        """Provision every participant not yet seen in this session.

        Enqueues one reload per new participant and, if there was at
        least one, a single batch sentinel after them.
        """
        if self._full_random:
            self._provisioner.roll_spec_map()

        added = 0
        try:
            for descriptor in participants:
                if not descriptor.is_participant or descriptor.slot_index == local_slot:
                    continue
                if not self._cache.should_provision(descriptor):
                    continue

                _logger.info(
                    "Added new driver %s to cache with car path: %s",
                    descriptor.identity,
                    descriptor.asset_path,
                )
                try:
                    self._provisioner.provision(descriptor)
                except Exception:
                    _logger.exception("Provisioning driver %s failed", descriptor.identity)
                    self._cache.discard(descriptor.identity)
                    continue
                self._dispatcher.enqueue(ReloadRequest.for_slot(descriptor.slot_index))
                added += 1
        finally:
            if added:
                self._dispatcher.enqueue(ReloadRequest.sentinel())
        return added

    async def rerun(self) -> bool:
        """Forget the current session and re-provision from the latest update.

        Returns ``False`` (and does nothing) when not connected.
        """
        if not self.connected:
            _logger.warning("Not connected to the simulator")
            return False

        async with self._gate:
            latest = self._context.latest
            if latest is None:
                _logger.info("No session info received yet")
                return False
            _logger.info("Re-running session %s", latest.session_id)
            self._context.current_session_id = None
            if not self._full_random:
                self._provisioner.roll_spec_map()
            if not self._filtered(latest):
                await self._guarded_update(latest)
        return True
