"""Telemetry source interface.

A source delivers connection edges and session-info updates and accepts
reload requests. :class:`equanimity._irsdk.IRacingRuntime` is the
production implementation; tests pass simple doubles.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Callable
from enum import StrEnum
from typing import Protocol

from equanimity.models import SessionSnapshot


class SimEventKind(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    SESSION_INFO = "session_info"


@dataclasses.dataclass(frozen=True)
class SimEvent:
    """One notification from the simulator."""

    kind: SimEventKind
    snapshot: SessionSnapshot | None = None

    @classmethod
    def connected(cls) -> SimEvent:
        return cls(SimEventKind.CONNECTED)

    @classmethod
    def disconnected(cls) -> SimEvent:
        return cls(SimEventKind.DISCONNECTED)

    @classmethod
    def session_info(cls, snapshot: SessionSnapshot) -> SimEvent:
        return cls(SimEventKind.SESSION_INFO, snapshot)


class SimSource(Protocol):
    """Structural interface the application drives."""

    def start(self, on_event: Callable[[SimEvent], None]) -> None:
        """Begin delivering events. *on_event* is called on the event loop thread."""
        ...

    def stop(self) -> None: ...

    async def request_reload(self, slot: int | None) -> None:
        """Ask the simulator to reload paints for *slot*, or every car when ``None``."""
        ...
