"""Builders and doubles shared by the test modules."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

from equanimity.models import ParticipantDescriptor, ReloadRequest, SessionSnapshot
from equanimity.options import Options
from equanimity.provisioner import ProvisionResult
from equanimity.source import SimEvent

CAR_FILES = {
    "car_common.tga": b"car",
    "car_spec_common.mip": b"spec",
    "car_num_common.tga": b"num",
    "decal_common.tga": b"decal",
    "helmet_common.tga": b"car-helmet",
    "suit_common.tga": b"car-suit",
}
GLOBAL_FILES = {
    "helmet_common.tga": b"global-helmet",
    "suit_common.tga": b"global-suit",
}


def make_car(paint_root: Path, car_path: str) -> Path:
    common = paint_root / car_path / "common"
    common.mkdir(parents=True, exist_ok=True)
    for name, content in CAR_FILES.items():
        (common / name).write_bytes(content)
    return common


def driver(identity: int, slot: int, path: str = "ovalA", **extra: object) -> ParticipantDescriptor:
    return ParticipantDescriptor(identity=identity, slot_index=slot, asset_path=path, **extra)


def snapshot(
    session_id: int,
    *participants: ParticipantDescriptor,
    local_slot: int = 0,
    event_type: str = "Race",
) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=session_id,
        event_type=event_type,
        local_slot=local_slot,
        participants=participants,
    )


class RecordingProvisioner:
    """Stands in for AssetProvisioner inside tracker tests."""

    def __init__(self, options: Options | None = None, *, fail_for: set[int] | None = None) -> None:
        self.options = options or Options()
        self.provisioned: list[int] = []
        self.spec_rolls = 0
        self.staging_resets = 0
        self.fail_for = fail_for or set()

    def roll_spec_map(self) -> bool:
        self.spec_rolls += 1
        return True

    def reset_staging(self) -> None:
        self.staging_resets += 1

    def provision(self, descriptor: ParticipantDescriptor) -> ProvisionResult:
        if descriptor.identity in self.fail_for:
            raise RuntimeError(f"boom {descriptor.identity}")
        self.provisioned.append(descriptor.identity)
        return ProvisionResult(identity=descriptor.identity)


class RecordingDispatcher:
    """Collects enqueued requests without draining them."""

    def __init__(self) -> None:
        self.requests: list[ReloadRequest] = []

    def enqueue(self, request: ReloadRequest) -> None:
        self.requests.append(request)

    @property
    def slots(self) -> list[int | None]:
        return [r.slot for r in self.requests if not r.batch_done]

    @property
    def sentinels(self) -> int:
        return sum(1 for r in self.requests if r.batch_done)


class FakeSource:
    """In-process SimSource double that records reload calls."""

    def __init__(self, *, connect_on_start: bool = False, reload_delay: float = 0.0) -> None:
        self.on_event: Callable[[SimEvent], None] | None = None
        self.reloads: list[int | None] = []
        self.started = 0
        self.stopped = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self._connect_on_start = connect_on_start
        self._reload_delay = reload_delay

    def start(self, on_event: Callable[[SimEvent], None]) -> None:
        self.started += 1
        self.on_event = on_event
        if self._connect_on_start:
            asyncio.get_running_loop().call_soon(on_event, SimEvent.connected())

    def stop(self) -> None:
        self.stopped += 1

    def emit(self, event: SimEvent) -> None:
        assert self.on_event is not None
        self.on_event(event)

    async def request_reload(self, slot: int | None) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._reload_delay:
                await asyncio.sleep(self._reload_delay)
            self.reloads.append(slot)
        finally:
            self.in_flight -= 1
