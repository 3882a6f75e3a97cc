"""Data models for simulator session payloads and reload requests.

Session payloads arrive as the simulator's YAML session-info sections,
already decoded into nested dicts with PascalCase keys. The models accept
both those keys and the snake_case field names so tests and callers can
build them directly.
"""

from __future__ import annotations

import dataclasses
from typing import Any

from pydantic import AliasChoices, AliasPath, BaseModel, ConfigDict, Field, field_validator

RACE_EVENT_TYPE = "Race"


class ParticipantDescriptor(BaseModel):
    """Read-only snapshot of one entry in ``DriverInfo.Drivers``."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    identity: int = Field(validation_alias=AliasChoices("UserID", "identity"))
    """Stable per-person id. Values below 1 are not real participants."""
    slot_index: int = Field(validation_alias=AliasChoices("CarIdx", "slot_index"))
    """Current simulation slot."""
    asset_path: str = Field(default="", validation_alias=AliasChoices("CarPath", "asset_path"))
    """Car folder name under the paint root, shared by everyone in the same car."""
    display_number: int = Field(default=0, validation_alias=AliasChoices("CarNumberRaw", "display_number"))
    user_name: str = Field(default="", validation_alias=AliasChoices("UserName", "user_name"))
    is_spectator: bool = Field(default=False, validation_alias=AliasChoices("IsSpectator", "is_spectator"))
    is_pace_car: bool = Field(default=False, validation_alias=AliasChoices("CarIsPaceCar", "is_pace_car"))

    @field_validator("asset_path")
    @classmethod
    def _normalize_asset_path(cls, value: str) -> str:
        # The simulator reports paths like "dallarair18"; some payloads carry
        # backslash-separated sub-folders.
        return value.strip().replace("\\", "/").strip("/")

    @property
    def is_participant(self) -> bool:
        """Whether this entry is a real competitor at all."""
        return self.identity >= 1 and not self.is_spectator and not self.is_pace_car


class SessionSnapshot(BaseModel):
    """Everything the tracker needs from one session-info update."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    session_id: int = Field(
        validation_alias=AliasChoices(AliasPath("WeekendInfo", "SubSessionID"), "session_id"),
    )
    event_type: str = Field(
        default="",
        validation_alias=AliasChoices(AliasPath("WeekendInfo", "EventType"), "event_type"),
    )
    local_slot: int = Field(
        validation_alias=AliasChoices(AliasPath("DriverInfo", "DriverCarIdx"), "local_slot"),
    )
    participants: tuple[ParticipantDescriptor, ...] = Field(
        default=(),
        validation_alias=AliasChoices(AliasPath("DriverInfo", "Drivers"), "participants"),
    )

    @property
    def is_race(self) -> bool:
        return self.event_type.strip().lower() == RACE_EVENT_TYPE.lower()

    @classmethod
    def from_session_info(cls, weekend_info: dict[str, Any], driver_info: dict[str, Any]) -> SessionSnapshot:
        """Build a snapshot from the two raw session-info sections."""
        return cls.model_validate({"WeekendInfo": weekend_info, "DriverInfo": driver_info})


@dataclasses.dataclass(frozen=True, slots=True)
class ReloadRequest:
    """One unit of work for the reload dispatcher.

    ``slot`` is the car slot to reload. The batch sentinel has
    ``batch_done`` set and no slot; it marks that every request of a
    provisioning pass has been queued ahead of it.
    """

    slot: int | None = None
    batch_done: bool = False

    @classmethod
    def for_slot(cls, slot: int) -> ReloadRequest:
        return cls(slot=slot)

    @classmethod
    def sentinel(cls) -> ReloadRequest:
        return cls(batch_done=True)
