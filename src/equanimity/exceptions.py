"""Custom exception hierarchy for equanimity."""

from __future__ import annotations


class EquanimityError(Exception):
    """Base exception for all equanimity errors."""


class EquanimityConfigError(EquanimityError):
    """Invalid or unreadable configuration."""


class EquanimityInstanceError(EquanimityError):
    """Another equanimity process already owns the lock file."""

    def __init__(self, message: str, *, lock_path: str = "", owner_pid: int | None = None) -> None:
        self.lock_path = lock_path
        self.owner_pid = owner_pid
        super().__init__(message)


class EquanimitySourceError(EquanimityError):
    """Telemetry source failure (not running, malformed session payload)."""


class EquanimityProvisionError(EquanimityError):
    """A single asset could not be provisioned.

    Carries the asset category and the destination path so the
    provisioner can log one line per failed asset and carry on.
    """

    def __init__(self, message: str, *, category: str = "", path: str = "") -> None:
        self.category = category
        self.path = path
        super().__init__(message)


class EquanimityReloadError(EquanimityError):
    """The simulator rejected or could not receive a reload request."""

    def __init__(self, message: str, *, slot: int | None = None) -> None:
        self.slot = slot
        super().__init__(message)
