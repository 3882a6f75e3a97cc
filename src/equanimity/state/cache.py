"""Per-session participant cache."""

from __future__ import annotations

from equanimity.models import ParticipantDescriptor


class ParticipantCache:
    """Participants already provisioned in the current session, keyed by identity.

    Entries are only ever added; the whole mapping is dropped by
    :meth:`clear` when the session changes or the simulator disconnects.
    """

    def __init__(self) -> None:
        self._participants: dict[int, ParticipantDescriptor] = {}

    def should_provision(self, descriptor: ParticipantDescriptor) -> bool:
        """Record *descriptor* and return ``True`` the first time its identity is seen."""
        if descriptor.identity in self._participants:
            return False
        self._participants[descriptor.identity] = descriptor
        return True

    def discard(self, identity: int) -> None:
        """Forget *identity* so a later update provisions it again."""
        self._participants.pop(identity, None)

    def clear(self) -> None:
        self._participants.clear()

    def get(self, identity: int) -> ParticipantDescriptor | None:
        return self._participants.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._participants

    def __len__(self) -> int:
        return len(self._participants)
