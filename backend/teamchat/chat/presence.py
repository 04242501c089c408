"""In-memory presence tracking.

Maps each room id to the set of identity ids currently connected and
joined to it. The state lives for the life of the process only and is
rebuilt from live connections; a deployment with more than one chat
process needs a shared registry instead.

Thread Safety:
    Mutated only from event handlers on the single event loop, so no
    locking is done here.
"""
from typing import Dict, List, Set


class PresenceTracker:
    """Room id -> connected identity ids. One instance per chat server."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Set[str]] = {}

    def add_to_room(self, room_id: str, identity_id: str) -> None:
        """Record *identity_id* as present in *room_id* (idempotent)."""
        self._rooms.setdefault(room_id, set()).add(identity_id)

    def remove_from_room(self, room_id: str, identity_id: str) -> bool:
        """Remove *identity_id* from *room_id*.

        The room entry is dropped once its set is empty.

        Returns:
            True if the identity was present.
        """
        members = self._rooms.get(room_id)
        if members is None or identity_id not in members:
            return False
        members.discard(identity_id)
        if not members:
            del self._rooms[room_id]
        return True

    def list_room(self, room_id: str) -> List[str]:
        """Snapshot of the identities present in *room_id* (sorted)."""
        return sorted(self._rooms.get(room_id, ()))

    def rooms_for(self, identity_id: str) -> List[str]:
        """Rooms in which *identity_id* is currently present."""
        return [room_id for room_id, members in self._rooms.items() if identity_id in members]

    def is_present(self, room_id: str, identity_id: str) -> bool:
        return identity_id in self._rooms.get(room_id, ())

    def room_count(self) -> int:
        return len(self._rooms)
