"""Tests for the in-memory presence tracker."""
from teamchat.chat.presence import PresenceTracker


class TestPresenceTracker:

    def test_add_is_idempotent(self):
        tracker = PresenceTracker()
        tracker.add_to_room("room-1", "u1")
        tracker.add_to_room("room-1", "u1")
        assert tracker.list_room("room-1") == ["u1"]

    def test_list_unknown_room_is_empty(self):
        assert PresenceTracker().list_room("nope") == []

    def test_remove_drops_empty_room_entry(self):
        tracker = PresenceTracker()
        tracker.add_to_room("room-1", "u1")
        assert tracker.remove_from_room("room-1", "u1") is True
        assert tracker.room_count() == 0

    def test_remove_keeps_room_with_remaining_members(self):
        tracker = PresenceTracker()
        tracker.add_to_room("room-1", "u1")
        tracker.add_to_room("room-1", "u2")
        tracker.remove_from_room("room-1", "u1")
        assert tracker.list_room("room-1") == ["u2"]
        assert tracker.room_count() == 1

    def test_remove_absent_identity_returns_false(self):
        tracker = PresenceTracker()
        tracker.add_to_room("room-1", "u1")
        assert tracker.remove_from_room("room-1", "u2") is False
        assert tracker.remove_from_room("room-2", "u1") is False

    def test_rooms_for_identity(self):
        tracker = PresenceTracker()
        tracker.add_to_room("room-1", "u1")
        tracker.add_to_room("room-2", "u1")
        tracker.add_to_room("room-2", "u2")
        assert sorted(tracker.rooms_for("u1")) == ["room-1", "room-2"]
        assert tracker.rooms_for("u2") == ["room-2"]
        assert tracker.rooms_for("u3") == []

    def test_instances_do_not_share_state(self):
        first = PresenceTracker()
        second = PresenceTracker()
        first.add_to_room("room-1", "u1")
        assert second.list_room("room-1") == []
        assert not second.is_present("room-1", "u1")
