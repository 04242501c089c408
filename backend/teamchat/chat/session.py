"""Per-connection chat session state machine.

States:
    connected     authenticated, not in any room
    in_room       joined to exactly one room (``current_room``)
    disconnected  terminal; further events are ignored

Transitions are driven by ``dispatch()``:

    join_team(R)       connected|in_room -> in_room(R)   (leaves the old room first)
    leave_team(R)      in_room(R)        -> connected    (ignored unless R is current)
    send_message       any live state, re-authorized on every call
    typing/stop_typing in_room(R)        -> in_room(R)   (ignored unless R is current)
    disconnect         any               -> disconnected

Failures are reported to the originating connection only, as an
``error`` event; nothing is written before validation and authorization
succeed.
"""
import logging
from enum import Enum
from typing import Any, Optional

from fastapi import WebSocket

from teamchat.auth.service import Identity
from teamchat.config import ChatSettings
from teamchat.errors import ChatError, ChatValidationError, PersistenceError
from teamchat.store.schemas import is_valid_id, utcnow
from teamchat.store.service import ChatStore

from .events import (
    ActiveUsers,
    ClientEvent,
    ErrorPayload,
    JoinTeamEvent,
    LeaveTeamEvent,
    MessageSent,
    PresenceNotice,
    SendMessageEvent,
    StopTypingEvent,
    TypingEvent,
    TypingNotice,
    parse_client_event,
)
from .manager import ConnectionManager
from .membership import INVALID_TEAM_ID, MembershipAuthority
from .presence import PresenceTracker

logger = logging.getLogger(__name__)

MISSING_FIELDS = "Team ID and message text are required"
EMPTY_MESSAGE = "Message cannot be empty"
JOIN_FAILED = "Failed to join team chat"
SEND_FAILED = "Failed to send message"


class SessionState(str, Enum):
    CONNECTED = "connected"
    IN_ROOM = "in_room"
    DISCONNECTED = "disconnected"


def _json(model) -> Any:
    return model.model_dump(mode="json")


class ChatSession:
    """Lifecycle of one authenticated WebSocket connection.

    Attributes:
        identity: The authenticated caller.
        state: Current SessionState.
        current_room: Joined room id while in_room, else None.
    """

    def __init__(
        self,
        websocket: WebSocket,
        identity: Identity,
        *,
        hub: ConnectionManager,
        presence: PresenceTracker,
        membership: MembershipAuthority,
        store: ChatStore,
        settings: ChatSettings,
    ) -> None:
        self.websocket = websocket
        self.identity = identity
        self.state = SessionState.CONNECTED
        self.current_room: Optional[str] = None
        self._hub = hub
        self._presence = presence
        self._membership = membership
        self._store = store
        self._settings = settings
        self._handlers = {
            JoinTeamEvent: self._on_join_team,
            SendMessageEvent: self._on_send_message,
            LeaveTeamEvent: self._on_leave_team,
            TypingEvent: self._on_typing,
            StopTypingEvent: self._on_typing,
        }

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle_frame(self, frame: object) -> None:
        """Validate a raw inbound frame and dispatch it."""
        if self.state is SessionState.DISCONNECTED:
            return
        try:
            event = parse_client_event(frame)
        except ChatValidationError as exc:
            logger.debug("[Session] Rejected frame from %s: %s", self.identity.id, frame)
            await self._emit_error(exc.message)
            return
        try:
            await self.dispatch(event)
        except Exception:
            logger.exception(f"[Session] Unhandled error in {event.event} from {self.identity.id}")
            await self._emit_error(f"Failed to process {event.event}")

    async def dispatch(self, event: ClientEvent) -> None:
        """Run the handler for an already-validated event."""
        if self.state is SessionState.DISCONNECTED:
            return
        await self._handlers[type(event)](event)

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_join_team(self, event: JoinTeamEvent) -> None:
        team_id = event.data
        try:
            await self._membership.require_member(team_id, self.identity.id)
        except PersistenceError:
            await self._emit_error(JOIN_FAILED)
            return
        except ChatError as exc:
            await self._emit_error(exc.message)
            return

        if self.current_room is not None and self.current_room != team_id:
            await self._leave_current_room()

        self._hub.join(self.websocket, team_id)
        self.current_room = team_id
        self.state = SessionState.IN_ROOM
        self._presence.add_to_room(team_id, self.identity.id)
        logger.info(f"[Session] User {self.identity.name} joined team: {team_id}")

        await self._hub.broadcast_except(
            "user_joined", _json(self._presence_notice()), team_id, self.websocket
        )
        users = self._presence.list_room(team_id)
        await self._hub.send(
            self.websocket,
            "active_users",
            _json(ActiveUsers(teamId=team_id, users=users, count=len(users))),
        )

    async def _on_send_message(self, event: SendMessageEvent) -> None:
        team_id = event.data.teamId
        raw_text = event.data.text

        if not team_id or not raw_text:
            await self._emit_error(MISSING_FIELDS)
            return
        if not is_valid_id(team_id):
            await self._emit_error(INVALID_TEAM_ID)
            return
        text = raw_text.strip()
        if not text:
            await self._emit_error(EMPTY_MESSAGE)
            return
        limit = self._settings.max_message_length
        if len(text) > limit:
            await self._emit_error(f"Message too long (max {limit} characters)")
            return

        try:
            # Re-checked on every send: membership may change mid-session
            await self._membership.require_member(team_id, self.identity.id)
            message = await self._store.create_message(self.identity.id, team_id, text, utcnow())
            populated = await self._store.get_message(message.id)
            if populated is None:
                raise PersistenceError("Message vanished after insert")
        except PersistenceError as exc:
            logger.error(f"[Session] send_message failed for {self.identity.id}: {exc.message}")
            await self._emit_error(SEND_FAILED)
            return
        except ChatError as exc:
            await self._emit_error(exc.message)
            return

        logger.info(f"[Session] Message sent by {self.identity.name} to team {team_id}")
        await self._hub.broadcast("receive_message", _json(populated), team_id)
        await self._hub.send(
            self.websocket,
            "message_sent",
            _json(MessageSent(messageId=message.id, timestamp=message.timestamp)),
        )

    async def _on_leave_team(self, event: LeaveTeamEvent) -> None:
        if self.current_room is None or event.data != self.current_room:
            logger.debug(
                "[Session] Ignoring leave_team(%s) from %s; current room is %s",
                event.data, self.identity.id, self.current_room,
            )
            return
        await self._leave_current_room()

    async def _on_typing(self, event) -> None:
        if self.current_room is None or event.data != self.current_room:
            return
        name = "user_typing" if isinstance(event, TypingEvent) else "user_stop_typing"
        notice = TypingNotice(userId=self.identity.id, userName=self.identity.name)
        await self._hub.broadcast_except(name, _json(notice), self.current_room, self.websocket)

    # =========================================================================
    # Disconnect
    # =========================================================================

    async def disconnect(self) -> None:
        """Tear the session down. Never raises.

        Removes the identity from every room it is tracked in and tells the
        remaining members it left.
        """
        if self.state is SessionState.DISCONNECTED:
            return
        self.state = SessionState.DISCONNECTED
        self.current_room = None
        self._hub.remove_connection(self.websocket)

        for room_id in self._presence.rooms_for(self.identity.id):
            try:
                self._presence.remove_from_room(room_id, self.identity.id)
                await self._hub.broadcast("user_left", _json(self._presence_notice()), room_id)
            except Exception:
                logger.exception(f"[Session] Cleanup failed for room {room_id}")

        logger.info(f"[Session] User disconnected: {self.identity.name} ({self.identity.id})")

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _leave_current_room(self) -> None:
        room_id = self.current_room
        self._hub.leave(self.websocket, room_id)
        self.current_room = None
        self.state = SessionState.CONNECTED
        self._presence.remove_from_room(room_id, self.identity.id)
        logger.info(f"[Session] User {self.identity.name} left team: {room_id}")
        await self._hub.broadcast("user_left", _json(self._presence_notice()), room_id)

    def _presence_notice(self) -> PresenceNotice:
        return PresenceNotice(
            userId=self.identity.id,
            userName=self.identity.name,
            timestamp=utcnow(),
        )

    async def _emit_error(self, message: str) -> None:
        await self._hub.send(self.websocket, "error", _json(ErrorPayload(message=message)))
