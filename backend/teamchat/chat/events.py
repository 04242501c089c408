"""Pydantic schemas for real-time chat events.

Inbound frames are validated against a discriminated union keyed on the
``event`` field before they reach the session state machine. Anything
that does not match one of the known shapes is rejected with a single
uniform error.
"""
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from teamchat.errors import ChatValidationError

INVALID_PAYLOAD = "Invalid event payload"


# =============================================================================
# Handshake
# =============================================================================


class ConnectAuth(BaseModel):
    token: Optional[str] = None


class ConnectFrame(BaseModel):
    """First frame sent by a client after the socket opens."""
    event: Literal["connect"]
    auth: Optional[ConnectAuth] = None


# =============================================================================
# Client -> server
# =============================================================================


class JoinTeamEvent(BaseModel):
    event: Literal["join_team"]
    data: str


class SendMessageData(BaseModel):
    # Optional so that a missing field reaches the domain check
    teamId: Optional[str] = None
    text: Optional[str] = None


class SendMessageEvent(BaseModel):
    event: Literal["send_message"]
    data: SendMessageData


class LeaveTeamEvent(BaseModel):
    event: Literal["leave_team"]
    data: str


class TypingEvent(BaseModel):
    event: Literal["typing"]
    data: str


class StopTypingEvent(BaseModel):
    event: Literal["stop_typing"]
    data: str


ClientEvent = Annotated[
    Union[JoinTeamEvent, SendMessageEvent, LeaveTeamEvent, TypingEvent, StopTypingEvent],
    Field(discriminator="event"),
]

_client_event_adapter = TypeAdapter(ClientEvent)


def parse_client_event(frame: object) -> ClientEvent:
    """Validate a raw inbound frame.

    Raises:
        ChatValidationError: Unknown event name or malformed payload.
    """
    try:
        return _client_event_adapter.validate_python(frame)
    except ValidationError:
        raise ChatValidationError(INVALID_PAYLOAD)


def parse_connect_frame(frame: object) -> Optional[str]:
    """Extract ``auth.token`` from a handshake frame, if present.

    Raises:
        ChatValidationError: The frame is not a connect frame.
    """
    try:
        connect = ConnectFrame.model_validate(frame)
    except ValidationError:
        raise ChatValidationError(INVALID_PAYLOAD)
    return connect.auth.token if connect.auth else None


# =============================================================================
# Server -> client
# =============================================================================


class Connected(BaseModel):
    userId: str
    userName: str


class ActiveUsers(BaseModel):
    teamId: str
    users: List[str]
    count: int


class PresenceNotice(BaseModel):
    """Payload of user_joined / user_left."""
    userId: str
    userName: str
    timestamp: datetime


class TypingNotice(BaseModel):
    """Payload of user_typing / user_stop_typing."""
    userId: str
    userName: str


class MessageSent(BaseModel):
    success: bool = True
    messageId: str
    timestamp: datetime


class MessageDeleted(BaseModel):
    messageId: str
    teamId: str


class ErrorPayload(BaseModel):
    message: str
