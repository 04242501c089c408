"""Pydantic schemas for persisted chat records.

Field names follow the wire format (camelCase) so that records can be
dumped straight into WebSocket events and HTTP responses.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

# Upper bound enforced on stored message text (after trimming)
MAX_MESSAGE_LENGTH = 5000


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def is_valid_id(value: object) -> bool:
    """Check that *value* is a well-formed record identifier (UUID string)."""
    if not isinstance(value, str) or not value:
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def same_id(a: object, b: object) -> bool:
    """Compare identifiers by their normalized string form.

    UUIDs arriving as ``uuid.UUID`` objects, upper-case strings or braced
    strings must compare equal to their canonical lower-case form.
    """
    if a is None or b is None:
        return False
    try:
        return uuid.UUID(str(a)) == uuid.UUID(str(b))
    except ValueError:
        return str(a).strip() == str(b).strip()


class UserRole(str, Enum):
    """Platform role of a user account."""
    STUDENT = "Student"
    STARTUP = "Startup"
    ADMIN = "Admin"


class User(BaseModel):
    """Identity record as exposed to chat (no credentials)."""
    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    profilePicture: Optional[str] = None
    role: UserRole = UserRole.STUDENT


class SenderSummary(BaseModel):
    """Sender details attached to a message on read."""
    id: str
    name: str
    email: str
    profilePicture: Optional[str] = None
    role: UserRole


class Team(BaseModel):
    """A team; its chat room is keyed by the team id.

    Attributes:
        leaderId: The room owner.
        members: Member identity ids (the leader is not required to be listed).
    """
    id: str = Field(default_factory=new_id)
    name: str = ""
    leaderId: str
    members: List[str] = Field(default_factory=list)


class ReadReceipt(BaseModel):
    userId: str
    readAt: datetime


class Attachment(BaseModel):
    type: str
    url: str


class Message(BaseModel):
    """A persisted chat message.

    Messages are never physically removed; ``isDeleted`` hides them from
    history reads.
    """
    id: str = Field(default_factory=new_id)
    senderId: str
    teamId: str
    text: str
    timestamp: datetime = Field(default_factory=utcnow)
    readBy: List[ReadReceipt] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    isDeleted: bool = False

    @field_validator("text")
    @classmethod
    def _trimmed_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message cannot be empty")
        if len(value) > MAX_MESSAGE_LENGTH:
            raise ValueError(
                f"Message too long (max {MAX_MESSAGE_LENGTH} characters)"
            )
        return value


class PopulatedMessage(BaseModel):
    """Message as sent to clients, with the sender summary in place of the id.

    ``senderId`` is None when the sender account no longer exists.
    """
    id: str
    senderId: Optional[SenderSummary]
    teamId: str
    text: str
    timestamp: datetime
    readBy: List[ReadReceipt] = Field(default_factory=list)
    attachments: List[Attachment] = Field(default_factory=list)
    isDeleted: bool = False
