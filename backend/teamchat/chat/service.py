"""Chat history operations for the request/response surface.

These work without a live connection: any authorized member can page
through stored messages, delete their own messages and record reads.
"""
import logging
from datetime import datetime
from typing import List, Optional

from teamchat.config import ChatSettings
from teamchat.errors import AuthorizationError, ChatValidationError, NotFoundError
from teamchat.store.schemas import is_valid_id, same_id
from teamchat.store.service import ChatStore

from .events import MessageDeleted
from .manager import ConnectionManager
from .membership import MembershipAuthority

logger = logging.getLogger(__name__)

INVALID_TEAM_ID_FORMAT = "Invalid team ID format"
INVALID_MESSAGE_ID_FORMAT = "Invalid message ID format"
INVALID_MESSAGE_IDS = "Invalid message IDs"
MESSAGE_NOT_FOUND = "Message not found"
NOT_SENDER = "Access denied: You can only delete your own messages"


class ChatHistoryService:
    """History retrieval, soft deletion and read receipts."""

    def __init__(
        self,
        store: ChatStore,
        membership: MembershipAuthority,
        hub: ConnectionManager,
        settings: ChatSettings,
    ) -> None:
        self._store = store
        self._membership = membership
        self._hub = hub
        self._settings = settings

    async def get_history(
        self,
        team_id: str,
        caller_id: str,
        limit: Optional[int] = None,
        before: Optional[datetime] = None,
    ) -> dict:
        """Return the most recent non-deleted messages, oldest first.

        Args:
            team_id: Room to read.
            caller_id: Authenticated caller; must be leader or member.
            limit: Page size (defaults to ``history_limit``, capped at
                ``max_history_limit``).
            before: Cursor; only messages strictly older are returned.

        Returns:
            dict with success, count, teamId, messages and hasMore.
        """
        if not is_valid_id(team_id):
            raise ChatValidationError(INVALID_TEAM_ID_FORMAT)
        await self._membership.require_member(team_id, caller_id)

        page_size = min(limit or self._settings.history_limit, self._settings.max_history_limit)
        # One extra row tells us whether an older page exists
        newest_first = await self._store.list_messages(team_id, page_size + 1, before)
        has_more = len(newest_first) > page_size
        messages = list(reversed(newest_first[:page_size]))

        return {
            "success": True,
            "count": len(messages),
            "teamId": team_id,
            "messages": [m.model_dump(mode="json") for m in messages],
            "hasMore": has_more,
        }

    async def delete_message(self, message_id: str, caller_id: str) -> None:
        """Soft-delete a message; only its sender may do so.

        Connected members of the room are told via ``message_deleted``.
        """
        if not is_valid_id(message_id):
            raise ChatValidationError(INVALID_MESSAGE_ID_FORMAT)

        message = await self._store.get_message_record(message_id)
        if message is None:
            raise NotFoundError(MESSAGE_NOT_FOUND)
        if not same_id(message.senderId, caller_id):
            raise AuthorizationError(NOT_SENDER)

        await self._store.soft_delete(message_id)
        logger.info(f"[History] Message {message_id} deleted by {caller_id}")

        notice = MessageDeleted(messageId=message.id, teamId=message.teamId)
        await self._hub.broadcast("message_deleted", notice.model_dump(mode="json"), message.teamId)

    async def mark_read(
        self, team_id: str, caller_id: str, message_ids: Optional[List[str]]
    ) -> int:
        """Record that *caller_id* has read the given messages of a room.

        Returns:
            Number of new read receipts written.
        """
        if not message_ids:
            raise ChatValidationError(INVALID_MESSAGE_IDS)
        if not is_valid_id(team_id):
            raise ChatValidationError(INVALID_TEAM_ID_FORMAT)
        await self._membership.require_member(team_id, caller_id)

        added = await self._store.mark_read(team_id, caller_id, message_ids)
        logger.debug(f"[History] {caller_id} marked {added} message(s) read in {team_id}")
        return added
