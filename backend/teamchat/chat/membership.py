"""Room membership checks.

A room is the chat channel of one team. An identity may take part in it
when it is the team leader or one of the members. Membership is loaded
from the store on every call and never cached, so removals made by team
management take effect on the next event.
"""
import logging

from teamchat.errors import AuthorizationError, ChatValidationError, NotFoundError
from teamchat.store.schemas import Team, is_valid_id, same_id
from teamchat.store.service import ChatStore

logger = logging.getLogger(__name__)

INVALID_TEAM_ID = "Invalid team ID"
TEAM_NOT_FOUND = "Team not found"
ACCESS_DENIED = "Access denied: You are not a member of this team"


def is_member(team: Team, user_id: str) -> bool:
    """True if *user_id* is the leader of *team* or in its member list."""
    if same_id(team.leaderId, user_id):
        return True
    return any(same_id(member_id, user_id) for member_id in team.members)


class MembershipAuthority:
    """Resolves whether an identity may participate in a team's chat."""

    def __init__(self, store: ChatStore) -> None:
        self._store = store

    async def is_authorized(self, team_id: str, user_id: str) -> bool:
        """Return True iff the team exists and *user_id* belongs to it."""
        if not is_valid_id(team_id):
            return False
        team = await self._store.get_team(team_id)
        if team is None:
            return False
        return is_member(team, user_id)

    async def require_member(self, team_id: str, user_id: str) -> Team:
        """Load the team and check membership, raising on any failure.

        Raises:
            ChatValidationError: Malformed team id.
            NotFoundError: No such team.
            AuthorizationError: Caller is neither leader nor member.
        """
        if not is_valid_id(team_id):
            raise ChatValidationError(INVALID_TEAM_ID)
        team = await self._store.get_team(team_id)
        if team is None:
            raise NotFoundError(TEAM_NOT_FOUND)
        if not is_member(team, user_id):
            logger.info(f"[Membership] Denied user {user_id} for team {team_id}")
            raise AuthorizationError(ACCESS_DENIED)
        return team
