"""Bearer token handling and connection authentication.

Tokens are HS256 JWTs signed with the shared secret from
``teamchat.secrets.yaml``. The subject user id travels in the ``id``
claim. Authentication resolves that id to a live user record, so a token
for a deleted account is refused even while it is still valid.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from pydantic import BaseModel

from teamchat.errors import AuthenticationError
from teamchat.store.service import ChatStore

logger = logging.getLogger(__name__)

# Refusal reasons reported to clients
NO_TOKEN = "No token provided"
INVALID_TOKEN = "Invalid token"
TOKEN_EXPIRED = "Token expired"
USER_NOT_FOUND = "User not found"
AUTH_FAILED = "Failed to authenticate"


class Identity(BaseModel):
    """Authenticated caller attached to a connection or request."""
    id: str
    name: str
    email: str = ""
    role: str = ""


class TokenService:
    """Issues and verifies signed bearer tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: str, expires_in: Optional[timedelta] = None) -> str:
        """Create a token for *user_id*.

        Args:
            user_id: Subject identity id.
            expires_in: Lifetime override (negative values produce an
                already-expired token).
        """
        lifetime = expires_in if expires_in is not None else timedelta(minutes=self.expire_minutes)
        now = datetime.now(timezone.utc)
        payload = {"id": str(user_id), "iat": now, "exp": now + lifetime}
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> dict:
        """Verify signature and expiry and return the claims.

        Raises:
            jwt.ExpiredSignatureError: Token is past its ``exp``.
            jwt.InvalidTokenError: Any other verification failure.
        """
        return jwt.decode(token, self.secret, algorithms=[self.algorithm])


class ConnectionAuthenticator:
    """Turns a bearer credential into an ``Identity``.

    Shared by the WebSocket handshake and the HTTP dependency so both
    surfaces refuse callers for the same reasons.
    """

    def __init__(self, tokens: TokenService, store: ChatStore):
        self._tokens = tokens
        self._store = store

    async def authenticate(self, token: Optional[str]) -> Identity:
        """Validate *token* and load the user it names.

        Raises:
            AuthenticationError: With one of the module-level reasons.
        """
        if not token:
            raise AuthenticationError(NO_TOKEN)

        try:
            claims = self._tokens.decode(token)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError(TOKEN_EXPIRED)
        except jwt.InvalidTokenError:
            raise AuthenticationError(INVALID_TOKEN)

        try:
            user = await self._store.get_user(str(claims.get("id", "")))
        except Exception as exc:
            logger.error(f"[Auth] User lookup failed: {exc}")
            raise AuthenticationError(AUTH_FAILED) from exc

        if user is None:
            raise AuthenticationError(USER_NOT_FOUND)

        return Identity(id=user.id, name=user.name, email=user.email, role=user.role.value)
