"""FastAPI dependency resolving the bearer token of an HTTP request."""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .service import Identity

_bearer = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Identity:
    """Authenticate the request the same way WebSocket connections are.

    Raises:
        AuthenticationError: Rendered as 401 by the app's error handler.
    """
    token = credentials.credentials if credentials else None
    return await request.app.state.chat.authenticator.authenticate(token)
