"""Chat server: owns the shared state of one chat-serving process.

Presence and transport rooms belong to the server instance rather than to
module globals, so separate apps (e.g. in tests) never share state.
"""
from typing import Optional

from fastapi import WebSocket

from teamchat.auth.service import ConnectionAuthenticator, Identity, TokenService
from teamchat.config import AppSettings
from teamchat.store.service import ChatStore

from .manager import ConnectionManager
from .membership import MembershipAuthority
from .presence import PresenceTracker
from .service import ChatHistoryService
from .session import ChatSession


class ChatServer:
    """Wires the chat components together."""

    def __init__(
        self,
        store: ChatStore,
        settings: AppSettings,
        presence: Optional[PresenceTracker] = None,
        hub: Optional[ConnectionManager] = None,
    ) -> None:
        self.store = store
        self.settings = settings
        self.presence = presence or PresenceTracker()
        self.hub = hub or ConnectionManager()
        self.tokens = TokenService(
            secret=settings.secrets.jwt.secret_key,
            algorithm=settings.auth.jwt_algorithm,
            expire_minutes=settings.auth.token_expire_minutes,
        )
        self.authenticator = ConnectionAuthenticator(self.tokens, store)
        self.membership = MembershipAuthority(store)
        self.history = ChatHistoryService(store, self.membership, self.hub, settings.chat)

    def open_session(self, websocket: WebSocket, identity: Identity) -> ChatSession:
        return ChatSession(
            websocket,
            identity,
            hub=self.hub,
            presence=self.presence,
            membership=self.membership,
            store=self.store,
            settings=self.settings.chat,
        )
