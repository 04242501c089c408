"""Tests for bearer token handling and connection authentication."""
import asyncio
import uuid
from datetime import timedelta
from unittest.mock import AsyncMock

import jwt
import pytest

from teamchat.auth.service import (
    AUTH_FAILED,
    INVALID_TOKEN,
    NO_TOKEN,
    TOKEN_EXPIRED,
    USER_NOT_FOUND,
    ConnectionAuthenticator,
    TokenService,
)
from teamchat.errors import AuthenticationError


class TestTokenService:

    def test_issue_and_decode_round_trip(self):
        service = TokenService(secret="s3cret")
        claims = service.decode(service.issue("user-1"))
        assert claims["id"] == "user-1"
        assert claims["exp"] > claims["iat"]

    def test_decode_rejects_other_secret(self):
        token = TokenService(secret="one").issue("user-1")
        with pytest.raises(jwt.InvalidTokenError):
            TokenService(secret="two").decode(token)

    def test_decode_rejects_expired(self):
        service = TokenService(secret="s3cret")
        token = service.issue("user-1", expires_in=timedelta(seconds=-5))
        with pytest.raises(jwt.ExpiredSignatureError):
            service.decode(token)


class TestConnectionAuthenticator:

    def _authenticate(self, authenticator, token):
        return asyncio.run(authenticator.authenticate(token))

    def test_valid_token_resolves_identity(self, app, seeded, tokens):
        identity = self._authenticate(app.state.chat.authenticator, tokens.bob)
        assert identity.id == seeded.bob.id
        assert identity.name == "Bob"

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, app, token):
        with pytest.raises(AuthenticationError) as exc_info:
            self._authenticate(app.state.chat.authenticator, token)
        assert exc_info.value.message == NO_TOKEN
        assert exc_info.value.status_code == 401

    def test_garbage_token(self, app):
        with pytest.raises(AuthenticationError) as exc_info:
            self._authenticate(app.state.chat.authenticator, "not.a.jwt")
        assert exc_info.value.message == INVALID_TOKEN

    def test_wrong_signature(self, app, seeded):
        forged = TokenService(secret="attacker").issue(seeded.alice.id)
        with pytest.raises(AuthenticationError) as exc_info:
            self._authenticate(app.state.chat.authenticator, forged)
        assert exc_info.value.message == INVALID_TOKEN

    def test_expired_token(self, app, seeded):
        expired = app.state.chat.tokens.issue(seeded.alice.id, expires_in=timedelta(minutes=-1))
        with pytest.raises(AuthenticationError) as exc_info:
            self._authenticate(app.state.chat.authenticator, expired)
        assert exc_info.value.message == TOKEN_EXPIRED

    def test_unknown_user(self, app, seeded):
        ghost = app.state.chat.tokens.issue(str(uuid.uuid4()))
        with pytest.raises(AuthenticationError) as exc_info:
            self._authenticate(app.state.chat.authenticator, ghost)
        assert exc_info.value.message == USER_NOT_FOUND

    def test_store_failure_is_generic(self, seeded):
        tokens = TokenService(secret="s3cret")
        broken_store = AsyncMock()
        broken_store.get_user.side_effect = RuntimeError("db down")
        authenticator = ConnectionAuthenticator(tokens, broken_store)
        with pytest.raises(AuthenticationError) as exc_info:
            asyncio.run(authenticator.authenticate(tokens.issue(seeded.alice.id)))
        assert exc_info.value.message == AUTH_FAILED


class TestHttpAuthentication:
    """HTTP endpoints resolve the Authorization header the same way."""

    def test_missing_header_is_401(self, api_client, seeded):
        response = api_client.get(f"/chat/{seeded.team.id}")
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": NO_TOKEN}

    def test_invalid_token_is_401(self, api_client, seeded):
        response = api_client.get(
            f"/chat/{seeded.team.id}", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401
        assert response.json()["message"] == INVALID_TOKEN
