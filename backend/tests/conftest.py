"""Shared test fixtures and configuration for backend tests."""
import asyncio
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from teamchat.config import AppSettings, ChatSettings, JWTSecrets, Secrets
from teamchat.main import create_app
from teamchat.store.schemas import Team, User, UserRole
from teamchat.store.service import ChatStore

TEST_SECRET = "test-secret"


@pytest.fixture
def settings():
    """Settings with a short handshake timeout and a fixed JWT secret."""
    return AppSettings(
        chat=ChatSettings(handshake_timeout_seconds=2.0),
        secrets=Secrets(jwt=JWTSecrets(secret_key=TEST_SECRET)),
    )


@pytest.fixture
def store():
    """Fresh in-memory DuckDB store per test."""
    chat_store = ChatStore(db_path=":memory:")
    yield chat_store
    chat_store.close()


@pytest.fixture
def app(settings, store):
    return create_app(settings, store)


@pytest.fixture
def api_client(app):
    """Provide a TestClient for an isolated app instance."""
    return TestClient(app)


@pytest.fixture
def seeded(store):
    """Users and a team: alice leads, bob is a member, carol is an outsider."""
    alice = User(name="Alice", email="alice@startup.io", role=UserRole.STARTUP)
    bob = User(name="Bob", email="bob@uni.edu", role=UserRole.STUDENT,
               profilePicture="https://cdn.example.com/bob.png")
    carol = User(name="Carol", email="carol@uni.edu", role=UserRole.STUDENT)
    team = Team(name="Rocket", leaderId=alice.id, members=[bob.id])
    other_team = Team(name="Other", leaderId=carol.id)

    async def _seed():
        for user in (alice, bob, carol):
            await store.create_user(user)
        await store.create_team(team)
        await store.create_team(other_team)

    asyncio.run(_seed())
    return SimpleNamespace(alice=alice, bob=bob, carol=carol, team=team, other_team=other_team)


@pytest.fixture
def tokens(app, seeded):
    """Bearer tokens for the seeded users, keyed by name."""
    service = app.state.chat.tokens
    return SimpleNamespace(
        alice=service.issue(seeded.alice.id),
        bob=service.issue(seeded.bob.id),
        carol=service.issue(seeded.carol.id),
    )