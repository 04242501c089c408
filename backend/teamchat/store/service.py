"""DuckDB-backed persistence for users, teams and chat messages.

The chat subsystem treats users and teams as collaborator data: it reads
them to authenticate connections and authorize room access, while team
membership itself is managed elsewhere. Messages are owned here.

Database Schema:
    users:          id, name, email, profile_picture, role, created_at
    teams:          id, name, leader_id, created_at
    team_members:   team_id, user_id               (PK on the pair)
    messages:       id, seq, sender_id, team_id, text, timestamp,
                    attachments (JSON), is_deleted
    message_reads:  message_id, user_id, read_at   (PK on the pair)

Concurrency:
    Every public method is a coroutine. The SQL runs on the default
    executor so the event loop keeps serving other connections while the
    store works. A lock serializes access to the single DuckDB connection;
    each call gets its own cursor.

Usage:
    store = ChatStore(":memory:")
    message = await store.create_message(sender_id, team_id, "hello")
    page = await store.list_messages(team_id, limit=50)
"""
import asyncio
import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import duckdb

from teamchat.errors import PersistenceError

from .schemas import (
    Attachment,
    Message,
    PopulatedMessage,
    ReadReceipt,
    SenderSummary,
    Team,
    User,
    UserRole,
    utcnow,
)

logger = logging.getLogger(__name__)

_SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        id              VARCHAR PRIMARY KEY,
        name            VARCHAR NOT NULL,
        email           VARCHAR NOT NULL UNIQUE,
        profile_picture VARCHAR,
        role            VARCHAR NOT NULL DEFAULT 'Student',
        created_at      TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS teams (
        id         VARCHAR PRIMARY KEY,
        name       VARCHAR NOT NULL DEFAULT '',
        leader_id  VARCHAR NOT NULL,
        created_at TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS team_members (
        team_id VARCHAR NOT NULL,
        user_id VARCHAR NOT NULL,
        PRIMARY KEY (team_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id          VARCHAR PRIMARY KEY,
        seq         BIGINT DEFAULT nextval('messages_seq'),
        sender_id   VARCHAR NOT NULL,
        team_id     VARCHAR NOT NULL,
        text        VARCHAR NOT NULL,
        timestamp   TIMESTAMP NOT NULL,
        attachments VARCHAR NOT NULL DEFAULT '[]',
        is_deleted  BOOLEAN NOT NULL DEFAULT FALSE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS message_reads (
        message_id VARCHAR NOT NULL,
        user_id    VARCHAR NOT NULL,
        read_at    TIMESTAMP NOT NULL,
        PRIMARY KEY (message_id, user_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_team_ts ON messages(team_id, timestamp)",
]

_MESSAGE_SELECT = """
    SELECT m.id, m.seq, m.sender_id, m.team_id, m.text, m.timestamp,
           m.attachments, m.is_deleted,
           u.id AS user_id, u.name AS user_name, u.email AS user_email,
           u.profile_picture AS user_picture, u.role AS user_role
    FROM messages m
    LEFT JOIN users u ON u.id = m.sender_id
"""


def _to_db_time(value: datetime) -> datetime:
    """Normalize to naive UTC for TIMESTAMP columns."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _from_db_time(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc)


class ChatStore:
    """Persistent store for chat messages and their collaborator records.

    Attributes:
        _db_path: Path to the DuckDB file, or ":memory:".
    """

    def __init__(self, db_path: str = "teamchat.duckdb") -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(db_path)
        for statement in _SCHEMA:
            self._connection.execute(statement)
        logger.info("[Store] Initialized with db=%s", db_path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # -----------------------------------------------------------------------
    # Execution helpers
    # -----------------------------------------------------------------------

    def _query(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            if self._connection is None:
                raise PersistenceError("Store is closed")
            cursor = self._connection.cursor()
            try:
                cursor.execute(sql, list(params))
                if cursor.description is None:
                    return []
                columns = [d[0] for d in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            finally:
                cursor.close()

    async def _run(self, fn, *args):
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, lambda: fn(*args))
        except duckdb.Error as exc:
            logger.error("[Store] %s failed: %s", fn.__name__, exc)
            raise PersistenceError() from exc

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    async def create_user(self, user: User) -> User:
        await self._run(self._insert_user, user)
        return user

    def _insert_user(self, user: User) -> None:
        self._query(
            """
            INSERT INTO users (id, name, email, profile_picture, role, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [user.id, user.name, user.email, user.profilePicture,
             user.role.value, _to_db_time(utcnow())],
        )

    async def get_user(self, user_id: str) -> Optional[User]:
        rows = await self._run(
            self._query,
            "SELECT id, name, email, profile_picture, role FROM users WHERE id = ?",
            [str(user_id)],
        )
        if not rows:
            return None
        row = rows[0]
        return User(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            profilePicture=row["profile_picture"],
            role=UserRole(row["role"]),
        )

    # -----------------------------------------------------------------------
    # Teams
    # -----------------------------------------------------------------------

    async def create_team(self, team: Team) -> Team:
        await self._run(self._insert_team, team)
        return team

    def _insert_team(self, team: Team) -> None:
        self._query(
            "INSERT INTO teams (id, name, leader_id, created_at) VALUES (?, ?, ?, ?)",
            [team.id, team.name, team.leaderId, _to_db_time(utcnow())],
        )
        for member_id in dict.fromkeys(team.members):
            self._query(
                "INSERT INTO team_members (team_id, user_id) VALUES (?, ?) ON CONFLICT DO NOTHING",
                [team.id, member_id],
            )

    async def get_team(self, team_id: str) -> Optional[Team]:
        """Load a team with its member list, always fresh from the store."""
        return await self._run(self._select_team, str(team_id))

    def _select_team(self, team_id: str) -> Optional[Team]:
        rows = self._query(
            "SELECT id, name, leader_id FROM teams WHERE id = ?", [team_id]
        )
        if not rows:
            return None
        members = self._query(
            "SELECT user_id FROM team_members WHERE team_id = ? ORDER BY user_id",
            [team_id],
        )
        return Team(
            id=rows[0]["id"],
            name=rows[0]["name"],
            leaderId=rows[0]["leader_id"],
            members=[m["user_id"] for m in members],
        )

    async def add_team_member(self, team_id: str, user_id: str) -> None:
        await self._run(
            self._query,
            "INSERT INTO team_members (team_id, user_id) VALUES (?, ?) ON CONFLICT DO NOTHING",
            [team_id, user_id],
        )

    async def remove_team_member(self, team_id: str, user_id: str) -> None:
        await self._run(
            self._query,
            "DELETE FROM team_members WHERE team_id = ? AND user_id = ?",
            [team_id, user_id],
        )

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    async def create_message(
        self,
        sender_id: str,
        team_id: str,
        text: str,
        timestamp: Optional[datetime] = None,
    ) -> Message:
        """Insert a new message as a single row.

        Raises:
            pydantic.ValidationError: If the text is empty or too long after trimming.
            PersistenceError: If the insert fails.
        """
        message = Message(
            senderId=sender_id,
            teamId=team_id,
            text=text,
            timestamp=timestamp or utcnow(),
        )
        await self._run(self._insert_message, message)
        logger.debug("[Store] Created message %s in team %s", message.id, team_id)
        return message

    def _insert_message(self, message: Message) -> None:
        self._query(
            """
            INSERT INTO messages (id, sender_id, team_id, text, timestamp, attachments, is_deleted)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                message.id, message.senderId, message.teamId, message.text,
                _to_db_time(message.timestamp),
                json.dumps([a.model_dump() for a in message.attachments]),
                message.isDeleted,
            ],
        )

    async def get_message(self, message_id: str) -> Optional[PopulatedMessage]:
        """Load one message with its sender attached (deleted or not)."""
        return await self._run(self._select_message, str(message_id))

    def _select_message(self, message_id: str) -> Optional[PopulatedMessage]:
        rows = self._query(_MESSAGE_SELECT + " WHERE m.id = ?", [message_id])
        if not rows:
            return None
        reads = self._select_reads([message_id])
        return self._row_to_message(rows[0], reads.get(message_id, []))

    async def get_message_record(self, message_id: str) -> Optional[Message]:
        """Load one message with the raw sender id (no populate)."""
        return await self._run(self._select_message_record, str(message_id))

    def _select_message_record(self, message_id: str) -> Optional[Message]:
        rows = self._query(
            """
            SELECT id, sender_id, team_id, text, timestamp, attachments, is_deleted
            FROM messages WHERE id = ?
            """,
            [message_id],
        )
        if not rows:
            return None
        row = rows[0]
        return Message(
            id=row["id"],
            senderId=row["sender_id"],
            teamId=row["team_id"],
            text=row["text"],
            timestamp=_from_db_time(row["timestamp"]),
            readBy=self._select_reads([message_id]).get(message_id, []),
            attachments=[Attachment(**a) for a in json.loads(row["attachments"] or "[]")],
            isDeleted=bool(row["is_deleted"]),
        )

    async def list_messages(
        self,
        team_id: str,
        limit: int,
        before: Optional[datetime] = None,
    ) -> List[PopulatedMessage]:
        """List non-deleted messages of a team, newest first.

        Args:
            team_id: The team (room) id.
            limit: Maximum number of messages to return.
            before: Only return messages strictly older than this time.

        Returns:
            Messages ordered by timestamp descending, insertion order breaking ties.
        """
        return await self._run(self._select_messages, str(team_id), limit, before)

    def _select_messages(
        self, team_id: str, limit: int, before: Optional[datetime]
    ) -> List[PopulatedMessage]:
        sql = _MESSAGE_SELECT + " WHERE m.team_id = ? AND NOT m.is_deleted"
        params: List[Any] = [team_id]
        if before is not None:
            sql += " AND m.timestamp < ?"
            params.append(_to_db_time(before))
        sql += " ORDER BY m.timestamp DESC, m.seq DESC LIMIT ?"
        params.append(limit)
        rows = self._query(sql, params)
        reads = self._select_reads([r["id"] for r in rows])
        return [self._row_to_message(r, reads.get(r["id"], [])) for r in rows]

    async def soft_delete(self, message_id: str) -> bool:
        """Flag a message as deleted. Returns False if it does not exist."""
        rows = await self._run(
            self._query,
            "UPDATE messages SET is_deleted = TRUE WHERE id = ? RETURNING id",
            [str(message_id)],
        )
        return bool(rows)

    async def mark_read(self, team_id: str, user_id: str, message_ids: List[str]) -> int:
        """Append a read receipt for *user_id* to each matching message.

        Only messages belonging to *team_id* are touched, and a user is
        recorded at most once per message. Repeated calls are no-ops.

        Returns:
            Number of receipts added by this call.
        """
        ids = list(dict.fromkeys(str(m) for m in message_ids))
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        rows = await self._run(
            self._query,
            f"""
            INSERT INTO message_reads (message_id, user_id, read_at)
            SELECT id, ?, ? FROM messages
            WHERE team_id = ? AND id IN ({placeholders})
            ON CONFLICT DO NOTHING
            RETURNING message_id
            """,
            [str(user_id), _to_db_time(utcnow()), str(team_id), *ids],
        )
        return len(rows)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _select_reads(self, message_ids: List[str]) -> Dict[str, List[ReadReceipt]]:
        if not message_ids:
            return {}
        placeholders = ", ".join("?" for _ in message_ids)
        rows = self._query(
            f"""
            SELECT message_id, user_id, read_at FROM message_reads
            WHERE message_id IN ({placeholders})
            ORDER BY read_at ASC, user_id ASC
            """,
            message_ids,
        )
        reads: Dict[str, List[ReadReceipt]] = {}
        for row in rows:
            reads.setdefault(row["message_id"], []).append(
                ReadReceipt(userId=row["user_id"], readAt=_from_db_time(row["read_at"]))
            )
        return reads

    @staticmethod
    def _row_to_message(row: Dict[str, Any], reads: List[ReadReceipt]) -> PopulatedMessage:
        sender = None
        if row.get("user_id") is not None:
            sender = SenderSummary(
                id=row["user_id"],
                name=row["user_name"],
                email=row["user_email"],
                profilePicture=row["user_picture"],
                role=UserRole(row["user_role"]),
            )
        return PopulatedMessage(
            id=row["id"],
            senderId=sender,
            teamId=row["team_id"],
            text=row["text"],
            timestamp=_from_db_time(row["timestamp"]),
            readBy=reads,
            attachments=[Attachment(**a) for a in json.loads(row["attachments"] or "[]")],
            isDeleted=bool(row["is_deleted"]),
        )
