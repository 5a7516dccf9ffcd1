from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from allowance_tracker.account_engine import account_exists
from allowance_tracker.errors import AccountNotFoundError
from allowance_tracker.schema import chat_messages

DEFAULT_HISTORY_LIMIT = 50


class MessageType:
    values = {"user", "ai"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid message type.")
        return normalized


@dataclass(frozen=True)
class ChatMessage:
    message_type: str
    content: str
    created_at: datetime


@dataclass
class ChatLog:
    engine: Engine

    def save_message(self, account_id: int, message_type: str, content: str) -> int:
        message_type = MessageType.validate(message_type or "")
        if not content or not content.strip():
            raise ValueError("Message content required.")
        with self.engine.begin() as conn:
            if not account_exists(conn, account_id):
                raise AccountNotFoundError(account_id)
            return conn.execute(
                insert(chat_messages)
                .values(account_id=account_id, message_type=message_type, message_content=content)
                .returning(chat_messages.c.id)
            ).scalar_one()

    def history(self, account_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> list[ChatMessage]:
        """The newest ``limit`` messages, returned oldest first."""
        if limit <= 0:
            raise ValueError("limit must be greater than zero.")
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(chat_messages.c.message_type, chat_messages.c.message_content, chat_messages.c.created_at)
                .where(chat_messages.c.account_id == account_id)
                .order_by(chat_messages.c.created_at.desc(), chat_messages.c.id.desc())
                .limit(limit)
            ).all()
        return [
            ChatMessage(message_type=row.message_type, content=row.message_content, created_at=row.created_at)
            for row in reversed(rows)
        ]
