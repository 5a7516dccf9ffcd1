from typing import Any

from sqlalchemy import (
    Column,
    ColumnElement,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), unique=True, nullable=False),
    Column("monthly_allowance", Numeric(12, 2), nullable=False),
    Column("current_balance", Numeric(12, 2), nullable=False, server_default="0"),
    Column("total_savings", Numeric(12, 2), nullable=False, server_default="0"),
    Column("total_spent", Numeric(12, 2), nullable=False, server_default="0"),
    Column("notes", Text),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
    Column("updated_at", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("kind", String(20), nullable=False),
    Column("category", String(100)),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("description", Text),
    Column("source", String(100)),
    Column("transaction_date", DateTime, nullable=False, server_default=func.now()),
    Index("ix_transactions_account_date", "account_id", "transaction_date"),
)

category_summaries = Table(
    "category_summaries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("category", String(100), nullable=False),
    Column("total_amount", Numeric(12, 2), nullable=False, server_default="0"),
    Column("transaction_count", Integer, nullable=False, server_default="0"),
    Column("last_updated", DateTime, nullable=False, server_default=func.now(), onupdate=func.now()),
    UniqueConstraint("account_id", "category", name="uq_category_summaries_account_category"),
)

chat_messages = Table(
    "chat_messages",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("message_type", String(10), nullable=False),
    Column("message_content", Text, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    return create_engine(database_url, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)


def whole_cents(expr: ColumnElement[Any]) -> ColumnElement[Any]:
    """Wrap a money expression so the stored value stays on whole cents."""
    return func.round(expr, 2)
