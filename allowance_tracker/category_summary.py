"""Per-(account, category) running totals of accepted expenses.

Rows are only ever incremented. Every function here takes an open connection
so it joins the caller's transaction; the expense path relies on that to keep
the summary and the transaction log in step.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from sqlalchemy import insert, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.engine import Connection

from allowance_tracker.money import ZERO, quantize_money
from allowance_tracker.schema import category_summaries, whole_cents


@dataclass(frozen=True)
class CategorySummary:
    category: str
    total_amount: Decimal
    transaction_count: int


def seed_summaries(conn: Connection, account_id: int, categories: Iterable[str]) -> None:
    rows = [
        {
            "account_id": account_id,
            "category": category,
            "total_amount": ZERO,
            "transaction_count": 0,
        }
        for category in categories
    ]
    if rows:
        conn.execute(insert(category_summaries), rows)


def upsert_summary(conn: Connection, account_id: int, category: str, amount: Decimal) -> None:
    amount = quantize_money(amount)
    values = {
        "account_id": account_id,
        "category": category,
        "total_amount": amount,
        "transaction_count": 1,
    }
    increments = {
        "total_amount": whole_cents(category_summaries.c.total_amount + amount),
        "transaction_count": category_summaries.c.transaction_count + 1,
    }
    dialect_name = conn.dialect.name

    if dialect_name in ("sqlite", "postgresql"):
        dialect_insert = sqlite.insert if dialect_name == "sqlite" else postgresql.insert
        stmt = dialect_insert(category_summaries).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[category_summaries.c.account_id, category_summaries.c.category],
            set_=increments,
        )
        conn.execute(stmt)
        return

    if dialect_name in ("mysql", "mariadb"):
        stmt = mysql.insert(category_summaries).values(**values)
        conn.execute(stmt.on_duplicate_key_update(**increments))
        return

    # Other backends: increment first, insert only when nothing matched.
    result = conn.execute(
        update(category_summaries)
        .where(
            category_summaries.c.account_id == account_id,
            category_summaries.c.category == category,
        )
        .values(**increments)
    )
    if result.rowcount == 0:
        conn.execute(insert(category_summaries).values(**values))


def get_summary(conn: Connection, account_id: int, category: str) -> CategorySummary:
    row = conn.execute(
        select(category_summaries.c.total_amount, category_summaries.c.transaction_count).where(
            category_summaries.c.account_id == account_id,
            category_summaries.c.category == category,
        )
    ).first()
    if not row:
        return CategorySummary(category=category, total_amount=ZERO, transaction_count=0)
    return CategorySummary(
        category=category,
        total_amount=quantize_money(row.total_amount),
        transaction_count=row.transaction_count,
    )


def list_summaries(conn: Connection, account_id: int) -> list[CategorySummary]:
    rows = conn.execute(
        select(
            category_summaries.c.category,
            category_summaries.c.total_amount,
            category_summaries.c.transaction_count,
        )
        .where(category_summaries.c.account_id == account_id)
        .order_by(category_summaries.c.total_amount.desc(), category_summaries.c.category.asc())
    ).all()
    return [
        CategorySummary(
            category=row.category,
            total_amount=quantize_money(row.total_amount),
            transaction_count=row.transaction_count,
        )
        for row in rows
    ]
