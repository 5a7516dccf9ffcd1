from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.engine import Engine

from allowance_tracker.account_engine import AccountSnapshot, TransactionKind, account_exists, fetch_account
from allowance_tracker.category_catalog import DEFAULT_CATALOG, CategoryCatalog
from allowance_tracker.category_summary import get_summary, list_summaries
from allowance_tracker.config import DEFAULT_DASHBOARD_TRANSACTION_LIMIT
from allowance_tracker.errors import AccountNotFoundError
from allowance_tracker.money import ZERO, quantize_money
from allowance_tracker.schema import transactions

HUNDRED = Decimal("100")
GOOD_THRESHOLD = Decimal("50")
MODERATE_THRESHOLD = Decimal("75")
MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class TransactionRecord:
    id: int
    kind: str
    category: str | None
    amount: Decimal
    description: str | None
    source: str | None
    transaction_date: datetime

    @property
    def display_date(self) -> str:
        return format_display_date(self.transaction_date)


@dataclass(frozen=True)
class CategorySummaryView:
    category: str
    label: str | None
    icon: str | None
    total_amount: Decimal
    transaction_count: int


@dataclass(frozen=True)
class Dashboard:
    account: AccountSnapshot
    categories: list[CategorySummaryView]
    recent_transactions: list[TransactionRecord]


@dataclass(frozen=True)
class SpendingAnalysis:
    monthly_allowance: Decimal
    current_balance: Decimal
    total_spent: Decimal
    total_savings: Decimal
    spent_percentage: Decimal
    status: str


@dataclass(frozen=True)
class CategoryTransactions:
    category: str
    total: Decimal
    count: int
    transactions: list[TransactionRecord]


def format_display_date(value: datetime) -> str:
    return value.strftime("%d %B %Y at %I:%M %p")


def spent_percentage(total_spent: Decimal, monthly_allowance: Decimal) -> Decimal:
    if monthly_allowance <= ZERO:
        raise ValueError("monthly_allowance must be greater than zero.")
    return quantize_money(total_spent / monthly_allowance * HUNDRED)


def classify_spending(percentage: Decimal) -> str:
    if percentage < GOOD_THRESHOLD:
        return "GOOD"
    if percentage < MODERATE_THRESHOLD:
        return "MODERATE"
    return "HIGH"


def _to_record(row) -> TransactionRecord:
    return TransactionRecord(
        id=row["id"],
        kind=row["kind"],
        category=row["category"],
        amount=quantize_money(row["amount"]),
        description=row["description"],
        source=row["source"],
        transaction_date=row["transaction_date"],
    )


def _newest_first(stmt):
    return stmt.order_by(transactions.c.transaction_date.desc(), transactions.c.id.desc())


@dataclass
class Projector:
    """Read-only views over the ledger. Nothing here writes."""

    engine: Engine
    catalog: CategoryCatalog = DEFAULT_CATALOG
    dashboard_transaction_limit: int = DEFAULT_DASHBOARD_TRANSACTION_LIMIT

    def get_dashboard(self, account_id: int) -> Dashboard:
        with self.engine.begin() as conn:
            account = fetch_account(conn, account_id)
            summaries = list_summaries(conn, account_id)
            rows = conn.execute(
                _newest_first(select(transactions).where(transactions.c.account_id == account_id)).limit(
                    self.dashboard_transaction_limit
                )
            ).mappings().all()

        views = []
        for summary in summaries:
            entry = self.catalog.get(summary.category)
            views.append(
                CategorySummaryView(
                    category=summary.category,
                    label=entry.label if entry else None,
                    icon=entry.icon if entry else None,
                    total_amount=summary.total_amount,
                    transaction_count=summary.transaction_count,
                )
            )
        return Dashboard(
            account=account,
            categories=views,
            recent_transactions=[_to_record(row) for row in rows],
        )

    def get_spending_analysis(self, account_id: int) -> SpendingAnalysis:
        with self.engine.begin() as conn:
            account = fetch_account(conn, account_id)
        # Status follows the displayed (rounded) percentage: 49.996 shows as 50.00 and is MODERATE.
        percentage = spent_percentage(account.total_spent, account.monthly_allowance)
        return SpendingAnalysis(
            monthly_allowance=account.monthly_allowance,
            current_balance=account.current_balance,
            total_spent=account.total_spent,
            total_savings=account.total_savings,
            spent_percentage=percentage,
            status=classify_spending(percentage),
        )

    def get_category_transactions(self, account_id: int, category: str) -> CategoryTransactions:
        category = category.strip().lower()
        with self.engine.begin() as conn:
            if not account_exists(conn, account_id):
                raise AccountNotFoundError(account_id)
            summary = get_summary(conn, account_id, category)
            rows = conn.execute(
                _newest_first(
                    select(transactions).where(
                        transactions.c.account_id == account_id,
                        transactions.c.kind == TransactionKind.EXPENSE,
                        transactions.c.category == category,
                    )
                )
            ).mappings().all()
        return CategoryTransactions(
            category=category,
            total=summary.total_amount,
            count=summary.transaction_count,
            transactions=[_to_record(row) for row in rows],
        )

    def list_transactions(self, account_id: int, limit: int = 50, offset: int = 0) -> list[TransactionRecord]:
        if limit <= 0 or limit > MAX_PAGE_SIZE:
            raise ValueError(f"limit must be between 1 and {MAX_PAGE_SIZE}.")
        if offset < 0:
            raise ValueError("offset must not be negative.")
        with self.engine.begin() as conn:
            if not account_exists(conn, account_id):
                raise AccountNotFoundError(account_id)
            rows = conn.execute(
                _newest_first(select(transactions).where(transactions.c.account_id == account_id))
                .limit(limit)
                .offset(offset)
            ).mappings().all()
        return [_to_record(row) for row in rows]
