"""Income/expense rules over an account's running totals.

Each public method is one atomic unit: it opens its own ``engine.begin()``
block and every read and write it performs commits or rolls back together.
The expense guard is evaluated by the store inside the debiting UPDATE, so two
racing expenses against the same account cannot both pass it.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection, Engine

from allowance_tracker.category_catalog import DEFAULT_CATALOG, CategoryCatalog
from allowance_tracker.category_summary import seed_summaries, upsert_summary
from allowance_tracker.config import DEFAULT_SAVINGS_DEDUCTION
from allowance_tracker.errors import AccountNotFoundError
from allowance_tracker.money import ZERO, quantize_money, require_positive_amount, split_in_half
from allowance_tracker.schema import accounts, transactions, whole_cents

log = structlog.get_logger(__name__)

STATUS_SUCCESS = "SUCCESS"
STATUS_ERROR = "ERROR"

INSUFFICIENT_BALANCE = "Insufficient balance"


class TransactionKind:
    INCOME = "income"
    EXPENSE = "expense"
    values = {INCOME, EXPENSE}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid transaction kind.")
        return normalized


@dataclass(frozen=True)
class LedgerResult:
    accepted: bool
    message: str
    transaction_id: int | None = None

    @property
    def status(self) -> str:
        return STATUS_SUCCESS if self.accepted else STATUS_ERROR


@dataclass(frozen=True)
class AccountSnapshot:
    id: int
    name: str
    email: str
    monthly_allowance: Decimal
    current_balance: Decimal
    total_savings: Decimal
    total_spent: Decimal
    notes: str


def fetch_account(conn: Connection, account_id: int) -> AccountSnapshot:
    row = conn.execute(
        select(
            accounts.c.id,
            accounts.c.name,
            accounts.c.email,
            accounts.c.monthly_allowance,
            accounts.c.current_balance,
            accounts.c.total_savings,
            accounts.c.total_spent,
            accounts.c.notes,
        ).where(accounts.c.id == account_id)
    ).mappings().first()
    if not row:
        raise AccountNotFoundError(account_id)
    return AccountSnapshot(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        monthly_allowance=quantize_money(row["monthly_allowance"]),
        current_balance=quantize_money(row["current_balance"]),
        total_savings=quantize_money(row["total_savings"]),
        total_spent=quantize_money(row["total_spent"]),
        notes=row["notes"] or "",
    )


def account_exists(conn: Connection, account_id: int) -> bool:
    return conn.execute(select(accounts.c.id).where(accounts.c.id == account_id)).first() is not None


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


@dataclass
class AccountEngine:
    engine: Engine
    catalog: CategoryCatalog = DEFAULT_CATALOG
    savings_deduction: Decimal = DEFAULT_SAVINGS_DEDUCTION

    def create_account(self, name: str, email: str, allowance: Decimal) -> int:
        """Create an account, or refresh name/allowance when the email is taken.

        A new account starts with ``savings_deduction`` moved into savings and
        a zeroed summary row for every catalog category. Refreshing an existing
        account leaves its balances alone.
        """
        name = (name or "").strip()
        email = (email or "").strip().lower()
        if not name or not email:
            raise ValueError("Name and email required.")
        allowance = require_positive_amount(allowance)

        with self.engine.begin() as conn:
            existing_id = conn.execute(
                select(accounts.c.id).where(accounts.c.email == email)
            ).scalar_one_or_none()
            if existing_id is not None:
                conn.execute(
                    update(accounts)
                    .where(accounts.c.id == existing_id)
                    .values(name=name, monthly_allowance=allowance)
                )
                log.info("account_updated", account_id=existing_id)
                return existing_id

            savings = quantize_money(self.savings_deduction)
            starting_balance = allowance - savings
            if starting_balance <= ZERO:
                log.warning(
                    "allowance_not_above_savings_deduction",
                    allowance=str(allowance),
                    savings_deduction=str(savings),
                )
            account_id = conn.execute(
                insert(accounts)
                .values(
                    name=name,
                    email=email,
                    monthly_allowance=allowance,
                    current_balance=starting_balance,
                    total_savings=savings,
                    total_spent=ZERO,
                    notes="",
                )
                .returning(accounts.c.id)
            ).scalar_one()
            seed_summaries(conn, account_id, self.catalog.keys)

        log.info("account_created", account_id=account_id, starting_balance=str(starting_balance))
        return account_id

    def record_expense(
        self,
        account_id: int,
        category: str,
        amount: Decimal,
        description: str | None = None,
    ) -> LedgerResult:
        category = self.catalog.normalize(category)
        amount = require_positive_amount(amount)
        description = _clean_text(description)

        with self.engine.begin() as conn:
            debited = conn.execute(
                update(accounts)
                .where(accounts.c.id == account_id, accounts.c.current_balance >= amount)
                .values(
                    current_balance=whole_cents(accounts.c.current_balance - amount),
                    total_spent=whole_cents(accounts.c.total_spent + amount),
                )
            )
            if debited.rowcount == 0:
                if not account_exists(conn, account_id):
                    raise AccountNotFoundError(account_id)
                log.info(
                    "expense_rejected",
                    account_id=account_id,
                    category=category,
                    amount=str(amount),
                    reason=INSUFFICIENT_BALANCE,
                )
                return LedgerResult(accepted=False, message=INSUFFICIENT_BALANCE)

            transaction_id = conn.execute(
                insert(transactions)
                .values(
                    account_id=account_id,
                    kind=TransactionKind.EXPENSE,
                    category=category,
                    amount=amount,
                    description=description,
                )
                .returning(transactions.c.id)
            ).scalar_one()
            upsert_summary(conn, account_id, category, amount)

        log.info(
            "expense_recorded",
            account_id=account_id,
            transaction_id=transaction_id,
            category=category,
            amount=str(amount),
        )
        return LedgerResult(
            accepted=True,
            message="Expense added successfully",
            transaction_id=transaction_id,
        )

    def record_income(
        self,
        account_id: int,
        amount: Decimal,
        source: str | None = None,
        description: str | None = None,
    ) -> LedgerResult:
        """Credit income, half to the spendable balance and half to savings."""
        amount = require_positive_amount(amount)
        half = split_in_half(amount)
        source = _clean_text(source)
        description = _clean_text(description)

        with self.engine.begin() as conn:
            credited = conn.execute(
                update(accounts)
                .where(accounts.c.id == account_id)
                .values(
                    current_balance=whole_cents(accounts.c.current_balance + half),
                    total_savings=whole_cents(accounts.c.total_savings + half),
                )
            )
            if credited.rowcount == 0:
                raise AccountNotFoundError(account_id)
            transaction_id = conn.execute(
                insert(transactions)
                .values(
                    account_id=account_id,
                    kind=TransactionKind.INCOME,
                    category=None,
                    amount=amount,
                    source=source,
                    description=description,
                )
                .returning(transactions.c.id)
            ).scalar_one()

        log.info(
            "income_recorded",
            account_id=account_id,
            transaction_id=transaction_id,
            amount=str(amount),
            balance_delta=str(half),
            savings_delta=str(half),
        )
        return LedgerResult(
            accepted=True,
            message="Income added successfully",
            transaction_id=transaction_id,
        )

    def update_notes(self, account_id: int, notes: str | None) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(accounts).where(accounts.c.id == account_id).values(notes=notes or "")
            )
            if result.rowcount == 0:
                raise AccountNotFoundError(account_id)
        log.info("notes_updated", account_id=account_id)

    def get_account(self, account_id: int) -> AccountSnapshot:
        with self.engine.begin() as conn:
            return fetch_account(conn, account_id)
