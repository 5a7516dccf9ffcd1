import os
import tempfile
import unittest
from concurrent.futures import ThreadPoolExecutor
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import func, select, update

from allowance_tracker.account_engine import AccountEngine
from allowance_tracker.category_catalog import DEFAULT_CATALOG
from allowance_tracker.category_summary import get_summary, list_summaries
from allowance_tracker.errors import AccountNotFoundError
from allowance_tracker.schema import accounts, transactions
from allowance_tracker.tests.support import file_engine, memory_engine


def count_transactions(engine, account_id: int) -> int:
    with engine.begin() as conn:
        return conn.execute(
            select(func.count()).select_from(transactions).where(transactions.c.account_id == account_id)
        ).scalar_one()


class AccountEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = memory_engine()
        self.ledger = AccountEngine(self.engine)

    def test_create_account_reserves_savings_and_seeds_summaries(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("5000.00"))

        account = self.ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("4900.00"))
        self.assertEqual(account.total_savings, Decimal("100.00"))
        self.assertEqual(account.total_spent, Decimal("0.00"))
        self.assertEqual(account.monthly_allowance, Decimal("5000.00"))
        with self.engine.begin() as conn:
            summaries = list_summaries(conn, account_id)
        self.assertEqual(sorted(item.category for item in summaries), sorted(DEFAULT_CATALOG.keys))
        for item in summaries:
            self.assertEqual(item.total_amount, Decimal("0.00"))
            self.assertEqual(item.transaction_count, 0)

    def test_create_account_with_known_email_updates_in_place(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("5000"))
        self.ledger.record_expense(account_id, "food", Decimal("40"), "lunch")

        again = self.ledger.create_account("Demo Renamed", " DEMO@x.com ", Decimal("6000"))

        self.assertEqual(again, account_id)
        account = self.ledger.get_account(account_id)
        self.assertEqual(account.name, "Demo Renamed")
        self.assertEqual(account.monthly_allowance, Decimal("6000.00"))
        self.assertEqual(account.current_balance, Decimal("4860.00"))
        self.assertEqual(account.total_savings, Decimal("100.00"))

    def test_create_account_validates_input(self) -> None:
        with self.assertRaises(ValueError):
            self.ledger.create_account("Demo", "demo@x.com", Decimal("0"))
        with self.assertRaises(ValueError):
            self.ledger.create_account("", "demo@x.com", Decimal("10"))
        with self.assertRaises(ValueError):
            self.ledger.create_account("Demo", "  ", Decimal("10"))

    def test_allowance_below_deduction_is_accepted(self) -> None:
        account_id = self.ledger.create_account("Low", "low@x.com", Decimal("50"))

        account = self.ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("-50.00"))
        self.assertEqual(account.total_savings, Decimal("100.00"))

    def test_savings_deduction_is_configurable(self) -> None:
        ledger = AccountEngine(self.engine, savings_deduction=Decimal("250"))

        account_id = ledger.create_account("Demo", "demo@x.com", Decimal("1000"))

        account = ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("750.00"))
        self.assertEqual(account.total_savings, Decimal("250.00"))

    def test_expense_over_balance_is_rejected_without_changes(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))

        result = self.ledger.record_expense(account_id, "food", Decimal("150.00"), "")

        self.assertFalse(result.accepted)
        self.assertEqual(result.status, "ERROR")
        self.assertEqual(result.message, "Insufficient balance")
        self.assertIsNone(result.transaction_id)
        account = self.ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("100.00"))
        self.assertEqual(account.total_spent, Decimal("0.00"))
        self.assertEqual(count_transactions(self.engine, account_id), 0)
        with self.engine.begin() as conn:
            food = get_summary(conn, account_id, "food")
        self.assertEqual(food.total_amount, Decimal("0.00"))
        self.assertEqual(food.transaction_count, 0)

    def test_expense_within_balance_debits_and_summarizes(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))

        result = self.ledger.record_expense(account_id, "food", Decimal("40.00"), "lunch")

        self.assertTrue(result.accepted)
        self.assertEqual(result.status, "SUCCESS")
        self.assertIsNotNone(result.transaction_id)
        account = self.ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("60.00"))
        self.assertEqual(account.total_spent, Decimal("40.00"))
        with self.engine.begin() as conn:
            food = get_summary(conn, account_id, "food")
            row = conn.execute(
                select(transactions).where(transactions.c.id == result.transaction_id)
            ).mappings().one()
        self.assertEqual(food.total_amount, Decimal("40.00"))
        self.assertEqual(food.transaction_count, 1)
        self.assertEqual(row["kind"], "expense")
        self.assertEqual(row["category"], "food")
        self.assertEqual(row["description"], "lunch")

    def test_expense_equal_to_balance_is_accepted(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))

        result = self.ledger.record_expense(account_id, "shopping", Decimal("100"))

        self.assertTrue(result.accepted)
        self.assertEqual(self.ledger.get_account(account_id).current_balance, Decimal("0.00"))

    def test_expense_validation_happens_before_store_access(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))

        with self.assertRaises(ValueError):
            self.ledger.record_expense(account_id, "food", Decimal("0"))
        with self.assertRaises(ValueError):
            self.ledger.record_expense(account_id, "travel", Decimal("5"))
        self.assertEqual(count_transactions(self.engine, account_id), 0)

    def test_income_splits_evenly_between_balance_and_savings(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))
        with self.engine.begin() as conn:
            conn.execute(
                update(accounts)
                .where(accounts.c.id == account_id)
                .values(current_balance=Decimal("0"), total_savings=Decimal("0"))
            )

        result = self.ledger.record_income(account_id, Decimal("1000.00"), "freelancing", "")

        self.assertTrue(result.accepted)
        account = self.ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("500.00"))
        self.assertEqual(account.total_savings, Decimal("500.00"))
        self.assertEqual(account.total_spent, Decimal("0.00"))

    def test_income_with_odd_cent_gives_both_halves_the_rounded_value(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))

        self.ledger.record_income(account_id, Decimal("10.01"), "gift")

        account = self.ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("105.01"))
        self.assertEqual(account.total_savings, Decimal("105.01"))

    def test_update_notes(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))

        self.ledger.update_notes(account_id, "save for a bike")

        account = self.ledger.get_account(account_id)
        self.assertEqual(account.notes, "save for a bike")
        self.assertEqual(account.current_balance, Decimal("100.00"))

    def test_unknown_account_raises_not_found(self) -> None:
        with self.assertRaises(AccountNotFoundError):
            self.ledger.record_expense(999, "food", Decimal("1"))
        with self.assertRaises(AccountNotFoundError):
            self.ledger.record_income(999, Decimal("1"))
        with self.assertRaises(AccountNotFoundError):
            self.ledger.update_notes(999, "hello")
        with self.assertRaises(AccountNotFoundError):
            self.ledger.get_account(999)

    def test_balances_reconcile_against_transaction_log(self) -> None:
        allowance = Decimal("1000.00")
        account_id = self.ledger.create_account("Demo", "demo@x.com", allowance)
        operations = [
            ("expense", "food", Decimal("120.35")),
            ("income", None, Decimal("75.55")),
            ("expense", "shopping", Decimal("900.00")),
            ("expense", "food", Decimal("0.10")),
            ("income", None, Decimal("0.03")),
            ("expense", "social", Decimal("60.20")),
            ("expense", "food", Decimal("5000.00")),
        ]
        accepted_expenses = []
        income_halves = Decimal("0")
        for kind, category, amount in operations:
            if kind == "expense":
                if self.ledger.record_expense(account_id, category, amount).accepted:
                    accepted_expenses.append((category, amount))
            else:
                self.ledger.record_income(account_id, amount)
                income_halves += (amount / 2).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

        account = self.ledger.get_account(account_id)
        spent = sum((amount for _, amount in accepted_expenses), Decimal("0"))
        self.assertEqual(account.total_spent, spent)
        self.assertEqual(
            account.current_balance + account.total_spent,
            allowance - Decimal("100.00") + income_halves,
        )
        with self.engine.begin() as conn:
            for category in DEFAULT_CATALOG.keys:
                expected = [amount for name, amount in accepted_expenses if name == category]
                summary = get_summary(conn, account_id, category)
                self.assertEqual(summary.total_amount, sum(expected, Decimal("0")))
                self.assertEqual(summary.transaction_count, len(expected))


class ConcurrentExpenseTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.engine = file_engine(os.path.join(self.tmpdir.name, "ledger.db"))
        self.ledger = AccountEngine(self.engine)

    def tearDown(self) -> None:
        self.engine.dispose()
        self.tmpdir.cleanup()

    def test_racing_expenses_never_overdraw(self) -> None:
        account_id = self.ledger.create_account("Demo", "demo@x.com", Decimal("200"))

        def spend(_: int) -> bool:
            return self.ledger.record_expense(account_id, "food", Decimal("30.00")).accepted

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(spend, range(10)))

        self.assertEqual(outcomes.count(True), 3)
        self.assertEqual(outcomes.count(False), 7)
        account = self.ledger.get_account(account_id)
        self.assertEqual(account.current_balance, Decimal("10.00"))
        self.assertEqual(account.total_spent, Decimal("90.00"))
        self.assertEqual(count_transactions(self.engine, account_id), 3)
        with self.engine.begin() as conn:
            food = get_summary(conn, account_id, "food")
        self.assertEqual(food.total_amount, Decimal("90.00"))
        self.assertEqual(food.transaction_count, 3)


if __name__ == "__main__":
    unittest.main()
