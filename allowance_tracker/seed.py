import argparse
from decimal import Decimal

import structlog
from sqlalchemy import select

from allowance_tracker.account_engine import AccountEngine
from allowance_tracker.config import get_database_url, get_log_level, get_savings_deduction
from allowance_tracker.logging_config import configure_logging
from allowance_tracker.schema import accounts, build_engine, init_db

log = structlog.get_logger(__name__)

DEMO_EMAIL = "demo@example.com"


def seed_sample_data(ledger: AccountEngine) -> int | None:
    """Create the demo account with a few transactions. Returns None if it already exists."""
    with ledger.engine.begin() as conn:
        existing = conn.execute(select(accounts.c.id).where(accounts.c.email == DEMO_EMAIL)).first()
    if existing:
        log.info("sample_data_skipped", account_id=existing[0])
        return None

    account_id = ledger.create_account("Demo User", DEMO_EMAIL, Decimal("5000.00"))
    ledger.record_expense(account_id, "food", Decimal("250.00"), "Lunch at college cafeteria")
    ledger.record_expense(account_id, "shopping", Decimal("800.00"), "Bought new books and stationery")
    ledger.record_income(account_id, Decimal("1000.00"), "freelancing", "Web development project")
    log.info("sample_data_created", account_id=account_id)
    return account_id


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Create the ledger schema.")
    parser.add_argument("--database-url", default=get_database_url())
    parser.add_argument("--sample-data", action="store_true", help="Also create a demo account.")
    args = parser.parse_args(argv)

    configure_logging(get_log_level())
    engine = build_engine(args.database_url)
    init_db(engine)
    log.info("schema_ready", database_url=engine.url.render_as_string(hide_password=True))
    if args.sample_data:
        seed_sample_data(AccountEngine(engine, savings_deduction=get_savings_deduction()))


if __name__ == "__main__":
    main()
