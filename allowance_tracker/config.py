import os
from decimal import Decimal, InvalidOperation

APP_VERSION = "1.0.0"

DEFAULT_SAVINGS_DEDUCTION = Decimal("100.00")
DEFAULT_DASHBOARD_TRANSACTION_LIMIT = 20


def get_database_url() -> str:
    return os.getenv("DATABASE_URL", "sqlite:///./allowance_tracker.db")


def get_frontend_origin() -> str:
    return os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def get_savings_deduction() -> Decimal:
    raw = os.getenv("SAVINGS_DEDUCTION")
    if not raw:
        return DEFAULT_SAVINGS_DEDUCTION
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        return DEFAULT_SAVINGS_DEDUCTION
    if not value.is_finite() or value < 0:
        return DEFAULT_SAVINGS_DEDUCTION
    return value.quantize(Decimal("0.01"))


def get_dashboard_transaction_limit() -> int:
    raw = os.getenv("DASHBOARD_TRANSACTION_LIMIT")
    if not raw:
        return DEFAULT_DASHBOARD_TRANSACTION_LIMIT
    try:
        value = int(raw)
    except ValueError:
        return DEFAULT_DASHBOARD_TRANSACTION_LIMIT
    if value <= 0:
        return DEFAULT_DASHBOARD_TRANSACTION_LIMIT
    return value
