from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import structlog
from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from allowance_tracker.account_engine import AccountEngine, AccountSnapshot
from allowance_tracker.category_catalog import DEFAULT_CATALOG
from allowance_tracker.chat_log import ChatLog
from allowance_tracker.config import (
    APP_VERSION,
    get_dashboard_transaction_limit,
    get_database_url,
    get_frontend_origin,
    get_log_level,
    get_savings_deduction,
)
from allowance_tracker.errors import AccountNotFoundError
from allowance_tracker.logging_config import configure_logging
from allowance_tracker.projector import Projector, TransactionRecord
from allowance_tracker.schema import build_engine, init_db

configure_logging(get_log_level())
log = structlog.get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_frontend_origin()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@dataclass
class LedgerServices:
    engine: Engine
    accounts: AccountEngine
    projector: Projector
    chat: ChatLog


def build_services(engine: Engine) -> LedgerServices:
    return LedgerServices(
        engine=engine,
        accounts=AccountEngine(
            engine,
            catalog=DEFAULT_CATALOG,
            savings_deduction=get_savings_deduction(),
        ),
        projector=Projector(
            engine,
            catalog=DEFAULT_CATALOG,
            dashboard_transaction_limit=get_dashboard_transaction_limit(),
        ),
        chat=ChatLog(engine),
    )


services = build_services(build_engine(get_database_url()))


@app.on_event("startup")
def on_startup() -> None:
    init_db(services.engine)


@app.exception_handler(AccountNotFoundError)
def account_not_found_handler(request: Request, exc: AccountNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "User not found."})


@app.exception_handler(SQLAlchemyError)
def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    log.error("store_failure", path=request.url.path, error=exc.__class__.__name__, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


class LoginPayload(BaseModel):
    name: str
    email: str
    monthly_allowance: Decimal

    @classmethod
    def validate_payload(cls, payload: "LoginPayload") -> "LoginPayload":
        payload.name = payload.name.strip()
        payload.email = payload.email.strip().lower()
        if not payload.name or not payload.email:
            raise ValueError("All fields are required and allowance must be positive.")
        if payload.monthly_allowance <= 0:
            raise ValueError("All fields are required and allowance must be positive.")
        return payload


class AccountResponse(BaseModel):
    id: int
    name: str
    email: str
    monthly_allowance: Decimal
    current_balance: Decimal
    total_savings: Decimal
    total_spent: Decimal
    notes: str


class LoginResponse(BaseModel):
    success: bool
    message: str
    user: AccountResponse


class NotesPayload(BaseModel):
    notes: str | None = None


class ExpensePayload(BaseModel):
    amount: Decimal
    category: str
    description: str | None = None

    @classmethod
    def validate_payload(cls, payload: "ExpensePayload") -> "ExpensePayload":
        payload.category = payload.category.strip().lower()
        if payload.amount <= 0 or not payload.category:
            raise ValueError("Amount and category are required.")
        return payload


class IncomePayload(BaseModel):
    amount: Decimal
    source: str
    description: str | None = None

    @classmethod
    def validate_payload(cls, payload: "IncomePayload") -> "IncomePayload":
        payload.source = payload.source.strip()
        if payload.amount <= 0 or not payload.source:
            raise ValueError("Amount and source are required.")
        return payload


class LedgerResponse(BaseModel):
    success: bool
    message: str
    transaction_id: int | None = None


class TransactionResponse(BaseModel):
    id: int
    type: str
    category: str | None = None
    amount: Decimal
    description: str
    source: str | None = None
    date: datetime
    display_date: str


class CategoryTotalResponse(BaseModel):
    category: str
    label: str | None = None
    icon: str | None = None
    total_amount: Decimal
    transaction_count: int


class DashboardResponse(BaseModel):
    balance: Decimal
    savings: Decimal
    total_spent: Decimal
    expenses: dict[str, Decimal]
    categories: list[CategoryTotalResponse]
    notes: str
    transactions: list[TransactionResponse]
    user: AccountResponse


class CategoryTransactionsResponse(BaseModel):
    category: str
    total: Decimal
    count: int
    transactions: list[TransactionResponse]


class SpendingAnalysisResponse(BaseModel):
    monthly_allowance: Decimal
    current_balance: Decimal
    total_spent: Decimal
    total_savings: Decimal
    spent_percentage: Decimal
    spending_status: str


class ChatMessagePayload(BaseModel):
    message: str
    message_type: str


class ChatMessageResponse(BaseModel):
    type: str
    content: str
    timestamp: datetime


def get_user_id(x_user_id: str | None) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc


def to_account_response(account: AccountSnapshot) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        name=account.name,
        email=account.email,
        monthly_allowance=account.monthly_allowance,
        current_balance=account.current_balance,
        total_savings=account.total_savings,
        total_spent=account.total_spent,
        notes=account.notes,
    )


def to_transaction_response(record: TransactionRecord) -> TransactionResponse:
    return TransactionResponse(
        id=record.id,
        type=record.kind,
        category=record.category,
        amount=record.amount,
        description=record.description or "No description",
        source=record.source,
        date=record.transaction_date,
        display_date=record.display_date,
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "version": APP_VERSION}


@app.get("/categories")
def list_categories() -> dict:
    return {"success": True, "data": DEFAULT_CATALOG.as_display_map()}


@app.post("/auth/login", response_model=LoginResponse)
def login(payload: LoginPayload) -> LoginResponse:
    try:
        payload = LoginPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        account_id = services.accounts.create_account(
            payload.name, payload.email, payload.monthly_allowance
        )
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    account = services.accounts.get_account(account_id)
    return LoginResponse(success=True, message="Login successful", user=to_account_response(account))


@app.get("/users/me/dashboard", response_model=DashboardResponse)
def get_dashboard(x_user_id: str | None = Header(None, alias="x-user-id")) -> DashboardResponse:
    user_id = get_user_id(x_user_id)
    dashboard = services.projector.get_dashboard(user_id)
    account = dashboard.account
    return DashboardResponse(
        balance=account.current_balance,
        savings=account.total_savings,
        total_spent=account.total_spent,
        expenses={view.category: view.total_amount for view in dashboard.categories},
        categories=[
            CategoryTotalResponse(
                category=view.category,
                label=view.label,
                icon=view.icon,
                total_amount=view.total_amount,
                transaction_count=view.transaction_count,
            )
            for view in dashboard.categories
        ],
        notes=account.notes,
        transactions=[to_transaction_response(record) for record in dashboard.recent_transactions],
        user=to_account_response(account),
    )


@app.put("/users/me/notes")
def update_notes(
    payload: NotesPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> dict:
    user_id = get_user_id(x_user_id)
    services.accounts.update_notes(user_id, payload.notes)
    return {"success": True, "message": "Notes saved successfully"}


@app.post("/transactions/expense", response_model=LedgerResponse)
def add_expense(
    payload: ExpensePayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> LedgerResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = ExpensePayload.validate_payload(payload)
        result = services.accounts.record_expense(
            user_id, payload.category, payload.amount, payload.description
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not result.accepted:
        raise HTTPException(status_code=400, detail=result.message)
    return LedgerResponse(success=True, message=result.message, transaction_id=result.transaction_id)


@app.post("/transactions/income", response_model=LedgerResponse)
def add_income(
    payload: IncomePayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> LedgerResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = IncomePayload.validate_payload(payload)
        result = services.accounts.record_income(
            user_id, payload.amount, payload.source, payload.description
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return LedgerResponse(success=True, message=result.message, transaction_id=result.transaction_id)


@app.get("/transactions/category/{category}", response_model=CategoryTransactionsResponse)
def get_category_transactions(
    category: str,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> CategoryTransactionsResponse:
    user_id = get_user_id(x_user_id)
    result = services.projector.get_category_transactions(user_id, category)
    return CategoryTransactionsResponse(
        category=result.category,
        total=result.total,
        count=result.count,
        transactions=[to_transaction_response(record) for record in result.transactions],
    )


@app.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    limit: int = Query(50),
    offset: int = Query(0),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[TransactionResponse]:
    user_id = get_user_id(x_user_id)
    try:
        records = services.projector.list_transactions(user_id, limit=limit, offset=offset)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [to_transaction_response(record) for record in records]


@app.post("/chat/message")
def save_chat_message(
    payload: ChatMessagePayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> dict:
    user_id = get_user_id(x_user_id)
    try:
        services.chat.save_message(user_id, payload.message_type, payload.message)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"success": True, "message": "Chat message saved"}


@app.get("/chat/history", response_model=list[ChatMessageResponse])
def chat_history(x_user_id: str | None = Header(None, alias="x-user-id")) -> list[ChatMessageResponse]:
    user_id = get_user_id(x_user_id)
    return [
        ChatMessageResponse(type=message.message_type, content=message.content, timestamp=message.created_at)
        for message in services.chat.history(user_id)
    ]


@app.get("/analytics/spending", response_model=SpendingAnalysisResponse)
def spending_analysis(x_user_id: str | None = Header(None, alias="x-user-id")) -> SpendingAnalysisResponse:
    user_id = get_user_id(x_user_id)
    analysis = services.projector.get_spending_analysis(user_id)
    return SpendingAnalysisResponse(
        monthly_allowance=analysis.monthly_allowance,
        current_balance=analysis.current_balance,
        total_spent=analysis.total_spent,
        total_savings=analysis.total_savings,
        spent_percentage=analysis.spent_percentage,
        spending_status=analysis.status,
    )
