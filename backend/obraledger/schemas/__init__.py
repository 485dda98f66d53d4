"""
Pydantic Schemas for API Validation
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional, Dict
from datetime import datetime, date
import datetime as dt
from decimal import Decimal
from enum import Enum


# ==================== ENUMS ====================

class AccountTypeEnum(str, Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class CurrencyEnum(str, Enum):
    PESOS = "PESOS"
    USD = "USD"
    EUR = "EUR"


class CheckStatusEnum(str, Enum):
    ISSUED = "ISSUED"
    PENDING = "PENDING"
    CLEARED = "CLEARED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class TransactionTypeEnum(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class EntryDirectionEnum(str, Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


# ==================== AUTH SCHEMAS ====================

class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    full_name: Optional[str] = None
    role: str
    is_superuser: bool
    organization_id: int

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    message: str


class AuditLogResponse(BaseModel):
    id: int
    timestamp: datetime
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    description: Optional[str] = None
    new_values: Optional[str] = None
    username: Optional[str] = None
    status: str

    model_config = ConfigDict(from_attributes=True)


# ==================== ACCOUNT SCHEMAS ====================

class AccountBase(BaseModel):
    code: str = Field(..., min_length=1, max_length=30)
    name: str = Field(..., min_length=1, max_length=255)
    type: AccountTypeEnum
    sub_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None


class AccountCreate(AccountBase):
    parent_id: Optional[int] = None
    currency: Optional[CurrencyEnum] = None


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    sub_type: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    is_active: Optional[bool] = None


class AccountSummary(BaseModel):
    id: int
    code: str
    name: str
    type: str

    model_config = ConfigDict(from_attributes=True)


class AccountResponse(BaseModel):
    id: int
    code: str
    name: str
    type: str
    sub_type: Optional[str] = None
    currency: str
    description: Optional[str] = None
    is_active: bool
    parent_id: Optional[int] = None
    organization_id: int
    created_at: datetime
    parent: Optional[AccountSummary] = None

    model_config = ConfigDict(from_attributes=True)


class AccountWithChildren(AccountResponse):
    children: List[AccountSummary] = []


class AccountBalanceResponse(BaseModel):
    account: AccountResponse
    balance: Decimal


class SetupResponse(BaseModel):
    message: str
    accounts_created: int
    organization_id: int


# ==================== JOURNAL SCHEMAS ====================

class JournalLineCreate(BaseModel):
    account_id: int
    debit: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=15, decimal_places=2)
    credit: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=15, decimal_places=2)
    currency: Optional[CurrencyEnum] = None


class JournalEntryCreate(BaseModel):
    entry_number: Optional[str] = Field(None, max_length=20)
    entry_date: Optional[date] = None
    description: Optional[str] = None
    lines: List[JournalLineCreate] = Field(..., min_length=2)


class JournalEntryResponse(BaseModel):
    id: int
    entry_number: str
    entry_date: date
    description: Optional[str] = None
    account_id: int
    debit: Decimal
    credit: Decimal
    currency: str
    is_automatic: bool
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    organization_id: int
    created_at: datetime
    account: Optional[AccountSummary] = None

    model_config = ConfigDict(from_attributes=True)


class JournalEntryCreated(BaseModel):
    entry_number: str
    entries: List[JournalEntryResponse]
    message: str


class JournalEntryPage(BaseModel):
    entries: List[JournalEntryResponse]
    page: int
    limit: int
    total_count: int
    total_pages: int


# ==================== TREASURY INSTRUMENT SCHEMAS ====================

class CashBoxCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    currency: Optional[CurrencyEnum] = None
    description: Optional[str] = None
    initial_balance: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=15, decimal_places=2)


class CashBoxUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    currency: Optional[CurrencyEnum] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class CashBoxResponse(BaseModel):
    id: int
    name: str
    currency: str
    description: Optional[str] = None
    is_active: bool
    organization_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BankAccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    bank_name: str = Field(..., min_length=1, max_length=255)
    account_number: str = Field(..., min_length=1, max_length=50)
    currency: Optional[CurrencyEnum] = None
    description: Optional[str] = None
    initial_balance: Decimal = Field(default=Decimal("0.00"), ge=0, max_digits=15, decimal_places=2)


class BankAccountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    bank_name: Optional[str] = Field(None, max_length=255)
    account_number: Optional[str] = Field(None, max_length=50)
    currency: Optional[CurrencyEnum] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class BankAccountResponse(BaseModel):
    id: int
    name: str
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    currency: str
    description: Optional[str] = None
    is_active: bool
    organization_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== TREASURY TRANSACTION SCHEMAS ====================

class TransactionCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    currency: CurrencyEnum
    type: TransactionTypeEnum
    category: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = None
    date: Optional[dt.date] = None
    reference: Optional[str] = Field(None, max_length=100)
    cash_box_id: Optional[int] = None
    bank_account_id: Optional[int] = None


class TransactionResponse(BaseModel):
    id: int
    amount: Decimal
    currency: str
    type: str
    category: Optional[str] = None
    description: Optional[str] = None
    date: dt.date
    reference: Optional[str] = None
    cash_box_id: Optional[int] = None
    bank_account_id: Optional[int] = None
    check_id: Optional[int] = None
    organization_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ==================== CHECK SCHEMAS ====================

class CheckCreate(BaseModel):
    check_number: str = Field(..., min_length=1, max_length=50)
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    currency: CurrencyEnum
    issuer_name: Optional[str] = Field(None, max_length=255)
    issuer_bank: Optional[str] = Field(None, max_length=255)
    issue_date: Optional[date] = None
    due_date: date
    cash_box_id: Optional[int] = None
    bank_account_id: Optional[int] = None
    received_from: Optional[str] = Field(None, max_length=255)
    issued_to: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    is_received: bool = True


class CheckStatusUpdate(BaseModel):
    status: CheckStatusEnum
    notes: Optional[str] = None


class InstrumentSummary(BaseModel):
    id: int
    name: str

    model_config = ConfigDict(from_attributes=True)


class CheckResponse(BaseModel):
    id: int
    check_number: str
    amount: Decimal
    currency: str
    issuer_name: Optional[str] = None
    issuer_bank: Optional[str] = None
    issue_date: date
    due_date: date
    status: str
    cash_box_id: Optional[int] = None
    bank_account_id: Optional[int] = None
    received_from: Optional[str] = None
    issued_to: Optional[str] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    organization_id: int
    created_at: datetime
    updated_at: Optional[datetime] = None
    cash_box: Optional[InstrumentSummary] = None
    bank_account: Optional[InstrumentSummary] = None

    model_config = ConfigDict(from_attributes=True)


class CheckDetail(CheckResponse):
    transactions: List[TransactionResponse] = []


class CheckPage(BaseModel):
    checks: List[CheckResponse]
    page: int
    limit: int
    total: int
    pages: int


class ProcessedCheck(BaseModel):
    id: int
    check_number: str
    amount: Decimal
    currency: str


class FailedCheck(BaseModel):
    id: int
    check_number: str
    error: str


class ProcessDueChecksResponse(BaseModel):
    success: bool
    message: str
    processed_count: int
    processed_checks: List[ProcessedCheck]
    failed_checks: List[FailedCheck] = []


# ==================== BALANCE SCHEMAS ====================

class InstrumentBalance(BaseModel):
    id: int
    name: str
    type: str
    currency: str
    bank_name: Optional[str] = None
    balances_by_currency: Dict[str, float]
    total_balance: float


class BalancesResponse(BaseModel):
    accounts: List[InstrumentBalance]
    global_balances: Dict[str, float]
    last_updated: datetime


class ConsolidatedBalancesResponse(BalancesResponse):
    monthly_income: Dict[str, float]
    monthly_expense: Dict[str, float]
    pending_to_collect: Dict[str, float]
    pending_to_pay: Dict[str, float]


class ReconciliationResponse(BaseModel):
    organization_id: int
    is_consistent: bool
    ledger_totals: Dict[str, float]
    transaction_totals: Dict[str, float]
    differences: Dict[str, float]
