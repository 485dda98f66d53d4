"""
SQLAlchemy Models for the Accounting and Treasury Core
"""
from datetime import datetime, date
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date, Numeric,
    ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
import enum

from obraledger.core.database import Base


# ==================== ENUMS ====================

class AccountType(enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class Currency(enum.Enum):
    PESOS = "PESOS"
    USD = "USD"
    EUR = "EUR"


class UserRole(enum.Enum):
    ADMIN = "ADMIN"
    ACCOUNTANT = "ACCOUNTANT"
    TREASURER = "TREASURER"
    VIEWER = "VIEWER"


class InstrumentType(enum.Enum):
    CASH_BOX = "CASH_BOX"
    BANK_ACCOUNT = "BANK_ACCOUNT"


class CheckStatus(enum.Enum):
    ISSUED = "ISSUED"
    PENDING = "PENDING"
    CLEARED = "CLEARED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class TransactionType(enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class EntryDirection(enum.Enum):
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


# Account types whose natural balance is on the credit side
CREDIT_NORMAL_TYPES = {
    AccountType.LIABILITY.value,
    AccountType.EQUITY.value,
    AccountType.INCOME.value,
}


# ==================== CORE MODELS ====================

class Organization(Base):
    """Tenant"""
    __tablename__ = 'organizations'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    local_currency = Column(String(10), default=Currency.PESOS.value, nullable=False)
    enable_accounting = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    users = relationship("User", back_populates="organization", cascade="all, delete-orphan")
    accounts = relationship("Account", back_populates="organization", cascade="all, delete-orphan")
    cash_boxes = relationship("CashBox", back_populates="organization", cascade="all, delete-orphan")
    bank_accounts = relationship("BankAccount", back_populates="organization", cascade="all, delete-orphan")


class User(Base):
    """User account bound to one organization"""
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True)
    username = Column(String(100), nullable=False, unique=True)
    email = Column(String(255), nullable=False, unique=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.VIEWER.value, nullable=False)
    is_superuser = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="users")


# ==================== ACCOUNTING MODELS ====================

class Account(Base):
    """Chart of Accounts"""
    __tablename__ = 'accounts'

    id = Column(Integer, primary_key=True)
    code = Column(String(30), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    sub_type = Column(String(50), nullable=True)
    currency = Column(String(10), default=Currency.PESOS.value, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    parent_id = Column(Integer, ForeignKey('accounts.id', ondelete='SET NULL'), nullable=True)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="accounts")
    parent = relationship("Account", remote_side=[id], back_populates="children")
    children = relationship("Account", back_populates="parent", order_by="Account.code")
    journal_entries = relationship("JournalEntry", back_populates="account")

    @property
    def account_type(self):
        try:
            return AccountType(self.type.upper())
        except (AttributeError, ValueError):
            return None

    __table_args__ = (
        UniqueConstraint('organization_id', 'code', name='uq_account_code'),
        Index('ix_accounts_organization_id', 'organization_id'),
    )


class JournalEntry(Base):
    """One line of a journal transaction; lines sharing entry_number form one entry"""
    __tablename__ = 'journal_entries'

    id = Column(Integer, primary_key=True)
    entry_number = Column(String(20), nullable=False)
    entry_date = Column(Date, nullable=False, default=date.today)
    description = Column(Text, nullable=True)
    debit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    credit = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    currency = Column(String(10), default=Currency.PESOS.value, nullable=False)
    exchange_rate = Column(Numeric(15, 6), default=Decimal("1"), nullable=False)
    is_automatic = Column(Boolean, default=False, nullable=False)
    source_type = Column(String(50), nullable=True)
    source_id = Column(String(50), nullable=True)
    account_id = Column(Integer, ForeignKey('accounts.id', ondelete='RESTRICT'), nullable=False)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    created_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    account = relationship("Account", back_populates="journal_entries")

    __table_args__ = (
        CheckConstraint('debit >= 0 AND credit >= 0', name='ck_journal_entry_amounts'),
        Index('ix_journal_entries_org_number', 'organization_id', 'entry_number'),
        Index('ix_journal_entries_source', 'source_type', 'source_id'),
    )


# ==================== TREASURY MODELS ====================

class CashBox(Base):
    """Cash box"""
    __tablename__ = 'cash_boxes'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    currency = Column(String(10), default=Currency.PESOS.value, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="cash_boxes")

    __table_args__ = (
        Index('ix_cash_boxes_organization_id', 'organization_id'),
    )


class BankAccount(Base):
    """Bank Account"""
    __tablename__ = 'bank_accounts'

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    bank_name = Column(String(255), nullable=True)
    account_number = Column(String(50), nullable=True)
    currency = Column(String(10), default=Currency.PESOS.value, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    organization = relationship("Organization", back_populates="bank_accounts")

    __table_args__ = (
        Index('ix_bank_accounts_organization_id', 'organization_id'),
    )


class AccountBalance(Base):
    """Running balance of one treasury instrument in one currency"""
    __tablename__ = 'account_balances'

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, nullable=False)  # CashBox or BankAccount id
    account_type = Column(String(20), nullable=False)  # CASH_BOX or BANK_ACCOUNT
    currency = Column(String(10), nullable=False)
    balance = Column(Numeric(15, 2), default=Decimal("0.00"), nullable=False)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('account_id', 'account_type', 'currency', name='uq_account_balance'),
        Index('ix_account_balances_organization_id', 'organization_id'),
    )


class Check(Base):
    """Third-party check, issued or received"""
    __tablename__ = 'checks'

    id = Column(Integer, primary_key=True)
    check_number = Column(String(50), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(10), default=Currency.PESOS.value, nullable=False)
    issuer_name = Column(String(255), nullable=True)
    issuer_bank = Column(String(255), nullable=True)
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=False)
    status = Column(String(20), default=CheckStatus.PENDING.value, nullable=False)
    received_from = Column(String(255), nullable=True)
    issued_to = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    cash_box_id = Column(Integer, ForeignKey('cash_boxes.id', ondelete='SET NULL'), nullable=True)
    bank_account_id = Column(Integer, ForeignKey('bank_accounts.id', ondelete='SET NULL'), nullable=True)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    cash_box = relationship("CashBox")
    bank_account = relationship("BankAccount")
    transactions = relationship("Transaction", back_populates="check")

    @property
    def instrument(self):
        """(account_id, account_type) of the instrument the check settles through"""
        if self.cash_box_id:
            return self.cash_box_id, InstrumentType.CASH_BOX.value
        if self.bank_account_id:
            return self.bank_account_id, InstrumentType.BANK_ACCOUNT.value
        return None, None

    __table_args__ = (
        UniqueConstraint('check_number', 'organization_id', name='uq_check_number'),
        Index('ix_checks_status_due_date', 'organization_id', 'status', 'due_date'),
    )


class Transaction(Base):
    """Immutable treasury movement"""
    __tablename__ = 'transactions'

    id = Column(Integer, primary_key=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(10), nullable=False)
    type = Column(String(10), nullable=False)  # INCOME or EXPENSE
    category = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    date = Column(Date, nullable=False, default=date.today)
    reference = Column(String(100), nullable=True)
    cash_box_id = Column(Integer, ForeignKey('cash_boxes.id', ondelete='SET NULL'), nullable=True)
    bank_account_id = Column(Integer, ForeignKey('bank_accounts.id', ondelete='SET NULL'), nullable=True)
    check_id = Column(Integer, ForeignKey('checks.id', ondelete='SET NULL'), nullable=True)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    cash_box = relationship("CashBox")
    bank_account = relationship("BankAccount")
    check = relationship("Check", back_populates="transactions")

    @property
    def signed_amount(self) -> Decimal:
        amount = Decimal(self.amount or 0)
        return amount if self.type == TransactionType.INCOME.value else -amount

    __table_args__ = (
        CheckConstraint('amount > 0', name='ck_transaction_amount_positive'),
        Index('ix_transactions_organization_date', 'organization_id', 'date'),
        Index('ix_transactions_check_id', 'check_id'),
    )


# ==================== AUDIT ====================

class AuditLog(Base):
    """Audit trail for financial operations"""
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(50), nullable=True)
    description = Column(Text, nullable=True)
    new_values = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    username = Column(String(100), nullable=True)
    organization_id = Column(Integer, ForeignKey('organizations.id', ondelete='CASCADE'), nullable=True)
    status = Column(String(20), default="success")
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index('ix_audit_logs_organization_timestamp', 'organization_id', 'timestamp'),
        Index('ix_audit_logs_resource', 'resource_type', 'resource_id'),
    )
