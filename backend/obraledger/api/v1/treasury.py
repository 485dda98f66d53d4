"""
Treasury API Routes - cash boxes, bank accounts, movements and balances
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from obraledger.core.database import get_db
from obraledger.core.metrics_cache import MetricsCache, get_metrics_cache, organization_scope
from obraledger.core.security import get_current_active_user, PermissionChecker
from obraledger.schemas import (
    CashBoxCreate, CashBoxUpdate, CashBoxResponse,
    BankAccountCreate, BankAccountUpdate, BankAccountResponse,
    TransactionCreate, TransactionResponse, TransactionTypeEnum, CurrencyEnum,
    BalancesResponse, ConsolidatedBalancesResponse, ReconciliationResponse, MessageResponse
)
from obraledger.services.audit_service import AuditService, AuditAction
from obraledger.services.permission_service import Permissions
from obraledger.services.treasury_service import (
    CashBoxService, BankAccountService, TreasuryTransactionService, TreasuryQueryService
)

router = APIRouter(prefix="/treasury", tags=["Treasury"])
cash_box_router = APIRouter(prefix="/cash-boxes", tags=["Treasury"])
bank_account_router = APIRouter(prefix="/bank-accounts", tags=["Treasury"])

can_view = [Depends(PermissionChecker([Permissions.TREASURY_VIEW]))]
can_manage = [Depends(PermissionChecker([Permissions.TREASURY_MANAGE]))]


# ==================== CASH BOXES ====================

@cash_box_router.get("", response_model=List[CashBoxResponse], dependencies=can_view)
async def list_cash_boxes(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """List active cash boxes"""
    return CashBoxService(db).list_active(current_user.organization_id)


@cash_box_router.post("", response_model=CashBoxResponse, status_code=status.HTTP_201_CREATED, dependencies=can_manage)
async def create_cash_box(
    cash_box_data: CashBoxCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Create a cash box with an optional opening balance"""
    cash_box = CashBoxService(db).create(current_user.organization_id, cash_box_data)
    db.commit()
    db.refresh(cash_box)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return cash_box


@cash_box_router.put("/{cash_box_id}", response_model=CashBoxResponse, dependencies=can_manage)
async def update_cash_box(
    cash_box_id: int,
    cash_box_data: CashBoxUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Update a cash box"""
    cash_box = CashBoxService(db).update(cash_box_id, current_user.organization_id, cash_box_data)
    db.commit()
    db.refresh(cash_box)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return cash_box


@cash_box_router.delete("/{cash_box_id}", response_model=MessageResponse, dependencies=can_manage)
async def delete_cash_box(
    cash_box_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Deactivate a cash box"""
    CashBoxService(db).delete(cash_box_id, current_user.organization_id)
    db.commit()
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return {"message": "Cash box deactivated"}


# ==================== BANK ACCOUNTS ====================

@bank_account_router.get("", response_model=List[BankAccountResponse], dependencies=can_view)
async def list_bank_accounts(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """List active bank accounts"""
    return BankAccountService(db).list_active(current_user.organization_id)


@bank_account_router.post("", response_model=BankAccountResponse, status_code=status.HTTP_201_CREATED, dependencies=can_manage)
async def create_bank_account(
    bank_account_data: BankAccountCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Create a bank account with an optional opening balance"""
    bank_account = BankAccountService(db).create(current_user.organization_id, bank_account_data)
    db.commit()
    db.refresh(bank_account)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return bank_account


@bank_account_router.put("/{bank_account_id}", response_model=BankAccountResponse, dependencies=can_manage)
async def update_bank_account(
    bank_account_id: int,
    bank_account_data: BankAccountUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Update a bank account"""
    bank_account = BankAccountService(db).update(bank_account_id, current_user.organization_id, bank_account_data)
    db.commit()
    db.refresh(bank_account)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return bank_account


@bank_account_router.delete("/{bank_account_id}", response_model=MessageResponse, dependencies=can_manage)
async def delete_bank_account(
    bank_account_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Deactivate a bank account"""
    BankAccountService(db).delete(bank_account_id, current_user.organization_id)
    db.commit()
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return {"message": "Bank account deactivated"}


# ==================== MOVEMENTS ====================

@router.get("/transactions", response_model=List[TransactionResponse], dependencies=can_view)
async def list_transactions(
    cash_box_id: Optional[int] = None,
    bank_account_id: Optional[int] = None,
    type: Optional[TransactionTypeEnum] = None,
    currency: Optional[CurrencyEnum] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """List treasury movements, newest first"""
    return TreasuryTransactionService(db).list_transactions(
        current_user.organization_id,
        cash_box_id=cash_box_id,
        bank_account_id=bank_account_id,
        transaction_type=type,
        currency=currency,
        start_date=start_date,
        end_date=end_date,
        limit=min(max(limit, 1), 500)
    )


@router.post("/transactions", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED, dependencies=can_manage)
async def record_transaction(
    transaction_data: TransactionCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Record an income or expense on a cash box or bank account"""
    organization_id = current_user.organization_id
    transaction = TreasuryTransactionService(db).record_movement(organization_id, transaction_data)
    AuditService(db).log(
        action=AuditAction.MOVEMENT_RECORDED,
        resource_type="Transaction",
        resource_id=transaction.id,
        description=f"{transaction.type} of {transaction.amount} {transaction.currency} recorded",
        user_id=current_user.id,
        username=current_user.username,
        organization_id=organization_id
    )
    db.commit()
    db.refresh(transaction)
    metrics_cache.invalidate_pattern(organization_scope(organization_id))
    return transaction


# ==================== BALANCES ====================

@router.get("/balances", response_model=BalancesResponse, dependencies=can_view)
async def get_balances(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Running balance of every active instrument"""
    return TreasuryQueryService(db).get_balances(current_user.organization_id)


@router.get("/consolidated", response_model=ConsolidatedBalancesResponse, dependencies=can_view)
async def get_consolidated_balances(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Balances plus this month's flows and open check exposure"""
    return TreasuryQueryService(db).get_consolidated_balances(current_user.organization_id)


@router.get("/reconciliation", response_model=ReconciliationResponse, dependencies=can_view)
async def get_reconciliation(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Compare the balance ledger with the movement history"""
    return TreasuryQueryService(db).verify_consistency(current_user.organization_id)
