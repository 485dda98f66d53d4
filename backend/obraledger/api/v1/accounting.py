"""
Accounting API Routes - Chart of Accounts, Journal Entries
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from obraledger.core.database import get_db
from obraledger.core.metrics_cache import MetricsCache, get_metrics_cache, organization_scope
from obraledger.core.security import get_current_active_user, require_accounting, PermissionChecker
from obraledger.schemas import (
    AccountCreate, AccountUpdate, AccountResponse, AccountWithChildren,
    AccountBalanceResponse, AccountTypeEnum, SetupResponse,
    JournalEntryCreate, JournalEntryCreated, JournalEntryPage, MessageResponse
)
from obraledger.services.accounting_service import (
    AccountService, StandardChartService, JournalEntryService
)
from obraledger.services.audit_service import AuditService, AuditAction
from obraledger.services.permission_service import Permissions

router = APIRouter(prefix="/accounting", tags=["Accounting"])


def gated(permission: str) -> list:
    """Route guard: accounting enabled for the organization plus the given permission"""
    return [Depends(require_accounting), Depends(PermissionChecker([permission]))]


# ==================== SETUP ====================

@router.post("/setup", response_model=SetupResponse, dependencies=[Depends(PermissionChecker([Permissions.ACCOUNTING_MANAGE]))])
async def setup_accounting(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Enable accounting and create the standard chart of accounts"""
    organization_id = current_user.organization_id
    created = StandardChartService(db).setup_standard_chart(organization_id)
    AuditService(db).log(
        action=AuditAction.ACCOUNTING_SETUP,
        resource_type="Organization",
        resource_id=organization_id,
        description=f"Accounting enabled, {created} standard accounts created",
        user_id=current_user.id,
        username=current_user.username,
        organization_id=organization_id
    )
    db.commit()
    metrics_cache.invalidate_pattern(organization_scope(organization_id))
    message = "Standard chart of accounts created" if created else "Chart of accounts already exists"
    return {"message": message, "accounts_created": created, "organization_id": organization_id}


# ==================== CHART OF ACCOUNTS ====================

@router.get("/accounts", response_model=List[AccountWithChildren], dependencies=gated(Permissions.ACCOUNTING_VIEW))
async def list_accounts(
    type: Optional[AccountTypeEnum] = None,
    is_active: Optional[bool] = None,
    include_children: bool = False,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """List accounts ordered by code"""
    accounts = AccountService(db).list_accounts(
        current_user.organization_id,
        account_type=type,
        is_active=is_active,
        include_children=include_children
    )
    if not include_children:
        return [AccountResponse.model_validate(account) for account in accounts]
    return accounts


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED,
             dependencies=gated(Permissions.ACCOUNTING_MANAGE))
async def create_account(
    account_data: AccountCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Create a new account"""
    account = AccountService(db).create_account(current_user.organization_id, account_data)
    db.commit()
    db.refresh(account)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return account


@router.get("/accounts/next-code", dependencies=gated(Permissions.ACCOUNTING_VIEW))
async def suggest_account_code(
    parent_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Next free child code under a parent account"""
    code = AccountService(db).suggest_child_code(parent_id, current_user.organization_id)
    return {"parent_id": parent_id, "code": code}


@router.get("/accounts/{account_id}", response_model=AccountWithChildren, dependencies=gated(Permissions.ACCOUNTING_VIEW))
async def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Get account by ID"""
    return AccountService(db).get_account(account_id, current_user.organization_id)


@router.put("/accounts/{account_id}", response_model=AccountResponse, dependencies=gated(Permissions.ACCOUNTING_MANAGE))
async def update_account(
    account_id: int,
    account_data: AccountUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Update account; is_active=false disables it"""
    account = AccountService(db).update_account(account_id, current_user.organization_id, account_data)
    db.commit()
    db.refresh(account)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return account


@router.get("/accounts/{account_id}/balance", response_model=AccountBalanceResponse, dependencies=gated(Permissions.ACCOUNTING_VIEW))
async def get_account_balance(
    account_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Get account balance from its journal lines"""
    return AccountService(db).get_account_balance(account_id, current_user.organization_id)


# ==================== JOURNAL ENTRIES ====================

@router.get("/journal-entries", response_model=JournalEntryPage, dependencies=gated(Permissions.ACCOUNTING_VIEW))
async def list_journal_entries(
    account_id: Optional[int] = None,
    entry_number: Optional[str] = None,
    source_type: Optional[str] = None,
    is_automatic: Optional[bool] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """List journal lines with filters and pagination"""
    return JournalEntryService(db).list_entries(
        current_user.organization_id,
        account_id=account_id,
        entry_number=entry_number,
        source_type=source_type,
        is_automatic=is_automatic,
        start_date=start_date,
        end_date=end_date,
        page=max(page, 1),
        limit=min(max(limit, 1), 200)
    )


@router.post("/journal-entries", response_model=JournalEntryCreated, status_code=status.HTTP_201_CREATED,
             dependencies=gated(Permissions.JOURNAL_CREATE))
async def create_journal_entry(
    entry_data: JournalEntryCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Post a balanced manual journal entry"""
    organization_id = current_user.organization_id
    entries = JournalEntryService(db).create_manual_entry(
        organization_id,
        entry_data.lines,
        entry_number=entry_data.entry_number,
        entry_date=entry_data.entry_date,
        description=entry_data.description,
        created_by=current_user.id
    )
    entry_number = entries[0].entry_number
    AuditService(db).log(
        action=AuditAction.JOURNAL_POSTED,
        resource_type="JournalEntry",
        resource_id=entry_number,
        description=f"Manual journal entry {entry_number} posted with {len(entries)} lines",
        user_id=current_user.id,
        username=current_user.username,
        organization_id=organization_id
    )
    db.commit()
    for entry in entries:
        db.refresh(entry)

    metrics_cache.invalidate_pattern(organization_scope(organization_id))
    return {
        "entry_number": entry_number,
        "entries": entries,
        "message": "Journal entry created successfully"
    }


@router.delete("/journal-entries/{entry_id}", response_model=MessageResponse, dependencies=gated(Permissions.JOURNAL_DELETE))
async def delete_journal_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Delete a journal entry"""
    organization_id = current_user.organization_id
    deleted = JournalEntryService(db).delete_entry(entry_id, organization_id)
    AuditService(db).log(
        action=AuditAction.JOURNAL_DELETED,
        resource_type="JournalEntry",
        resource_id=entry_id,
        description=f"Journal entry deleted ({deleted} lines)",
        user_id=current_user.id,
        username=current_user.username,
        organization_id=organization_id
    )
    db.commit()

    metrics_cache.invalidate_pattern(organization_scope(organization_id))
    return {"message": f"Journal entry deleted ({deleted} lines)"}
