"""
System API Routes - cached organization metrics and the audit trail
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import List, Optional
from datetime import datetime

from obraledger.core.database import get_db
from obraledger.core.metrics_cache import (
    MetricsCache, CacheKeys, CacheTTL, get_metrics_cache, organization_key
)
from obraledger.core.security import get_current_active_user, PermissionChecker
from obraledger.models import Account, JournalEntry, Check, CashBox, BankAccount, Transaction
from obraledger.schemas import AuditLogResponse
from obraledger.services.audit_service import AuditService
from obraledger.services.permission_service import Permissions

router = APIRouter(prefix="/system", tags=["System"])


def _count(db: Session, model, organization_id: int, *criteria) -> int:
    return db.query(func.count(model.id)).filter(model.organization_id == organization_id, *criteria).scalar() or 0


def collect_organization_stats(db: Session, organization_id: int) -> dict:
    checks_by_status = dict(
        db.query(Check.status, func.count(Check.id))
        .filter(Check.organization_id == organization_id)
        .group_by(Check.status)
        .all()
    )
    entry_count = db.query(func.count(func.distinct(JournalEntry.entry_number))).filter(
        JournalEntry.organization_id == organization_id
    ).scalar() or 0

    return {
        "accounts": _count(db, Account, organization_id),
        "active_accounts": _count(db, Account, organization_id, Account.is_active == True),
        "journal_entries": entry_count,
        "journal_lines": _count(db, JournalEntry, organization_id),
        "cash_boxes": _count(db, CashBox, organization_id, CashBox.is_active == True),
        "bank_accounts": _count(db, BankAccount, organization_id, BankAccount.is_active == True),
        "transactions": _count(db, Transaction, organization_id),
        "checks_by_status": checks_by_status,
        "generated_at": datetime.utcnow().isoformat(),
    }


@router.get("/metrics", dependencies=[Depends(PermissionChecker([Permissions.SYSTEM_VIEW]))])
async def get_metrics(
    refresh: bool = False,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Organization statistics, cached per organization"""
    key = organization_key(CacheKeys.ORGANIZATION_STATS, current_user.organization_id)

    stats = None if refresh else metrics_cache.get(key)
    cached = stats is not None
    if stats is None:
        stats = collect_organization_stats(db, current_user.organization_id)
        metrics_cache.set(key, stats, CacheTTL.ORGANIZATION_STATS)

    return {
        "organization_id": current_user.organization_id,
        "cached": cached,
        "stats": stats,
        "cache": metrics_cache.get_stats(),
    }


@router.get("/audit-logs", response_model=List[AuditLogResponse],
            dependencies=[Depends(PermissionChecker([Permissions.SYSTEM_VIEW]))])
async def list_audit_logs(
    resource_type: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Most recent audit records of the organization"""
    return AuditService(db).get_logs(
        current_user.organization_id,
        resource_type=resource_type,
        action=action,
        limit=min(max(limit, 1), 500)
    )
