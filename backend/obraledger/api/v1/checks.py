"""
Check API Routes - registration, clearing and due-date sweep
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from obraledger.core.database import get_db
from obraledger.core.metrics_cache import MetricsCache, get_metrics_cache, organization_scope
from obraledger.core.security import get_current_active_user, PermissionChecker
from obraledger.schemas import (
    CheckCreate, CheckStatusUpdate, CheckResponse, CheckDetail, CheckPage,
    CheckStatusEnum, ProcessDueChecksResponse, MessageResponse
)
from obraledger.services.check_service import CheckService
from obraledger.services.permission_service import Permissions

router = APIRouter(prefix="/checks", tags=["Checks"])


@router.get("", response_model=CheckPage, dependencies=[Depends(PermissionChecker([Permissions.CHECKS_VIEW]))])
async def list_checks(
    status: Optional[CheckStatusEnum] = None,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """List checks ordered by due date"""
    return CheckService(db).list_checks(
        current_user.organization_id,
        status=status,
        page=max(page, 1),
        limit=min(max(limit, 1), 200)
    )


@router.post("", response_model=CheckResponse, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(PermissionChecker([Permissions.CHECKS_MANAGE]))])
async def create_check(
    check_data: CheckCreate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Register an issued or received check"""
    check = CheckService(db).create_check(current_user.organization_id, check_data)
    db.commit()
    db.refresh(check)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return check


@router.post("/process-due", response_model=ProcessDueChecksResponse,
             dependencies=[Depends(PermissionChecker([Permissions.CHECKS_CLEAR]))])
async def process_due_checks(
    as_of: Optional[date] = None,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Clear every received check due on or before the given day (default today)"""
    result = CheckService(db).process_due_checks(current_user.organization_id, as_of=as_of, user=current_user)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return result


@router.get("/{check_id}", response_model=CheckDetail, dependencies=[Depends(PermissionChecker([Permissions.CHECKS_VIEW]))])
async def get_check(
    check_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user)
):
    """Get a check with its treasury movements"""
    return CheckService(db).get_check(check_id, current_user.organization_id)


@router.put("/{check_id}", response_model=CheckResponse, dependencies=[Depends(PermissionChecker([Permissions.CHECKS_MANAGE]))])
async def update_check_status(
    check_id: int,
    status_data: CheckStatusUpdate,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Change the status of a check; CLEARED behaves like the clear endpoint"""
    check = CheckService(db).update_status(
        check_id,
        current_user.organization_id,
        status_data.status,
        notes=status_data.notes,
        user=current_user
    )
    db.commit()
    db.refresh(check)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return check


@router.post("/{check_id}/clear", response_model=CheckResponse, dependencies=[Depends(PermissionChecker([Permissions.CHECKS_CLEAR]))])
async def clear_check(
    check_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Clear a check and move its amount through the linked instrument"""
    result = CheckService(db).clear_check(check_id, current_user.organization_id, user=current_user)
    db.commit()
    check = result["check"]
    db.refresh(check)
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return check


@router.delete("/{check_id}", response_model=MessageResponse, dependencies=[Depends(PermissionChecker([Permissions.CHECKS_MANAGE]))])
async def delete_check(
    check_id: int,
    db: Session = Depends(get_db),
    current_user=Depends(get_current_active_user),
    metrics_cache: MetricsCache = Depends(get_metrics_cache)
):
    """Delete a check that has not been cleared"""
    CheckService(db).delete_check(check_id, current_user.organization_id, user=current_user)
    db.commit()
    metrics_cache.invalidate_pattern(organization_scope(current_user.organization_id))
    return {"message": "Check deleted"}
