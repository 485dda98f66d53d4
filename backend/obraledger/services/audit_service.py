"""
Audit Logging Service
Records financial operations in the same unit of work as the operation itself
"""
from sqlalchemy.orm import Session
from sqlalchemy import desc
from typing import Optional, List, Dict, Any
import json
import logging

from obraledger.models import AuditLog

logger = logging.getLogger(__name__)


class AuditAction:
    """Constants for audit actions"""
    # Authentication
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"

    # Accounting
    ACCOUNTING_SETUP = "ACCOUNTING_SETUP"
    JOURNAL_POSTED = "JOURNAL_POSTED"
    JOURNAL_DELETED = "JOURNAL_DELETED"

    # Treasury
    CHECK_CLEARED = "CHECK_CLEARED"
    CHECK_STATUS_CHANGED = "CHECK_STATUS_CHANGED"
    CHECK_DELETED = "CHECK_DELETED"
    DUE_CHECKS_PROCESSED = "DUE_CHECKS_PROCESSED"
    MOVEMENT_RECORDED = "MOVEMENT_RECORDED"


class AuditService:
    """Service for recording and retrieving audit logs"""

    def __init__(self, db: Session):
        self.db = db

    def log(
        self,
        action: str,
        resource_type: str,
        resource_id: Optional[Any] = None,
        description: Optional[str] = None,
        new_values: Optional[Dict] = None,
        user_id: Optional[int] = None,
        username: Optional[str] = None,
        organization_id: Optional[int] = None,
        status: str = "success",
        error_message: Optional[str] = None
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: The action being performed (use AuditAction constants)
            resource_type: Type of resource being affected (e.g., 'Check', 'JournalEntry')
            resource_id: ID of the affected resource
            description: Human-readable description of the action
            new_values: Dictionary of values after the change
            user_id: ID of the user performing the action
            username: Username (stored separately in case user is deleted)
            organization_id: Tenant context
            status: 'success', 'failure', or 'error'
            error_message: Error message if status is not success

        Returns:
            The created AuditLog instance
        """
        audit_log = AuditLog(
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            description=description,
            new_values=json.dumps(new_values, default=str) if new_values else None,
            user_id=user_id,
            username=username,
            organization_id=organization_id,
            status=status,
            error_message=error_message
        )
        self.db.add(audit_log)
        self.db.flush()

        logger.info(
            f"Audit: {action} {resource_type}(id={resource_id}) by user={username} "
            f"organization={organization_id} status={status}"
        )
        return audit_log

    def get_logs(
        self,
        organization_id: int,
        resource_type: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 100
    ) -> List[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.organization_id == organization_id)
        if resource_type:
            query = query.filter(AuditLog.resource_type == resource_type)
        if action:
            query = query.filter(AuditLog.action == action)
        return query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).all()
