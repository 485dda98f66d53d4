"""
Permission Service - role based access to accounting and treasury operations
"""
from typing import List, Set
from sqlalchemy.orm import Session

from obraledger.models import User, UserRole


class Permissions:
    """Permission names checked by the API"""
    ACCOUNTING_VIEW = "accounting:view"
    ACCOUNTING_MANAGE = "accounting:manage"
    JOURNAL_CREATE = "journal:create"
    JOURNAL_DELETE = "journal:delete"
    TREASURY_VIEW = "treasury:view"
    TREASURY_MANAGE = "treasury:manage"
    CHECKS_VIEW = "checks:view"
    CHECKS_MANAGE = "checks:manage"
    CHECKS_CLEAR = "checks:clear"
    SYSTEM_VIEW = "system:view"


_VIEW = {
    Permissions.ACCOUNTING_VIEW,
    Permissions.TREASURY_VIEW,
    Permissions.CHECKS_VIEW,
}

ROLE_PERMISSIONS = {
    UserRole.ADMIN.value: _VIEW | {
        Permissions.ACCOUNTING_MANAGE,
        Permissions.JOURNAL_CREATE,
        Permissions.JOURNAL_DELETE,
        Permissions.TREASURY_MANAGE,
        Permissions.CHECKS_MANAGE,
        Permissions.CHECKS_CLEAR,
        Permissions.SYSTEM_VIEW,
    },
    UserRole.ACCOUNTANT.value: _VIEW | {
        Permissions.ACCOUNTING_MANAGE,
        Permissions.JOURNAL_CREATE,
        Permissions.JOURNAL_DELETE,
    },
    UserRole.TREASURER.value: _VIEW | {
        Permissions.TREASURY_MANAGE,
        Permissions.CHECKS_MANAGE,
        Permissions.CHECKS_CLEAR,
    },
    UserRole.VIEWER.value: set(_VIEW),
}


class PermissionService:
    def __init__(self, db: Session):
        self.db = db

    def get_all_permissions(self) -> List[str]:
        return sorted(set().union(*ROLE_PERMISSIONS.values()))

    def get_user_permissions(self, user: User) -> Set[str]:
        """Permissions granted to the user through their role"""
        if user.is_superuser:
            return set(self.get_all_permissions())
        return set(ROLE_PERMISSIONS.get((user.role or "").upper(), set()))
