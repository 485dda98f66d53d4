# Services Package
from obraledger.services.user_service import UserService
from obraledger.services.permission_service import PermissionService, Permissions
from obraledger.services.audit_service import AuditService, AuditAction
from obraledger.services.code_service import CodeService
from obraledger.services.balance_service import BalanceLedgerService
from obraledger.services.accounting_service import (
    AccountService, StandardChartService, JournalEntryService, AutoAccountingService
)
from obraledger.services.check_service import CheckService
from obraledger.services.treasury_service import (
    CashBoxService, BankAccountService, TreasuryTransactionService, TreasuryQueryService
)

__all__ = [
    'UserService',
    'PermissionService',
    'Permissions',
    'AuditService',
    'AuditAction',
    'CodeService',
    'BalanceLedgerService',
    'AccountService',
    'StandardChartService',
    'JournalEntryService',
    'AutoAccountingService',
    'CheckService',
    'CashBoxService',
    'BankAccountService',
    'TreasuryTransactionService',
    'TreasuryQueryService',
]
