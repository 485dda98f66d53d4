"""
Check Service - lifecycle of issued and received checks
"""
from typing import Optional, List, Dict, Any
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload
from decimal import Decimal
from datetime import date, datetime
import logging

from obraledger.core.exceptions import (
    ObraLedgerError, NotFoundError, DuplicateCheckNumberError, InvalidInstrumentError,
    CheckAlreadyClearedError, InvalidCheckTransitionError
)
from obraledger.models import (
    Check, CheckStatus, CashBox, BankAccount, Transaction, TransactionType
)
from obraledger.schemas import CheckCreate
from obraledger.services.audit_service import AuditService, AuditAction
from obraledger.services.balance_service import BalanceLedgerService

logger = logging.getLogger(__name__)

OPEN_STATUSES = (CheckStatus.ISSUED.value, CheckStatus.PENDING.value)
VOID_STATUSES = (CheckStatus.REJECTED.value, CheckStatus.CANCELLED.value)

CATEGORY_CHECK_COLLECTED = "CHECK_COLLECTED"
CATEGORY_CHECK_PAID = "CHECK_PAID"
CATEGORY_CHECK_DUE = "CHECK_DUE"


def _value(item):
    return item.value if hasattr(item, "value") else item


class CheckService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = BalanceLedgerService(db)
        self.audit = AuditService(db)

    def get_by_id(self, check_id: int, organization_id: int) -> Optional[Check]:
        return self.db.query(Check).filter(
            Check.id == check_id,
            Check.organization_id == organization_id
        ).first()

    def get_check(self, check_id: int, organization_id: int) -> Check:
        check = self.db.query(Check).options(
            joinedload(Check.cash_box),
            joinedload(Check.bank_account),
            joinedload(Check.transactions)
        ).filter(
            Check.id == check_id,
            Check.organization_id == organization_id
        ).first()
        if not check:
            raise NotFoundError("Check", check_id)
        return check

    def list_checks(
        self,
        organization_id: int,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50
    ) -> Dict[str, Any]:
        query = self.db.query(Check).filter(Check.organization_id == organization_id)
        if status:
            query = query.filter(Check.status == _value(status))

        total = query.count()
        checks = query.options(joinedload(Check.cash_box), joinedload(Check.bank_account))\
            .order_by(Check.due_date.asc(), Check.id.asc())\
            .offset((page - 1) * limit)\
            .limit(limit)\
            .all()

        return {
            "checks": checks,
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if limit else 0,
        }

    def _validate_instrument(self, organization_id: int, cash_box_id: Optional[int], bank_account_id: Optional[int]):
        if bool(cash_box_id) == bool(bank_account_id):
            raise InvalidInstrumentError()

        if cash_box_id:
            instrument = self.db.query(CashBox).filter(
                CashBox.id == cash_box_id,
                CashBox.organization_id == organization_id,
                CashBox.is_active == True
            ).first()
        else:
            instrument = self.db.query(BankAccount).filter(
                BankAccount.id == bank_account_id,
                BankAccount.organization_id == organization_id,
                BankAccount.is_active == True
            ).first()

        if not instrument:
            raise InvalidInstrumentError()
        return instrument

    def check_number_exists(self, organization_id: int, check_number: str) -> bool:
        return self.db.query(Check.id).filter(
            Check.organization_id == organization_id,
            Check.check_number == check_number
        ).first() is not None

    def create_check(self, organization_id: int, check_data: CheckCreate) -> Check:
        """Register a check; no balance or transaction is written until it clears"""
        if self.check_number_exists(organization_id, check_data.check_number):
            raise DuplicateCheckNumberError(check_data.check_number)

        self._validate_instrument(organization_id, check_data.cash_box_id, check_data.bank_account_id)

        status = CheckStatus.PENDING.value if check_data.is_received else CheckStatus.ISSUED.value
        check = Check(
            check_number=check_data.check_number,
            amount=check_data.amount,
            currency=_value(check_data.currency),
            issuer_name=check_data.issuer_name,
            issuer_bank=check_data.issuer_bank,
            issue_date=check_data.issue_date or date.today(),
            due_date=check_data.due_date,
            status=status,
            cash_box_id=check_data.cash_box_id or None,
            bank_account_id=check_data.bank_account_id or None,
            received_from=check_data.received_from,
            issued_to=check_data.issued_to,
            description=check_data.description,
            organization_id=organization_id
        )
        try:
            with self.db.begin_nested():
                self.db.add(check)
        except IntegrityError:
            # Lost a race with a concurrent insert of the same number
            raise DuplicateCheckNumberError(check_data.check_number)
        logger.info(f"Check {check.check_number} registered as {status} (organization={organization_id})")
        return check

    def _transition_to_cleared(self, check_id: int, organization_id: int):
        """
        Compare-and-set the status to CLEARED. Only one caller can win the
        UPDATE; everyone else gets a conflict error.
        """
        check = self.get_by_id(check_id, organization_id)
        if not check:
            raise NotFoundError("Check", check_id)

        previous_status = check.status
        updated = self.db.query(Check).filter(
            Check.id == check_id,
            Check.organization_id == organization_id,
            Check.status.in_(OPEN_STATUSES)
        ).update(
            {Check.status: CheckStatus.CLEARED.value, Check.updated_at: datetime.utcnow()},
            synchronize_session=False
        )

        if updated == 0:
            self.db.refresh(check)
            if check.status == CheckStatus.CLEARED.value:
                raise CheckAlreadyClearedError(check_id)
            raise InvalidCheckTransitionError(check.status, CheckStatus.CLEARED.value)

        self.db.refresh(check)
        return check, previous_status

    def _apply_clearing(self, check: Check, previous_status: str, category: Optional[str] = None) -> Transaction:
        account_id, account_type = check.instrument
        if account_id is None:
            raise InvalidInstrumentError()

        amount = Decimal(check.amount)
        if previous_status == CheckStatus.PENDING.value:
            transaction_type = TransactionType.INCOME.value
            delta = amount
            category = category or CATEGORY_CHECK_COLLECTED
            reference = f"CHECK-CLEAR-{check.id}"
            description = f"Cobro de cheque {check.check_number}"
        else:
            transaction_type = TransactionType.EXPENSE.value
            delta = -amount
            category = category or CATEGORY_CHECK_PAID
            reference = f"CHECK-PAY-{check.id}"
            description = f"Pago de cheque {check.check_number}"

        if category == CATEGORY_CHECK_DUE:
            reference = f"CHECK-DUE-{check.id}"

        transaction = Transaction(
            amount=amount,
            currency=check.currency,
            type=transaction_type,
            category=category,
            description=description,
            date=date.today(),
            reference=reference,
            cash_box_id=check.cash_box_id,
            bank_account_id=check.bank_account_id,
            check_id=check.id,
            organization_id=check.organization_id
        )
        self.db.add(transaction)
        self.db.flush()

        self.ledger.upsert_balance(
            organization_id=check.organization_id,
            account_id=account_id,
            account_type=account_type,
            currency=check.currency,
            delta=delta
        )
        return transaction

    def clear_check(
        self,
        check_id: int,
        organization_id: int,
        user=None,
        category: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Clear an ISSUED or PENDING check.

        Status change, transaction record and balance increment are written
        in the caller's transaction; the caller commits.
        """
        check, previous_status = self._transition_to_cleared(check_id, organization_id)
        transaction = self._apply_clearing(check, previous_status, category)

        self.audit.log(
            action=AuditAction.CHECK_CLEARED,
            resource_type="Check",
            resource_id=check.id,
            description=f"Check {check.check_number} cleared ({transaction.type} {check.amount} {check.currency})",
            new_values={"status": CheckStatus.CLEARED.value, "previous_status": previous_status},
            user_id=getattr(user, "id", None),
            username=getattr(user, "username", None),
            organization_id=organization_id
        )

        logger.info(
            f"Check {check.check_number} cleared from {previous_status}: "
            f"{transaction.type} {check.amount} {check.currency} (organization={organization_id})"
        )
        return {"check": check, "transaction": transaction}

    def update_status(
        self,
        check_id: int,
        organization_id: int,
        status,
        notes: Optional[str] = None,
        user=None
    ) -> Check:
        target = _value(status)
        if target == CheckStatus.CLEARED.value:
            result = self.clear_check(check_id, organization_id, user=user)
            check = result["check"]
            if notes is not None:
                check.notes = notes
                self.db.flush()
            return check

        check = self.get_by_id(check_id, organization_id)
        if not check:
            raise NotFoundError("Check", check_id)

        if check.status == CheckStatus.CLEARED.value:
            raise InvalidCheckTransitionError(check.status, target)
        if target in OPEN_STATUSES and check.status != target:
            raise InvalidCheckTransitionError(check.status, target)
        if check.status in VOID_STATUSES and target != check.status:
            raise InvalidCheckTransitionError(check.status, target)

        previous_status = check.status
        check.status = target
        if notes is not None:
            check.notes = notes
        self.db.flush()

        if previous_status != target:
            self.audit.log(
                action=AuditAction.CHECK_STATUS_CHANGED,
                resource_type="Check",
                resource_id=check.id,
                description=f"Check {check.check_number} moved from {previous_status} to {target}",
                new_values={"status": target, "previous_status": previous_status},
                user_id=getattr(user, "id", None),
                username=getattr(user, "username", None),
                organization_id=organization_id
            )
        return check

    def delete_check(self, check_id: int, organization_id: int, user=None) -> None:
        check = self.get_by_id(check_id, organization_id)
        if not check:
            raise NotFoundError("Check", check_id)
        if check.status == CheckStatus.CLEARED.value:
            raise InvalidCheckTransitionError(check.status, "DELETED")

        check_number = check.check_number
        self.db.delete(check)
        self.db.flush()

        self.audit.log(
            action=AuditAction.CHECK_DELETED,
            resource_type="Check",
            resource_id=check_id,
            description=f"Check {check_number} deleted",
            user_id=getattr(user, "id", None),
            username=getattr(user, "username", None),
            organization_id=organization_id
        )

    def get_due_check_ids(self, organization_id: int, as_of: date) -> List[int]:
        rows = self.db.query(Check.id).filter(
            Check.organization_id == organization_id,
            Check.status == CheckStatus.PENDING.value,
            Check.due_date <= as_of
        ).order_by(Check.due_date.asc(), Check.id.asc()).all()
        return [row[0] for row in rows]

    def process_due_checks(self, organization_id: int, as_of: Optional[date] = None, user=None) -> Dict[str, Any]:
        """
        Clear every received check that is due on or before ``as_of``.

        Each check is committed on its own; a failing check is rolled back,
        reported, and the batch moves on.
        """
        as_of = as_of or date.today()
        processed: List[Dict[str, Any]] = []
        failed: List[Dict[str, Any]] = []

        for check_id in self.get_due_check_ids(organization_id, as_of):
            check_number = None
            try:
                result = self.clear_check(check_id, organization_id, user=user, category=CATEGORY_CHECK_DUE)
                check = result["check"]
                check_number = check.check_number
                processed.append({
                    "id": check.id,
                    "check_number": check.check_number,
                    "amount": check.amount,
                    "currency": check.currency,
                })
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                if check_number is None:
                    row = self.db.query(Check.check_number).filter(Check.id == check_id).first()
                    check_number = row[0] if row else str(check_id)
                logger.error(f"Error processing due check {check_id}: {e}", exc_info=True)
                error = e.message if isinstance(e, ObraLedgerError) else "Could not clear check"
                failed.append({"id": check_id, "check_number": check_number, "error": error})

        if processed or failed:
            self.audit.log(
                action=AuditAction.DUE_CHECKS_PROCESSED,
                resource_type="Check",
                description=f"{len(processed)} due checks cleared, {len(failed)} failed",
                new_values={"as_of": as_of, "processed": [c["id"] for c in processed],
                            "failed": [c["id"] for c in failed]},
                user_id=getattr(user, "id", None),
                username=getattr(user, "username", None),
                organization_id=organization_id
            )
            self.db.commit()

        logger.info(
            f"Due check sweep for organization {organization_id} as of {as_of}: "
            f"{len(processed)} processed, {len(failed)} failed"
        )
        return {
            "success": True,
            "message": f"{len(processed)} checks processed",
            "processed_count": len(processed),
            "processed_checks": processed,
            "failed_checks": failed,
        }
