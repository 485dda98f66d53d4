"""
Treasury Service - cash boxes, bank accounts, movements and consolidated views
"""
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import func, or_, and_, select
from decimal import Decimal
from datetime import date, datetime
import logging

from obraledger.core.config import settings
from obraledger.core.exceptions import NotFoundError, InvalidInstrumentError
from obraledger.models import (
    CashBox, BankAccount, Transaction, TransactionType, Check, CheckStatus,
    InstrumentType, AccountBalance
)
from obraledger.schemas import (
    CashBoxCreate, CashBoxUpdate, BankAccountCreate, BankAccountUpdate, TransactionCreate
)
from obraledger.services.accounting_service import AutoAccountingService, get_organization
from obraledger.services.balance_service import BalanceLedgerService, empty_currency_map, ZERO

logger = logging.getLogger(__name__)

CATEGORY_OPENING_BALANCE = "OPENING_BALANCE"


def _value(item):
    return item.value if hasattr(item, "value") else item


class _InstrumentService:
    """Shared behaviour of cash boxes and bank accounts"""

    model = None
    instrument_type = None
    resource_name = None
    foreign_key = None

    def __init__(self, db: Session):
        self.db = db
        self.ledger = BalanceLedgerService(db)

    def get_by_id(self, instrument_id: int, organization_id: int):
        return self.db.query(self.model).filter(
            self.model.id == instrument_id,
            self.model.organization_id == organization_id
        ).first()

    def get_or_404(self, instrument_id: int, organization_id: int):
        instrument = self.get_by_id(instrument_id, organization_id)
        if not instrument:
            raise NotFoundError(self.resource_name, instrument_id)
        return instrument

    def list_active(self, organization_id: int) -> List:
        return self.db.query(self.model).filter(
            self.model.organization_id == organization_id,
            self.model.is_active == True
        ).order_by(self.model.name).all()

    def _create(self, organization_id: int, fields: Dict[str, Any], initial_balance: Decimal):
        organization = get_organization(self.db, organization_id)
        currency = _value(fields.pop("currency", None)) or organization.local_currency or settings.LOCAL_CURRENCY

        instrument = self.model(currency=currency, organization_id=organization_id, is_active=True, **fields)
        self.db.add(instrument)
        self.db.flush()

        initial_balance = Decimal(initial_balance or 0)
        if initial_balance > 0:
            transaction = Transaction(
                amount=initial_balance,
                currency=currency,
                type=TransactionType.INCOME.value,
                category=CATEGORY_OPENING_BALANCE,
                description=f"Saldo inicial {instrument.name}",
                date=date.today(),
                organization_id=organization_id,
                **{self.foreign_key: instrument.id}
            )
            self.db.add(transaction)
            self.db.flush()
            self.ledger.upsert_balance(
                organization_id=organization_id,
                account_id=instrument.id,
                account_type=self.instrument_type,
                currency=currency,
                delta=initial_balance
            )

        logger.info(
            f"{self.resource_name} '{instrument.name}' created with opening balance "
            f"{initial_balance} {currency} (organization={organization_id})"
        )
        return instrument

    def update(self, instrument_id: int, organization_id: int, data):
        instrument = self.get_or_404(instrument_id, organization_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            setattr(instrument, key, _value(value))
        self.db.flush()
        return instrument

    def delete(self, instrument_id: int, organization_id: int):
        """Soft delete; balances and movements are kept"""
        instrument = self.get_or_404(instrument_id, organization_id)
        instrument.is_active = False
        self.db.flush()
        return instrument


class CashBoxService(_InstrumentService):
    model = CashBox
    instrument_type = InstrumentType.CASH_BOX.value
    resource_name = "Cash box"
    foreign_key = "cash_box_id"

    def create(self, organization_id: int, data: CashBoxCreate) -> CashBox:
        fields = data.model_dump(exclude={"initial_balance"})
        return self._create(organization_id, fields, data.initial_balance)


class BankAccountService(_InstrumentService):
    model = BankAccount
    instrument_type = InstrumentType.BANK_ACCOUNT.value
    resource_name = "Bank account"
    foreign_key = "bank_account_id"

    def create(self, organization_id: int, data: BankAccountCreate) -> BankAccount:
        fields = data.model_dump(exclude={"initial_balance"})
        return self._create(organization_id, fields, data.initial_balance)


class TreasuryTransactionService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = BalanceLedgerService(db)
        self.auto_accounting = AutoAccountingService(db)

    def record_movement(self, organization_id: int, data: TransactionCreate) -> Transaction:
        """Write a movement, move the instrument balance and post it to the journal"""
        if bool(data.cash_box_id) == bool(data.bank_account_id):
            raise InvalidInstrumentError()

        if data.cash_box_id:
            service, instrument_id = CashBoxService(self.db), data.cash_box_id
        else:
            service, instrument_id = BankAccountService(self.db), data.bank_account_id

        instrument = service.get_by_id(instrument_id, organization_id)
        if not instrument or not instrument.is_active:
            raise InvalidInstrumentError()

        amount = Decimal(data.amount)
        transaction_type = _value(data.type)
        currency = _value(data.currency)

        transaction = Transaction(
            amount=amount,
            currency=currency,
            type=transaction_type,
            category=data.category,
            description=data.description,
            date=data.date or date.today(),
            reference=data.reference,
            cash_box_id=data.cash_box_id or None,
            bank_account_id=data.bank_account_id or None,
            organization_id=organization_id
        )
        self.db.add(transaction)
        self.db.flush()

        delta = amount if transaction_type == TransactionType.INCOME.value else -amount
        self.ledger.upsert_balance(
            organization_id=organization_id,
            account_id=instrument.id,
            account_type=service.instrument_type,
            currency=currency,
            delta=delta
        )

        self.auto_accounting.post_transaction(transaction)
        logger.info(
            f"{transaction_type} of {amount} {currency} recorded on {service.resource_name} "
            f"{instrument.id} (organization={organization_id})"
        )
        return transaction

    def list_transactions(
        self,
        organization_id: int,
        cash_box_id: Optional[int] = None,
        bank_account_id: Optional[int] = None,
        transaction_type: Optional[str] = None,
        currency: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 100
    ) -> List[Transaction]:
        query = self.db.query(Transaction).filter(Transaction.organization_id == organization_id)
        if cash_box_id:
            query = query.filter(Transaction.cash_box_id == cash_box_id)
        if bank_account_id:
            query = query.filter(Transaction.bank_account_id == bank_account_id)
        if transaction_type:
            query = query.filter(Transaction.type == _value(transaction_type))
        if currency:
            query = query.filter(Transaction.currency == _value(currency))
        if start_date:
            query = query.filter(Transaction.date >= start_date)
        if end_date:
            query = query.filter(Transaction.date <= end_date)
        return query.order_by(Transaction.date.desc(), Transaction.id.desc()).limit(limit).all()


class TreasuryQueryService:
    """Read-only consolidation of the balance ledger, movements and open checks"""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = BalanceLedgerService(db)

    def get_balances(self, organization_id: int) -> Dict[str, Any]:
        return self.ledger.get_balances(organization_id)

    def _month_totals(self, organization_id: int, today: date) -> Dict[str, Dict[str, Decimal]]:
        month_start = today.replace(day=1)
        rows = self.db.query(
            Transaction.type,
            Transaction.currency,
            func.sum(Transaction.amount)
        ).filter(
            Transaction.organization_id == organization_id,
            Transaction.date >= month_start,
            Transaction.date <= today
        ).group_by(Transaction.type, Transaction.currency).all()

        income = empty_currency_map()
        expense = empty_currency_map()
        for transaction_type, currency, total in rows:
            target = income if transaction_type == TransactionType.INCOME.value else expense
            target[currency] = target.get(currency, ZERO) + Decimal(total or 0)
        return {"income": income, "expense": expense}

    def _pending_checks(self, organization_id: int) -> Dict[str, Dict[str, Decimal]]:
        rows = self.db.query(
            Check.status,
            Check.currency,
            func.sum(Check.amount)
        ).filter(
            Check.organization_id == organization_id,
            Check.status.in_([CheckStatus.PENDING.value, CheckStatus.ISSUED.value])
        ).group_by(Check.status, Check.currency).all()

        to_collect = empty_currency_map()
        to_pay = empty_currency_map()
        for status, currency, total in rows:
            target = to_collect if status == CheckStatus.PENDING.value else to_pay
            target[currency] = target.get(currency, ZERO) + Decimal(total or 0)
        return {"to_collect": to_collect, "to_pay": to_pay}

    def get_consolidated_balances(self, organization_id: int, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        result = self.get_balances(organization_id)
        month = self._month_totals(organization_id, today)
        pending = self._pending_checks(organization_id)

        result.update({
            "monthly_income": month["income"],
            "monthly_expense": month["expense"],
            "pending_to_collect": pending["to_collect"],
            "pending_to_pay": pending["to_pay"],
        })
        return result

    def verify_consistency(self, organization_id: int) -> Dict[str, Any]:
        """
        Compare ledger balances with the signed sum of movements per currency,
        both restricted to active instruments.
        """
        active_boxes = select(CashBox.id).where(
            CashBox.organization_id == organization_id, CashBox.is_active == True
        )
        active_banks = select(BankAccount.id).where(
            BankAccount.organization_id == organization_id, BankAccount.is_active == True
        )

        ledger_totals = empty_currency_map()
        ledger_rows = self.db.query(AccountBalance.currency, func.sum(AccountBalance.balance)).filter(
            AccountBalance.organization_id == organization_id,
            or_(
                and_(AccountBalance.account_type == InstrumentType.CASH_BOX.value,
                     AccountBalance.account_id.in_(active_boxes)),
                and_(AccountBalance.account_type == InstrumentType.BANK_ACCOUNT.value,
                     AccountBalance.account_id.in_(active_banks)),
            )
        ).group_by(AccountBalance.currency).all()
        for currency, total in ledger_rows:
            ledger_totals[currency] = ledger_totals.get(currency, ZERO) + Decimal(total or 0)

        transaction_totals = empty_currency_map()
        transaction_rows = self.db.query(
            Transaction.type, Transaction.currency, func.sum(Transaction.amount)
        ).filter(
            Transaction.organization_id == organization_id,
            or_(Transaction.cash_box_id.in_(active_boxes), Transaction.bank_account_id.in_(active_banks))
        ).group_by(Transaction.type, Transaction.currency).all()
        for transaction_type, currency, total in transaction_rows:
            signed = Decimal(total or 0)
            if transaction_type != TransactionType.INCOME.value:
                signed = -signed
            transaction_totals[currency] = transaction_totals.get(currency, ZERO) + signed

        differences = {
            currency: ledger_totals.get(currency, ZERO) - transaction_totals.get(currency, ZERO)
            for currency in set(ledger_totals) | set(transaction_totals)
        }
        is_consistent = all(diff == 0 for diff in differences.values())
        if not is_consistent:
            logger.warning(f"Treasury ledger out of balance for organization {organization_id}: {differences}")

        return {
            "organization_id": organization_id,
            "is_consistent": is_consistent,
            "ledger_totals": ledger_totals,
            "transaction_totals": transaction_totals,
            "differences": differences,
            "checked_at": datetime.utcnow(),
        }
