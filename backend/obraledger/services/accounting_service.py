"""
Accounting Service - Chart of Accounts, Journal Entries, Auto Accounting
"""
from typing import Optional, List, Dict, Any, Iterable
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from decimal import Decimal
from datetime import date
import logging

from obraledger.core.config import settings
from obraledger.core.exceptions import (
    ForbiddenError, NotFoundError, DuplicateCodeError, DuplicateEntryNumberError,
    InvalidParentError, InvalidAccountError, InvalidEntryLineError, UnbalancedEntryError
)
from obraledger.models import (
    Organization, Account, AccountType, JournalEntry, Transaction, TransactionType,
    EntryDirection, CREDIT_NORMAL_TYPES
)
from obraledger.schemas import AccountCreate, AccountUpdate, JournalLineCreate
from obraledger.services.code_service import CodeService

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _value(item):
    return item.value if hasattr(item, "value") else item


def get_organization(db: Session, organization_id: int) -> Organization:
    organization = db.query(Organization).filter(Organization.id == organization_id).first()
    if not organization:
        raise NotFoundError("Organization", organization_id)
    return organization


def ensure_accounting_enabled(db: Session, organization_id: int) -> Organization:
    organization = get_organization(db, organization_id)
    if not organization.enable_accounting:
        raise ForbiddenError("Accounting is not enabled for this organization")
    return organization


# ==================== STANDARD CHART ====================

# (code, name, type, parent code, sub type)
STANDARD_CHART_OF_ACCOUNTS = [
    ("1", "ACTIVO", AccountType.ASSET, None, None),
    ("1.1", "Activo Corriente", AccountType.ASSET, "1", "CORRIENTE"),
    ("1.1.01", "Caja y Bancos", AccountType.ASSET, "1.1", "CORRIENTE"),
    ("1.1.02", "Inversiones Temporales", AccountType.ASSET, "1.1", "CORRIENTE"),
    ("1.1.03", "Cuentas por Cobrar Comerciales", AccountType.ASSET, "1.1", "CORRIENTE"),
    ("1.1.04", "Otras Cuentas por Cobrar", AccountType.ASSET, "1.1", "CORRIENTE"),
    ("1.1.05", "Inventarios", AccountType.ASSET, "1.1", "CORRIENTE"),
    ("1.1.06", "Gastos Pagados por Anticipado", AccountType.ASSET, "1.1", "CORRIENTE"),
    ("1.2", "Activo No Corriente", AccountType.ASSET, "1", "NO_CORRIENTE"),
    ("1.2.01", "Propiedades, Planta y Equipo", AccountType.ASSET, "1.2", "NO_CORRIENTE"),
    ("1.2.02", "Depreciación Acumulada", AccountType.ASSET, "1.2", "NO_CORRIENTE"),
    ("1.2.03", "Activos Intangibles", AccountType.ASSET, "1.2", "NO_CORRIENTE"),

    ("2", "PASIVO", AccountType.LIABILITY, None, None),
    ("2.1", "Pasivo Corriente", AccountType.LIABILITY, "2", "CORRIENTE"),
    ("2.1.01", "Cuentas por Pagar Comerciales", AccountType.LIABILITY, "2.1", "CORRIENTE"),
    ("2.1.02", "Otras Cuentas por Pagar", AccountType.LIABILITY, "2.1", "CORRIENTE"),
    ("2.1.03", "Sueldos y Cargas Sociales por Pagar", AccountType.LIABILITY, "2.1", "CORRIENTE"),
    ("2.1.04", "Impuestos por Pagar", AccountType.LIABILITY, "2.1", "CORRIENTE"),
    ("2.1.05", "Préstamos a Corto Plazo", AccountType.LIABILITY, "2.1", "CORRIENTE"),
    ("2.1.06", "Ingresos Diferidos", AccountType.LIABILITY, "2.1", "CORRIENTE"),
    ("2.2", "Pasivo No Corriente", AccountType.LIABILITY, "2", "NO_CORRIENTE"),
    ("2.2.01", "Préstamos a Largo Plazo", AccountType.LIABILITY, "2.2", "NO_CORRIENTE"),
    ("2.2.02", "Hipotecas por Pagar", AccountType.LIABILITY, "2.2", "NO_CORRIENTE"),

    ("3", "PATRIMONIO NETO", AccountType.EQUITY, None, None),
    ("3.1", "Capital Social", AccountType.EQUITY, "3", None),
    ("3.2", "Reservas", AccountType.EQUITY, "3", None),
    ("3.3", "Resultados Acumulados", AccountType.EQUITY, "3", None),
    ("3.4", "Resultado del Ejercicio", AccountType.EQUITY, "3", None),

    ("4", "INGRESOS", AccountType.INCOME, None, None),
    ("4.1", "Ingresos Operacionales", AccountType.INCOME, "4", "OPERACIONAL"),
    ("4.1.01", "Ingresos por Construcción", AccountType.INCOME, "4.1", "OPERACIONAL"),
    ("4.1.02", "Ingresos por Servicios", AccountType.INCOME, "4.1", "OPERACIONAL"),
    ("4.1.03", "Ingresos por Venta de Materiales", AccountType.INCOME, "4.1", "OPERACIONAL"),
    ("4.2", "Ingresos No Operacionales", AccountType.INCOME, "4", "NO_OPERACIONAL"),
    ("4.2.01", "Ingresos Financieros", AccountType.INCOME, "4.2", "NO_OPERACIONAL"),
    ("4.2.02", "Otros Ingresos", AccountType.INCOME, "4.2", "NO_OPERACIONAL"),

    ("5", "EGRESOS", AccountType.EXPENSE, None, None),
    ("5.1", "Costos Directos", AccountType.EXPENSE, "5", "COSTO_DIRECTO"),
    ("5.1.01", "Materiales de Construcción", AccountType.EXPENSE, "5.1", "COSTO_DIRECTO"),
    ("5.1.02", "Mano de Obra Directa", AccountType.EXPENSE, "5.1", "COSTO_DIRECTO"),
    ("5.1.03", "Subcontratistas", AccountType.EXPENSE, "5.1", "COSTO_DIRECTO"),
    ("5.1.04", "Maquinaria y Equipos", AccountType.EXPENSE, "5.1", "COSTO_DIRECTO"),
    ("5.2", "Gastos Administrativos", AccountType.EXPENSE, "5", "GASTO_ADMIN"),
    ("5.2.01", "Sueldos Administrativos", AccountType.EXPENSE, "5.2", "GASTO_ADMIN"),
    ("5.2.02", "Servicios Públicos", AccountType.EXPENSE, "5.2", "GASTO_ADMIN"),
    ("5.2.03", "Gastos de Oficina", AccountType.EXPENSE, "5.2", "GASTO_ADMIN"),
    ("5.2.04", "Depreciaciones", AccountType.EXPENSE, "5.2", "GASTO_ADMIN"),
    ("5.3", "Gastos Financieros", AccountType.EXPENSE, "5", "GASTO_FINANCIERO"),
    ("5.3.01", "Intereses por Préstamos", AccountType.EXPENSE, "5.3", "GASTO_FINANCIERO"),
    ("5.3.02", "Comisiones Bancarias", AccountType.EXPENSE, "5.3", "GASTO_FINANCIERO"),
]

MAIN_ACCOUNT_CODES = {
    "cash": "1.1.01",
    "receivables": "1.1.03",
    "payables": "2.1.01",
    "income": "4.1.01",
    "expense": "5.1.01",
}

# Treasury category -> (income account, expense account)
CATEGORY_ACCOUNT_CODES = {
    "MATERIALES": ("4.1.03", "5.1.01"),
    "MANO_OBRA": ("4.1.01", "5.1.02"),
    "SUBCONTRATISTAS": ("4.1.01", "5.1.03"),
    "MAQUINARIA": ("4.1.02", "5.1.04"),
    "ADMINISTRATIVOS": ("4.2.02", "5.2.03"),
    "BANCARIOS": ("4.2.01", "5.3.02"),
}


class StandardChartService:
    def __init__(self, db: Session):
        self.db = db

    def setup_standard_chart(self, organization_id: int) -> int:
        """
        Enable accounting and create the standard chart of accounts.

        Returns the number of accounts created; zero when the organization
        already has a chart.
        """
        organization = get_organization(self.db, organization_id)
        organization.enable_accounting = True

        existing = self.db.query(func.count(Account.id)).filter(
            Account.organization_id == organization_id
        ).scalar()
        if existing:
            logger.info(f"Organization {organization_id} already has {existing} accounts, skipping setup")
            return 0

        currency = organization.local_currency or settings.LOCAL_CURRENCY
        accounts_by_code: Dict[str, Account] = {}
        for code, name, account_type, parent_code, sub_type in STANDARD_CHART_OF_ACCOUNTS:
            parent = accounts_by_code.get(parent_code) if parent_code else None
            account = Account(
                code=code,
                name=name,
                type=account_type.value,
                sub_type=sub_type,
                currency=currency,
                parent_id=parent.id if parent else None,
                organization_id=organization_id,
                is_active=True,
                description=f"Cuenta estándar del plan contable - {name}"
            )
            self.db.add(account)
            self.db.flush()
            accounts_by_code[code] = account

        logger.info(f"Standard chart of accounts created for organization {organization_id}")
        return len(accounts_by_code)

    def get_by_code(self, organization_id: int, code: str) -> Optional[Account]:
        return self.db.query(Account).filter(
            Account.organization_id == organization_id,
            Account.code == code,
            Account.is_active == True
        ).first()

    def get_main_accounts(self, organization_id: int) -> Dict[str, Optional[Account]]:
        return {
            key: self.get_by_code(organization_id, code)
            for key, code in MAIN_ACCOUNT_CODES.items()
        }


# ==================== ACCOUNTS ====================

class AccountService:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, account_id: int, organization_id: int) -> Optional[Account]:
        return self.db.query(Account).filter(
            Account.id == account_id,
            Account.organization_id == organization_id
        ).first()

    def get_by_code(self, code: str, organization_id: int) -> Optional[Account]:
        return self.db.query(Account).filter(
            Account.code == code,
            Account.organization_id == organization_id
        ).first()

    def get_account(self, account_id: int, organization_id: int) -> Account:
        ensure_accounting_enabled(self.db, organization_id)
        account = self.db.query(Account).options(
            joinedload(Account.parent),
            joinedload(Account.children)
        ).filter(
            Account.id == account_id,
            Account.organization_id == organization_id
        ).first()
        if not account:
            raise NotFoundError("Account", account_id)
        return account

    def list_accounts(
        self,
        organization_id: int,
        account_type=None,
        is_active: Optional[bool] = None,
        include_children: bool = False
    ) -> List[Account]:
        ensure_accounting_enabled(self.db, organization_id)

        query = self.db.query(Account).options(joinedload(Account.parent))
        if include_children:
            query = query.options(joinedload(Account.children))
        query = query.filter(Account.organization_id == organization_id)

        if account_type:
            query = query.filter(Account.type == _value(account_type))
        if is_active is not None:
            query = query.filter(Account.is_active == is_active)

        return query.order_by(Account.code).all()

    def create_account(self, organization_id: int, account_data: AccountCreate) -> Account:
        organization = ensure_accounting_enabled(self.db, organization_id)

        if self.get_by_code(account_data.code, organization_id):
            raise DuplicateCodeError(account_data.code)

        if account_data.parent_id is not None:
            if not self.get_by_id(account_data.parent_id, organization_id):
                raise InvalidParentError(account_data.parent_id)

        currency = _value(account_data.currency) or organization.local_currency or settings.LOCAL_CURRENCY

        account = Account(
            code=account_data.code,
            name=account_data.name,
            type=_value(account_data.type),
            sub_type=account_data.sub_type,
            currency=currency,
            description=account_data.description,
            parent_id=account_data.parent_id,
            organization_id=organization_id,
            is_active=True
        )
        try:
            with self.db.begin_nested():
                self.db.add(account)
        except IntegrityError:
            # Lost a race with a concurrent insert of the same code
            raise DuplicateCodeError(account_data.code)
        logger.info(f"Account {account.code} created for organization {organization_id}")
        return account

    def update_account(self, account_id: int, organization_id: int, account_data: AccountUpdate) -> Account:
        account = self.get_account(account_id, organization_id)

        update_data = account_data.model_dump(exclude_unset=True)
        for key, value in update_data.items():
            setattr(account, key, value)

        self.db.flush()
        return account

    def get_balance(self, account: Account) -> Decimal:
        """Debit minus credit over the account's lines in its own currency"""
        result = self.db.query(
            func.sum(JournalEntry.debit - JournalEntry.credit)
        ).filter(
            JournalEntry.account_id == account.id,
            JournalEntry.currency == account.currency
        ).scalar()
        return Decimal(result) if result is not None else ZERO

    def get_account_balance(self, account_id: int, organization_id: int) -> Dict[str, Any]:
        account = self.get_account(account_id, organization_id)
        balance = self.get_balance(account)

        # Liability, equity and income accounts carry a credit balance
        if account.type in CREDIT_NORMAL_TYPES:
            balance = -balance

        return {"account": account, "balance": balance}

    def suggest_child_code(self, parent_id: int, organization_id: int) -> str:
        parent = self.get_account(parent_id, organization_id)
        return CodeService(self.db).next_child_code(parent)


# ==================== JOURNAL ENTRIES ====================

class JournalEntryService:
    def __init__(self, db: Session):
        self.db = db
        self.code_service = CodeService(db)

    def get_by_id(self, entry_id: int, organization_id: int) -> Optional[JournalEntry]:
        return self.db.query(JournalEntry).filter(
            JournalEntry.id == entry_id,
            JournalEntry.organization_id == organization_id
        ).first()

    def entry_number_exists(self, organization_id: int, entry_number: str) -> bool:
        return self.db.query(JournalEntry.id).filter(
            JournalEntry.organization_id == organization_id,
            JournalEntry.entry_number == entry_number
        ).first() is not None

    def _validate_lines(self, organization_id: int, lines: Iterable[JournalLineCreate]) -> Dict[int, Account]:
        lines = list(lines)
        if len(lines) < 2:
            raise InvalidEntryLineError("A journal entry needs at least two lines")

        for line in lines:
            debit = Decimal(line.debit or 0)
            credit = Decimal(line.credit or 0)
            if debit < 0 or credit < 0 or (debit > 0) == (credit > 0):
                raise InvalidEntryLineError()

        account_ids = {line.account_id for line in lines}
        accounts = self.db.query(Account).filter(
            Account.id.in_(account_ids),
            Account.organization_id == organization_id,
            Account.is_active == True
        ).all()
        accounts_by_id = {account.id: account for account in accounts}
        if len(accounts_by_id) != len(account_ids):
            raise InvalidAccountError()

        totals: Dict[str, List[Decimal]] = {}
        for line in lines:
            currency = _value(line.currency) or accounts_by_id[line.account_id].currency
            debits_credits = totals.setdefault(currency, [ZERO, ZERO])
            debits_credits[0] += Decimal(line.debit or 0)
            debits_credits[1] += Decimal(line.credit or 0)

        for currency, (debits, credits) in totals.items():
            if debits != credits:
                raise UnbalancedEntryError(currency, debits, credits)

        return accounts_by_id

    def create_manual_entry(
        self,
        organization_id: int,
        lines: List[JournalLineCreate],
        entry_number: Optional[str] = None,
        entry_date: Optional[date] = None,
        description: Optional[str] = None,
        created_by: Optional[int] = None
    ) -> List[JournalEntry]:
        """
        Write a balanced multi-line entry; all lines share one entry number.

        Every check runs before the first row is added to the session.
        """
        ensure_accounting_enabled(self.db, organization_id)
        accounts_by_id = self._validate_lines(organization_id, lines)

        if entry_number:
            if self.entry_number_exists(organization_id, entry_number):
                raise DuplicateEntryNumberError(entry_number)
        else:
            entry_number = self.code_service.next_entry_number(organization_id)

        entries = []
        for line in lines:
            entry = JournalEntry(
                entry_number=entry_number,
                entry_date=entry_date or date.today(),
                description=description,
                account_id=line.account_id,
                debit=Decimal(line.debit or 0),
                credit=Decimal(line.credit or 0),
                currency=_value(line.currency) or accounts_by_id[line.account_id].currency,
                exchange_rate=Decimal("1"),
                is_automatic=False,
                organization_id=organization_id,
                created_by=created_by
            )
            self.db.add(entry)
            entries.append(entry)

        self.db.flush()
        logger.info(f"Journal entry {entry_number} posted with {len(entries)} lines (organization={organization_id})")
        return entries

    def create_automatic_entry(
        self,
        organization_id: int,
        source_type: str,
        source_id: Any,
        account_id: int,
        amount: Decimal,
        direction,
        currency: Optional[str] = None,
        entry_number: Optional[str] = None,
        entry_date: Optional[date] = None,
        description: Optional[str] = None
    ) -> JournalEntry:
        amount = Decimal(amount)
        if amount <= 0:
            raise InvalidEntryLineError("Automatic entry amount must be positive")

        account = self.db.query(Account).filter(
            Account.id == account_id,
            Account.organization_id == organization_id,
            Account.is_active == True
        ).first()
        if not account:
            raise InvalidAccountError()

        is_debit = _value(direction) == EntryDirection.DEBIT.value
        entry = JournalEntry(
            entry_number=entry_number or self.code_service.next_entry_number(organization_id),
            entry_date=entry_date or date.today(),
            description=description,
            account_id=account.id,
            debit=amount if is_debit else ZERO,
            credit=ZERO if is_debit else amount,
            currency=_value(currency) or account.currency,
            exchange_rate=Decimal("1"),
            is_automatic=True,
            source_type=source_type,
            source_id=str(source_id),
            organization_id=organization_id
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def delete_entry(self, entry_id: int, organization_id: int) -> int:
        """
        Delete an entry. Automatic entries lose only their own line; manual
        entries lose every line that shares the entry number.

        Returns the number of deleted lines.
        """
        entry = self.get_by_id(entry_id, organization_id)
        if not entry:
            raise NotFoundError("Journal entry", entry_id)

        entry_number = entry.entry_number
        if entry.is_automatic:
            self.db.delete(entry)
            deleted = 1
        else:
            deleted = self.db.query(JournalEntry).filter(
                JournalEntry.organization_id == organization_id,
                JournalEntry.entry_number == entry_number,
                JournalEntry.is_automatic == False
            ).delete(synchronize_session="fetch")

        self.db.flush()
        logger.info(
            f"Journal entry {entry_number} deleted ({deleted} lines, organization={organization_id})"
        )
        return deleted

    def list_entries(
        self,
        organization_id: int,
        account_id: Optional[int] = None,
        entry_number: Optional[str] = None,
        source_type: Optional[str] = None,
        is_automatic: Optional[bool] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 50
    ) -> Dict[str, Any]:
        ensure_accounting_enabled(self.db, organization_id)

        query = self.db.query(JournalEntry).filter(JournalEntry.organization_id == organization_id)
        if account_id:
            query = query.filter(JournalEntry.account_id == account_id)
        if entry_number:
            query = query.filter(JournalEntry.entry_number == entry_number)
        if source_type:
            query = query.filter(JournalEntry.source_type == source_type)
        if is_automatic is not None:
            query = query.filter(JournalEntry.is_automatic == is_automatic)
        if start_date:
            query = query.filter(JournalEntry.entry_date >= start_date)
        if end_date:
            query = query.filter(JournalEntry.entry_date <= end_date)

        total_count = query.count()
        entries = query.options(joinedload(JournalEntry.account))\
            .order_by(JournalEntry.entry_date.desc(), JournalEntry.entry_number.desc(), JournalEntry.id)\
            .offset((page - 1) * limit)\
            .limit(limit)\
            .all()

        return {
            "entries": entries,
            "page": page,
            "limit": limit,
            "total_count": total_count,
            "total_pages": (total_count + limit - 1) // limit if limit else 0,
        }

    def has_journal_entries(self, organization_id: int, source_type: str, source_id: Any) -> bool:
        return self.db.query(JournalEntry.id).filter(
            JournalEntry.organization_id == organization_id,
            JournalEntry.source_type == source_type,
            JournalEntry.source_id == str(source_id)
        ).first() is not None

    def delete_automatic_entries(self, organization_id: int, source_type: str, source_id: Any) -> int:
        deleted = self.db.query(JournalEntry).filter(
            JournalEntry.organization_id == organization_id,
            JournalEntry.source_type == source_type,
            JournalEntry.source_id == str(source_id),
            JournalEntry.is_automatic == True
        ).delete(synchronize_session="fetch")
        self.db.flush()
        return deleted


# ==================== AUTO ACCOUNTING ====================

class AutoAccountingService:
    SOURCE_TRANSACTION = "TRANSACTION"

    def __init__(self, db: Session):
        self.db = db
        self.chart = StandardChartService(db)
        self.journal = JournalEntryService(db)

    def _resolve_accounts(self, organization_id: int, category: Optional[str]):
        income_code, expense_code = CATEGORY_ACCOUNT_CODES.get(
            (category or "").upper(),
            (MAIN_ACCOUNT_CODES["income"], MAIN_ACCOUNT_CODES["expense"])
        )
        cash = self.chart.get_by_code(organization_id, MAIN_ACCOUNT_CODES["cash"])
        income = self.chart.get_by_code(organization_id, income_code) \
            or self.chart.get_by_code(organization_id, MAIN_ACCOUNT_CODES["income"])
        expense = self.chart.get_by_code(organization_id, expense_code) \
            or self.chart.get_by_code(organization_id, MAIN_ACCOUNT_CODES["expense"])
        return cash, income, expense

    def post_transaction(self, transaction: Transaction) -> Optional[str]:
        """
        Post the balanced pair for a treasury movement.

        Returns the entry number, or None when accounting is disabled, the
        chart is missing, or the movement was already posted.
        """
        organization = get_organization(self.db, transaction.organization_id)
        if not organization.enable_accounting:
            return None

        if self.journal.has_journal_entries(organization.id, self.SOURCE_TRANSACTION, transaction.id):
            return None

        cash, income, expense = self._resolve_accounts(organization.id, transaction.category)
        if not cash or not income or not expense:
            logger.warning(f"Standard chart incomplete for organization {organization.id}, skipping auto accounting")
            return None

        if transaction.type == TransactionType.INCOME.value:
            debit_account, credit_account = cash, income
        else:
            debit_account, credit_account = expense, cash

        entry_number = self.journal.code_service.next_entry_number(organization.id)
        description = transaction.description or f"Movimiento de tesorería {transaction.id}"
        for account, direction in (
            (debit_account, EntryDirection.DEBIT),
            (credit_account, EntryDirection.CREDIT),
        ):
            self.journal.create_automatic_entry(
                organization_id=organization.id,
                source_type=self.SOURCE_TRANSACTION,
                source_id=transaction.id,
                account_id=account.id,
                amount=transaction.amount,
                direction=direction,
                currency=transaction.currency,
                entry_number=entry_number,
                entry_date=transaction.date,
                description=description
            )

        logger.info(f"Transaction {transaction.id} posted as journal entry {entry_number}")
        return entry_number
