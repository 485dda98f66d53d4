"""
Balance Ledger Service - running balances per treasury instrument and currency
"""
from typing import Dict, List, Any
from decimal import Decimal
from datetime import datetime
import logging

from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite

from obraledger.models import (
    AccountBalance, CashBox, BankAccount, Currency, InstrumentType
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


def empty_currency_map() -> Dict[str, Decimal]:
    return {currency.value: ZERO for currency in Currency}


class BalanceLedgerService:
    def __init__(self, db: Session):
        self.db = db

    def upsert_balance(
        self,
        organization_id: int,
        account_id: int,
        account_type: str,
        currency: str,
        delta: Decimal
    ) -> None:
        """
        Add ``delta`` to the balance row of one instrument and currency.

        Runs as one INSERT ... ON CONFLICT DO UPDATE statement inside the
        caller's transaction, so concurrent increments never lose updates.
        """
        delta = Decimal(delta)
        table = AccountBalance.__table__
        now = datetime.utcnow()
        insert = _UPSERT_DIALECTS.get(self.db.get_bind().dialect.name)

        # autoflush is off; pending rows referenced by the statement must exist
        self.db.flush()

        if insert is not None:
            stmt = insert(table).values(
                account_id=account_id,
                account_type=account_type,
                currency=currency,
                balance=delta,
                organization_id=organization_id,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.account_id, table.c.account_type, table.c.currency],
                set_={
                    "balance": table.c.balance + stmt.excluded.balance,
                    "updated_at": now,
                },
            )
            self.db.execute(stmt)
        else:
            result = self.db.execute(
                table.update()
                .where(
                    table.c.account_id == account_id,
                    table.c.account_type == account_type,
                    table.c.currency == currency,
                )
                .values(balance=table.c.balance + delta, updated_at=now)
            )
            if result.rowcount == 0:
                self.db.execute(table.insert().values(
                    account_id=account_id,
                    account_type=account_type,
                    currency=currency,
                    balance=delta,
                    organization_id=organization_id,
                    updated_at=now,
                ))

        logger.debug(
            f"Balance {account_type}:{account_id} {currency} changed by {delta} "
            f"(organization={organization_id})"
        )

    def get_balance(self, account_id: int, account_type: str, currency: str) -> Decimal:
        balance = self.db.query(AccountBalance.balance).filter(
            AccountBalance.account_id == account_id,
            AccountBalance.account_type == account_type,
            AccountBalance.currency == currency
        ).scalar()
        return Decimal(balance) if balance is not None else ZERO

    def get_balances(self, organization_id: int) -> Dict[str, Any]:
        """
        Balances of every active cash box and bank account of the organization.

        Returns ``{"accounts": [...], "global_balances": {...}, "last_updated": ...}``.
        Each account carries a per currency map and a ``total_balance`` in the
        instrument's own currency.
        """
        rows = self.db.query(
            AccountBalance.account_id,
            AccountBalance.account_type,
            AccountBalance.currency,
            AccountBalance.balance
        ).filter(AccountBalance.organization_id == organization_id).all()

        by_instrument: Dict[tuple, Dict[str, Decimal]] = {}
        for account_id, account_type, currency, balance in rows:
            currencies = by_instrument.setdefault((account_type, account_id), empty_currency_map())
            currencies[currency] = currencies.get(currency, ZERO) + Decimal(balance)

        cash_boxes = self.db.query(CashBox).filter(
            CashBox.organization_id == organization_id,
            CashBox.is_active == True
        ).order_by(CashBox.name).all()
        bank_accounts = self.db.query(BankAccount).filter(
            BankAccount.organization_id == organization_id,
            BankAccount.is_active == True
        ).order_by(BankAccount.name).all()

        accounts: List[Dict[str, Any]] = []
        global_balances = empty_currency_map()

        instruments = [(InstrumentType.CASH_BOX.value, box) for box in cash_boxes]
        instruments += [(InstrumentType.BANK_ACCOUNT.value, bank) for bank in bank_accounts]

        for account_type, instrument in instruments:
            currencies = by_instrument.get((account_type, instrument.id), empty_currency_map())
            for currency, amount in currencies.items():
                global_balances[currency] = global_balances.get(currency, ZERO) + amount

            accounts.append({
                "id": instrument.id,
                "name": instrument.name,
                "type": account_type,
                "currency": instrument.currency,
                "bank_name": getattr(instrument, "bank_name", None),
                "balances_by_currency": currencies,
                "total_balance": currencies.get(instrument.currency, ZERO),
            })

        return {
            "accounts": accounts,
            "global_balances": global_balances,
            "last_updated": datetime.utcnow(),
        }
