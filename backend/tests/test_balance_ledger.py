"""
Tests for the per-instrument balance ledger
"""
from decimal import Decimal

from obraledger.models import AccountBalance, InstrumentType
from obraledger.schemas import CashBoxCreate
from obraledger.services.balance_service import BalanceLedgerService
from obraledger.services.treasury_service import CashBoxService


CASH_BOX = InstrumentType.CASH_BOX.value
BANK_ACCOUNT = InstrumentType.BANK_ACCOUNT.value


def test_upsert_creates_then_increments_single_row(db, organization, cash_box):
    ledger = BalanceLedgerService(db)

    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("100.00"))
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("50.25"))
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("-20.00"))
    db.commit()

    rows = db.query(AccountBalance).filter(AccountBalance.account_id == cash_box.id).all()
    assert len(rows) == 1
    assert ledger.get_balance(cash_box.id, CASH_BOX, "PESOS") == Decimal("130.25")


def test_currencies_and_instrument_types_are_separate(db, organization, cash_box, bank_account):
    ledger = BalanceLedgerService(db)
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("10"))
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "USD", Decimal("3"))
    ledger.upsert_balance(organization.id, bank_account.id, BANK_ACCOUNT, "PESOS", Decimal("7"))
    db.commit()

    assert ledger.get_balance(cash_box.id, CASH_BOX, "PESOS") == Decimal("10")
    assert ledger.get_balance(cash_box.id, CASH_BOX, "USD") == Decimal("3")
    assert ledger.get_balance(bank_account.id, BANK_ACCOUNT, "PESOS") == Decimal("7")
    assert ledger.get_balance(bank_account.id, BANK_ACCOUNT, "EUR") == Decimal("0")


def test_upsert_is_rolled_back_with_the_transaction(db, organization, cash_box):
    ledger = BalanceLedgerService(db)
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("100"))
    db.commit()

    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("900"))
    db.rollback()

    assert ledger.get_balance(cash_box.id, CASH_BOX, "PESOS") == Decimal("100")


def test_get_balances_lists_active_instruments(db, organization, cash_box, bank_account):
    ledger = BalanceLedgerService(db)
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("1000"))
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "USD", Decimal("20"))
    ledger.upsert_balance(organization.id, bank_account.id, BANK_ACCOUNT, "PESOS", Decimal("500"))
    db.commit()

    result = ledger.get_balances(organization.id)
    by_type = {(account["type"], account["id"]): account for account in result["accounts"]}

    box = by_type[(CASH_BOX, cash_box.id)]
    assert box["balances_by_currency"] == {
        "PESOS": Decimal("1000"), "USD": Decimal("20"), "EUR": Decimal("0")
    }
    assert box["total_balance"] == Decimal("1000")

    bank = by_type[(BANK_ACCOUNT, bank_account.id)]
    assert bank["bank_name"] == "Banco Nación"
    assert bank["total_balance"] == Decimal("500")

    assert result["global_balances"]["PESOS"] == Decimal("1500")
    assert result["global_balances"]["USD"] == Decimal("20")


def test_instruments_with_the_same_id_do_not_collide(db, organization, cash_box, bank_account):
    # Cash boxes and bank accounts have independent id sequences
    assert cash_box.id == bank_account.id

    ledger = BalanceLedgerService(db)
    ledger.upsert_balance(organization.id, cash_box.id, CASH_BOX, "PESOS", Decimal("1"))
    ledger.upsert_balance(organization.id, bank_account.id, BANK_ACCOUNT, "PESOS", Decimal("2"))
    db.commit()

    accounts = ledger.get_balances(organization.id)["accounts"]
    assert len(accounts) == 2
    assert sorted(account["total_balance"] for account in accounts) == [Decimal("1"), Decimal("2")]


def test_inactive_instruments_are_excluded(db, organization):
    service = CashBoxService(db)
    kept = service.create(organization.id, CashBoxCreate(name="Caja Central", initial_balance=Decimal("100")))
    closed = service.create(organization.id, CashBoxCreate(name="Caja Vieja", initial_balance=Decimal("40")))
    service.delete(closed.id, organization.id)
    db.commit()

    result = BalanceLedgerService(db).get_balances(organization.id)
    assert [account["id"] for account in result["accounts"]] == [kept.id]
    assert result["global_balances"]["PESOS"] == Decimal("100")


def test_balances_are_scoped_to_organization(db, organization, other_organization, cash_box):
    other_box = CashBoxService(db).create(other_organization.id, CashBoxCreate(name="Caja Sur"))
    ledger = BalanceLedgerService(db)
    ledger.upsert_balance(other_organization.id, other_box.id, CASH_BOX, "PESOS", Decimal("999"))
    db.commit()

    result = ledger.get_balances(organization.id)
    assert result["global_balances"]["PESOS"] == Decimal("0")
