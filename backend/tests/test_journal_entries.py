"""
Tests for manual and automatic journal entries
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from obraledger.core.exceptions import (
    DuplicateEntryNumberError, InvalidAccountError, InvalidEntryLineError,
    NotFoundError, UnbalancedEntryError
)
from obraledger.models import JournalEntry, EntryDirection
from obraledger.schemas import AccountUpdate, JournalLineCreate
from obraledger.services.accounting_service import AccountService, StandardChartService, JournalEntryService


def _accounts(db, organization_id, *codes):
    service = AccountService(db)
    return [service.get_by_code(code, organization_id) for code in codes]


def _line_count(db, organization_id=None):
    query = db.query(JournalEntry)
    if organization_id is not None:
        query = query.filter(JournalEntry.organization_id == organization_id)
    return query.count()


class TestManualEntries:
    def test_balanced_entry_shares_number(self, db, accounting_org):
        cash, materials, payables = _accounts(db, accounting_org.id, "1.1.01", "5.1.01", "2.1.01")

        entries = JournalEntryService(db).create_manual_entry(accounting_org.id, [
            JournalLineCreate(account_id=materials.id, debit=Decimal("1500.00")),
            JournalLineCreate(account_id=cash.id, credit=Decimal("500.00")),
            JournalLineCreate(account_id=payables.id, credit=Decimal("1000.00")),
        ], description="Compra de cemento")
        db.commit()

        assert len(entries) == 3
        assert {entry.entry_number for entry in entries} == {"000001"}
        assert all(not entry.is_automatic for entry in entries)
        assert all(entry.exchange_rate == Decimal("1") for entry in entries)

    def test_numbers_are_sequential(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")
        service = JournalEntryService(db)
        lines = [
            JournalLineCreate(account_id=cash.id, debit=Decimal("10")),
            JournalLineCreate(account_id=income.id, credit=Decimal("10")),
        ]
        first = service.create_manual_entry(accounting_org.id, lines)
        second = service.create_manual_entry(accounting_org.id, lines)
        assert first[0].entry_number == "000001"
        assert second[0].entry_number == "000002"

    def test_unbalanced_entry_writes_nothing(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")

        with pytest.raises(UnbalancedEntryError) as exc_info:
            JournalEntryService(db).create_manual_entry(accounting_org.id, [
                JournalLineCreate(account_id=cash.id, debit=Decimal("100.00")),
                JournalLineCreate(account_id=income.id, credit=Decimal("99.99")),
            ])

        assert exc_info.value.currency == "PESOS"
        assert _line_count(db) == 0

    def test_balance_is_checked_per_currency(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")

        with pytest.raises(UnbalancedEntryError):
            JournalEntryService(db).create_manual_entry(accounting_org.id, [
                JournalLineCreate(account_id=cash.id, debit=Decimal("100"), currency="USD"),
                JournalLineCreate(account_id=income.id, credit=Decimal("100"), currency="PESOS"),
            ])

    @pytest.mark.parametrize("amount", ["0.005", "10.001"])
    def test_line_amounts_stop_at_cents(self, amount):
        with pytest.raises(ValidationError):
            JournalLineCreate(account_id=1, debit=Decimal(amount))
        with pytest.raises(ValidationError):
            JournalLineCreate(account_id=1, credit=Decimal(amount))

    def test_line_needs_exactly_one_side(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")

        with pytest.raises(InvalidEntryLineError):
            JournalEntryService(db).create_manual_entry(accounting_org.id, [
                JournalLineCreate(account_id=cash.id, debit=Decimal("100"), credit=Decimal("100")),
                JournalLineCreate(account_id=income.id, credit=Decimal("0")),
            ])

    def test_inactive_account_is_rejected(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")
        AccountService(db).update_account(income.id, accounting_org.id, AccountUpdate(is_active=False))

        with pytest.raises(InvalidAccountError):
            JournalEntryService(db).create_manual_entry(accounting_org.id, [
                JournalLineCreate(account_id=cash.id, debit=Decimal("100")),
                JournalLineCreate(account_id=income.id, credit=Decimal("100")),
            ])

    def test_account_of_other_organization_is_rejected(self, db, accounting_org, other_organization):
        StandardChartService(db).setup_standard_chart(other_organization.id)
        (cash,) = _accounts(db, accounting_org.id, "1.1.01")
        (foreign_income,) = _accounts(db, other_organization.id, "4.1.01")

        with pytest.raises(InvalidAccountError):
            JournalEntryService(db).create_manual_entry(accounting_org.id, [
                JournalLineCreate(account_id=cash.id, debit=Decimal("100")),
                JournalLineCreate(account_id=foreign_income.id, credit=Decimal("100")),
            ])

    def test_duplicate_entry_number(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")
        lines = [
            JournalLineCreate(account_id=cash.id, debit=Decimal("5")),
            JournalLineCreate(account_id=income.id, credit=Decimal("5")),
        ]
        service = JournalEntryService(db)
        service.create_manual_entry(accounting_org.id, lines, entry_number="J-100")

        with pytest.raises(DuplicateEntryNumberError):
            service.create_manual_entry(accounting_org.id, lines, entry_number="J-100")


class TestDeleteEntries:
    def test_manual_delete_removes_group_in_organization_only(self, db, accounting_org, other_organization):
        StandardChartService(db).setup_standard_chart(other_organization.id)
        service = JournalEntryService(db)

        for organization_id in (accounting_org.id, other_organization.id):
            cash, materials, payables = _accounts(db, organization_id, "1.1.01", "5.1.01", "2.1.01")
            service.create_manual_entry(organization_id, [
                JournalLineCreate(account_id=materials.id, debit=Decimal("300")),
                JournalLineCreate(account_id=cash.id, credit=Decimal("100")),
                JournalLineCreate(account_id=payables.id, credit=Decimal("200")),
            ], entry_number="J-100")
        db.commit()

        first_line = db.query(JournalEntry).filter(
            JournalEntry.organization_id == accounting_org.id,
            JournalEntry.entry_number == "J-100"
        ).first()

        deleted = service.delete_entry(first_line.id, accounting_org.id)
        db.commit()

        assert deleted == 3
        assert _line_count(db, accounting_org.id) == 0
        assert _line_count(db, other_organization.id) == 3

    def test_automatic_delete_removes_single_line(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")
        service = JournalEntryService(db)
        debit = service.create_automatic_entry(
            accounting_org.id, "CHECK", 7, cash.id, Decimal("80"), EntryDirection.DEBIT, entry_number="A-1"
        )
        service.create_automatic_entry(
            accounting_org.id, "CHECK", 7, income.id, Decimal("80"), EntryDirection.CREDIT, entry_number="A-1"
        )
        db.commit()

        assert service.delete_entry(debit.id, accounting_org.id) == 1
        db.commit()

        remaining = db.query(JournalEntry).filter(JournalEntry.entry_number == "A-1").all()
        assert len(remaining) == 1
        assert remaining[0].account_id == income.id

    def test_delete_in_other_organization_is_not_found(self, db, accounting_org, other_organization):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")
        entries = JournalEntryService(db).create_manual_entry(accounting_org.id, [
            JournalLineCreate(account_id=cash.id, debit=Decimal("5")),
            JournalLineCreate(account_id=income.id, credit=Decimal("5")),
        ])

        with pytest.raises(NotFoundError):
            JournalEntryService(db).delete_entry(entries[0].id, other_organization.id)


class TestAutomaticEntries:
    def test_automatic_entry_links_source(self, db, accounting_org):
        (cash,) = _accounts(db, accounting_org.id, "1.1.01")
        service = JournalEntryService(db)
        entry = service.create_automatic_entry(
            accounting_org.id, "CHECK", 42, cash.id, Decimal("120.50"), "DEBIT"
        )

        assert entry.is_automatic is True
        assert entry.debit == Decimal("120.50")
        assert entry.credit == Decimal("0.00")
        assert service.has_journal_entries(accounting_org.id, "CHECK", 42)
        assert not service.has_journal_entries(accounting_org.id, "CHECK", 43)

    def test_delete_automatic_entries_by_source(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")
        service = JournalEntryService(db)
        service.create_automatic_entry(accounting_org.id, "INVOICE", "F-1", cash.id, Decimal("10"), "DEBIT")
        service.create_automatic_entry(accounting_org.id, "INVOICE", "F-1", income.id, Decimal("10"), "CREDIT")

        assert service.delete_automatic_entries(accounting_org.id, "INVOICE", "F-1") == 2
        assert not service.has_journal_entries(accounting_org.id, "INVOICE", "F-1")

    def test_list_entries_paginates(self, db, accounting_org):
        cash, income = _accounts(db, accounting_org.id, "1.1.01", "4.1.01")
        service = JournalEntryService(db)
        for _ in range(3):
            service.create_manual_entry(accounting_org.id, [
                JournalLineCreate(account_id=cash.id, debit=Decimal("1")),
                JournalLineCreate(account_id=income.id, credit=Decimal("1")),
            ])

        page = service.list_entries(accounting_org.id, page=1, limit=4)
        assert page["total_count"] == 6
        assert page["total_pages"] == 2
        assert len(page["entries"]) == 4

        only_cash = service.list_entries(accounting_org.id, account_id=cash.id)
        assert only_cash["total_count"] == 3
