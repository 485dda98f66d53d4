"""
Tests for the check lifecycle: registration, clearing and the due-date sweep
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import check_data
from obraledger.core.exceptions import (
    CheckAlreadyClearedError, DuplicateCheckNumberError, InvalidCheckTransitionError,
    InvalidInstrumentError, NotFoundError
)
from obraledger.models import AuditLog, Check, CheckStatus, InstrumentType, Transaction
from obraledger.schemas import CashBoxCreate
from obraledger.services.balance_service import BalanceLedgerService
from obraledger.services.check_service import CheckService
from obraledger.services.treasury_service import CashBoxService

CASH_BOX = InstrumentType.CASH_BOX.value
BANK_ACCOUNT = InstrumentType.BANK_ACCOUNT.value


def _balance(db, instrument_id, instrument_type, currency="PESOS"):
    return BalanceLedgerService(db).get_balance(instrument_id, instrument_type, currency)


class TestCreateCheck:
    def test_received_check_is_pending_without_ledger_effect(self, db, organization, cash_box):
        check = CheckService(db).create_check(organization.id, check_data("CHK-1", 1000, cash_box_id=cash_box.id))
        db.commit()

        assert check.status == CheckStatus.PENDING.value
        assert _balance(db, cash_box.id, CASH_BOX) == Decimal("0")
        assert db.query(Transaction).count() == 0

    def test_issued_check(self, db, organization, bank_account):
        check = CheckService(db).create_check(
            organization.id, check_data("E-1", 250, is_received=False, bank_account_id=bank_account.id)
        )
        assert check.status == CheckStatus.ISSUED.value

    def test_duplicate_number_in_organization(self, db, organization, cash_box):
        service = CheckService(db)
        service.create_check(organization.id, check_data("CHK-1", 10, cash_box_id=cash_box.id))

        with pytest.raises(DuplicateCheckNumberError):
            service.create_check(organization.id, check_data("CHK-1", 20, cash_box_id=cash_box.id))

    def test_same_number_in_other_organization(self, db, organization, other_organization, cash_box):
        other_box = CashBoxService(db).create(other_organization.id, CashBoxCreate(name="Caja Sur"))
        CheckService(db).create_check(organization.id, check_data("CHK-1", 10, cash_box_id=cash_box.id))
        check = CheckService(db).create_check(other_organization.id, check_data("CHK-1", 10, cash_box_id=other_box.id))
        assert check.organization_id == other_organization.id

    def test_number_taken_after_lookup_is_a_duplicate(self, db, organization, cash_box, monkeypatch):
        service = CheckService(db)
        service.create_check(organization.id, check_data("CHK-1", 10, cash_box_id=cash_box.id))
        db.commit()
        # Another request registered the number between the lookup and the insert
        monkeypatch.setattr(service, "check_number_exists", lambda organization_id, check_number: False)

        with pytest.raises(DuplicateCheckNumberError):
            service.create_check(organization.id, check_data("CHK-1", 20, cash_box_id=cash_box.id))

        db.commit()
        assert db.query(Check).filter(Check.organization_id == organization.id).count() == 1

    @pytest.mark.parametrize("use_cash_box,use_bank_account", [(False, False), (True, True)])
    def test_exactly_one_instrument(self, db, organization, cash_box, bank_account, use_cash_box, use_bank_account):
        data = check_data(
            "CHK-9", 10,
            cash_box_id=cash_box.id if use_cash_box else None,
            bank_account_id=bank_account.id if use_bank_account else None,
        )
        with pytest.raises(InvalidInstrumentError):
            CheckService(db).create_check(organization.id, data)

    def test_instrument_must_be_active_and_owned(self, db, organization, other_organization, cash_box):
        other_box = CashBoxService(db).create(other_organization.id, CashBoxCreate(name="Caja Sur"))
        with pytest.raises(InvalidInstrumentError):
            CheckService(db).create_check(organization.id, check_data("CHK-2", 10, cash_box_id=other_box.id))

        CashBoxService(db).delete(cash_box.id, organization.id)
        with pytest.raises(InvalidInstrumentError):
            CheckService(db).create_check(organization.id, check_data("CHK-3", 10, cash_box_id=cash_box.id))


class TestClearCheck:
    def test_clearing_received_check_credits_instrument(self, db, organization, cash_box):
        service = CheckService(db)
        check = service.create_check(organization.id, check_data("CHK-1", 1000, cash_box_id=cash_box.id))
        db.commit()

        result = service.clear_check(check.id, organization.id)
        db.commit()

        assert db.get(Check, check.id).status == CheckStatus.CLEARED.value
        assert _balance(db, cash_box.id, CASH_BOX) == Decimal("1000")

        transactions = db.query(Transaction).filter(Transaction.check_id == check.id).all()
        assert len(transactions) == 1
        assert transactions[0].type == "INCOME"
        assert transactions[0].amount == Decimal("1000")
        assert transactions[0].cash_box_id == cash_box.id
        assert result["transaction"].id == transactions[0].id

    def test_clearing_issued_check_debits_instrument(self, db, organization, bank_account):
        service = CheckService(db)
        check = service.create_check(
            organization.id, check_data("E-7", 300, is_received=False, bank_account_id=bank_account.id)
        )
        service.clear_check(check.id, organization.id)
        db.commit()

        assert _balance(db, bank_account.id, BANK_ACCOUNT) == Decimal("-300")
        transaction = db.query(Transaction).filter(Transaction.check_id == check.id).one()
        assert transaction.type == "EXPENSE"
        assert transaction.reference == f"CHECK-PAY-{check.id}"

    def test_second_clear_is_rejected_without_side_effects(self, db, organization, cash_box):
        service = CheckService(db)
        check = service.create_check(organization.id, check_data("CHK-1", 1000, cash_box_id=cash_box.id))
        service.clear_check(check.id, organization.id)
        db.commit()

        with pytest.raises(CheckAlreadyClearedError) as exc_info:
            service.clear_check(check.id, organization.id)
        db.rollback()

        assert exc_info.value.status_code == 409
        assert _balance(db, cash_box.id, CASH_BOX) == Decimal("1000")
        assert db.query(Transaction).filter(Transaction.check_id == check.id).count() == 1

    def test_clear_rejected_check_is_invalid(self, db, organization, cash_box):
        service = CheckService(db)
        check = service.create_check(organization.id, check_data("CHK-1", 10, cash_box_id=cash_box.id))
        service.update_status(check.id, organization.id, "REJECTED", notes="Sin fondos")
        db.commit()

        with pytest.raises(InvalidCheckTransitionError):
            service.clear_check(check.id, organization.id)

    def test_clear_check_of_other_organization_is_not_found(self, db, organization, other_organization, cash_box):
        check = CheckService(db).create_check(organization.id, check_data("CHK-1", 10, cash_box_id=cash_box.id))
        with pytest.raises(NotFoundError):
            CheckService(db).clear_check(check.id, other_organization.id)

    def test_clearing_is_audited(self, db, organization, cash_box, admin_user):
        service = CheckService(db)
        check = service.create_check(organization.id, check_data("CHK-1", 10, cash_box_id=cash_box.id))
        service.clear_check(check.id, organization.id, user=admin_user)
        db.commit()

        log = db.query(AuditLog).filter(AuditLog.action == "CHECK_CLEARED").one()
        assert log.resource_id == str(check.id)
        assert log.username == admin_user.username


class TestStatusChanges:
    def test_update_status_to_cleared_delegates_to_clear(self, db, organization, cash_box):
        service = CheckService(db)
        check = service.create_check(organization.id, check_data("CHK-1", 75, cash_box_id=cash_box.id))
        service.update_status(check.id, organization.id, "CLEARED", notes="Depositado")
        db.commit()

        cleared = db.get(Check, check.id)
        assert cleared.status == CheckStatus.CLEARED.value
        assert cleared.notes == "Depositado"
        assert _balance(db, cash_box.id, CASH_BOX) == Decimal("75")

    def test_cleared_is_terminal(self, db, organization, cash_box):
        service = CheckService(db)
        check = service.create_check(organization.id, check_data("CHK-1", 75, cash_box_id=cash_box.id))
        service.clear_check(check.id, organization.id)

        with pytest.raises(InvalidCheckTransitionError):
            service.update_status(check.id, organization.id, "CANCELLED")

    def test_delete_only_before_clearing(self, db, organization, cash_box):
        service = CheckService(db)
        open_check = service.create_check(organization.id, check_data("CHK-1", 5, cash_box_id=cash_box.id))
        cleared = service.create_check(organization.id, check_data("CHK-2", 5, cash_box_id=cash_box.id))
        service.clear_check(cleared.id, organization.id)
        db.commit()

        service.delete_check(open_check.id, organization.id)
        db.commit()
        assert db.get(Check, open_check.id) is None

        with pytest.raises(InvalidCheckTransitionError):
            service.delete_check(cleared.id, organization.id)

    def test_list_checks_filters_by_status(self, db, organization, cash_box):
        service = CheckService(db)
        first = service.create_check(organization.id, check_data("CHK-1", 5, cash_box_id=cash_box.id))
        service.create_check(organization.id, check_data("CHK-2", 5, cash_box_id=cash_box.id))
        service.clear_check(first.id, organization.id)
        db.commit()

        pending = service.list_checks(organization.id, status="PENDING")
        assert pending["total"] == 1
        assert pending["checks"][0].check_number == "CHK-2"


class TestProcessDueChecks:
    def test_due_checks_on_bank_account(self, db, organization, bank_account):
        service = CheckService(db)
        today = date.today()
        first = service.create_check(organization.id, check_data("D-1", 200, due_date=today, bank_account_id=bank_account.id))
        second = service.create_check(organization.id, check_data("D-2", 300, due_date=today, bank_account_id=bank_account.id))
        db.commit()

        result = service.process_due_checks(organization.id, as_of=today)

        assert result["processed_count"] == 2
        assert result["failed_checks"] == []
        assert _balance(db, bank_account.id, BANK_ACCOUNT) == Decimal("500")
        assert db.get(Check, first.id).status == CheckStatus.CLEARED.value
        assert db.get(Check, second.id).status == CheckStatus.CLEARED.value

        categories = {t.category for t in db.query(Transaction).all()}
        assert categories == {"CHECK_DUE"}

    def test_sweep_ignores_future_issued_and_other_organizations(self, db, organization, other_organization, cash_box):
        service = CheckService(db)
        today = date.today()
        service.create_check(organization.id, check_data("F-1", 100, due_date=today + timedelta(days=1), cash_box_id=cash_box.id))
        service.create_check(organization.id, check_data("E-1", 100, due_date=today, is_received=False, cash_box_id=cash_box.id))
        other_box = CashBoxService(db).create(other_organization.id, CashBoxCreate(name="Caja Sur"))
        service.create_check(other_organization.id, check_data("O-1", 100, due_date=today, cash_box_id=other_box.id))
        db.commit()

        result = service.process_due_checks(organization.id, as_of=today)

        assert result["processed_count"] == 0
        assert _balance(db, cash_box.id, CASH_BOX) == Decimal("0")

    def test_second_run_does_not_reprocess(self, db, organization, cash_box):
        service = CheckService(db)
        yesterday = date.today() - timedelta(days=1)
        service.create_check(organization.id, check_data("D-1", 400, due_date=yesterday, cash_box_id=cash_box.id))
        db.commit()

        first = service.process_due_checks(organization.id)
        second = service.process_due_checks(organization.id)

        assert first["processed_count"] == 1
        assert second["processed_count"] == 0
        assert _balance(db, cash_box.id, CASH_BOX) == Decimal("400")
        assert db.query(Transaction).count() == 1

    def test_failure_does_not_roll_back_other_checks(self, db, organization, cash_box, monkeypatch):
        service = CheckService(db)
        today = date.today()
        good = service.create_check(organization.id, check_data("D-1", 100, due_date=today, cash_box_id=cash_box.id))
        bad = service.create_check(organization.id, check_data("D-2", 900, due_date=today, cash_box_id=cash_box.id))
        db.commit()
        bad_id = bad.id

        original = service._apply_clearing

        def failing_apply(check, previous_status, category=None):
            if check.id == bad_id:
                raise RuntimeError("ledger unavailable")
            return original(check, previous_status, category)

        monkeypatch.setattr(service, "_apply_clearing", failing_apply)

        result = service.process_due_checks(organization.id, as_of=today)

        assert [c["id"] for c in result["processed_checks"]] == [good.id]
        assert result["failed_checks"] == [{"id": bad_id, "check_number": "D-2", "error": "Could not clear check"}]
        assert db.get(Check, good.id).status == CheckStatus.CLEARED.value
        assert db.get(Check, bad_id).status == CheckStatus.PENDING.value
        assert _balance(db, cash_box.id, CASH_BOX) == Decimal("100")

    def test_failure_report_hides_database_detail(self, db, organization, cash_box, monkeypatch):
        service = CheckService(db)
        today = date.today()
        check = service.create_check(organization.id, check_data("D-3", 50, due_date=today, cash_box_id=cash_box.id))
        db.commit()

        def failing_apply(check, previous_status, category=None):
            raise IntegrityError(
                "INSERT INTO transactions (amount, type) VALUES (?, ?)", (0, "INCOME"),
                Exception("CHECK constraint failed: ck_transaction_amount_positive")
            )

        monkeypatch.setattr(service, "_apply_clearing", failing_apply)

        result = service.process_due_checks(organization.id, as_of=today)

        error = result["failed_checks"][0]["error"]
        assert error == "Could not clear check"
        assert "INSERT INTO" not in error
        assert db.get(Check, check.id).status == CheckStatus.PENDING.value

    def test_failure_report_keeps_domain_message(self, db, organization, cash_box, monkeypatch):
        service = CheckService(db)
        today = date.today()
        service.create_check(organization.id, check_data("D-4", 50, due_date=today, cash_box_id=cash_box.id))
        db.commit()

        def failing_apply(check, previous_status, category=None):
            raise InvalidInstrumentError()

        monkeypatch.setattr(service, "_apply_clearing", failing_apply)

        result = service.process_due_checks(organization.id, as_of=today)

        assert result["failed_checks"][0]["error"] == InvalidInstrumentError.default_message
