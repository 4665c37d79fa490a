import pytest

from tillbook.extensions import db
from tillbook.models import (
    CashTransaction, CashTransactionType, JournalSource, PostingRequest, PostingStatus,
    ReconciliationStatus, ShiftStatus,
)
from tillbook.services import cash_ledger_service, journal_service, shift_service
from tillbook.services.balance_service import get_balance
from tillbook.services.shift_service import (
    NoActiveShiftError, ShiftAlreadyActiveError, ShiftNotFoundError,
)
from tillbook.validation import InvalidAmountError, ValidationError

from conftest import CASHIER


class TestStartShift:
    def test_start_with_float(self, db_session):
        shift = shift_service.start_shift(CASHIER, 1000)

        assert shift.status == ShiftStatus.ACTIVE
        assert shift.float_cents == 1000
        assert get_balance(shift.id).real_time_balance_cents == 1000

    def test_float_is_counted_exactly_once(self, db_session):
        shift = shift_service.start_shift(CASHIER, 1000)

        floats = db_session.query(CashTransaction).filter_by(
            shift_id=shift.id, type=CashTransactionType.FLOAT
        ).all()
        assert len(floats) == 1
        assert floats[0].amount_cents == 1000

        balance = get_balance(shift.id)
        assert balance.float_cents == 1000
        assert balance.real_time_balance_cents == shift.float_cents

    def test_zero_float_writes_no_ledger_row(self, db_session):
        shift = shift_service.start_shift(CASHIER, 0)
        assert cash_ledger_service.list_entries(shift.id) == []
        assert get_balance(shift.id).real_time_balance_cents == 0

    def test_negative_float_rejected(self, db_session):
        with pytest.raises(InvalidAmountError):
            shift_service.start_shift(CASHIER, -1)

    def test_blank_cashier_rejected(self, db_session):
        with pytest.raises(ValidationError):
            shift_service.start_shift("  ", 100)

    def test_second_active_shift_refused(self, db_session):
        first = shift_service.start_shift(CASHIER, 1000)

        with pytest.raises(ShiftAlreadyActiveError):
            shift_service.start_shift(CASHIER, 500)

        assert shift_service.get_active_shift(CASHIER).id == first.id
        assert len(shift_service.list_shifts(cashier_id=CASHIER)) == 1

    def test_other_cashiers_are_independent(self, db_session):
        a = shift_service.start_shift("cashier-a", 100)
        b = shift_service.start_shift("cashier-b", 200)
        assert a.id != b.id
        assert len(shift_service.list_shifts(status="active")) == 2


class TestEndShift:
    def test_end_shift(self, shift):
        ended = shift_service.end_shift(shift.id, actor_id="supervisor-1")

        assert ended.status == ShiftStatus.ENDED
        assert ended.end_time is not None
        assert ended.closed_by_id == "supervisor-1"
        assert shift_service.get_active_shift(CASHIER) is None

    def test_end_twice_refused(self, shift):
        shift_service.end_shift(shift.id)
        with pytest.raises(NoActiveShiftError):
            shift_service.end_shift(shift.id)

    def test_end_unknown_shift(self, db_session):
        with pytest.raises(ShiftNotFoundError):
            shift_service.end_shift(99999)

    def test_ledger_closed_after_end(self, shift):
        shift_service.end_shift(shift.id)
        with pytest.raises(NoActiveShiftError):
            cash_ledger_service.record_cash_in(shift.id, 100)

    def test_ending_keeps_ledger_and_balance(self, shift):
        cash_ledger_service.record_cash_in(shift.id, 250)
        before = get_balance(shift.id)

        shift_service.end_shift(shift.id)

        assert get_balance(shift.id) == before

    def test_new_shift_after_end(self, shift):
        shift_service.end_shift(shift.id)
        again = shift_service.start_shift(CASHIER, 300)
        assert again.id != shift.id
        assert again.is_active

    def test_closing_count_with_variance_posts_shift_journal(self, shift):
        cash_ledger_service.record_cash_in(shift.id, 500)

        shift_service.end_shift(shift.id, actor_id=CASHIER, counted_cash_cents=1450)

        closing = shift_service.get_closing_reconciliation(shift.id)
        assert closing.is_closing
        assert closing.expected_cents == 1500
        assert closing.difference_cents == -50
        assert closing.status == ReconciliationStatus.SHORT
        assert get_balance(shift.id).real_time_balance_cents == 1450

        journal = journal_service.find_journal(JournalSource.SHIFT, shift.id)
        assert journal is not None
        assert journal.total_debit_cents == journal.total_credit_cents == 50

        request = db.session.query(PostingRequest).filter_by(
            source=JournalSource.SHIFT, source_id=shift.id
        ).one()
        assert request.status == PostingStatus.POSTED

    def test_balanced_closing_count_posts_nothing(self, shift):
        shift_service.end_shift(shift.id, counted_cash_cents=1000)

        closing = shift_service.get_closing_reconciliation(shift.id)
        assert closing.status == ReconciliationStatus.BALANCED
        assert journal_service.find_journal(JournalSource.SHIFT, shift.id) is None

    def test_negative_count_rejected_and_shift_stays_open(self, shift):
        with pytest.raises(InvalidAmountError):
            shift_service.end_shift(shift.id, counted_cash_cents=-10)
        assert shift_service.get_shift(shift.id).is_active


class TestShiftQueries:
    def test_summary(self, shift):
        cash_ledger_service.record_cash_out(shift.id, 300, "Cash drop")

        summary = shift_service.get_shift_summary(shift.id)

        assert summary["shift"]["id"] == shift.id
        assert summary["balance"]["real_time_balance_cents"] == 700
        assert summary["ledger_entry_count"] == 2
        assert summary["sale_count"] == 0
        assert summary["reconciliations"] == []

    def test_list_by_status(self, shift):
        other = shift_service.start_shift("cashier-2", 0)
        shift_service.end_shift(other.id)

        active = shift_service.list_shifts(status="active")
        ended = shift_service.list_shifts(status="ended")
        assert [s.id for s in active] == [shift.id]
        assert [s.id for s in ended] == [other.id]

    def test_list_rejects_unknown_status(self, db_session):
        with pytest.raises(ValidationError):
            shift_service.list_shifts(status="paused")
