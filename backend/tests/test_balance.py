"""
Till balance calculation.

compute_balance is pure, so most of this runs without a database:
worked examples, exhaustive type coverage, and Hypothesis properties
(order independence, agreement with a signed sum).
"""

import random

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from tillbook.models import CashDirection, CashTransactionType
from tillbook.services import cash_ledger_service, reconciliation_service
from tillbook.services.balance_service import (
    CashBalance, LedgerEntry, bucket_for, compute_balance, get_balance,
)


ADJUST = CashTransactionType.RECONCILIATION_ADJUSTMENT

_SIGN = {
    CashTransactionType.FLOAT: 1,
    CashTransactionType.CASH_IN: 1,
    CashTransactionType.SALE: 1,
    CashTransactionType.CASH_OUT: -1,
    CashTransactionType.CHANGE: -1,
}


def _signed(entry: LedgerEntry) -> int:
    if entry.type == ADJUST:
        return entry.amount_cents if entry.direction == CashDirection.IN else -entry.amount_cents
    return _SIGN[entry.type] * entry.amount_cents


@st.composite
def ledger_entries(draw):
    count = draw(st.integers(min_value=0, max_value=40))
    entries = []
    for i in range(count):
        entry_type = draw(st.sampled_from(list(CashTransactionType)))
        amount = draw(st.integers(min_value=1, max_value=10_000_000))
        direction = draw(st.sampled_from(list(CashDirection))) if entry_type == ADJUST else None
        entries.append(LedgerEntry(entry_type, amount, direction, i + 1))
    return entries


class TestComputeBalance:
    def test_empty_ledger_is_zero(self):
        balance = compute_balance([])
        assert balance == CashBalance()
        assert balance.real_time_balance_cents == 0

    def test_float_cash_in_cash_out(self):
        balance = compute_balance([
            LedgerEntry(CashTransactionType.FLOAT, 1000, id=1),
            LedgerEntry(CashTransactionType.CASH_IN, 500, id=2),
            LedgerEntry(CashTransactionType.CASH_OUT, 200, id=3),
        ])
        assert balance.real_time_balance_cents == 1300
        assert balance.entry_count == 3
        assert balance.sequence == 3

    def test_sale_with_change_adds_net_cash(self):
        balance = compute_balance([
            LedgerEntry(CashTransactionType.FLOAT, 1000, id=1),
            LedgerEntry(CashTransactionType.SALE, 350, id=2),
            LedgerEntry(CashTransactionType.CHANGE, 50, id=3),
        ])
        assert balance.total_sales_cents == 350
        assert balance.change_given_cents == 50
        assert balance.real_time_balance_cents == 1300

    def test_adjustments_fold_by_direction(self):
        over = compute_balance([LedgerEntry(ADJUST, 40, CashDirection.IN, 1)])
        short = compute_balance([LedgerEntry(ADJUST, 40, CashDirection.OUT, 1)])
        assert over.cash_in_cents == 40
        assert short.cash_out_cents == 40
        assert over.real_time_balance_cents == 40
        assert short.real_time_balance_cents == -40

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValueError):
            compute_balance([LedgerEntry(CashTransactionType.CASH_IN, amount, id=1)])

    @settings(max_examples=200)
    @given(ledger_entries())
    def test_matches_signed_sum(self, entries):
        assert compute_balance(entries).real_time_balance_cents == sum(_signed(e) for e in entries)

    @settings(max_examples=100)
    @given(ledger_entries(), st.randoms())
    def test_order_independent(self, entries, rnd):
        shuffled = list(entries)
        rnd.shuffle(shuffled)
        assert compute_balance(shuffled) == compute_balance(entries)

    @given(ledger_entries())
    def test_repeatable(self, entries):
        assert compute_balance(entries) == compute_balance(entries)


class TestBucketFor:
    def test_every_type_has_a_bucket(self):
        for entry_type in CashTransactionType:
            if entry_type == ADJUST:
                for direction in CashDirection:
                    assert bucket_for(entry_type, direction)
            else:
                assert bucket_for(entry_type) in CashBalance.__dataclass_fields__

    def test_adjustment_requires_direction(self):
        with pytest.raises(ValueError):
            bucket_for(ADJUST)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            bucket_for("refund")


class TestStoredBalance:
    def test_shift_balance_from_ledger_rows(self, shift):
        cash_ledger_service.record_cash_in(shift.id, 500)
        cash_ledger_service.record_cash_out(shift.id, 200)

        balance = get_balance(shift.id)
        assert balance.float_cents == 1000
        assert balance.real_time_balance_cents == 1300
        assert balance.entry_count == 3

    def test_sequence_grows_with_each_entry(self, shift):
        before = get_balance(shift.id).sequence
        entry = cash_ledger_service.record_cash_in(shift.id, 10)
        after = get_balance(shift.id)
        assert after.sequence == entry.id
        assert after.sequence > before

    def test_balance_unchanged_by_reading(self, shift):
        reconciliation_service.reconcile(shift.id, 1000)
        first = get_balance(shift.id)
        assert get_balance(shift.id) == first

    def test_shuffled_rows_give_same_balance(self, shift):
        for amount in (120, 45, 999):
            cash_ledger_service.record_cash_in(shift.id, amount)
        cash_ledger_service.record_cash_out(shift.id, 300)

        rows = cash_ledger_service.list_entries(shift.id)
        random.Random(7).shuffle(rows)
        assert compute_balance(rows) == get_balance(shift.id)
