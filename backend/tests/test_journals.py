from datetime import date

import pytest

from tillbook.extensions import db
from tillbook.models import (
    Account, ExpensePaymentMethod, JournalEntry, JournalLockedError, JournalSource,
    PostingRequest, PostingStatus, TenderType,
)
from tillbook.services import (
    account_service, checkout_service, expense_service, journal_service, posting_dispatcher,
    reconciliation_service,
)
from tillbook.services.checkout_service import CartLine
from tillbook.services.journal_service import SourceNotFoundError
from tillbook.services.posting_rules import (
    JournalDraft, NothingToPostError, PostingError, UnbalancedJournalError,
    build_expense_draft, build_sale_draft, build_variance_draft, vat_portion,
)
from tillbook.validation import ValidationError

from conftest import CASHIER


def _sell(make_product, price_cents=1000, cost_cents=600, method="cash"):
    product = make_product(price_cents=price_cents, cost_cents=cost_cents)
    return checkout_service.complete_checkout(
        CASHIER,
        [{"product_id": product.id, "quantity": 1, "unit_price_cents": price_cents}],
        method,
    ).sale


def _request_for(source, source_id):
    return db.session.query(PostingRequest).filter_by(source=source, source_id=source_id).one()


@pytest.fixture
def deferred(app):
    app.config["JOURNAL_POSTING_MODE"] = posting_dispatcher.MODE_DEFERRED
    yield
    app.config["JOURNAL_POSTING_MODE"] = posting_dispatcher.MODE_SYNC


class TestPostingRules:
    def test_vat_inclusive_half_up(self):
        assert vat_portion(11600, 1600) == 1600
        assert vat_portion(350, 1600) == 48
        assert vat_portion(1000, 0) == 0
        assert vat_portion(0, 1600) == 0

    def test_sale_draft_balances(self):
        draft = build_sale_draft(
            sale_id=1,
            jdate=date(2024, 5, 1),
            total_cents=1000,
            payments=[(TenderType.CASH, 400), (TenderType.MPESA, 600)],
            cost_cents=700,
            vat_rate_bps=1600,
        )
        assert draft.total_debit_cents == draft.total_credit_cents == 1700
        assert draft.ref == "SALE-1"

    def test_sale_without_payments_refused(self):
        with pytest.raises(PostingError):
            build_sale_draft(sale_id=1, jdate=date(2024, 5, 1), total_cents=100, payments=[])

    def test_unbalanced_draft_refused(self):
        draft = JournalDraft(JournalSource.SALE, 1, date(2024, 5, 1), "SALE-1", "bad")
        draft.debit(account_service.CASH_ON_HAND, 100)
        draft.credit(account_service.SALES_REVENUE, 99)
        with pytest.raises(UnbalancedJournalError):
            draft.validate()

    def test_single_line_draft_refused(self):
        draft = JournalDraft(JournalSource.SALE, 1, date(2024, 5, 1), "SALE-1", "bad")
        draft.debit(account_service.CASH_ON_HAND, 0)
        with pytest.raises(UnbalancedJournalError):
            draft.validate()

    def test_two_sided_line_refused(self):
        draft = JournalDraft(JournalSource.SALE, 1, date(2024, 5, 1), "SALE-1", "bad")
        draft.debit(account_service.CASH_ON_HAND, 100)
        draft.credit(account_service.SALES_REVENUE, 100)
        draft.lines.append(draft.lines[0].__class__(account_service.BANK, 10, 10))
        with pytest.raises(UnbalancedJournalError):
            draft.validate()

    def test_zero_variance_has_nothing_to_post(self):
        with pytest.raises(NothingToPostError):
            build_variance_draft(
                source=JournalSource.RECON, source_id=1, jdate=date(2024, 5, 1),
                difference_cents=0, ref="RECON-1", memo="",
            )

    def test_expense_category_and_method_accounts(self):
        draft = build_expense_draft(
            expense_id=3, jdate=date(2024, 5, 1), title="Power", category="Utilities",
            amount_cents=2500, payment_method=ExpensePaymentMethod.MPESA,
        )
        assert [(line.account_code, line.debit_cents, line.credit_cents) for line in draft.lines] == [
            (account_service.UTILITIES, 2500, 0),
            (account_service.MPESA_TILL, 0, 2500),
        ]

    def test_uncategorised_expense_goes_to_operating(self):
        draft = build_expense_draft(
            expense_id=4, jdate=date(2024, 5, 1), title="Misc", category="sundry",
            amount_cents=100, payment_method=ExpensePaymentMethod.CASH,
        )
        assert draft.lines[0].account_code == account_service.OPERATING_EXPENSES


class TestPostSale:
    def test_posting_is_idempotent(self, shift, make_product):
        sale = _sell(make_product)

        again = journal_service.post_sale(sale.id)

        assert again.status == journal_service.OUTCOME_ALREADY_POSTED
        assert not again.created
        assert db.session.query(JournalEntry).filter_by(source=JournalSource.SALE, source_id=sale.id).count() == 1

    def test_posted_journal_is_locked(self, shift, make_product):
        sale = _sell(make_product)
        journal = journal_service.find_journal(JournalSource.SALE, sale.id)

        assert journal.locked
        assert journal.posted_at is not None
        assert _request_for(JournalSource.SALE, sale.id).status == PostingStatus.POSTED

    def test_locked_journal_cannot_change(self, shift, make_product):
        sale = _sell(make_product)
        journal = journal_service.find_journal(JournalSource.SALE, sale.id)

        journal.memo = "edited"
        with pytest.raises(JournalLockedError):
            db.session.flush()
        db.session.rollback()

        line = journal_service.find_journal(JournalSource.SALE, sale.id).lines[0]
        line.debit_cents += 1
        with pytest.raises(JournalLockedError):
            db.session.flush()
        db.session.rollback()

    def test_unknown_sale(self, db_session):
        with pytest.raises(SourceNotFoundError):
            journal_service.post_sale(12345)

    def test_deferred_mode_queues_then_retry_posts(self, shift, make_product, deferred):
        sale = _sell(make_product)

        assert journal_service.find_journal(JournalSource.SALE, sale.id) is None
        assert _request_for(JournalSource.SALE, sale.id).status == PostingStatus.PENDING

        summary = journal_service.retry_pending()

        assert summary == {"posted": 1, "skipped": 0, "waiting": 0, "failed": 0}
        assert journal_service.find_journal(JournalSource.SALE, sale.id) is not None
        assert _request_for(JournalSource.SALE, sale.id).status == PostingStatus.POSTED

    def test_failure_is_recorded_not_raised(self, shift, make_product, deferred):
        sale = _sell(make_product)
        cash = db.session.query(Account).filter_by(code=account_service.CASH_ON_HAND).one()
        cash.is_active = False
        db.session.commit()

        assert journal_service.process_request(JournalSource.SALE, sale.id) is None

        request = _request_for(JournalSource.SALE, sale.id)
        assert request.status == PostingStatus.FAILED
        assert request.attempts == 1
        assert "AccountNotFoundError" in request.last_error
        assert journal_service.find_journal(JournalSource.SALE, sale.id) is None

        cash.is_active = True
        db.session.commit()
        assert journal_service.retry_pending()["posted"] == 1
        assert _request_for(JournalSource.SALE, sale.id).attempts == 2

    def test_post_all_picks_up_unposted_sales(self, shift, make_product, deferred):
        first = _sell(make_product)
        second = _sell(make_product, method="card")

        summary = journal_service.post_all(JournalSource.SALE)

        assert summary["posted"] == 2
        assert summary["failed"] == 0
        for sale in (first, second):
            assert journal_service.find_journal(JournalSource.SALE, sale.id) is not None

        assert journal_service.post_all(JournalSource.SALE)["posted"] == 0

    def test_already_posted_request_counts_as_skipped(self, shift, make_product, deferred):
        sale = _sell(make_product)
        journal_service.post_sale(sale.id)
        request = _request_for(JournalSource.SALE, sale.id)
        request.status = PostingStatus.FAILED
        db.session.commit()

        summary = journal_service.retry_pending()

        assert summary == {"posted": 0, "skipped": 1, "waiting": 0, "failed": 0}
        assert _request_for(JournalSource.SALE, sale.id).status == PostingStatus.POSTED

    def test_sale_waits_for_its_line_items(self, shift, make_product, deferred, monkeypatch):
        product = make_product(price_cents=1000, cost_cents=600)
        write_line_item = checkout_service._apply_line_item
        monkeypatch.setattr(checkout_service, "_apply_line_item", lambda sale_id, line: (None, None))
        sale = checkout_service.complete_checkout(
            CASHIER, [{"product_id": product.id, "quantity": 1, "unit_price_cents": 1000}], "cash",
        ).sale
        assert sale.line_count == 1

        summary = journal_service.post_all(JournalSource.SALE)
        assert (summary["posted"], summary["waiting"], summary["failed"]) == (0, 1, 0)
        assert journal_service.retry_pending()["waiting"] == 1
        request = _request_for(JournalSource.SALE, sale.id)
        assert request.status == PostingStatus.PENDING
        assert "0 of 1" in request.last_error
        assert journal_service.find_journal(JournalSource.SALE, sale.id) is None

        write_line_item(sale.id, CartLine(product_id=product.id, quantity=1, unit_price_cents=1000))

        assert journal_service.retry_pending()["posted"] == 1
        journal = journal_service.find_journal(JournalSource.SALE, sale.id)
        lines = {line.account.code: (line.debit_cents, line.credit_cents) for line in journal.lines}
        assert lines[account_service.COST_OF_GOODS_SOLD] == (600, 0)

    def test_post_all_rejects_variance_sources(self, db_session):
        with pytest.raises(ValidationError):
            journal_service.post_all(JournalSource.RECON)

    def test_adjust_cannot_be_posted_from_source(self, db_session):
        with pytest.raises(ValidationError):
            journal_service.post_source(JournalSource.ADJUST, 1)


class TestExpensePosting:
    def test_expense_posts_once(self, db_session):
        expense = expense_service.create_expense(
            title="Rent May", category="rent", amount_cents=50000,
            recorded_by="owner", payment_method="bank",
        )
        journal = journal_service.find_journal(JournalSource.EXPENSE, expense.id)
        lines = {line.account.code: (line.debit_cents, line.credit_cents) for line in journal.lines}
        assert lines == {account_service.RENT: (50000, 0), account_service.BANK: (0, 50000)}
        assert not journal_service.post_expense(expense.id).created


class TestReversal:
    def test_reversal_mirrors_original(self, shift, make_product):
        sale = _sell(make_product)
        original = journal_service.find_journal(JournalSource.SALE, sale.id)

        outcome = journal_service.reverse_journal(original.id, "Keyed twice", actor_id="supervisor-1")

        reversal = outcome.journal
        assert outcome.created
        assert reversal.source == JournalSource.ADJUST
        assert reversal.source_id == original.id
        assert reversal.reverses_journal_id == original.id
        assert reversal.locked

        original_legs = sorted((line.account.code, line.debit_cents, line.credit_cents) for line in original.lines)
        mirrored = sorted((line.account.code, line.credit_cents, line.debit_cents) for line in reversal.lines)
        assert original_legs == mirrored

    def test_second_reversal_is_already_posted(self, shift, make_product):
        sale = _sell(make_product)
        original = journal_service.find_journal(JournalSource.SALE, sale.id)

        first = journal_service.reverse_journal(original.id, "Keyed twice")
        second = journal_service.reverse_journal(original.id, "Again")

        assert not second.created
        assert second.journal.id == first.journal.id

    def test_reason_required(self, shift, make_product):
        sale = _sell(make_product)
        original = journal_service.find_journal(JournalSource.SALE, sale.id)
        with pytest.raises(ValidationError):
            journal_service.reverse_journal(original.id, "  ")

    def test_unknown_journal(self, db_session):
        with pytest.raises(SourceNotFoundError):
            journal_service.reverse_journal(999, "nope")


class TestTrialBalance:
    def test_book_balances_after_every_kind_of_posting(self, shift, make_product):
        sale = _sell(make_product)
        expense_service.create_expense(
            title="Milk", category="supplies", amount_cents=300, recorded_by=CASHIER, shift_id=shift.id,
        )
        reconciliation_service.reconcile(shift.id, 1650)
        journal_service.reverse_journal(journal_service.find_journal(JournalSource.SALE, sale.id).id, "Void")

        report = journal_service.trial_balance()

        assert report["balanced"]
        assert report["total_debit_cents"] == report["total_credit_cents"] > 0
        rows = {row["code"]: row for row in report["accounts"]}
        assert rows[account_service.CASH_ON_HAND]["debit_cents"] == 1000
        assert rows[account_service.CASH_ON_HAND]["credit_cents"] == 1350
        assert rows[account_service.CASH_ON_HAND]["balance_cents"] == -350
        assert rows[account_service.CASH_OVER_SHORT]["balance_cents"] == 50
        assert rows[account_service.SALES_REVENUE]["balance_cents"] == 0

    def test_as_of_excludes_later_journals(self, shift, make_product):
        _sell(make_product)
        report = journal_service.trial_balance(as_of=date(2000, 1, 1))
        assert report["accounts"] == []
        assert report["balanced"]
        assert report["as_of"] == "2000-01-01"


class TestQueries:
    def test_list_journals_by_source(self, shift, make_product):
        _sell(make_product)
        assert [j.source for j in journal_service.list_journals(source="SALE")] == [JournalSource.SALE]
        assert journal_service.list_journals(source="RECON") == []

    def test_list_journals_rejects_unknown_source(self, db_session):
        with pytest.raises(ValidationError):
            journal_service.list_journals(source="REFUND")

    def test_list_posting_requests_by_status(self, shift, make_product, deferred):
        _sell(make_product)
        assert len(journal_service.list_posting_requests("pending")) == 1
        assert journal_service.list_posting_requests("failed") == []
