# Overview: Double-entry journal posting; idempotent per (source, source_id).

"""
Journal Posting Service

WHY: Sales, expenses and cash variances must reach the general ledger
exactly once, balanced, and stay there unchanged.

DESIGN PRINCIPLES:
- Idempotent: UNIQUE(source, source_id); a second post reports
  already_posted instead of writing a duplicate. A concurrent duplicate
  loses on the constraint and is reported the same way.
- Validate, then write: the draft is checked by posting_rules before any row
- Posted is final: entries are written locked; corrections are ADJUST
  reversals, never edits
- Batch operations isolate failures per item
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    Account, AccountType, CashReconciliation, Expense, JournalEntry, JournalLine, JournalSource,
    PaymentStatus, PostingRequest, PostingStatus, Sale, SaleLineItem, StockStatus,
)
from tillbook.time_utils import business_date, utcnow
from tillbook.validation import ValidationError
from . import account_service
from .posting_rules import (
    DraftLine, JournalDraft, NothingToPostError, PostingError,
    build_expense_draft, build_reversal_draft, build_sale_draft, build_variance_draft,
)

logger = logging.getLogger(__name__)

OUTCOME_POSTED = "posted"
OUTCOME_ALREADY_POSTED = "already_posted"


class SourceNotFoundError(PostingError):
    """The business record to post does not exist."""


class SourceNotReadyError(PostingError):
    """The business record exists but is still being written; retry later."""


@dataclass(frozen=True)
class PostingOutcome:
    status: str
    journal: JournalEntry

    @property
    def created(self) -> bool:
        return self.status == OUTCOME_POSTED

    def to_dict(self) -> dict:
        return {"status": self.status, "journal": self.journal.to_dict(include_lines=True)}


# =============================================================================
# CORE WRITE PATH
# =============================================================================

def find_journal(source: JournalSource, source_id: int) -> Optional[JournalEntry]:
    return db.session.query(JournalEntry).filter_by(source=source, source_id=source_id).first()


def _write_journal(draft: JournalDraft, posted_by: Optional[str]) -> JournalEntry:
    draft.validate()
    account_ids = {code: account_service.require_account(code).id for code in draft.account_codes}

    entry = JournalEntry(
        jdate=draft.jdate,
        ref=draft.ref,
        memo=draft.memo,
        source=draft.source,
        source_id=draft.source_id,
        reverses_journal_id=draft.reverses_journal_id,
        locked=True,
        posted_at=utcnow(),
        posted_by=posted_by,
    )
    db.session.add(entry)
    for line in draft.lines:
        entry.lines.append(
            JournalLine(
                account_id=account_ids[line.account_code],
                debit_cents=line.debit_cents,
                credit_cents=line.credit_cents,
                memo=line.memo,
            )
        )
    db.session.flush()
    return entry


def _mark_request_posted(source: JournalSource, source_id: int, entry: JournalEntry) -> None:
    request = db.session.query(PostingRequest).filter_by(source=source, source_id=source_id).first()
    if request is None:
        return
    request.status = PostingStatus.POSTED
    request.journal_id = entry.id
    request.attempts += 1
    request.last_error = None


def _post(
    source: JournalSource,
    source_id: int,
    build: Callable[[int], JournalDraft],
    posted_by: Optional[str],
) -> PostingOutcome:
    existing = find_journal(source, source_id)
    if existing is not None:
        logger.info("%s %s already posted as journal %s", source.value, source_id, existing.id)
        return PostingOutcome(OUTCOME_ALREADY_POSTED, existing)

    try:
        draft = build(source_id)
        entry = _write_journal(draft, posted_by)
        _mark_request_posted(source, source_id, entry)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = find_journal(source, source_id)
        if existing is None:
            raise
        logger.info("%s %s posted concurrently as journal %s", source.value, source_id, existing.id)
        return PostingOutcome(OUTCOME_ALREADY_POSTED, existing)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "posted journal %s (%s %s): %s cents",
        entry.id, source.value, source_id, entry.total_debit_cents,
    )
    return PostingOutcome(OUTCOME_POSTED, entry)


# =============================================================================
# DRAFT BUILDERS (load + rule)
# =============================================================================

def _sale_draft(sale_id: int) -> JournalDraft:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SourceNotFoundError(f"Sale {sale_id} not found")
    if sale.payment_status != PaymentStatus.COMPLETED:
        raise PostingError(f"Sale {sale_id} is {sale.payment_status.value}, only completed sales post")

    line_items = db.session.query(SaleLineItem).filter_by(sale_id=sale_id).all()
    if len(line_items) < sale.line_count:
        raise SourceNotReadyError(
            f"Sale {sale_id} has {len(line_items)} of {sale.line_count} line items recorded"
        )
    # Only goods that actually left stock are relieved from inventory
    cost = 0
    for item in line_items:
        if item.stock_status == StockStatus.DECREMENTED and item.product is not None:
            cost += item.quantity * item.product.cost_cents

    return build_sale_draft(
        sale_id=sale.id,
        jdate=business_date(sale.created_at),
        total_cents=sale.total_cents,
        payments=[(p.payment_type, p.amount_cents) for p in sale.payment_transactions],
        cost_cents=cost,
        vat_rate_bps=current_app.config.get("VAT_RATE_BPS", 0),
    )


def _expense_draft(expense_id: int) -> JournalDraft:
    expense = db.session.get(Expense, expense_id)
    if expense is None:
        raise SourceNotFoundError(f"Expense {expense_id} not found")
    return build_expense_draft(
        expense_id=expense.id,
        jdate=expense.expense_date,
        title=expense.title,
        category=expense.category,
        amount_cents=expense.amount_cents,
        payment_method=expense.payment_method,
    )


def _reconciliation_draft(reconciliation_id: int) -> JournalDraft:
    reconciliation = db.session.get(CashReconciliation, reconciliation_id)
    if reconciliation is None:
        raise SourceNotFoundError(f"Reconciliation {reconciliation_id} not found")
    return build_variance_draft(
        source=JournalSource.RECON,
        source_id=reconciliation.id,
        jdate=reconciliation.reconciliation_date,
        difference_cents=reconciliation.difference_cents,
        ref=f"RECON-{reconciliation.id}",
        memo=f"Cash count variance, shift #{reconciliation.shift_id}",
    )


def _shift_close_draft(shift_id: int) -> JournalDraft:
    reconciliation = db.session.query(CashReconciliation).filter_by(
        shift_id=shift_id, is_closing=True
    ).order_by(CashReconciliation.id.desc()).first()
    if reconciliation is None:
        raise NothingToPostError(f"Shift {shift_id} has no closing count")
    return build_variance_draft(
        source=JournalSource.SHIFT,
        source_id=shift_id,
        jdate=reconciliation.reconciliation_date,
        difference_cents=reconciliation.difference_cents,
        ref=f"SHIFT-{shift_id}",
        memo=f"Shift #{shift_id} closing variance",
    )


# =============================================================================
# PUBLIC OPERATIONS
# =============================================================================

def post_sale(sale_id: int, actor_id: Optional[str] = None) -> PostingOutcome:
    """
    Post a completed sale to the journal.

    Returns already_posted (no second journal) when a SALE journal for this
    sale exists. Raises PostingError subclasses when the sale cannot post;
    nothing is written in that case.
    """
    return _post(JournalSource.SALE, sale_id, _sale_draft, actor_id)


def post_expense(expense_id: int, actor_id: Optional[str] = None) -> PostingOutcome:
    return _post(JournalSource.EXPENSE, expense_id, _expense_draft, actor_id)


def post_reconciliation(reconciliation_id: int, actor_id: Optional[str] = None) -> PostingOutcome:
    return _post(JournalSource.RECON, reconciliation_id, _reconciliation_draft, actor_id)


def post_shift_close(shift_id: int, actor_id: Optional[str] = None) -> PostingOutcome:
    return _post(JournalSource.SHIFT, shift_id, _shift_close_draft, actor_id)


_POSTERS = {
    JournalSource.SALE: post_sale,
    JournalSource.EXPENSE: post_expense,
    JournalSource.RECON: post_reconciliation,
    JournalSource.SHIFT: post_shift_close,
}


def post_source(source, source_id: int, actor_id: Optional[str] = None) -> PostingOutcome:
    """Post any queueable business event. ADJUST entries come only from reverse_journal."""
    source = JournalSource(source)
    poster = _POSTERS.get(source)
    if poster is None:
        raise ValidationError(f"{source.value} journals cannot be posted from a source record")
    return poster(source_id, actor_id)


def reverse_journal(journal_id: int, reason: str, actor_id: Optional[str] = None) -> PostingOutcome:
    """
    Offset a posted journal with an ADJUST entry (source_id = journal_id).

    At most one reversal per journal; a repeat returns already_posted.
    """
    if not reason or not reason.strip():
        raise ValidationError("A reversal reason is required")

    original = db.session.get(JournalEntry, journal_id)
    if original is None:
        raise SourceNotFoundError(f"Journal {journal_id} not found")
    if not original.locked:
        raise PostingError(f"Journal {journal_id} is not posted")

    def _build(_source_id: int) -> JournalDraft:
        return build_reversal_draft(
            journal_id=original.id,
            original_ref=original.ref,
            jdate=business_date(),
            lines=[
                DraftLine(line.account.code, line.debit_cents, line.credit_cents, line.memo)
                for line in original.lines
            ],
            reason=reason.strip(),
        )

    return _post(JournalSource.ADJUST, journal_id, _build, actor_id)


# =============================================================================
# BATCH / QUEUE
# =============================================================================

def _unposted_ids(source: JournalSource) -> list[int]:
    posted = select(JournalEntry.source_id).where(JournalEntry.source == source)
    if source == JournalSource.SALE:
        rows = db.session.query(Sale.id).filter(
            Sale.payment_status == PaymentStatus.COMPLETED,
            Sale.id.notin_(posted),
        ).order_by(Sale.id)
    elif source == JournalSource.EXPENSE:
        rows = db.session.query(Expense.id).filter(Expense.id.notin_(posted)).order_by(Expense.id)
    else:
        raise ValidationError(f"post_all supports SALE and EXPENSE, not {source.value}")
    return [row_id for (row_id,) in rows.all()]


def post_all(source=JournalSource.SALE, actor_id: Optional[str] = None) -> dict:
    """
    Post every record of the given source that has no journal yet.

    Each record posts in its own transaction; one failure does not stop
    the batch.
    Sales whose line items are still being written are counted as waiting
    and left for a later run.
    """
    source = JournalSource(source)
    summary = {"posted": 0, "failed": 0, "skipped": 0, "waiting": 0, "errors": []}

    for source_id in _unposted_ids(source):
        try:
            outcome = post_source(source, source_id, actor_id)
        except SourceNotReadyError as exc:
            logger.info("post_all: %s %s not ready: %s", source.value, source_id, exc)
            summary["waiting"] += 1
            continue
        except Exception as exc:
            logger.exception("post_all: %s %s failed", source.value, source_id)
            _record_failure(source, source_id, exc)
            summary["failed"] += 1
            summary["errors"].append({"source_id": source_id, "error": str(exc)})
            continue
        if outcome.created:
            summary["posted"] += 1
        else:
            summary["skipped"] += 1

    logger.info("post_all %s: %s", source.value, {k: v for k, v in summary.items() if k != "errors"})
    return summary


def _record_failure(source: JournalSource, source_id: int, exc: Exception) -> None:
    db.session.rollback()
    request = db.session.query(PostingRequest).filter_by(source=source, source_id=source_id).first()
    if request is None:
        request = PostingRequest(source=source, source_id=source_id, attempts=0)
        db.session.add(request)
    request.status = PostingStatus.FAILED
    request.attempts = (request.attempts or 0) + 1
    request.last_error = f"{type(exc).__name__}: {exc}"[:2000]
    db.session.commit()


def process_request(source, source_id: int) -> Optional[PostingOutcome]:
    """
    Run one queued posting. Failures are logged and recorded on the
    PostingRequest row, never raised.
    """
    source = JournalSource(source)
    try:
        outcome = post_source(source, source_id)
    except NothingToPostError as exc:
        db.session.rollback()
        logger.info("posting %s %s skipped: %s", source.value, source_id, exc)
        _mark_request_skipped(source, source_id)
        return None
    except SourceNotReadyError as exc:
        db.session.rollback()
        logger.info("posting %s %s deferred: %s", source.value, source_id, exc)
        _mark_request_waiting(source, source_id, exc)
        return None
    except Exception as exc:
        logger.exception("posting %s %s failed", source.value, source_id)
        _record_failure(source, source_id, exc)
        return None

    if not outcome.created:
        _mark_request_posted(source, source_id, outcome.journal)
        db.session.commit()
    return outcome


def _mark_request_skipped(source: JournalSource, source_id: int) -> None:
    request = db.session.query(PostingRequest).filter_by(source=source, source_id=source_id).first()
    if request is None:
        return
    request.status = PostingStatus.POSTED
    request.attempts += 1
    request.last_error = None
    db.session.commit()


def _mark_request_waiting(source: JournalSource, source_id: int, exc: Exception) -> None:
    request = db.session.query(PostingRequest).filter_by(source=source, source_id=source_id).first()
    if request is None:
        return
    request.status = PostingStatus.PENDING
    request.attempts += 1
    request.last_error = str(exc)
    db.session.commit()


def retry_pending(limit: int = 500) -> dict:
    """
    Re-run queued postings that are pending or failed.

    posted: a journal was written. skipped: already posted, or nothing to
    post. waiting: the source is still being written. failed: error recorded.
    """
    requests = db.session.query(PostingRequest).filter(
        PostingRequest.status.in_([PostingStatus.PENDING, PostingStatus.FAILED])
    ).order_by(PostingRequest.id).limit(limit).all()
    work = [(r.source, r.source_id) for r in requests]

    summary = {"posted": 0, "skipped": 0, "waiting": 0, "failed": 0}
    for source, source_id in work:
        outcome = process_request(source, source_id)
        if outcome is not None:
            summary["posted" if outcome.created else "skipped"] += 1
            continue
        request = db.session.query(PostingRequest).filter_by(source=source, source_id=source_id).first()
        if request is not None and request.status == PostingStatus.FAILED:
            summary["failed"] += 1
        elif request is not None and request.status == PostingStatus.PENDING:
            summary["waiting"] += 1
        else:
            # nothing to post; the request was closed without a journal
            summary["skipped"] += 1

    logger.info("retry_pending: %s", summary)
    return summary


# =============================================================================
# QUERIES
# =============================================================================

def get_journal(journal_id: int) -> Optional[JournalEntry]:
    return db.session.get(JournalEntry, journal_id)


def list_journals(source=None, limit: int = 100) -> list[JournalEntry]:
    query = db.session.query(JournalEntry)
    if source is not None:
        try:
            source = JournalSource(source)
        except ValueError:
            raise ValidationError(f"Invalid journal source: {source}")
        query = query.filter(JournalEntry.source == source)
    limit = max(1, min(int(limit), 1000))
    return query.order_by(JournalEntry.id.desc()).limit(limit).all()


def list_posting_requests(status=None) -> list[PostingRequest]:
    query = db.session.query(PostingRequest)
    if status is not None:
        try:
            status = PostingStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid posting status: {status}")
        query = query.filter(PostingRequest.status == status)
    return query.order_by(PostingRequest.id).all()


_DEBIT_NORMAL = {AccountType.ASSET, AccountType.EXPENSE}


def trial_balance(as_of: Optional[date] = None) -> dict:
    """
    Per-account debit and credit totals over posted journals.

    Only accounts with at least one line appear. `balance_cents` is signed
    by the account's normal side (debit for assets and expenses, credit for
    the rest). `balanced` holds when total debits equal total credits.
    """
    query = db.session.query(
        Account.code,
        Account.name,
        Account.type,
        func.coalesce(func.sum(JournalLine.debit_cents), 0),
        func.coalesce(func.sum(JournalLine.credit_cents), 0),
    ).join(JournalLine, JournalLine.account_id == Account.id).join(
        JournalEntry, JournalLine.journal_id == JournalEntry.id
    ).filter(JournalEntry.locked.is_(True))
    if as_of is not None:
        query = query.filter(JournalEntry.jdate <= as_of)
    rows = query.group_by(Account.id, Account.code, Account.name, Account.type).order_by(Account.code).all()

    accounts = []
    for code, name, account_type, debit, credit in rows:
        debit, credit = int(debit), int(credit)
        balance = debit - credit if account_type in _DEBIT_NORMAL else credit - debit
        accounts.append({
            "code": code,
            "name": name,
            "type": account_type.value,
            "debit_cents": debit,
            "credit_cents": credit,
            "balance_cents": balance,
        })

    total_debit = sum(a["debit_cents"] for a in accounts)
    total_credit = sum(a["credit_cents"] for a in accounts)
    return {
        "as_of": as_of.isoformat() if as_of else None,
        "accounts": accounts,
        "total_debit_cents": total_debit,
        "total_credit_cents": total_credit,
        "balanced": total_debit == total_credit,
    }
