# Overview: Pure double-entry posting rules; build and validate journal drafts before any write.

"""
Posting Rules

WHY: The journal must balance, always. Each business event is turned into
a JournalDraft by a pure function, and the draft is validated (sum of
debits == sum of credits, every line one-sided and positive) before
journal_service writes a single row.

Amounts are integer cents throughout. VAT is price-inclusive.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from ..models import ExpensePaymentMethod, JournalSource, TenderType
from . import account_service as accounts


class PostingError(Exception):
    """Raised when a business event cannot be turned into a journal."""


class UnbalancedJournalError(PostingError):
    """Draft violates double-entry rules; nothing was written."""


class NothingToPostError(PostingError):
    """The event has no accounting effect (e.g., zero variance)."""


# Exhaustive over TenderType
TENDER_ACCOUNTS = {
    TenderType.CASH: accounts.CASH_ON_HAND,
    TenderType.MPESA: accounts.MPESA_TILL,
    TenderType.CARD: accounts.CARD_CLEARING,
}

# Exhaustive over ExpensePaymentMethod
EXPENSE_PAYMENT_ACCOUNTS = {
    ExpensePaymentMethod.CASH: accounts.CASH_ON_HAND,
    ExpensePaymentMethod.MPESA: accounts.MPESA_TILL,
    ExpensePaymentMethod.BANK: accounts.BANK,
}

# Expense categories with their own account; anything else goes to 6000
EXPENSE_CATEGORY_ACCOUNTS = {
    "utilities": accounts.UTILITIES,
    "rent": accounts.RENT,
    "transport": accounts.TRANSPORT,
    "supplies": accounts.SUPPLIES,
}


@dataclass(frozen=True)
class DraftLine:
    account_code: str
    debit_cents: int = 0
    credit_cents: int = 0
    memo: Optional[str] = None


@dataclass
class JournalDraft:
    source: JournalSource
    source_id: int
    jdate: date
    ref: str
    memo: str
    lines: list[DraftLine] = field(default_factory=list)
    reverses_journal_id: Optional[int] = None

    def debit(self, account_code: str, cents: int, memo: Optional[str] = None) -> None:
        self.lines.append(DraftLine(account_code, debit_cents=cents, memo=memo))

    def credit(self, account_code: str, cents: int, memo: Optional[str] = None) -> None:
        self.lines.append(DraftLine(account_code, credit_cents=cents, memo=memo))

    @property
    def total_debit_cents(self) -> int:
        return sum(line.debit_cents for line in self.lines)

    @property
    def total_credit_cents(self) -> int:
        return sum(line.credit_cents for line in self.lines)

    @property
    def account_codes(self) -> set[str]:
        return {line.account_code for line in self.lines}

    def validate(self) -> "JournalDraft":
        if len(self.lines) < 2:
            raise UnbalancedJournalError(f"{self.ref}: a journal needs at least two lines")
        for line in self.lines:
            if not isinstance(line.debit_cents, int) or not isinstance(line.credit_cents, int):
                raise UnbalancedJournalError(f"{self.ref}: line amounts must be integer cents")
            if line.debit_cents < 0 or line.credit_cents < 0:
                raise UnbalancedJournalError(f"{self.ref}: negative amount on account {line.account_code}")
            if (line.debit_cents > 0) == (line.credit_cents > 0):
                raise UnbalancedJournalError(
                    f"{self.ref}: line on account {line.account_code} must have exactly one nonzero side"
                )
        if self.total_debit_cents != self.total_credit_cents:
            raise UnbalancedJournalError(
                f"{self.ref}: debits {self.total_debit_cents} != credits {self.total_credit_cents}"
            )
        return self


def vat_portion(gross_cents: int, rate_bps: int) -> int:
    """VAT contained in a VAT-inclusive amount, rounded half up to the cent."""
    if rate_bps <= 0 or gross_cents <= 0:
        return 0
    denominator = 10_000 + rate_bps
    return (2 * gross_cents * rate_bps + denominator) // (2 * denominator)


# =============================================================================
# RULES
# =============================================================================

def build_sale_draft(
    *,
    sale_id: int,
    jdate: date,
    total_cents: int,
    payments: Iterable[tuple[TenderType, int]],
    cost_cents: int = 0,
    vat_rate_bps: int = 0,
) -> JournalDraft:
    """
    Dr tender account per payment
        Cr VAT Output (inclusive portion)
        Cr Sales Revenue (remainder)
    Dr COGS / Cr Inventory for the cost of goods that left stock
    """
    draft = JournalDraft(
        source=JournalSource.SALE,
        source_id=sale_id,
        jdate=jdate,
        ref=f"SALE-{sale_id}",
        memo=f"Sale #{sale_id}",
    )

    tender_totals: dict[TenderType, int] = {}
    for tender, amount in payments:
        tender = TenderType(tender)
        tender_totals[tender] = tender_totals.get(tender, 0) + amount
    if not tender_totals:
        raise PostingError(f"Sale {sale_id} has no payment transactions")

    for tender in TenderType:
        amount = tender_totals.get(tender, 0)
        if amount:
            draft.debit(TENDER_ACCOUNTS[tender], amount, f"{tender.value} received")

    tax = vat_portion(total_cents, vat_rate_bps)
    if tax:
        draft.credit(accounts.VAT_OUTPUT, tax, "VAT output")
    draft.credit(accounts.SALES_REVENUE, total_cents - tax, "Sales revenue")

    if cost_cents > 0:
        draft.debit(accounts.COST_OF_GOODS_SOLD, cost_cents, "Cost of goods sold")
        draft.credit(accounts.INVENTORY, cost_cents, "Inventory relieved")

    return draft.validate()


def build_expense_draft(
    *,
    expense_id: int,
    jdate: date,
    title: str,
    category: str,
    amount_cents: int,
    payment_method: ExpensePaymentMethod,
) -> JournalDraft:
    """Dr expense account (by category) / Cr the account the money left from."""
    draft = JournalDraft(
        source=JournalSource.EXPENSE,
        source_id=expense_id,
        jdate=jdate,
        ref=f"EXP-{expense_id}",
        memo=f"Expense: {title}",
    )
    expense_account = EXPENSE_CATEGORY_ACCOUNTS.get((category or "").strip().lower(), accounts.OPERATING_EXPENSES)
    draft.debit(expense_account, amount_cents, title)
    draft.credit(EXPENSE_PAYMENT_ACCOUNTS[ExpensePaymentMethod(payment_method)], amount_cents, title)
    return draft.validate()


def build_variance_draft(
    *,
    source: JournalSource,
    source_id: int,
    jdate: date,
    difference_cents: int,
    ref: str,
    memo: str,
) -> JournalDraft:
    """
    Over (difference > 0): Dr Cash on Hand / Cr Cash Over/Short
    Short (difference < 0): Dr Cash Over/Short / Cr Cash on Hand
    """
    if source not in (JournalSource.RECON, JournalSource.SHIFT):
        raise PostingError(f"Variance postings use RECON or SHIFT, not {source.value}")
    if difference_cents == 0:
        raise NothingToPostError(f"{ref}: no variance to post")

    draft = JournalDraft(source=source, source_id=source_id, jdate=jdate, ref=ref, memo=memo)
    amount = abs(difference_cents)
    if difference_cents > 0:
        draft.debit(accounts.CASH_ON_HAND, amount, "Cash over")
        draft.credit(accounts.CASH_OVER_SHORT, amount, "Cash over")
    else:
        draft.debit(accounts.CASH_OVER_SHORT, amount, "Cash short")
        draft.credit(accounts.CASH_ON_HAND, amount, "Cash short")
    return draft.validate()


def build_reversal_draft(
    *,
    journal_id: int,
    original_ref: str,
    jdate: date,
    lines: Iterable[DraftLine],
    reason: str,
) -> JournalDraft:
    """Mirror every line of the original journal with debit and credit swapped."""
    draft = JournalDraft(
        source=JournalSource.ADJUST,
        source_id=journal_id,
        jdate=jdate,
        ref=f"REV-{original_ref}"[:64],
        memo=f"Reversal of {original_ref}: {reason}"[:255],
        reverses_journal_id=journal_id,
    )
    for line in lines:
        draft.lines.append(
            DraftLine(
                account_code=line.account_code,
                debit_cents=line.credit_cents,
                credit_cents=line.debit_cents,
                memo=line.memo,
            )
        )
    return draft.validate()
