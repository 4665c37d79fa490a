# Overview: Chart of accounts lookups and default seeding.

from __future__ import annotations

import logging
from typing import Optional

from ..extensions import db
from ..models import Account, AccountType

logger = logging.getLogger(__name__)


class AccountNotFoundError(Exception):
    """A posting referenced an account code that is missing or inactive."""


# Account codes used by the posting rules
CASH_ON_HAND = "1100"
MPESA_TILL = "1110"
BANK = "1120"
CARD_CLEARING = "1200"
INVENTORY = "1300"
ACCOUNTS_PAYABLE = "2000"
VAT_OUTPUT = "2100"
OWNER_EQUITY = "3000"
SALES_REVENUE = "4000"
COST_OF_GOODS_SOLD = "5000"
OPERATING_EXPENSES = "6000"
UTILITIES = "6100"
RENT = "6200"
TRANSPORT = "6300"
SUPPLIES = "6400"
CASH_OVER_SHORT = "6900"

DEFAULT_ACCOUNTS = [
    (CASH_ON_HAND, "Cash on Hand (Tills)", AccountType.ASSET),
    (MPESA_TILL, "M-PESA Till", AccountType.ASSET),
    (BANK, "Bank Current Account", AccountType.ASSET),
    (CARD_CLEARING, "Card Settlement Receivable", AccountType.ASSET),
    (INVENTORY, "Inventory", AccountType.ASSET),
    (ACCOUNTS_PAYABLE, "Accounts Payable", AccountType.LIABILITY),
    (VAT_OUTPUT, "VAT Output Payable", AccountType.LIABILITY),
    (OWNER_EQUITY, "Owner's Equity", AccountType.EQUITY),
    (SALES_REVENUE, "Sales Revenue", AccountType.REVENUE),
    (COST_OF_GOODS_SOLD, "Cost of Goods Sold", AccountType.EXPENSE),
    (OPERATING_EXPENSES, "General Operating Expenses", AccountType.EXPENSE),
    (UTILITIES, "Utilities", AccountType.EXPENSE),
    (RENT, "Rent", AccountType.EXPENSE),
    (TRANSPORT, "Transport", AccountType.EXPENSE),
    (SUPPLIES, "Supplies", AccountType.EXPENSE),
    (CASH_OVER_SHORT, "Cash Over/Short", AccountType.EXPENSE),
]


def seed_default_accounts() -> int:
    """Insert any missing default accounts. Returns how many were created."""
    existing = {code for (code,) in db.session.query(Account.code).all()}
    created = 0
    for code, name, account_type in DEFAULT_ACCOUNTS:
        if code in existing:
            continue
        db.session.add(Account(code=code, name=name, type=account_type, is_active=True))
        created += 1
    db.session.commit()
    if created:
        logger.info("seeded %d default accounts", created)
    return created


def get_account_by_code(code: str) -> Optional[Account]:
    return db.session.query(Account).filter_by(code=code).first()


def require_account(code: str) -> Account:
    account = get_account_by_code(code)
    if account is None or not account.is_active:
        raise AccountNotFoundError(f"Account {code} not found or inactive")
    return account


def list_accounts(include_inactive: bool = False) -> list[Account]:
    query = db.session.query(Account)
    if not include_inactive:
        query = query.filter(Account.is_active.is_(True))
    return query.order_by(Account.code).all()
