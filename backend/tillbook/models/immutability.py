"""
ORM-level append-only / posted-is-final enforcement.

Covers ledger rows (cash transactions, reconciliations) and locked journals.
Bulk Core statements bypass these hooks; only maintenance commands use them.
"""

from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.orm.attributes import get_history

from .accounting import JournalEntry, JournalLine
from .cash import CashReconciliation, CashTransaction

logger = logging.getLogger(__name__)


class ImmutableRecordError(Exception):
    """Raised when code tries to modify or delete an append-only or locked row."""

    def __init__(self, entity_type: str, entity_id, operation: str):
        super().__init__(f"{entity_type} {entity_id} is immutable ({operation} refused)")
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation


class JournalLockedError(ImmutableRecordError):
    """A posted (locked) journal or one of its lines was about to change."""


def _refuse(entity_type: str, target, operation: str, error_cls=ImmutableRecordError):
    logger.error(
        "immutability violation blocked: %s %s %s", operation, entity_type, target.id
    )
    raise error_cls(entity_type, target.id, operation)


@event.listens_for(CashTransaction, "before_update")
def _cash_transaction_update(mapper, connection, target):
    _refuse("CashTransaction", target, "UPDATE")


@event.listens_for(CashTransaction, "before_delete")
def _cash_transaction_delete(mapper, connection, target):
    _refuse("CashTransaction", target, "DELETE")


@event.listens_for(CashReconciliation, "before_update")
def _reconciliation_update(mapper, connection, target):
    _refuse("CashReconciliation", target, "UPDATE")


@event.listens_for(CashReconciliation, "before_delete")
def _reconciliation_delete(mapper, connection, target):
    _refuse("CashReconciliation", target, "DELETE")


def _was_locked(target: JournalEntry) -> bool:
    history = get_history(target, "locked")
    if history.deleted:
        return bool(history.deleted[0])
    if history.unchanged:
        return bool(history.unchanged[0])
    return False


@event.listens_for(JournalEntry, "before_update")
def _journal_update(mapper, connection, target):
    if _was_locked(target):
        _refuse("JournalEntry", target, "UPDATE", JournalLockedError)


@event.listens_for(JournalEntry, "before_delete")
def _journal_delete(mapper, connection, target):
    if _was_locked(target):
        _refuse("JournalEntry", target, "DELETE", JournalLockedError)


@event.listens_for(JournalLine, "before_update")
def _journal_line_update(mapper, connection, target):
    if target.journal is not None and target.journal.locked:
        _refuse("JournalLine", target, "UPDATE", JournalLockedError)


@event.listens_for(JournalLine, "before_delete")
def _journal_line_delete(mapper, connection, target):
    if target.journal is not None and target.journal.locked:
        _refuse("JournalLine", target, "DELETE", JournalLockedError)
