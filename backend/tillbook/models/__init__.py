from .enums import (
    AccountType, CashDirection, CashTransactionType, ExpensePaymentMethod, InvoiceStatus,
    JournalSource, PaymentMethod, PaymentStatus, PostingStatus, ReconciliationStatus,
    ShiftStatus, StockStatus, TenderType,
)
from .shifts import Shift
from .cash import CashTransaction, CashReconciliation
from .sales import Sale, SaleLineItem, PaymentTransaction, DailyStat
from .inventory import Product
from .accounting import Account, JournalEntry, JournalLine, PostingRequest, Expense, SupplierInvoice, InvoicePayment
from .immutability import ImmutableRecordError, JournalLockedError

__all__ = [
    'AccountType', 'CashDirection', 'CashTransactionType', 'ExpensePaymentMethod', 'InvoiceStatus',
    'JournalSource', 'PaymentMethod', 'PaymentStatus', 'PostingStatus', 'ReconciliationStatus',
    'ShiftStatus', 'StockStatus', 'TenderType',
    'Shift',
    'CashTransaction', 'CashReconciliation',
    'Sale', 'SaleLineItem', 'PaymentTransaction', 'DailyStat',
    'Product',
    'Account', 'JournalEntry', 'JournalLine', 'PostingRequest', 'Expense', 'SupplierInvoice', 'InvoicePayment',
    'ImmutableRecordError', 'JournalLockedError',
]
