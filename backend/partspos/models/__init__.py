from .auth import User, SessionToken
from .inventory import Product, StockAdjustment
from .customers import Customer
from .sales import Invoice, InvoiceItem, Payment
from .credit import CreditEntry, DebtPayment
from .deposits import CustomerDeposit, DepositWithdrawal
from .ledger import CashBalance, CashLedgerEntry, Expense
from .documents import DocumentSequence, AuditLog
from .settings import SystemSetting

__all__ = [
    'User', 'SessionToken',
    'Product', 'StockAdjustment',
    'Customer',
    'Invoice', 'InvoiceItem', 'Payment',
    'CreditEntry', 'DebtPayment',
    'CustomerDeposit', 'DepositWithdrawal',
    'CashBalance', 'CashLedgerEntry', 'Expense',
    'DocumentSequence', 'AuditLog',
    'SystemSetting',
]
