"""Core ledger and distribution logic for the operations console."""

from .config import Settings
from .context import LedgerContext, open_ledger
from .distribution import BankSavingsLedger, ClaimService, compute_distribution
from .exceptions import (
    ConflictError,
    PartialApplicationWarning,
    RecordNotFoundError,
    StoreUnavailable,
    ValidationError,
)
from .models import (
    BankSavingsEntry,
    DistributionRecord,
    DistributionSummary,
    Expense,
    Order,
    Owner,
    OwnerShare,
    PeriodTotals,
    SalaryPayment,
)
from .periods import Period, resolve_period
from .services import ExpenseService, OrderService, PeriodAggregator, SalaryPaymentService
from .storage import JSONStorage, LedgerStore

__all__ = [
    "Settings",
    "LedgerContext",
    "open_ledger",
    "BankSavingsLedger",
    "ClaimService",
    "compute_distribution",
    "ConflictError",
    "PartialApplicationWarning",
    "RecordNotFoundError",
    "StoreUnavailable",
    "ValidationError",
    "BankSavingsEntry",
    "DistributionRecord",
    "DistributionSummary",
    "Expense",
    "Order",
    "Owner",
    "OwnerShare",
    "PeriodTotals",
    "SalaryPayment",
    "Period",
    "resolve_period",
    "ExpenseService",
    "OrderService",
    "PeriodAggregator",
    "SalaryPaymentService",
    "JSONStorage",
    "LedgerStore",
]
