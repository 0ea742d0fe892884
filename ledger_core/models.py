"""Data models for the operations ledger domain."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

__all__ = [
    "BUSINESS",
    "STATUS_NONE",
    "STATUS_PENDING",
    "STATUS_REIMBURSED",
    "REIMBURSEMENT_STATUSES",
    "Order",
    "Expense",
    "SalaryPayment",
    "BankSavingsEntry",
    "DistributionRecord",
    "Owner",
    "PeriodTotals",
    "OwnerShare",
    "DistributionSummary",
    "ReimbursementResult",
    "distribution_key",
    "isoformat_utc",
    "parse_datetime",
    "parse_date",
    "format_money",
]

BUSINESS = "business"

STATUS_NONE = "none"
STATUS_PENDING = "pending"
STATUS_REIMBURSED = "reimbursed"
REIMBURSEMENT_STATUSES = {STATUS_NONE, STATUS_PENDING, STATUS_REIMBURSED}


ZERO = Decimal("0")


def isoformat_utc(dt: datetime) -> str:
    """Return an ISO 8601 string with trailing Z for UTC-aware datetimes."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)
    iso = dt.isoformat(timespec="seconds")
    return iso.replace("+00:00", "Z")


def parse_datetime(value: str) -> datetime:
    """Parse ISO 8601 datetime strings with optional trailing Z into UTC-aware datetime."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Naive timestamps are stored as UTC.
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD``; a full timestamp is accepted and truncated to its UTC date."""
    value = value.strip()
    if len(value) == 10:
        return date.fromisoformat(value)
    return parse_datetime(value).date()


def format_money(amount: Decimal) -> str:
    return f"{amount:.2f}"


def _optional_datetime(value: Optional[str]) -> Optional[datetime]:
    return parse_datetime(value) if value else None


def _optional_isoformat(value: Optional[datetime]) -> Optional[str]:
    return isoformat_utc(value) if value is not None else None


@dataclass(frozen=True)
class Order:
    id: str
    total: Decimal
    is_paid: bool
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "total": format_money(self.total),
            "is_paid": self.is_paid,
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        return cls(
            id=data["id"],
            total=Decimal(str(data["total"])),
            is_paid=bool(data.get("is_paid", False)),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class Expense:
    id: str
    title: str
    amount: Decimal
    expense_for: str
    reimbursement_status: str
    incurred_on: date
    recorded_at: datetime
    category: Optional[str] = None
    reimbursed_at: Optional[datetime] = None
    reimbursed_by: Optional[str] = None

    @property
    def is_personal(self) -> bool:
        return self.expense_for != BUSINESS

    @property
    def is_pending(self) -> bool:
        return self.reimbursement_status == STATUS_PENDING

    @property
    def is_reimbursed(self) -> bool:
        return self.reimbursement_status == STATUS_REIMBURSED

    @property
    def counts_as_business(self) -> bool:
        """Business-tagged or reimbursed expenses are company costs."""
        return self.expense_for == BUSINESS or self.is_reimbursed

    def to_dict(self) -> Dict[str, Any]:
        """Serialise the expense to JSON-friendly natives."""
        return {
            "id": self.id,
            "title": self.title,
            "amount": format_money(self.amount),
            "category": self.category,
            "expense_for": self.expense_for,
            "reimbursement_status": self.reimbursement_status,
            "incurred_on": self.incurred_on.isoformat(),
            "recorded_at": isoformat_utc(self.recorded_at),
            "reimbursed_at": _optional_isoformat(self.reimbursed_at),
            "reimbursed_by": self.reimbursed_by,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Expense":
        """Hydrate an Expense from JSON-native data."""
        return cls(
            id=data["id"],
            title=data["title"],
            amount=Decimal(str(data["amount"])),
            category=data.get("category"),
            expense_for=data["expense_for"],
            reimbursement_status=data.get("reimbursement_status") or STATUS_NONE,
            incurred_on=parse_date(data["incurred_on"]),
            recorded_at=parse_datetime(data["recorded_at"]),
            reimbursed_at=_optional_datetime(data.get("reimbursed_at")),
            reimbursed_by=data.get("reimbursed_by"),
        )


@dataclass(frozen=True)
class SalaryPayment:
    id: str
    employee_id: str
    amount: Decimal
    is_paid: bool
    date: date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "amount": format_money(self.amount),
            "is_paid": self.is_paid,
            "date": self.date.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SalaryPayment":
        return cls(
            id=data["id"],
            employee_id=data["employee_id"],
            amount=Decimal(str(data["amount"])),
            is_paid=bool(data.get("is_paid", False)),
            date=parse_date(data["date"]),
        )


@dataclass(frozen=True)
class BankSavingsEntry:
    """One signed line of the reserve ledger: deposits positive, withdrawals negative."""

    id: str
    period_type: str
    period_start: date
    period_end: date
    amount: Decimal
    created_at: datetime
    created_by: Optional[str] = None
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "period_type": self.period_type,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "amount": str(self.amount),
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": isoformat_utc(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BankSavingsEntry":
        return cls(
            id=data["id"],
            period_type=data["period_type"],
            period_start=parse_date(data["period_start"]),
            period_end=parse_date(data["period_end"]),
            amount=Decimal(str(data["amount"])),
            notes=data.get("notes"),
            created_by=data.get("created_by"),
            created_at=parse_datetime(data["created_at"]),
        )


@dataclass(frozen=True)
class DistributionRecord:
    id: str
    owner_name: str
    period_type: str
    period_start: date
    period_end: date
    share_amount: Decimal
    personal_expenses: Decimal
    net_share: Decimal
    created_at: datetime
    updated_at: datetime
    net_income: Decimal = ZERO
    total_revenue: Decimal = ZERO
    total_expenses: Decimal = ZERO
    is_claimed: bool = False
    claimed_at: Optional[datetime] = None
    claimed_by: Optional[str] = None

    @property
    def natural_key(self) -> tuple:
        return distribution_key(self.owner_name, self.period_type, self.period_start, self.period_end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_name": self.owner_name,
            "period_type": self.period_type,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "share_amount": str(self.share_amount),
            "personal_expenses": str(self.personal_expenses),
            "net_share": str(self.net_share),
            "net_income": str(self.net_income),
            "total_revenue": str(self.total_revenue),
            "total_expenses": str(self.total_expenses),
            "is_claimed": self.is_claimed,
            "claimed_at": _optional_isoformat(self.claimed_at),
            "claimed_by": self.claimed_by,
            "created_at": isoformat_utc(self.created_at),
            "updated_at": isoformat_utc(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DistributionRecord":
        return cls(
            id=data["id"],
            owner_name=data["owner_name"],
            period_type=data["period_type"],
            period_start=parse_date(data["period_start"]),
            period_end=parse_date(data["period_end"]),
            share_amount=Decimal(str(data["share_amount"])),
            personal_expenses=Decimal(str(data.get("personal_expenses", "0"))),
            net_share=Decimal(str(data["net_share"])),
            net_income=Decimal(str(data.get("net_income", "0"))),
            total_revenue=Decimal(str(data.get("total_revenue", "0"))),
            total_expenses=Decimal(str(data.get("total_expenses", "0"))),
            is_claimed=bool(data.get("is_claimed", False)),
            claimed_at=_optional_datetime(data.get("claimed_at")),
            claimed_by=data.get("claimed_by"),
            created_at=parse_datetime(data["created_at"]),
            updated_at=parse_datetime(data["updated_at"]),
        )


def distribution_key(owner_name: str, period_type: str, period_start: date, period_end: date) -> tuple:
    """Unique key of a distribution record.

    All-time distributions are stored as ``custom`` rows whose end date moves
    with the day of the claim, so they collapse to one row per owner.
    """
    if period_type == "custom":
        return (owner_name, period_type)
    return (owner_name, period_type, period_start, period_end)


@dataclass(frozen=True)
class Owner:
    name: str
    eligible: bool = True


@dataclass(frozen=True)
class PeriodTotals:
    total_revenue: Decimal
    business_expense: Decimal
    payroll_expense: Decimal
    paid_orders_count: int = 0

    @property
    def total_expense(self) -> Decimal:
        return self.business_expense + self.payroll_expense

    @property
    def net_income(self) -> Decimal:
        return self.total_revenue - self.total_expense

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_revenue": format_money(self.total_revenue),
            "business_expense": format_money(self.business_expense),
            "payroll_expense": format_money(self.payroll_expense),
            "total_expense": format_money(self.total_expense),
            "net_income": format_money(self.net_income),
            "paid_orders_count": self.paid_orders_count,
        }


@dataclass(frozen=True)
class OwnerShare:
    name: str
    share: Decimal
    percentage: Decimal
    personal_expenses: Decimal
    net_share: Decimal
    is_selected: bool
    is_disabled: bool
    is_claimed: bool = False
    claimed_at: Optional[datetime] = None
    distribution_id: Optional[str] = None

    @property
    def claimable(self) -> bool:
        return self.is_selected and not self.is_disabled and self.net_share > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "share": format_money(self.share),
            "percentage": f"{self.percentage:.2f}",
            "personal_expenses": format_money(self.personal_expenses),
            "net_share": format_money(self.net_share),
            "is_selected": self.is_selected,
            "is_disabled": self.is_disabled,
            "is_claimed": self.is_claimed,
            "claimed_at": _optional_isoformat(self.claimed_at),
            "distribution_id": self.distribution_id,
            "claimable": self.claimable,
        }


@dataclass(frozen=True)
class DistributionSummary:
    period_label: str
    totals: PeriodTotals
    total_personal_expenses: Decimal
    bank_savings: Decimal
    shares: List[OwnerShare] = field(default_factory=list)

    @property
    def net_income(self) -> Decimal:
        return self.totals.net_income

    @property
    def available_for_distribution(self) -> Decimal:
        return self.totals.net_income - self.bank_savings

    def share_for(self, owner_name: str) -> Optional[OwnerShare]:
        for share in self.shares:
            if share.name == owner_name:
                return share
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period_label,
            "total_revenue": format_money(self.totals.total_revenue),
            "total_expenses": format_money(self.totals.total_expense),
            "net_income": format_money(self.net_income),
            "total_personal_expenses": format_money(self.total_personal_expenses),
            "bank_savings": format_money(self.bank_savings),
            "available_for_distribution": format_money(self.available_for_distribution),
            "distribution": [share.to_dict() for share in self.shares],
        }


@dataclass(frozen=True)
class ReimbursementResult:
    owner: str
    reimbursed: List[Expense] = field(default_factory=list)
    skipped_ids: List[str] = field(default_factory=list)

    @property
    def total(self) -> Decimal:
        return sum((expense.amount for expense in self.reimbursed), start=Decimal("0.00"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "reimbursed": [expense.to_dict() for expense in self.reimbursed],
            "skipped_ids": list(self.skipped_ids),
            "total": format_money(self.total),
        }
