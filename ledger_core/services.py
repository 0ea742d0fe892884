"""Framework-agnostic business services for the operations ledger."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence
from uuid import uuid4

from .exceptions import RecordNotFoundError, StoreUnavailable, ValidationError
from .models import (
    BUSINESS,
    STATUS_NONE,
    STATUS_PENDING,
    REIMBURSEMENT_STATUSES,
    Expense,
    Order,
    Owner,
    PeriodTotals,
    ReimbursementResult,
    SalaryPayment,
)
from .periods import Period, resolve_period
from .storage import LedgerStore
from .validators import (
    parse_amount,
    validate_actor,
    validate_bool,
    validate_date,
    validate_datetime,
    validate_enum,
    validate_optional_str,
    validate_required_str,
)

logger = logging.getLogger("ledger.services")

Clock = Callable[[], datetime]

ZERO = Decimal("0.00")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def _bound(value: object, field: str) -> Optional[date]:
    return validate_date(value, field) if value is not None else None


class OrderService:
    """Revenue intake. Orders are read-only to the ledger once paid."""

    def __init__(self, store: LedgerStore, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or utcnow

    def add(self, payload: Dict[str, object]) -> Order:
        created_at = payload.get("created_at")
        order = Order(
            id=str(payload.get("id") or uuid4()),
            total=parse_amount(payload.get("total"), "total"),
            is_paid=validate_bool(payload.get("is_paid", False), "is_paid"),
            created_at=validate_datetime(created_at, "created_at") if created_at else self._clock(),
        )
        self._store.add_order(order)
        logger.info("Order %s recorded (total %s, paid=%s)", order.id, order.total, order.is_paid)
        return order

    def get(self, order_id: str) -> Order:
        for order in self._store.orders():
            if order.id == order_id:
                return order
        raise RecordNotFoundError(f"Order {order_id} not found")

    def mark_paid(self, order_id: str) -> Order:
        order = self.get(order_id)
        if order.is_paid:
            return order
        return self._store.replace_order(replace(order, is_paid=True))

    def list(self, **filters: object) -> List[Order]:
        start = _bound(filters.get("start"), "start")
        end = _bound(filters.get("end"), "end")
        paid_only = bool(filters.get("paid_only"))
        records = [
            order
            for order in self._store.orders()
            if _in_range(order.created_at.date(), start, end) and (order.is_paid or not paid_only)
        ]
        return sorted(records, key=lambda order: order.created_at)


class SalaryPaymentService:
    """Payroll intake; only paid entries are costs."""

    def __init__(self, store: LedgerStore, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or utcnow

    def add(self, payload: Dict[str, object]) -> SalaryPayment:
        paid_on = payload.get("date")
        payment = SalaryPayment(
            id=str(payload.get("id") or uuid4()),
            employee_id=validate_required_str(payload.get("employee_id"), "employee_id", 100),
            amount=parse_amount(payload.get("amount"), "amount"),
            is_paid=validate_bool(payload.get("is_paid", False), "is_paid"),
            date=validate_date(paid_on, "date") if paid_on else self._clock().date(),
        )
        self._store.add_salary_payment(payment)
        logger.info("Salary payment %s recorded for %s", payment.id, payment.employee_id)
        return payment

    def mark_paid(self, payment_id: str) -> SalaryPayment:
        for payment in self._store.salary_payments():
            if payment.id == payment_id:
                if payment.is_paid:
                    return payment
                return self._store.replace_salary_payment(replace(payment, is_paid=True))
        raise RecordNotFoundError(f"Salary payment {payment_id} not found")

    def list(self, **filters: object) -> List[SalaryPayment]:
        start = _bound(filters.get("start"), "start")
        end = _bound(filters.get("end"), "end")
        employee_id = filters.get("employee_id")
        records = [
            payment
            for payment in self._store.salary_payments()
            if _in_range(payment.date, start, end)
            and (employee_id is None or payment.employee_id == employee_id)
        ]
        return sorted(records, key=lambda payment: payment.date)


class ExpenseService:
    """Manages expense records and the personal-expense reimbursement workflow."""

    def __init__(self, store: LedgerStore, roster: Sequence[Owner], clock: Optional[Clock] = None) -> None:
        self._store = store
        self._roster = list(roster)
        self._clock = clock or utcnow

    # Public API -----------------------------------------------------------
    def add(self, payload: Dict[str, object]) -> Expense:
        expense_for = self._canonical_expense_for(payload.get("expense_for", BUSINESS))
        incurred_on = payload.get("incurred_on")
        now = self._clock()
        expense = Expense(
            id=str(uuid4()),
            title=validate_required_str(payload.get("title"), "title", 120),
            amount=parse_amount(payload.get("amount"), "amount"),
            category=validate_optional_str(payload.get("category"), "category", 50),
            expense_for=expense_for,
            # Personal expenses wait for reimbursement; business ones never enter the cycle.
            reimbursement_status=STATUS_NONE if expense_for == BUSINESS else STATUS_PENDING,
            incurred_on=validate_date(incurred_on, "incurred_on") if incurred_on else now.date(),
            recorded_at=now,
        )
        self._store.add_expense(expense)
        logger.info("Expense %s recorded for %s (%s)", expense.id, expense.expense_for, expense.amount)
        return expense

    def get(self, expense_id: str) -> Expense:
        """Return an expense or raise if it does not exist."""
        for expense in self._store.expenses():
            if expense.id == expense_id:
                return expense
        raise RecordNotFoundError(f"Expense {expense_id} not found")

    def delete(self, expense_id: str, *, confirm: bool = False) -> None:
        """Delete an expense; reimbursed ones need ``confirm=True``.

        Deleting never reverses the reimbursement bookkeeping.
        """
        def check(current: Expense) -> None:
            if current.is_reimbursed and not confirm:
                raise ValidationError(
                    f"Expense {expense_id} has been reimbursed; deleting it requires confirmation"
                )

        expense = self._store.delete_expense(expense_id, check=check)
        logger.info("Expense %s deleted (status %s)", expense_id, expense.reimbursement_status)

    def list(self, **filters: object) -> List[Expense]:
        records: Iterable[Expense] = self._store.expenses()
        records = list(self._apply_filters(records, filters))
        return sorted(records, key=lambda exp: (exp.incurred_on, exp.recorded_at))

    def total(self, **filters: object) -> Decimal:
        expenses = self.list(**filters)
        return sum((expense.amount for expense in expenses), start=ZERO)

    def pending_by_owner(self, start: Optional[date] = None, end: Optional[date] = None) -> Dict[str, Decimal]:
        """Unreimbursed personal totals for every owner on the roster."""
        return pending_totals(self._store.expenses(), self._roster, start, end)

    def reimburse_batch(self, expense_ids: Iterable[str], actor: object) -> ReimbursementResult:
        """Move one owner's pending expenses to reimbursed in a single write.

        Already-reimbursed ids are skipped, so re-running a batch is safe.
        """
        actor_id = validate_actor(actor)
        ids = [str(expense_id) for expense_id in expense_ids]
        if not ids:
            raise ValidationError("expense_ids cannot be empty")

        owners: List[str] = []

        def check(current: List[Expense]) -> None:
            for expense in current:
                if not expense.is_personal:
                    raise ValidationError(f"Expense {expense.id} is a business expense and cannot be reimbursed")
                if expense.reimbursement_status == STATUS_NONE:
                    raise ValidationError(f"Expense {expense.id} is not awaiting reimbursement")
            distinct = sorted({expense.expense_for for expense in current})
            if len(distinct) > 1:
                raise ValidationError(
                    f"A reimbursement batch must belong to one owner (got {', '.join(distinct)})"
                )
            owners.extend(distinct)

        try:
            updated, skipped = self._store.mark_reimbursed(ids, actor_id, self._clock(), check=check)
        except StoreUnavailable as exc:
            logger.error("Reimbursement batch %s failed: %s", ids, exc)
            raise StoreUnavailable(f"Reimbursement batch {', '.join(ids)} was not applied") from exc

        result = ReimbursementResult(owner=owners[0], reimbursed=updated, skipped_ids=skipped)
        logger.info(
            "Reimbursed %d expense(s) for %s totalling %s by %s (%d already reimbursed)",
            len(updated), result.owner, result.total, actor_id, len(skipped),
        )
        return result

    # Internal helpers -----------------------------------------------------
    def _canonical_expense_for(self, raw: object) -> str:
        if not isinstance(raw, str) or not raw.strip():
            raise ValidationError("expense_for must be a string")
        candidate = raw.strip()
        if candidate.lower() == BUSINESS:
            return BUSINESS
        for owner in self._roster:
            if owner.name.lower() == candidate.lower():
                return owner.name
        names = ", ".join([BUSINESS] + [owner.name for owner in self._roster])
        raise ValidationError(f"expense_for must be one of: {names}")

    def _apply_filters(self, records: Iterable[Expense], filters: Dict[str, object]) -> Iterable[Expense]:
        expense_for = (
            self._canonical_expense_for(filters["expense_for"])
            if filters.get("expense_for") is not None
            else None
        )
        status = (
            validate_enum(filters["status"], "status", REIMBURSEMENT_STATUSES)
            if filters.get("status") is not None
            else None
        )
        category = (
            str(filters["category"]).strip().lower()
            if filters.get("category") is not None
            else None
        )
        start = _bound(filters.get("start"), "start")
        end = _bound(filters.get("end"), "end")

        def matches(expense: Expense) -> bool:
            if expense_for and expense.expense_for != expense_for:
                return False
            if status and expense.reimbursement_status != status:
                return False
            if category and (expense.category or "").lower() != category:
                return False
            return _in_range(expense.incurred_on, start, end)

        return filter(matches, records)


def pending_totals(
    expenses: Iterable[Expense], roster: Sequence[Owner],
    start: Optional[date] = None, end: Optional[date] = None,
) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = {owner.name: ZERO for owner in roster}
    for expense in expenses:
        if expense.is_pending and expense.expense_for in totals and _in_range(expense.incurred_on, start, end):
            totals[expense.expense_for] += expense.amount
    return totals


class PeriodAggregator:
    """Computes revenue, expense and net income for a window of time."""

    def __init__(self, store: LedgerStore, roster: Sequence[Owner], clock: Optional[Clock] = None) -> None:
        self._store = store
        self._roster = list(roster)
        self._clock = clock or utcnow

    def aggregate(self, period_start: Optional[date] = None, period_end: Optional[date] = None) -> PeriodTotals:
        """Totals for ``[period_start, period_end]``; ``None`` leaves a side open."""
        paid_orders = [
            order
            for order in self._store.orders()
            if order.is_paid and _in_range(order.created_at.date(), period_start, period_end)
        ]
        revenue = sum((order.total for order in paid_orders), start=ZERO)
        business = sum(
            (
                expense.amount
                for expense in self._store.expenses()
                if expense.counts_as_business and _in_range(expense.incurred_on, period_start, period_end)
            ),
            start=ZERO,
        )
        payroll = sum(
            (
                payment.amount
                for payment in self._store.salary_payments()
                if payment.is_paid and _in_range(payment.date, period_start, period_end)
            ),
            start=ZERO,
        )
        return PeriodTotals(
            total_revenue=revenue,
            business_expense=business,
            payroll_expense=payroll,
            paid_orders_count=len(paid_orders),
        )

    def aggregate_period(self, period: Period) -> PeriodTotals:
        start, end = period.bounds()
        return self.aggregate(start, end)

    def personal_pending(self, period: Period) -> Dict[str, Decimal]:
        start, end = period.bounds()
        return pending_totals(self._store.expenses(), self._roster, start, end)

    def resolve(self, kind: str, today: Optional[date] = None) -> Period:
        """Resolve ``monthly``/``yearly``/``all`` against the current date."""
        if not isinstance(kind, str):
            raise ValidationError("period must be a string")
        today = today or self._clock().date()
        business_start = None
        if kind and kind.strip().lower() not in ("monthly", "yearly"):
            orders = self._store.orders()
            if orders:
                business_start = min(order.created_at for order in orders).date()
        return resolve_period(kind, today, business_start)
