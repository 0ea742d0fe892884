import threading
from datetime import datetime, timedelta, timezone

import pytest

from ledger_core.config import Settings
from ledger_core.context import open_ledger

NOW = datetime(2026, 3, 20, 12, 0, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def roster():
    return Settings().roster


@pytest.fixture
def ledger(tmp_path, roster, clock):
    return open_ledger(tmp_path / "data", roster, clock)


@pytest.fixture
def march(ledger):
    """March 2026: revenue 10,000, business expense 2,000, payroll 1,000.

    Karaya has 500 pending, Richard 4,000 pending, and 1,000 sits in the
    monthly bank savings.
    """
    ledger.orders.add({"total": "6000", "is_paid": True, "created_at": "2026-03-02T09:00:00Z"})
    ledger.orders.add({"total": "4000", "is_paid": True, "created_at": "2026-03-15T16:30:00Z"})
    ledger.orders.add({"total": "999", "is_paid": False, "created_at": "2026-03-10T10:00:00Z"})
    ledger.orders.add({"total": "5000", "is_paid": True, "created_at": "2026-02-10T10:00:00Z"})

    ledger.expenses.add({"title": "Detergent", "amount": "1500", "expense_for": "business", "incurred_on": "2026-03-05"})
    repaid = ledger.expenses.add({"title": "Gas", "amount": "500", "expense_for": "Richard", "incurred_on": "2026-03-07"})
    ledger.expenses.reimburse_batch([repaid.id], "admin")
    karaya = ledger.expenses.add({"title": "Supplies", "amount": "500", "expense_for": "Karaya", "incurred_on": "2026-03-06"})
    richard = ledger.expenses.add({"title": "Dryer part", "amount": "4000", "expense_for": "Richard", "incurred_on": "2026-03-08"})

    ledger.salaries.add({"employee_id": "emp-1", "amount": "1000", "is_paid": True, "date": "2026-03-10"})
    ledger.salaries.add({"employee_id": "emp-2", "amount": "700", "is_paid": False, "date": "2026-03-11"})

    period = ledger.aggregator.resolve("monthly")
    ledger.bank_savings.deposit("1000", period, "admin", "March reserve")
    return {"period": period, "karaya_expense": karaya, "richard_expense": richard, "repaid": repaid}


def run_concurrently(target, count=8):
    """Start ``count`` threads that call ``target(index)`` together.

    Returns the results in thread order; any exception is re-raised.
    """
    barrier = threading.Barrier(count)
    results = [None] * count
    errors = []

    def worker(index):
        barrier.wait()
        try:
            results[index] = target(index)
        except Exception as exc:  # collected and re-raised on the main thread
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(index,)) for index in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    if errors:
        raise errors[0]
    return results


@pytest.fixture
def concurrently():
    return run_concurrently
