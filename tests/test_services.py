from datetime import date
from decimal import Decimal

import pytest

from ledger_core.exceptions import RecordNotFoundError, StoreUnavailable, ValidationError
from ledger_core.models import STATUS_NONE, STATUS_PENDING, STATUS_REIMBURSED
from ledger_core.periods import Period, resolve_period


class TestExpenseIntake:
    def test_business_expense_never_enters_reimbursement(self, ledger):
        expense = ledger.expenses.add({"title": "Rent", "amount": "1200", "expense_for": "Business"})
        assert expense.expense_for == "business"
        assert expense.reimbursement_status == STATUS_NONE
        assert expense.incurred_on == date(2026, 3, 20)

    def test_personal_expense_starts_pending(self, ledger):
        expense = ledger.expenses.add({"title": "Gas", "amount": "80.555", "expense_for": "karaya"})
        assert expense.expense_for == "Karaya"
        assert expense.reimbursement_status == STATUS_PENDING
        assert expense.amount == Decimal("80.56")

    def test_unknown_owner_rejected(self, ledger):
        with pytest.raises(ValidationError, match="expense_for"):
            ledger.expenses.add({"title": "Gas", "amount": "80", "expense_for": "Mallory"})

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", None])
    def test_non_positive_or_invalid_amount_rejected(self, ledger, amount):
        with pytest.raises(ValidationError, match="amount"):
            ledger.expenses.add({"title": "Gas", "amount": amount, "expense_for": "Karaya"})

    def test_list_filters_by_status_and_owner(self, ledger, march):
        pending = ledger.expenses.list(status="pending")
        assert {expense.expense_for for expense in pending} == {"Karaya", "Richard"}
        richard = ledger.expenses.list(expense_for="Richard")
        assert {expense.reimbursement_status for expense in richard} == {STATUS_PENDING, STATUS_REIMBURSED}
        assert ledger.expenses.total(expense_for="Richard") == Decimal("4500.00")


class TestReimbursement:
    def _three_for_karaya(self, ledger):
        return [
            ledger.expenses.add({"title": title, "amount": amount, "expense_for": "Karaya", "incurred_on": "2026-03-12"})
            for title, amount in (("Soap", "200"), ("Bags", "250"), ("Fuel", "300"))
        ]

    def test_batch_moves_cost_to_business(self, ledger):
        expenses = self._three_for_karaya(ledger)
        before = ledger.aggregator.aggregate(date(2026, 3, 1), date(2026, 3, 31))
        assert before.business_expense == Decimal("0")
        assert ledger.expenses.pending_by_owner()["Karaya"] == Decimal("750")

        result = ledger.expenses.reimburse_batch([e.id for e in expenses], "admin")

        assert result.owner == "Karaya"
        assert result.total == Decimal("750")
        after = ledger.aggregator.aggregate(date(2026, 3, 1), date(2026, 3, 31))
        assert after.business_expense == Decimal("750")
        assert ledger.expenses.pending_by_owner()["Karaya"] == Decimal("0")
        stored = ledger.expenses.get(expenses[0].id)
        assert stored.reimbursement_status == STATUS_REIMBURSED
        assert stored.reimbursed_by == "admin"
        assert stored.expense_for == "Karaya"

    def test_rerun_is_a_no_op(self, ledger, clock):
        expenses = self._three_for_karaya(ledger)
        ids = [e.id for e in expenses]
        ledger.expenses.reimburse_batch(ids, "admin")
        first_stamp = ledger.expenses.get(ids[0]).reimbursed_at

        clock.advance(days=1)
        result = ledger.expenses.reimburse_batch(ids, "someone-else")

        assert result.reimbursed == []
        assert result.skipped_ids == ids
        assert ledger.expenses.get(ids[0]).reimbursed_at == first_stamp
        assert ledger.expenses.get(ids[0]).reimbursed_by == "admin"

    def test_concurrent_batches_flip_each_row_once(self, ledger, clock, concurrently):
        ids = [e.id for e in self._three_for_karaya(ledger)]

        def reimburse(index):
            clock.advance(minutes=1)
            return ledger.expenses.reimburse_batch(ids, f"admin-{index}")

        results = concurrently(reimburse)

        winners = [result for result in results if result.reimbursed]
        assert len(winners) == 1
        assert [e.id for e in winners[0].reimbursed] == ids
        assert all(result.skipped_ids == ids for result in results if result is not winners[0])
        for expense in winners[0].reimbursed:
            stored = ledger.expenses.get(expense.id)
            assert stored.reimbursed_by == expense.reimbursed_by
            assert stored.reimbursed_at == expense.reimbursed_at

    def test_mixed_owner_batch_rejected_without_changes(self, ledger):
        karaya = ledger.expenses.add({"title": "Soap", "amount": "10", "expense_for": "Karaya"})
        richard = ledger.expenses.add({"title": "Fuel", "amount": "20", "expense_for": "Richard"})
        with pytest.raises(ValidationError, match="one owner"):
            ledger.expenses.reimburse_batch([karaya.id, richard.id], "admin")
        assert ledger.expenses.get(karaya.id).reimbursement_status == STATUS_PENDING

    def test_business_expense_cannot_be_reimbursed(self, ledger):
        rent = ledger.expenses.add({"title": "Rent", "amount": "10", "expense_for": "business"})
        with pytest.raises(ValidationError):
            ledger.expenses.reimburse_batch([rent.id], "admin")

    def test_unknown_id_rejected(self, ledger):
        with pytest.raises(RecordNotFoundError):
            ledger.expenses.reimburse_batch(["nope"], "admin")

    def test_actor_and_ids_required(self, ledger):
        with pytest.raises(ValidationError):
            ledger.expenses.reimburse_batch([], "admin")
        with pytest.raises(ValidationError):
            ledger.expenses.reimburse_batch(["x"], "")

    def test_store_failure_names_the_batch(self, ledger, monkeypatch):
        expense = ledger.expenses.add({"title": "Soap", "amount": "10", "expense_for": "Karaya"})

        def failing_save(resource, records):
            raise StoreUnavailable("disk full")

        monkeypatch.setattr(ledger.store.storage, "save", failing_save)
        with pytest.raises(StoreUnavailable, match=expense.id):
            ledger.expenses.reimburse_batch([expense.id], "admin")


class TestExpenseDeletion:
    def test_reimbursed_expense_needs_confirmation(self, ledger):
        expense = ledger.expenses.add({"title": "Soap", "amount": "10", "expense_for": "Karaya"})
        ledger.expenses.reimburse_batch([expense.id], "admin")
        with pytest.raises(ValidationError, match="confirmation"):
            ledger.expenses.delete(expense.id)
        ledger.expenses.delete(expense.id, confirm=True)
        with pytest.raises(RecordNotFoundError):
            ledger.expenses.get(expense.id)

    def test_reimbursement_landing_mid_delete_still_needs_confirm(self, ledger, monkeypatch):
        expense = ledger.expenses.add({"title": "Soap", "amount": "10", "expense_for": "Karaya"})
        real_delete = ledger.store.delete_expense

        def reimburse_then_delete(expense_id, **kwargs):
            ledger.expenses.reimburse_batch([expense_id], "admin")
            return real_delete(expense_id, **kwargs)

        monkeypatch.setattr(ledger.store, "delete_expense", reimburse_then_delete)
        with pytest.raises(ValidationError, match="confirmation"):
            ledger.expenses.delete(expense.id)
        assert ledger.expenses.get(expense.id).is_reimbursed

    def test_pending_expense_deletes_directly(self, ledger):
        expense = ledger.expenses.add({"title": "Soap", "amount": "10", "expense_for": "Karaya"})
        ledger.expenses.delete(expense.id)
        assert ledger.expenses.list() == []


class TestPeriodAggregator:
    def test_march_totals(self, ledger, march):
        totals = ledger.aggregator.aggregate_period(march["period"])
        assert totals.total_revenue == Decimal("10000")
        assert totals.business_expense == Decimal("2000")
        assert totals.payroll_expense == Decimal("1000")
        assert totals.total_expense == Decimal("3000")
        assert totals.net_income == Decimal("7000")
        assert totals.paid_orders_count == 2

    def test_pending_personal_expenses_never_count(self, ledger, march):
        totals = ledger.aggregator.aggregate_period(march["period"])
        pending = sum(ledger.aggregator.personal_pending(march["period"]).values())
        assert pending == Decimal("4500")
        assert totals.total_expense == totals.business_expense + totals.payroll_expense
        assert totals.net_income == totals.total_revenue - totals.total_expense

    def test_all_time_includes_earlier_orders(self, ledger, march):
        period = ledger.aggregator.resolve("all")
        assert period.start == date(2026, 2, 10)
        assert period.period_type == "custom"
        assert ledger.aggregator.aggregate_period(period).total_revenue == Decimal("15000")

    def test_loss_is_a_valid_state(self, ledger):
        ledger.expenses.add({"title": "Rent", "amount": "500", "expense_for": "business"})
        assert ledger.aggregator.aggregate().net_income == Decimal("-500")

    def test_paying_an_order_adds_revenue(self, ledger):
        order = ledger.orders.add({"total": "300", "created_at": "2026-03-03T08:00:00Z"})
        assert ledger.aggregator.aggregate().total_revenue == Decimal("0")
        ledger.orders.mark_paid(order.id)
        assert ledger.aggregator.aggregate().total_revenue == Decimal("300")

    def test_unpaid_salary_excluded_until_paid(self, ledger):
        payment = ledger.salaries.add({"employee_id": "emp-9", "amount": "450", "date": "2026-03-04"})
        assert ledger.aggregator.aggregate().payroll_expense == Decimal("0")
        ledger.salaries.mark_paid(payment.id)
        assert ledger.aggregator.aggregate().payroll_expense == Decimal("450")


class TestPeriods:
    def test_monthly_window(self):
        period = resolve_period("monthly", date(2024, 2, 14))
        assert (period.start, period.end) == (date(2024, 2, 1), date(2024, 2, 29))
        assert period.label == "February 2024"

    def test_yearly_window(self):
        period = resolve_period("yearly", date(2026, 7, 1))
        assert (period.start, period.end, period.label) == (date(2026, 1, 1), date(2026, 12, 31), "2026")

    def test_all_time_without_orders_starts_today(self):
        period = resolve_period("all", date(2026, 3, 20))
        assert period == Period("all", date(2026, 3, 20), date(2026, 3, 20))
        assert period.bounds() == (None, None)
        assert period.label == "All Time"

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            resolve_period("weekly", date(2026, 3, 20))
