from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ledger_core.exceptions import ConflictError, RecordNotFoundError, StoreUnavailable
from ledger_core.models import STATUS_PENDING, DistributionRecord, Expense
from ledger_core.storage import JSONStorage, LedgerStore

NOW = datetime(2026, 3, 20, 12, 0, 0, tzinfo=timezone.utc)


def _record(owner="Karaya", period_type="monthly", start=date(2026, 3, 1), end=date(2026, 3, 31), claimed=False):
    return DistributionRecord(
        id=f"{owner}-{period_type}-{start}",
        owner_name=owner,
        period_type=period_type,
        period_start=start,
        period_end=end,
        share_amount=Decimal("3500"),
        personal_expenses=Decimal("500"),
        net_share=Decimal("3000"),
        created_at=NOW,
        updated_at=NOW,
        is_claimed=claimed,
    )


def _pending(expense_id, owner="Karaya"):
    return Expense(
        id=expense_id,
        title="Supplies",
        amount=Decimal("250.00"),
        expense_for=owner,
        reimbursement_status=STATUS_PENDING,
        incurred_on=date(2026, 3, 6),
        recorded_at=NOW,
    )


@pytest.fixture
def store(tmp_path):
    return LedgerStore(JSONStorage(tmp_path))


def test_missing_resource_loads_empty(tmp_path):
    assert JSONStorage(tmp_path).load("orders.json") == []


def test_corrupted_resource_raises_store_unavailable(tmp_path):
    (tmp_path / "orders.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreUnavailable):
        JSONStorage(tmp_path).load("orders.json")


def test_non_list_payload_raises_store_unavailable(tmp_path):
    (tmp_path / "orders.json").write_text('{"id": 1}', encoding="utf-8")
    with pytest.raises(StoreUnavailable):
        JSONStorage(tmp_path).load("orders.json")


def test_insert_distribution_enforces_natural_key(store):
    store.insert_distribution(_record())
    duplicate = replace(_record(), id="other-id")
    with pytest.raises(ConflictError):
        store.insert_distribution(duplicate)
    assert len(store.distributions()) == 1


def test_custom_distributions_collapse_per_owner(store):
    store.insert_distribution(_record(period_type="custom", start=date(2025, 1, 4), end=date(2026, 3, 1)))
    later = _record(period_type="custom", start=date(2025, 1, 4), end=date(2026, 3, 20))
    later = replace(later, id="later")
    with pytest.raises(ConflictError):
        store.insert_distribution(later)


def test_upsert_updates_existing_row_in_place(store):
    store.insert_distribution(_record())

    def update(existing):
        return replace(existing, is_claimed=True)

    record, created = store.upsert_distribution(
        "Karaya", "monthly", date(2026, 3, 1), date(2026, 3, 31),
        create=lambda: pytest.fail("should not insert"), update=update,
    )
    assert created is False
    assert record.is_claimed is True
    assert [r.is_claimed for r in store.distributions()] == [True]


def test_upsert_inserts_when_key_missing(store):
    record, created = store.upsert_distribution(
        "Karaya", "monthly", date(2026, 3, 1), date(2026, 3, 31),
        create=lambda: _record(claimed=True), update=lambda existing: existing,
    )
    assert created is True
    assert store.distributions() == [record]


def test_mark_reimbursed_is_all_or_nothing(store, monkeypatch):
    store.add_expense(_pending("a"))
    store.add_expense(_pending("b"))

    def failing_save(resource, records):
        raise StoreUnavailable("disk full")

    monkeypatch.setattr(store.storage, "save", failing_save)
    with pytest.raises(StoreUnavailable):
        store.mark_reimbursed(["a", "b"], "admin", NOW)
    monkeypatch.undo()

    assert {expense.reimbursement_status for expense in store.expenses()} == {STATUS_PENDING}


def test_mark_reimbursed_reports_missing_ids(store):
    store.add_expense(_pending("a"))
    with pytest.raises(RecordNotFoundError):
        store.mark_reimbursed(["a", "ghost"], "admin", NOW)
    assert store.expenses()[0].reimbursement_status == STATUS_PENDING


def test_bank_savings_inserts_append(store):
    from ledger_core.models import BankSavingsEntry

    for index, amount in enumerate(["100", "-40"]):
        store.insert_bank_savings(
            BankSavingsEntry(
                id=str(index),
                period_type="monthly",
                period_start=date(2026, 3, 1),
                period_end=date(2026, 3, 31),
                amount=Decimal(amount),
                created_at=NOW,
            )
        )
    assert [entry.amount for entry in store.bank_savings()] == [Decimal("100"), Decimal("-40")]


def test_malformed_row_raises_store_unavailable(tmp_path):
    (tmp_path / "orders.json").write_text('[{"id": "x"}]', encoding="utf-8")
    with pytest.raises(StoreUnavailable):
        LedgerStore(JSONStorage(tmp_path)).orders()
