"""Persistence utilities for the ledger core services."""

from __future__ import annotations

import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, TypeVar

from .exceptions import ConflictError, RecordNotFoundError, StoreUnavailable
from .models import (
    STATUS_PENDING,
    STATUS_REIMBURSED,
    BankSavingsEntry,
    DistributionRecord,
    Expense,
    Order,
    SalaryPayment,
    distribution_key,
)

logger = logging.getLogger("ledger.storage")

T = TypeVar("T")

_LOCKS: Dict[Path, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(path)
        if lock is None:
            lock = _LOCKS[path] = threading.RLock()
        return lock


class JSONStorage:
    """Simple file-based JSON storage with crash-safe writes."""

    def __init__(self, base_path: Path) -> None:
        self._base_path = Path(base_path)
        try:
            self._base_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StoreUnavailable(f"Unable to create data directory {self._base_path}") from exc

    def load(self, resource: str) -> List[Dict[str, Any]]:
        path = self._base_path / resource
        if not path.exists():
            return []
        try:
            with path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except json.JSONDecodeError as exc:
            raise StoreUnavailable(f"Corrupted JSON data in {path}") from exc
        except OSError as exc:
            raise StoreUnavailable(f"Unable to read from {path}") from exc

        if not isinstance(payload, list):
            raise StoreUnavailable(f"Expected list payload in {path}")
        return payload

    def save(self, resource: str, records: Iterable[Dict[str, Any]]) -> None:
        path = self._base_path / resource
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            with temp_path.open("w", encoding="utf-8") as handle:
                json.dump(list(records), handle, indent=2)
                handle.flush()
            # Atomic move on POSIX: readers see the old file or the new one.
            temp_path.replace(path)
        except OSError as exc:
            raise StoreUnavailable(f"Unable to write to {path}") from exc

    @contextmanager
    def transaction(self, *resources: str) -> Iterator["JSONStorage"]:
        """Serialise read-modify-write cycles on the given resources."""
        locks = [_lock_for((self._base_path / name).resolve()) for name in sorted(set(resources))]
        for lock in locks:
            lock.acquire()
        try:
            yield self
        finally:
            for lock in reversed(locks):
                lock.release()

    @property
    def base_path(self) -> Path:
        return self._base_path


class LedgerStore:
    """Table-level access to orders, expenses, payroll, reserve and distributions.

    Every call reads from disk; nothing is cached between calls.
    """

    ORDERS = "orders.json"
    EXPENSES = "expenses.json"
    SALARY_PAYMENTS = "salary_payments.json"
    BANK_SAVINGS = "bank_savings.json"
    DISTRIBUTIONS = "distributions.json"

    def __init__(self, storage: JSONStorage) -> None:
        self._storage = storage

    @property
    def storage(self) -> JSONStorage:
        return self._storage

    # Reads ----------------------------------------------------------------
    def orders(self) -> List[Order]:
        return self._read(self.ORDERS, Order.from_dict)

    def expenses(self) -> List[Expense]:
        return self._read(self.EXPENSES, Expense.from_dict)

    def salary_payments(self) -> List[SalaryPayment]:
        return self._read(self.SALARY_PAYMENTS, SalaryPayment.from_dict)

    def bank_savings(self) -> List[BankSavingsEntry]:
        return self._read(self.BANK_SAVINGS, BankSavingsEntry.from_dict)

    def distributions(self) -> List[DistributionRecord]:
        return self._read(self.DISTRIBUTIONS, DistributionRecord.from_dict)

    # Writes ---------------------------------------------------------------
    def add_order(self, order: Order) -> Order:
        return self._insert(self.ORDERS, order)

    def replace_order(self, order: Order) -> Order:
        return self._replace(self.ORDERS, order)

    def add_expense(self, expense: Expense) -> Expense:
        return self._insert(self.EXPENSES, expense)

    def delete_expense(
        self, expense_id: str, *, check: Optional[Callable[[Expense], None]] = None,
    ) -> Expense:
        """Remove an expense and return the row as it was when deleted.

        ``check`` sees the current row inside the transaction and may raise to
        abort.
        """
        with self._storage.transaction(self.EXPENSES):
            rows = self._storage.load(self.EXPENSES)
            for index, row in enumerate(rows):
                if row["id"] == expense_id:
                    break
            else:
                raise RecordNotFoundError(f"Expense {expense_id} not found")
            expense = Expense.from_dict(rows[index])
            if check is not None:
                check(expense)
            del rows[index]
            self._storage.save(self.EXPENSES, rows)
        return expense

    def add_salary_payment(self, payment: SalaryPayment) -> SalaryPayment:
        return self._insert(self.SALARY_PAYMENTS, payment)

    def replace_salary_payment(self, payment: SalaryPayment) -> SalaryPayment:
        return self._replace(self.SALARY_PAYMENTS, payment)

    def insert_bank_savings(self, entry: BankSavingsEntry) -> BankSavingsEntry:
        """Append one reserve line. Existing lines are never rewritten."""
        return self._insert(self.BANK_SAVINGS, entry)

    def insert_distribution(self, record: DistributionRecord) -> DistributionRecord:
        """Insert a distribution, enforcing the natural-key unique constraint."""
        with self._storage.transaction(self.DISTRIBUTIONS):
            rows = self._storage.load(self.DISTRIBUTIONS)
            key = record.natural_key
            if any(DistributionRecord.from_dict(row).natural_key == key for row in rows):
                raise ConflictError(
                    f"Distribution for {record.owner_name} ({record.period_type} "
                    f"{record.period_start}..{record.period_end}) already exists"
                )
            rows.append(record.to_dict())
            self._storage.save(self.DISTRIBUTIONS, rows)
        return record

    def upsert_distribution(
        self,
        owner_name: str,
        period_type: str,
        period_start,
        period_end,
        *,
        create: Callable[[], DistributionRecord],
        update: Callable[[DistributionRecord], DistributionRecord],
    ) -> Tuple[DistributionRecord, bool]:
        """Atomically update the row for the natural key, or insert ``create()``.

        Returns the stored record and whether it was newly inserted.
        """
        key = distribution_key(owner_name, period_type, period_start, period_end)
        with self._storage.transaction(self.DISTRIBUTIONS):
            rows = self._storage.load(self.DISTRIBUTIONS)
            for index, row in enumerate(rows):
                existing = DistributionRecord.from_dict(row)
                if existing.natural_key != key:
                    continue
                updated = update(existing)
                if updated != existing:
                    rows[index] = updated.to_dict()
                    self._storage.save(self.DISTRIBUTIONS, rows)
                return updated, False
            created = create()
            if created.natural_key != key:
                raise ConflictError("Created distribution does not match the requested key")
            rows.append(created.to_dict())
            self._storage.save(self.DISTRIBUTIONS, rows)
            return created, True

    def mark_reimbursed(
        self, expense_ids: Sequence[str], actor: str, at: datetime,
        *, check: Optional[Callable[[List[Expense]], None]] = None,
    ) -> Tuple[List[Expense], List[str]]:
        """Flip every still-pending expense in ``expense_ids`` to reimbursed.

        ``check`` sees the current rows inside the transaction and may raise to
        abort. Rows already reimbursed are left untouched and reported as
        skipped. The whole batch is written with a single save.
        """
        wanted = list(dict.fromkeys(expense_ids))
        with self._storage.transaction(self.EXPENSES):
            rows = self._storage.load(self.EXPENSES)
            by_id = {row["id"]: index for index, row in enumerate(rows)}
            missing = [expense_id for expense_id in wanted if expense_id not in by_id]
            if missing:
                raise RecordNotFoundError(f"Expenses not found: {', '.join(missing)}")

            current = [Expense.from_dict(rows[by_id[expense_id]]) for expense_id in wanted]
            if check is not None:
                check(current)

            updated: List[Expense] = []
            skipped: List[str] = []
            for expense in current:
                if expense.reimbursement_status != STATUS_PENDING:
                    skipped.append(expense.id)
                    continue
                flipped = replace(
                    expense,
                    reimbursement_status=STATUS_REIMBURSED,
                    reimbursed_at=at,
                    reimbursed_by=actor,
                )
                rows[by_id[expense.id]] = flipped.to_dict()
                updated.append(flipped)

            if updated:
                self._storage.save(self.EXPENSES, rows)
        return updated, skipped

    # Internal helpers -----------------------------------------------------
    def _read(self, resource: str, factory: Callable[[Dict[str, Any]], T]) -> List[T]:
        try:
            return [factory(row) for row in self._storage.load(resource)]
        except (KeyError, ValueError, ArithmeticError) as exc:
            raise StoreUnavailable(f"Malformed record in {resource}") from exc

    def _insert(self, resource: str, record: T) -> T:
        with self._storage.transaction(resource):
            rows = self._storage.load(resource)
            if any(row.get("id") == record.id for row in rows):
                raise ConflictError(f"Record {record.id} already exists in {resource}")
            rows.append(record.to_dict())
            self._storage.save(resource, rows)
        logger.debug("Inserted %s into %s", record.id, resource)
        return record

    def _replace(self, resource: str, record: T) -> T:
        with self._storage.transaction(resource):
            rows = self._storage.load(resource)
            for index, row in enumerate(rows):
                if row.get("id") == record.id:
                    rows[index] = record.to_dict()
                    self._storage.save(resource, rows)
                    return record
        raise RecordNotFoundError(f"Record {record.id} not found in {resource}")
