"""Wires the store and services together for one data directory."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .distribution import BankSavingsLedger, ClaimService
from .models import Owner
from .services import Clock, ExpenseService, OrderService, PeriodAggregator, SalaryPaymentService
from .storage import JSONStorage, LedgerStore


@dataclass
class LedgerContext:
    store: LedgerStore
    roster: List[Owner]
    orders: OrderService
    salaries: SalaryPaymentService
    expenses: ExpenseService
    aggregator: PeriodAggregator
    bank_savings: BankSavingsLedger
    claims: ClaimService

    @property
    def eligible_owners(self) -> List[str]:
        return [owner.name for owner in self.roster if owner.eligible]


def open_ledger(data_dir: Path, roster: Sequence[Owner], clock: Optional[Clock] = None) -> LedgerContext:
    store = LedgerStore(JSONStorage(Path(data_dir)))
    roster = list(roster)
    aggregator = PeriodAggregator(store, roster, clock)
    bank_savings = BankSavingsLedger(store, clock)
    return LedgerContext(
        store=store,
        roster=roster,
        orders=OrderService(store, clock),
        salaries=SalaryPaymentService(store, clock),
        expenses=ExpenseService(store, roster, clock),
        aggregator=aggregator,
        bank_savings=bank_savings,
        claims=ClaimService(store, aggregator, bank_savings, roster, clock),
    )
