"""Bank savings reserve, owner distribution and claim recording."""

from __future__ import annotations

import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

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
    Owner,
    OwnerShare,
    PeriodTotals,
    distribution_key,
    format_money,
)
from .periods import MONTHLY, YEARLY, Period
from .services import Clock, PeriodAggregator, utcnow
from .storage import LedgerStore
from .validators import parse_positive_decimal, validate_actor, validate_optional_str, validate_required_str

logger = logging.getLogger("ledger.distribution")

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class BankSavingsLedger:
    """Append-only reserve ledger; a period's balance is always a sum of lines."""

    def __init__(self, store: LedgerStore, clock: Optional[Clock] = None) -> None:
        self._store = store
        self._clock = clock or utcnow

    def deposit(self, amount: object, period: Period, actor: object, note: Optional[str] = None) -> BankSavingsEntry:
        value = parse_positive_decimal(amount, "amount")
        entry = self._append(value, period, validate_actor(actor), validate_optional_str(note, "note", 200))
        logger.info("Bank savings deposit %s for %s by %s", value, period.label, entry.created_by)
        return entry

    def withdraw(self, amount: object, period: Period, reason: object, actor: object) -> BankSavingsEntry:
        value = parse_positive_decimal(amount, "amount")
        note = validate_required_str(reason, "reason", 200)
        entry = self._append(-value, period, validate_actor(actor), note)
        logger.info("Bank savings withdrawal %s for %s by %s: %s", value, period.label, entry.created_by, note)
        return entry

    def balance_for(self, period: Period) -> Decimal:
        """Sum of every line filed under the period's key.

        All-time lines carry their own transaction date, so the all-time
        balance is the sum of every ``custom`` line.
        """
        entries = self._store.bank_savings()
        if period.is_all_time:
            matching = (entry for entry in entries if entry.period_type == "custom")
        else:
            matching = (
                entry
                for entry in entries
                if (entry.period_type, entry.period_start, entry.period_end) == period.key
            )
        return sum((entry.amount for entry in matching), start=ZERO)

    def history(self) -> List[BankSavingsEntry]:
        return sorted(self._store.bank_savings(), key=lambda entry: entry.created_at, reverse=True)

    def grouped_history(self, granularity: str) -> List[Dict[str, Any]]:
        """Group every line by the month or year of its period start, newest first."""
        if granularity not in (MONTHLY, YEARLY):
            raise ValidationError("group must be one of: monthly, yearly")
        key_format, label_format = ("%Y-%m", "%B %Y") if granularity == MONTHLY else ("%Y", "%Y")
        groups: Dict[str, List[BankSavingsEntry]] = {}
        for entry in self.history():
            groups.setdefault(entry.period_start.strftime(key_format), []).append(entry)
        return [
            {
                "key": key,
                "label": groups[key][0].period_start.strftime(label_format),
                "entries": groups[key],
                "total": sum((entry.amount for entry in groups[key]), start=ZERO),
            }
            for key in sorted(groups, reverse=True)
        ]

    def _append(self, amount: Decimal, period: Period, actor: str, note: Optional[str]) -> BankSavingsEntry:
        now = self._clock()
        stamp = period.ledger_stamp(now.date())
        entry = BankSavingsEntry(
            id=str(uuid4()),
            period_type=stamp.period_type,
            period_start=stamp.start,
            period_end=stamp.end,
            amount=amount,
            notes=note,
            created_by=actor,
            created_at=now,
        )
        return self._store.insert_bank_savings(entry)


def compute_distribution(
    period: Period,
    selected_owners: Iterable[str],
    totals: PeriodTotals,
    bank_balance: Decimal,
    personal_pending_by_owner: Mapping[str, Decimal],
    roster: Sequence[Owner],
    existing_records: Iterable[DistributionRecord] = (),
) -> DistributionSummary:
    """Split net income equally among the selected, eligible owners.

    Gross shares are taken from net income; the bank savings balance only
    lowers the reported ``available_for_distribution`` figure.
    """
    wanted = set(selected_owners)
    selected = [owner.name for owner in roster if owner.eligible and owner.name in wanted]
    count = len(selected)
    net_income = totals.net_income
    share_amount = net_income / count if count else ZERO
    percentage = HUNDRED / count if count else ZERO

    by_key = {record.natural_key: record for record in existing_records}

    shares: List[OwnerShare] = []
    for owner in roster:
        is_selected = owner.name in selected
        personal = personal_pending_by_owner.get(owner.name, ZERO)
        record = by_key.get(distribution_key(owner.name, period.period_type, period.start, period.end))
        shares.append(
            OwnerShare(
                name=owner.name,
                share=share_amount if is_selected else ZERO,
                percentage=percentage if is_selected else ZERO,
                personal_expenses=personal,
                net_share=share_amount - personal if is_selected else ZERO,
                is_selected=is_selected,
                is_disabled=not owner.eligible,
                is_claimed=bool(record and record.is_claimed),
                claimed_at=record.claimed_at if record else None,
                distribution_id=record.id if record else None,
            )
        )

    return DistributionSummary(
        period_label=period.label,
        totals=totals,
        total_personal_expenses=sum(personal_pending_by_owner.values(), ZERO),
        bank_savings=bank_balance,
        shares=shares,
    )


class ClaimService:
    """Records owners' claims on their share, one record per owner and period."""

    def __init__(
        self,
        store: LedgerStore,
        aggregator: PeriodAggregator,
        ledger: BankSavingsLedger,
        roster: Sequence[Owner],
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._ledger = ledger
        self._roster = list(roster)
        self._clock = clock or utcnow

    def summary(self, period: Period, selected_owners: Iterable[str]) -> DistributionSummary:
        return compute_distribution(
            period,
            selected_owners,
            self._aggregator.aggregate_period(period),
            self._ledger.balance_for(period),
            self._aggregator.personal_pending(period),
            self._roster,
            self._store.distributions(),
        )

    def records(self, period: Optional[Period] = None) -> List[DistributionRecord]:
        records = self._store.distributions()
        if period is not None:
            records = [record for record in records if _matches_period(record, period)]
        return sorted(records, key=lambda record: (record.period_start, record.owner_name))

    def claim(self, owner: str, period: Period, selected_owners: Iterable[str], actor: object) -> DistributionRecord:
        record, _ = self._claim(owner, period, selected_owners, actor)
        return record

    def claim_and_withdraw(
        self, owner: str, period: Period, selected_owners: Iterable[str], actor: object,
        note: Optional[str] = None,
    ) -> Tuple[DistributionRecord, Optional[BankSavingsEntry]]:
        """Claim, then draw the net share down from the reserve.

        A claim that was already recorded is not withdrawn a second time. If
        the withdrawal fails after the claim landed, the two are left
        inconsistent and :class:`PartialApplicationWarning` is raised.
        """
        record, newly_claimed = self._claim(owner, period, selected_owners, actor)
        if not newly_claimed:
            return record, None
        reason = note or f"Claim by {record.owner_name} for {period.label}"
        try:
            entry = self._ledger.withdraw(record.net_share, period, reason, actor)
        except (StoreUnavailable, ValidationError, ConflictError) as exc:
            logger.warning(
                "Claim %s for %s recorded but reserve withdrawal of %s failed: %s",
                record.id, record.owner_name, format_money(record.net_share), exc,
            )
            raise PartialApplicationWarning(
                f"Claim for {record.owner_name} ({period.label}) was recorded "
                f"but the bank savings withdrawal failed",
                record=record,
                cause=exc,
            ) from exc
        return record, entry

    def claim_statistics(self, period: Optional[Period] = None) -> Dict[str, Any]:
        records = self.records(period)
        claimed = [record for record in records if record.is_claimed]
        unclaimed = [record for record in records if not record.is_claimed]
        claimed_amount = sum((record.net_share for record in claimed), start=ZERO)
        unclaimed_amount = sum((record.net_share for record in unclaimed), start=ZERO)
        return {
            "total_claimed": len(claimed),
            "total_unclaimed": len(unclaimed),
            "total_claimed_amount": claimed_amount,
            "total_unclaimed_amount": unclaimed_amount,
            "total_amount": claimed_amount + unclaimed_amount,
        }

    def _claim(
        self, owner: str, period: Period, selected_owners: Iterable[str], actor: object,
    ) -> Tuple[DistributionRecord, bool]:
        actor_id = validate_actor(actor)
        roster_entry = self._owner(owner)
        if not roster_entry.eligible:
            raise ValidationError(f"{roster_entry.name} is not eligible for distributions")

        summary = self.summary(period, selected_owners)
        share = summary.share_for(roster_entry.name)
        if share is None or not share.is_selected:
            raise ValidationError(f"{roster_entry.name} is not selected for this distribution")
        if not share.is_claimed and share.net_share <= 0:
            raise ValidationError(
                f"Nothing to claim for {roster_entry.name}: net share is {format_money(share.net_share)}"
            )

        now = self._clock()
        claimed_now = []

        def create() -> DistributionRecord:
            claimed_now.append(True)
            return DistributionRecord(
                id=str(uuid4()),
                owner_name=roster_entry.name,
                period_type=period.period_type,
                period_start=period.start,
                period_end=period.end,
                share_amount=share.share,
                personal_expenses=share.personal_expenses,
                net_share=share.net_share,
                net_income=summary.net_income,
                total_revenue=summary.totals.total_revenue,
                total_expenses=summary.totals.total_expense,
                is_claimed=True,
                claimed_at=now,
                claimed_by=actor_id,
                created_at=now,
                updated_at=now,
            )

        def update(existing: DistributionRecord) -> DistributionRecord:
            if existing.is_claimed:
                return existing
            claimed_now.append(True)
            return replace(existing, is_claimed=True, claimed_at=now, claimed_by=actor_id, updated_at=now)

        record, created = self._store.upsert_distribution(
            roster_entry.name, period.period_type, period.start, period.end,
            create=create, update=update,
        )
        if claimed_now:
            logger.info(
                "%s distribution %s for %s (%s) claimed by %s: net share %s",
                "Created" if created else "Updated",
                record.id, record.owner_name, period.label, actor_id, format_money(record.net_share),
            )
        else:
            logger.info("Distribution %s for %s already claimed", record.id, record.owner_name)
        return record, bool(claimed_now)

    def _owner(self, name: str) -> Owner:
        for owner in self._roster:
            if owner.name.lower() == str(name).strip().lower():
                return owner
        raise RecordNotFoundError(f"Owner {name} is not on the roster")


def _matches_period(record: DistributionRecord, period: Period) -> bool:
    if period.is_all_time:
        return record.period_type == "custom"
    return (record.period_type, record.period_start, record.period_end) == period.key
