"""Reporting periods and the keys they are stored under."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Optional

from .exceptions import ValidationError

__all__ = ["MONTHLY", "YEARLY", "ALL_TIME", "PERIOD_KINDS", "Period", "resolve_period"]

MONTHLY = "monthly"
YEARLY = "yearly"
ALL_TIME = "all"
PERIOD_KINDS = {MONTHLY, YEARLY, ALL_TIME}


@dataclass(frozen=True)
class Period:
    kind: str
    start: date
    end: date

    @property
    def period_type(self) -> str:
        # All-time activity is stored under the custom type.
        return "custom" if self.kind == ALL_TIME else self.kind

    @property
    def is_all_time(self) -> bool:
        return self.kind == ALL_TIME

    @property
    def key(self) -> tuple:
        return (self.period_type, self.start, self.end)

    @property
    def label(self) -> str:
        if self.kind == MONTHLY:
            return self.start.strftime("%B %Y")
        if self.kind == YEARLY:
            return self.start.strftime("%Y")
        return "All Time"

    def bounds(self) -> tuple:
        """Filter bounds for aggregation; all-time applies no filter."""
        if self.is_all_time:
            return (None, None)
        return (self.start, self.end)

    def ledger_stamp(self, today: date) -> "Period":
        """Period under which a single reserve transaction is recorded.

        All-time transactions keep their own date as both bounds so each one
        stays a separate row.
        """
        if self.is_all_time:
            return Period(ALL_TIME, today, today)
        return self

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "period_type": self.period_type,
            "period_start": self.start.isoformat(),
            "period_end": self.end.isoformat(),
            "label": self.label,
        }


def resolve_period(kind: str, today: date, business_start: Optional[date] = None) -> Period:
    """Build the current monthly/yearly window, or all time from ``business_start``."""
    kind = (kind or "").strip().lower()
    if kind == MONTHLY:
        last_day = calendar.monthrange(today.year, today.month)[1]
        return Period(MONTHLY, today.replace(day=1), today.replace(day=last_day))
    if kind == YEARLY:
        return Period(YEARLY, date(today.year, 1, 1), date(today.year, 12, 31))
    if kind in (ALL_TIME, "custom", "all-time"):
        start = business_start if business_start and business_start <= today else today
        return Period(ALL_TIME, start, today)
    raise ValidationError(f"period must be one of: {', '.join(sorted(PERIOD_KINDS))}")
