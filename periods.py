from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: Optional[date]
    end: Optional[date]

    def contains(self, day: date) -> bool:
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    first = day.replace(day=1)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def add_months(day: date, count: int) -> date:
    total = day.year * 12 + (day.month - 1) + count
    return date(total // 12, total % 12 + 1, 1)


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def period_start(period: Optional[str], *, today: Optional[date] = None) -> Optional[date]:
    """First day counted by a ``"month"`` or ``"year"`` scope; ``None`` means all time."""
    today = today or date.today()
    if period == "month":
        return month_start(today)
    if period == "year":
        return today.replace(month=1, day=1)
    return None


def resolve_period(period: Optional[str], *, today: Optional[date] = None) -> Period:
    today = today or date.today()
    start = period_start(period, today=today)
    if start is None:
        return Period("all", None, None)
    return Period(period or "all", start, None)


def last_n_months(count: int, *, today: Optional[date] = None) -> list[date]:
    """First days of the last ``count`` months, oldest first, ending with the current one."""
    today = today or date.today()
    current = month_start(today)
    return [add_months(current, -offset) for offset in range(count - 1, -1, -1)]
