import calendar as _cal
import datetime as dt
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional
from services.errors import ValidationError

GRID_DAYS = 42
EVENT_TYPES = ("task", "goal", "habit", "finance")

@dataclass
class CalendarEvent:
    id: str
    type: str
    title: str
    completed: Optional[bool] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None

@dataclass
class CalendarDay:
    date: dt.date
    day_number: int
    is_current_month: bool
    is_today: bool
    events: list[CalendarEvent] = field(default_factory=list)

# --- helpers ---
def _get(obj, name, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)

def parse_date(value) -> Optional[dt.date]:
    """Best-effort date coercion; None for anything missing or unreadable."""
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        try:
            return dt.date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None

def weekday_number(d: dt.date) -> int:
    """1-indexed weekday, Sunday=1 .. Saturday=7."""
    return (d.weekday() + 1) % 7 + 1

def grid_start(year: int, month: int) -> dt.date:
    first = dt.date(year, month, 1)
    return first - dt.timedelta(days=weekday_number(first) - 1)

def _by_date(items: Iterable, attr: str) -> dict:
    index = defaultdict(list)
    for item in items or []:
        d = parse_date(_get(item, attr))
        if d is not None:
            index[d].append(item)
    return index

def _habit_due(habit, d: dt.date) -> bool:
    freq = _get(habit, "frequency")
    if freq == "daily":
        return True
    if freq == "weekly":
        # completed_days doubles as the weekly schedule here
        return weekday_number(d) in set(_get(habit, "completed_days") or [])
    return False

def category_due(category, d: dt.date) -> bool:
    due_day = _get(category, "due_day")
    if isinstance(due_day, int) and 1 <= due_day <= 31:
        last = _cal.monthrange(d.year, d.month)[1]
        return d.day == min(due_day, last)
    name = (_get(category, "name") or "").lower()
    if d.day == 1 and "credit" in name:
        return True
    if d.day == 15 and "loan" in name:
        return True
    return False

# --- projector ---
def project_month(year: int, month: int, tasks=(), goals=(), habits=(), finances=None,
                  today: Optional[dt.date] = None, types: Optional[Iterable[str]] = None) -> list[CalendarDay]:
    """Build the 6-week Sunday-first grid for one month with per-day events.

    Reads the snapshot only. Events within a day come out as tasks, goals,
    habits, then finance items, each group in input order.
    """
    if not 1 <= month <= 12:
        raise ValidationError(f"month out of range: {month}")
    if not dt.MINYEAR <= year <= dt.MAXYEAR:
        raise ValidationError(f"year out of range: {year}")
    try:
        start = grid_start(year, month)
        start + dt.timedelta(days=GRID_DAYS - 1)
    except OverflowError:
        raise ValidationError(f"calendar grid for {year}-{month:02d} leaves the supported date range")
    wanted = set(types) if types else set(EVENT_TYPES)
    unknown = wanted - set(EVENT_TYPES)
    if unknown:
        raise ValidationError(f"unknown event types: {sorted(unknown)}")
    today = today or dt.date.today()

    tasks_on = _by_date(tasks, "due_date")
    goals_on = _by_date(goals, "target_date")
    habits = list(habits or [])
    categories = list(_get(finances, "expense_categories") or [])
    bills_on = _by_date(_get(finances, "recurring_bills") or [], "next_due_date")

    days: list[CalendarDay] = []
    for i in range(GRID_DAYS):
        d = start + dt.timedelta(days=i)
        events: list[CalendarEvent] = []

        if "task" in wanted:
            for t in tasks_on.get(d, []):
                events.append(CalendarEvent(
                    id=f"task-{_get(t, 'id')}", type="task", title=_get(t, "title"),
                    completed=bool(_get(t, "completed")), priority=_get(t, "priority"),
                ))
        if "goal" in wanted:
            for g in goals_on.get(d, []):
                events.append(CalendarEvent(
                    id=f"goal-{_get(g, 'id')}", type="goal", title=_get(g, "title"),
                    description=_get(g, "description"),
                ))
        if "habit" in wanted:
            for h in habits:
                if _habit_due(h, d):
                    events.append(CalendarEvent(
                        id=f"habit-{_get(h, 'id')}", type="habit", title=_get(h, "title"),
                        completed=weekday_number(d) in set(_get(h, "completed_days") or []),
                    ))
        if "finance" in wanted:
            for c in categories:
                if category_due(c, d):
                    events.append(CalendarEvent(
                        id=f"finance-category-{_get(c, 'id')}", type="finance",
                        title=f"{_get(c, 'name')} Payment Due", amount=_get(c, "amount"),
                    ))
            for b in bills_on.get(d, []):
                events.append(CalendarEvent(
                    id=f"finance-bill-{_get(b, 'id')}", type="finance",
                    title=f"{_get(b, 'name')} Due", amount=_get(b, "amount"),
                ))

        days.append(CalendarDay(
            date=d, day_number=d.day,
            is_current_month=(d.month == month and d.year == year),
            is_today=(d == today), events=events,
        ))
    return days
