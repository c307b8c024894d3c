import datetime as dt
import logging
from typing import Iterable, Optional
from dateutil.relativedelta import relativedelta
from services.errors import ValidationError

logger = logging.getLogger("app.bills")

SNOOZE_DAYS = 7
DEFAULT_CUSTOM_INTERVAL = 30

PERIODS = {
    "weekly": relativedelta(days=7),
    "biweekly": relativedelta(days=14),
    "monthly": relativedelta(months=1),
    "quarterly": relativedelta(months=3),
    "yearly": relativedelta(years=1),
}

def advance_due_date(due: dt.date, frequency: str, custom_interval_days: Optional[int] = None) -> dt.date:
    if frequency == "custom":
        days = custom_interval_days or DEFAULT_CUSTOM_INTERVAL
        if days < 1:
            raise ValidationError(f"custom interval must be positive, got {days}")
        return due + dt.timedelta(days=days)
    step = PERIODS.get(frequency)
    if step is None:
        raise ValidationError(f"unknown bill frequency: {frequency}")
    # relativedelta clamps Jan 31 + 1 month to the end of February
    return due + step

def mark_paid(bill, paid_on: Optional[dt.date] = None):
    paid_on = paid_on or dt.date.today()
    prev = bill.next_due_date
    bill.next_due_date = advance_due_date(prev, bill.frequency, bill.custom_interval_days)
    bill.last_paid_date = paid_on
    logger.debug(f"bill.paid id={bill.id} due={prev} next={bill.next_due_date}")
    return bill

def snooze(bill, days: int = SNOOZE_DAYS):
    bill.next_due_date = bill.next_due_date + dt.timedelta(days=days)
    logger.debug(f"bill.snooze id={bill.id} next={bill.next_due_date}")
    return bill

def days_until_due(bill, today: dt.date) -> int:
    return (bill.next_due_date - today).days

def bills_due_soon(bills: Iterable, today: dt.date) -> list:
    """Bills inside their reminder window, overdue ones included, soonest first."""
    due = [b for b in bills if days_until_due(b, today) <= (b.reminder_days or 0)]
    return sorted(due, key=lambda b: (b.next_due_date, b.id or 0))
