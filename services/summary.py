import datetime as dt
from decimal import Decimal, ROUND_HALF_UP
from services.bills import bills_due_soon, days_until_due

TOP_TASKS = 3
TOP_HABITS = 3
TOP_GOALS = 2

def _pct(part: Decimal, whole: Decimal) -> int:
    if not whole:
        return 0
    return int((Decimal(100) * part / whole).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def build_summary(tasks, habits, goals, finances, today: dt.date) -> dict:
    tasks = list(tasks); habits = list(habits); goals = list(goals)

    open_tasks = sorted((t for t in tasks if not t.completed), key=lambda t: (t.due_date, t.id))
    task_part = {
        "total": len(tasks),
        "completed": sum(1 for t in tasks if t.completed),
        "overdue": sum(1 for t in open_tasks if t.due_date < today),
        "upcoming": [
            {"id": t.id, "title": t.title, "due_date": t.due_date, "priority": t.priority}
            for t in open_tasks[:TOP_TASKS]
        ],
    }

    habit_part = {
        "total": len(habits),
        "items": [
            {"id": h.id, "title": h.title, "frequency": h.frequency, "completed_days": sorted(h.completed_days or [])}
            for h in habits[:TOP_HABITS]
        ],
    }

    avg = 0
    if goals:
        avg = int((Decimal(sum(g.progress or 0 for g in goals)) / len(goals)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    goal_part = {
        "total": len(goals),
        "average_progress": avg,
        "items": [{"id": g.id, "title": g.title, "progress": g.progress or 0} for g in goals[:TOP_GOALS]],
    }

    fin_part = None
    if finances is not None:
        fin_part = {
            "income": finances.income,
            "expenses": finances.expenses,
            "savings": finances.savings,
            "net_worth": finances.net_worth,
            "financial_goals": [
                {"id": fg.id, "name": fg.name, "type": fg.type,
                 "percent_funded": _pct(fg.current_amount or Decimal(0), fg.target_amount or Decimal(0))}
                for fg in finances.financial_goals if not fg.archived
            ],
            "bills_due": [
                {"id": b.id, "name": b.name, "amount": b.amount, "next_due_date": b.next_due_date,
                 "days_until_due": days_until_due(b, today)}
                for b in bills_due_soon(finances.recurring_bills, today)
            ],
        }

    return {"date": today, "tasks": task_part, "habits": habit_part, "goals": goal_part, "finances": fin_part}
