from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional
from services.errors import NotFound, ValidationError

def _field(obj, name, default=None):
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)

def compute_progress(milestones) -> int:
    """Percentage of completed milestones, rounded half-up; 0 for an empty list."""
    milestones = list(milestones or [])
    if not milestones:
        return 0
    done = sum(1 for m in milestones if _field(m, "completed"))
    pct = Decimal(100 * done) / Decimal(len(milestones))
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def recompute_progress(goal) -> int:
    goal.progress = compute_progress(goal.milestones)
    return goal.progress

def build_milestones(items) -> list[dict]:
    """Normalise a milestone list into [{"id", "text", "completed"}].

    Items may be plain strings or mappings/objects with text, completed and an
    optional id. Missing ids are assigned after the highest id seen.
    """
    out: list[dict] = []
    pending: list[dict] = []
    seen: set[int] = set()
    for item in items or []:
        if isinstance(item, str):
            m = {"id": None, "text": item, "completed": False}
        else:
            m = {"id": _field(item, "id"), "text": _field(item, "text"), "completed": bool(_field(item, "completed", False))}
        text = (m["text"] or "").strip()
        if not text:
            continue
        m["text"] = text
        if m["id"] is not None:
            if m["id"] in seen:
                raise ValidationError(f"duplicate milestone id {m['id']}")
            seen.add(m["id"])
        else:
            pending.append(m)
        out.append(m)
    next_id = max(seen, default=0) + 1
    for m in pending:
        m["id"] = next_id
        next_id += 1
    return out

def replace_milestones(goal, items) -> int:
    goal.milestones = build_milestones(items)
    return recompute_progress(goal)

def toggle_milestone(goal, milestone_id: int, completed: Optional[bool] = None) -> int:
    """Flip (or set) one milestone's completion and recompute the goal's progress."""
    found = False
    updated = []
    for m in goal.milestones or []:
        m = dict(m)
        if m.get("id") == milestone_id:
            m["completed"] = (not m.get("completed")) if completed is None else bool(completed)
            found = True
        updated.append(m)
    if not found:
        raise NotFound(f"milestone {milestone_id} not found on goal {getattr(goal, 'id', None)}")
    # new list so the JSON column registers the change
    goal.milestones = updated
    return recompute_progress(goal)

def resolve_links(goal, tasks: Iterable, habits: Iterable, financial_goals: Iterable) -> dict:
    """Look up the goal's linked tasks, habits and financial goal; dangling ids are dropped."""
    by_task = {t.id: t for t in tasks}
    by_habit = {h.id: h for h in habits}
    by_fin = {f.id: f for f in financial_goals}
    return {
        "tasks": [by_task[i] for i in (goal.task_ids or []) if i in by_task],
        "habits": [by_habit[i] for i in (goal.habit_ids or []) if i in by_habit],
        "financial_goal": by_fin.get(goal.financial_goal_id),
    }
