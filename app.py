import os, logging, logging.handlers, datetime as dt
from dataclasses import asdict
from typing import Optional, List

from fastapi import FastAPI, Depends, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse, Response

from dotenv import load_dotenv

# env must be loaded before database reads DATABASE_URL
load_dotenv()

from database import Base, engine, SessionLocal
from models import (User, Task, Habit, Goal, Finances, ExpenseCategory, FinancialGoal,
                    FinancialAccount, Investment, RecurringBill, utcnow)
from schemas import (UserIn, UserOut, TaskIn, TaskOut, HabitIn, HabitOut, GoalIn, GoalOut,
                     MilestoneToggleIn, GoalLinksOut, IncomeIn, FinancesOut, ExpenseCategoryIn,
                     ExpenseCategoryOut, FinancialGoalIn, FinancialGoalOut, AccountIn, AccountOut,
                     InvestmentIn, InvestmentOut, BillIn, BillOut, BillPayIn, CalendarOut,
                     EventType, SummaryOut)
from sqlalchemy import select
from sqlalchemy.orm import Session

from services import errors
from services.ledger import Constituent, on_constituent_changed, recompute_all
from services.goals import replace_milestones, toggle_milestone, resolve_links
from services.projection import project_month
from services.bills import mark_paid, snooze
from services.summary import build_summary

# ---------- Config & Logging ----------
LOG_PATH = os.getenv("LOG_PATH", "./logs/app.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [x.strip() for x in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",") if x.strip()]
LEDGER_VERIFY = os.getenv("LEDGER_VERIFY", "0").lower() in ("1", "true", "yes")

os.makedirs(os.path.dirname(LOG_PATH) or ".", exist_ok=True)

logger = logging.getLogger("app")
logger.setLevel(LOG_LEVEL)
fmt = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
handler = logging.handlers.RotatingFileHandler(LOG_PATH, maxBytes=5_000_000, backupCount=5)
handler.setFormatter(fmt)
logger.addHandler(handler)

# ---------- FastAPI ----------
app = FastAPI(title="Life Dashboard", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)

@app.get("/")
def root():
    return RedirectResponse(url="/docs")

@app.exception_handler(errors.NotFound)
def not_found_handler(request: Request, exc: errors.NotFound):
    logger.info(f"not_found path={request.url.path} err={exc}")
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(errors.ValidationError)
def validation_handler(request: Request, exc: errors.ValidationError):
    logger.info(f"invalid path={request.url.path} err={exc}")
    return JSONResponse(status_code=422, content={"detail": str(exc)})

@app.exception_handler(errors.InvariantViolation)
def invariant_handler(request: Request, exc: errors.InvariantViolation):
    logger.error(f"invariant path={request.url.path} err={exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal consistency error"})

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# ---------- Users ----------
def get_user(user_id: int, db: Session = Depends(get_db)) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

def finances_for(user: User, db: Session) -> Finances:
    fin = db.scalar(select(Finances).where(Finances.user_id == user.id))
    if not fin:
        raise errors.NotFound(f"finances for user {user.id} not found")
    return fin

def owned(db: Session, model, rid: int, user: User):
    row = db.get(model, rid)
    if not row or row.user_id != user.id:
        raise errors.NotFound(f"{model.__tablename__} {rid} not found")
    return row

def owned_part(db: Session, model, rid: int, fin: Finances):
    row = db.get(model, rid)
    if not row or row.finances_id != fin.id:
        raise errors.NotFound(f"{model.__tablename__} {rid} not found")
    return row

@app.post("/users", response_model=UserOut, status_code=201)
def create_user(inb: UserIn, response: Response, db: Session = Depends(get_db)):
    username = inb.username.strip()
    if not username:
        raise HTTPException(status_code=400, detail="Username required")
    user = db.scalar(select(User).where(User.username == username))
    if user:
        response.status_code = 200
    else:
        user = User(username=username)
        db.add(user); db.flush()
        db.add(Finances(user_id=user.id))
        db.commit(); db.refresh(user)
        logger.info(f"user.create user={user.id} username={username}")
    return UserOut.model_validate(user)

@app.get("/users/{user_id}", response_model=UserOut)
def read_user(user: User = Depends(get_user)):
    return UserOut.model_validate(user)

# ---------- Tasks ----------
@app.get("/users/{user_id}/tasks", response_model=List[TaskOut])
def list_tasks(user: User = Depends(get_user), db: Session = Depends(get_db)):
    rows = db.scalars(select(Task).where(Task.user_id == user.id).order_by(Task.due_date, Task.id)).all()
    return [TaskOut.model_validate(r) for r in rows]

@app.post("/users/{user_id}/tasks", response_model=TaskOut, status_code=201)
def create_task(inb: TaskIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    t = Task(user_id=user.id, **inb.model_dump())
    db.add(t); db.commit(); db.refresh(t)
    logger.info(f"task.create user={user.id} id={t.id}")
    return TaskOut.model_validate(t)

@app.put("/users/{user_id}/tasks/{tid}", response_model=TaskOut)
def update_task(tid: int, inb: TaskIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    t = owned(db, Task, tid, user)
    for k, v in inb.model_dump().items(): setattr(t, k, v)
    t.updated_at = utcnow()
    db.commit(); db.refresh(t)
    logger.info(f"task.update user={user.id} id={t.id}")
    return TaskOut.model_validate(t)

@app.post("/users/{user_id}/tasks/{tid}/toggle", response_model=TaskOut)
def toggle_task(tid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    t = owned(db, Task, tid, user)
    t.completed = not t.completed
    t.updated_at = utcnow()
    db.commit(); db.refresh(t)
    logger.info(f"task.toggle user={user.id} id={t.id} completed={t.completed}")
    return TaskOut.model_validate(t)

@app.delete("/users/{user_id}/tasks/{tid}")
def delete_task(tid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    t = owned(db, Task, tid, user)
    db.delete(t); db.commit()
    logger.info(f"task.delete user={user.id} id={tid}")
    return {"ok": True}

# ---------- Habits ----------
@app.get("/users/{user_id}/habits", response_model=List[HabitOut])
def list_habits(user: User = Depends(get_user), db: Session = Depends(get_db)):
    rows = db.scalars(select(Habit).where(Habit.user_id == user.id).order_by(Habit.id)).all()
    return [HabitOut.model_validate(r) for r in rows]

@app.post("/users/{user_id}/habits", response_model=HabitOut, status_code=201)
def create_habit(inb: HabitIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    h = Habit(user_id=user.id, **inb.model_dump())
    db.add(h); db.commit(); db.refresh(h)
    logger.info(f"habit.create user={user.id} id={h.id}")
    return HabitOut.model_validate(h)

@app.put("/users/{user_id}/habits/{hid}", response_model=HabitOut)
def update_habit(hid: int, inb: HabitIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    h = owned(db, Habit, hid, user)
    for k, v in inb.model_dump().items(): setattr(h, k, v)
    h.updated_at = utcnow()
    db.commit(); db.refresh(h)
    logger.info(f"habit.update user={user.id} id={h.id}")
    return HabitOut.model_validate(h)

@app.post("/users/{user_id}/habits/{hid}/days/{weekday}/toggle", response_model=HabitOut)
def toggle_habit_day(hid: int, weekday: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    if not 1 <= weekday <= 7:
        raise errors.ValidationError(f"weekday must be 1..7 (Sunday=1), got {weekday}")
    h = owned(db, Habit, hid, user)
    days = set(h.completed_days or [])
    days ^= {weekday}
    h.completed_days = sorted(days)
    h.updated_at = utcnow()
    db.commit(); db.refresh(h)
    logger.info(f"habit.toggle user={user.id} id={h.id} weekday={weekday}")
    return HabitOut.model_validate(h)

@app.delete("/users/{user_id}/habits/{hid}")
def delete_habit(hid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    h = owned(db, Habit, hid, user)
    db.delete(h); db.commit()
    logger.info(f"habit.delete user={user.id} id={hid}")
    return {"ok": True}

# ---------- Goals ----------
@app.get("/users/{user_id}/goals", response_model=List[GoalOut])
def list_goals(user: User = Depends(get_user), db: Session = Depends(get_db)):
    rows = db.scalars(select(Goal).where(Goal.user_id == user.id).order_by(Goal.id)).all()
    return [GoalOut.model_validate(r) for r in rows]

def _apply_goal(g: Goal, inb: GoalIn):
    data = inb.model_dump(exclude={"milestones"})
    for k, v in data.items(): setattr(g, k, v)
    replace_milestones(g, inb.milestones)
    g.updated_at = utcnow()

@app.post("/users/{user_id}/goals", response_model=GoalOut, status_code=201)
def create_goal(inb: GoalIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    g = Goal(user_id=user.id)
    _apply_goal(g, inb)
    db.add(g); db.commit(); db.refresh(g)
    logger.info(f"goal.create user={user.id} id={g.id} progress={g.progress}")
    return GoalOut.model_validate(g)

@app.put("/users/{user_id}/goals/{gid}", response_model=GoalOut)
def update_goal(gid: int, inb: GoalIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    g = owned(db, Goal, gid, user)
    _apply_goal(g, inb)
    db.commit(); db.refresh(g)
    logger.info(f"goal.update user={user.id} id={g.id} progress={g.progress}")
    return GoalOut.model_validate(g)

@app.post("/users/{user_id}/goals/{gid}/milestones/{mid}/toggle", response_model=GoalOut)
def toggle_goal_milestone(gid: int, mid: int, inb: Optional[MilestoneToggleIn] = None,
                          user: User = Depends(get_user), db: Session = Depends(get_db)):
    g = owned(db, Goal, gid, user)
    toggle_milestone(g, mid, inb.completed if inb else None)
    g.updated_at = utcnow()
    db.commit(); db.refresh(g)
    logger.info(f"goal.milestone user={user.id} id={g.id} milestone={mid} progress={g.progress}")
    return GoalOut.model_validate(g)

@app.get("/users/{user_id}/goals/{gid}/links", response_model=GoalLinksOut)
def goal_links(gid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    g = owned(db, Goal, gid, user)
    fin = finances_for(user, db)
    tasks = db.scalars(select(Task).where(Task.user_id == user.id, Task.id.in_(g.task_ids or []))).all()
    habits = db.scalars(select(Habit).where(Habit.user_id == user.id, Habit.id.in_(g.habit_ids or []))).all()
    links = resolve_links(g, tasks, habits, fin.financial_goals)
    return GoalLinksOut(
        tasks=[TaskOut.model_validate(t) for t in links["tasks"]],
        habits=[HabitOut.model_validate(h) for h in links["habits"]],
        financial_goal=FinancialGoalOut.model_validate(links["financial_goal"]) if links["financial_goal"] else None,
    )

@app.delete("/users/{user_id}/goals/{gid}")
def delete_goal(gid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    g = owned(db, Goal, gid, user)
    db.delete(g); db.commit()
    logger.info(f"goal.delete user={user.id} id={gid}")
    return {"ok": True}

# ---------- Finances ----------
@app.get("/users/{user_id}/finances", response_model=FinancesOut)
def get_finances(user: User = Depends(get_user), db: Session = Depends(get_db)):
    return FinancesOut.model_validate(finances_for(user, db))

@app.put("/users/{user_id}/finances", response_model=FinancesOut)
def update_income(inb: IncomeIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    fin = finances_for(user, db)
    fin.income = inb.income
    on_constituent_changed(db, fin.id, Constituent.INCOME, verify=LEDGER_VERIFY)
    db.commit(); db.refresh(fin)
    logger.info(f"finances.income user={user.id} income={fin.income} savings={fin.savings}")
    return FinancesOut.model_validate(fin)

@app.post("/users/{user_id}/finances/recompute", response_model=FinancesOut)
def recompute_finances(user: User = Depends(get_user), db: Session = Depends(get_db)):
    fin = finances_for(user, db)
    recompute_all(db, fin.id)
    db.commit(); db.refresh(fin)
    logger.info(f"finances.recompute user={user.id} expenses={fin.expenses} net_worth={fin.net_worth}")
    return FinancesOut.model_validate(fin)

def _create_part(db: Session, user: User, model, kind: Constituent, data: dict):
    fin = finances_for(user, db)
    row = model(finances_id=fin.id, **data)
    db.add(row)
    on_constituent_changed(db, fin.id, kind, verify=LEDGER_VERIFY)
    db.commit(); db.refresh(row)
    logger.info(f"{kind.value}.create user={user.id} id={row.id}")
    return row

def _update_part(db: Session, user: User, model, kind: Constituent, rid: int, data: dict):
    fin = finances_for(user, db)
    row = owned_part(db, model, rid, fin)
    for k, v in data.items(): setattr(row, k, v)
    on_constituent_changed(db, fin.id, kind, verify=LEDGER_VERIFY)
    db.commit(); db.refresh(row)
    logger.info(f"{kind.value}.update user={user.id} id={row.id}")
    return row

def _delete_part(db: Session, user: User, model, kind: Constituent, rid: int):
    fin = finances_for(user, db)
    row = owned_part(db, model, rid, fin)
    db.delete(row)
    on_constituent_changed(db, fin.id, kind, verify=LEDGER_VERIFY)
    db.commit()
    logger.info(f"{kind.value}.delete user={user.id} id={rid}")
    return {"ok": True}

# ---------- Expense categories ----------
@app.get("/users/{user_id}/finances/categories", response_model=List[ExpenseCategoryOut])
def list_categories(user: User = Depends(get_user), db: Session = Depends(get_db)):
    return [ExpenseCategoryOut.model_validate(c) for c in finances_for(user, db).expense_categories]

@app.post("/users/{user_id}/finances/categories", response_model=ExpenseCategoryOut, status_code=201)
def create_category(inb: ExpenseCategoryIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _create_part(db, user, ExpenseCategory, Constituent.EXPENSE_CATEGORY, inb.model_dump())
    return ExpenseCategoryOut.model_validate(row)

@app.put("/users/{user_id}/finances/categories/{cid}", response_model=ExpenseCategoryOut)
def update_category(cid: int, inb: ExpenseCategoryIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _update_part(db, user, ExpenseCategory, Constituent.EXPENSE_CATEGORY, cid, inb.model_dump())
    return ExpenseCategoryOut.model_validate(row)

@app.delete("/users/{user_id}/finances/categories/{cid}")
def delete_category(cid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    return _delete_part(db, user, ExpenseCategory, Constituent.EXPENSE_CATEGORY, cid)

# ---------- Financial goals ----------
@app.get("/users/{user_id}/finances/goals", response_model=List[FinancialGoalOut])
def list_financial_goals(include_archived: bool = False, user: User = Depends(get_user), db: Session = Depends(get_db)):
    rows = finances_for(user, db).financial_goals
    return [FinancialGoalOut.model_validate(r) for r in rows if include_archived or not r.archived]

@app.post("/users/{user_id}/finances/goals", response_model=FinancialGoalOut, status_code=201)
def create_financial_goal(inb: FinancialGoalIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _create_part(db, user, FinancialGoal, Constituent.FINANCIAL_GOAL, inb.model_dump())
    return FinancialGoalOut.model_validate(row)

@app.put("/users/{user_id}/finances/goals/{fgid}", response_model=FinancialGoalOut)
def update_financial_goal(fgid: int, inb: FinancialGoalIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _update_part(db, user, FinancialGoal, Constituent.FINANCIAL_GOAL, fgid, inb.model_dump())
    return FinancialGoalOut.model_validate(row)

@app.delete("/users/{user_id}/finances/goals/{fgid}")
def delete_financial_goal(fgid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    return _delete_part(db, user, FinancialGoal, Constituent.FINANCIAL_GOAL, fgid)

# ---------- Accounts ----------
@app.get("/users/{user_id}/finances/accounts", response_model=List[AccountOut])
def list_accounts(user: User = Depends(get_user), db: Session = Depends(get_db)):
    return [AccountOut.model_validate(a) for a in finances_for(user, db).accounts]

@app.post("/users/{user_id}/finances/accounts", response_model=AccountOut, status_code=201)
def create_account(inb: AccountIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _create_part(db, user, FinancialAccount, Constituent.ACCOUNT, inb.model_dump())
    return AccountOut.model_validate(row)

@app.put("/users/{user_id}/finances/accounts/{aid}", response_model=AccountOut)
def update_account(aid: int, inb: AccountIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _update_part(db, user, FinancialAccount, Constituent.ACCOUNT, aid, inb.model_dump())
    return AccountOut.model_validate(row)

@app.delete("/users/{user_id}/finances/accounts/{aid}")
def delete_account(aid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    return _delete_part(db, user, FinancialAccount, Constituent.ACCOUNT, aid)

# ---------- Investments ----------
@app.get("/users/{user_id}/finances/investments", response_model=List[InvestmentOut])
def list_investments(user: User = Depends(get_user), db: Session = Depends(get_db)):
    return [InvestmentOut.model_validate(i) for i in finances_for(user, db).investments]

@app.post("/users/{user_id}/finances/investments", response_model=InvestmentOut, status_code=201)
def create_investment(inb: InvestmentIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _create_part(db, user, Investment, Constituent.INVESTMENT, inb.model_dump())
    return InvestmentOut.model_validate(row)

@app.put("/users/{user_id}/finances/investments/{iid}", response_model=InvestmentOut)
def update_investment(iid: int, inb: InvestmentIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _update_part(db, user, Investment, Constituent.INVESTMENT, iid, inb.model_dump())
    return InvestmentOut.model_validate(row)

@app.delete("/users/{user_id}/finances/investments/{iid}")
def delete_investment(iid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    return _delete_part(db, user, Investment, Constituent.INVESTMENT, iid)

# ---------- Recurring bills ----------
@app.get("/users/{user_id}/finances/bills", response_model=List[BillOut])
def list_bills(user: User = Depends(get_user), db: Session = Depends(get_db)):
    return [BillOut.model_validate(b) for b in finances_for(user, db).recurring_bills]

@app.post("/users/{user_id}/finances/bills", response_model=BillOut, status_code=201)
def create_bill(inb: BillIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _create_part(db, user, RecurringBill, Constituent.RECURRING_BILL, inb.model_dump())
    return BillOut.model_validate(row)

@app.put("/users/{user_id}/finances/bills/{bid}", response_model=BillOut)
def update_bill(bid: int, inb: BillIn, user: User = Depends(get_user), db: Session = Depends(get_db)):
    row = _update_part(db, user, RecurringBill, Constituent.RECURRING_BILL, bid, inb.model_dump())
    return BillOut.model_validate(row)

@app.post("/users/{user_id}/finances/bills/{bid}/pay", response_model=BillOut)
def pay_bill(bid: int, inb: Optional[BillPayIn] = None, user: User = Depends(get_user), db: Session = Depends(get_db)):
    fin = finances_for(user, db)
    b = owned_part(db, RecurringBill, bid, fin)
    mark_paid(b, inb.paid_on if inb else None)
    on_constituent_changed(db, fin.id, Constituent.RECURRING_BILL, verify=LEDGER_VERIFY)
    db.commit(); db.refresh(b)
    logger.info(f"recurring_bill.pay user={user.id} id={b.id} next={b.next_due_date}")
    return BillOut.model_validate(b)

@app.post("/users/{user_id}/finances/bills/{bid}/snooze", response_model=BillOut)
def snooze_bill(bid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    fin = finances_for(user, db)
    b = owned_part(db, RecurringBill, bid, fin)
    snooze(b)
    on_constituent_changed(db, fin.id, Constituent.RECURRING_BILL, verify=LEDGER_VERIFY)
    db.commit(); db.refresh(b)
    logger.info(f"recurring_bill.snooze user={user.id} id={b.id} next={b.next_due_date}")
    return BillOut.model_validate(b)

@app.delete("/users/{user_id}/finances/bills/{bid}")
def delete_bill(bid: int, user: User = Depends(get_user), db: Session = Depends(get_db)):
    return _delete_part(db, user, RecurringBill, Constituent.RECURRING_BILL, bid)

# ---------- Calendar ----------
def _snapshot(user: User, db: Session):
    tasks = db.scalars(select(Task).where(Task.user_id == user.id).order_by(Task.id)).all()
    goals = db.scalars(select(Goal).where(Goal.user_id == user.id).order_by(Goal.id)).all()
    habits = db.scalars(select(Habit).where(Habit.user_id == user.id).order_by(Habit.id)).all()
    fin = db.scalar(select(Finances).where(Finances.user_id == user.id))
    return tasks, goals, habits, fin

@app.get("/users/{user_id}/calendar", response_model=CalendarOut)
def calendar_month(year: Optional[int] = Query(None, ge=dt.MINYEAR, le=dt.MAXYEAR),
                   month: Optional[int] = Query(None, ge=1, le=12),
                   type: Optional[List[EventType]] = Query(None), today: Optional[dt.date] = None,
                   user: User = Depends(get_user), db: Session = Depends(get_db)):
    today = today or dt.date.today()
    if year is None:
        year = today.year
    if month is None:
        month = today.month
    tasks, goals, habits, fin = _snapshot(user, db)
    days = project_month(year, month, tasks, goals, habits, fin, today=today, types=type)
    return CalendarOut(year=year, month=month, days=[asdict(d) for d in days])

# ---------- Summary ----------
@app.get("/users/{user_id}/summary", response_model=SummaryOut)
def summary(today: Optional[dt.date] = None, user: User = Depends(get_user), db: Session = Depends(get_db)):
    tasks, goals, habits, fin = _snapshot(user, db)
    return SummaryOut(**build_summary(tasks, habits, goals, fin, today or dt.date.today()))
