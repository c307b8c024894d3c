import datetime as dt
from decimal import Decimal
from typing import Annotated, Optional, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

Priority = Literal["low", "medium", "high"]
HabitFrequency = Literal["daily", "weekly"]
FinancialGoalType = Literal["emergency_fund", "retirement", "house_downpayment", "car", "education", "travel", "debt_payoff", "other"]
AccountType = Literal["checking", "savings", "investment", "retirement", "credit_card", "loan", "other"]
InvestmentType = Literal["stocks", "bonds", "mutual_funds", "etfs", "real_estate", "cryptocurrency", "other"]
BillFrequency = Literal["weekly", "biweekly", "monthly", "quarterly", "yearly", "custom"]
EventType = Literal["task", "goal", "habit", "finance"]

# Numeric(15, 2) money; sums of these stay inside the 28-digit decimal context
Amount = Annotated[Decimal, Field(max_digits=15, decimal_places=2)]
Rate = Annotated[Decimal, Field(max_digits=7, decimal_places=4)]

class OrmOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

# ---------- Users ----------
class UserIn(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)

class UserOut(OrmOut):
    id: int
    username: str
    created_at: dt.datetime

# ---------- Tasks ----------
class TaskIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    due_date: dt.date
    priority: Priority = "medium"
    completed: bool = False

class TaskOut(TaskIn, OrmOut):
    id: int
    updated_at: dt.datetime

# ---------- Habits ----------
class HabitIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    frequency: HabitFrequency = "daily"
    completed_days: List[Annotated[int, Field(ge=1, le=7)]] = Field(default_factory=list)

    @field_validator("completed_days")
    @classmethod
    def dedupe_days(cls, v: List[int]) -> List[int]:
        return sorted(set(v))

class HabitOut(HabitIn, OrmOut):
    id: int
    updated_at: dt.datetime

# ---------- Goals ----------
class MilestoneIn(BaseModel):
    id: Optional[int] = None
    text: str = Field(..., min_length=1)
    completed: bool = False

class MilestoneOut(OrmOut):
    id: int
    text: str
    completed: bool

class GoalIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    target_date: dt.date
    milestones: List[Union[MilestoneIn, str]] = Field(default_factory=list)
    category: Optional[str] = None
    task_ids: List[int] = Field(default_factory=list)
    habit_ids: List[int] = Field(default_factory=list)
    financial_goal_id: Optional[int] = None

class GoalOut(OrmOut):
    id: int
    title: str
    description: Optional[str]
    target_date: dt.date
    milestones: List[MilestoneOut]
    progress: int
    category: Optional[str]
    task_ids: List[int]
    habit_ids: List[int]
    financial_goal_id: Optional[int]
    updated_at: dt.datetime

class MilestoneToggleIn(BaseModel):
    completed: Optional[bool] = None

# ---------- Finances ----------
class IncomeIn(BaseModel):
    income: Amount = Field(..., ge=0)

class ExpenseCategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount: Amount = Field(Decimal("0"), ge=0)
    color: str = "#64748b"
    due_day: Optional[int] = Field(None, ge=1, le=31)

class ExpenseCategoryOut(ExpenseCategoryIn, OrmOut):
    id: int

class FinancialGoalIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: FinancialGoalType = "other"
    target_amount: Amount = Field(Decimal("0"), ge=0)
    current_amount: Amount = Field(Decimal("0"), ge=0)
    target_date: Optional[dt.date] = None
    archived: bool = False

class FinancialGoalOut(FinancialGoalIn, OrmOut):
    id: int

class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = "checking"
    balance: Amount = Decimal("0")
    interest_rate: Rate = Field(Decimal("0"), ge=0)
    include_in_net_worth: bool = True

class AccountOut(AccountIn, OrmOut):
    id: int

class InvestmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: InvestmentType = "other"
    value: Amount = Field(Decimal("0"), ge=0)
    purchase_price: Amount = Field(Decimal("0"), ge=0)
    purchase_date: Optional[dt.date] = None

class InvestmentOut(InvestmentIn, OrmOut):
    id: int

class BillIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount: Amount = Field(Decimal("0"), ge=0)
    frequency: BillFrequency = "monthly"
    custom_interval_days: Optional[int] = Field(None, ge=1)
    next_due_date: dt.date
    last_paid_date: Optional[dt.date] = None
    reminder_days: int = Field(3, ge=0)

class BillOut(BillIn, OrmOut):
    id: int

class BillPayIn(BaseModel):
    paid_on: Optional[dt.date] = None

class FinancesOut(OrmOut):
    id: int
    income: Decimal
    expenses: Decimal
    savings: Decimal
    net_worth: Decimal
    updated_at: dt.datetime
    expense_categories: List[ExpenseCategoryOut]
    financial_goals: List[FinancialGoalOut]
    accounts: List[AccountOut]
    investments: List[InvestmentOut]
    recurring_bills: List[BillOut]

# ---------- Calendar ----------
class CalendarEventOut(OrmOut):
    id: str
    type: EventType
    title: str
    completed: Optional[bool] = None
    priority: Optional[str] = None
    description: Optional[str] = None
    amount: Optional[Decimal] = None

class CalendarDayOut(OrmOut):
    date: dt.date
    day_number: int
    is_current_month: bool
    is_today: bool
    events: List[CalendarEventOut]

class CalendarOut(BaseModel):
    year: int
    month: int
    days: List[CalendarDayOut]

# ---------- Goal links ----------
class GoalLinksOut(BaseModel):
    tasks: List[TaskOut]
    habits: List[HabitOut]
    financial_goal: Optional[FinancialGoalOut]

# ---------- Summary ----------
class TaskBrief(BaseModel):
    id: int
    title: str
    due_date: dt.date
    priority: str

class TaskSummaryOut(BaseModel):
    total: int
    completed: int
    overdue: int
    upcoming: List[TaskBrief]

class HabitBrief(BaseModel):
    id: int
    title: str
    frequency: str
    completed_days: List[int]

class HabitSummaryOut(BaseModel):
    total: int
    items: List[HabitBrief]

class GoalBrief(BaseModel):
    id: int
    title: str
    progress: int

class GoalSummaryOut(BaseModel):
    total: int
    average_progress: int
    items: List[GoalBrief]

class FinancialGoalBrief(BaseModel):
    id: int
    name: str
    type: str
    percent_funded: int

class BillBrief(BaseModel):
    id: int
    name: str
    amount: Decimal
    next_due_date: dt.date
    days_until_due: int

class FinanceSummaryOut(BaseModel):
    income: Decimal
    expenses: Decimal
    savings: Decimal
    net_worth: Decimal
    financial_goals: List[FinancialGoalBrief]
    bills_due: List[BillBrief]

class SummaryOut(BaseModel):
    date: dt.date
    tasks: TaskSummaryOut
    habits: HabitSummaryOut
    goals: GoalSummaryOut
    finances: Optional[FinanceSummaryOut]
