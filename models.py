import datetime as dt
from decimal import Decimal
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, ForeignKey, JSON, Text
from sqlalchemy.orm import relationship
from database import Base, Money

def utcnow() -> dt.datetime:
  return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)

class User(Base):
  __tablename__ = "users"
  id = Column(Integer, primary_key=True)
  username = Column(String, unique=True, nullable=False)
  created_at = Column(DateTime, default=utcnow)

class Task(Base):
  __tablename__ = "tasks"
  id = Column(Integer, primary_key=True)
  user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
  title = Column(String, nullable=False)
  description = Column(Text, nullable=True)
  due_date = Column(Date, nullable=False)
  priority = Column(String, default="medium")
  completed = Column(Boolean, default=False)
  updated_at = Column(DateTime, default=utcnow)

class Habit(Base):
  __tablename__ = "habits"
  id = Column(Integer, primary_key=True)
  user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
  title = Column(String, nullable=False)
  description = Column(Text, nullable=True)
  frequency = Column(String, default="daily")
  completed_days = Column(JSON, default=list)   # weekday numbers, Sunday=1
  updated_at = Column(DateTime, default=utcnow)

class Goal(Base):
  __tablename__ = "goals"
  id = Column(Integer, primary_key=True)
  user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
  title = Column(String, nullable=False)
  description = Column(Text, nullable=True)
  target_date = Column(Date, nullable=False)
  milestones = Column(JSON, default=list)       # [{"id", "text", "completed"}]
  progress = Column(Integer, default=0)
  category = Column(String, nullable=True)
  # weak references, resolved at read time
  task_ids = Column(JSON, default=list)
  habit_ids = Column(JSON, default=list)
  financial_goal_id = Column(Integer, nullable=True)
  updated_at = Column(DateTime, default=utcnow)

class Finances(Base):
  __tablename__ = "finances"
  id = Column(Integer, primary_key=True)
  user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
  income = Column(Money, default=Decimal("0"))
  expenses = Column(Money, default=Decimal("0"))
  savings = Column(Money, default=Decimal("0"))
  net_worth = Column(Money, default=Decimal("0"))
  updated_at = Column(DateTime, default=utcnow)

  expense_categories = relationship("ExpenseCategory", order_by="ExpenseCategory.id", cascade="all, delete-orphan")
  financial_goals = relationship("FinancialGoal", order_by="FinancialGoal.id", cascade="all, delete-orphan")
  accounts = relationship("FinancialAccount", order_by="FinancialAccount.id", cascade="all, delete-orphan")
  investments = relationship("Investment", order_by="Investment.id", cascade="all, delete-orphan")
  recurring_bills = relationship("RecurringBill", order_by="RecurringBill.id", cascade="all, delete-orphan")

class ExpenseCategory(Base):
  __tablename__ = "expense_categories"
  id = Column(Integer, primary_key=True)
  finances_id = Column(Integer, ForeignKey("finances.id"), nullable=False, index=True)
  name = Column(String, nullable=False)
  amount = Column(Money, default=Decimal("0"))
  color = Column(String, default="#64748b")
  due_day = Column(Integer, nullable=True)      # explicit payment day of month

class FinancialGoal(Base):
  __tablename__ = "financial_goals"
  id = Column(Integer, primary_key=True)
  finances_id = Column(Integer, ForeignKey("finances.id"), nullable=False, index=True)
  name = Column(String, nullable=False)
  type = Column(String, default="other")
  target_amount = Column(Money, default=Decimal("0"))
  current_amount = Column(Money, default=Decimal("0"))
  target_date = Column(Date, nullable=True)
  archived = Column(Boolean, default=False)

class FinancialAccount(Base):
  __tablename__ = "financial_accounts"
  id = Column(Integer, primary_key=True)
  finances_id = Column(Integer, ForeignKey("finances.id"), nullable=False, index=True)
  name = Column(String, nullable=False)
  type = Column(String, default="checking")
  balance = Column(Money, default=Decimal("0"))
  interest_rate = Column(Money, default=Decimal("0"))
  include_in_net_worth = Column(Boolean, default=True)

class Investment(Base):
  __tablename__ = "investments"
  id = Column(Integer, primary_key=True)
  finances_id = Column(Integer, ForeignKey("finances.id"), nullable=False, index=True)
  name = Column(String, nullable=False)
  type = Column(String, default="other")
  value = Column(Money, default=Decimal("0"))
  purchase_price = Column(Money, default=Decimal("0"))
  purchase_date = Column(Date, nullable=True)

class RecurringBill(Base):
  __tablename__ = "recurring_bills"
  id = Column(Integer, primary_key=True)
  finances_id = Column(Integer, ForeignKey("finances.id"), nullable=False, index=True)
  name = Column(String, nullable=False)
  amount = Column(Money, default=Decimal("0"))
  frequency = Column(String, default="monthly")
  custom_interval_days = Column(Integer, nullable=True)
  next_due_date = Column(Date, nullable=False)
  last_paid_date = Column(Date, nullable=True)
  reminder_days = Column(Integer, default=3)
