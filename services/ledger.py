import enum
import logging
from decimal import Decimal
from typing import Iterable
from sqlalchemy.orm import Session
from sqlalchemy import select
from models import Finances, ExpenseCategory, FinancialAccount, Investment, utcnow
from services.errors import NotFound, InvariantViolation

logger = logging.getLogger("app.ledger")

ZERO = Decimal("0")

class Constituent(str, enum.Enum):
    INCOME = "income"
    EXPENSE_CATEGORY = "expense_category"
    ACCOUNT = "account"
    INVESTMENT = "investment"
    FINANCIAL_GOAL = "financial_goal"
    RECURRING_BILL = "recurring_bill"

# --- pure sums ---
def _dec(v) -> Decimal:
    if v is None:
        return ZERO
    return v if isinstance(v, Decimal) else Decimal(str(v))

def total_expenses(categories: Iterable) -> Decimal:
    return sum((_dec(c.amount) for c in categories), ZERO)

def total_net_worth(accounts: Iterable, investments: Iterable) -> Decimal:
    held = sum((_dec(a.balance) for a in accounts if a.include_in_net_worth), ZERO)
    return held + sum((_dec(i.value) for i in investments), ZERO)

def savings_of(income, expenses) -> Decimal:
    return _dec(income) - _dec(expenses)

# --- recompute (one derived field each) ---
def _load(db: Session, finances_id: int) -> Finances:
    fin = db.get(Finances, finances_id)
    if fin is None:
        raise NotFound(f"finances {finances_id} not found")
    # pending constituent rows must be visible to the sums below
    db.flush()
    return fin

def recompute_expenses(db: Session, finances_id: int) -> Decimal:
    fin = _load(db, finances_id)
    rows = db.scalars(select(ExpenseCategory).where(ExpenseCategory.finances_id == finances_id)).all()
    fin.expenses = total_expenses(rows)
    fin.updated_at = utcnow()
    logger.debug(f"ledger.expenses finances={finances_id} categories={len(rows)} total={fin.expenses}")
    return fin.expenses

def recompute_net_worth(db: Session, finances_id: int) -> Decimal:
    fin = _load(db, finances_id)
    accounts = db.scalars(select(FinancialAccount).where(FinancialAccount.finances_id == finances_id)).all()
    investments = db.scalars(select(Investment).where(Investment.finances_id == finances_id)).all()
    fin.net_worth = total_net_worth(accounts, investments)
    fin.updated_at = utcnow()
    logger.debug(f"ledger.net_worth finances={finances_id} accounts={len(accounts)} investments={len(investments)} total={fin.net_worth}")
    return fin.net_worth

def recompute_savings(db: Session, finances_id: int) -> Decimal:
    fin = _load(db, finances_id)
    fin.savings = savings_of(fin.income, fin.expenses)
    fin.updated_at = utcnow()
    logger.debug(f"ledger.savings finances={finances_id} total={fin.savings}")
    return fin.savings

def on_constituent_changed(db: Session, finances_id: int, kind: Constituent, verify: bool = False) -> Finances:
    """Bring the derived fields of one Finances aggregate up to date.

    Every mutation of income or of an owned collection calls this before the
    session commits, so the write and its recompute land in one transaction.
    Raises NotFound, without writing anything, when the aggregate is missing.
    """
    kind = Constituent(kind)
    fin = _load(db, finances_id)
    if kind is Constituent.EXPENSE_CATEGORY:
        recompute_expenses(db, finances_id)
        recompute_savings(db, finances_id)
    elif kind is Constituent.INCOME:
        recompute_savings(db, finances_id)
    elif kind in (Constituent.ACCOUNT, Constituent.INVESTMENT):
        recompute_net_worth(db, finances_id)
    if verify:
        verify_finances(db, finances_id)
    return fin

def recompute_all(db: Session, finances_id: int) -> Finances:
    recompute_expenses(db, finances_id)
    recompute_savings(db, finances_id)
    recompute_net_worth(db, finances_id)
    return db.get(Finances, finances_id)

def verify_finances(db: Session, finances_id: int) -> None:
    fin = _load(db, finances_id)
    cats = db.scalars(select(ExpenseCategory).where(ExpenseCategory.finances_id == finances_id)).all()
    accounts = db.scalars(select(FinancialAccount).where(FinancialAccount.finances_id == finances_id)).all()
    investments = db.scalars(select(Investment).where(Investment.finances_id == finances_id)).all()

    expected = {
        "expenses": total_expenses(cats),
        "net_worth": total_net_worth(accounts, investments),
    }
    expected["savings"] = savings_of(fin.income, expected["expenses"])
    for field, want in expected.items():
        have = _dec(getattr(fin, field))
        if have != want:
            raise InvariantViolation(f"finances {finances_id} {field}={have} expected {want}")
