import os
from decimal import Decimal
from sqlalchemy import create_engine, String
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

DB_PATH = os.getenv("DB_PATH", "./data.db")
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")

engine_kwargs = {"echo": False, "future": True}
if DATABASE_URL.startswith("sqlite"):
  engine_kwargs["connect_args"] = {"check_same_thread": False}
  if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
    # one shared connection, otherwise every checkout sees an empty database
    engine_kwargs["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, **engine_kwargs)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


class Money(TypeDecorator):
  """Decimal stored as text so amounts round-trip exactly on every backend."""

  impl = String(32)
  cache_ok = True

  def process_bind_param(self, value, dialect):
    if value is None:
      return None
    return format(Decimal(str(value)), "f")

  def process_result_value(self, value, dialect):
    if value is None:
      return None
    return Decimal(value)
