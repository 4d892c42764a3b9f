from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, index=True)
    email = Column(String, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Trade(Base):
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True)
    trade_id = Column(String, index=True)
    account_name = Column(String, index=True)
    symbol = Column(String, default="")
    side = Column(String, default="Long")  # Long or Short
    quantity = Column(Float, default=0)
    price = Column(Float, default=0)
    points = Column(Float, default=0)
    profit = Column(Float, default=0)
    trade_date = Column(String)  # YYYY-MM-DD
    trade_timestamp = Column(String)  # ISO 8601

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True)
    account_name = Column(String)
    amount = Column(Float, default=0)
    withdrawal_date = Column(String)
    description = Column(String, default="")

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class MonthlyGoal(Base):
    __tablename__ = "monthly_goals"
    __table_args__ = (UniqueConstraint("user_id", "month", name="uq_monthly_goals_user_month"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True)
    month = Column(String)  # e.g. "October 2026"
    goal_amount = Column(Float, default=0)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, index=True)
    category = Column(String, default="Other")
    description = Column(String, default="")
    amount = Column(Float, default=0)
    due_date = Column(String, nullable=True)
    is_paid = Column(Boolean, default=False)
    is_recurring = Column(Boolean, default=False)
    created_at = Column(String, nullable=True)


class Income(Base):
    __tablename__ = "incomes"

    id = Column(String, primary_key=True, index=True)
    user_id = Column(String, index=True)
    category = Column(String, default="Other")
    description = Column(String, default="")
    amount = Column(Float, default=0)
    income_date = Column(String, nullable=True)
    is_paid = Column(Boolean, default=False)
    is_recurring = Column(Boolean, default=False)
    created_at = Column(String, nullable=True)


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id = Column(String, primary_key=True, index=True)
    current_cash = Column(Float, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# table name -> ORM class, used by the SQL backend
TABLES = {
    "users": User,
    "trades": Trade,
    "withdrawals": Withdrawal,
    "monthly_goals": MonthlyGoal,
    "expenses": Expense,
    "incomes": Income,
    "user_settings": UserSettings,
}
