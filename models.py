from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from database import Base


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class TransactionStatus(str, Enum):
    completed = "completed"
    pending = "pending"
    failed = "failed"


class AccountType(str, Enum):
    checking = "checking"
    savings = "savings"
    credit_card = "credit_card"
    investment = "investment"
    loan = "loan"
    other = "other"


class BillFrequency(str, Enum):
    daily = "daily"
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


class UserRole(str, Enum):
    user = "user"
    dev = "dev"
    admin = "admin"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class UserScopedMixin:
    """Rows are keyed by ``(user_id, id)``; ``id`` is only unique per user."""

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)


class Transaction(UserScopedMixin, Base, TimestampMixin):
    __tablename__ = "transactions"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    time: Mapped[Optional[str]] = mapped_column(String(5))
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    # NULL is read as completed.
    status: Mapped[Optional[TransactionStatus]] = mapped_column(
        SAEnum(TransactionStatus), default=TransactionStatus.completed
    )
    account_id: Mapped[Optional[int]] = mapped_column(Integer)
    budget_category_id: Mapped[Optional[int]] = mapped_column(Integer)
    savings_goal_id: Mapped[Optional[int]] = mapped_column(Integer)
    savings_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    recurring_bill_id: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_account", "user_id", "account_id"),
        Index("ix_transactions_user_budget", "user_id", "budget_category_id"),
        Index("ix_transactions_user_name", "user_id", "name"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class Account(UserScopedMixin, Base, TimestampMixin):
    __tablename__ = "accounts"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType), nullable=False)
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    limit_cents: Mapped[Optional[int]] = mapped_column(Integer)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="C$")
    bank_name: Mapped[Optional[str]] = mapped_column(String(100))
    account_number: Mapped[Optional[str]] = mapped_column(String(34))
    color: Mapped[Optional[str]] = mapped_column(String(9))
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class BudgetCategory(UserScopedMixin, Base, TimestampMixin):
    __tablename__ = "budget_categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    budget_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    spent_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    color: Mapped[str] = mapped_column(String(9), nullable=False, default="")

    __table_args__ = (
        CheckConstraint("budget_cents >= 0", name="ck_budget_category_budget_positive"),
    )


class SavingsGoal(UserScopedMixin, Base, TimestampMixin):
    __tablename__ = "savings_goals"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    color: Mapped[str] = mapped_column(String(9), nullable=False, default="")
    current_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    monthly_contribution_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)


class RecurringBill(UserScopedMixin, Base, TimestampMixin):
    __tablename__ = "recurring_bills"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[BillFrequency] = mapped_column(
        SAEnum(BillFrequency), nullable=False
    )
    next_due_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    color: Mapped[Optional[str]] = mapped_column(String(9))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    budget_category_id: Mapped[Optional[int]] = mapped_column(Integer)
    last_paid_date: Mapped[Optional[date]] = mapped_column(Date)

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_bill_amount_positive"),
        Index("ix_recurring_bills_user_active", "user_id", "is_active"),
    )


class CustomCategory(UserScopedMixin, Base, TimestampMixin):
    __tablename__ = "custom_categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(9), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_custom_category_user_name"),
    )
