from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Mapping, Optional, Sequence, Type, Union

from pydantic import BaseModel
from sqlalchemy import select, union
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from aggregates import (
    AggregateEngine,
    GoalProgress,
    SavingsSummary,
    coerce_entity_id,
    goal_progress,
    is_settled,
    run_side_effect,
    savings_summary,
)
from config import get_settings
from csv_utils import export_transactions, to_cents
from errors import DuplicateError, NotFoundError, StorageError, ValidationError
from ledger import LedgerStore, get_current_user_id, next_entity_id
from models import (
    Account,
    AccountType,
    BudgetCategory,
    CustomCategory,
    RecurringBill,
    SavingsGoal,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from periods import Period
from recurrence import local_today, monthly_equivalent_cents, next_due_date
from schemas import (
    AccountIn,
    AccountUpdate,
    BudgetCategoryIn,
    BudgetCategoryUpdate,
    CustomCategoryIn,
    RecurringBillIn,
    RecurringBillUpdate,
    SavingsGoalIn,
    SavingsGoalUpdate,
    TransactionImportIn,
    TransactionIn,
    TransactionUpdate,
    validate_input,
)
from suggestions import CategorySuggestion, NameGroup, group_by_name, suggest, suggest_many

logger = logging.getLogger(__name__)

DEFAULT_TIME = "00:00"
DEFAULT_IMPORT_CATEGORY = "Miscellaneous"
REFERENCE_FIELDS = ("account_id", "budget_category_id", "savings_goal_id", "recurring_bill_id")
REQUIRED_TRANSACTION_FIELDS = ("name", "category", "date", "amount_cents", "type")

Payload = Union[Mapping[str, Any], BaseModel]


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"{action}_failed: error={exc}")
        raise StorageError(f"Failed to {action.replace('_', ' ')}") from exc


def _get_owned(session: Session, model: Type, user_id: int, entity_id: int, label: str):
    entity = session.get(model, (user_id, entity_id))
    if not entity:
        raise NotFoundError(f"{label} not found")
    return entity


@dataclass(frozen=True)
class LedgerEffect:
    """What a transaction contributed to aggregates at one point in time."""

    account_id: Optional[int]
    budget_category_id: Optional[int]
    type: TransactionType
    amount_cents: int
    date: date
    settled: bool

    @classmethod
    def of(cls, txn: Transaction) -> "LedgerEffect":
        return cls(
            account_id=txn.account_id,
            budget_category_id=txn.budget_category_id,
            type=txn.type,
            amount_cents=txn.amount_cents,
            date=txn.date,
            settled=is_settled(txn),
        )

    @property
    def counts_toward_budget(self) -> bool:
        return (
            self.settled
            and self.budget_category_id is not None
            and self.type == TransactionType.expense
        )


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.ledger = LedgerStore(session, self.user_id)
        self.aggregates = AggregateEngine(session, self.user_id, self.ledger)

    def _reference(self, field: str, value: object) -> Optional[int]:
        if value is None:
            return None
        ref = coerce_entity_id(value)
        if ref is None:
            logger.warning(
                f"transaction_reference_invalid: user_id={self.user_id} "
                f"field={field} value={value!r}"
            )
        return ref

    def _build(self, data: TransactionIn, *, default_category: Optional[str] = None) -> Transaction:
        return Transaction(
            name=data.name,
            category=data.category or default_category,
            date=data.date,
            time=data.time or DEFAULT_TIME,
            amount_cents=data.amount_cents,
            type=data.type,
            status=data.status or TransactionStatus.completed,
            account_id=self._reference("account_id", data.account_id),
            budget_category_id=self._reference(
                "budget_category_id", data.budget_category_id
            ),
            savings_goal_id=self._reference("savings_goal_id", data.savings_goal_id),
            savings_amount_cents=data.savings_amount_cents,
            recurring_bill_id=self._reference(
                "recurring_bill_id", data.recurring_bill_id
            ),
        )

    def create(self, data: Payload) -> Transaction:
        data = validate_input(TransactionIn, data)
        txn = self._build(data)
        self.ledger.append(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} transaction_id={txn.id} "
            f"type={txn.type.value} amount_cents={txn.amount_cents}"
        )
        self._apply_effect(LedgerEffect.of(txn), txn.id)
        return txn

    def _apply_effect(self, effect: LedgerEffect, transaction_id: int) -> None:
        if effect.counts_toward_budget:
            run_side_effect(
                self.session,
                "budget_recompute",
                lambda: self.aggregates.recompute_budget_spent(
                    effect.budget_category_id, effect.date
                ),
                user_id=self.user_id,
                budget_category_id=effect.budget_category_id,
                transaction_id=transaction_id,
            )
        if effect.settled and effect.account_id is not None:
            run_side_effect(
                self.session,
                "account_balance_update",
                lambda: self.aggregates.apply_to_account(
                    effect.account_id,
                    Transaction(type=effect.type, amount_cents=effect.amount_cents),
                ),
                user_id=self.user_id,
                account_id=effect.account_id,
                transaction_id=transaction_id,
            )

    def import_many(self, items: Sequence[Payload]) -> list[Transaction]:
        """Store a batch of extracted statement rows.

        Every row is validated first; one bad row rejects the batch. Imported
        rows do not touch account or budget aggregates. The read paths
        reconcile those on the next listing.
        """
        if not isinstance(items, (list, tuple)):
            raise ValidationError("Invalid transactions data")
        rows: list[TransactionImportIn] = []
        errors: list[str] = []
        for idx, raw in enumerate(items, start=1):
            try:
                rows.append(validate_input(TransactionImportIn, raw))
            except ValidationError as exc:
                errors.append(f"Row {idx}: {exc}")
        if errors:
            raise ValidationError(
                "Invalid transaction data. Missing required fields.", errors=errors
            )
        if not rows:
            return []

        txns = [self._build(row, default_category=DEFAULT_IMPORT_CATEGORY) for row in rows]
        self.ledger.append_many(txns)
        logger.info(
            f"transactions_imported: user_id={self.user_id} count={len(txns)} "
            f"first_id={txns[0].id} last_id={txns[-1].id}"
        )
        return txns

    def bulk_recategorize(self, exact_name: str, new_category: str) -> int:
        """Recategorize every transaction with this exact name.

        Budget ``spent`` values are left as they are.
        """
        if not exact_name or not exact_name.strip():
            raise ValidationError("Transaction name is required")
        if not new_category or not new_category.strip():
            raise ValidationError("Category is required")
        modified = self.ledger.rename_category_for_name(exact_name, new_category.strip())
        logger.info(
            f"transactions_recategorized: user_id={self.user_id} "
            f"name={exact_name.strip()!r} category={new_category.strip()!r} "
            f"modified={modified}"
        )
        return modified

    def get(self, transaction_id: int) -> Transaction:
        return self.ledger.get(transaction_id)

    def list_all(
        self,
        period: Optional[Period] = None,
        type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.time.desc(), Transaction.id.desc())
        )
        if period:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if type:
            stmt = stmt.where(Transaction.type == type)
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt).all())

    def update(self, transaction_id: int, data: Payload) -> Transaction:
        data = validate_input(TransactionUpdate, data)
        txn = self.ledger.get(transaction_id)
        before = LedgerEffect.of(txn)

        for field in data.model_fields_set:
            value = getattr(data, field)
            if field in REQUIRED_TRANSACTION_FIELDS and value is None:
                raise ValidationError(f"{field} cannot be empty")
            if field in REFERENCE_FIELDS:
                value = self._reference(field, value)
            elif field == "time":
                value = value or DEFAULT_TIME
            setattr(txn, field, value)
        self.ledger.save(txn)
        after = LedgerEffect.of(txn)
        self._rebalance(before, after, transaction_id)
        return txn

    def _rebalance(self, before: LedgerEffect, after: LedgerEffect, transaction_id: int) -> None:
        moved = (
            before.account_id != after.account_id
            or before.amount_cents != after.amount_cents
            or before.type != after.type
            or before.settled != after.settled
        )
        if moved:
            if before.settled and before.account_id is not None:
                run_side_effect(
                    self.session,
                    "account_balance_reverse",
                    lambda: self.aggregates.reverse_on_account(
                        before.account_id, before.type, before.amount_cents
                    ),
                    user_id=self.user_id,
                    account_id=before.account_id,
                    transaction_id=transaction_id,
                )
            if after.settled and after.account_id is not None:
                run_side_effect(
                    self.session,
                    "account_balance_update",
                    lambda: self.aggregates.apply_to_account(
                        after.account_id,
                        Transaction(type=after.type, amount_cents=after.amount_cents),
                    ),
                    user_id=self.user_id,
                    account_id=after.account_id,
                    transaction_id=transaction_id,
                )

        if before == after:
            return
        for effect in (before, after):
            if effect.counts_toward_budget:
                run_side_effect(
                    self.session,
                    "budget_recompute",
                    lambda effect=effect: self.aggregates.recompute_budget_spent(
                        effect.budget_category_id, effect.date
                    ),
                    user_id=self.user_id,
                    budget_category_id=effect.budget_category_id,
                    transaction_id=transaction_id,
                )

    def delete(self, transaction_id: int) -> None:
        txn = self.ledger.get(transaction_id)
        before = LedgerEffect.of(txn)
        self.ledger.delete(transaction_id)
        logger.info(
            f"transaction_deleted: user_id={self.user_id} transaction_id={transaction_id}"
        )
        if before.settled and before.account_id is not None:
            run_side_effect(
                self.session,
                "account_balance_reverse",
                lambda: self.aggregates.reverse_on_account(
                    before.account_id, before.type, before.amount_cents
                ),
                user_id=self.user_id,
                account_id=before.account_id,
                transaction_id=transaction_id,
            )
        if before.counts_toward_budget:
            run_side_effect(
                self.session,
                "budget_recompute",
                lambda: self.aggregates.recompute_budget_spent(
                    before.budget_category_id, before.date
                ),
                user_id=self.user_id,
                budget_category_id=before.budget_category_id,
                transaction_id=transaction_id,
            )

    def _history(self) -> list[Transaction]:
        return sorted(self.ledger.list_by_user(), key=lambda t: t.id)

    def suggest_category(self, name: str, min_confidence: float = 0.6) -> Optional[str]:
        return suggest(name, self._history(), min_confidence)

    def category_suggestions(self, name: str) -> list[CategorySuggestion]:
        return suggest_many(name, self._history())

    def unique_names(self) -> list[NameGroup]:
        return group_by_name(self._history())

    def export_csv(self, period: Optional[Period] = None) -> str:
        return export_transactions(
            self.list_all(period), currency=get_settings().default_currency
        )


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.aggregates = AggregateEngine(session, self.user_id)

    def list_all(self) -> list[Account]:
        """Accounts with balances recomputed from the ledger."""
        stmt = select(Account).where(Account.user_id == self.user_id).order_by(Account.id)
        accounts = list(self.session.scalars(stmt).all())
        self.aggregates.refresh_account_balances(accounts)
        return accounts

    def get(self, account_id: int) -> Account:
        return _get_owned(self.session, Account, self.user_id, account_id, "Account")

    def create(self, data: Payload) -> Account:
        data = validate_input(AccountIn, data)
        is_credit_card = data.type == AccountType.credit_card
        account = Account(
            user_id=self.user_id,
            id=next_entity_id(self.session, Account, self.user_id),
            name=data.name,
            type=data.type,
            # Card debt comes from the ledger only.
            balance_cents=0 if is_credit_card else data.balance_cents,
            limit_cents=data.limit_cents if is_credit_card else None,
            currency=data.currency or get_settings().default_currency,
            bank_name=data.bank_name,
            account_number=data.account_number,
            color=data.color,
            icon=data.icon,
            is_active=data.is_active,
            notes=data.notes,
        )
        self.session.add(account)
        _commit(self.session, "create_account")
        return account

    def update(self, account_id: int, data: Payload) -> Account:
        data = validate_input(AccountUpdate, data)
        account = self.get(account_id)
        fields = data.model_fields_set

        if "type" in fields and data.type is not None and data.type != account.type:
            leaving_card = account.type == AccountType.credit_card
            account.type = data.type
            if data.type == AccountType.credit_card:
                account.balance_cents = 0
            elif leaving_card:
                account.limit_cents = None
        if "balance_cents" in fields and data.balance_cents is not None:
            if account.type != AccountType.credit_card:
                account.balance_cents = data.balance_cents
        if "limit_cents" in fields and account.type == AccountType.credit_card:
            account.limit_cents = data.limit_cents
        for field in ("name", "currency", "is_active"):
            value = getattr(data, field)
            if field in fields and value is not None:
                setattr(account, field, value)
        for field in ("bank_name", "account_number", "color", "icon", "notes"):
            if field in fields:
                setattr(account, field, getattr(data, field) or None)

        _commit(self.session, "update_account")
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        self.session.delete(account)
        _commit(self.session, "delete_account")


class BudgetCategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.aggregates = AggregateEngine(session, self.user_id)

    def list_all(self, reference_date: Optional[date] = None) -> list[BudgetCategory]:
        """Categories with ``spent`` recomputed for the reference month."""
        stmt = (
            select(BudgetCategory)
            .where(BudgetCategory.user_id == self.user_id)
            .order_by(BudgetCategory.id)
        )
        categories = list(self.session.scalars(stmt).all())
        self.aggregates.refresh_budget_categories(
            categories, reference_date or local_today()
        )
        return categories

    def get(self, category_id: int) -> BudgetCategory:
        return _get_owned(
            self.session, BudgetCategory, self.user_id, category_id, "Budget category"
        )

    def create(self, data: Payload) -> BudgetCategory:
        data = validate_input(BudgetCategoryIn, data)
        category = BudgetCategory(
            user_id=self.user_id,
            id=next_entity_id(self.session, BudgetCategory, self.user_id),
            name=data.name,
            budget_cents=data.budget_cents,
            spent_cents=0,
            icon=data.icon,
            color=data.color,
        )
        self.session.add(category)
        _commit(self.session, "create_budget_category")
        return category

    def update(self, category_id: int, data: Payload) -> BudgetCategory:
        data = validate_input(BudgetCategoryUpdate, data)
        category = self.get(category_id)
        for field in data.model_fields_set:
            value = getattr(data, field)
            if value is not None:
                setattr(category, field, value)
        _commit(self.session, "update_budget_category")
        return category

    def recompute(self, category_id: int, reference_date: Optional[date] = None) -> int:
        self.get(category_id)
        spent = self.aggregates.recompute_budget_spent(
            category_id, reference_date or local_today()
        )
        _commit(self.session, "recompute_budget_category")
        return int(spent or 0)

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        self.session.delete(category)
        _commit(self.session, "delete_budget_category")


class SavingsGoalService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[SavingsGoal]:
        stmt = (
            select(SavingsGoal)
            .where(SavingsGoal.user_id == self.user_id)
            .order_by(SavingsGoal.id)
        )
        return list(self.session.scalars(stmt).all())

    def get(self, goal_id: int) -> SavingsGoal:
        return _get_owned(self.session, SavingsGoal, self.user_id, goal_id, "Savings goal")

    def create(self, data: Payload) -> SavingsGoal:
        data = validate_input(SavingsGoalIn, data)
        goal = SavingsGoal(
            user_id=self.user_id,
            id=next_entity_id(self.session, SavingsGoal, self.user_id),
            name=data.name,
            icon=data.icon,
            color=data.color,
            current_cents=to_cents(data.current),
            target_cents=to_cents(data.target),
            monthly_contribution_cents=to_cents(data.monthly_contribution),
            due_date=data.due_date,
        )
        self.session.add(goal)
        _commit(self.session, "create_savings_goal")
        return goal

    def update(self, goal_id: int, data: Payload) -> SavingsGoal:
        data = validate_input(SavingsGoalUpdate, data)
        goal = self.get(goal_id)
        money_fields = {
            "current": "current_cents",
            "target": "target_cents",
            "monthly_contribution": "monthly_contribution_cents",
        }
        for field in data.model_fields_set:
            value = getattr(data, field)
            if value is None:
                continue
            if field in money_fields:
                setattr(goal, money_fields[field], to_cents(value))
            else:
                setattr(goal, field, value)
        _commit(self.session, "update_savings_goal")
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        _commit(self.session, "delete_savings_goal")

    def progress(self, goal_id: int) -> GoalProgress:
        return goal_progress(self.get(goal_id))

    def summary(self) -> SavingsSummary:
        ledger = LedgerStore(self.session, self.user_id)
        return savings_summary(self.list_all(), ledger.list_by_user())


@dataclass(frozen=True)
class BillKpis:
    total_monthly_cents: int
    active_count: int
    upcoming_count: int
    due_soon_count: int
    overdue_count: int


class RecurringBillService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self, *, active_only: bool = False) -> list[RecurringBill]:
        stmt = (
            select(RecurringBill)
            .where(RecurringBill.user_id == self.user_id)
            .order_by(RecurringBill.next_due_date, RecurringBill.id)
        )
        if active_only:
            stmt = stmt.where(RecurringBill.is_active.is_(True))
        return list(self.session.scalars(stmt).all())

    def get(self, bill_id: int) -> RecurringBill:
        return _get_owned(
            self.session, RecurringBill, self.user_id, bill_id, "Recurring bill"
        )

    def create(self, data: Payload) -> RecurringBill:
        data = validate_input(RecurringBillIn, data)
        bill = RecurringBill(
            user_id=self.user_id,
            id=next_entity_id(self.session, RecurringBill, self.user_id),
            **data.model_dump(),
        )
        self.session.add(bill)
        _commit(self.session, "create_recurring_bill")
        return bill

    def update(self, bill_id: int, data: Payload) -> RecurringBill:
        data = validate_input(RecurringBillUpdate, data)
        bill = self.get(bill_id)
        for field in data.model_fields_set:
            value = getattr(data, field)
            if field in ("notes", "budget_category_id", "last_paid_date"):
                setattr(bill, field, value or None)
            elif value is not None:
                setattr(bill, field, value)
        _commit(self.session, "update_recurring_bill")
        return bill

    def delete(self, bill_id: int) -> None:
        bill = self.get(bill_id)
        self.session.delete(bill)
        _commit(self.session, "delete_recurring_bill")

    def mark_paid(self, bill_id: int, paid_on: Optional[date] = None) -> RecurringBill:
        """Record a payment; the next due date counts from the payment date."""
        bill = self.get(bill_id)
        paid_on = paid_on or local_today()
        bill.last_paid_date = paid_on
        bill.next_due_date = next_due_date(paid_on, bill.frequency)
        _commit(self.session, "mark_bill_paid")
        logger.info(
            f"bill_paid: user_id={self.user_id} bill_id={bill_id} "
            f"paid_on={paid_on.isoformat()} next_due={bill.next_due_date.isoformat()}"
        )
        return bill

    def kpis(self, today: Optional[date] = None) -> BillKpis:
        today = today or local_today()
        active = self.list_all(active_only=True)
        days_until = [(bill.next_due_date - today).days for bill in active]
        return BillKpis(
            total_monthly_cents=sum(
                monthly_equivalent_cents(bill.amount_cents, bill.frequency)
                for bill in active
            ),
            active_count=len(active),
            upcoming_count=sum(1 for days in days_until if 0 <= days <= 30),
            due_soon_count=sum(1 for days in days_until if 0 <= days <= 7),
            overdue_count=sum(1 for days in days_until if days < 0),
        )


class CustomCategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[CustomCategory]:
        stmt = (
            select(CustomCategory)
            .where(CustomCategory.user_id == self.user_id)
            .order_by(CustomCategory.id)
        )
        return list(self.session.scalars(stmt).all())

    def _find(self, name: str) -> Optional[CustomCategory]:
        return self.session.scalar(
            select(CustomCategory).where(
                CustomCategory.user_id == self.user_id,
                CustomCategory.name == name.strip(),
            )
        )

    def create(self, data: Payload) -> CustomCategory:
        data = validate_input(CustomCategoryIn, data)
        if self._find(data.name):
            raise DuplicateError("Category already exists")
        category = CustomCategory(
            user_id=self.user_id,
            id=next_entity_id(self.session, CustomCategory, self.user_id),
            name=data.name,
            color=data.color,
        )
        self.session.add(category)
        _commit(self.session, "create_custom_category")
        return category

    def delete(self, name: str) -> None:
        category = self._find(name)
        if not category:
            raise NotFoundError("Custom category not found")
        self.session.delete(category)
        _commit(self.session, "delete_custom_category")


def user_ids_with_data(session: Session) -> list[int]:
    stmt = union(
        select(Transaction.user_id),
        select(Account.user_id),
        select(BudgetCategory.user_id),
    )
    return sorted(int(row[0]) for row in session.execute(stmt))


class ReconciliationService:
    """Full recompute of every stored aggregate for one user."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def run(self, reference_date: Optional[date] = None) -> dict[str, int]:
        accounts = AccountService(self.session, self.user_id).list_all()
        categories = BudgetCategoryService(self.session, self.user_id).list_all(
            reference_date
        )
        return {"accounts": len(accounts), "budget_categories": len(categories)}
