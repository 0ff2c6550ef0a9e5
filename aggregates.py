"""Derived values computed from the transaction ledger.

Account balances, budget ``spent`` totals and savings totals are materialized
from transactions. Two paths keep them current:

- the write path applies an incremental delta to the stored value when a
  transaction is created, updated or deleted;
- the read path recomputes the value from the full ledger and writes it back.

Both use the same sign rules, so they agree whenever the ledger is stable.
Concurrent writers can lose an incremental update; the next full recompute
heals it. Write-path updates are side effects: ``run_side_effect`` commits
them separately from the ledger write and logs any failure instead of raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Optional, Sequence

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from errors import NotFoundError
from ledger import LedgerStore, get_current_user_id
from models import (
    Account,
    AccountType,
    BudgetCategory,
    SavingsGoal,
    Transaction,
    TransactionStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)


def is_settled(txn: Transaction) -> bool:
    return txn.status is None or txn.status == TransactionStatus.completed


def coerce_entity_id(value: object) -> Optional[int]:
    """Return ``value`` as an id, or None when it is missing or not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    return None


def balance_delta(
    account_type: AccountType, txn_type: TransactionType, amount_cents: int
) -> int:
    """Signed change one transaction makes to an account balance.

    Asset accounts gain on income and lose on expense. Credit-card balances
    are debt magnitude: a charge raises the debt, a payment lowers it.
    """
    if account_type == AccountType.credit_card:
        if txn_type == TransactionType.expense:
            return amount_cents
        return -amount_cents
    if txn_type == TransactionType.income:
        return amount_cents
    return -amount_cents


def fold_account_balance(account: Account, transactions: Iterable[Transaction]) -> int:
    linked = list(transactions)
    if not linked:
        # Keeps a manually entered opening balance.
        return account.balance_cents
    total = 0
    for txn in linked:
        if is_settled(txn):
            total += balance_delta(account.type, txn.type, txn.amount_cents)
    return total


def same_month(value: date, reference: date) -> bool:
    return value.year == reference.year and value.month == reference.month


def month_spent(transactions: Iterable[Transaction], reference_date: date) -> int:
    return sum(
        txn.amount_cents
        for txn in transactions
        if txn.type == TransactionType.expense
        and is_settled(txn)
        and same_month(txn.date, reference_date)
    )


def progress_percentage(current_cents: int, target_cents: int) -> int:
    if target_cents <= 0:
        return 0
    # Half-up rounding in integer arithmetic.
    return (current_cents * 200 + target_cents) // (target_cents * 2)


@dataclass(frozen=True)
class GoalProgress:
    goal_id: int
    percentage: int
    remaining_cents: int
    is_complete: bool


@dataclass(frozen=True)
class SavingsSummary:
    ledger_contributions_cents: int
    goals_current_cents: int
    total_saved_cents: int
    total_target_cents: int
    progress_percentage: int
    goals: list[GoalProgress]


def goal_progress(goal: SavingsGoal) -> GoalProgress:
    return GoalProgress(
        goal_id=goal.id,
        percentage=progress_percentage(goal.current_cents, goal.target_cents),
        remaining_cents=goal.target_cents - goal.current_cents,
        is_complete=goal.current_cents >= goal.target_cents,
    )


def savings_summary(
    goals: Sequence[SavingsGoal], transactions: Iterable[Transaction]
) -> SavingsSummary:
    contributions = sum(
        txn.savings_amount_cents
        for txn in transactions
        if txn.type == TransactionType.income
        and txn.savings_goal_id is not None
        and (txn.savings_amount_cents or 0) > 0
        and is_settled(txn)
    )
    from_goals = sum(goal.current_cents for goal in goals)
    total_target = sum(goal.target_cents for goal in goals)
    total_saved = contributions + from_goals
    return SavingsSummary(
        ledger_contributions_cents=contributions,
        goals_current_cents=from_goals,
        total_saved_cents=total_saved,
        total_target_cents=total_target,
        progress_percentage=progress_percentage(total_saved, total_target),
        goals=[goal_progress(goal) for goal in goals],
    )


def run_side_effect(
    session: Session,
    operation: str,
    action: Callable[[], object],
    **context: object,
) -> bool:
    """Run and commit a best-effort aggregate update.

    Failures roll back only this update and are logged with ``context``; they
    never reach the caller.
    """
    details = " ".join(f"{key}={value}" for key, value in context.items())
    try:
        action()
        session.commit()
    except NotFoundError as exc:
        session.rollback()
        logger.warning(f"{operation}_skipped: {details} reason={exc}")
        return False
    except Exception:
        session.rollback()
        logger.exception(f"{operation}_failed: {details}")
        return False
    return True


class AggregateEngine:
    def __init__(
        self,
        session: Session,
        user_id: Optional[int] = None,
        ledger: Optional[LedgerStore] = None,
    ) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.ledger = ledger or LedgerStore(session, self.user_id)

    def _account(self, account_id: object) -> Account:
        key = coerce_entity_id(account_id)
        if key is None:
            raise NotFoundError(f"Invalid account id {account_id!r}")
        account = self.session.get(Account, (self.user_id, key))
        if not account:
            raise NotFoundError("Account not found")
        return account

    def account_balance(self, account: Account) -> int:
        """Full recomputation from the ledger. Reads only."""
        return fold_account_balance(account, self.ledger.list_by_account(account.id))

    def refresh_account_balances(self, accounts: Sequence[Account]) -> dict[int, int]:
        """Recompute every account and write changed balances back.

        The recomputed values are returned and set on the instances even when
        the write-back fails.
        """
        balances = {account.id: self.account_balance(account) for account in accounts}
        changed = [a for a in accounts if a.balance_cents != balances[a.id]]
        if not changed:
            return balances

        def write_back() -> None:
            for account in changed:
                account.balance_cents = balances[account.id]

        ok = run_side_effect(
            self.session,
            "account_balance_writeback",
            write_back,
            user_id=self.user_id,
            account_ids=",".join(str(a.id) for a in changed),
        )
        if not ok:
            for account in changed:
                set_committed_value(account, "balance_cents", balances[account.id])
        return balances

    def apply_to_account(self, account_id: object, txn: Transaction) -> Account:
        """Incremental write-path update for one settled transaction."""
        account = self._account(account_id)
        account.balance_cents = (account.balance_cents or 0) + balance_delta(
            account.type, txn.type, txn.amount_cents
        )
        self.session.flush()
        return account

    def reverse_on_account(
        self,
        account_id: object,
        txn_type: TransactionType,
        amount_cents: int,
    ) -> Account:
        account = self._account(account_id)
        account.balance_cents = (account.balance_cents or 0) - balance_delta(
            account.type, txn_type, amount_cents
        )
        self.session.flush()
        return account

    def budget_spent(self, category: BudgetCategory, reference_date: date) -> int:
        expenses = self.ledger.list_by_budget_category(
            category.id, type=TransactionType.expense
        )
        return month_spent(expenses, reference_date)

    def recompute_budget_spent(
        self, budget_category_id: object, reference_date: date
    ) -> Optional[int]:
        """Overwrite ``spent_cents`` with the month total around ``reference_date``.

        Returns None when the category does not exist for this user.
        """
        key = coerce_entity_id(budget_category_id)
        category = (
            self.session.get(BudgetCategory, (self.user_id, key))
            if key is not None
            else None
        )
        if not category:
            logger.warning(
                f"budget_recompute_skipped: user_id={self.user_id} "
                f"budget_category_id={budget_category_id} reason=not found"
            )
            return None
        spent = self.budget_spent(category, reference_date)
        category.spent_cents = spent
        self.session.flush()
        logger.info(
            f"budget_recomputed: user_id={self.user_id} budget_category_id={key} "
            f"month={reference_date:%Y-%m} spent_cents={spent}"
        )
        return spent

    def refresh_budget_categories(
        self, categories: Sequence[BudgetCategory], reference_date: date
    ) -> dict[int, int]:
        spent = {c.id: self.budget_spent(c, reference_date) for c in categories}
        changed = [c for c in categories if c.spent_cents != spent[c.id]]
        if not changed:
            return spent

        def write_back() -> None:
            for category in changed:
                category.spent_cents = spent[category.id]

        ok = run_side_effect(
            self.session,
            "budget_spent_writeback",
            write_back,
            user_id=self.user_id,
            budget_category_ids=",".join(str(c.id) for c in changed),
        )
        if not ok:
            for category in changed:
                set_committed_value(category, "spent_cents", spent[category.id])
        return spent
