from __future__ import annotations

import logging
from typing import Optional, Sequence, Type

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from errors import NotFoundError, StorageError
from models import Transaction, TransactionType

logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


def next_entity_id(session: Session, model: Type, user_id: int) -> int:
    """Ids are scoped per user and entity type: ``max(id) + 1``, starting at 1."""
    current = session.execute(
        select(func.max(model.id)).where(model.user_id == user_id)
    ).scalar_one()
    return int(current or 0) + 1


class LedgerStore:
    """Append-only transaction storage for one user."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def next_id(self) -> int:
        return next_entity_id(self.session, Transaction, self.user_id)

    def append(self, txn: Transaction) -> int:
        txn.user_id = self.user_id
        try:
            txn.id = self.next_id()
            self.session.add(txn)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(f"ledger_append_failed: user_id={self.user_id} error={exc}")
            raise StorageError("Failed to store transaction") from exc
        return txn.id

    def append_many(self, txns: Sequence[Transaction]) -> list[int]:
        """Store a batch under consecutive ids in input order, in one commit."""
        try:
            start = self.next_id()
            for offset, txn in enumerate(txns):
                txn.user_id = self.user_id
                txn.id = start + offset
            self.session.add_all(txns)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error(
                f"ledger_append_many_failed: user_id={self.user_id} "
                f"count={len(txns)} error={exc}"
            )
            raise StorageError("Failed to store transactions") from exc
        return [txn.id for txn in txns]

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, (self.user_id, transaction_id))
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def _scalars(self, stmt) -> list[Transaction]:
        try:
            return list(self.session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise StorageError("Failed to read transactions") from exc

    def list_by_user(self) -> list[Transaction]:
        return self._scalars(
            select(Transaction).where(Transaction.user_id == self.user_id)
        )

    def list_by_account(self, account_id: int) -> list[Transaction]:
        return self._scalars(
            select(Transaction).where(
                Transaction.user_id == self.user_id,
                Transaction.account_id == account_id,
            )
        )

    def list_by_budget_category(
        self,
        budget_category_id: int,
        *,
        type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        stmt = select(Transaction).where(
            Transaction.user_id == self.user_id,
            Transaction.budget_category_id == budget_category_id,
        )
        if type:
            stmt = stmt.where(Transaction.type == type)
        return self._scalars(stmt)

    def list_by_name(self, name: str) -> list[Transaction]:
        return self._scalars(
            select(Transaction).where(
                Transaction.user_id == self.user_id,
                func.lower(Transaction.name) == name.strip().lower(),
            )
        )

    def rename_category_for_name(self, exact_name: str, new_category: str) -> int:
        """Set ``category`` on every transaction named exactly ``exact_name``.

        Matching is case-sensitive on the trimmed name. Rows already carrying
        ``new_category`` are not counted.
        """
        stmt = (
            update(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.name == exact_name.strip(),
                Transaction.category != new_category,
            )
            .values(category=new_category)
            .execution_options(synchronize_session="fetch")
        )
        try:
            result = self.session.execute(stmt)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError("Failed to update transaction categories") from exc
        return int(result.rowcount or 0)

    def save(self, txn: Transaction) -> Transaction:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError("Failed to update transaction") from exc
        return txn

    def delete(self, transaction_id: int) -> Transaction:
        txn = self.get(transaction_id)
        try:
            self.session.delete(txn)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise StorageError("Failed to delete transaction") from exc
        return txn
