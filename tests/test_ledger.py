from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import NotFoundError
from ledger import LedgerStore, next_entity_id
from models import Account, AccountType, Transaction, TransactionType


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def _txn(name: str = "Coffee", category: str = "Food", **kwargs) -> Transaction:
    values = dict(
        name=name,
        category=category,
        date=date(2026, 10, 1),
        amount_cents=450,
        type=TransactionType.expense,
    )
    values.update(kwargs)
    return Transaction(**values)


def test_empty_ledger_starts_at_one() -> None:
    session = make_session()
    assert LedgerStore(session, 1).next_id() == 1


def test_next_id_follows_current_max() -> None:
    session = make_session()
    session.add(_txn(user_id=1, id=7))
    session.commit()

    store = LedgerStore(session, 1)
    assert store.next_id() == 8
    assert store.append(_txn()) == 8


def test_ids_are_scoped_per_user_and_entity() -> None:
    session = make_session()
    LedgerStore(session, 1).append(_txn())
    LedgerStore(session, 1).append(_txn())

    assert LedgerStore(session, 2).append(_txn()) == 1
    assert next_entity_id(session, Account, 1) == 1

    session.add(Account(user_id=1, id=1, name="Chequing", type=AccountType.checking))
    session.commit()
    assert next_entity_id(session, Account, 1) == 2


def test_append_many_assigns_consecutive_ids_in_order() -> None:
    session = make_session()
    store = LedgerStore(session, 1)
    store.append(_txn())

    ids = store.append_many([_txn("A"), _txn("B"), _txn("C")])

    assert ids == [2, 3, 4]
    assert [store.get(i).name for i in ids] == ["A", "B", "C"]


def test_get_is_scoped_to_user() -> None:
    session = make_session()
    LedgerStore(session, 1).append(_txn())

    with pytest.raises(NotFoundError):
        LedgerStore(session, 2).get(1)


def test_list_by_name_ignores_case_and_padding() -> None:
    session = make_session()
    store = LedgerStore(session, 1)
    store.append(_txn("Netflix"))
    store.append(_txn("NETFLIX"))
    store.append(_txn("Spotify"))

    assert len(store.list_by_name("  netflix ")) == 2


def test_rename_category_counts_only_changed_rows() -> None:
    session = make_session()
    store = LedgerStore(session, 1)
    store.append(_txn("Coffee Shop", "Food"))
    store.append(_txn("Coffee Shop", "Dining"))
    store.append(_txn("coffee shop", "Food"))
    LedgerStore(session, 2).append(_txn("Coffee Shop", "Food"))

    assert store.rename_category_for_name(" Coffee Shop ", "Dining") == 1
    assert store.rename_category_for_name("Coffee Shop", "Dining") == 0
    assert store.get(3).category == "Food"
    assert LedgerStore(session, 2).get(1).category == "Food"


def test_delete_removes_row() -> None:
    session = make_session()
    store = LedgerStore(session, 1)
    store.append(_txn())

    store.delete(1)

    assert store.list_by_user() == []
    with pytest.raises(NotFoundError):
        store.delete(1)
