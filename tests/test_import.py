from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import ValidationError
from models import Account, AccountType, Transaction, TransactionType
from services import TransactionService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def statement_rows(count: int) -> list[dict]:
    return [
        {
            "name": f"Statement line {idx}",
            "category": "Shopping",
            "date": f"2026-09-{idx:02d}",
            "amount": 1000 + idx,
            "type": "expense",
        }
        for idx in range(1, count + 1)
    ]


def test_import_rejects_whole_batch_on_one_bad_row() -> None:
    session = make_session()
    rows = statement_rows(5)
    del rows[2]["amount"]

    with pytest.raises(ValidationError) as excinfo:
        TransactionService(session, 1).import_many(rows)

    assert len(excinfo.value.errors) == 1
    assert excinfo.value.errors[0].startswith("Row 3:")
    assert session.scalars(select(Transaction)).all() == []


def test_import_collects_every_row_error() -> None:
    session = make_session()
    rows = statement_rows(4)
    rows[0]["type"] = "refund"
    rows[3]["date"] = ""

    with pytest.raises(ValidationError) as excinfo:
        TransactionService(session, 1).import_many(rows)

    assert [e.split(":")[0] for e in excinfo.value.errors] == ["Row 1", "Row 4"]


def test_import_assigns_sequential_ids_after_max() -> None:
    session = make_session()
    session.add(
        Transaction(
            user_id=1,
            id=7,
            name="Existing",
            category="Food",
            date=date(2026, 8, 1),
            amount_cents=100,
            type=TransactionType.expense,
        )
    )
    session.commit()

    created = TransactionService(session, 1).import_many(statement_rows(3))

    assert [t.id for t in created] == [8, 9, 10]
    assert [t.name for t in created] == [
        "Statement line 1",
        "Statement line 2",
        "Statement line 3",
    ]


def test_import_defaults_category_and_allows_zero_amount() -> None:
    session = make_session()
    rows = statement_rows(2)
    del rows[0]["category"]
    rows[1]["amount"] = 0

    created = TransactionService(session, 1).import_many(rows)

    assert created[0].category == "Miscellaneous"
    assert created[1].amount_cents == 0


def test_import_does_not_touch_account_balance() -> None:
    session = make_session()
    session.add(
        Account(
            user_id=1, id=1, name="Chequing", type=AccountType.checking, balance_cents=5000
        )
    )
    session.commit()
    rows = statement_rows(2)
    for row in rows:
        row["account_id"] = 1

    TransactionService(session, 1).import_many(rows)

    assert session.get(Account, (1, 1)).balance_cents == 5000


def test_import_empty_batch_is_noop() -> None:
    session = make_session()

    assert TransactionService(session, 1).import_many([]) == []


def test_import_requires_a_list() -> None:
    session = make_session()

    with pytest.raises(ValidationError):
        TransactionService(session, 1).import_many({"name": "not a list"})
