import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app

USER_1 = {"x-user-id": "1", "x-user-role": "user"}
USER_2 = {"x-user-id": "2", "x-user-role": "user"}


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    # Not used as a context manager, so the scheduler never starts.
    yield TestClient(app)
    app.dependency_overrides.clear()


def expense(**overrides) -> dict:
    data = {
        "name": "Groceries",
        "category": "Food",
        "date": "2026-10-05",
        "amount": 2500,
        "type": "expense",
    }
    data.update(overrides)
    return data


def test_missing_user_is_unauthorized(client) -> None:
    assert client.get("/api/transactions").status_code == 401
    assert client.get("/api/transactions", headers={"x-user-id": "abc"}).status_code == 401


@pytest.mark.parametrize("header", ["x-user-id", "x-view-as-user"])
@pytest.mark.parametrize("value", ["0", "-3"])
def test_non_positive_user_id_is_unauthorized(client, header, value) -> None:
    client.post("/api/transactions", json=expense(name="Secret"), headers=USER_1)
    headers = {"x-user-id": "2", "x-user-role": "admin", header: value}

    res = client.get("/api/transactions", headers=headers)

    assert res.status_code == 401


def test_budget_month_filter_and_recompute(client) -> None:
    category = client.post(
        "/api/budget-categories", json={"name": "Food", "budget_cents": 50000}, headers=USER_1
    ).json()
    client.post(
        "/api/transactions", json=expense(budget_category_id=category["id"]), headers=USER_1
    )

    october = client.get("/api/budget-categories", params={"month": "2026-10"}, headers=USER_1)
    assert october.json()[0]["spent_cents"] == 2500
    september = client.get(
        "/api/budget-categories", params={"month": "2026-09-15"}, headers=USER_1
    )
    assert september.json()[0]["spent_cents"] == 0
    bad = client.get("/api/budget-categories", params={"month": "2026-13"}, headers=USER_1)
    assert bad.status_code == 400

    res = client.post(
        f"/api/budget-categories/{category['id']}/recompute",
        params={"month": "2026-10"},
        headers=USER_1,
    )
    assert res.json() == {"id": category["id"], "spent_cents": 2500}


def test_savings_goal_progress(client) -> None:
    goal = client.post(
        "/api/savings-goals",
        json={"name": "Trip", "target": 400, "current": 100, "due_date": "2027-01-01"},
        headers=USER_1,
    ).json()

    res = client.get(f"/api/savings-goals/{goal['id']}/progress", headers=USER_1)

    assert res.json() == {
        "goal_id": goal["id"],
        "percentage": 25,
        "remaining_cents": 30000,
        "is_complete": False,
    }
    assert client.get("/api/savings-goals/99/progress", headers=USER_1).status_code == 404


def test_create_and_fetch_transaction(client) -> None:
    res = client.post("/api/transactions", json=expense(), headers=USER_1)
    assert res.status_code == 201
    body = res.json()
    assert body["id"] == 1
    assert body["status"] == "completed"
    assert body["time"] == "00:00"

    res = client.get("/api/transactions/1", headers=USER_1)
    assert res.status_code == 200
    assert res.json()["amount_cents"] == 2500

    assert client.get("/api/transactions/1", headers=USER_2).status_code == 404
    assert client.get("/api/transactions", headers=USER_2).json() == []


def test_validation_errors_are_400(client) -> None:
    res = client.post("/api/transactions", json=expense(name=""), headers=USER_1)
    assert res.status_code == 400
    assert res.json()["errors"]


def test_import_reports_row_errors(client) -> None:
    rows = [expense(), expense(amount=None), expense()]
    res = client.post("/api/transactions/import", json={"transactions": rows}, headers=USER_1)

    assert res.status_code == 400
    assert res.json()["errors"][0].startswith("Row 2:")
    assert client.get("/api/transactions", headers=USER_1).json() == []

    rows[1]["amount"] = 900
    res = client.post("/api/transactions/import", json={"transactions": rows}, headers=USER_1)
    assert res.status_code == 201
    assert res.json()["count"] == 3


def test_view_as_requires_dev_or_admin(client) -> None:
    client.post("/api/transactions", json=expense(name="Theirs"), headers=USER_2)

    res = client.get("/api/transactions", headers={**USER_1, "x-view-as-user": "2"})
    assert res.status_code == 403

    admin = {"x-user-id": "1", "x-user-role": "admin", "x-view-as-user": "2"}
    res = client.get("/api/transactions", headers=admin)
    assert res.status_code == 200
    assert [t["name"] for t in res.json()] == ["Theirs"]


def test_account_balance_follows_ledger(client) -> None:
    res = client.post(
        "/api/accounts", json={"name": "Visa", "type": "credit_card"}, headers=USER_1
    )
    account_id = res.json()["id"]
    client.post("/api/transactions", json=expense(amount=500, account_id=account_id), headers=USER_1)
    client.post(
        "/api/transactions",
        json=expense(amount=200, type="income", account_id=account_id),
        headers=USER_1,
    )

    accounts = client.get("/api/accounts", headers=USER_1).json()
    assert accounts[0]["balance_cents"] == 300


def test_recategorize_and_unique_names(client) -> None:
    for _ in range(2):
        client.post("/api/transactions", json=expense(name="Coffee Shop"), headers=USER_1)

    res = client.post(
        "/api/transactions/update-category",
        json={"transaction_name": "Coffee Shop", "category": "Dining"},
        headers=USER_1,
    )
    assert res.json() == {"modified_count": 2}

    groups = client.get("/api/transactions/unique", headers=USER_1).json()
    assert groups[0]["name"] == "Coffee Shop"
    assert groups[0]["dominant_category"] == "Dining"

    res = client.get("/api/transactions/suggestions", params={"name": "coffee"}, headers=USER_1)
    assert res.json()["category"] == "Dining"


def test_duplicate_custom_category_is_conflict(client) -> None:
    payload = {"name": "Pets", "color": "#ff8800"}
    assert client.post("/api/custom-categories", json=payload, headers=USER_1).status_code == 201
    assert client.post("/api/custom-categories", json=payload, headers=USER_1).status_code == 409
    assert client.delete("/api/custom-categories/Pets", headers=USER_1).status_code == 200
    assert client.delete("/api/custom-categories/Pets", headers=USER_1).status_code == 404


def test_export_csv(client) -> None:
    client.post("/api/transactions", json=expense(), headers=USER_1)

    res = client.get("/api/transactions/export.csv", headers=USER_1)

    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert res.text.splitlines()[0].startswith('"ID","Name"')


def test_bad_period_is_400(client) -> None:
    res = client.get(
        "/api/transactions",
        params={"period": "custom", "start": "2026-10-10", "end": "2026-10-01"},
        headers=USER_1,
    )
    assert res.status_code == 400


def test_bill_mark_paid(client) -> None:
    bill = {
        "name": "Rent",
        "amount_cents": 180000,
        "frequency": "monthly",
        "next_due_date": "2026-10-31",
        "category": "Housing",
    }
    bill_id = client.post("/api/recurring-bills", json=bill, headers=USER_1).json()["id"]

    res = client.post(
        f"/api/recurring-bills/{bill_id}/mark-paid",
        json={"paid_on": "2026-10-31"},
        headers=USER_1,
    )

    assert res.status_code == 200
    assert res.json()["next_due_date"] == "2026-11-30"
    kpis = client.get("/api/recurring-bills/kpis", headers=USER_1).json()
    assert kpis["total_monthly_cents"] == 180000
