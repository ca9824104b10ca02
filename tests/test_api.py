import json
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from database import make_engine, make_session_factory
from main import AppContext, create_app
from persistence import StateRepository, load_store
from recurrence import local_today


@pytest.fixture()
def context() -> AppContext:
    factory = make_session_factory(make_engine("sqlite:///:memory:"))
    repository = StateRepository(factory, "test-storage")
    return AppContext(load_store(repository), repository)


@pytest.fixture()
def client(context: AppContext) -> TestClient:
    test_client = TestClient(create_app(context, enable_scheduler=False))
    token = test_client.get("/api/csrf").json()["token"]
    test_client.headers.update({"X-CSRF-Token": token})
    return test_client


def _expense(**overrides) -> dict:
    payload = {
        "description": "Groceries",
        "amount": "150",
        "date": local_today().isoformat(),
        "category": "1",
        "type": "expense",
        "account": "1",
    }
    payload.update(overrides)
    return payload


def test_mutations_require_csrf_token(context: AppContext) -> None:
    client = TestClient(create_app(context, enable_scheduler=False))
    res = client.post("/api/transactions", json=_expense())
    assert res.status_code == 400
    res = client.post(
        "/api/transactions", json=_expense(), headers={"X-CSRF-Token": "forged"}
    )
    assert res.status_code == 400
    assert context.store.transactions == []


def test_create_transaction_moves_balance_and_saves(
    client: TestClient, context: AppContext
) -> None:
    res = client.post("/api/transactions", json=_expense())
    assert res.status_code == 201
    created = res.json()
    assert created["description"] == "Groceries"

    accounts = client.get("/api/accounts").json()
    balances = {a["id"]: Decimal(str(a["balance"])) for a in accounts["accounts"]}
    assert balances == {"1": Decimal("4850"), "2": Decimal("250")}
    assert Decimal(str(accounts["total_balance"])) == Decimal("5100")

    saved = context.repository.load()
    assert saved is not None
    assert [t.id for t in saved.transactions] == [created["id"]]


def test_create_transaction_validation(client: TestClient) -> None:
    assert client.post("/api/transactions", json=_expense(account="missing")).status_code == 400
    assert client.post("/api/transactions", json=_expense(amount="0")).status_code == 422
    assert client.post("/api/transactions", json=_expense(description="")).status_code == 422


def test_update_and_delete_unknown_ids_return_404(client: TestClient) -> None:
    assert client.patch("/api/transactions/nope", json={"description": "x"}).status_code == 404
    assert client.delete("/api/transactions/nope").status_code == 404
    assert client.delete("/api/budgets/nope").status_code == 404
    assert client.post("/api/alerts/nope/read").status_code == 404


def test_update_then_delete_transaction(client: TestClient) -> None:
    txn_id = client.post("/api/transactions", json=_expense()).json()["id"]

    res = client.patch(f"/api/transactions/{txn_id}", json={"description": "Market"})
    assert res.status_code == 200
    assert res.json()["description"] == "Market"
    assert client.patch(f"/api/transactions/{txn_id}", json={"bogus": 1}).status_code == 422

    assert client.delete(f"/api/transactions/{txn_id}").status_code == 204
    assert client.get("/api/transactions").json() == []


def test_list_transactions_with_filters(client: TestClient) -> None:
    client.post("/api/transactions", json=_expense(description="Coffee beans", amount="18"))
    client.post("/api/transactions", json=_expense(description="Bus", amount="3", category="2"))
    client.post(
        "/api/transactions",
        json=_expense(description="Salary", amount="2000", type="income", category="3"),
    )

    res = client.get("/api/transactions", params={"type": "expense", "q": "coffee"})
    assert [t["description"] for t in res.json()] == ["Coffee beans"]

    res = client.get("/api/transactions", params=[("category", "2"), ("category", "3")])
    assert sorted(t["description"] for t in res.json()) == ["Bus", "Salary"]

    assert client.get("/api/transactions", params={"type": "transfer"}).status_code == 422


def test_dashboard_summary(client: TestClient) -> None:
    client.post("/api/transactions", json=_expense(amount="40"))
    client.post(
        "/api/transactions",
        json=_expense(description="Salary", amount="1000", type="income", category="3"),
    )

    data = client.get("/api/dashboard").json()
    assert Decimal(str(data["monthly_income"])) == Decimal("1000")
    assert Decimal(str(data["monthly_expenses"])) == Decimal("40")
    assert Decimal(str(data["monthly_net"])) == Decimal("960")
    assert len(data["monthly_trend"]) == 6
    assert [p["name"] for p in data["category_spending"]] == ["Food & Dining"]
    assert len(data["recent_transactions"]) == 2


def test_budgets_report_progress(client: TestClient) -> None:
    res = client.post("/api/budgets", json={"category_id": "1", "limit": "500"})
    assert res.status_code == 201
    client.post("/api/transactions", json=_expense(amount="420"))

    data = client.get("/api/budgets").json()
    row = data["budgets"][0]
    assert row["category"] == "Food & Dining"
    assert row["percentage"] == 84
    assert row["is_near_limit"] is True
    assert row["is_over_budget"] is False
    assert data["summary"]["over_budget_count"] == 0

    scan = client.post("/api/alerts/scan").json()
    assert scan["created"] == 1
    alerts = client.get("/api/alerts", params={"status": "unread"}).json()
    assert alerts["unread_count"] == 1
    alert_id = alerts["alerts"][0]["id"]
    assert client.post(f"/api/alerts/{alert_id}/read").status_code == 200
    assert client.get("/api/alerts").json()["unread_count"] == 0
    assert client.delete("/api/alerts").status_code == 204


def test_categories_and_subcategories(client: TestClient) -> None:
    res = client.post(
        "/api/categories",
        json={"name": "Health", "color": "#00AA00", "icon": "+", "type": "expense"},
    )
    assert res.status_code == 201
    category_id = res.json()["id"]

    res = client.post(f"/api/categories/{category_id}/subcategories", json={"name": "Pharmacy"})
    assert res.status_code == 201
    subs = res.json()["subcategories"]
    assert [s["name"] for s in subs] == ["Pharmacy"]

    res = client.delete(f"/api/categories/{category_id}/subcategories/{subs[0]['id']}")
    assert res.json()["subcategories"] == []
    assert client.delete(f"/api/categories/{category_id}/subcategories/x").status_code == 404
    assert client.delete(f"/api/categories/{category_id}").status_code == 204


def test_goals_complete_and_filter(client: TestClient) -> None:
    goal_id = client.post(
        "/api/goals",
        json={
            "name": "Trip",
            "target_amount": "1000",
            "current_amount": "250",
            "target_date": "2030-01-01",
            "category": "travel",
        },
    ).json()["id"]

    data = client.get("/api/goals").json()
    assert data["goals"][0]["percentage"] == 25
    assert data["summary"]["active"] == 1

    assert client.post(f"/api/goals/{goal_id}/complete").json()["is_completed"] is True
    assert client.get("/api/goals", params={"status": "active"}).json()["goals"] == []


def test_csv_preview_and_commit(client: TestClient, context: AppContext) -> None:
    content = (
        "date,description,amount,category\n"
        "2025-03-01,Salary March,2500,Salary\n"
        "2025-03-02,Supermarket,-80.25,Food & Dining\n"
        "2025-03-03,Skip me,-5,\n"
    )
    files = {"file": ("import.csv", content, "text/csv")}

    preview = client.post("/api/transactions/import/preview", files=files)
    assert preview.status_code == 200
    rows = preview.json()["rows"]
    assert [r["type"] for r in rows] == ["income", "expense", "expense"]
    assert context.store.transactions == []

    res = client.post(
        "/api/transactions/import/commit", files=files, data={"skip": ["2"]}
    )
    assert res.json() == {"imported": 2}
    assert Decimal(str(context.store.get_account_balance("1"))) == Decimal("7419.75")

    bad = {"file": ("bad.csv", "foo,bar\n1,2\n", "text/csv")}
    assert client.post("/api/transactions/import/preview", files=bad).status_code == 400


def test_csv_export(client: TestClient) -> None:
    client.post("/api/transactions", json=_expense())
    res = client.get("/api/transactions/export.csv")
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "attachment" in res.headers["content-disposition"]
    lines = res.text.strip().splitlines()
    assert lines[0] == "Date,Description,Amount,Type,Category,Account"
    assert lines[1].endswith("Groceries,150.00,expense,Food & Dining,Main Checking")


def test_backup_round_trip(client: TestClient, context: AppContext) -> None:
    client.post("/api/transactions", json=_expense())
    exported = client.get("/api/backup")
    assert "finance-tracker-backup-" in exported.headers["content-disposition"]
    backup = exported.json()

    client.post("/api/transactions", json=_expense(description="Later"))
    res = client.post(
        "/api/backup",
        files={"file": ("backup.json", json.dumps(backup), "application/json")},
        data={"mode": "replace"},
    )
    assert res.status_code == 200
    assert res.json()["imported"]["transactions"] == 1
    assert [t.description for t in context.store.transactions] == ["Groceries"]

    res = client.post(
        "/api/backup",
        files={"file": ("backup.json", "not json", "application/json")},
    )
    assert res.status_code == 400


def test_session_settings(client: TestClient, context: AppContext) -> None:
    res = client.post("/api/login", json={"email": "sam@example.com", "password": "secret1"})
    assert res.json()["is_authenticated"] is True
    assert res.json()["user"]["name"] == "sam"
    assert client.post("/api/login", json={"email": "bad", "password": "secret1"}).status_code == 422

    assert client.post("/api/settings/theme").json() == {"theme": "dark"}
    assert client.post("/api/settings/sidebar", json={"open": False}).json() == {
        "sidebar_open": False
    }
    session = client.get("/api/session").json()
    assert session["theme"] == "dark"
    assert session["sidebar_open"] is False

    assert client.post("/api/logout").json() == {"is_authenticated": False}
    saved = context.repository.load()
    assert saved is not None and saved.is_authenticated is False


def test_patch_with_null_for_required_field_is_rejected(
    client: TestClient, context: AppContext
) -> None:
    res = client.patch("/api/accounts/1", json={"name": None})
    assert res.status_code == 422
    assert res.json()["detail"][0]["loc"] == ["body", "name"]
    assert context.store.get_account("1").name == "Main Checking"

    txn_id = client.post("/api/transactions", json=_expense(subcategory="1-2")).json()["id"]
    assert client.patch(f"/api/transactions/{txn_id}", json={"amount": None}).status_code == 422
    assert client.patch("/api/budgets/x", json={"limit": None}).status_code == 422

    res = client.patch(f"/api/transactions/{txn_id}", json={"subcategory": None})
    assert res.status_code == 200
    assert res.json()["subcategory"] is None
