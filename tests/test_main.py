import pytest
from fastapi.testclient import TestClient

from group_ledger.config import firebase_config
from group_ledger.config.settings import Config
from group_ledger.main import app


@pytest.fixture
def client(db):
    return TestClient(app)


@pytest.fixture
def trip(client):
    response = client.post("/groups", json={"name": "Goa trip", "members": ["B", "C"], "created_by": "A"})
    assert response.status_code == 201
    group_id = response.json()["group_id"]

    response = client.post(f"/groups/{group_id}/expenses", json={
        "paid_by": "A",
        "amount": 90,
        "split_type": "equal",
        "participants": [{"user_id": "A"}, {"user_id": "B"}, {"user_id": "C"}],
        "description": "Dinner",
    })
    assert response.status_code == 201
    return group_id, response.json()["expense_id"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_create_group(client):
    response = client.post("/groups", json={"name": "Flat", "members": ["B"], "created_by": "A"})

    body = response.json()
    assert body["members"] == ["A", "B"]
    assert body["admin_ids"] == ["A"]
    assert body["total_expenses"] == 0.0


def test_create_group_requires_name(client):
    assert client.post("/groups", json={"name": "", "members": ["A"]}).status_code == 422


def test_add_members(client, trip):
    group_id, _ = trip

    response = client.post(f"/groups/{group_id}/members", json={"user_ids": ["D"]})

    assert response.status_code == 200
    assert response.json()["members"] == ["A", "B", "C", "D"]


def test_expense_split(client, trip):
    group_id, expense_id = trip

    balances = client.get(f"/groups/{group_id}/balances").json()["balances"]

    assert balances["A"] == {"paid": 90.0, "owed": 30.0, "net": 60.0}
    assert balances["B"]["net"] == -30.0


def test_expense_with_non_member_is_rejected(client, trip):
    group_id, _ = trip

    response = client.post(f"/groups/{group_id}/expenses", json={
        "paid_by": "Z",
        "amount": 10,
        "participants": [{"user_id": "A"}],
    })

    assert response.status_code == 400
    assert "not a member" in response.json()["detail"]


def test_outstanding_settlements(client, trip):
    group_id, _ = trip

    body = client.get(f"/groups/{group_id}/settlements", params={"user_id": "A"}).json()

    assert [(i["from_user_id"], i["to_user_id"], i["amount"]) for i in body["instructions"]] == [
        ("B", "A", 30.0),
        ("C", "A", 30.0),
    ]
    assert body["user_summary"]["total_to_receive"] == 60.0
    assert body["user_summary"]["to_pay"] == []


def test_settle_up_flow(client, trip):
    group_id, _ = trip
    url = f"/groups/{group_id}/settlements"

    response = client.post(url, json={"from_user_id": "B", "to_user_id": "A", "amount": 40})
    assert response.status_code == 400
    assert response.json()["detail"] == "amount exceeds outstanding balance"

    response = client.post(url, json={"from_user_id": "B", "to_user_id": "A", "amount": 10})
    assert response.status_code == 201

    response = client.post(url, json={"from_user_id": "B", "to_user_id": "A"})
    assert response.status_code == 201
    assert response.json()["amount"] == 20.0
    assert response.json()["status"] == "completed"

    body = client.get(url).json()
    assert [i["from_user_id"] for i in body["instructions"]] == ["C"]
    assert len(body["settled"]) == 2


def test_payment_status_update(client, trip):
    group_id, _ = trip
    url = f"/groups/{group_id}/settlements"
    settlement_id = client.post(url, json={"from_user_id": "C", "to_user_id": "A"}).json()["settlement_id"]

    response = client.patch(f"/settlements/{settlement_id}", json={"status": "cancelled"})

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert len(client.get(url).json()["instructions"]) == 2


def test_payment_status_update_failures(client, trip):
    assert client.patch("/settlements/missing", json={"status": "completed"}).status_code == 404

    group_id, _ = trip
    url = f"/groups/{group_id}/settlements"
    settlement_id = client.post(url, json={"from_user_id": "C", "to_user_id": "A"}).json()["settlement_id"]
    assert client.patch(f"/settlements/{settlement_id}", json={"status": "lost"}).status_code == 400


def test_remove_member(client, trip):
    group_id, expense_id = trip

    response = client.delete(f"/groups/{group_id}/members/B")
    assert response.status_code == 422
    assert client.get(f"/groups/{group_id}/balances").json()["balances"]["B"]["net"] == -30.0

    response = client.delete(f"/groups/{group_id}/members/B", params={"acting_user_id": "C"})
    assert response.status_code == 403

    response = client.delete(f"/groups/{group_id}/members/B", params={"acting_user_id": "A"})
    assert response.status_code == 200
    assert response.json() == {
        "removed_member_id": "B",
        "changed_expense_ids": [expense_id],
        "skipped_expense_ids": [],
    }

    balances = client.get(f"/groups/{group_id}/balances").json()["balances"]
    assert balances == {
        "A": {"paid": 90.0, "owed": 45.0, "net": 45.0},
        "C": {"paid": 0.0, "owed": 45.0, "net": -45.0},
    }


def test_delete_expense(client, trip):
    group_id, expense_id = trip

    response = client.delete(f"/expenses/{expense_id}")

    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert client.get(f"/groups/{group_id}/settlements").json()["instructions"] == []
    assert client.delete("/expenses/missing").status_code == 404


def test_unknown_group(client):
    assert client.get("/groups/missing/balances").status_code == 404


def test_store_unavailable(monkeypatch):
    monkeypatch.setattr(Config, "FIREBASE_CREDENTIALS", "")
    firebase_config.set_db(None)

    response = TestClient(app).get("/groups/g1/balances")

    assert response.status_code == 503


def test_edit_expense(client, trip):
    group_id, expense_id = trip

    response = client.patch(f"/expenses/{expense_id}", json={
        "amount": 100,
        "split_type": "exact",
        "participants": [{"user_id": "A", "amount": 20}, {"user_id": "B", "amount": 80}],
    })

    assert response.status_code == 200
    assert response.json()["split_type"] == "exact"
    balances = client.get(f"/groups/{group_id}/balances").json()["balances"]
    assert balances["B"]["net"] == -80.0
    assert balances["C"]["net"] == 0.0

    response = client.patch(f"/expenses/{expense_id}", json={"amount": 150})
    assert [p["amount"] for p in response.json()["participants"]] == [30.0, 120.0]


def test_edit_expense_failures(client, trip):
    _, expense_id = trip

    assert client.patch("/expenses/missing", json={"amount": 10}).status_code == 404
    assert client.patch(f"/expenses/{expense_id}", json={"amount": 0}).status_code == 422
    response = client.patch(f"/expenses/{expense_id}", json={"participants": [{"user_id": "Z"}]})
    assert response.status_code == 400


def test_admin_routes(client, trip):
    group_id, _ = trip
    url = f"/groups/{group_id}/admins"

    assert client.post(url, json={"user_id": "C", "acting_user_id": "B"}).status_code == 403

    response = client.post(url, json={"user_id": "B", "acting_user_id": "A"})
    assert response.status_code == 200
    assert response.json()["admin_ids"] == ["A", "B"]

    response = client.delete(f"{url}/A", params={"acting_user_id": "B"})
    assert response.json()["admin_ids"] == ["B"]

    response = client.delete(f"{url}/B", params={"acting_user_id": "B"})
    assert response.status_code == 400
    assert client.delete(f"{url}/B").status_code == 422


def test_user_groups_and_overview(client, trip):
    group_id, _ = trip
    client.post(f"/groups/{group_id}/settlements", json={"from_user_id": "B", "to_user_id": "A", "amount": 10})

    user_groups = client.get("/users/B/groups").json()
    assert [g["group_id"] for g in user_groups] == [group_id]

    body = client.get("/users/B/overview").json()
    assert body["total_you_owe"] == 20.0
    assert body["net_balance"] == -20.0
    assert body["groups"] == [{
        "group_id": group_id,
        "group_name": "Goa trip",
        "you_owe": 20.0,
        "you_are_owed": 0.0,
        "net_balance": -20.0,
        "total_expenses": 90.0,
    }]

    assert client.get("/users/Z/groups").json() == []


def test_settlement_history_between_pair(client, trip):
    group_id, _ = trip
    url = f"/groups/{group_id}/settlements"
    client.post(url, json={"from_user_id": "B", "to_user_id": "A", "amount": 10})
    client.post(url, json={"from_user_id": "C", "to_user_id": "A", "amount": 5})

    response = client.get(f"{url}/between", params={"user_a": "A", "user_b": "B"})

    assert response.status_code == 200
    assert [(r["from_user_id"], r["amount"]) for r in response.json()] == [("B", 10.0)]
    assert client.get(f"{url}/between", params={"user_a": "A"}).status_code == 422
