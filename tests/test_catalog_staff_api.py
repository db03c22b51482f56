from datetime import datetime, timedelta, timezone

from gatsishub.db.session import get_session
from gatsishub.models import Product


def test_product_crud(client):
    created = client.post("/products", json={"name": " Velvet Hanger ", "weight": 45, "description": "Soft"})
    assert created.status_code == 201
    product = created.json()["product"]
    assert product["name"] == "Velvet Hanger"
    assert product["is_active"] is True

    dup = client.post("/products", json={"name": "Velvet Hanger"})
    assert dup.status_code == 400
    assert dup.json()["error"] == "Product name already exists"

    updated = client.patch(f"/products/{product['id']}", json={"is_active": False}).json()["product"]
    assert updated["is_active"] is False
    assert client.get("/products", params={"is_active": True}).json()["products"] == []

    assert client.delete(f"/products/{product['id']}").json() == {"message": "Product deleted successfully"}
    assert client.get(f"/products/{product['id']}").status_code == 404


def test_product_needs_name_and_positive_weight(client):
    assert client.post("/products", json={"weight": 10}).status_code == 400
    assert client.post("/products", json={"name": "X", "weight": 0}).status_code == 400


def test_material_crud(client):
    created = client.post("/materials", json={"name": "Bamboo", "price_per_kg": 80, "features": ["Eco"]})
    assert created.status_code == 201
    material = created.json()["material"]
    assert material["features"] == ["Eco"]

    assert client.post("/materials", json={"name": "Bamboo"}).json()["error"] == "Material name already exists"
    assert client.post("/materials", json={"name": "Tin", "price_per_kg": -1}).status_code == 400

    cleared = client.patch(f"/materials/{material['id']}", json={"features": None}).json()["material"]
    assert cleared["features"] == []
    names = [m["name"] for m in client.get("/materials").json()["materials"]]
    assert names == ["Bamboo"]


def _employee(client, name, **kw):
    return client.post("/employees", json={"name": name, **kw}).json()["employee"]


def test_employee_lifecycle(client):
    resp = client.post("/employees", json={
        "name": "Rosa Reyes", "email": "rosa@gatsis.ph", "department": "Production", "role": "Operator",
    })
    assert resp.status_code == 201
    rosa = resp.json()["employee"]
    assert rosa["account_status"] == "Active"
    assert rosa["is_present"] is False

    assert client.post("/employees", json={"name": "Other", "email": "rosa@gatsis.ph"}).status_code == 400
    assert client.post("/employees", json={"name": "Bad", "email": "nope"}).json()["error"] == "Invalid email format"

    present = client.patch(f"/employees/{rosa['id']}/presence", json={"is_present": True}).json()["employee"]
    assert present["is_present"] is True
    assert len(client.get("/employees", params={"ispresent": True}).json()["employees"]) == 1

    archived = client.delete(f"/employees/{rosa['id']}").json()["employee"]
    assert archived["account_status"] == "Archived"
    assert archived["is_present"] is False
    assert client.get("/employees", params={"status": "Active"}).json()["employees"] == []

    restored = client.patch(f"/employees/{rosa['id']}/restore").json()["employee"]
    assert restored["account_status"] == "Active"

    renamed = client.patch(f"/employees/{rosa['id']}", json={"role": "Supervisor"}).json()["employee"]
    assert renamed["role"] == "Supervisor"
    assert client.get("/employees", params={"role": "Supervisor"}).json()["employees"][0]["id"] == rosa["id"]


def test_team_crud_and_stats(client):
    a = _employee(client, "Ana", department="Assembly", is_present=True)
    b = _employee(client, "Ben", department="Assembly")
    c = _employee(client, "Cris")

    resp = client.post("/teams/create", json={"name": "Line 1", "members": [a["id"], b["id"], c["id"]],
                                               "assigned_orders": ["o-1", "o-2"], "quota": 500})
    assert resp.status_code == 201
    team = resp.json()["team"]

    dup = client.post("/teams", json={"name": "Line 1"})
    assert dup.status_code == 409
    assert dup.json()["error"] == "Team name already exists"

    stats = client.get(f"/teams/{team['id']}/stats").json()["stats"]
    assert stats == {
        "total_members": 3,
        "present_members": 1,
        "absent_members": 2,
        "assigned_orders": 2,
        "quota": 500,
        "department_breakdown": {"Assembly": 2, "Unassigned": 1},
    }

    assert [t["id"] for t in client.get(f"/teams/employee/{b['id']}").json()["teams"]] == [team["id"]]
    assert client.patch(f"/teams/{team['id']}", json={}).json()["error"] == "No fields provided for update"

    updated = client.patch(f"/teams/{team['id']}", json={"members": [a["id"]]}).json()["team"]
    assert updated["members"] == [a["id"]]
    assert client.get(f"/teams/employee/{b['id']}").json()["teams"] == []

    deleted = client.delete(f"/teams/{team['id']}").json()
    assert deleted["deleted_team"] == {"id": team["id"], "name": "Line 1"}


def test_quota_targets_follow_assigned_orders(client, make_order):
    o1 = make_order(quantity=300)
    o2 = make_order(quantity=200)
    team = client.post("/teams", json={"name": "Line 2"}).json()["team"]

    assert client.post("/quotas", json={"name": "Week 1"}).status_code == 400
    resp = client.post("/quotas/create", json={
        "name": "Week 1", "assigned_orders": [o1["id"]], "team_ids": [team["id"]], "finished_quota": 75,
    })
    assert resp.status_code == 201
    quota = resp.json()["quota"]
    assert quota["target_quota"] == 300
    assert quota["teams"][0]["name"] == "Line 2"

    linked = client.get(f"/teams/{team['id']}").json()["team"]
    assert linked["linked_quota_id"] == quota["id"]
    assert linked["quota"] == 300

    progress = client.get(f"/quotas/{quota['id']}/progress").json()
    assert progress == {
        "name": "Week 1", "target_quota": 300, "finished_quota": 75,
        "remaining": 225, "percentage": 25, "status": "Active",
    }

    updated = client.patch(f"/quotas/{quota['id']}", json={"assigned_orders": [o1["id"], o2["id"]]}).json()["quota"]
    assert updated["target_quota"] == 500
    assert client.get(f"/teams/{team['id']}").json()["team"]["quota"] == 500

    cleared = client.patch(f"/quotas/{quota['id']}", json={"assigned_orders": []}).json()["quota"]
    assert cleared["assigned_orders"] == []
    assert cleared["target_quota"] == 0
    assert client.get(f"/teams/{team['id']}").json()["team"]["quota"] == 0
    client.patch(f"/quotas/{quota['id']}", json={"assigned_orders": [o1["id"], o2["id"]]})

    assert client.patch(f"/quotas/{quota['id']}", json={"status": "Paused"}).status_code == 400
    assert [q["id"] for q in client.get("/quotas", params={"team_id": team["id"]}).json()["quotas"]] == [quota["id"]]

    client.delete(f"/quotas/{quota['id']}")
    assert client.get(f"/teams/{team['id']}").json()["team"]["linked_quota_id"] is None


def test_timestamps_round_trip_as_aware_utc(client):
    product = client.post("/products", json={"name": "Wire Hanger", "weight": 30}).json()["product"]

    session = get_session()
    try:
        row = session.get(Product, product["id"])
        assert row.created_at.tzinfo is not None
        assert row.created_at.utcoffset() == timedelta(0)

        row.updated_at = datetime(2026, 3, 1, 8, 0, tzinfo=timezone(timedelta(hours=8)))
        session.add(row)
        session.commit()
        session.refresh(row)
        assert row.updated_at == datetime(2026, 3, 1, 0, 0, tzinfo=timezone.utc)
    finally:
        session.close()
