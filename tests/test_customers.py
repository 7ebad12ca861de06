from conftest import login

from velocityos.extensions import db
from velocityos.models import Customer


def test_create_customer_normalizes_and_returns_201(app, member_client):
    r = member_client.post("/api/customer/create", json={
        "name": "  Ada   Lovelace ",
        "email": "ADA@Example.com",
        "phone": "(415) 555-0123",
        "company": "Analytical Engines",
    })
    assert r.status_code == 201
    body = r.get_json()
    assert body["success"] is True
    assert body["message"] == "Customer created successfully"
    data = body["data"]
    assert data["name"] == "Ada Lovelace"
    assert data["email"] == "ada@example.com"
    assert data["phone"] == "+14155550123"
    assert data["company"] == "Analytical Engines"
    assert isinstance(data["id"], str)
    assert data["createdAt"].endswith("Z")

    with app.app_context():
        c = db.session.get(Customer, int(data["id"]))
        assert c.org_id == member_client.ids["org_id"]
        assert c.created_by_user_id == member_client.ids["user_id"]


def test_create_customer_validation(member_client):
    r = member_client.post("/api/customer/create", json={"name": "No Email"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Name and email are required"

    r = member_client.post("/api/customer/create", json={"name": "Bad", "email": "not-an-email"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid email address"

    r = member_client.post("/api/customer/create", json={"name": "Bad", "email": "b@example.com", "phone": "12"})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Invalid phone number"


def test_duplicate_email_is_rejected_case_insensitively(member_client):
    r = member_client.post("/api/customer/create", json={"name": "One", "email": "dup@example.com"})
    assert r.status_code == 201
    r = member_client.post("/api/customer/create", json={"name": "Two", "email": "DUP@example.com"})
    assert r.status_code == 400
    assert "already exists" in r.get_json()["error"]


def test_list_is_tenant_scoped_sorted_and_searchable(app, client, make_member):
    a = make_member(email="a@example.com")
    b = make_member(email="b@example.com", name="Other Org")
    with app.app_context():
        db.session.add_all([
            Customer(org_id=a["org_id"], name="zeta", email="z@x.com"),
            Customer(org_id=a["org_id"], name="Alpha", email="alpha@x.com", company="Widgets"),
            Customer(org_id=b["org_id"], name="Hidden", email="h@x.com"),
        ])
        db.session.commit()

    login(client, a["user_id"], a["org_id"])
    r = client.get("/api/customer/list")
    assert r.status_code == 200
    names = [c["name"] for c in r.get_json()["data"]]
    assert names == ["Alpha", "zeta"]

    r = client.get("/api/customer/list?q=widg")
    assert [c["name"] for c in r.get_json()["data"]] == ["Alpha"]


def test_same_email_allowed_in_different_tenants(app, client, make_member):
    a = make_member(email="a@example.com")
    b = make_member(email="b@example.com", name="Other Org")

    login(client, a["user_id"], a["org_id"])
    assert client.post("/api/customer/create", json={"name": "X", "email": "x@example.com"}).status_code == 201

    other = app.test_client()
    login(other, b["user_id"], b["org_id"])
    assert other.post("/api/customer/create", json={"name": "X", "email": "x@example.com"}).status_code == 201
