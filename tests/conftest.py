import os
# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")
# Webhook tests read this at import time
os.environ.setdefault("EMAIL_WEBHOOK_SECRET", "testsecret")

import pytest
from velocityos import create_app
from velocityos.extensions import db
from velocityos.models import Org, User, OrgMembership, ROLE_OWNER

@pytest.fixture(scope="session")
def app():
    app = create_app({
        "TESTING": True,
        "MAIL_SUPPRESS_SEND": True,
        "APP_BASE_URL": "http://example.test",
        # Individual tests turn CSRF back on where they exercise it
        "WTF_CSRF_ENABLED": False,
        "EMAIL_WEBHOOK_SECRET": os.environ.get("EMAIL_WEBHOOK_SECRET", "testsecret"),
        "STRIPE_SECRET_KEY": "sk_test_x",
        "STRIPE_WEBHOOK_SECRET": "whsec_test_x",
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()

@pytest.fixture()
def client(app):
    return app.test_client()

@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


@pytest.fixture()
def make_member(app):
    """Create org + user + membership; returns plain ids (no detached ORM objects)."""
    def _make(email="owner@example.com", role=ROLE_OWNER, org_id=None, **org_fields):
        with app.app_context():
            if org_id is None:
                org = Org(name=org_fields.pop("name", "Acme Co"), **org_fields)
                db.session.add(org)
                db.session.flush()
                org_id = org.id
            u = User(email=email, firebase_uid=f"uid-{email}", org_id=org_id)
            db.session.add(u)
            db.session.flush()
            db.session.add(OrgMembership(org_id=org_id, user_id=u.id, role=role))
            db.session.commit()
            return {"org_id": org_id, "user_id": u.id}
    return _make


def login(client, user_id: int, org_id: int):
    # Simulate Flask-Login session + active tenant
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user_id)
        sess["current_org_id"] = org_id


@pytest.fixture()
def member_client(client, make_member):
    """Client signed in as the owner of a fresh org with an active plan and some credits."""
    ids = make_member(status="active", plan_id="velocityos_starter", credits_emails=10, credits_ai_tokens=5_000)
    login(client, ids["user_id"], ids["org_id"])
    client.ids = ids
    return client
