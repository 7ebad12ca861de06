from flask import current_app, request
from flask_login import current_user
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.customer import Customer
from velocityos.services.policy import current_org_id, require_member
from velocityos.utils.validators import clean_str, is_valid_email, normalize_e164
from . import bp

LIST_LIMIT = 500
DUPLICATE_EMAIL = "A customer with this email already exists"


def get_tenant_customer(customer_id) -> Customer:
    """Customer by id within the current tenant; 404 otherwise (including other tenants)."""
    try:
        cid = int(customer_id)
    except (TypeError, ValueError):
        raise ApiError(404, "Not Found", "Customer not found")
    c = db.session.execute(
        db.select(Customer).where(Customer.id == cid, Customer.org_id == current_org_id())
    ).scalar_one_or_none()
    if c is None:
        raise ApiError(404, "Not Found", "Customer not found")
    return c


@bp.get("/customer/list")
@require_member
def customer_list():
    org_id = current_org_id()
    q = (request.args.get("q") or "").strip()

    stmt = db.select(Customer).where(Customer.org_id == org_id)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(
            Customer.name.ilike(like),
            Customer.email.ilike(like),
            Customer.company.ilike(like),
        ))
    rows = db.session.execute(
        stmt.order_by(func.lower(Customer.name).asc(), Customer.id.asc()).limit(LIST_LIMIT)
    ).scalars().all()
    return ok([c.to_dict() for c in rows])


@bp.post("/customer/create")
@require_member
@limiter.limit("120 per minute")
def customer_create():
    data = json_body()
    name = clean_str(data.get("name"))
    email = clean_str(data.get("email"), max_len=320)
    phone_raw = clean_str(data.get("phone"), max_len=32)
    company = clean_str(data.get("company"))

    if not name or not email:
        raise ApiError(400, "Name and email are required")
    email = email.lower()
    if not is_valid_email(email):
        raise ApiError(400, "Invalid email address", errors={"email": "Invalid email"})
    phone = None
    if phone_raw:
        phone = normalize_e164(phone_raw)
        if phone is None:
            raise ApiError(400, "Invalid phone number", errors={"phone": "Invalid phone number"})

    org_id = current_org_id()
    exists = db.session.execute(
        db.select(Customer.id).where(Customer.org_id == org_id, func.lower(Customer.email) == email)
    ).first()
    if exists:
        raise ApiError(400, DUPLICATE_EMAIL)

    c = Customer(
        org_id=org_id,
        created_by_user_id=current_user.id,
        name=name,
        email=email,
        phone=phone,
        company=company,
    )
    db.session.add(c)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent create with the same email
        db.session.rollback()
        raise ApiError(400, DUPLICATE_EMAIL)

    current_app.logger.info("customer_created id=%s org_id=%s", c.id, org_id)
    return ok(c.to_dict(), "Customer created successfully", status=201)
