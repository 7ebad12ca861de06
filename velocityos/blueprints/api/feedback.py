from flask_login import current_user
from sqlalchemy import func

from velocityos.blueprints.common import json_body
from velocityos.errors import ApiError, ok
from velocityos.extensions import db, limiter
from velocityos.models.feedback import Feedback
from velocityos.services.policy import current_org_id, require_member
from velocityos.utils.validators import clean_str
from .customers import get_tenant_customer
from . import bp


@bp.post("/voc/feedback")
@require_member
@limiter.limit("60 per minute")
def feedback_submit():
    data = json_body()
    rating = data.get("rating")
    comment = clean_str(data.get("comment"), max_len=5000)

    if rating is None or not comment:
        raise ApiError(400, "Rating and comment are required")
    # bool is an int subclass; reject it explicitly
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ApiError(400, "Rating must be between 1 and 5")

    customer_id = None
    if data.get("customerId") not in (None, ""):
        customer_id = get_tenant_customer(data.get("customerId")).id

    fb = Feedback(
        org_id=current_org_id(),
        user_id=current_user.id,
        customer_id=customer_id,
        rating=rating,
        comment=comment,
    )
    db.session.add(fb)
    db.session.commit()
    return ok(fb.to_dict(), "Feedback submitted successfully", status=201)


@bp.get("/voc/feedback")
@require_member
def feedback_list():
    org_id = current_org_id()
    rows = db.session.execute(
        db.select(Feedback).where(Feedback.org_id == org_id).order_by(Feedback.created_at.desc(), Feedback.id.desc()).limit(100)
    ).scalars().all()
    count, avg = db.session.execute(
        db.select(func.count(Feedback.id), func.avg(Feedback.rating)).where(Feedback.org_id == org_id)
    ).one()
    return ok({
        "items": [f.to_dict() for f in rows],
        "count": int(count or 0),
        "averageRating": round(float(avg), 1) if avg is not None else None,
    })
