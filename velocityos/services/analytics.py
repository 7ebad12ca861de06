from flask import current_app
from sqlalchemy import func

from velocityos.extensions import db
from velocityos.models.agent import AIOperation, OP_SUCCEEDED
from velocityos.models.campaign import Campaign, STATUS_ACTIVE
from velocityos.models.customer import Customer
from velocityos.models.feedback import Feedback
from velocityos.models.org import Org
from velocityos.models.payment import Payment, SUCCEEDED
from velocityos.utils.helpers import to_major_units


def _scalar(stmt, default=0):
    value = db.session.execute(stmt).scalar()
    return default if value is None else value


def revenue_by_currency(org_id: int) -> dict:
    """Succeeded payments summed per currency, in major units."""
    rows = db.session.execute(
        db.select(Payment.currency, func.sum(Payment.amount))
        .where(Payment.org_id == org_id, Payment.status == SUCCEEDED)
        .group_by(Payment.currency)
    ).all()
    return {currency.lower(): to_major_units(int(total or 0), currency) for currency, total in rows}


def dashboard(org_id: int) -> dict:
    total_customers = _scalar(db.select(func.count(Customer.id)).where(Customer.org_id == org_id))
    active_campaigns = _scalar(
        db.select(func.count(Campaign.id)).where(Campaign.org_id == org_id, Campaign.status == STATUS_ACTIVE)
    )
    revenue = revenue_by_currency(org_id)
    reporting_currency = current_app.config.get("REPORTING_CURRENCY", "usd")
    paying_customers = _scalar(
        db.select(func.count(func.distinct(Payment.customer_id))).where(
            Payment.org_id == org_id,
            Payment.status == SUCCEEDED,
            Payment.customer_id.is_not(None),
        )
    )
    tasks_completed = _scalar(
        db.select(func.count(AIOperation.id)).where(AIOperation.org_id == org_id, AIOperation.status == OP_SUCCEEDED)
    )
    avg_rating = _scalar(db.select(func.avg(Feedback.rating)).where(Feedback.org_id == org_id), None)

    conversion = round(paying_customers * 100.0 / total_customers, 1) if total_customers else 0.0
    org = db.session.get(Org, org_id)

    return {
        "totalCustomers": int(total_customers),
        "activeCampaigns": int(active_campaigns),
        "revenue": revenue.get(reporting_currency, 0),
        "revenueCurrency": reporting_currency,
        "revenueByCurrency": revenue,
        "conversionRate": conversion,
        "tasksCompleted": int(tasks_completed),
        "averageRating": round(float(avg_rating), 1) if avg_rating is not None else None,
        "credits": org.credits if org else None,
    }
