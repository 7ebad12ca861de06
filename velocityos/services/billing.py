from typing import Any, Dict, Optional
from urllib.parse import urljoin
from flask import current_app
from stripe import StripeClient
import hashlib, json

from velocityos.billing.plans import price_ids


def _client() -> StripeClient:
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured")
    return StripeClient(key)


def _absolute_url(path: str) -> str:
    base = (current_app.config.get("APP_BASE_URL") or "").rstrip("/") + "/"
    return urljoin(base, path.lstrip("/"))


def make_idempotency_key(scope: str, *parts: Any) -> str:
    raw = "|".join(str(p) for p in parts)
    return f"{scope}:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]

def _params_hash(d: Dict[str, Any]) -> str:
    # Stable across runs if params identical; changes when you change fields
    return hashlib.sha256(json.dumps(d, sort_keys=True, separators=(",", ":")).encode("utf-8")).hexdigest()[:16]


def create_checkout_session(
    *,
    plan_id: str,
    email: str,
    company_name: str,
    org_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a Stripe Checkout Session for a plan's subscription Price
    (plus its metered Price when configured).
    Returns: {"id": <session_id>, "url": <redirect_url or None>}
    """
    prices = price_ids(plan_id)
    if not prices["subscription"]:
        raise RuntimeError(f"No Stripe price configured for plan {plan_id}")

    line_items = [{"price": prices["subscription"], "quantity": 1}]
    if prices["metered"]:
        # Metered prices take no quantity
        line_items.append({"price": prices["metered"]})

    meta = {
        "planId": plan_id,
        "companyName": company_name,
        "userId": str(user_id) if user_id else "",
        "orgId": str(org_id) if org_id else "",
    }
    params: Dict[str, Any] = {
        "mode": "subscription",
        "customer_email": email,
        "line_items": line_items,
        "success_url": _absolute_url("enrollment/success?session_id={CHECKOUT_SESSION_ID}"),
        "cancel_url": _absolute_url("enrollment/cancel"),
        "allow_promotion_codes": True,
        # Webhook context
        "metadata": meta,
        "subscription_data": {"metadata": meta},
    }
    # Param-aware idempotency: new key whenever Checkout params change
    idem = make_idempotency_key(
        "checkout", "v1",
        org_id, user_id, email.lower(), plan_id,
        _params_hash(params),
    )
    session = _client().checkout.sessions.create(params=params, options={"idempotency_key": idem})
    return {"id": session.id, "url": getattr(session, "url", None)}


def create_portal_session(*, stripe_customer_id: str) -> Dict[str, Any]:
    """Create a Stripe Customer Portal session for an existing Customer."""
    params = {
        "customer": stripe_customer_id,
        "return_url": _absolute_url("settings"),
    }
    session = _client().billing_portal.sessions.create(params=params)
    return {"url": session.url}


def create_payment_intent(
    *,
    amount: int,
    currency: str,
    org_id: int,
    idempotency_key: str,
    payment_method: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
):
    """One-off charge; confirmed immediately when a payment method is supplied."""
    params: Dict[str, Any] = {
        "amount": amount,
        "currency": currency,
        "automatic_payment_methods": {"enabled": True, "allow_redirects": "never"},
        "metadata": {"orgId": str(org_id), **(metadata or {})},
    }
    if description:
        params["description"] = description
    if payment_method:
        params["payment_method"] = payment_method
        params["confirm"] = True
    return _client().payment_intents.create(
        params=params,
        options={"idempotency_key": make_idempotency_key("pi", org_id, idempotency_key)},
    )
