from functools import wraps
from typing import Callable

from velocityos.errors import ApiError
from velocityos.models.org import ACTIVE_STATUSES
from velocityos.services.policy import current_org

def enforce_active_subscription():
    """
    Raises 402 unless the tenant org mirrors an active Stripe subscription.
    Allowed: status in {"active","trialing"}.
    Blocked: past_due, incomplete, unpaid, canceled, or never subscribed.
    """
    org = current_org()
    if org is None:
        raise ApiError(401, "Unauthorized", "Organization required", code="NO_ORGANIZATION")
    if (org.status or "") not in ACTIVE_STATUSES:
        raise ApiError(
            402,
            "Payment Required",
            "An active subscription is required to use this feature",
            code="subscription_required",
            details={"status": org.status},
        )
    return org

def require_active_subscription(fn: Callable):
    @wraps(fn)
    def _wrap(*args, **kwargs):
        enforce_active_subscription()
        return fn(*args, **kwargs)
    return _wrap
