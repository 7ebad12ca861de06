from typing import Dict, Optional, Tuple
from flask import current_app

# Canonical plan ids (Checkout metadata.planId)
PLAN_IDS: Tuple[str, ...] = (
    "velocityos_starter",
    "founding_997",
    "agency_reseller",
    "velocityos_enterprise",
)

# Credits granted per completed checkout; unknown plans get the starter grant
_PLAN_CREDITS: Dict[str, Dict[str, int]] = {
    "founding_997": {"aiTokens": 1_000_000, "emails": 100_000, "storageMb": 50_000},
    "agency_reseller": {"aiTokens": 2_000_000, "emails": 200_000, "storageMb": 100_000},
    "velocityos_enterprise": {"aiTokens": 3_000_000, "emails": 300_000, "storageMb": 150_000},
}
_DEFAULT_CREDITS: Dict[str, int] = {"aiTokens": 250_000, "emails": 25_000, "storageMb": 10_000}


def is_known_plan(plan_id: Optional[str]) -> bool:
    return plan_id in PLAN_IDS


def initial_credits(plan_id: Optional[str]) -> Dict[str, int]:
    return dict(_PLAN_CREDITS.get(plan_id or "", _DEFAULT_CREDITS))


def price_ids(plan_id: str) -> Dict[str, Optional[str]]:
    """
    Subscription (and optional metered) Stripe Price ids for a plan.
    Keyed off config so each environment carries its own ids.
    """
    cfg = current_app.config
    key = f"STRIPE_PRICE_{plan_id.upper()}"
    return {
        "subscription": cfg.get(key),
        "metered": cfg.get(f"{key}_METERED"),
    }
