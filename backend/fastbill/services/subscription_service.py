# Overview: Service-layer operations for subscription tiers; tier lookup and catalog-size gating.

"""
Subscription Service

Tiers gate catalog size only. Orders are never limited.

Tier lookups go through a TTLCache owned by the caller (the app keeps one
in app.extensions); writes to a user's tier drop the cached entry.
"""

from __future__ import annotations

from ..extensions import db
from ..models import User
from ..constants import SUBSCRIPTION_TIERS, TIER_FREE
from ..errors import NotFoundError
from ..validation import ValidationError, ConflictError
from fastbill.time_utils import utcnow
from .concurrency import run_batch

LIMIT_PRODUCTS = "products"
LIMIT_ORDERS = "orders"


def _tier_key(user_id: int) -> str:
    return f"tier:{user_id}"


def _get_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError("User not found", details={"user_id": user_id})
    return user


def get_user_tier(user_id: int, cache=None) -> str:
    """Current tier name; unknown users and unknown tiers read as FREE."""
    if cache is not None:
        cached = cache.get(_tier_key(user_id))
        if cached is not None:
            return cached

    user = db.session.query(User).filter_by(id=user_id).first()
    tier = (user.subscription_tier if user else None) or TIER_FREE
    if tier not in SUBSCRIPTION_TIERS:
        tier = TIER_FREE

    if cache is not None:
        cache.set(_tier_key(user_id), tier)
    return tier


def tier_limits(tier: str) -> dict:
    return dict(SUBSCRIPTION_TIERS.get(tier) or SUBSCRIPTION_TIERS[TIER_FREE])


def check_limit(user_id: int, kind: str, cache=None) -> bool:
    """True if the user may create one more of kind ("products" or "orders")."""
    if kind == LIMIT_ORDERS:
        return True
    if kind != LIMIT_PRODUCTS:
        return False

    limits = tier_limits(get_user_tier(user_id, cache))
    user = db.session.query(User).filter_by(id=user_id).first()
    count = (user.product_count if user else 0) or 0
    return count < limits["max_products"]


def require_product_capacity(user_id: int, cache=None) -> None:
    if not check_limit(user_id, LIMIT_PRODUCTS, cache):
        tier = get_user_tier(user_id, cache)
        raise ConflictError(
            f"Product limit reached for the {tier} plan "
            f"({tier_limits(tier)['max_products']} products). Upgrade to add more."
        )


def initialize_free_trial(user_id: int, cache=None) -> User:
    def _op():
        user = _get_user(user_id)
        now = utcnow()
        user.subscription_tier = TIER_FREE
        user.subscription_status = "trial"
        user.trial_started_at = now
        user.last_billing_at = None
        return user

    user = run_batch(_op, description="free trial initialisation")
    if cache is not None:
        cache.delete(_tier_key(user_id))
    return user


def revert_to_free_tier(user_id: int, cache=None) -> User:
    def _op():
        user = _get_user(user_id)
        user.subscription_tier = TIER_FREE
        user.subscription_status = "expired"
        user.last_billing_at = None
        return user

    user = run_batch(_op, description="tier downgrade")
    if cache is not None:
        cache.delete(_tier_key(user_id))
    return user


def set_tier(user_id: int, tier: str, cache=None) -> User:
    """Move a user to a paid or free tier (admin / billing hook)."""
    tier = (tier or "").upper()
    if tier not in SUBSCRIPTION_TIERS:
        raise ValidationError(f"tier must be one of: {', '.join(SUBSCRIPTION_TIERS)}")

    def _op():
        user = _get_user(user_id)
        user.subscription_tier = tier
        user.subscription_status = "active" if tier != TIER_FREE else user.subscription_status
        if tier != TIER_FREE:
            user.last_billing_at = utcnow()
        return user

    user = run_batch(_op, description="tier change")
    if cache is not None:
        cache.delete(_tier_key(user_id))
    return user


def subscription_summary(user_id: int, cache=None) -> dict:
    user = _get_user(user_id)
    tier = get_user_tier(user_id, cache)
    limits = tier_limits(tier)
    return {
        "tier": tier,
        "status": user.subscription_status,
        "limits": limits,
        "usage": {"products": user.product_count or 0},
        "can_add_products": (user.product_count or 0) < limits["max_products"],
    }
