from datetime import datetime, timedelta

from flask import current_app

from billing.errors import ValidationError
from models.subscription import Subscription, SUBSCRIPTION_TIERS

UPGRADEABLE_TIERS = ("basic", "premium")


def get_active_subscription(user_id: int):
    """Most recent active subscription row for a user, or None."""
    return (
        Subscription.query
        .filter_by(user_id=user_id, status="active")
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .first()
    )


def get_active_tier(user_id: int) -> str:
    sub = get_active_subscription(user_id)
    if not sub or sub.tier not in SUBSCRIPTION_TIERS:
        return "free"
    return sub.tier


def upgrade_subscription(session, user_id: int, tier: str) -> Subscription:
    """Deactivate the user's current rows and start a new active period."""
    if tier not in UPGRADEABLE_TIERS:
        raise ValidationError("Invalid subscription tier")

    Subscription.query.filter_by(user_id=user_id, status="active").update(
        {"status": "inactive"}, synchronize_session="fetch"
    )

    now = datetime.utcnow()
    length_days = current_app.config.get("SUBSCRIPTION_LENGTH_DAYS", 30)
    sub = Subscription(
        user_id=user_id,
        tier=tier,
        status="active",
        start_date=now,
        end_date=now + timedelta(days=length_days),
        created_at=now,
    )
    session.add(sub)
    session.flush()
    return sub
