from flask import Blueprint, request, jsonify, g

from billing.subscriptions import get_active_subscription, upgrade_subscription
from billing.transaction import unit_of_work
from utils.auth_context import login_required
from utils.audit import log_event

subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/subscriptions")


def _serialize(sub):
    if sub is None:
        return {"tier": "free", "status": "active"}
    return {
        "tier": sub.tier,
        "status": sub.status,
        "start_date": sub.start_date.isoformat(),
        "end_date": sub.end_date.isoformat() if sub.end_date else None,
    }


@subscriptions_bp.get("/me")
@login_required
def my_subscription():
    return jsonify(success=True, data=_serialize(get_active_subscription(g.user.id))), 200


@subscriptions_bp.post("/upgrade")
@login_required
def upgrade():
    data = request.get_json(silent=True) or {}
    tier = data.get("tier")

    with unit_of_work() as session:
        sub = upgrade_subscription(session, g.user.id, tier)

    log_event("SUBSCRIPTION_UPGRADE", user_id=g.user.id, entity="subscription", entity_id=sub.id, metadata={"tier": tier})
    return jsonify(success=True, message=f"Successfully upgraded to {tier}!", data=_serialize(sub)), 200
