from flask import Blueprint, request, jsonify

from billing.bookings import parse_item_type
from billing.coupons import list_active_coupons, serialize_coupon, validate_coupon
from utils.auth_context import login_required

coupons_bp = Blueprint("coupons", __name__, url_prefix="/coupons")


@coupons_bp.get("")
@login_required
def active_coupons():
    return jsonify(success=True, data=[serialize_coupon(c) for c in list_active_coupons()]), 200


@coupons_bp.post("/validate")
@login_required
def validate():
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not isinstance(code, str) or not code.strip():
        return jsonify(success=False, error="Promo code is required", code="VALIDATION_ERROR"), 422
    item_type = parse_item_type(data.get("itemType", data.get("item_type")))

    coupon = validate_coupon(code, item_type)
    discount = float(coupon.discount_percent)
    return jsonify(
        success=True,
        data={
            "code": coupon.code,
            "discount": discount,
            "message": f"{discount:g}% discount applied!",
        },
    ), 200
