from flask import Blueprint, request, jsonify, g

from billing.bookings import (
    cancel_booking as cancel_booking_record,
    confirm_booking as confirm_booking_record,
    initiate_booking as initiate_booking_record,
    list_user_bookings,
    preview_price,
    serialize_booking,
)
from billing.errors import IntegrityViolationError
from billing.pricing import serialize_breakdown
from billing.states import BOOKING_STATUSES
from utils.auth_context import login_required
from utils.audit import log_event

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def _field(data: dict, *names):
    # mobile client sends camelCase, scripts tend to send snake_case
    for name in names:
        if name in data:
            return data.get(name)
    return None


# ---------- my bookings ----------
@booking_bp.get("/user")
@login_required
def my_bookings():
    status = request.args.get("status")
    if status and status not in BOOKING_STATUSES:
        return jsonify(success=False, error="Invalid status filter"), 422
    return jsonify(success=True, data=list_user_bookings(g.user.id, status=status)), 200


# ---------- price preview (no persistence) ----------
@booking_bp.post("/preview")
@login_required
def preview():
    data = request.get_json(silent=True) or {}
    breakdown = preview_price(
        g.user.id,
        _field(data, "itemId", "item_id"),
        _field(data, "itemType", "item_type"),
        _field(data, "couponCode", "coupon_code"),
    )
    return jsonify(success=True, data=serialize_breakdown(breakdown)), 200


# ---------- initiate (pending_payment) ----------
@booking_bp.post("/initiate")
@login_required
def initiate():
    data = request.get_json(silent=True) or {}
    booking = initiate_booking_record(
        g.user.id,
        _field(data, "itemId", "item_id"),
        _field(data, "itemType", "item_type"),
        coupon_code=_field(data, "couponCode", "coupon_code"),
        pet_id=_field(data, "petId", "pet_id"),
        booking_date=_field(data, "bookingDate", "booking_date"),
    )

    log_event(
        "BOOKING_INITIATE",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"item_type": booking.item_type, "item_id": booking.item_id, "coupon_code": booking.coupon_code},
    )
    body = serialize_booking(booking)
    return jsonify(
        success=True,
        data={
            "booking_id": booking.id,
            "original_price": body["original_price"],
            "discounts": body["discounts"],
            "final_price": body["final_price"],
            "status": booking.status,
        },
    ), 201


# ---------- confirm after payment ----------
@booking_bp.put("/<booking_id>/confirm")
@login_required
def confirm(booking_id):
    data = request.get_json(silent=True) or {}
    payment_intent_id = _field(data, "paymentIntentId", "payment_intent_id")

    try:
        booking = confirm_booking_record(g.user.id, booking_id, payment_intent_id)
    except IntegrityViolationError as exc:
        log_event(
            "BOOKING_CONFIRM_AMOUNT_MISMATCH",
            user_id=g.user.id,
            entity="booking",
            entity_id=booking_id,
            metadata={"payment_intent_id": payment_intent_id, "reason": exc.message},
        )
        raise

    log_event(
        "BOOKING_CONFIRM",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"payment_intent_id": booking.payment_intent_id, "coupon_id": booking.coupon_id},
    )
    return jsonify(
        success=True,
        message="Booking confirmed and payment verified",
        data={
            "booking_id": booking.id,
            "status": booking.status,
            "reward_promo_code": booking.reward_promo_code,
            "reward_promo_discount": float(booking.reward_promo_discount),
        },
    ), 200


# ---------- cancel ----------
@booking_bp.delete("/<booking_id>")
@booking_bp.post("/<booking_id>/cancel")
@login_required
def cancel(booking_id):
    data = request.get_json(silent=True) or {}
    reason = data.get("reason")
    reason = (reason.strip() or None) if isinstance(reason, str) else None

    booking = cancel_booking_record(g.user.id, booking_id, reason=reason)

    log_event("BOOKING_CANCEL", user_id=g.user.id, entity="booking", entity_id=booking.id, metadata={"reason": reason})
    return jsonify(success=True, message="Booking cancelled successfully", data={"status": booking.status}), 200
