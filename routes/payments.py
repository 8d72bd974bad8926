from flask import Blueprint, request, jsonify, g, current_app

from billing.bookings import get_owned_booking, parse_positive_id
from billing.errors import ConflictError, NotFoundError
from billing.gateway import get_gateway, parse_amount
from billing.pricing import round_display
from billing.states import PENDING_PAYMENT
from utils.auth_context import login_required
from utils.audit import log_event

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


@payments_bp.post("/create-payment-intent")
@login_required
def create_payment_intent():
    data = request.get_json(silent=True) or {}
    booking_id = data.get("bookingId", data.get("booking_id"))
    currency = (data.get("currency") or current_app.config.get("PAYMENT_CURRENCY", "usd"))
    if not isinstance(currency, str) or currency.lower() != current_app.config.get("PAYMENT_CURRENCY", "usd").lower():
        return jsonify(success=False, error="Unsupported currency", code="VALIDATION_ERROR"), 422

    if booking_id not in (None, ""):
        # amount comes from the booking, never from the client
        booking = get_owned_booking(g.user.id, parse_positive_id(booking_id, "bookingId"))
        if booking.status != PENDING_PAYMENT:
            raise ConflictError("Booking is not awaiting payment", status=booking.status)
        amount = round_display(booking.final_price)
    else:
        booking = None
        amount = data.get("amount")

    amount = parse_amount(amount, current_app.config.get("PAYMENT_MAX_AMOUNT"))
    metadata = {"user_id": g.user.id}
    if booking:
        metadata["booking_id"] = booking.id
    created = get_gateway().create_intent(amount, currency, metadata=metadata)

    log_event(
        "PAYMENT_INTENT_CREATED",
        user_id=g.user.id,
        entity="booking" if booking else "payment_intent",
        entity_id=booking.id if booking else created.payment_intent_id,
        metadata={"payment_intent_id": created.payment_intent_id, "amount": str(amount)},
    )
    return jsonify(
        success=True,
        clientSecret=created.client_secret,
        paymentIntentId=created.payment_intent_id,
    ), 200


@payments_bp.get("/<payment_intent_id>/status")
@login_required
def payment_status(payment_intent_id):
    intent = get_gateway().retrieve_intent(payment_intent_id)
    # only the user who created the intent may look at it
    if (intent.metadata or {}).get("user_id") != str(g.user.id):
        raise NotFoundError("Payment not found")
    return jsonify(
        success=True,
        status=intent.status,
        amount=intent.amount / 100,
        currency=intent.currency,
    ), 200
