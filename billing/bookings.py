from datetime import datetime

from flask import current_app
from sqlalchemy import update

from billing import states
from billing.coupons import finalize_coupon, normalize_code, reserve_coupon, validate_coupon
from billing.errors import (
    IntegrityViolationError,
    InvalidTransitionError,
    NotFoundError,
    PaymentNotSucceededError,
    ValidationError,
)
from billing.gateway import get_gateway
from billing.pricing import (
    breakdown_for_booking,
    calculate_price,
    ensure_tier_allows,
    round_display,
    to_minor_units,
)
from billing.rewards import mint_reward_promo
from billing.subscriptions import get_active_tier
from billing.transaction import unit_of_work
from models import db
from models.booking import Booking
from models.item import ITEM_MODELS, ITEM_TYPES

# largest value a 64-bit signed INTEGER column holds
MAX_ID = 2**63 - 1


# ---------- input parsing ----------
def parse_positive_id(value, field: str) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"Invalid {field}")
    if isinstance(value, str):
        value = value.strip()
        if not value.isdigit():
            raise ValidationError(f"Invalid {field}")
    try:
        parsed = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"Invalid {field}")
    if parsed != value and not isinstance(value, str):
        # reject 3.5 and friends
        raise ValidationError(f"Invalid {field}")
    if parsed <= 0 or parsed > MAX_ID:
        raise ValidationError(f"Invalid {field}")
    return parsed


def parse_item_type(value) -> str:
    if value not in ITEM_TYPES:
        raise ValidationError("Valid item type (event/service) is required")
    return value


def _parse_iso(dt_str):
    # Expect ISO format like "2026-01-20T18:00:00"
    if dt_str in (None, ""):
        return None
    if not isinstance(dt_str, str):
        raise ValidationError("Invalid bookingDate. Use ISO e.g. 2026-01-20T18:00:00")
    try:
        return datetime.fromisoformat(dt_str)
    except ValueError:
        raise ValidationError("Invalid bookingDate. Use ISO e.g. 2026-01-20T18:00:00")


# ---------- lookups ----------
def load_item(item_type: str, item_id: int):
    item = db.session.get(ITEM_MODELS[item_type], item_id)
    if not item or not item.is_active:
        raise NotFoundError("Item not found")
    return item


def get_owned_booking(user_id: int, booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    # foreign bookings look exactly like missing ones
    if not booking or booking.user_id != user_id:
        raise NotFoundError("Booking not found")
    return booking


def _price_request(user_id, item_id, item_type, coupon_code):
    if coupon_code is not None and not isinstance(coupon_code, str):
        # a number or list must not quietly price without the coupon
        raise ValidationError("Invalid couponCode")
    item = load_item(item_type, item_id)
    tier = get_active_tier(user_id)

    coupon = None
    if normalize_code(coupon_code):
        # gating is decided before the coupon is even looked at
        ensure_tier_allows(item, tier)
        coupon = validate_coupon(coupon_code, item_type)

    return item, tier, coupon, calculate_price(item, tier, coupon)


# ---------- operations ----------
def preview_price(user_id: int, item_id, item_type, coupon_code=None):
    """Price breakdown for an item without persisting anything."""
    item_id = parse_positive_id(item_id, "itemId")
    item_type = parse_item_type(item_type)
    _, _, _, breakdown = _price_request(user_id, item_id, item_type, coupon_code)
    return breakdown


def initiate_booking(user_id: int, item_id, item_type, coupon_code=None, pet_id=None, booking_date=None) -> Booking:
    """
    Price an item and persist a pending_payment booking.

    Pricing runs again here rather than trusting a preview. The coupon, if
    any, is reserved on the booking but not consumed. Nothing is written
    unless every step succeeds.
    """
    item_id = parse_positive_id(item_id, "itemId")
    item_type = parse_item_type(item_type)
    if pet_id not in (None, ""):
        pet_id = parse_positive_id(pet_id, "petId")
    else:
        pet_id = None
    booking_dt = _parse_iso(booking_date)

    with unit_of_work() as session:
        _, _, coupon, breakdown = _price_request(user_id, item_id, item_type, coupon_code)

        if breakdown.final_price <= 0:
            raise ValidationError("Final price must be greater than zero")

        booking = Booking(
            user_id=user_id,
            item_id=item_id,
            item_type=item_type,
            pet_id=pet_id,
            original_price=breakdown.original_price,
            provider_discount=breakdown.provider_discount,
            subscription_discount=breakdown.subscription_discount,
            coupon_discount=breakdown.coupon_discount,
            final_price=breakdown.final_price,
            status=states.PENDING_PAYMENT,
            booking_date=booking_dt or datetime.utcnow(),
        )
        if coupon is not None:
            reserve_coupon(booking, coupon)

        session.add(booking)
        session.flush()

    return booking


def confirm_booking(user_id: int, booking_id, payment_intent_id, rng=None) -> Booking:
    """
    Settle a pending booking once the gateway says its payment succeeded.

    The intent is fetched server-side and must match the booking's own
    amount in minor units. Status flip, coupon consumption and reward minting
    commit together or not at all; a retry after success is rejected as
    already confirmed, so none of them can happen twice.
    """
    booking_id = parse_positive_id(booking_id, "bookingId")
    if not isinstance(payment_intent_id, str) or not payment_intent_id.strip():
        raise ValidationError("Payment verification failed: No payment ID provided")
    payment_intent_id = payment_intent_id.strip()

    with unit_of_work() as session:
        booking = get_owned_booking(user_id, booking_id)
        states.validate_transition(booking.status, states.CONFIRMED)

        if breakdown_for_booking(booking).final_price != booking.final_price:
            current_app.logger.error("Booking %s price breakdown does not recompute", booking.id)
            raise IntegrityViolationError("Booking price does not match its discounts")

        intent = get_gateway().retrieve_intent(payment_intent_id)

        if intent.status != "succeeded":
            raise PaymentNotSucceededError(
                f"Payment not successful. Status: {intent.status}",
                payment_status=intent.status,
            )

        expected_amount = to_minor_units(booking.final_price)
        expected_currency = current_app.config.get("PAYMENT_CURRENCY", "usd").lower()
        if intent.amount != expected_amount or intent.currency != expected_currency:
            current_app.logger.warning(
                "Payment %s (%s %s) does not match booking %s (%s %s)",
                intent.id, intent.amount, intent.currency,
                booking.id, expected_amount, expected_currency,
            )
            raise IntegrityViolationError("Payment amount does not match booking")

        already_used = (
            Booking.query
            .filter(Booking.payment_intent_id == intent.id, Booking.id != booking.id)
            .first()
        )
        if already_used:
            raise IntegrityViolationError("Payment already applied to another booking")

        claimed = session.execute(
            update(Booking)
            .where(Booking.id == booking.id, Booking.status == states.PENDING_PAYMENT)
            .values(
                status=states.CONFIRMED,
                payment_intent_id=intent.id,
                confirmed_at=datetime.utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise InvalidTransitionError(
                states.CONFIRMED, states.CONFIRMED, "Booking already confirmed"
            )

        if booking.coupon_id:
            finalize_coupon(booking.coupon_id)

        promo = mint_reward_promo(rng) if rng is not None else mint_reward_promo()

        session.refresh(booking)
        booking.reward_promo_code = promo.code
        booking.reward_promo_discount = promo.discount

    return booking


def _flip_status(session, booking: Booking, target: str, **values) -> None:
    states.validate_transition(booking.status, target)
    result = session.execute(
        update(Booking)
        .where(
            Booking.id == booking.id,
            Booking.status.in_(states.allowed_predecessors(target)),
        )
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # someone else moved it between our read and our write
        session.refresh(booking)
        states.validate_transition(booking.status, target)
        raise InvalidTransitionError(booking.status, target)


def cancel_booking(user_id: int, booking_id, reason=None) -> Booking:
    booking_id = parse_positive_id(booking_id, "bookingId")
    with unit_of_work() as session:
        booking = get_owned_booking(user_id, booking_id)
        _flip_status(
            session,
            booking,
            states.CANCELLED,
            cancelled_at=datetime.utcnow(),
            cancel_reason=reason[:120] if reason else None,
        )
    return booking


def complete_booking(booking_id) -> Booking:
    """Fulfilment hook: confirmed -> completed."""
    booking_id = parse_positive_id(booking_id, "bookingId")
    with unit_of_work() as session:
        booking = db.session.get(Booking, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        _flip_status(session, booking, states.COMPLETED)
    return booking


def list_user_bookings(user_id: int, status=None) -> list:
    q = Booking.query.filter_by(user_id=user_id)
    if status:
        q = q.filter_by(status=status)
    rows = q.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    # fetch item info per type in one query each
    items = {}
    for item_type, model in ITEM_MODELS.items():
        ids = {b.item_id for b in rows if b.item_type == item_type}
        if ids:
            for item in model.query.filter(model.id.in_(ids)).all():
                items[(item_type, item.id)] = item

    out = []
    for b in rows:
        data = serialize_booking(b)
        item = items.get((b.item_type, b.item_id))
        data["item"] = {
            "title": item.title if item else None,
            "provider": item.provider if item else None,
        }
        out.append(data)
    return out


def serialize_booking(b: Booking) -> dict:
    return {
        "id": b.id,
        "item_id": b.item_id,
        "item_type": b.item_type,
        "pet_id": b.pet_id,
        "status": b.status,
        "original_price": float(round_display(b.original_price)),
        "discounts": {
            "provider": float(b.provider_discount),
            "subscription": float(b.subscription_discount),
            "coupon": float(b.coupon_discount),
        },
        "coupon_code": b.coupon_code,
        "final_price": float(round_display(b.final_price)),
        "payment_intent_id": b.payment_intent_id,
        "reward_promo_code": b.reward_promo_code,
        "reward_promo_discount": float(b.reward_promo_discount) if b.reward_promo_discount is not None else None,
        "booking_date": b.booking_date.isoformat() if b.booking_date else None,
        "created_at": b.created_at.isoformat() if b.created_at else None,
        "confirmed_at": b.confirmed_at.isoformat() if b.confirmed_at else None,
        "cancelled_at": b.cancelled_at.isoformat() if b.cancelled_at else None,
    }
