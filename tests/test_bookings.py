import random
import re
from decimal import Decimal

import pytest

from billing import states
from billing.bookings import (
    cancel_booking,
    complete_booking,
    confirm_booking,
    initiate_booking,
    list_user_bookings,
    preview_price,
)
from billing.errors import (
    CouponExhaustedError,
    GatewayError,
    IntegrityViolationError,
    InvalidCouponError,
    InvalidTransitionError,
    NotFoundError,
    PaymentNotSucceededError,
    UpgradeRequiredError,
    ValidationError,
)
from conftest import make_coupon, make_event, make_service, set_tier
from models import db
from models.booking import Booking
from models.coupon import Coupon


def booking_count():
    return Booking.query.count()


def used_count(code):
    db.session.expire_all()
    return Coupon.query.filter_by(code=code).one().used_count


# ---------- preview ----------
def test_preview_does_not_persist(app, user):
    service = make_service()
    breakdown = preview_price(user.id, service.id, "service")
    assert breakdown.final_price == Decimal("90.0000")
    assert booking_count() == 0


def test_preview_uses_most_recent_active_subscription(app, user):
    service = make_service()
    set_tier(user.id, "basic")
    set_tier(user.id, "premium")
    assert preview_price(user.id, service.id, "service").subscription_discount == Decimal("20")


# ---------- initiate ----------
def test_initiate_premium_tier_scenario(app, make_user):
    user = make_user(tier="premium")
    service = make_service(price="100", provider_discount="10")

    booking = initiate_booking(user.id, service.id, "service")

    assert booking.status == states.PENDING_PAYMENT
    assert booking.final_price == Decimal("72.0000")
    assert booking.subscription_discount == Decimal("20")
    assert booking.coupon_id is None
    assert booking.payment_intent_id is None
    assert booking.reward_promo_code is None


def test_initiate_with_coupon_reserves_without_consuming(app, user):
    service = make_service(price="100", provider_discount="10")
    coupon = make_coupon("PETS20", usage_limit=5)

    booking = initiate_booking(user.id, service.id, "service", coupon_code="pets20")

    assert booking.final_price == Decimal("72.0000")
    assert booking.coupon_id == coupon.id
    assert booking.coupon_code == "PETS20"
    assert booking.coupon_discount == Decimal("20")
    assert used_count("PETS20") == 0


def test_initiate_with_exhausted_coupon_fails_and_writes_nothing(app, user):
    service = make_service()
    make_coupon("ONCE", usage_limit=1, used_count=1)

    with pytest.raises(InvalidCouponError):
        initiate_booking(user.id, service.id, "service", coupon_code="ONCE")
    assert booking_count() == 0

    # without the code it still goes through on provider discount alone
    booking = initiate_booking(user.id, service.id, "service")
    assert booking.final_price == Decimal("90.0000")
    assert booking_count() == 1


def test_initiate_premium_only_refused_even_with_valid_coupon(app, make_user):
    user = make_user(tier="basic")
    service = make_service(premium_only=True)
    make_coupon("PETS20")

    with pytest.raises(UpgradeRequiredError):
        initiate_booking(user.id, service.id, "service", coupon_code="PETS20")
    with pytest.raises(UpgradeRequiredError):
        initiate_booking(user.id, service.id, "service", coupon_code="NOT-A-CODE")
    assert booking_count() == 0


def test_initiate_event_with_wrong_type_coupon(app, user):
    event = make_event()
    make_coupon("GROOMING15", discount="15", applicable_type="service")
    with pytest.raises(InvalidCouponError):
        initiate_booking(user.id, event.id, "event", coupon_code="GROOMING15")


@pytest.mark.parametrize(
    "item_id, item_type",
    [(None, "service"), (0, "service"), (-3, "service"), ("abc", "service"), (1.5, "service"),
     (True, "service"), (1, "pet"), (1, None), (float("inf"), "service"), (float("nan"), "service"),
     (10**20, "service"), ("99999999999999999999", "service")],
)
def test_initiate_rejects_malformed_input(app, user, item_id, item_type):
    with pytest.raises(ValidationError):
        initiate_booking(user.id, item_id, item_type)


@pytest.mark.parametrize("coupon_code", [20, ["PETS20"], {"code": "PETS20"}, True])
def test_non_string_coupon_code_is_rejected(app, user, coupon_code):
    service = make_service()
    make_coupon("PETS20")
    with pytest.raises(ValidationError):
        preview_price(user.id, service.id, "service", coupon_code)
    with pytest.raises(ValidationError):
        initiate_booking(user.id, service.id, "service", coupon_code=coupon_code)
    assert booking_count() == 0


def test_initiate_accepts_numeric_string_id(app, user):
    service = make_service()
    booking = initiate_booking(user.id, str(service.id), "service", pet_id="4", booking_date="2026-11-02T10:30:00")
    assert booking.item_id == service.id
    assert booking.pet_id == 4
    assert booking.booking_date.isoformat() == "2026-11-02T10:30:00"


def test_initiate_missing_item(app, user):
    with pytest.raises(NotFoundError):
        initiate_booking(user.id, 999, "service")
    # a service id is not an event id
    service = make_service()
    with pytest.raises(NotFoundError):
        initiate_booking(user.id, service.id, "event")


def test_initiate_refuses_free_item(app, user):
    service = make_service(price="0")
    with pytest.raises(ValidationError):
        initiate_booking(user.id, service.id, "service")
    assert booking_count() == 0


# ---------- confirm ----------
@pytest.fixture
def pending(app, user):
    service = make_service(price="100", provider_discount="10")
    make_coupon("VIP25", discount="25", usage_limit=1)
    return initiate_booking(user.id, service.id, "service", coupon_code="VIP25")


def test_confirm_settles_booking(app, user, gateway, pending):
    # 100 - 10% provider = 90, then 25% coupon = 67.50
    intent_id = gateway.add_intent(6750)

    booking = confirm_booking(user.id, pending.id, intent_id, rng=random.Random(5))

    assert booking.status == states.CONFIRMED
    assert booking.payment_intent_id == intent_id
    assert booking.confirmed_at is not None
    assert re.match(r"^(ZUMI|PET|SAVE|LUCKY|BONUS|VIP)\d{2}[A-Z0-9]{4}$", booking.reward_promo_code)
    assert booking.reward_promo_discount in (10, 15, 20, 25, 30)
    assert used_count("VIP25") == 1


def test_confirm_twice_is_rejected_without_side_effects(app, user, gateway, pending):
    intent_id = gateway.add_intent(6750)
    first = confirm_booking(user.id, pending.id, intent_id)
    reward = first.reward_promo_code

    with pytest.raises(InvalidTransitionError) as exc_info:
        confirm_booking(user.id, pending.id, intent_id)

    assert exc_info.value.message == "Booking already confirmed"
    assert exc_info.value.status_code == 409
    assert used_count("VIP25") == 1
    assert db.session.get(Booking, pending.id).reward_promo_code == reward


def test_confirm_amount_mismatch_rolls_back(app, user, gateway, pending):
    intent_id = gateway.add_intent(100)

    with pytest.raises(IntegrityViolationError):
        confirm_booking(user.id, pending.id, intent_id)

    booking = db.session.get(Booking, pending.id)
    assert booking.status == states.PENDING_PAYMENT
    assert booking.payment_intent_id is None
    assert booking.reward_promo_code is None
    assert used_count("VIP25") == 0


def test_confirm_currency_mismatch_rejected(app, user, gateway, pending):
    intent_id = gateway.add_intent(6750, currency="eur")
    with pytest.raises(IntegrityViolationError):
        confirm_booking(user.id, pending.id, intent_id)


def test_confirm_requires_succeeded_payment(app, user, gateway, pending):
    intent_id = gateway.add_intent(6750, status="requires_payment_method")

    with pytest.raises(PaymentNotSucceededError) as exc_info:
        confirm_booking(user.id, pending.id, intent_id)

    assert exc_info.value.payload()["payment_status"] == "requires_payment_method"
    assert db.session.get(Booking, pending.id).status == states.PENDING_PAYMENT


def test_confirm_gateway_failure_leaves_booking_retryable(app, user, gateway, pending):
    intent_id = gateway.add_intent(6750)
    gateway.retrieve_error = GatewayError()

    with pytest.raises(GatewayError):
        confirm_booking(user.id, pending.id, intent_id)
    assert db.session.get(Booking, pending.id).status == states.PENDING_PAYMENT
    assert used_count("VIP25") == 0

    # caller retries once the gateway is back
    gateway.retrieve_error = None
    assert confirm_booking(user.id, pending.id, intent_id).status == states.CONFIRMED
    assert used_count("VIP25") == 1


def test_confirm_last_coupon_use_goes_to_one_booking(app, make_user, gateway):
    service = make_service(price="100", provider_discount="10")
    make_coupon("VIP25", discount="25", usage_limit=1)
    alice = make_user("alice@example.com")
    bob = make_user("bob@example.com")

    # both reserve while the coupon still has its single use
    a = initiate_booking(alice.id, service.id, "service", coupon_code="VIP25")
    b = initiate_booking(bob.id, service.id, "service", coupon_code="VIP25")

    confirm_booking(alice.id, a.id, gateway.add_intent(6750))
    with pytest.raises(CouponExhaustedError):
        confirm_booking(bob.id, b.id, gateway.add_intent(6750))

    assert used_count("VIP25") == 1
    assert db.session.get(Booking, b.id).status == states.PENDING_PAYMENT


def test_confirm_refuses_reused_payment(app, user, gateway):
    service = make_service(price="50", provider_discount="0")
    first = initiate_booking(user.id, service.id, "service")
    second = initiate_booking(user.id, service.id, "service")
    intent_id = gateway.add_intent(5000)

    confirm_booking(user.id, first.id, intent_id)
    with pytest.raises(IntegrityViolationError):
        confirm_booking(user.id, second.id, intent_id)
    assert db.session.get(Booking, second.id).status == states.PENDING_PAYMENT


def test_confirm_foreign_booking_looks_missing(app, make_user, gateway, pending):
    stranger = make_user("stranger@example.com")
    with pytest.raises(NotFoundError):
        confirm_booking(stranger.id, pending.id, gateway.add_intent(6750))
    assert gateway.retrieve_calls == []


def test_confirm_requires_payment_id(app, user, pending):
    with pytest.raises(ValidationError):
        confirm_booking(user.id, pending.id, "  ")


def test_confirm_detects_tampered_price(app, user, gateway, pending):
    pending.final_price = Decimal("1.0000")
    db.session.commit()

    with pytest.raises(IntegrityViolationError):
        confirm_booking(user.id, pending.id, gateway.add_intent(100))
    assert gateway.retrieve_calls == []


# ---------- cancel / complete ----------
def test_cancel_pending_releases_reservation(app, user, pending):
    booking = cancel_booking(user.id, pending.id, reason="changed my mind")
    assert booking.status == states.CANCELLED
    assert booking.cancel_reason == "changed my mind"
    assert booking.cancelled_at is not None
    assert used_count("VIP25") == 0


def test_cancel_confirmed_booking(app, user, gateway, pending):
    confirm_booking(user.id, pending.id, gateway.add_intent(6750))
    assert cancel_booking(user.id, pending.id).status == states.CANCELLED
    # no refunds: the consumed use stays consumed
    assert used_count("VIP25") == 1


def test_cancel_twice_rejected(app, user, pending):
    cancel_booking(user.id, pending.id)
    with pytest.raises(InvalidTransitionError) as exc_info:
        cancel_booking(user.id, pending.id)
    assert exc_info.value.message == "Booking already cancelled"


def test_cancel_completed_rejected(app, user, gateway, pending):
    confirm_booking(user.id, pending.id, gateway.add_intent(6750))
    assert complete_booking(pending.id).status == states.COMPLETED

    with pytest.raises(InvalidTransitionError) as exc_info:
        cancel_booking(user.id, pending.id)
    assert exc_info.value.message == "Booking is already completed"
    assert db.session.get(Booking, pending.id).status == states.COMPLETED


def test_confirm_cancelled_booking_rejected(app, user, gateway, pending):
    cancel_booking(user.id, pending.id)
    with pytest.raises(InvalidTransitionError) as exc_info:
        confirm_booking(user.id, pending.id, gateway.add_intent(6750))
    assert exc_info.value.message == "Booking is already cancelled"
    assert used_count("VIP25") == 0


def test_complete_requires_confirmed(app, pending):
    with pytest.raises(InvalidTransitionError):
        complete_booking(pending.id)


def test_cancel_foreign_booking_looks_missing(app, make_user, pending):
    stranger = make_user("stranger@example.com")
    with pytest.raises(NotFoundError):
        cancel_booking(stranger.id, pending.id)


# ---------- listing ----------
def test_list_user_bookings_includes_item_info(app, user, make_user):
    service = make_service(title="Nail Trim")
    event = make_event(title="Agility Day")
    other = make_user("other@example.com")
    initiate_booking(user.id, service.id, "service")
    initiate_booking(user.id, event.id, "event")
    initiate_booking(other.id, service.id, "service")

    rows = list_user_bookings(user.id)

    assert {r["item"]["title"] for r in rows} == {"Nail Trim", "Agility Day"}
    assert all(r["status"] == "pending_payment" for r in rows)
    assert list_user_bookings(user.id, status="confirmed") == []
