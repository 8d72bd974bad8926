from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app, has_app_context

from billing.errors import UpgradeRequiredError

HUNDRED = Decimal("100")
CENT = Decimal("0.01")
STORAGE_PRECISION = Decimal("0.0001")

DEFAULT_TIER_DISCOUNTS = {"free": 0, "basic": 10, "premium": 20}

PriceBreakdown = namedtuple(
    "PriceBreakdown",
    [
        "original_price",
        "provider_discount",
        "subscription_discount",
        "coupon_discount",
        "final_price",
    ],
)


def _dec(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    # str() first so floats do not drag binary noise into the math
    return Decimal(str(value))


def round_display(amount) -> Decimal:
    return _dec(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount) -> int:
    """Integer cents for an amount, rounded half-up: round(amount * 100)."""
    return int((_dec(amount) * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def subscription_discount_for(tier) -> Decimal:
    discounts = DEFAULT_TIER_DISCOUNTS
    if has_app_context():
        discounts = current_app.config.get("SUBSCRIPTION_TIER_DISCOUNTS", DEFAULT_TIER_DISCOUNTS)
    return _dec(discounts.get(tier, discounts.get("free", 0)))


def compute_final_price(original_price, provider_discount, subscription_discount, coupon_discount) -> Decimal:
    """
    Provider discount first, then the single best of subscription and coupon
    discount. Discounts never stack additively. Result is clamped at zero and
    kept at the storage precision of four places.
    """
    after_provider = _dec(original_price) * (1 - _dec(provider_discount) / HUNDRED)
    best = max(_dec(subscription_discount), _dec(coupon_discount))
    final_price = after_provider * (1 - best / HUNDRED)
    if final_price < 0:
        final_price = Decimal("0")
    return final_price.quantize(STORAGE_PRECISION, rounding=ROUND_HALF_UP)


def ensure_tier_allows(item, tier: str) -> None:
    if getattr(item, "is_premium_only", False) and tier != "premium":
        raise UpgradeRequiredError(current_tier=tier)


def calculate_price(item, tier: str, coupon=None) -> PriceBreakdown:
    """Price an item for a subscription tier and an already-validated coupon.

    Premium gating is checked before any discount math.
    """
    ensure_tier_allows(item, tier)

    original_price = _dec(item.price)
    provider_discount = _dec(getattr(item, "provider_discount", 0))
    subscription_discount = subscription_discount_for(tier)
    coupon_discount = _dec(coupon.discount_percent) if coupon is not None else Decimal("0")

    return PriceBreakdown(
        original_price=original_price,
        provider_discount=provider_discount,
        subscription_discount=subscription_discount,
        coupon_discount=coupon_discount,
        final_price=compute_final_price(
            original_price, provider_discount, subscription_discount, coupon_discount
        ),
    )


def breakdown_for_booking(booking) -> PriceBreakdown:
    """Recompute a booking's breakdown from its own stored discount fields."""
    return PriceBreakdown(
        original_price=_dec(booking.original_price),
        provider_discount=_dec(booking.provider_discount),
        subscription_discount=_dec(booking.subscription_discount),
        coupon_discount=_dec(booking.coupon_discount),
        final_price=compute_final_price(
            booking.original_price,
            booking.provider_discount,
            booking.subscription_discount,
            booking.coupon_discount,
        ),
    )


def serialize_breakdown(breakdown: PriceBreakdown) -> dict:
    return {
        "original_price": float(round_display(breakdown.original_price)),
        "discounts": {
            "provider": float(breakdown.provider_discount),
            "subscription": float(breakdown.subscription_discount),
            "coupon": float(breakdown.coupon_discount),
        },
        "final_price": float(round_display(breakdown.final_price)),
    }
