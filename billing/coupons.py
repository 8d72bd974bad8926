from datetime import datetime

from sqlalchemy import or_, update

from billing.errors import CouponExhaustedError, InvalidCouponError
from models import db
from models.coupon import Coupon


def normalize_code(code) -> str:
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


def _has_uses_left():
    return or_(Coupon.usage_limit == 0, Coupon.used_count < Coupon.usage_limit)


def validate_coupon(code, item_type: str, now=None) -> Coupon:
    """
    Returns the coupon if it can be applied to an item of item_type right now.

    Unknown, not-yet-valid, expired, exhausted and wrong-type codes all raise
    the same InvalidCouponError.
    """
    normalized = normalize_code(code)
    if not normalized:
        raise InvalidCouponError()

    now = now or datetime.utcnow()
    coupon = (
        Coupon.query
        .filter(
            Coupon.code == normalized,
            Coupon.valid_from <= now,
            Coupon.valid_until >= now,
            _has_uses_left(),
            Coupon.applicable_type.in_(("all", item_type)),
        )
        .first()
    )
    if not coupon:
        raise InvalidCouponError()
    return coupon


def reserve_coupon(booking, coupon: Coupon) -> None:
    """Tie a coupon to a pending booking. used_count is left alone."""
    booking.coupon_id = coupon.id
    booking.coupon_code = coupon.code


def finalize_coupon(coupon_id: int) -> None:
    """
    Consume one use of a coupon. Must run inside the confirm unit of work.

    Limit check and increment are one conditional UPDATE; if a concurrent
    confirmation took the last use, no row matches and CouponExhaustedError
    rolls the caller back.
    """
    result = db.session.execute(
        update(Coupon)
        .where(Coupon.id == coupon_id, _has_uses_left())
        .values(used_count=Coupon.used_count + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise CouponExhaustedError()

    coupon = db.session.get(Coupon, coupon_id)
    if coupon is not None:
        db.session.refresh(coupon)


def list_active_coupons(now=None) -> list:
    now = now or datetime.utcnow()
    return (
        Coupon.query
        .filter(Coupon.valid_from <= now, Coupon.valid_until >= now, _has_uses_left())
        .order_by(Coupon.discount_percent.desc(), Coupon.code.asc())
        .all()
    )


def serialize_coupon(coupon: Coupon) -> dict:
    return {
        "code": coupon.code,
        "discount_percent": float(coupon.discount_percent),
        "remaining_uses": coupon.remaining_uses,
        "applicable_type": coupon.applicable_type,
        "valid_until": coupon.valid_until.isoformat(),
    }
