from datetime import datetime, timedelta

from models import db
from models.coupon import Coupon

# code, discount %, valid days, usage limit (0 = unlimited), applicable type
DEFAULT_COUPONS = [
    # Permanent codes
    ("WELCOME10", 10, 365, 0, "all"),
    ("SAVE15", 15, 365, 0, "all"),
    ("PETS20", 20, 365, 0, "all"),
    ("VIP25", 25, 365, 100, "all"),

    # Service-specific codes
    ("GROOMING15", 15, 365, 0, "service"),
    ("WALKER20", 20, 365, 0, "service"),

    # Event-specific codes
    ("EVENT10", 10, 365, 0, "event"),

    # Limited time offers
    ("FLASH30", 30, 30, 50, "all"),
    ("SUPERSAVE25", 25, 60, 0, "all"),

    # New user codes
    ("NEWUSER20", 20, 365, 0, "all"),
    ("FIRST15", 15, 365, 0, "all"),
]

def seed_coupons(now=None):
    """Insert or refresh the stock promo codes. Safe to run repeatedly; used_count is kept."""
    now = now or datetime.utcnow()
    existing = {c.code: c for c in Coupon.query.all()}
    for code, discount, valid_days, limit, applicable in DEFAULT_COUPONS:
        coupon = existing.get(code)
        if not coupon:
            coupon = Coupon(code=code, valid_from=now, used_count=0)
            db.session.add(coupon)
        coupon.discount_percent = discount
        coupon.valid_until = now + timedelta(days=valid_days)
        coupon.usage_limit = limit
        coupon.applicable_type = applicable
    db.session.commit()
    return len(DEFAULT_COUPONS)
