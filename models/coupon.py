from datetime import datetime
from models.db import db

COUPON_APPLICABLE_TYPES = ("all", "service", "event")

class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)

    # stored upper-case; lookups normalise the caller's input the same way
    code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    discount_percent = db.Column(db.Numeric(5, 2), nullable=False)

    valid_from = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    valid_until = db.Column(db.DateTime, nullable=False)

    usage_limit = db.Column(db.Integer, default=0, nullable=False)  # 0 = unlimited
    used_count = db.Column(db.Integer, default=0, nullable=False)
    applicable_type = db.Column(db.String(20), default="all", nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint(
            "usage_limit = 0 OR used_count <= usage_limit",
            name="ck_coupon_usage_within_limit",
        ),
    )

    @property
    def remaining_uses(self):
        if not self.usage_limit:
            return None
        return max(self.usage_limit - self.used_count, 0)
