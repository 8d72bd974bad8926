from datetime import datetime
from models.db import db

class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, nullable=False)
    item_type = db.Column(db.String(20), nullable=False)  # service, event
    pet_id = db.Column(db.Integer, nullable=True)

    # price breakdown, frozen at initiation
    original_price = db.Column(db.Numeric(10, 2), nullable=False)
    provider_discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    subscription_discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    coupon_code = db.Column(db.String(50), nullable=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=True, index=True)
    coupon_discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    final_price = db.Column(db.Numeric(12, 4), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending_payment", index=True)
    # status values: pending_payment, confirmed, completed, cancelled

    payment_intent_id = db.Column(db.String(255), nullable=True, unique=True)
    reward_promo_code = db.Column(db.String(50), nullable=True)
    reward_promo_discount = db.Column(db.Numeric(5, 2), nullable=True)

    booking_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    confirmed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    user = db.relationship("User", back_populates="bookings")
    coupon = db.relationship("Coupon")

    __table_args__ = (
        db.CheckConstraint("final_price >= 0", name="ck_booking_final_price_non_negative"),
    )
