from datetime import datetime
from models.db import db

SUBSCRIPTION_TIERS = ("free", "basic", "premium")

class Subscription(db.Model):
    __tablename__ = "subscriptions"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    tier = db.Column(db.String(20), nullable=False, default="free")      # free, basic, premium
    status = db.Column(db.String(20), nullable=False, default="active")  # active, inactive

    start_date = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    end_date = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship("User", back_populates="subscriptions")
