from datetime import datetime
from models.db import db

ITEM_TYPES = ("service", "event")


class CatalogItemMixin:
    """Pricing attributes shared by services and events.

    Rows are owned by catalog management; the booking engine only reads them.
    """

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(160), nullable=False)
    provider = db.Column(db.String(120), nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    provider_discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent 0-100
    is_premium_only = db.Column(db.Boolean, default=False, nullable=False)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)


class Service(CatalogItemMixin, db.Model):
    __tablename__ = "services"

    item_type = "service"


class Event(CatalogItemMixin, db.Model):
    __tablename__ = "events"

    item_type = "event"

    event_date = db.Column(db.DateTime, nullable=True)


ITEM_MODELS = {"service": Service, "event": Event}
