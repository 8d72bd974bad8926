from .health import health_bp
from .auth import auth_bp
from .booking import booking_bp
from .payments import payments_bp
from .coupons import coupons_bp
from .subscriptions import subscriptions_bp
