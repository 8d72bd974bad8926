from .db import db
from .user import User
from .session import Session
from .audit_log import AuditLog
from .item import Service, Event
from .subscription import Subscription
from .coupon import Coupon
from .booking import Booking
