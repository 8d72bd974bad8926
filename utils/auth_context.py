from functools import wraps
from flask import current_app, g, jsonify, request
from security.session import auth_rejected, get_session_from_request
from models import db
from models.user import User


def load_current_user():
    """Populate g.user / g.session from the session cookie, or clear both."""
    sess = get_session_from_request()
    user = db.session.get(User, sess.user_id) if sess else None
    g.session = sess if user else None
    g.user = user


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if g.get("user") is None:
            auth_rejected.send(current_app._get_current_object(), path=request.path)
            return jsonify(success=False, error="Authentication required", code="AUTH_REQUIRED"), 401
        return fn(*args, **kwargs)
    return wrapper
