import hashlib
import secrets
from datetime import datetime, timedelta
from blinker import Namespace
from flask import request, current_app

from models import db
from models.session import Session

# Auth-state changes are published here instead of through shared globals.
# Subscribers receive the app as sender.
#   session_invalidated: a presented session was expired, idle, or revoked
#       (kwargs: user_id, reason)
#   auth_rejected: a protected endpoint refused an anonymous caller
#       (kwargs: path)
auth_signals = Namespace()
session_invalidated = auth_signals.signal("session-invalidated")
auth_rejected = auth_signals.signal("auth-rejected")


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _cookie_name() -> str:
    return current_app.config.get("AUTH_COOKIE_NAME", "petbook_session")


def _find(raw_token):
    if not raw_token:
        return None
    return Session.query.filter_by(token_hash=_hash_token(raw_token)).first()


def create_session(user_id: int) -> str:
    """Store a new session for user_id and return the raw token for the cookie."""
    raw_token = secrets.token_urlsafe(32)
    lifetime = current_app.config.get("SESSION_LIFETIME_SECONDS", 28800)

    db.session.add(Session(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
        ip=request.headers.get("X-Forwarded-For", request.remote_addr),
        user_agent=(request.headers.get("User-Agent") or "")[:255],
    ))
    db.session.commit()
    return raw_token


def get_session_from_request():
    sess = _find(request.cookies.get(_cookie_name()))
    if not sess:
        return None

    now = datetime.utcnow()
    reason = sess.invalid_reason(now, current_app.config.get("IDLE_TIMEOUT_SECONDS", 1200))
    if reason:
        session_invalidated.send(
            current_app._get_current_object(), user_id=sess.user_id, reason=reason
        )
        return None

    sess.last_seen_at = now
    db.session.commit()
    return sess


def current_token():
    return request.cookies.get(_cookie_name())


def revoke_session(raw_token: str) -> bool:
    sess = _find(raw_token)
    if not sess:
        return False
    sess.revoked = True
    db.session.commit()
    return True


def revoke_all_sessions(user_id: int) -> int:
    count = (
        Session.query
        .filter_by(user_id=user_id, revoked=False)
        .update({"revoked": True}, synchronize_session=False)
    )
    db.session.commit()
    return count
