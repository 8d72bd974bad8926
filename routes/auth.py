from flask import Blueprint, request, jsonify, current_app, g

from billing.subscriptions import get_active_tier
from models import db
from models.user import User
from security.password import hash_password, verify_password, validate_password
from security.session import create_session, current_token, revoke_session, revoke_all_sessions
from utils.audit import log_event
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _credentials(data: dict):
    email = data.get("email")
    password = data.get("password")
    email = email.strip().lower() if isinstance(email, str) else ""
    return email, password if isinstance(password, str) else ""


def _is_valid_email(email: str) -> bool:
    local, _, domain = email.partition("@")
    return bool(local) and "." in domain and len(email) <= 255


def _user_body(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "tier": get_active_tier(user.id),
    }


def _set_session_cookie(resp, raw_token: str):
    resp.set_cookie(
        current_app.config.get("AUTH_COOKIE_NAME", "petbook_session"),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS", 8 * 60 * 60),
        path="/",
    )
    return resp


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email, password = _credentials(data)
    full_name = data.get("full_name") or data.get("fullName")
    full_name = (full_name.strip()[:120] or None) if isinstance(full_name, str) else None

    if not _is_valid_email(email):
        return jsonify(success=False, error="Invalid email", code="VALIDATION_ERROR"), 422
    errors = validate_password(password)
    if errors:
        return jsonify(success=False, error="Password does not meet policy", code="VALIDATION_ERROR", details=errors), 422

    if User.query.filter_by(email=email).first():
        log_event("REGISTER_FAIL_EMAIL_EXISTS", metadata={"email": email})
        return jsonify(success=False, error="Email already registered", code="CONFLICT"), 409

    user = User(email=email, password_hash=hash_password(password), full_name=full_name)
    db.session.add(user)
    db.session.commit()
    log_event("REGISTER_SUCCESS", user_id=user.id, entity="user", entity_id=user.id)

    return jsonify(success=True, message="Registered successfully", data=_user_body(user)), 201


@auth_bp.post("/login")
def login():
    email, password = _credentials(request.get_json(silent=True) or {})

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(success=False, error="Invalid credentials", code="INVALID_CREDENTIALS"), 401

    # one live session per user
    revoked_count = revoke_all_sessions(user.id)
    resp = _set_session_cookie(
        jsonify(success=True, message="Login OK", data=_user_body(user)),
        create_session(user.id),
    )

    log_event("LOGIN_SUCCESS", user_id=user.id, metadata={"revoked_sessions": revoked_count})
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(success=True, data=_user_body(g.user)), 200


@auth_bp.post("/logout")
@login_required
def logout():
    revoke_session(current_token())
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(success=True, message="Logged out")
    resp.delete_cookie(current_app.config.get("AUTH_COOKIE_NAME", "petbook_session"), path="/")
    return resp, 200
