import bcrypt
from flask import current_app, has_app_context

MIN_PASSWORD_LENGTH = 6

def _rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_ROUNDS", 12))
    return 12

def validate_password(plain_password) -> list:
    errors = []
    if not isinstance(plain_password, str) or not plain_password:
        errors.append("Password is required")
    elif len(plain_password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    elif len(plain_password.encode("utf-8")) > 72:
        # bcrypt only looks at the first 72 bytes
        errors.append("Password must be at most 72 bytes")
    return errors

def hash_password(plain_password: str) -> str:
    if validate_password(plain_password):
        raise ValueError("Password does not meet policy")

    salt = bcrypt.gensalt(rounds=_rounds())
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")

def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8")
        )
    except ValueError:
        # malformed stored hash
        return False
