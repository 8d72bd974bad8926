import json
from flask import current_app, request, has_request_context
from models import db
from models.audit_log import AuditLog

def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None):
    """
    Persist one audit row in its own commit.

    Call this after the engine's unit of work has finished, never inside it,
    so a rolled-back booking change cannot take its audit row along.
    Works outside a request too (CLI commands), minus ip and user agent.
    """
    ip = user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    db.session.add(AuditLog(
        user_id=user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        ip=ip,
        user_agent=user_agent,
        metadata_json=json.dumps(metadata, default=str) if metadata else None,
    ))
    db.session.commit()
    current_app.logger.debug("audit %s user=%s %s:%s", action, user_id, entity, entity_id)
