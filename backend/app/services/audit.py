from datetime import date, datetime

from sqlalchemy.orm import Session
from app.models.audit_log import AuditLog


def _jsonable(v):
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, dict):
        return {str(k): _jsonable(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    return v


def log_event(
    s: Session,
    username: str | None,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    details: dict | None = None,
):
    row = AuditLog(
        username=username or "system",
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=_jsonable(details) if details is not None else None,
    )
    s.add(row)
    s.commit()
    return row
