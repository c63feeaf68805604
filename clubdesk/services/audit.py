import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models.models import AuditLog, utcnow


def _serialize(data: Any) -> Optional[str]:
    if data is None:
        return None
    try:
        return json.dumps(data, default=str)
    except TypeError:
        return str(data)


def snapshot(record: Any) -> dict:
    return {column.name: getattr(record, column.name) for column in record.__table__.columns}


def audit_log(
    db_session: Session,
    tenant_id: Optional[str],
    actor_user_id: Optional[str],
    action: str,
    target_entity_type: Optional[str] = None,
    target_entity_id: Optional[str] = None,
    before: Any = None,
    after: Any = None,
) -> AuditLog:
    entry = AuditLog(
        timestamp=utcnow(),
        tenant_id=tenant_id,
        actor_user_id=actor_user_id,
        action=action,
        target_entity_type=target_entity_type,
        target_entity_id=target_entity_id,
        before=_serialize(before),
        after=_serialize(after),
    )
    db_session.add(entry)
    db_session.commit()
    return entry
