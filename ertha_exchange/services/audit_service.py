# ertha_exchange/services/audit_service.py
"""Append-only audit trail of administrative actions."""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ertha_exchange.models import AuditLog
from ertha_exchange.utils.helpers import Pagination

logger = logging.getLogger(__name__)


def _json_safe(values: Optional[Any]) -> Optional[Dict[str, Any]]:
    """
    Ensure we persist a JSON-serializable dict.
    Decimals become floats, datetimes ISO strings; non-dicts are wrapped as {"value": ...}.
    """
    if values is None:
        return None
    if not isinstance(values, dict):
        values = {"value": values}

    def _default(o):
        if isinstance(o, Decimal):
            return float(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return str(o)

    return json.loads(json.dumps(values, default=_default, ensure_ascii=False))


def record(
    db: Session,
    *,
    actor_id: Optional[str],
    action: str,
    resource: str,
    resource_id: Optional[str] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    commit: bool = False,
) -> AuditLog:
    """
    Add an audit row to the session. Callers that mutate state pass commit=False so
    the audit entry lands in the same DB transaction as the change it describes.
    """
    entry = AuditLog(
        user_id=actor_id,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        old_values=_json_safe(old_values),
        new_values=_json_safe(new_values),
        meta=_json_safe(metadata) or {},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    if commit:
        db.commit()
    logger.info("audit %s on %s/%s by %s", action, resource, resource_id, actor_id)
    return entry


def list_audit_logs(
    db: Session,
    pagination: Pagination,
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    resource: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    q = db.query(AuditLog)
    if action:
        q = q.filter(AuditLog.action == action)
    if user_id:
        q = q.filter(AuditLog.user_id == user_id)
    if resource:
        q = q.filter(AuditLog.resource == resource)
    if start_date:
        q = q.filter(AuditLog.created_at >= start_date)
    if end_date:
        q = q.filter(AuditLog.created_at <= end_date)

    total = q.count()
    rows = (
        q.order_by(AuditLog.created_at.desc())
        .offset(pagination.offset)
        .limit(pagination.limit)
        .all()
    )
    return [row.to_dict() for row in rows], total


def recent_audit_logs(db: Session, limit: int = 10):
    rows = db.query(AuditLog).order_by(AuditLog.created_at.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]
