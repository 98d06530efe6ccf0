from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import AuditLog, AuthEvent, Employee

logger = logging.getLogger(__name__)

AUDIT_PAGE_LIMIT = 200


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    user_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    if not success:
        logger.warning('Sign-in refused for %r from %s: %s', attempted_username, ip, failure_reason)
    db.add(
        AuthEvent(
            attempted_username=attempted_username,
            success=success,
            failure_reason=failure_reason,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    ip: str | None,
    metadata: dict | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction.

    The row commits or rolls back together with the change it describes.
    """
    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        ip=ip,
        meta=metadata or {},
    )
    db.add(entry)
    return entry


def list_audit_log(
    db: Session,
    *,
    action: str | None = None,
    actor_employee_id: str | None = None,
    limit: int = AUDIT_PAGE_LIMIT,
) -> list[dict]:
    if limit < 1:
        raise ValueError('Limit must be at least 1')
    query = (
        select(AuditLog, Employee.employee_id, Employee.name)
        .outerjoin(Employee, Employee.id == AuditLog.actor_user_id)
        .order_by(AuditLog.id.desc())
        .limit(min(limit, AUDIT_PAGE_LIMIT))
    )
    clean_action = (action or '').strip().upper()
    if clean_action:
        query = query.where(AuditLog.action == clean_action)
    clean_actor = (actor_employee_id or '').strip()
    if clean_actor:
        query = query.where(Employee.employee_id == clean_actor)

    return [
        {
            'id': entry.id,
            'action': entry.action,
            'actor_employee_id': employee_id,
            'actor_name': name or 'Unknown',
            'ip': entry.ip,
            'metadata': entry.meta,
            'created_at': entry.created_at,
        }
        for entry, employee_id, name in db.execute(query).all()
    ]
