import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit_log import AuditLog


log = logging.getLogger(__name__)


async def audit(
    db: AsyncSession,
    *,
    actor_user_id: str | None,
    action: str,
    target_type: str | None = None,
    target_id: str | None = None,
    detail: dict | None = None,
) -> AuditLog:
    """Record a state change in the caller's transaction; it commits or rolls back with it."""
    entry = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        detail=detail or {},
    )
    db.add(entry)
    log.info("%s %s/%s by %s", action, target_type, target_id, actor_user_id)
    return entry
