from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from rumorwatch.models.audit_log import AuditLog


async def log_audit(
    action: str,
    resource: str,
    resource_id: str = None,
    actor_id: str = None,
    details: str = None,
    request: Request = None,
    db: AsyncSession = None,
):
    ip = request.client.host if request and request.client else None
    user_agent = request.headers.get("user-agent") if request else None

    audit = AuditLog(
        actor_id=actor_id,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id else None,
        details=details,
        ip_address=ip,
        user_agent=user_agent,
    )
    db.add(audit)
    await db.flush()
