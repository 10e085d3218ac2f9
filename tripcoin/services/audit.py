from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tripcoin.models.models import AuditLog
from tripcoin.timeutil import utcnow


async def log_audit(
    db: AsyncSession,
    actor_id: Optional[int],
    action: str,
    object_type: str = None,
    object_id=None,
    detail: dict = None,
):
    audit = AuditLog(
        actor_id=actor_id,
        action=action,
        object_type=object_type,
        object_id=str(object_id) if object_id is not None else None,
        detail=detail,
        created_at=utcnow(),
    )
    db.add(audit)
    # do not commit here; caller should include in transaction context
    return audit
