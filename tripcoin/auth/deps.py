from fastapi import Header, HTTPException, status, Depends
from typing import List, Optional
from tripcoin.models.models import Role
from tripcoin.services.actors import Actor

VALID_ROLES = (Role.CUSTOMER, Role.ADMIN, Role.SUPER_ADMIN)


async def get_current_actor(
    x_actor_id: Optional[int] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Identity asserted by the upstream auth gateway; services re-check it against the users table."""
    if x_actor_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing actor identity")
    role = x_actor_role or Role.CUSTOMER
    if role not in VALID_ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown actor role")
    return Actor(user_id=x_actor_id, role=role)


def role_required(allowed: List[str]):
    async def _dep(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed and not actor.is_super_admin:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return actor

    return _dep


admin_required = role_required([Role.ADMIN])
