from dataclasses import dataclass

from tripcoin.models.models import Role


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller."""

    user_id: int
    role: str = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role in (Role.ADMIN, Role.SUPER_ADMIN)

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN
