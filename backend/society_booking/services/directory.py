"""
Read-only lookups into the resident directory.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from society_booking.models.user import User


@dataclass(frozen=True)
class Actor:
    """The authenticated caller, detached from any session."""

    user_id: int
    is_admin: bool

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, is_admin=user.is_admin)


class UserDirectory:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: int) -> Optional[User]:
        return await self.session.get(User, user_id)

    async def get_active(self, user_id: int) -> Optional[User]:
        user = await self.get(user_id)
        if user is None or not user.is_active:
            return None
        return user
