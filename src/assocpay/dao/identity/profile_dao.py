# src/assocpay/dao/identity/profile_dao.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.dao.base_dao import BaseDao
from assocpay.models import Profile, ProfileBadge

class ProfileDao(BaseDao[Profile]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(Profile, db_session)

    async def get_default_for_user(self, user_id: int) -> Optional[Profile]:
        return await self.get_one(
            where={"user_id": user_id, "is_default": True},
            order=[Profile.id.asc()]
        )

class ProfileBadgeDao(BaseDao[ProfileBadge]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(ProfileBadge, db_session)

    async def get_for_profile(self, profile_id: int, association_id: int) -> Optional[ProfileBadge]:
        return await self.get_one(where={"profile_id": profile_id, "association_id": association_id})

    async def max_display_order(self, profile_id: int) -> int:
        badges = await self.get_list(where={"profile_id": profile_id})
        return max((b.display_order for b in badges), default=-1)
