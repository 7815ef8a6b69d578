# src/assocpay/services/identity/profile_service.py

from typing import Optional
from assocpay.core.context import AppContext
from assocpay.dao.identity.profile_dao import ProfileDao
from assocpay.models import Profile

class ProfileService:
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.dao = ProfileDao(self.db)

    async def find_default_profile(self, user_id: int) -> Optional[Profile]:
        return await self.dao.get_default_for_user(user_id)
