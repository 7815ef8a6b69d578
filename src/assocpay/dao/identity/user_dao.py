# src/assocpay/dao/identity/user_dao.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.dao.base_dao import BaseDao
from assocpay.models import User

class UserDao(BaseDao[User]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(User, db_session)

    async def get_by_uuid(self, uuid: str, withs: Optional[list] = None) -> Optional[User]:
        """Finds a user by their UUID."""
        return await self.get_one(where={"uuid": uuid}, withs=withs)
