# src/assocpay/dao/association/member_dao.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.dao.base_dao import BaseDao
from assocpay.models import AssociationMember, MembershipHistory

class AssociationMemberDao(BaseDao[AssociationMember]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(AssociationMember, db_session)

    async def get_for_user(self, association_id: int, user_id: int) -> Optional[AssociationMember]:
        """
        Returns the (association, user) record, soft-deleted or not.
        The unique constraint spans deleted rows too, so callers must revive rather than insert.
        """
        return await self.get_one(where={"association_id": association_id, "user_id": user_id})

class MembershipHistoryDao(BaseDao[MembershipHistory]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(MembershipHistory, db_session)
