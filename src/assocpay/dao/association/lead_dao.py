# src/assocpay/dao/association/lead_dao.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.dao.base_dao import BaseDao
from assocpay.models import AssociationLead, LeadStatus, LeadSource

# 已结束的线索不可再被转换
TERMINAL_LEAD_STATUSES = [LeadStatus.CONVERTED, LeadStatus.REJECTED]

class AssociationLeadDao(BaseDao[AssociationLead]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(AssociationLead, db_session)

    async def get_open_for_order(self, purchase_order_id: int) -> Optional[AssociationLead]:
        """A non-terminal lead explicitly linked to the order."""
        return await self.get_one(
            where=[
                ("purchase_order_id", "==", purchase_order_id),
                ("status", "not in", TERMINAL_LEAD_STATUSES),
            ],
            order=[AssociationLead.created_at.desc(), AssociationLead.id.desc()]
        )

    async def get_latest_open_purchase_lead(self, user_id: int, association_id: int) -> Optional[AssociationLead]:
        """Newest non-terminal lead created by the purchase flow for this user and association."""
        return await self.get_one(
            where=[
                ("user_id", "==", user_id),
                ("association_id", "==", association_id),
                ("source", "==", LeadSource.PURCHASE_INTENT),
                ("status", "not in", TERMINAL_LEAD_STATUSES),
            ],
            order=[AssociationLead.created_at.desc(), AssociationLead.id.desc()]
        )
