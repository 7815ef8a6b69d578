# src/assocpay/dao/association/pricing_plan_dao.py

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.dao.base_dao import BaseDao
from assocpay.models import PricingPlan

class PricingPlanDao(BaseDao[PricingPlan]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(PricingPlan, db_session)

    async def get_active_by_uuid(self, uuid: str, withs: Optional[list] = None) -> Optional[PricingPlan]:
        """Only active plans can be purchased."""
        return await self.get_one(where={"uuid": uuid, "is_active": True}, withs=withs)
