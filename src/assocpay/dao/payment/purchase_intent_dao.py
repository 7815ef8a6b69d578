# src/assocpay/dao/payment/purchase_intent_dao.py

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.dao.base_dao import BaseDao
from assocpay.models import PurchaseIntentData, PurchaseIntentStatus

_NEWEST_FIRST = [PurchaseIntentData.created_at.desc(), PurchaseIntentData.id.desc()]

class PurchaseIntentDao(BaseDao[PurchaseIntentData]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(PurchaseIntentData, db_session)

    async def find_pending_by_email(
        self, email: str, pricing_plan_id: int, association_id: int, now: datetime
    ) -> Optional[PurchaseIntentData]:
        return await self.get_one(
            where=[
                ("email", "==", email),
                ("pricing_plan_id", "==", pricing_plan_id),
                ("association_id", "==", association_id),
                ("status", "==", PurchaseIntentStatus.PENDING),
                ("expires_at", ">", now),
            ],
            order=_NEWEST_FIRST
        )

    async def find_pending_by_user(
        self, user_id: int, pricing_plan_id: int, now: datetime
    ) -> Optional[PurchaseIntentData]:
        return await self.get_one(
            where=[
                ("user_id", "==", user_id),
                ("pricing_plan_id", "==", pricing_plan_id),
                ("status", "==", PurchaseIntentStatus.PENDING),
                ("expires_at", ">", now),
            ],
            order=_NEWEST_FIRST
        )

    async def get_pending_for_order(self, purchase_order_id: int) -> Optional[PurchaseIntentData]:
        """Once linked to an order, an intent stays convertible even past its expiry."""
        return await self.get_one(
            where={"purchase_order_id": purchase_order_id, "status": PurchaseIntentStatus.PENDING},
            order=_NEWEST_FIRST
        )

    async def get_latest_pending_for_user(
        self, user_id: int, association_id: int, now: datetime
    ) -> Optional[PurchaseIntentData]:
        return await self.get_one(
            where=[
                ("user_id", "==", user_id),
                ("association_id", "==", association_id),
                ("status", "==", PurchaseIntentStatus.PENDING),
                ("expires_at", ">", now),
            ],
            order=_NEWEST_FIRST
        )
