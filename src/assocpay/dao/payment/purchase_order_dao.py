# src/assocpay/dao/payment/purchase_order_dao.py

from datetime import datetime
from typing import Optional, List, Tuple
from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.dao.base_dao import BaseDao
from assocpay.models import PurchaseOrder, OrderStatus

# 处理支付结果时需要的关联对象
ORDER_WITHS = ["user", "association", "pricing_plan"]

class PurchaseOrderDao(BaseDao[PurchaseOrder]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(PurchaseOrder, db_session)

    async def get_by_uuid(self, uuid: str, withs: Optional[list] = None) -> Optional[PurchaseOrder]:
        return await self.get_one(where={"uuid": uuid}, withs=withs)

    async def get_by_session_id(self, session_id: str, withs: Optional[list] = None) -> Optional[PurchaseOrder]:
        return await self.get_one(
            where=[PurchaseOrder.gateway_data["session_id"].as_string() == session_id],
            withs=withs
        )

    async def get_by_subscription_id(self, subscription_id: str, withs: Optional[list] = None) -> Optional[PurchaseOrder]:
        """Renewal invoices only carry the subscription; the newest order holding it is the one to settle."""
        return await self.get_one(
            where=[PurchaseOrder.gateway_data["subscription_id"].as_string() == subscription_id],
            withs=withs,
            order=[PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()]
        )

    async def list_for_user(self, user_id: int) -> List[PurchaseOrder]:
        return await self.get_list(
            where={"user_id": user_id},
            withs=["pricing_plan"],
            order=[PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()]
        )

    async def get_pending_since(
        self,
        since: datetime,
        limit: int = 0,
        after: Optional[Tuple[datetime, int]] = None
    ) -> List[PurchaseOrder]:
        """按 (created_at, id) 升序分页；after 为上一页最后一行的键。"""
        where = [PurchaseOrder.status == OrderStatus.PENDING]
        if after is not None:
            created_at, order_id = after
            where.append(or_(
                PurchaseOrder.created_at > created_at,
                and_(PurchaseOrder.created_at == created_at, PurchaseOrder.id > order_id)
            ))
        return await self.get_list(
            where=where,
            start_time=since,
            order=[PurchaseOrder.created_at.asc(), PurchaseOrder.id.asc()],
            limit=limit
        )

    async def transition_status(self, order_id: int, to_status: OrderStatus, values: Optional[dict] = None) -> bool:
        """
        [关键] 条件状态迁移：只有仍为 PENDING 的订单才会被更新。
        返回 False 表示其他执行者已经先一步完成了迁移。
        在 PostgreSQL 上该 UPDATE 持有行锁直到事务结束；在 SQLite 上它取得写锁。
        """
        payload = dict(values or {})
        payload["status"] = to_status
        rowcount = await self.update_where(
            where=[PurchaseOrder.id == order_id, PurchaseOrder.status == OrderStatus.PENDING],
            values=payload
        )
        return rowcount == 1
