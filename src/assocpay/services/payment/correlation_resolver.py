# src/assocpay/services/payment/correlation_resolver.py

import logging
from typing import Optional
from assocpay.core.context import AppContext
from assocpay.dao.payment.purchase_intent_dao import PurchaseIntentDao
from assocpay.models import PurchaseIntentData
from assocpay.utils.time_utils import utcnow

class IntentCorrelationResolver:
    """
    为新订单寻找最可能对应的购买意向记录。分级匹配，先命中者胜，每级按创建时间倒序：
      1. (email, pricing_plan, association) 精确匹配，PENDING 且未过期。
      2. (user_id, pricing_plan) 精确匹配，PENDING 且未过期。
    命中且 user_id 为空的记录会被当前用户认领。
    除认领外不做任何写入；找不到是正常结果 (直接购买流程)。
    """
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.intent_dao = PurchaseIntentDao(self.db)

    async def resolve(
        self,
        email: Optional[str],
        user_id: int,
        pricing_plan_id: int,
        association_id: int
    ) -> Optional[PurchaseIntentData]:
        now = utcnow()
        intent = None
        tier = None

        if email:
            intent = await self.intent_dao.find_pending_by_email(email, pricing_plan_id, association_id, now)
            tier = "email"

        if intent is None:
            intent = await self.intent_dao.find_pending_by_user(user_id, pricing_plan_id, now)
            tier = "user"

        if intent is None:
            return None

        if intent.user_id is None:
            intent.user_id = user_id
            await self.db.flush()
            logging.info(f"[Correlation] Intent {intent.uuid} adopted by user {user_id}")

        logging.info(f"[Correlation] Matched intent {intent.uuid} by {tier} for user {user_id}, plan {pricing_plan_id}")
        return intent
