# src/assocpay/services/payment/lead_conversion_service.py

import logging
from typing import Optional
from assocpay.core.context import AppContext
from assocpay.dao.payment.purchase_intent_dao import PurchaseIntentDao
from assocpay.dao.association.lead_dao import AssociationLeadDao
from assocpay.models import (
    PurchaseOrder, PurchaseIntentData, PurchaseIntentStatus, AssociationLead, LeadStatus
)
from assocpay.utils.time_utils import utcnow

class LeadConversionService:
    """
    支付成功后转换购买意向与线索。
    PurchaseIntentData 与 AssociationLead 是两套独立的结构，两者都要检查，互不去重。
    """
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.intent_dao = PurchaseIntentDao(self.db)
        self.lead_dao = AssociationLeadDao(self.db)

    async def convert_purchase_intent(self, order: PurchaseOrder) -> Optional[PurchaseIntentData]:
        now = utcnow()
        # 已经在下单时关联到本订单的意向优先，即使已过期也可转换
        intent = await self.intent_dao.get_pending_for_order(order.id)
        if intent is None:
            intent = await self.intent_dao.get_latest_pending_for_user(order.user_id, order.association_id, now)
        if intent is None:
            return None

        intent.status = PurchaseIntentStatus.CONVERTED
        intent.converted_at = now
        intent.purchase_order_id = order.id
        await self.db.flush()
        logging.info(f"[LeadConversion] Purchase intent {intent.uuid} converted by order {order.order_number}")
        return intent

    async def convert_association_lead(self, order: PurchaseOrder) -> Optional[AssociationLead]:
        lead = await self.lead_dao.get_open_for_order(order.id)
        if lead is None:
            lead = await self.lead_dao.get_latest_open_purchase_lead(order.user_id, order.association_id)
        if lead is None:
            return None

        now = utcnow()
        lead.status = LeadStatus.CONVERTED
        lead.converted_at = now
        lead.purchase_order_id = order.id
        lead.meta = {
            **(lead.meta or {}),
            "conversion": {
                "order_id": order.uuid,
                "order_number": order.order_number,
                "converted_at": now.isoformat(),
            },
        }
        await self.db.flush()
        logging.info(f"[LeadConversion] Lead {lead.uuid} converted by order {order.order_number}")
        return lead
