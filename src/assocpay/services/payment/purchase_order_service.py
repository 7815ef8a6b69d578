# src/assocpay/services/payment/purchase_order_service.py

import logging
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict

from assocpay.core.config import settings
from assocpay.core.context import AppContext
from assocpay.dao.association.pricing_plan_dao import PricingPlanDao
from assocpay.dao.payment.purchase_order_dao import PurchaseOrderDao
from assocpay.dao.payment.purchase_intent_dao import PurchaseIntentDao
from assocpay.models import PurchaseOrder, PricingPlan, OrderStatus, AssociationMember, User
from assocpay.schemas.payment.gateway_schemas import SessionReference
from assocpay.services.exceptions import (
    PlanNotFound, AlreadyActiveMember, OrderNotFound, PermissionDeniedError, ConfigurationError
)
from assocpay.services.association.member_service import MemberService
from assocpay.services.payment.correlation_resolver import IntentCorrelationResolver
from assocpay.utils.id_generator import generate_order_number

class PaymentStatusView(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    order: PurchaseOrder
    is_processed: bool
    member: Optional[AssociationMember] = None

class PurchaseOrderService:
    """
    订单创建与查询。

    创建顺序保证了网关失败时留下的是一个没有会话引用的 PENDING 订单：
      1. 独立事务中写入 PENDING 订单并提交；
      2. 尽力关联购买意向 (失败不影响下单)；
      3. 打开网关结账会话，订单 UUID 作为 back-reference；
      4. 独立事务中把会话引用合并进订单的 gateway_data。
    """
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.order_dao = PurchaseOrderDao(self.db)
        self.plan_dao = PricingPlanDao(self.db)

    async def create_purchase_order(
        self,
        pricing_plan_uuid: str,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> Tuple[PurchaseOrder, Optional[str]]:
        user: User = self.context.actor
        gateway = self.context.gateway

        plan = await self.plan_dao.get_active_by_uuid(pricing_plan_uuid, withs=["association"])
        if plan is None:
            raise PlanNotFound(f"Pricing plan {pricing_plan_uuid} not found or inactive.")
        if not plan.gateway_price_id:
            raise ConfigurationError(f"Pricing plan {plan.uuid} has no payment gateway price configured.")

        if await MemberService(self.context).has_active_membership(plan.association_id, user.id):
            raise AlreadyActiveMember(f"User already holds an active membership in association {plan.association.uuid}.")

        # 1. 订单先落库，之后任何一步失败都不会丢失它
        async with self.context.unit_of_work() as uow:
            order = await PurchaseOrderDao(uow.db).add(PurchaseOrder(
                order_number=generate_order_number(),
                association_id=plan.association_id,
                user_id=user.id,
                pricing_plan_id=plan.id,
                amount=plan.price,
                currency=plan.currency or settings.STRIPE_DEFAULT_CURRENCY,
                status=OrderStatus.PENDING,
            ))
        logging.info(f"[PurchaseOrder] Order {order.order_number} created for user {user.uuid}, plan {plan.uuid}")

        # 2. 关联购买意向 (best-effort)
        await self._link_purchase_intent(order, user, plan)

        # 3. 打开结账会话；失败时订单保持 PENDING 且无会话引用，由轮询兜底
        checkout = await gateway.create_checkout_session(
            price_ref=plan.gateway_price_id,
            back_reference=order.uuid,
            success_url=success_url or settings.STRIPE_SUCCESS_URL,
            cancel_url=cancel_url or settings.STRIPE_CANCEL_URL,
            customer_email=user.email,
            metadata={
                "purchaseOrderId": order.uuid,
                "associationId": plan.association.uuid,
                "userId": user.uuid,
                "membershipTier": plan.membership_tier.value,
                "orderNumber": order.order_number,
            },
        )

        # 4. 持久化会话引用
        async with self.context.unit_of_work() as uow:
            order_dao = PurchaseOrderDao(uow.db)
            order = await order_dao.reload(order.id, withs=["pricing_plan"])
            order.gateway_data = (
                SessionReference.from_storage(order.gateway_data)
                .merged_with(SessionReference(
                    session_id=checkout.session_id,
                    session_url=checkout.url,
                    payment_intent_id=checkout.payment_intent_id,
                    customer_id=checkout.customer_id,
                    subscription_id=checkout.subscription_id,
                ))
                .to_storage()
            )
            await uow.db.flush()

        logging.info(f"[PurchaseOrder] Checkout session {checkout.session_id} attached to order {order.order_number}")
        return order, checkout.url

    async def _link_purchase_intent(self, order: PurchaseOrder, user: User, plan: PricingPlan):
        try:
            async with self.context.unit_of_work() as uow:
                intent = await IntentCorrelationResolver(uow).resolve(
                    email=user.email,
                    user_id=user.id,
                    pricing_plan_id=plan.id,
                    association_id=plan.association_id,
                )
                if intent is None:
                    return
                await PurchaseIntentDao(uow.db).update_where(
                    where={"id": intent.id},
                    values={"purchase_order_id": order.id}
                )
            logging.info(f"[PurchaseOrder] Order {order.order_number} linked to purchase intent {intent.uuid}")
        except Exception as e:
            logging.error(f"[PurchaseOrder] Failed to link purchase intent for order {order.order_number}: {e}", exc_info=True)

    async def get_order(self, order_uuid: str) -> PurchaseOrder:
        order = await self.order_dao.get_by_uuid(order_uuid, withs=["pricing_plan"])
        if order is None:
            raise OrderNotFound(f"Purchase order {order_uuid} not found.")
        if order.user_id != self.context.actor.id:
            raise PermissionDeniedError("You do not have access to this purchase order.")
        return order

    async def get_order_by_session_id(self, session_id: str) -> PurchaseOrder:
        order = await self.order_dao.get_by_session_id(session_id, withs=["pricing_plan"])
        if order is None:
            raise OrderNotFound(f"No purchase order found for checkout session {session_id}.")
        if order.user_id != self.context.actor.id:
            raise PermissionDeniedError("You do not have access to this purchase order.")
        return order

    async def list_user_orders(self) -> List[PurchaseOrder]:
        return await self.order_dao.list_for_user(self.context.actor.id)

    async def get_payment_status_by_session(self, session_id: str) -> PaymentStatusView:
        """Used by the checkout success page to show whether the membership is live yet."""
        order = await self.get_order_by_session_id(session_id)
        is_processed = order.status == OrderStatus.PAID
        member = None
        if is_processed:
            member = await MemberService(self.context).get_membership(order.association_id, order.user_id)
        return PaymentStatusView(order=order, is_processed=is_processed, member=member)
