# src/assocpay/services/payment/outcome_processor.py

import logging
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Tuple
from pydantic import BaseModel, ConfigDict

from assocpay.core.context import AppContext
from assocpay.dao.payment.purchase_order_dao import PurchaseOrderDao, ORDER_WITHS
from assocpay.models import PurchaseOrder, OrderStatus, MembershipTier, MembershipStatus
from assocpay.schemas.payment.gateway_schemas import PaymentOutcome, SessionReference
from assocpay.services.exceptions import OrderNotFound
from assocpay.services.association.member_service import MemberService
from assocpay.services.association.badge_service import BadgeService
from assocpay.services.identity.profile_service import ProfileService
from assocpay.services.notification.notification_service import NotificationService
from assocpay.services.payment.lead_conversion_service import LeadConversionService
from assocpay.utils.time_utils import utcnow, add_years

# 每个会员等级的有效期 (年)。目前所有等级统一为 1 年。
TIER_PERIOD_YEARS = {
    MembershipTier.BASIC: 1,
    MembershipTier.PREMIUM: 1,
    MembershipTier.EXECUTIVE: 1,
}

def compute_validity_window(tier: MembershipTier, start: datetime) -> Tuple[datetime, datetime]:
    return start, add_years(start, TIER_PERIOD_YEARS.get(tier, 1))

class ProcessingResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    order: PurchaseOrder
    # 只有真正完成了 PENDING→终态 迁移的那一次调用为 True
    transitioned: bool = False
    previous_member_status: Optional[MembershipStatus] = None

class PaymentOutcomeProcessor:
    """
    支付结果对账核心：webhook 与轮询两条路径共用的唯一入口。

    成功路径在一个事务内完成：订单 PENDING→PAID (条件更新)、合并网关数据、
    会员有则更新无则创建、写一条 MembershipHistory。
    事务提交后依次执行徽章、意向/线索转换、确认通知，各自独立容错，失败只记录日志。

    对已 PAID 的订单重复调用是无副作用的空操作。
    """
    def __init__(self, context: AppContext):
        self.context = context

    async def process(self, order_uuid: str, outcome: PaymentOutcome) -> PurchaseOrder:
        result = await self.process_outcome(order_uuid, outcome)
        return result.order

    async def process_outcome(self, order_uuid: str, outcome: PaymentOutcome) -> ProcessingResult:
        async with self.context.unit_of_work() as uow:
            if outcome.success:
                result = await self._apply_success(uow, order_uuid, outcome)
            else:
                result = await self._apply_failure(uow, order_uuid, outcome)

        # [关键] 以下副作用在财务事务之外执行，它们的失败不能回滚订单与会员状态
        if result.transitioned and outcome.success:
            await self._run_side_effects(result.order)
        return result

    # ==============================================================================
    # Transactional part
    # ==============================================================================

    async def _apply_success(self, uow: AppContext, order_uuid: str, outcome: PaymentOutcome) -> ProcessingResult:
        order_dao = PurchaseOrderDao(uow.db)
        order = await order_dao.get_by_uuid(order_uuid, withs=ORDER_WITHS)
        if order is None:
            raise OrderNotFound(f"Purchase order {order_uuid} not found.")

        if order.status == OrderStatus.PAID:
            logging.info(f"[PaymentOutcome] Order {order.order_number} already PAID, nothing to do ({outcome.trigger})")
            return ProcessingResult(order=order)
        if order.status == OrderStatus.FAILED:
            logging.warning(
                f"[PaymentOutcome] Success reported for FAILED order {order.order_number} "
                f"({outcome.trigger}, ref={outcome.reference_id}); manual review required"
            )
            return ProcessingResult(order=order)

        now = utcnow()
        tier = order.pricing_plan.membership_tier
        start_date, end_date = compute_validity_window(tier, now)

        claimed = await order_dao.transition_status(order.id, OrderStatus.PAID, {
            "paid_at": now,
            "membership_start_date": start_date,
            "membership_end_date": end_date,
            "updated_at": now,
        })
        order = await order_dao.reload(order.id, withs=ORDER_WITHS)
        if not claimed:
            logging.info(
                f"[PaymentOutcome] Order {order.order_number} was settled concurrently "
                f"(now {order.status.value}), skipping ({outcome.trigger})"
            )
            return ProcessingResult(order=order)

        order.gateway_data = (
            SessionReference.from_storage(order.gateway_data)
            .merged_with(outcome.to_session_reference(now))
            .to_storage()
        )
        self._check_echo(order, outcome)

        member, previous_status = await MemberService(uow).activate_from_order(
            order, tier=tier, renewal_date=end_date, paid_at=now
        )
        await uow.db.flush()

        logging.info(
            f"[PaymentOutcome] Order {order.order_number} PAID via {outcome.trigger}; "
            f"member {member.uuid} {previous_status.value} -> ACTIVE until {end_date.date()}"
        )
        return ProcessingResult(order=order, transitioned=True, previous_member_status=previous_status)

    async def _apply_failure(self, uow: AppContext, order_uuid: str, outcome: PaymentOutcome) -> ProcessingResult:
        order_dao = PurchaseOrderDao(uow.db)
        order = await order_dao.get_by_uuid(order_uuid, withs=ORDER_WITHS)
        if order is None:
            raise OrderNotFound(f"Purchase order {order_uuid} not found.")

        if order.status != OrderStatus.PENDING:
            logging.info(
                f"[PaymentOutcome] Failure reported for {order.status.value} order {order.order_number}, ignored ({outcome.trigger})"
            )
            return ProcessingResult(order=order)

        now = utcnow()
        claimed = await order_dao.transition_status(order.id, OrderStatus.FAILED, {"updated_at": now})
        order = await order_dao.reload(order.id, withs=ORDER_WITHS)
        if not claimed:
            return ProcessingResult(order=order)

        order.gateway_data = (
            SessionReference.from_storage(order.gateway_data)
            .merged_with(outcome.to_session_reference(now))
            .to_storage()
        )
        await uow.db.flush()
        logging.info(
            f"[PaymentOutcome] Order {order.order_number} FAILED via {outcome.trigger}: "
            f"{outcome.failure_reason or 'payment failed'}"
        )
        return ProcessingResult(order=order, transitioned=True)

    def _check_echo(self, order: PurchaseOrder, outcome: PaymentOutcome):
        """The gateway's verdict stands; a mismatch is only surfaced for review."""
        if outcome.amount_total is not None:
            echoed = Decimal(outcome.amount_total) / 100
            if echoed != Decimal(order.amount):
                logging.warning(
                    f"[PaymentOutcome] Amount mismatch on order {order.order_number}: "
                    f"expected {order.amount}, gateway reported {echoed}"
                )
        if outcome.currency and outcome.currency.upper() != order.currency.upper():
            logging.warning(
                f"[PaymentOutcome] Currency mismatch on order {order.order_number}: "
                f"expected {order.currency}, gateway reported {outcome.currency}"
            )

    # ==============================================================================
    # Best-effort side effects
    # ==============================================================================

    async def _run_side_effects(self, order: PurchaseOrder):
        await self._guarded("profile badge", order, self._ensure_badge)
        await self._guarded("purchase intent conversion", order, self._convert_purchase_intent)
        await self._guarded("lead conversion", order, self._convert_association_lead)
        await self._guarded("purchase confirmation", order, self._send_confirmation)

    async def _guarded(self, name: str, order: PurchaseOrder, step: Callable[[PurchaseOrder], Awaitable[None]]):
        try:
            await step(order)
        except Exception as e:
            logging.error(f"[PaymentOutcome] Side effect '{name}' failed for order {order.order_number}: {e}", exc_info=True)

    async def _ensure_badge(self, order: PurchaseOrder):
        async with self.context.unit_of_work() as uow:
            profile = await ProfileService(uow).find_default_profile(order.user_id)
            if profile is None:
                logging.info(f"[PaymentOutcome] User {order.user_id} has no default profile, badge skipped")
                return
            await BadgeService(uow).ensure_badge(profile.id, order.association_id)

    async def _convert_purchase_intent(self, order: PurchaseOrder):
        async with self.context.unit_of_work() as uow:
            await LeadConversionService(uow).convert_purchase_intent(order)

    async def _convert_association_lead(self, order: PurchaseOrder):
        async with self.context.unit_of_work() as uow:
            await LeadConversionService(uow).convert_association_lead(order)

    async def _send_confirmation(self, order: PurchaseOrder):
        summary = {
            "order_id": order.uuid,
            "order_number": order.order_number,
            "association_name": order.association.name,
            "plan_name": order.pricing_plan.display_name,
            "membership_tier": order.pricing_plan.membership_tier.value,
            "amount": str(order.amount),
            "currency": order.currency,
            "membership_start_date": order.membership_start_date.isoformat() if order.membership_start_date else None,
            "membership_end_date": order.membership_end_date.isoformat() if order.membership_end_date else None,
            "recipient_name": order.user.display_name or order.user.username,
        }
        await NotificationService(self.context).send_purchase_confirmation(order.user.email, summary)
