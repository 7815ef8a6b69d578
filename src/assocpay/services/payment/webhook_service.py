# src/assocpay/services/payment/webhook_service.py

import logging
from typing import Any, Dict, Optional
from datetime import timedelta

from assocpay.core.config import settings
from assocpay.core.context import AppContext
from assocpay.dao.payment.purchase_order_dao import PurchaseOrderDao
from assocpay.schemas.payment.gateway_schemas import GatewayEvent, PaymentOutcome
from assocpay.services.association.member_service import MemberService
from assocpay.services.exceptions import OrderNotFound
from assocpay.services.payment.outcome_processor import PaymentOutcomeProcessor

WEBHOOK_DEDUP_KEY = "webhook:stripe:processed:{event_id}"

class PaymentWebhookService:
    """
    Webhook 入口：验签后把事件翻译成 PaymentOutcome 交给 PaymentOutcomeProcessor。
    自身不含任何业务逻辑；重复投递由处理器的幂等性兜底，Redis 去重只是捷径。
    """
    def __init__(self, context: AppContext):
        self.context = context
        self.processor = PaymentOutcomeProcessor(context)
        self.redis_service = context.redis_service
        self._handlers = {
            "checkout.session.completed": self._on_checkout_completed,
            "checkout.session.async_payment_succeeded": self._on_async_payment_succeeded,
            "checkout.session.async_payment_failed": self._on_checkout_failed,
            "checkout.session.expired": self._on_checkout_failed,
            "invoice.payment_succeeded": self._on_invoice_event,
            "invoice.payment_failed": self._on_invoice_event,
            "customer.subscription.deleted": self._on_subscription_deleted,
        }

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        # 验签失败直接抛出 WebhookSignatureError，事件不会进入处理器
        event = self.context.gateway.construct_event(payload, signature)
        logging.info(f"[Webhook] Received event {event.id} ({event.type})")

        if await self._already_processed(event.id):
            logging.info(f"[Webhook] Event {event.id} already processed, skipping")
            return {"received": True, "event_id": event.id, "handled": False}

        handler = self._handlers.get(event.type)
        if handler is None:
            logging.info(f"[Webhook] Unhandled event type {event.type}, ignored")
            return {"received": True, "event_id": event.id, "handled": False}

        handled = await handler(event)
        await self._mark_processed(event.id)
        return {"received": True, "event_id": event.id, "handled": handled}

    # ==============================================================================
    # Event handlers
    # ==============================================================================

    async def _on_checkout_completed(self, event: GatewayEvent) -> bool:
        session = event.data
        payment_status = session.get("payment_status")
        if payment_status not in ("paid", "no_payment_required"):
            # 异步支付方式，结果稍后由 async_payment_* 事件送达
            logging.info(f"[Webhook] Checkout session {session.get('id')} completed with payment_status={payment_status}, awaiting settlement")
            return False
        return await self._dispatch_session(event, success=True)

    async def _on_async_payment_succeeded(self, event: GatewayEvent) -> bool:
        return await self._dispatch_session(event, success=True)

    async def _on_checkout_failed(self, event: GatewayEvent) -> bool:
        return await self._dispatch_session(event, success=False, failure_reason=event.type)

    async def _dispatch_session(self, event: GatewayEvent, success: bool, failure_reason: Optional[str] = None) -> bool:
        session = event.data
        order_uuid = self._extract_back_reference(session)
        if not order_uuid:
            logging.warning(f"[Webhook] Event {event.id} ({event.type}) has no purchase order reference, ignored")
            return False

        outcome = PaymentOutcome(
            success=success,
            reference_id=session.get("payment_intent") or session.get("id"),
            amount_total=session.get("amount_total"),
            currency=session.get("currency"),
            trigger="webhook",
            failure_reason=failure_reason,
            details={
                "session_id": session.get("id"),
                "payment_intent_id": session.get("payment_intent"),
                "customer_id": session.get("customer"),
                "subscription_id": session.get("subscription"),
                "payment_status": session.get("payment_status"),
                "event_id": event.id,
            },
        )
        try:
            await self.processor.process(order_uuid, outcome)
        except OrderNotFound:
            logging.warning(f"[Webhook] Event {event.id} references unknown order {order_uuid}, ignored")
            return False
        return True

    async def _on_invoice_event(self, event: GatewayEvent) -> bool:
        invoice = event.data
        # 新版 API 把订阅引用移到了 parent.subscription_details 下
        subscription_id = invoice.get("subscription") or (
            ((invoice.get("parent") or {}).get("subscription_details") or {}).get("subscription")
        )
        if not subscription_id:
            logging.info(f"[Webhook] Invoice {invoice.get('id')} is not tied to a subscription, ignored")
            return False

        order = await PurchaseOrderDao(self.context.db).get_by_subscription_id(subscription_id)
        if order is None:
            logging.warning(f"[Webhook] No purchase order holds subscription {subscription_id}, event {event.id} ignored")
            return False

        success = event.type == "invoice.payment_succeeded"
        outcome = PaymentOutcome(
            success=success,
            reference_id=invoice.get("id"),
            amount_total=invoice.get("amount_paid") if success else None,
            currency=invoice.get("currency"),
            trigger="webhook",
            failure_reason=None if success else event.type,
            details={
                "invoice_id": invoice.get("id"),
                "subscription_id": subscription_id,
                "customer_id": invoice.get("customer"),
                "event_id": event.id,
            },
        )
        await self.processor.process(order.uuid, outcome)
        return True

    async def _on_subscription_deleted(self, event: GatewayEvent) -> bool:
        subscription = event.data
        subscription_id = subscription.get("id")
        order = await PurchaseOrderDao(self.context.db).get_by_subscription_id(subscription_id) if subscription_id else None
        if order is None:
            logging.warning(f"[Webhook] No purchase order holds subscription {subscription_id}, event {event.id} ignored")
            return False

        async with self.context.unit_of_work() as uow:
            member = await MemberService(uow).expire_membership(
                order.association_id,
                order.user_id,
                reason=f"Subscription {subscription_id} of order {order.order_number} was cancelled",
                funded_by=order.uuid,
            )
        return member is not None

    # ==============================================================================
    # Helpers
    # ==============================================================================

    def _extract_back_reference(self, session: Dict[str, Any]) -> Optional[str]:
        metadata = session.get("metadata") or {}
        return metadata.get("purchaseOrderId") or session.get("client_reference_id")

    async def _already_processed(self, event_id: str) -> bool:
        if self.redis_service is None:
            return False
        try:
            return await self.redis_service.exists(WEBHOOK_DEDUP_KEY.format(event_id=event_id))
        except Exception as e:
            logging.error(f"[Webhook] Dedup lookup failed for event {event_id}: {e}", exc_info=True)
            return False

    async def _mark_processed(self, event_id: str):
        if self.redis_service is None:
            return
        try:
            await self.redis_service.set_json(
                WEBHOOK_DEDUP_KEY.format(event_id=event_id),
                {"event_id": event_id},
                expire=timedelta(seconds=settings.WEBHOOK_DEDUP_TTL_SECONDS),
            )
        except Exception as e:
            logging.error(f"[Webhook] Failed to record event {event_id} as processed: {e}", exc_info=True)
