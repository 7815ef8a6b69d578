# src/assocpay/services/payment/polling_service.py

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from arq.connections import ArqRedis

from assocpay.core.config import settings
from assocpay.core.context import AppContext
from assocpay.dao.payment.purchase_order_dao import PurchaseOrderDao
from assocpay.models import PurchaseOrder, OrderStatus
from assocpay.schemas.payment.gateway_schemas import (
    SessionReference, PaymentOutcome, CheckoutSessionStatus
)
from assocpay.services.exceptions import OrderNotFound, OrderMissingSession
from assocpay.services.payment.gateway import PaymentGateway
from assocpay.services.payment.outcome_processor import PaymentOutcomeProcessor
from assocpay.services.redis_service import RedisService
from assocpay.utils.time_utils import utcnow

ORPHAN_FAILURE_REASON = "checkout_session_missing"

class PaymentPollingService:
    """
    轮询对账：webhook 丢失或失败时的兜底路径。

    周期性扫描回看窗口内的 PENDING 订单，逐个 (不并发) 向网关查询会话状态；
    网关确认已付款的订单与 webhook 路径一样交给 PaymentOutcomeProcessor。
    超出回看窗口的订单视为弃单，不会被自动处理。
    """
    def __init__(
        self,
        session_factory: async_sessionmaker,
        payment_gateway: PaymentGateway,
        arq_pool: Optional[ArqRedis] = None,
        redis_service: Optional[RedisService] = None,
        interval_seconds: Optional[float] = None,
        lookback_hours: Optional[int] = None,
        batch_size: Optional[int] = None,
        orphan_grace_minutes: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.payment_gateway = payment_gateway
        self.arq_pool = arq_pool
        self.redis_service = redis_service
        self.interval_seconds = interval_seconds or settings.PAYMENT_POLLING_INTERVAL_SECONDS
        self.lookback_hours = lookback_hours or settings.PAYMENT_POLLING_LOOKBACK_HOURS
        self.batch_size = batch_size or settings.PAYMENT_POLLING_BATCH_SIZE
        self.orphan_grace_minutes = (
            orphan_grace_minutes if orphan_grace_minutes is not None else settings.PAYMENT_ORPHAN_GRACE_MINUTES
        )

        self._task: Optional[asyncio.Task] = None
        self.last_run_at: Optional[datetime] = None
        self.last_summary: Optional[Dict[str, Any]] = None

    @classmethod
    def from_context(cls, context: AppContext, **kwargs) -> "PaymentPollingService":
        return cls(
            session_factory=context.session_factory,
            payment_gateway=context.gateway,
            arq_pool=context.arq_pool,
            redis_service=context.redis_service,
            **kwargs
        )

    # ==============================================================================
    # Lifecycle
    # ==============================================================================

    @property
    def is_polling(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start_polling(self):
        if self.is_polling:
            logging.info("[PaymentPolling] Already running, start ignored")
            return
        self._task = asyncio.create_task(self._run_loop(), name="payment-polling")
        logging.info(f"[PaymentPolling] Started, interval {self.interval_seconds}s, lookback {self.lookback_hours}h")

    async def stop_polling(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logging.info("[PaymentPolling] Stopped")

    def get_polling_status(self) -> Dict[str, Any]:
        return {
            "is_polling": self.is_polling,
            "interval_seconds": self.interval_seconds,
            "last_run_at": self.last_run_at,
            "last_summary": self.last_summary,
        }

    async def _run_loop(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.check_pending_payments()
            except Exception as e:
                logging.error(f"[PaymentPolling] Sweep failed: {e}", exc_info=True)

    # ==============================================================================
    # Reconciliation
    # ==============================================================================

    async def check_pending_payments(self) -> Dict[str, Any]:
        since = utcnow() - timedelta(hours=self.lookback_hours)
        summary = {"checked": 0, "paid": 0, "failed": 0, "pending": 0, "errors": 0}
        after = None

        # 每次扫描覆盖整个回看窗口；batch_size 只是分页大小
        while True:
            async with self.session_factory() as session:
                orders = await PurchaseOrderDao(session).get_pending_since(
                    since, limit=self.batch_size, after=after
                )
            if not orders:
                break

            async with self.session_factory() as session:
                processor = PaymentOutcomeProcessor(self._build_context(session))
                for order in orders:
                    summary["checked"] += 1
                    try:
                        verdict, _, _ = await self._reconcile(processor, order)
                        summary[verdict] += 1
                    except Exception as e:
                        # 单个订单失败不能中断整批
                        summary["errors"] += 1
                        logging.error(f"[PaymentPolling] Failed to reconcile order {order.order_number}: {e}", exc_info=True)

            if len(orders) < self.batch_size:
                break
            after = (orders[-1].created_at, orders[-1].id)

        self.last_run_at = utcnow()
        self.last_summary = summary
        logging.info(f"[PaymentPolling] Sweep finished: {summary}")
        return summary

    async def check_specific_order(self, order_uuid: str) -> Dict[str, Any]:
        """Manual, on-demand reconciliation of a single order with the same rules as the sweep."""
        async with self.session_factory() as session:
            order = await PurchaseOrderDao(session).get_by_uuid(order_uuid, withs=["pricing_plan"])
            if order is None:
                raise OrderNotFound(f"Purchase order {order_uuid} not found.")
            reference = SessionReference.from_storage(order.gateway_data)
            if not reference.session_id:
                raise OrderMissingSession(f"Purchase order {order.order_number} has no checkout session.")

            session_status = await self.payment_gateway.get_session_status(reference.session_id)
            processed = False
            if order.status == OrderStatus.PENDING:
                processor = PaymentOutcomeProcessor(self._build_context(session))
                result = await self._apply_session_status(processor, order, session_status, trigger="manual")
                if result is not None:
                    order, processed = result.order, result.transitioned

        logging.info(f"[PaymentPolling] Manual check of order {order.order_number}: {order.status.value}, processed={processed}")
        return {
            "order": order,
            "session_status": session_status.model_dump(),
            "processed": processed,
        }

    async def _reconcile(self, processor: PaymentOutcomeProcessor, order: PurchaseOrder):
        reference = SessionReference.from_storage(order.gateway_data)
        if not reference.session_id:
            if order.created_at <= utcnow() - timedelta(minutes=self.orphan_grace_minutes):
                result = await processor.process_outcome(order.uuid, PaymentOutcome(
                    success=False,
                    trigger="polling",
                    failure_reason=ORPHAN_FAILURE_REASON,
                ))
                logging.warning(f"[PaymentPolling] Order {order.order_number} has no checkout session, marked FAILED")
                return "failed", None, result.transitioned
            return "pending", None, False

        session_status = await self.payment_gateway.get_session_status(reference.session_id)
        result = await self._apply_session_status(processor, order, session_status, trigger="polling")
        if result is None:
            return "pending", session_status, False
        verdict = "paid" if result.order.status == OrderStatus.PAID else "failed"
        return verdict, session_status, result.transitioned

    async def _apply_session_status(
        self,
        processor: PaymentOutcomeProcessor,
        order: PurchaseOrder,
        session_status: CheckoutSessionStatus,
        trigger: str
    ):
        if session_status.paid:
            return await processor.process_outcome(order.uuid, self._outcome_from_status(session_status, True, trigger))
        if session_status.expired:
            return await processor.process_outcome(order.uuid, self._outcome_from_status(session_status, False, trigger))
        return None

    def _outcome_from_status(self, status: CheckoutSessionStatus, success: bool, trigger: str) -> PaymentOutcome:
        return PaymentOutcome(
            success=success,
            reference_id=status.payment_intent_id or status.session_id,
            amount_total=status.amount_total,
            currency=status.currency,
            trigger=trigger,
            failure_reason=None if success else "checkout_session_expired",
            details={
                "session_id": status.session_id,
                "payment_intent_id": status.payment_intent_id,
                "customer_id": status.customer_id,
                "subscription_id": status.subscription_id,
                "payment_status": status.payment_status,
            },
        )

    def _build_context(self, session: AsyncSession) -> AppContext:
        return AppContext(
            db=session,
            session_factory=self.session_factory,
            payment_gateway=self.payment_gateway,
            arq_pool=self.arq_pool,
            redis_service=self.redis_service,
        )
