# src/assocpay/services/payment/gateway.py

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import stripe

from assocpay.core.config import settings
from assocpay.schemas.payment.gateway_schemas import CheckoutSession, CheckoutSessionStatus, GatewayEvent
from assocpay.services.exceptions import PaymentGatewayError, WebhookSignatureError, ConfigurationError

class PaymentGateway(ABC):
    """
    支付网关的抽象接口。进程启动时构造一次，之后通过 AppContext 注入给所有服务。
    """

    @abstractmethod
    async def create_checkout_session(
        self,
        price_ref: str,
        back_reference: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        ...

    @abstractmethod
    async def get_session_status(self, session_id: str) -> CheckoutSessionStatus:
        ...

    @abstractmethod
    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        """Verifies the signature of a raw webhook body and parses it."""
        ...

class StripePaymentGateway(PaymentGateway):
    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_network_retries: Optional[int] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        self.timeout_seconds = timeout_seconds or settings.STRIPE_TIMEOUT_SECONDS
        # SDK 内置的网络层重试，只针对连接错误与可重试的状态码
        stripe.max_network_retries = (
            max_network_retries if max_network_retries is not None else settings.STRIPE_MAX_NETWORK_RETRIES
        )

    def _ensure_configured(self):
        if not self.secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not configured.")

    async def _call(self, operation: str, coro) -> Any:
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logging.error(f"[StripeGateway] {operation} timed out after {self.timeout_seconds}s")
            raise PaymentGatewayError(f"Payment gateway timed out during {operation}.") from e
        except stripe.StripeError as e:
            logging.error(f"[StripeGateway] {operation} failed: {e}", exc_info=True)
            raise PaymentGatewayError(f"Payment gateway error during {operation}: {e.user_message or e}") from e

    async def create_checkout_session(
        self,
        price_ref: str,
        back_reference: str,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> CheckoutSession:
        self._ensure_configured()
        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": price_ref, "quantity": 1}],
            "client_reference_id": back_reference,
            "metadata": metadata or {},
            "subscription_data": {"metadata": metadata or {}},
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email

        session = await self._call(
            "checkout session creation",
            stripe.checkout.Session.create_async(api_key=self.secret_key, **params)
        )
        logging.info(f"[StripeGateway] Checkout session {session.id} created for order {back_reference}")
        return CheckoutSession(
            session_id=session.id,
            url=getattr(session, "url", None),
            payment_intent_id=getattr(session, "payment_intent", None),
            customer_id=getattr(session, "customer", None),
            subscription_id=getattr(session, "subscription", None),
        )

    async def get_session_status(self, session_id: str) -> CheckoutSessionStatus:
        self._ensure_configured()
        session = await self._call(
            "checkout session retrieval",
            stripe.checkout.Session.retrieve_async(session_id, api_key=self.secret_key)
        )
        payment_status = getattr(session, "payment_status", None)
        return CheckoutSessionStatus(
            session_id=session.id,
            status=getattr(session, "status", None),
            payment_status=payment_status,
            paid=payment_status in ("paid", "no_payment_required"),
            customer_id=getattr(session, "customer", None),
            subscription_id=getattr(session, "subscription", None),
            payment_intent_id=getattr(session, "payment_intent", None),
            amount_total=getattr(session, "amount_total", None),
            currency=getattr(session, "currency", None),
        )

    def construct_event(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        if not self.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured.")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header.")
        try:
            stripe.Webhook.construct_event(
                payload,
                signature,
                self.webhook_secret,
                tolerance=settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS
            )
        except stripe.SignatureVerificationError as e:
            logging.warning(f"[StripeGateway] Webhook signature verification failed: {e}")
            raise WebhookSignatureError("Webhook signature verification failed.") from e
        except ValueError as e:
            raise WebhookSignatureError("Webhook payload is not valid JSON.") from e

        body = json.loads(payload)
        return GatewayEvent(
            id=body["id"],
            type=body["type"],
            data=(body.get("data") or {}).get("object") or {},
        )
