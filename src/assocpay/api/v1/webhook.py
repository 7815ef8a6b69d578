# src/assocpay/api/v1/webhook.py

from fastapi import APIRouter, Request, Header
from typing import Optional
from assocpay.core.context import AppContext
from assocpay.api.dependencies.context import PublicContextDep
from assocpay.schemas.common import JsonResponse
from assocpay.schemas.payment.purchase_order_schemas import WebhookAck
from assocpay.services.payment.webhook_service import PaymentWebhookService

router = APIRouter()

@router.post("", response_model=JsonResponse[WebhookAck], summary="Payment Gateway Webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    context: AppContext = PublicContextDep
):
    # 验签需要未经解析的原始请求体
    payload = await request.body()
    result = await PaymentWebhookService(context).handle_webhook(payload, stripe_signature)
    return JsonResponse(data=WebhookAck(**result))
