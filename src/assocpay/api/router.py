# src/assocpay/api/router.py

from fastapi import APIRouter
from assocpay.api.v1 import purchase_order
from assocpay.api.v1 import webhook
from assocpay.api.v1 import payment_polling

# The main router for API v1
router = APIRouter(prefix="/api/v1")

router.include_router(purchase_order.router, prefix="/orders", tags=["Purchase Orders"])
router.include_router(webhook.router, prefix="/webhook", tags=["Webhook"])
router.include_router(payment_polling.router, prefix="/payment-polling", tags=["Payment Polling"])
