# src/assocpay/api/v1/purchase_order.py

from fastapi import APIRouter, Request
from typing import List
from assocpay.core.context import AppContext
from assocpay.api.dependencies.context import AuthContextDep, PublicContextDep
from assocpay.api.dependencies.authentication import AdminApiKeyDep
from assocpay.schemas.common import JsonResponse
from assocpay.schemas.payment.purchase_order_schemas import (
    PurchaseOrderCreate, PurchaseOrderRead, PurchaseOrderCreated,
    PaymentStatusRead, MemberSnapshot, OrderSyncRead
)
from assocpay.services.payment.purchase_order_service import PurchaseOrderService
from assocpay.services.payment.polling_service import PaymentPollingService

router = APIRouter()

@router.post("", response_model=JsonResponse[PurchaseOrderCreated], summary="Create Purchase Order")
async def create_purchase_order(order_in: PurchaseOrderCreate, context: AppContext = AuthContextDep):
    """
    Creates a PENDING order and opens a checkout session for it.
    The client redirects the user to the returned checkout_url.
    """
    service = PurchaseOrderService(context)
    order, checkout_url = await service.create_purchase_order(
        pricing_plan_uuid=order_in.pricing_plan_uuid,
        success_url=order_in.success_url,
        cancel_url=order_in.cancel_url,
    )
    return JsonResponse(data=PurchaseOrderCreated(
        order=PurchaseOrderRead.model_validate(order),
        checkout_url=checkout_url
    ))

@router.get("/me", response_model=JsonResponse[List[PurchaseOrderRead]], summary="List My Orders")
async def list_my_orders(context: AppContext = AuthContextDep):
    orders = await PurchaseOrderService(context).list_user_orders()
    return JsonResponse(data=[PurchaseOrderRead.model_validate(o) for o in orders])

@router.get("/by-session/{session_id}", response_model=JsonResponse[PaymentStatusRead], summary="Get Payment Status By Checkout Session")
async def get_payment_status_by_session(session_id: str, context: AppContext = AuthContextDep):
    view = await PurchaseOrderService(context).get_payment_status_by_session(session_id)
    return JsonResponse(data=PaymentStatusRead(
        order=PurchaseOrderRead.model_validate(view.order),
        is_processed=view.is_processed,
        member=MemberSnapshot.model_validate(view.member) if view.member else None,
    ))

@router.get("/{order_uuid}", response_model=JsonResponse[PurchaseOrderRead], summary="Get Order")
async def get_order(order_uuid: str, context: AppContext = AuthContextDep):
    order = await PurchaseOrderService(context).get_order(order_uuid)
    return JsonResponse(data=PurchaseOrderRead.model_validate(order))

@router.post(
    "/{order_uuid}/sync",
    response_model=JsonResponse[OrderSyncRead],
    summary="Reconcile Order With Gateway",
    dependencies=[AdminApiKeyDep]
)
async def sync_order(order_uuid: str, request: Request, context: AppContext = PublicContextDep):
    """Administrative: queries the gateway for this order and settles it if the payment went through."""
    polling_service = getattr(request.app.state, "payment_polling_service", None) or PaymentPollingService.from_context(context)
    result = await polling_service.check_specific_order(order_uuid)
    return JsonResponse(data=OrderSyncRead(
        order=PurchaseOrderRead.model_validate(result["order"]),
        session_status=result["session_status"],
        processed=result["processed"],
    ))
