# src/assocpay/api/v1/payment_polling.py

from fastapi import APIRouter, Request
from assocpay.api.dependencies.authentication import AdminApiKeyDep
from assocpay.schemas.common import JsonResponse
from assocpay.schemas.payment.purchase_order_schemas import PollingStatusRead
from assocpay.services.exceptions import NotFoundError

router = APIRouter()

@router.get("/status", response_model=JsonResponse[PollingStatusRead], summary="Payment Polling Status", dependencies=[AdminApiKeyDep])
async def get_polling_status(request: Request):
    polling_service = getattr(request.app.state, "payment_polling_service", None)
    if polling_service is None:
        raise NotFoundError("Payment polling is not running in this process.")
    return JsonResponse(data=PollingStatusRead(**polling_service.get_polling_status()))
