# src/assocpay/schemas/payment/purchase_order_schemas.py

from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, Any, Dict, List
from datetime import datetime
from decimal import Decimal
from assocpay.models import OrderStatus, MembershipTier, MembershipStatus

class PurchaseOrderCreate(BaseModel):
    pricing_plan_uuid: str = Field(..., description="要购买的定价方案")
    success_url: Optional[str] = Field(None, description="支付成功后的跳转地址，缺省使用系统配置")
    cancel_url: Optional[str] = Field(None, description="取消支付后的跳转地址，缺省使用系统配置")

class PurchaseOrderRead(BaseModel):
    uuid: str
    order_number: str
    status: OrderStatus
    amount: Decimal
    currency: str
    pricing_plan_uuid: Optional[str] = None
    membership_tier: Optional[MembershipTier] = None
    session_id: Optional[str] = None
    membership_start_date: Optional[datetime] = None
    membership_end_date: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    @model_validator(mode='before')
    @classmethod
    def pre_process_orm_obj(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        plan = data.__dict__.get("pricing_plan")
        return {
            'uuid': data.uuid,
            'order_number': data.order_number,
            'status': data.status,
            'amount': data.amount,
            'currency': data.currency,
            'pricing_plan_uuid': plan.uuid if plan else None,
            'membership_tier': plan.membership_tier if plan else None,
            'session_id': (data.gateway_data or {}).get("session_id"),
            'membership_start_date': data.membership_start_date,
            'membership_end_date': data.membership_end_date,
            'paid_at': data.paid_at,
            'created_at': data.created_at,
        }

    model_config = ConfigDict(from_attributes=True, extra="ignore")

class PurchaseOrderCreated(BaseModel):
    order: PurchaseOrderRead
    checkout_url: Optional[str] = None

class MemberSnapshot(BaseModel):
    membership_tier: MembershipTier
    membership_status: MembershipStatus
    renewal_date: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class PaymentStatusRead(BaseModel):
    order: PurchaseOrderRead
    is_processed: bool
    member: Optional[MemberSnapshot] = None

class OrderSyncRead(BaseModel):
    order: PurchaseOrderRead
    session_status: Optional[Dict[str, Any]] = None
    processed: bool

class PollingStatusRead(BaseModel):
    is_polling: bool
    interval_seconds: float
    last_run_at: Optional[datetime] = None
    last_summary: Optional[Dict[str, Any]] = None

class WebhookAck(BaseModel):
    received: bool = True
    event_id: Optional[str] = None
    handled: bool = False
