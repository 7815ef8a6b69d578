# src/assocpay/schemas/payment/gateway_schemas.py

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field

class SessionReference(BaseModel):
    """
    订单上的网关数据 (purchase_orders.gateway_data)。
    只合并、不覆盖：已有非空值的键永远不会被替换，缺失或为空的键才会被补充。
    未声明的键 (网关特有字段) 原样保留。
    """
    model_config = ConfigDict(extra="allow")

    session_id: Optional[str] = None
    session_url: Optional[str] = None
    payment_intent_id: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    invoice_id: Optional[str] = None
    payment_status: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    failure_reason: Optional[str] = None
    trigger: Optional[str] = None
    processed_at: Optional[datetime] = None

    @classmethod
    def from_storage(cls, data: Optional[Dict[str, Any]]) -> "SessionReference":
        return cls(**(data or {}))

    def merged_with(self, update: "SessionReference | Dict[str, Any] | None") -> "SessionReference":
        current = self.model_dump(exclude_none=True)
        if update is None:
            incoming = {}
        elif isinstance(update, SessionReference):
            incoming = update.model_dump(exclude_none=True)
        else:
            incoming = {k: v for k, v in update.items() if v is not None}

        for key, value in incoming.items():
            if current.get(key) is None:
                current[key] = value
        return SessionReference(**current)

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

class PaymentOutcome(BaseModel):
    """
    一次支付结果，与投递路径 (webhook / polling / manual) 无关。
    amount_total 为最小货币单位 (分)。
    """
    success: bool
    reference_id: Optional[str] = Field(None, description="网关侧的引用，如 payment intent / invoice / session id")
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    trigger: str = "webhook"
    failure_reason: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict, description="要合并进 gateway_data 的网关字段")

    def to_session_reference(self, processed_at: datetime) -> SessionReference:
        data = dict(self.details)
        data.update({
            "payment_reference": self.reference_id,
            "amount_total": self.amount_total,
            "currency": self.currency,
            "failure_reason": self.failure_reason,
            "trigger": self.trigger,
            "processed_at": processed_at,
        })
        return SessionReference(**{k: v for k, v in data.items() if v is not None})

class CheckoutSession(BaseModel):
    """A checkout session freshly opened on the gateway."""
    session_id: str
    url: Optional[str] = None
    payment_intent_id: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None

class CheckoutSessionStatus(BaseModel):
    session_id: str
    status: Optional[str] = None            # open / complete / expired
    payment_status: Optional[str] = None    # paid / unpaid / no_payment_required
    paid: bool = False
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None

    @property
    def expired(self) -> bool:
        return self.status == "expired"

class GatewayEvent(BaseModel):
    """A verified inbound webhook event."""
    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict, description="事件的 data.object")
