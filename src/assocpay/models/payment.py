# src/assocpay/models/payment.py

import enum
from sqlalchemy import (
    Column, Integer, String, JSON, Enum, ForeignKey, DateTime, func, DECIMAL, Index
)
from sqlalchemy.orm import relationship
from assocpay.db.base import Base
from assocpay.utils.id_generator import generate_uuid
from assocpay.utils.time_utils import utcnow

class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"        # 终态
    FAILED = "FAILED"    # 终态

class PurchaseIntentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONVERTED = "CONVERTED"

class PurchaseOrder(Base):
    """
    购买订单表 - 支付状态的唯一权威记录。
    只允许 PENDING→PAID 或 PENDING→FAILED 两种迁移；订单永不删除。
    """
    __tablename__ = 'purchase_orders'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid, comment="对外暴露、写入网关会话 back-reference 的订单ID")
    order_number = Column(String(32), nullable=False, unique=True, comment="对用户展示的订单号")

    association_id = Column(Integer, ForeignKey('associations.id'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    pricing_plan_id = Column(Integer, ForeignKey('pricing_plans.id'), nullable=False, index=True)

    # 下单时刻的价格快照
    amount = Column(DECIMAL(10, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)

    # 只合并、不覆盖的网关数据 (session id, payment intent, subscription ...)，见 SessionReference
    gateway_data = Column(JSON, nullable=True)

    # 仅在 PAID 时写入
    membership_start_date = Column(DateTime, nullable=True)
    membership_end_date = Column(DateTime, nullable=True)
    paid_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now(), onupdate=utcnow)

    user = relationship("User")
    association = relationship("Association")
    pricing_plan = relationship("PricingPlan")

    __table_args__ = (
        # 轮询对账按 (status, created_at) 扫描
        Index('ix_purchase_orders_status_created_at', 'status', 'created_at'),
    )

class PurchaseIntentData(Base):
    """
    购买意向数据 - 结账前采集的联系信息。
    由注册/线索流程创建；下单时被关联，支付成功时被转换。
    未关联订单且过期的记录不再是候选。
    """
    __tablename__ = 'purchase_intent_data'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid)

    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    organization = Column(String(255), nullable=True)

    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)
    association_id = Column(Integer, ForeignKey('associations.id', ondelete='CASCADE'), nullable=True, index=True)
    pricing_plan_id = Column(Integer, ForeignKey('pricing_plans.id', ondelete='SET NULL'), nullable=True)
    purchase_order_id = Column(Integer, ForeignKey('purchase_orders.id', ondelete='SET NULL'), nullable=True, index=True)

    purchase_context = Column(JSON, nullable=True)
    status = Column(Enum(PurchaseIntentStatus), nullable=False, default=PurchaseIntentStatus.PENDING, index=True)
    expires_at = Column(DateTime, nullable=False)
    converted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, server_default=func.now())
