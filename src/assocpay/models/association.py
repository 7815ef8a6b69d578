# src/assocpay/models/association.py

import enum
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Text, JSON, Boolean, Enum, ForeignKey,
    DateTime, func, DECIMAL, UniqueConstraint
)
from sqlalchemy.orm import relationship
from assocpay.db.base import Base
from assocpay.utils.id_generator import generate_uuid

class MemberRole(str, enum.Enum):
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

class MembershipTier(str, enum.Enum):
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    EXECUTIVE = "EXECUTIVE"

class MembershipStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    TERMINATED = "TERMINATED"

class BillingCycle(str, enum.Enum):
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

class LeadStatus(str, enum.Enum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    QUALIFIED = "QUALIFIED"
    CONVERTED = "CONVERTED"
    REJECTED = "REJECTED"

class LeadSource(str, enum.Enum):
    WEBSITE_CONTACT = "WEBSITE_CONTACT"
    PURCHASE_INTENT = "PURCHASE_INTENT"     # 购买流程中产生的线索
    EVENT_REGISTRATION = "EVENT_REGISTRATION"
    REFERRAL = "REFERRAL"
    OTHER = "OTHER"

class LeadPriority(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

class Association(Base):
    __tablename__ = 'associations'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

class PricingPlan(Base):
    """
    协会的定价方案 - 对本模块只读。
    gateway_price_id 是支付网关上对应的价格引用 (Stripe 的 price_...)。
    """
    __tablename__ = 'pricing_plans'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid)
    association_id = Column(Integer, ForeignKey('associations.id', ondelete='CASCADE'), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    price = Column(DECIMAL(10, 2), nullable=False, default=Decimal('0.00'))
    currency = Column(String(3), nullable=False, default="HKD")
    billing_cycle = Column(Enum(BillingCycle), nullable=False, default=BillingCycle.YEARLY)
    membership_tier = Column(Enum(MembershipTier), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    gateway_product_id = Column(String(255), nullable=True, comment="支付网关上的产品ID")
    gateway_price_id = Column(String(255), nullable=True, comment="支付网关上的价格ID，结账会话按它计价")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    association = relationship("Association")

class AssociationMember(Base):
    """
    协会会员表 - 稳态下每个 (association, user) 只有一条记录，
    由唯一约束保证；支付成功时只能“有则更新，无则创建”。
    """
    __tablename__ = 'association_members'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid)
    association_id = Column(Integer, ForeignKey('associations.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)

    role = Column(Enum(MemberRole), nullable=False, default=MemberRole.MEMBER)
    membership_tier = Column(Enum(MembershipTier), nullable=False, default=MembershipTier.BASIC)
    membership_status = Column(Enum(MembershipStatus), nullable=False, default=MembershipStatus.PENDING, index=True)
    renewal_date = Column(DateTime, nullable=True)

    meta = Column(JSON, nullable=True, comment="付款快照等非结构化信息")
    deleted_at = Column(DateTime, nullable=True, comment="软删除标记")

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())

    association = relationship("Association")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('association_id', 'user_id', name='uq_association_members_association_user'),
    )

class MembershipHistory(Base):
    """
    An immutable audit trail of every membership status transition.
    Rows are only ever inserted, in the same transaction as the member mutation.
    """
    __tablename__ = 'membership_history'

    id = Column(Integer, primary_key=True)
    association_member_id = Column(Integer, ForeignKey('association_members.id', ondelete='CASCADE'), nullable=False, index=True)
    previous_status = Column(Enum(MembershipStatus), nullable=False)
    new_status = Column(Enum(MembershipStatus), nullable=False)
    changed_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    reason = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())

class AssociationLead(Base):
    """
    协会线索表 (旧结构)。与 PurchaseIntentData 目的重叠，但两者相互独立，
    支付成功时都需要检查并转换。
    """
    __tablename__ = 'association_leads'

    id = Column(Integer, primary_key=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True, default=generate_uuid)
    association_id = Column(Integer, ForeignKey('associations.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    message = Column(Text, nullable=True)

    source = Column(Enum(LeadSource), nullable=False, default=LeadSource.WEBSITE_CONTACT)
    status = Column(Enum(LeadStatus), nullable=False, default=LeadStatus.NEW, index=True)
    priority = Column(Enum(LeadPriority), nullable=False, default=LeadPriority.MEDIUM)

    purchase_order_id = Column(Integer, ForeignKey('purchase_orders.id', ondelete='SET NULL'), nullable=True, index=True)
    meta = Column(JSON, nullable=True)
    converted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now())
