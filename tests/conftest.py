# tests/conftest.py

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional
import itertools
import pytest
from unittest.mock import AsyncMock
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.pool import NullPool
from arq.connections import ArqRedis

from assocpay.db.base import Base
from assocpay.core.context import AppContext
from assocpay.api.dependencies.authentication import AuthContext
from assocpay.models import (
    User, Association, PricingPlan, PurchaseOrder, PurchaseIntentData, AssociationLead,
    AssociationMember, Profile,
    OrderStatus, PurchaseIntentStatus, MembershipTier, MembershipStatus, MemberRole,
    LeadSource, LeadStatus, BillingCycle
)
from assocpay.schemas.payment.gateway_schemas import CheckoutSession, CheckoutSessionStatus
from assocpay.services.payment.gateway import PaymentGateway
from assocpay.services.redis_service import RedisService
from assocpay.utils.id_generator import generate_order_number
from assocpay.utils.time_utils import utcnow

_sequence = itertools.count(1)

# ==============================================================================
# 1. 数据库 Fixtures
#    每个测试一个独立的 SQLite 文件库，条件更新与锁的行为来自真实引擎。
# ==============================================================================

@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'assocpay_test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()

@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=test_engine, class_=AsyncSession
    )

@pytest.fixture
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session

@pytest.fixture
def fetch(session_factory: async_sessionmaker) -> Callable:
    """
    在一个全新的会话中查询，避免读到 identity map 中的旧状态。
    """
    async def _fetch(model, order_by=None, **where) -> List[Any]:
        async with session_factory() as session:
            stmt = select(model).filter_by(**where)
            if order_by is not None:
                stmt = stmt.order_by(order_by)
            result = await session.execute(stmt)
            return list(result.scalars().all())
    return _fetch

# ==============================================================================
# 2. 数据工厂
# ==============================================================================

class DataFactory:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def save(self, instance):
        async with self.session_factory() as session:
            async with session.begin():
                session.add(instance)
        return instance

    async def user(self, email: Optional[str] = None, username: Optional[str] = None) -> User:
        n = next(_sequence)
        return await self.save(User(
            email=email or f"member{n}@example.com",
            username=username or f"member{n}",
            display_name=f"Member {n}",
        ))

    async def association(self, name: Optional[str] = None) -> Association:
        n = next(_sequence)
        return await self.save(Association(name=name or f"Association {n}", slug=f"association-{n}"))

    async def plan(
        self,
        association: Association,
        price: Decimal = Decimal("100.00"),
        currency: str = "HKD",
        tier: MembershipTier = MembershipTier.BASIC,
        gateway_price_id: Optional[str] = "price_basic_yearly",
        is_active: bool = True,
    ) -> PricingPlan:
        n = next(_sequence)
        return await self.save(PricingPlan(
            association_id=association.id,
            name=f"plan-{n}",
            display_name=f"{tier.value.title()} Membership",
            price=price,
            currency=currency,
            billing_cycle=BillingCycle.YEARLY,
            membership_tier=tier,
            is_active=is_active,
            gateway_price_id=gateway_price_id,
        ))

    async def order(
        self,
        user: User,
        plan: PricingPlan,
        status: OrderStatus = OrderStatus.PENDING,
        gateway_data: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> PurchaseOrder:
        return await self.save(PurchaseOrder(
            order_number=generate_order_number(),
            association_id=plan.association_id,
            user_id=user.id,
            pricing_plan_id=plan.id,
            amount=plan.price,
            currency=plan.currency,
            status=status,
            gateway_data=gateway_data,
            created_at=created_at or utcnow(),
        ))

    async def intent(
        self,
        email: str,
        user: Optional[User] = None,
        plan: Optional[PricingPlan] = None,
        association: Optional[Association] = None,
        expires_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
        purchase_order: Optional[PurchaseOrder] = None,
        status: PurchaseIntentStatus = PurchaseIntentStatus.PENDING,
    ) -> PurchaseIntentData:
        return await self.save(PurchaseIntentData(
            email=email,
            first_name="Alex",
            last_name="Chan",
            user_id=user.id if user else None,
            pricing_plan_id=plan.id if plan else None,
            association_id=association.id if association else (plan.association_id if plan else None),
            purchase_order_id=purchase_order.id if purchase_order else None,
            status=status,
            expires_at=expires_at or utcnow() + timedelta(days=30),
            created_at=created_at or utcnow(),
        ))

    async def lead(
        self,
        association: Association,
        user: Optional[User] = None,
        source: LeadSource = LeadSource.PURCHASE_INTENT,
        status: LeadStatus = LeadStatus.NEW,
        purchase_order: Optional[PurchaseOrder] = None,
        created_at: Optional[datetime] = None,
    ) -> AssociationLead:
        return await self.save(AssociationLead(
            association_id=association.id,
            user_id=user.id if user else None,
            first_name="Alex",
            last_name="Chan",
            email=user.email if user else "lead@example.com",
            source=source,
            status=status,
            purchase_order_id=purchase_order.id if purchase_order else None,
            created_at=created_at or utcnow(),
        ))

    async def member(
        self,
        association: Association,
        user: User,
        status: MembershipStatus = MembershipStatus.ACTIVE,
        tier: MembershipTier = MembershipTier.BASIC,
        deleted_at: Optional[datetime] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> AssociationMember:
        return await self.save(AssociationMember(
            association_id=association.id,
            user_id=user.id,
            role=MemberRole.MEMBER,
            membership_tier=tier,
            membership_status=status,
            deleted_at=deleted_at,
            meta=meta,
        ))

    async def profile(self, user: User, is_default: bool = True) -> Profile:
        return await self.save(Profile(user_id=user.id, name=user.display_name or user.username, is_default=is_default))

@pytest.fixture
def factory(session_factory: async_sessionmaker) -> DataFactory:
    return DataFactory(session_factory)

@dataclass
class PurchaseSetup:
    user: User
    association: Association
    plan: PricingPlan

@pytest.fixture
async def purchase_setup(factory: DataFactory) -> PurchaseSetup:
    """一个没有任何会员记录的用户，以及一个 100 HKD 的基础会员方案。"""
    association = await factory.association(name="Hong Kong Design Association")
    plan = await factory.plan(association)
    user = await factory.user(email="alex@example.com")
    return PurchaseSetup(user=user, association=association, plan=plan)

# ==============================================================================
# 3. Mock 外部协作者
# ==============================================================================

@pytest.fixture
def gateway_mock() -> AsyncMock:
    gateway = AsyncMock(spec=PaymentGateway)
    gateway.create_checkout_session.return_value = CheckoutSession(
        session_id="cs_test_123",
        url="https://checkout.stripe.test/c/pay/cs_test_123",
        customer_id="cus_test_1",
    )
    gateway.get_session_status.return_value = CheckoutSessionStatus(
        session_id="cs_test_123",
        status="open",
        payment_status="unpaid",
        paid=False,
    )
    return gateway

@pytest.fixture
def arq_pool_mock() -> AsyncMock:
    return AsyncMock(spec=ArqRedis)

@pytest.fixture
def redis_service_mock() -> AsyncMock:
    redis_service = AsyncMock(spec=RedisService)
    redis_service.exists.return_value = False
    return redis_service

@pytest.fixture
def app_context_factory(
    db_session: AsyncSession,
    session_factory: async_sessionmaker,
    gateway_mock: AsyncMock,
    arq_pool_mock: AsyncMock,
) -> Callable[..., AppContext]:
    def _factory(user: Optional[User] = None, **overrides) -> AppContext:
        values = dict(
            db=db_session,
            session_factory=session_factory,
            payment_gateway=gateway_mock,
            arq_pool=arq_pool_mock,
            auth=AuthContext(user=user) if user else None,
        )
        values.update(overrides)
        return AppContext(**values)
    return _factory
