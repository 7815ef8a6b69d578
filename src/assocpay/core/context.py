# src/assocpay/core/context.py

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from arq.connections import ArqRedis

from assocpay.api.dependencies.authentication import AuthContext
from assocpay.services.redis_service import RedisService
from assocpay.services.payment.gateway import PaymentGateway
from assocpay.services.exceptions import ConfigurationError

class AppContext(BaseModel):
    """
    Defines the complete, typed context for service layer operations.
    This acts as a "contract" for what dependencies are available and is
    the single source of truth for service dependencies.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # 核心数据库会话 (请求级)
    db: AsyncSession

    # 用于开启独立事务的会话工厂
    session_factory: Optional[async_sessionmaker] = None

    # 对于需要认证的路由，它将是一个 AuthContext 实例；对于公共路由和后台任务，它将是 None。
    auth: Optional[AuthContext] = None

    # 全局应用级服务 (进程内单例)
    payment_gateway: Optional[PaymentGateway] = None
    redis_service: Optional[RedisService] = None
    arq_pool: Optional[ArqRedis] = None

    @property
    def actor(self):
        if not self.auth or not self.auth.user:
            raise PermissionError("An authenticated user (actor) is required for this operation.")
        return self.auth.user

    @property
    def gateway(self) -> PaymentGateway:
        if self.payment_gateway is None:
            raise ConfigurationError("Payment gateway is not initialized.")
        return self.payment_gateway

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator["AppContext"]:
        """
        [关键] 开启一个独立的会话与事务，并返回绑定到它的上下文副本。
        正常退出时提交，异常时整体回滚。
        """
        if self.session_factory is None:
            raise ConfigurationError("A session factory is required to open a unit of work.")
        async with self.session_factory() as session:
            async with session.begin():
                yield self.model_copy(update={"db": session})
