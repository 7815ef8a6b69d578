# src/assocpay/db/session.py

from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from assocpay.core.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,      # 取连接时先探活，避免拿到失效连接
    pool_recycle=3600,
)

# [关键] expire_on_commit=False: 事务提交后，服务层仍需读取订单/会员对象执行后续副作用
SessionLocal = async_sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
    class_=AsyncSession
)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a transactional scope around a request.
    Commits if the handler completes, rolls back on any exception.
    """
    async with SessionLocal() as session:
        async with session.begin():
            yield session
