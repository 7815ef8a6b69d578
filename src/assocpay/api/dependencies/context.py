# src/assocpay/api/dependencies/context.py

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from assocpay.core.context import AppContext
from assocpay.db.session import get_db, SessionLocal
from assocpay.api.dependencies.authentication import get_auth

async def get_base_context(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> AppContext:
    """
    [纯粹构建器]
    只负责构建一个包含所有非认证的、全局共享依赖的 AppContext。
    """
    return AppContext(
        db=db,
        auth=None,
        session_factory=getattr(request.app.state, "session_factory", SessionLocal),
        payment_gateway=getattr(request.app.state, "payment_gateway", None),
        redis_service=getattr(request.app.state, "redis_service", None),
        arq_pool=getattr(request.app.state, "arq_pool", None)
    )

async def require_auth_context(
    request: Request,
    context: AppContext = Depends(get_base_context),
) -> AppContext:
    """
    [强制认证]
    如果 get_auth 抛出任何 HTTPException (401 等)，请求将在此被中断。
    """
    context.auth = await get_auth(request, context.db)
    return context

# 用于公共路由 (如 webhook) 与管理路由
PublicContextDep = Depends(get_base_context)
# 用于需要强制认证的私有路由
AuthContextDep = Depends(require_auth_context)
