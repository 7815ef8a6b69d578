# src/assocpay/main.py

import logging
from contextlib import asynccontextmanager
from arq import create_pool
from arq.connections import RedisSettings
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from assocpay.db.session import SessionLocal
from assocpay.core.config import settings
from assocpay.api.router import router
from assocpay.services.redis_service import RedisService
from assocpay.services.exceptions import ServiceException
from assocpay.services.payment.gateway import StripePaymentGateway
from assocpay.services.payment.polling_service import PaymentPollingService
from assocpay.middleware import AuthenticationMiddleware

@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )

    # --- [关键] Redis 连接生命周期 ---
    # Redis 同时服务于 webhook 去重 (RedisService) 与 ARQ 任务投递
    redis_settings = RedisSettings(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD,
        database=settings.REDIS_DB
    )
    app.state.redis_service = RedisService()
    await app.state.redis_service.initialize()
    app.state.arq_pool = await create_pool(redis_settings)

    # --- 支付网关单例：进程内只构造一次，按引用注入 ---
    app.state.session_factory = SessionLocal
    app.state.payment_gateway = StripePaymentGateway()

    app.state.payment_polling_service = None
    if settings.PAYMENT_POLLING_ENABLED:
        polling_service = PaymentPollingService(
            session_factory=SessionLocal,
            payment_gateway=app.state.payment_gateway,
            arq_pool=app.state.arq_pool,
            redis_service=app.state.redis_service,
        )
        await polling_service.start_polling()
        app.state.payment_polling_service = polling_service

    yield

    # --- 清理 ---
    if app.state.payment_polling_service is not None:
        await app.state.payment_polling_service.stop_polling()
    logging.info("Closing Redis connections...")
    await app.state.redis_service.close()
    await app.state.arq_pool.aclose()

app = FastAPI(lifespan=lifespan)

app.add_middleware(AuthenticationMiddleware)

origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"])

app.include_router(router)

@app.exception_handler(ServiceException)
async def service_exception_handler(request: Request, exc: ServiceException):
    # 处理所有来自服务层的、可预期的业务逻辑错误；状态码与错误码由异常类自身声明
    if exc.status_code >= 500:
        logging.error(f"[API] {exc.code}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status_code, "msg": exc.message, "code": exc.code, "data": None},
    )

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    # 重写 FastAPI 默认的 HTTPException 处理器，以匹配我们的响应格式
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": exc.status_code, "msg": exc.detail, "code": None, "data": None},
        headers=exc.headers,
    )

@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logging.error(f"[API] Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"status": 500, "msg": "Internal Server Error", "code": None, "data": None},
    )
