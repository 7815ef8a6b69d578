# src/assocpay/worker/main.py

import logging
from arq.connections import RedisSettings
from assocpay.db.session import engine
from assocpay.services.notification.email_service import EmailService
from assocpay.core.config import settings

TASK_FUNCTIONS = []

def get_redis_settings():
    """统一的 Redis 配置获取函数"""
    return RedisSettings(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD,
        database=settings.REDIS_DB
    )

async def startup(ctx):
    """Worker 进程启动时，创建共享依赖。"""
    logging.basicConfig(level=settings.LOG_LEVEL)
    ctx['email_service'] = EmailService()
    logging.info("ARQ Worker started up, email service is ready.")

async def shutdown(ctx):
    """Worker 进程关闭时，清理资源。"""
    await ctx['email_service'].close()
    await engine.dispose()
    logging.info("ARQ Worker shut down.")

class WorkerSettings:
    """ARQ Worker 的主配置。"""
    functions = TASK_FUNCTIONS
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()
