# scripts/run_payment_polling.py
"""
Runs the payment polling reconciler outside the web process.
Useful when the API runs with PAYMENT_POLLING_ENABLED=false on several replicas
and exactly one poller should sweep pending orders.
"""
import asyncio
import logging
import signal
from arq import create_pool
from arq.connections import RedisSettings

from assocpay.core.config import settings
from assocpay.db.session import SessionLocal, engine
from assocpay.services.redis_service import RedisService
from assocpay.services.payment.gateway import StripePaymentGateway
from assocpay.services.payment.polling_service import PaymentPollingService

async def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s"
    )

    redis_service = RedisService()
    await redis_service.initialize()
    arq_pool = await create_pool(RedisSettings(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        password=settings.REDIS_PASSWORD,
        database=settings.REDIS_DB
    ))

    polling_service = PaymentPollingService(
        session_factory=SessionLocal,
        payment_gateway=StripePaymentGateway(),
        arq_pool=arq_pool,
        redis_service=redis_service,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await polling_service.start_polling()
    logging.info("[PaymentPolling] Standalone poller running, press Ctrl+C to stop")
    try:
        await stop_event.wait()
    finally:
        await polling_service.stop_polling()
        await arq_pool.aclose()
        await redis_service.close()
        await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
