# src/assocpay/services/notification/notification_service.py

import logging
from typing import Any, Dict
from assocpay.core.context import AppContext

class NotificationService:
    """
    购买确认通知。只负责把任务投递到 ARQ 队列，实际发送在 worker 中完成。
    """
    def __init__(self, context: AppContext):
        self.context = context
        self.arq_pool = context.arq_pool

    async def send_purchase_confirmation(self, email: str, summary: Dict[str, Any]) -> bool:
        if self.arq_pool is None:
            logging.warning(f"[Notification] Task queue unavailable, purchase confirmation to {email} skipped")
            return False

        await self.arq_pool.enqueue_job("send_purchase_confirmation_task", email, summary)
        logging.info(f"[Notification] Purchase confirmation for order {summary.get('order_number')} queued")
        return True
