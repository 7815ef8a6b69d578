# src/assocpay/worker/tasks/notification.py

import logging
from typing import Any, Dict

PURCHASE_CONFIRMATION_TEMPLATE = "purchase_confirmation"

async def send_purchase_confirmation_task(ctx: dict, email: str, summary: Dict[str, Any]):
    """
    ARQ Worker 任务：发送购买确认邮件。
    失败时重新抛出，由 ARQ 记录任务失败；订单与会员状态不受影响。
    """
    try:
        email_service = ctx['email_service']
        await email_service.send_template(email, PURCHASE_CONFIRMATION_TEMPLATE, summary)
    except Exception as e:
        logging.error(
            f"[Notification] Purchase confirmation for order {summary.get('order_number')} to {email} failed: {e}",
            exc_info=True
        )
        raise
