# src/assocpay/services/notification/email_service.py

import logging
from typing import Any, Dict, Optional
import httpx
from assocpay.core.config import settings
from assocpay.services.exceptions import ConfigurationError

class EmailService:
    """
    通过 HTTP 事务邮件 API 发送邮件。模板渲染由邮件服务商完成。
    """
    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(timeout=settings.MAIL_TIMEOUT_SECONDS)

    async def close(self):
        await self.client.aclose()

    async def send_template(self, to: str, template: str, variables: Dict[str, Any]) -> None:
        if not settings.MAIL_API_URL:
            raise ConfigurationError("MAIL_API_URL is not configured.")

        response = await self.client.post(
            settings.MAIL_API_URL,
            headers={"Authorization": f"Bearer {settings.MAIL_API_KEY or ''}"},
            json={
                "from": settings.MAIL_FROM_ADDRESS,
                "to": to,
                "template": template,
                "variables": variables,
            },
        )
        response.raise_for_status()
        logging.info(f"[Email] Template '{template}' sent to {to}")
