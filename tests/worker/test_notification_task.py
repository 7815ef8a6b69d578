# tests/worker/test_notification_task.py

import json
import httpx
import pytest

from assocpay.core.config import settings
from assocpay.services.notification.email_service import EmailService
from assocpay.worker.tasks.notification import send_purchase_confirmation_task, PURCHASE_CONFIRMATION_TEMPLATE
from assocpay.worker.main import TASK_FUNCTIONS

pytestmark = pytest.mark.asyncio

SUMMARY = {"order_number": "PO20260301120000ABCD", "amount": "100.00", "currency": "HKD"}

@pytest.fixture
def mail_settings(monkeypatch):
    monkeypatch.setattr(settings, "MAIL_API_URL", "https://mail.example.com/send")
    monkeypatch.setattr(settings, "MAIL_API_KEY", "mail-key")
    monkeypatch.setattr(settings, "MAIL_FROM_ADDRESS", "no-reply@example.com")

async def test_task_is_registered():
    assert send_purchase_confirmation_task in TASK_FUNCTIONS

async def test_confirmation_is_posted_to_mail_api(mail_settings):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202, json={"id": "msg_1"})

    email_service = EmailService(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    await send_purchase_confirmation_task({"email_service": email_service}, "alex@example.com", SUMMARY)
    await email_service.close()

    [request] = requests
    assert str(request.url) == "https://mail.example.com/send"
    assert request.headers["Authorization"] == "Bearer mail-key"
    body = json.loads(request.content)
    assert body["to"] == "alex@example.com"
    assert body["template"] == PURCHASE_CONFIRMATION_TEMPLATE
    assert body["variables"] == SUMMARY

async def test_mail_api_failure_fails_the_task(mail_settings):
    transport = httpx.MockTransport(lambda request: httpx.Response(500))
    email_service = EmailService(client=httpx.AsyncClient(transport=transport))

    with pytest.raises(httpx.HTTPStatusError):
        await send_purchase_confirmation_task({"email_service": email_service}, "alex@example.com", SUMMARY)
    await email_service.close()
