# tests/api/v1/test_purchase_order.py

import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport

from assocpay.main import app
from assocpay.core.config import settings
from assocpay.core.security import create_access_token
from assocpay.db.session import get_db
from assocpay.models import PurchaseOrder, OrderStatus
from assocpay.schemas.payment.gateway_schemas import CheckoutSessionStatus, GatewayEvent
from assocpay.services.exceptions import WebhookSignatureError
from assocpay.services.payment.polling_service import PaymentPollingService

pytestmark = pytest.mark.asyncio

ADMIN_KEY = "test-admin-key"

@pytest.fixture
async def client(session_factory, gateway_mock, arq_pool_mock, redis_service_mock, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    """
    直接装配 app.state (不运行 lifespan)，数据库依赖指向测试库。
    """
    async def override_get_db():
        async with session_factory() as session:
            async with session.begin():
                yield session

    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = session_factory
    app.state.payment_gateway = gateway_mock
    app.state.arq_pool = arq_pool_mock
    app.state.redis_service = redis_service_mock
    app.state.payment_polling_service = None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(subject=user.uuid)}"}

# ==============================================================================
# 1. 订单接口
# ==============================================================================

async def test_create_order_returns_checkout_url(client, purchase_setup, fetch):
    response = await client.post(
        "/api/v1/orders",
        json={"pricing_plan_uuid": purchase_setup.plan.uuid},
        headers=auth_headers(purchase_setup.user),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["checkout_url"] == "https://checkout.stripe.test/c/pay/cs_test_123"
    assert data["order"]["status"] == "PENDING"
    assert data["order"]["session_id"] == "cs_test_123"
    assert data["order"]["pricing_plan_uuid"] == purchase_setup.plan.uuid
    assert len(await fetch(PurchaseOrder)) == 1

async def test_create_order_requires_authentication(client, purchase_setup):
    response = await client.post("/api/v1/orders", json={"pricing_plan_uuid": purchase_setup.plan.uuid})

    assert response.status_code == 401
    assert response.json()["data"] is None

async def test_unknown_plan_maps_to_404(client, purchase_setup):
    response = await client.post(
        "/api/v1/orders",
        json={"pricing_plan_uuid": "no-such-plan"},
        headers=auth_headers(purchase_setup.user),
    )

    assert response.status_code == 404
    assert response.json()["code"] == "PRICING_PLAN_NOT_FOUND"

async def test_list_and_get_own_orders(client, purchase_setup, factory):
    order = await factory.order(purchase_setup.user, purchase_setup.plan, gateway_data={"session_id": "cs_mine"})
    headers = auth_headers(purchase_setup.user)

    listed = await client.get("/api/v1/orders/me", headers=headers)
    single = await client.get(f"/api/v1/orders/{order.uuid}", headers=headers)
    by_session = await client.get("/api/v1/orders/by-session/cs_mine", headers=headers)

    assert [o["uuid"] for o in listed.json()["data"]] == [order.uuid]
    assert single.json()["data"]["order_number"] == order.order_number
    assert by_session.json()["data"]["is_processed"] is False
    assert by_session.json()["data"]["member"] is None

async def test_other_users_order_is_forbidden(client, purchase_setup, factory):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)
    stranger = await factory.user()

    response = await client.get(f"/api/v1/orders/{order.uuid}", headers=auth_headers(stranger))

    assert response.status_code == 403

# ==============================================================================
# 2. 管理接口
# ==============================================================================

async def test_sync_requires_admin_key(client, purchase_setup, factory):
    order = await factory.order(purchase_setup.user, purchase_setup.plan, gateway_data={"session_id": "cs_sync"})

    response = await client.post(f"/api/v1/orders/{order.uuid}/sync", headers={"Api-Key": "wrong"})

    assert response.status_code == 403

async def test_sync_settles_paid_order(client, purchase_setup, factory, gateway_mock, fetch):
    order = await factory.order(purchase_setup.user, purchase_setup.plan, gateway_data={"session_id": "cs_sync"})
    gateway_mock.get_session_status.return_value = CheckoutSessionStatus(
        session_id="cs_sync", status="complete", payment_status="paid", paid=True, amount_total=10000, currency="hkd",
    )

    response = await client.post(f"/api/v1/orders/{order.uuid}/sync", headers={"Api-Key": ADMIN_KEY})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["processed"] is True
    assert data["order"]["status"] == "PAID"
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID

async def test_sync_without_session_is_a_conflict(client, purchase_setup, factory):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    response = await client.post(f"/api/v1/orders/{order.uuid}/sync", headers={"Api-Key": ADMIN_KEY})

    assert response.status_code == 409

async def test_polling_status(client, session_factory, gateway_mock):
    not_running = await client.get("/api/v1/payment-polling/status", headers={"Api-Key": ADMIN_KEY})
    assert not_running.status_code == 404

    app.state.payment_polling_service = PaymentPollingService(
        session_factory=session_factory, payment_gateway=gateway_mock, interval_seconds=60
    )
    response = await client.get("/api/v1/payment-polling/status", headers={"Api-Key": ADMIN_KEY})

    assert response.status_code == 200
    assert response.json()["data"]["is_polling"] is False
    assert response.json()["data"]["interval_seconds"] == 60

# ==============================================================================
# 3. Webhook
# ==============================================================================

async def test_webhook_settles_order(client, purchase_setup, factory, gateway_mock, fetch):
    order = await factory.order(purchase_setup.user, purchase_setup.plan, gateway_data={"session_id": "cs_test_123"})
    gateway_mock.construct_event.return_value = GatewayEvent(id="evt_api", type="checkout.session.completed", data={
        "id": "cs_test_123",
        "client_reference_id": order.uuid,
        "metadata": {"purchaseOrderId": order.uuid},
        "payment_status": "paid",
        "amount_total": 10000,
        "currency": "hkd",
    })

    response = await client.post("/api/v1/webhook", content=b'{"id": "evt_api"}', headers={"Stripe-Signature": "t=1,v1=abc"})

    assert response.status_code == 200
    assert response.json()["data"] == {"received": True, "event_id": "evt_api", "handled": True}
    gateway_mock.construct_event.assert_called_once_with(b'{"id": "evt_api"}', "t=1,v1=abc")
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID

async def test_webhook_with_bad_signature_is_rejected(client, gateway_mock):
    gateway_mock.construct_event.side_effect = WebhookSignatureError("Webhook signature verification failed.")

    response = await client.post("/api/v1/webhook", content=b"{}", headers={"Stripe-Signature": "forged"})

    assert response.status_code == 400
    assert response.json()["code"] == "WEBHOOK_SIGNATURE_VERIFICATION_FAILED"
