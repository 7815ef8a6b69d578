# tests/services/payment/test_outcome_processor.py

import asyncio
import logging
import pytest
from datetime import timedelta

from assocpay.models import (
    PurchaseOrder, AssociationMember, MembershipHistory, PurchaseIntentData, AssociationLead, ProfileBadge,
    OrderStatus, MembershipStatus, MembershipTier, PurchaseIntentStatus, LeadStatus
)
from assocpay.schemas.payment.gateway_schemas import PaymentOutcome
from assocpay.services.exceptions import OrderNotFound
from assocpay.services.payment.outcome_processor import PaymentOutcomeProcessor, compute_validity_window
from assocpay.services.payment.purchase_order_service import PurchaseOrderService
from assocpay.utils.time_utils import utcnow

pytestmark = pytest.mark.asyncio

def paid_outcome(trigger: str = "webhook", amount_total: int = 10000, currency: str = "hkd") -> PaymentOutcome:
    return PaymentOutcome(
        success=True,
        reference_id="pi_test_1",
        amount_total=amount_total,
        currency=currency,
        trigger=trigger,
        details={"session_id": "cs_test_123", "payment_intent_id": "pi_test_1", "subscription_id": "sub_test_1"},
    )

# ==============================================================================
# 1. 成功路径
# ==============================================================================

async def test_success_marks_order_paid_and_creates_active_member(app_context_factory, purchase_setup, factory, fetch):
    """
    一个全新用户支付 100 HKD 的基础会员方案：订单 PAID，会员 ACTIVE，有效期一年，
    并写入一条 PENDING→ACTIVE 的历史记录。
    """
    order = await factory.order(purchase_setup.user, purchase_setup.plan, gateway_data={"session_id": "cs_test_123"})
    before = utcnow()

    result = await PaymentOutcomeProcessor(app_context_factory()).process_outcome(order.uuid, paid_outcome())

    assert result.transitioned is True
    assert result.previous_member_status == MembershipStatus.PENDING

    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID
    assert stored.paid_at >= before
    assert stored.membership_start_date == stored.paid_at
    assert stored.membership_end_date.year == stored.membership_start_date.year + 1
    # 原有键保留，新的网关字段被补充
    assert stored.gateway_data["session_id"] == "cs_test_123"
    assert stored.gateway_data["payment_intent_id"] == "pi_test_1"
    assert stored.gateway_data["trigger"] == "webhook"

    [member] = await fetch(AssociationMember, user_id=purchase_setup.user.id)
    assert member.membership_status == MembershipStatus.ACTIVE
    assert member.membership_tier == MembershipTier.BASIC
    assert member.renewal_date == stored.membership_end_date
    assert member.meta["first_payment"]["order_number"] == order.order_number

    [history] = await fetch(MembershipHistory, association_member_id=member.id)
    assert history.previous_status == MembershipStatus.PENDING
    assert history.new_status == MembershipStatus.ACTIVE
    assert history.changed_by == purchase_setup.user.id
    assert order.order_number in history.reason
    assert "100.00 HKD" in history.reason

async def test_success_is_idempotent_for_paid_orders(app_context_factory, purchase_setup, factory, fetch):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)
    processor = PaymentOutcomeProcessor(app_context_factory())

    first = await processor.process_outcome(order.uuid, paid_outcome())
    [after_first] = await fetch(PurchaseOrder, id=order.id)

    second = await processor.process_outcome(order.uuid, paid_outcome(trigger="polling"))

    assert first.transitioned is True
    assert second.transitioned is False
    [after_second] = await fetch(PurchaseOrder, id=order.id)
    assert after_second.paid_at == after_first.paid_at
    assert after_second.gateway_data == after_first.gateway_data
    assert len(await fetch(AssociationMember, user_id=purchase_setup.user.id)) == 1
    assert len(await fetch(MembershipHistory)) == 1

async def test_concurrent_deliveries_settle_the_order_once(app_context_factory, purchase_setup, factory, fetch, arq_pool_mock):
    """webhook 与轮询同时到达：只有一方完成迁移，只产生一条会员与一条历史。"""
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    results = await asyncio.gather(
        PaymentOutcomeProcessor(app_context_factory()).process_outcome(order.uuid, paid_outcome("webhook")),
        PaymentOutcomeProcessor(app_context_factory()).process_outcome(order.uuid, paid_outcome("polling")),
    )

    assert sorted(r.transitioned for r in results) == [False, True]
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID
    assert len(await fetch(AssociationMember, user_id=purchase_setup.user.id)) == 1
    assert len(await fetch(MembershipHistory)) == 1
    assert arq_pool_mock.enqueue_job.await_count == 1

async def test_existing_terminated_member_is_renewed_in_place(app_context_factory, purchase_setup, factory, fetch):
    existing = await factory.member(
        purchase_setup.association, purchase_setup.user,
        status=MembershipStatus.TERMINATED, tier=MembershipTier.PREMIUM,
    )
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    result = await PaymentOutcomeProcessor(app_context_factory()).process_outcome(order.uuid, paid_outcome())

    assert result.previous_member_status == MembershipStatus.TERMINATED
    [member] = await fetch(AssociationMember, user_id=purchase_setup.user.id)
    assert member.id == existing.id
    assert member.membership_status == MembershipStatus.ACTIVE
    # 等级以本次购买的方案为准
    assert member.membership_tier == MembershipTier.BASIC
    assert "last_payment" in member.meta

    [history] = await fetch(MembershipHistory, association_member_id=member.id)
    assert history.previous_status == MembershipStatus.TERMINATED

async def test_soft_deleted_member_is_revived(app_context_factory, purchase_setup, factory, fetch):
    existing = await factory.member(
        purchase_setup.association, purchase_setup.user,
        status=MembershipStatus.CANCELLED, deleted_at=utcnow() - timedelta(days=10),
    )
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    [member] = await fetch(AssociationMember, user_id=purchase_setup.user.id)
    assert member.id == existing.id
    assert member.deleted_at is None
    assert member.membership_status == MembershipStatus.ACTIVE

async def test_success_for_failed_order_is_left_for_review(app_context_factory, purchase_setup, factory, fetch, caplog):
    order = await factory.order(purchase_setup.user, purchase_setup.plan, status=OrderStatus.FAILED)

    with caplog.at_level(logging.WARNING):
        result = await PaymentOutcomeProcessor(app_context_factory()).process_outcome(order.uuid, paid_outcome())

    assert result.transitioned is False
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.FAILED
    assert await fetch(AssociationMember) == []
    assert "manual review" in caplog.text

async def test_amount_mismatch_is_logged_but_payment_stands(app_context_factory, purchase_setup, factory, fetch, caplog):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    with caplog.at_level(logging.WARNING):
        await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome(amount_total=5000))

    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID
    assert "Amount mismatch" in caplog.text

async def test_unknown_order_raises(app_context_factory):
    with pytest.raises(OrderNotFound):
        await PaymentOutcomeProcessor(app_context_factory()).process("missing-order", paid_outcome())

async def test_validity_window_is_one_year():
    start = utcnow()
    begin, end = compute_validity_window(MembershipTier.EXECUTIVE, start)
    assert begin == start
    assert (end - start).days in (365, 366)

# ==============================================================================
# 2. 失败路径
# ==============================================================================

async def test_failure_marks_pending_order_failed_without_membership(app_context_factory, purchase_setup, factory, fetch, arq_pool_mock):
    order = await factory.order(purchase_setup.user, purchase_setup.plan, gateway_data={"session_id": "cs_test_123"})

    result = await PaymentOutcomeProcessor(app_context_factory()).process_outcome(order.uuid, PaymentOutcome(
        success=False, trigger="webhook", failure_reason="checkout.session.expired"
    ))

    assert result.transitioned is True
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.FAILED
    assert stored.paid_at is None
    assert stored.gateway_data["failure_reason"] == "checkout.session.expired"
    assert await fetch(AssociationMember) == []
    arq_pool_mock.enqueue_job.assert_not_awaited()

async def test_failure_never_downgrades_paid_order(app_context_factory, purchase_setup, factory, fetch):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)
    processor = PaymentOutcomeProcessor(app_context_factory())
    await processor.process(order.uuid, paid_outcome())

    result = await processor.process_outcome(order.uuid, PaymentOutcome(success=False, failure_reason="late failure"))

    assert result.transitioned is False
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID

# ==============================================================================
# 3. 事务外的副作用
# ==============================================================================

async def test_confirmation_is_queued_with_order_summary(app_context_factory, purchase_setup, factory, arq_pool_mock):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    arq_pool_mock.enqueue_job.assert_awaited_once()
    task_name, email, summary = arq_pool_mock.enqueue_job.await_args.args
    assert task_name == "send_purchase_confirmation_task"
    assert email == "alex@example.com"
    assert summary["order_number"] == order.order_number
    assert summary["association_name"] == "Hong Kong Design Association"
    assert summary["amount"] == "100.00"
    assert summary["currency"] == "HKD"
    assert summary["membership_tier"] == "BASIC"

async def test_notification_failure_does_not_roll_back_payment(app_context_factory, purchase_setup, factory, fetch, arq_pool_mock):
    arq_pool_mock.enqueue_job.side_effect = ConnectionError("redis down")
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    result = await PaymentOutcomeProcessor(app_context_factory()).process_outcome(order.uuid, paid_outcome())

    assert result.transitioned is True
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID
    [member] = await fetch(AssociationMember, user_id=purchase_setup.user.id)
    assert member.membership_status == MembershipStatus.ACTIVE

async def test_missing_task_queue_only_skips_confirmation(app_context_factory, purchase_setup, factory, fetch):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory(arq_pool=None)).process(order.uuid, paid_outcome())

    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID

async def test_badge_is_added_to_default_profile(app_context_factory, purchase_setup, factory, fetch):
    profile = await factory.profile(purchase_setup.user)
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    [badge] = await fetch(ProfileBadge, profile_id=profile.id)
    assert badge.association_id == purchase_setup.association.id
    assert badge.is_visible is True

async def test_badge_is_skipped_without_default_profile(app_context_factory, purchase_setup, factory, fetch):
    await factory.profile(purchase_setup.user, is_default=False)
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    assert await fetch(ProfileBadge) == []
    [stored] = await fetch(PurchaseOrder, id=order.id)
    assert stored.status == OrderStatus.PAID

async def test_existing_badge_is_not_duplicated(app_context_factory, purchase_setup, factory, fetch):
    profile = await factory.profile(purchase_setup.user)
    await factory.save(ProfileBadge(profile_id=profile.id, association_id=purchase_setup.association.id, display_order=3))
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    [badge] = await fetch(ProfileBadge, profile_id=profile.id)
    assert badge.display_order == 3

async def test_matching_intent_and_lead_are_both_converted(app_context_factory, purchase_setup, factory, fetch):
    intent = await factory.intent("alex@example.com", user=purchase_setup.user, plan=purchase_setup.plan)
    lead = await factory.lead(purchase_setup.association, user=purchase_setup.user)
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    [stored_intent] = await fetch(PurchaseIntentData, id=intent.id)
    assert stored_intent.status == PurchaseIntentStatus.CONVERTED
    assert stored_intent.purchase_order_id == order.id
    assert stored_intent.converted_at is not None

    [stored_lead] = await fetch(AssociationLead, id=lead.id)
    assert stored_lead.status == LeadStatus.CONVERTED
    assert stored_lead.purchase_order_id == order.id
    assert stored_lead.meta["conversion"]["order_number"] == order.order_number

async def test_unrelated_intent_is_not_converted(app_context_factory, purchase_setup, factory, fetch):
    """另一个用户、另一个协会的意向不能被误转换。"""
    other_association = await factory.association()
    other_plan = await factory.plan(other_association)
    other_user = await factory.user(email="someone.else@example.com")
    foreign_intent = await factory.intent("someone.else@example.com", user=other_user, plan=other_plan)
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    [stored_intent] = await fetch(PurchaseIntentData, id=foreign_intent.id)
    assert stored_intent.status == PurchaseIntentStatus.PENDING
    assert stored_intent.purchase_order_id is None

async def test_currency_is_compared_case_insensitively(app_context_factory, purchase_setup, factory, caplog):
    order = await factory.order(purchase_setup.user, purchase_setup.plan)

    with caplog.at_level(logging.WARNING):
        await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome(currency="hkd"))

    assert "Currency mismatch" not in caplog.text

async def test_intent_captured_before_checkout_is_converted_end_to_end(app_context_factory, purchase_setup, factory, fetch):
    """下单时按邮箱关联的匿名意向，在支付成功后被转换并指向该订单。"""
    intent = await factory.intent("alex@example.com", plan=purchase_setup.plan)
    order, _ = await PurchaseOrderService(app_context_factory(user=purchase_setup.user)).create_purchase_order(
        purchase_setup.plan.uuid
    )

    await PaymentOutcomeProcessor(app_context_factory()).process(order.uuid, paid_outcome())

    [stored] = await fetch(PurchaseIntentData, id=intent.id)
    assert stored.status == PurchaseIntentStatus.CONVERTED
    assert stored.purchase_order_id == order.id
