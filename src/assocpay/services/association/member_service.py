# src/assocpay/services/association/member_service.py

import logging
from datetime import datetime
from typing import Optional, Tuple
from assocpay.core.context import AppContext
from assocpay.dao.association.member_dao import AssociationMemberDao, MembershipHistoryDao
from assocpay.models import (
    AssociationMember, MembershipHistory, MembershipStatus, MembershipTier, MemberRole, PurchaseOrder
)
from assocpay.utils.time_utils import utcnow

class MemberService:
    """
    会员状态的写入口。每次状态变化都在同一事务内追加一条 MembershipHistory。
    调用方负责事务边界。
    """
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.member_dao = AssociationMemberDao(self.db)
        self.history_dao = MembershipHistoryDao(self.db)

    async def get_membership(self, association_id: int, user_id: int) -> Optional[AssociationMember]:
        """Live (not soft-deleted) membership of a user in an association."""
        member = await self.member_dao.get_for_user(association_id, user_id)
        if member is None or member.deleted_at is not None:
            return None
        return member

    async def has_active_membership(self, association_id: int, user_id: int) -> bool:
        member = await self.get_membership(association_id, user_id)
        return member is not None and member.membership_status == MembershipStatus.ACTIVE

    @staticmethod
    def funding_order_uuid(member: AssociationMember) -> Optional[str]:
        """The order behind the latest activation: last_payment, else first_payment."""
        meta = member.meta or {}
        snapshot = meta.get("last_payment") or meta.get("first_payment") or {}
        return snapshot.get("order_id")

    async def activate_from_order(
        self,
        order: PurchaseOrder,
        tier: MembershipTier,
        renewal_date: datetime,
        paid_at: datetime
    ) -> Tuple[AssociationMember, MembershipStatus]:
        """
        有则更新，无则创建。
        返回 (member, previous_status)；新建会员的 previous_status 视为 PENDING。
        """
        payment_snapshot = {
            "order_id": order.uuid,
            "order_number": order.order_number,
            "paid_at": paid_at.isoformat(),
            "amount": str(order.amount),
            "currency": order.currency,
        }

        member = await self.member_dao.get_for_user(order.association_id, order.user_id)
        if member is not None:
            previous_status = member.membership_status
            member.membership_tier = tier
            member.membership_status = MembershipStatus.ACTIVE
            member.renewal_date = renewal_date
            # 软删除的会员记录被复活，而不是新建第二条
            member.deleted_at = None
            member.meta = {**(member.meta or {}), "last_payment": payment_snapshot}
            await self.db.flush()
        else:
            previous_status = MembershipStatus.PENDING
            member = AssociationMember(
                association_id=order.association_id,
                user_id=order.user_id,
                role=MemberRole.MEMBER,
                membership_tier=tier,
                membership_status=MembershipStatus.ACTIVE,
                renewal_date=renewal_date,
                meta={"first_payment": payment_snapshot},
            )
            await self.member_dao.add(member)

        await self._record_history(
            member,
            previous_status=previous_status,
            new_status=MembershipStatus.ACTIVE,
            changed_by=order.user_id,
            reason=f"Membership activated by payment of order {order.order_number} ({order.amount} {order.currency})",
        )
        return member, previous_status

    async def expire_membership(
        self,
        association_id: int,
        user_id: int,
        reason: str,
        funded_by: Optional[str] = None
    ) -> Optional[AssociationMember]:
        """
        Marks a live membership EXPIRED. Already-expired or missing members are left untouched.
        With funded_by (an order uuid), only a membership whose latest payment came from that order expires.
        """
        member = await self.get_membership(association_id, user_id)
        if member is None or member.membership_status == MembershipStatus.EXPIRED:
            return None
        if funded_by is not None and self.funding_order_uuid(member) != funded_by:
            logging.info(f"[Membership] Member {member.uuid} is not funded by order {funded_by}, expiry skipped")
            return None

        previous_status = member.membership_status
        member.membership_status = MembershipStatus.EXPIRED
        await self.db.flush()
        await self._record_history(
            member,
            previous_status=previous_status,
            new_status=MembershipStatus.EXPIRED,
            changed_by=None,
            reason=reason,
        )
        logging.info(f"[Membership] Member {member.uuid} expired: {reason}")
        return member

    async def _record_history(
        self,
        member: AssociationMember,
        previous_status: MembershipStatus,
        new_status: MembershipStatus,
        changed_by: Optional[int],
        reason: str
    ) -> MembershipHistory:
        history = MembershipHistory(
            association_member_id=member.id,
            previous_status=previous_status,
            new_status=new_status,
            changed_by=changed_by,
            reason=reason,
            created_at=utcnow(),
        )
        return await self.history_dao.add(history)
