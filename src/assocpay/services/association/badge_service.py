# src/assocpay/services/association/badge_service.py

import logging
from sqlalchemy.exc import IntegrityError
from assocpay.core.context import AppContext
from assocpay.dao.identity.profile_dao import ProfileBadgeDao
from assocpay.models import ProfileBadge

class BadgeService:
    def __init__(self, context: AppContext):
        self.context = context
        self.db = context.db
        self.dao = ProfileBadgeDao(self.db)

    async def ensure_badge(self, profile_id: int, association_id: int) -> ProfileBadge:
        """
        Idempotently attaches an association badge to a profile.
        A concurrent insert of the same badge is tolerated.
        """
        existing = await self.dao.get_for_profile(profile_id, association_id)
        if existing:
            return existing

        display_order = await self.dao.max_display_order(profile_id) + 1
        try:
            # 使用 SAVEPOINT，唯一约束冲突只回滚这一次插入
            async with self.db.begin_nested():
                badge = await self.dao.add(ProfileBadge(
                    profile_id=profile_id,
                    association_id=association_id,
                    display_order=display_order,
                    is_visible=True,
                ))
        except IntegrityError:
            logging.info(f"[Badge] Badge for profile {profile_id} / association {association_id} already exists")
            badge = await self.dao.get_for_profile(profile_id, association_id)
            if badge is None:
                raise
            return badge

        logging.info(f"[Badge] Badge created for profile {profile_id} / association {association_id}")
        return badge
