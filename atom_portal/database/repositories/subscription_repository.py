from datetime import date
from typing import List, Optional

from sqlalchemy import select, update

from .base import BaseRepository
from ..orm_models import Subscription

TYPE_TIME = "time"
TYPE_SESSIONS = "sessions"


class SubscriptionRepository(BaseRepository):

    def get(self, subscription_id: int) -> Optional[Subscription]:
        return self.db.get(Subscription, int(subscription_id))

    def list_for_member(self, member_id: str) -> List[Subscription]:
        stmt = (
            select(Subscription)
            .where(Subscription.member_id == member_id)
            .order_by(Subscription.end_date.desc(), Subscription.id.desc())
        )
        return list(self.db.scalars(stmt).all())

    def active_for_day(self, member_id: str, day: date) -> List[Subscription]:
        """Active subscriptions whose window covers ``day``, latest end first."""
        stmt = (
            select(Subscription)
            .where(
                Subscription.member_id == member_id,
                Subscription.status == "active",
                Subscription.start_date <= day,
                Subscription.end_date >= day,
            )
            .order_by(Subscription.end_date.desc(), Subscription.id.desc())
        )
        return list(self.db.scalars(stmt).all())

    def latest(self, member_id: str, subscription_type: Optional[str] = None) -> Optional[Subscription]:
        stmt = select(Subscription).where(Subscription.member_id == member_id)
        if subscription_type:
            stmt = stmt.where(Subscription.subscription_type == subscription_type)
        stmt = stmt.order_by(Subscription.end_date.desc(), Subscription.id.desc()).limit(1)
        return self.db.scalars(stmt).first()

    def latest_any(self, member_id: str) -> Optional[Subscription]:
        stmt = (
            select(Subscription)
            .where(Subscription.member_id == member_id)
            .order_by(Subscription.created_at.desc(), Subscription.id.desc())
            .limit(1)
        )
        return self.db.scalars(stmt).first()

    def consume_session(self, subscription_id: int) -> bool:
        """Increment ``sessions_used`` only while sessions remain.

        Returns False when the guard matched no row (pack exhausted by a
        concurrent scan).
        """
        result = self.db.execute(
            update(Subscription)
            .where(
                Subscription.id == int(subscription_id),
                Subscription.sessions_total.is_not(None),
                Subscription.sessions_used < Subscription.sessions_total,
            )
            .values(sessions_used=Subscription.sessions_used + 1)
            .execution_options(synchronize_session=False)
        )
        return int(result.rowcount or 0) == 1
