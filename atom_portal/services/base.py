import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from atom_portal.database.orm_models import Profile
from atom_portal.database.repositories import ProfileRepository, SubscriptionRepository
from atom_portal.errors import NotFoundError
from atom_portal.utils import now_utc, today_local


class BaseService:
    """Common plumbing for services bound to one SQLAlchemy session.

    ``today`` pins the business date, which keeps date-dependent rules
    deterministic in tests. Production code leaves it unset so the gym's
    timezone decides.
    """

    def __init__(self, db: Session, today: Optional[date] = None):
        self.db = db
        self._today = today
        self.logger = logging.getLogger(self.__class__.__module__)
        self.profiles = ProfileRepository(db, self.logger)
        self.subscriptions = SubscriptionRepository(db, self.logger)

    def today(self) -> date:
        return self._today or today_local()

    def now(self) -> datetime:
        return now_utc()

    def require_profile(self, user_id: str, code: str = "NOT_FOUND") -> Profile:
        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError(code)
        return profile

    def commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
