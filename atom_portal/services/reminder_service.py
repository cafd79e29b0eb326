"""
Reminder Service - membership expiry and low-session e-mails.

Candidates are computed for the business date, queued in the outbox (one
row per kind and subscription, so repeated runs never double-send) and
delivered through ``EmailService`` when a provider is configured.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from atom_portal.database.orm_models import NotificationOutbox, Subscription
from atom_portal.database.repositories.subscription_repository import TYPE_SESSIONS, TYPE_TIME
from atom_portal.services.base import BaseService
from atom_portal.services.email_service import EmailSendError, EmailService
from atom_portal.services.subscription_service import sessions_remaining
from atom_portal.utils import add_days, full_name

logger = logging.getLogger(__name__)

KIND_EXPIRE_7D = "expire_7d"
KIND_SESSIONS_LOW = "sessions_low"
EXPIRY_NOTICE_DAYS = 7
LOW_SESSIONS_THRESHOLD = 2
SEND_BATCH = 500
MARKED_NO_PROVIDER = "MARKED_SENT_NO_PROVIDER"

EXPIRE_BODY = """Hello {name},

This is a friendly reminder that your membership will expire in 7 days (on {end_date}).
If you need any help renewing, just reply to this email or visit the front desk.

Thank you!"""

SESSIONS_BODY = """Hello {name},

You have only {left} session(s) remaining on your current pack.
If you want to top up or have questions, reply to this email or visit the front desk.

See you soon!"""


class ReminderService(BaseService):

    def __init__(self, db, today=None, email_service: Optional[EmailService] = None):
        super().__init__(db, today)
        self.email = email_service or EmailService()

    def expiring_candidates(self) -> List[Subscription]:
        target = add_days(self.today(), EXPIRY_NOTICE_DAYS)
        return list(
            self.db.scalars(
                select(Subscription).where(
                    Subscription.subscription_type == TYPE_TIME,
                    Subscription.status == "active",
                    Subscription.end_date == target,
                )
            ).all()
        )

    def low_session_candidates(self) -> List[Subscription]:
        packs = self.db.scalars(
            select(Subscription).where(
                Subscription.subscription_type == TYPE_SESSIONS,
                Subscription.status == "active",
                Subscription.end_date >= self.today(),
            )
        ).all()
        return [s for s in packs if (sessions_remaining(s) or 0) <= LOW_SESSIONS_THRESHOLD]

    def _message(self, kind: str, sub: Subscription, name: str) -> Dict[str, str]:
        if kind == KIND_EXPIRE_7D:
            return {
                "subject": "Your membership expires in 7 days",
                "body": EXPIRE_BODY.format(name=name, end_date=sub.end_date.isoformat()),
            }
        left = sessions_remaining(sub) or 0
        return {
            "subject": f"Only {left} session(s) left",
            "body": SESSIONS_BODY.format(name=name, left=left),
        }

    def _existing(self, kind: str, subs: List[Subscription]) -> Dict[int, NotificationOutbox]:
        return {
            row.subscription_id: row
            for row in self.db.scalars(
                select(NotificationOutbox).where(
                    NotificationOutbox.kind == kind,
                    NotificationOutbox.subscription_id.in_([s.id for s in subs]),
                )
            ).all()
        }

    def _insert_outbox(self, **values: Any) -> None:
        """Insert one outbox row unless a concurrent run already queued it."""
        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        self.db.execute(
            insert(NotificationOutbox)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["kind", "subscription_id"])
        )

    def _queue(self, kind: str, subs: List[Subscription]) -> int:
        """Upsert outbox rows for ``subs``; returns how many rows were queued."""
        if not subs:
            return 0
        profiles = {p.user_id: p for p in self.profiles.get_many({s.member_id for s in subs})}
        existing = self._existing(kind, subs)
        queued = 0
        for sub in subs:
            profile = profiles.get(sub.member_id)
            if profile is None or not profile.email:
                continue
            msg = self._message(kind, sub, full_name(profile.first_name, profile.last_name) or "Member")
            row = existing.get(sub.id)
            if row is None:
                self._insert_outbox(
                    kind=kind,
                    subscription_id=sub.id,
                    member_id=sub.member_id,
                    to_email=profile.email,
                    **msg,
                )
            elif row.sent_at is None:
                row.to_email = profile.email
                row.subject = msg["subject"]
                row.body = msg["body"]
            queued += 1
        return queued

    def _pending(self) -> List[NotificationOutbox]:
        return list(
            self.db.scalars(
                select(NotificationOutbox)
                .where(NotificationOutbox.sent_at.is_(None))
                .order_by(NotificationOutbox.id)
                .limit(SEND_BATCH)
            ).all()
        )

    def run(self, *, dry: bool = False, mark: bool = False) -> Dict[str, Any]:
        expiring = self.expiring_candidates()
        low = self.low_session_candidates()
        queued = {
            KIND_EXPIRE_7D: self._queue(KIND_EXPIRE_7D, expiring),
            KIND_SESSIONS_LOW: self._queue(KIND_SESSIONS_LOW, low),
        }
        self.commit()

        sent = 0
        marked = False
        if not dry:
            if self.email.configured:
                for item in self._pending():
                    try:
                        self.email.send(item.to_email, item.subject, item.body)
                    except EmailSendError as e:
                        item.error = str(e) or "SEND_FAILED"
                        logger.warning(f"Reminder {item.id} to {item.to_email} failed: {e}")
                        continue
                    item.sent_at = self.now()
                    item.error = None
                    sent += 1
                self.commit()
            elif mark:
                now = self.now()
                for item in self._pending():
                    item.sent_at = now
                    item.error = MARKED_NO_PROVIDER
                    sent += 1
                self.commit()
                marked = True

        logger.info(f"Reminders run for {self.today()}: queued={queued} sent={sent} dry={dry}")
        return {
            "ok": True,
            "date": self.today().isoformat(),
            "candidates": {KIND_EXPIRE_7D: len(expiring), KIND_SESSIONS_LOW: len(low)},
            "queued": queued,
            "sent": sent,
            "dry": bool(dry),
            "marked": marked,
        }
