"""
Notification Service - in-app inbox, broadcasts and member contact.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, insert, or_, select, update

from atom_portal.database.orm_models import Notification, Profile
from atom_portal.errors import ServiceError
from atom_portal.security.session_claims import (
    ROLE_ADMIN,
    ROLE_ASSISTANT_COACH,
    ROLE_COACH,
    ROLE_MEMBER,
    ROLE_SUPER_ADMIN,
)
from atom_portal.services.base import BaseService
from atom_portal.utils import chunked, clamp_int, full_name

logger = logging.getLogger(__name__)

KIND_INFO = "info"
KIND_ORDER_UPDATE = "order_update"
KIND_MEMBER_CONTACT = "member_contact"
BROADCAST_KINDS = {KIND_INFO, KIND_ORDER_UPDATE, "billing", "promo"}
AUDIENCE_ROLES = {
    "all_members": [ROLE_MEMBER],
    "all_coaches": [ROLE_COACH],
    "all_assistant_coaches": [ROLE_ASSISTANT_COACH],
    "all_staff": [ROLE_COACH, ROLE_ASSISTANT_COACH],
}
AUDIENCE_CUSTOM = "custom"
INSERT_CHUNK = 500


def notification_dict(n: Notification) -> Dict[str, Any]:
    return {
        "id": n.id,
        "title": n.title,
        "body": n.body,
        "kind": n.kind,
        "sender_id": n.sender_id,
        "created_at": n.created_at.isoformat() if n.created_at else None,
        "read_at": n.read_at.isoformat() if n.read_at else None,
    }


class NotificationService(BaseService):

    def notify(
        self,
        recipient_id: str,
        title: Optional[str],
        body: str,
        kind: str = KIND_INFO,
        sender_id: Optional[str] = None,
    ) -> Notification:
        """Stage one notification; the caller commits."""
        n = Notification(recipient_id=recipient_id, sender_id=sender_id, kind=kind, title=title, body=body)
        self.db.add(n)
        return n

    def _insert_many(self, recipient_ids: Iterable[str], **values: Any) -> int:
        rows = [dict(values, recipient_id=rid) for rid in recipient_ids]
        inserted = 0
        for chunk in chunked(rows, INSERT_CHUNK):
            self.db.execute(insert(Notification), chunk)
            inserted += len(chunk)
        return inserted

    # ========== Inbox ==========

    def list_for(
        self,
        user_id: str,
        page: Any = 1,
        limit: Any = 20,
        unread: Any = None,
        kind: Any = None,
        q: Any = None,
    ) -> Dict[str, Any]:
        p = clamp_int(page, 1, 1)
        lim = clamp_int(limit, 20, 1, 100)
        stmt = select(Notification).where(Notification.recipient_id == user_id)
        if str(unread or "") == "1":
            stmt = stmt.where(Notification.read_at.is_(None))
        k = str(kind or "").strip()
        if k and k != "all":
            stmt = stmt.where(Notification.kind == k)
        term = str(q or "").strip()
        if term:
            stmt = stmt.where(or_(Notification.title.ilike(f"%{term}%"), Notification.body.ilike(f"%{term}%")))

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = self.db.scalars(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset((p - 1) * lim).limit(lim)
        ).all()
        unread_count = self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.recipient_id == user_id, Notification.read_at.is_(None))
        ) or 0
        return {
            "ok": True,
            "page": p,
            "pageSize": lim,
            "total": int(total),
            "unread": int(unread_count),
            "items": [notification_dict(n) for n in rows],
        }

    def mark_read(self, user_id: str, ids: Any) -> Dict[str, Any]:
        if not isinstance(ids, list):
            ids = [ids] if ids else []
        clean = []
        for i in ids:
            try:
                clean.append(int(i))
            except (TypeError, ValueError):
                continue
        if not clean:
            raise ServiceError("NO_IDS")
        result = self.db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == user_id,
                Notification.id.in_(clean),
                Notification.read_at.is_(None),
            )
            .values(read_at=self.now())
            .execution_options(synchronize_session=False)
        )
        self.commit()
        return {"ok": True, "count": int(result.rowcount or 0)}

    # ========== Broadcast ==========

    def resolve_audience(self, data: Dict[str, Any]) -> List[str]:
        audience = str(data.get("audience") or "").strip()
        if audience in AUDIENCE_ROLES:
            return [p.user_id for p in self.profiles.list_by_roles(AUDIENCE_ROLES[audience])]
        if audience != AUDIENCE_CUSTOM:
            raise ServiceError("INVALID_AUDIENCE", details=sorted(list(AUDIENCE_ROLES) + [AUDIENCE_CUSTOM]))

        ids = data.get("user_ids") if isinstance(data.get("user_ids"), list) else []
        emails = data.get("emails") if isinstance(data.get("emails"), list) else []
        found = {p.user_id for p in self.profiles.get_many(str(i).strip() for i in ids if i)}
        mails = [str(e).strip().lower() for e in emails if str(e or "").strip()]
        if mails:
            rows = self.db.scalars(select(Profile.user_id).where(func.lower(Profile.email).in_(mails))).all()
            found.update(rows)
        if not found:
            raise ServiceError("NO_RECIPIENTS")
        return sorted(found)

    def send(self, sender_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        body = str(data.get("body") or "").strip()
        if not body:
            raise ServiceError("MISSING_BODY")
        title = str(data.get("title") or "").strip() or None
        kind = str(data.get("kind") or "").strip().lower()
        if kind not in BROADCAST_KINDS:
            kind = KIND_INFO
        recipients = self.resolve_audience(data)
        count = self._insert_many(recipients, sender_id=sender_id, kind=kind, title=title, body=body)
        self.commit()
        logger.info(f"Notification broadcast by {sender_id} to {count} recipients ({data.get('audience')})")
        return {"ok": True, "inserted": count}

    def sent(self, page: Any = 1, limit: Any = 50) -> Dict[str, Any]:
        p = clamp_int(page, 1, 1)
        lim = clamp_int(limit, 50, 1, 100)
        stmt = (
            select(Notification, Profile)
            .join(Profile, Profile.user_id == Notification.recipient_id)
            .where(Notification.sender_id.is_not(None), Notification.kind != KIND_MEMBER_CONTACT)
        )
        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = self.db.execute(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc()).offset((p - 1) * lim).limit(lim)
        ).all()
        items = []
        for n, recipient in rows:
            d = notification_dict(n)
            d["recipient_id"] = recipient.user_id
            d["recipient_name"] = full_name(recipient.first_name, recipient.last_name)
            d["recipient_email"] = recipient.email
            items.append(d)
        return {"ok": True, "page": p, "pageSize": lim, "total": int(total), "items": items}

    # ========== Member contact ==========

    def contact(self, member_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Forward a member message to super admins, or admins when none exist."""
        me = self.require_profile(member_id)
        message = str(data.get("message") or data.get("body") or "").strip()
        if not message:
            raise ServiceError("MISSING_MESSAGE")
        subject = str(data.get("subject") or "").strip()

        recipients = [p.user_id for p in self.profiles.list_by_roles([ROLE_SUPER_ADMIN])]
        if not recipients:
            recipients = [p.user_id for p in self.profiles.list_by_roles([ROLE_ADMIN])]
        if not recipients:
            raise ServiceError("NO_SUPER_ADMINS_OR_ADMINS")

        sender_name = full_name(me.first_name, me.last_name, me.email) or "Member"
        title = subject or f"Message from {sender_name}"
        body = f"{message}\n\n---\nFrom: {sender_name}\nReply-to: {me.email or 'n/a'}"
        count = self._insert_many(recipients, sender_id=me.user_id, kind=KIND_MEMBER_CONTACT, title=title, body=body)
        self.commit()
        return {"ok": True, "inserted": count}
