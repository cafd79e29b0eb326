"""
Subscription Service - issuance, renewal, pausing and session packs.

Two kinds of subscription exist:

* time plans (``1m``, ``3m``, ``6m``, ``12m``) bounded by start/end dates;
* session packs (``sessions``) bounded by a 45-day window and a
  ``sessions_total`` / ``sessions_used`` pair.

Expiry is derived from dates at read time (``effective_status``); the admin
expire action only persists what reads already report.
"""

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import update

from atom_portal.database.orm_models import Profile, Subscription, SubscriptionPayment
from atom_portal.database.repositories.subscription_repository import TYPE_SESSIONS, TYPE_TIME
from atom_portal.errors import NotFoundError, ServiceError
from atom_portal.services.audit_service import AuditService
from atom_portal.services.base import BaseService
from atom_portal.utils import add_days, add_months, clamp_int, extract_member_id, iso, normalize_qr, parse_iso_date

logger = logging.getLogger(__name__)

PLAN_MONTHS = {"1m": 1, "3m": 3, "6m": 6, "12m": 12}
PLAN_SESSIONS = "sessions"
PLANS = tuple(PLAN_MONTHS) + (PLAN_SESSIONS,)
PLAN_ALIASES = {
    "monthly": "1m",
    "quarterly": "3m",
    "semiannual": "6m",
    "yearly": "12m",
    "annual": "12m",
}
SESSION_PACK_DAYS = 45
SESSION_PACK_DEFAULT = 10
SESSION_PACK_MAX = 10
DROPIN_DEFAULT_SESSIONS = 5
PAYMENT_METHODS = {"cash", "card", "bank_transfer", "instapay"}

ACTION_RENEW = "renew"
ACTION_PAUSE = "pause"
ACTION_RESUME = "resume"
ACTION_ADD_DROPIN = "add_dropin"


def normalize_plan(value: Any) -> Optional[str]:
    p = str(value or "").strip().lower()
    p = PLAN_ALIASES.get(p, p)
    return p if p in PLANS else None


def effective_status(sub: Subscription, today: date) -> str:
    if sub.status == "active" and sub.end_date and sub.end_date < today:
        return "expired"
    return sub.status


def sessions_remaining(sub: Subscription) -> Optional[int]:
    if sub.subscription_type != TYPE_SESSIONS or sub.sessions_total is None:
        return None
    return max(0, int(sub.sessions_total) - int(sub.sessions_used or 0))


def subscription_dict(sub: Subscription, today: date) -> Dict[str, Any]:
    return {
        "id": sub.id,
        "member_id": sub.member_id,
        "plan": sub.plan,
        "subscription_type": sub.subscription_type,
        "start_date": iso(sub.start_date),
        "end_date": iso(sub.end_date),
        "sessions_total": sub.sessions_total,
        "sessions_used": sub.sessions_used,
        "sessions_remaining": sessions_remaining(sub),
        "status": sub.status,
        "effective_status": effective_status(sub, today),
        "amount": float(sub.amount) if sub.amount is not None else None,
        "paid_at": sub.paid_at.isoformat() if sub.paid_at else None,
    }


def parse_amount(value: Any) -> Optional[Decimal]:
    if value is None or str(value).strip() == "":
        return None
    try:
        amount = Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        raise ServiceError("INVALID_AMOUNT")
    if not amount.is_finite() or amount < 0:
        raise ServiceError("INVALID_AMOUNT")
    return amount.quantize(Decimal("0.01"))


class SubscriptionService(BaseService):

    # ========== Member resolution ==========

    def resolve_member(self, data: Dict[str, Any]) -> Profile:
        """Find the member by id, then QR code, then e-mail."""
        member_id = str(data.get("memberId") or data.get("member_id") or "").strip()
        if member_id:
            profile = self.profiles.get(extract_member_id(member_id) or member_id)
            if profile is not None:
                return profile

        qr = normalize_qr(data.get("member_qr"))
        if qr:
            profile = self.profiles.get_by_qr(qr)
            if profile is None:
                uid = extract_member_id(qr)
                profile = self.profiles.get(uid) if uid else None
            if profile is not None:
                return profile

        email = str(data.get("member_email") or "").strip().lower()
        if email:
            profile = self.profiles.get_by_email(email)
            if profile is not None:
                return profile

        raise ServiceError(
            "INVALID_MEMBER_ID",
            hint="Provide memberId, member_qr (atom:<uuid>) or member_email of an existing member",
        )

    # ========== Creation ==========

    def create(self, actor_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
        plan = normalize_plan(data.get("plan"))
        if plan is None:
            raise ServiceError("INVALID_PLAN", details=list(PLANS))
        member = self.resolve_member(data)
        amount = parse_amount(data.get("amount"))
        start = parse_iso_date(data.get("start_date"))

        if plan == PLAN_SESSIONS:
            start = start or self.today()
            sub = Subscription(
                member_id=member.user_id,
                plan=plan,
                subscription_type=TYPE_SESSIONS,
                start_date=start,
                end_date=add_days(start, SESSION_PACK_DAYS),
                sessions_total=clamp_int(
                    data.get("sessions_total"),
                    SESSION_PACK_DEFAULT,
                    1,
                    SESSION_PACK_MAX,
                ),
                sessions_used=0,
            )
        else:
            if start is None:
                raise ServiceError("START_DATE_REQUIRED")
            sub = Subscription(
                member_id=member.user_id,
                plan=plan,
                subscription_type=TYPE_TIME,
                start_date=start,
                end_date=add_months(start, PLAN_MONTHS[plan]),
                sessions_used=0,
            )

        sub.status = "active"
        sub.amount = amount
        sub.paid_at = self.now()
        sub.created_by = actor_id
        self.db.add(sub)
        self.db.flush()
        AuditService(self.db).log(
            AuditService.ACTION_CREATE, "subscriptions", sub.id, actor_id, {"plan": plan, "member_id": member.user_id}
        )
        self.commit()
        logger.info(f"Subscription {sub.id} ({plan}) created for {member.user_id}")
        return {"ok": True, "subscription": subscription_dict(sub, self.today())}

    # ========== Actions ==========

    def apply_action(self, actor_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
        member_id = str(data.get("member_id") or data.get("memberId") or "").strip()
        if not member_id:
            raise ServiceError("MISSING_MEMBER_ID")
        member = self.require_profile(member_id, "MEMBER_NOT_FOUND")
        action = str(data.get("action") or "").strip().lower()

        if action == ACTION_RENEW:
            return self._renew(actor_id, member, data)
        if action in (ACTION_PAUSE, ACTION_RESUME):
            return self._set_paused(actor_id, member, action == ACTION_PAUSE)
        if action == ACTION_ADD_DROPIN:
            return self._add_dropin(actor_id, member, data)
        raise ServiceError("INVALID_ACTION", details=[ACTION_RENEW, ACTION_PAUSE, ACTION_RESUME, ACTION_ADD_DROPIN])

    def _renew(self, actor_id: Optional[str], member: Profile, data: Dict[str, Any]) -> Dict[str, Any]:
        plan = normalize_plan(data.get("plan") or "1m")
        if plan is None or plan == PLAN_SESSIONS:
            raise ServiceError("INVALID_PLAN", details=list(PLAN_MONTHS))
        months = PLAN_MONTHS[plan]
        start = parse_iso_date(data.get("start_date")) or self.today()
        amount = parse_amount(data.get("amount"))

        latest = self.subscriptions.latest(member.user_id, TYPE_TIME)
        if latest is None:
            mode = "new"
            sub = Subscription(
                member_id=member.user_id,
                plan=plan,
                subscription_type=TYPE_TIME,
                start_date=start,
                end_date=add_months(start, months),
                sessions_used=0,
                status="active",
                created_by=actor_id,
            )
            self.db.add(sub)
        else:
            mode = "extend"
            sub = latest
            base = max(sub.end_date, start)
            sub.end_date = add_months(base, months)
            sub.plan = plan
            sub.status = "active"

        if amount is not None:
            sub.amount = amount
            sub.paid_at = self.now()
        self.db.flush()

        payment_id = None
        if amount is not None and amount > 0:
            method = str(data.get("method") or "cash").strip().lower()
            if method not in PAYMENT_METHODS:
                method = "cash"
            note = str(data.get("note") or "").strip() or None
            payment = SubscriptionPayment(
                subscription_id=sub.id,
                member_id=member.user_id,
                amount=amount,
                currency="EGP",
                method=method,
                note=note,
                paid_at=self.now(),
                created_by=actor_id,
            )
            self.db.add(payment)
            self.db.flush()
            payment_id = payment.id

        AuditService(self.db).log(
            AuditService.ACTION_RENEW,
            "subscriptions",
            sub.id,
            actor_id,
            {"mode": mode, "plan": plan, "end_date": iso(sub.end_date), "payment_id": payment_id},
        )
        self.commit()
        return {
            "ok": True,
            "action": ACTION_RENEW,
            "mode": mode,
            "payment_id": payment_id,
            "subscription": subscription_dict(sub, self.today()),
        }

    def _set_paused(self, actor_id: Optional[str], member: Profile, pause: bool) -> Dict[str, Any]:
        sub = self.subscriptions.latest(member.user_id, TYPE_TIME)
        if sub is None:
            raise NotFoundError("NO_SUBSCRIPTION")
        sub.status = "paused" if pause else "active"
        AuditService(self.db).log(
            AuditService.ACTION_PAUSE if pause else AuditService.ACTION_RESUME,
            "subscriptions",
            sub.id,
            actor_id,
        )
        self.commit()
        return {
            "ok": True,
            "action": ACTION_PAUSE if pause else ACTION_RESUME,
            "subscription": subscription_dict(sub, self.today()),
        }

    def _add_dropin(self, actor_id: Optional[str], member: Profile, data: Dict[str, Any]) -> Dict[str, Any]:
        count = clamp_int(data.get("sessions") or DROPIN_DEFAULT_SESSIONS, DROPIN_DEFAULT_SESSIONS, 1, 100)
        today = self.today()
        pack = self.subscriptions.latest(member.user_id, TYPE_SESSIONS)
        if pack is not None and pack.status == "active" and pack.end_date >= today:
            mode = "increment"
            pack.sessions_total = int(pack.sessions_total or 0) + count
        else:
            mode = "new"
            pack = Subscription(
                member_id=member.user_id,
                plan=PLAN_SESSIONS,
                subscription_type=TYPE_SESSIONS,
                start_date=today,
                end_date=add_days(today, SESSION_PACK_DAYS),
                sessions_total=count,
                sessions_used=0,
                status="active",
                created_by=actor_id,
            )
            self.db.add(pack)
        self.db.flush()
        AuditService(self.db).log(
            AuditService.ACTION_ADD_DROPIN, "subscriptions", pack.id, actor_id, {"mode": mode, "sessions": count}
        )
        self.commit()
        return {
            "ok": True,
            "action": ACTION_ADD_DROPIN,
            "mode": mode,
            "subscription": subscription_dict(pack, today),
        }

    # ========== Maintenance & reads ==========

    def expire_overdue(self, actor_id: Optional[str] = None) -> Dict[str, Any]:
        result = self.db.execute(
            update(Subscription)
            .where(Subscription.status == "active", Subscription.end_date < self.today())
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        count = int(result.rowcount or 0)
        AuditService(self.db).log(AuditService.ACTION_EXPIRE, "subscriptions", None, actor_id, {"count": count})
        self.commit()
        logger.info(f"Expired {count} subscriptions")
        return {"ok": True, "count": count}

    def list_for_member(self, member_id: str) -> List[Dict[str, Any]]:
        today = self.today()
        return [subscription_dict(s, today) for s in self.subscriptions.list_for_member(member_id)]
