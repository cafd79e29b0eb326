import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select

from atom_portal.database.orm_models import Profile, Subscription
from atom_portal.errors import NotFoundError, ServiceError
from atom_portal.security.session_claims import (
    ADMIN_ASSIGNABLE_ROLES,
    ADMIN_ROLES,
    ALL_ROLES,
    COACHING_ROLES,
    ROLE_MEMBER,
    ROLE_SUPER_ADMIN,
    normalize_role,
)
from atom_portal.services.audit_service import AuditService
from atom_portal.services.auth_service import AuthService
from atom_portal.services.base import BaseService
from atom_portal.services.email_service import EmailSendError, EmailService
from atom_portal.services.subscription_service import subscription_dict
from atom_portal.utils import clamp_int, extract_member_id, full_name, is_valid_email, member_qr_code

logger = logging.getLogger(__name__)

INACTIVE_PAGE_SIZE = 20
PATCHABLE_FIELDS = ("first_name", "last_name", "phone")


def profile_dict(p: Profile) -> Dict[str, Any]:
    return {
        "user_id": p.user_id,
        "email": p.email,
        "first_name": p.first_name,
        "last_name": p.last_name,
        "full_name": full_name(p.first_name, p.last_name, p.email),
        "phone": p.phone,
        "role": p.role,
        "qr_code": p.qr_code,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


class MemberService(BaseService):

    def __init__(self, db, today=None, email_service: Optional[EmailService] = None):
        super().__init__(db, today)
        self.email = email_service or EmailService()

    # ========== Creation ==========

    def create_member(self, data: Dict[str, Any], *, kiosk: bool = False) -> Dict[str, Any]:
        """Create a member profile with an invite, or patch an existing one."""
        email = str(data.get("email") or "").strip().lower()
        if not email:
            raise ServiceError("MISSING_EMAIL")
        if kiosk and not is_valid_email(email):
            raise ServiceError("INVALID_EMAIL")

        fields = {}
        for key in PATCHABLE_FIELDS:
            val = data.get(key)
            if val is not None and str(val).strip():
                fields[key] = str(val).strip()

        existing = self.profiles.get_by_email(email)
        if existing is not None:
            updated: List[str] = []
            for key, val in fields.items():
                if getattr(existing, key) != val:
                    setattr(existing, key, val)
                    updated.append(key)
            if updated:
                self.commit()
            return {"ok": True, "created": False, "user_id": existing.user_id, "updated": updated}

        profile = Profile(email=email, role=ROLE_MEMBER, **fields)
        self.db.add(profile)
        self.db.flush()
        profile.qr_code = member_qr_code(profile.user_id)
        invite_link = AuthService(self.db, self._today).issue_invite(profile)
        self.commit()
        logger.info(f"Member created {profile.user_id} ({email})")

        invite_sent = self._send_invite(profile, invite_link)
        return {
            "ok": True,
            "created": True,
            "user_id": profile.user_id,
            "qr_code": profile.qr_code,
            "invite_link": invite_link,
            "invite_sent": invite_sent,
        }

    def _send_invite(self, profile: Profile, invite_link: str) -> bool:
        if not self.email.configured:
            return False
        name = full_name(profile.first_name, profile.last_name) or "there"
        text = (
            f"Hi {name},\n\n"
            "You have been registered at ATOM Jiu-Jitsu.\n"
            f"Set your password to access the member portal:\n{invite_link}\n\n"
            "See you on the mats!"
        )
        try:
            self.email.send(profile.email, "Welcome to ATOM Jiu-Jitsu", text)
            return True
        except EmailSendError as e:
            logger.warning(f"Invite e-mail to {profile.email} failed: {e}")
            return False

    # ========== Lookups ==========

    def search(self, q: Any, limit: Any = 20) -> List[Dict[str, Any]]:
        term = str(q or "").strip()
        lim = clamp_int(limit, 20, 1, 200)
        exact = extract_member_id(term)
        rows = self.profiles.search(term, role=ROLE_MEMBER, limit=lim, exact_uuid=exact)
        return [profile_dict(p) for p in rows]

    def _active_member_ids(self):
        return (
            select(Subscription.member_id)
            .where(Subscription.status == "active", Subscription.end_date >= self.today())
            .distinct()
        )

    def stats(self) -> Dict[str, Any]:
        total = self.db.scalar(
            select(func.count()).select_from(Profile).where(Profile.role == ROLE_MEMBER)
        ) or 0
        active = self.db.scalar(
            select(func.count())
            .select_from(Profile)
            .where(Profile.role == ROLE_MEMBER, Profile.user_id.in_(self._active_member_ids()))
        ) or 0
        return {"ok": True, "total": int(total), "active": int(active), "inactive": int(total) - int(active)}

    def inactive(self, page: Any = 1) -> Dict[str, Any]:
        p = clamp_int(page, 1, 1)
        base = select(Profile).where(
            Profile.role == ROLE_MEMBER, Profile.user_id.not_in(self._active_member_ids())
        )
        total = self.db.scalar(select(func.count()).select_from(base.subquery())) or 0
        rows = self.db.scalars(
            base.order_by(Profile.created_at.desc(), Profile.email)
            .offset((p - 1) * INACTIVE_PAGE_SIZE)
            .limit(INACTIVE_PAGE_SIZE)
        ).all()
        return {
            "ok": True,
            "page": p,
            "pageSize": INACTIVE_PAGE_SIZE,
            "total": int(total),
            "items": [profile_dict(r) for r in rows],
        }

    def find_by_email(self, email: Any) -> Dict[str, Any]:
        e = str(email or "").strip().lower()
        if not e:
            raise ServiceError("MISSING_EMAIL")
        profile = self.profiles.get_by_email(e)
        if profile is None:
            raise NotFoundError("MEMBER_NOT_FOUND")
        last = self.subscriptions.latest_any(profile.user_id)
        return {
            "ok": True,
            "profile": profile_dict(profile),
            "last_subscription": subscription_dict(last, self.today()) if last else None,
        }

    def admin_list(self, q: Any = "", role: Any = None, limit: Any = 50) -> List[Dict[str, Any]]:
        r = normalize_role(role)
        if r and r not in ALL_ROLES:
            raise ServiceError("INVALID_ROLE")
        lim = clamp_int(limit, 50, 1, 500)
        term = str(q or "").strip()
        rows = self.profiles.search(term, role=r or None, limit=lim, exact_uuid=extract_member_id(term))
        return [profile_dict(p) for p in rows]

    def staff_list(self) -> List[Dict[str, Any]]:
        return [profile_dict(p) for p in self.profiles.list_by_roles(COACHING_ROLES)]

    # ========== Roles ==========

    def set_role(self, actor: Dict[str, Any], user_id: Any, role: Any) -> Dict[str, Any]:
        """Assign a role.

        Super admins may assign any role. Admins may only move users among
        member, assistant_coach, coach and reception.
        """
        new_role = normalize_role(role)
        if new_role not in ALL_ROLES:
            raise ServiceError("INVALID_ROLE")
        target = self.profiles.get(str(user_id or ""))
        if target is None:
            raise NotFoundError("USER_NOT_FOUND")

        if actor.get("role") != ROLE_SUPER_ADMIN:
            if target.role in ADMIN_ROLES or new_role not in ADMIN_ASSIGNABLE_ROLES:
                raise ServiceError("FORBIDDEN", 403)

        old_role = target.role
        if old_role == new_role:
            return {"ok": True, "user_id": target.user_id, "role": new_role, "unchanged": True}
        target.role = new_role
        AuditService(self.db).log(
            AuditService.ACTION_ROLE_CHANGE,
            "profiles",
            target.user_id,
            actor.get("user_id"),
            {"from": old_role, "to": new_role},
        )
        self.commit()
        return {"ok": True, "user_id": target.user_id, "role": new_role}
