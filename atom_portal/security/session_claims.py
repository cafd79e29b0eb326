from __future__ import annotations

from typing import Any, Dict, Optional

ROLE_MEMBER = "member"
ROLE_ASSISTANT_COACH = "assistant_coach"
ROLE_COACH = "coach"
ROLE_RECEPTION = "reception"
ROLE_ADMIN = "admin"
ROLE_SUPER_ADMIN = "super_admin"

ALL_ROLES = {
    ROLE_MEMBER,
    ROLE_ASSISTANT_COACH,
    ROLE_COACH,
    ROLE_RECEPTION,
    ROLE_ADMIN,
    ROLE_SUPER_ADMIN,
}
ADMIN_ROLES = {ROLE_ADMIN, ROLE_SUPER_ADMIN}
STAFF_ROLES = {ROLE_RECEPTION, ROLE_ASSISTANT_COACH, ROLE_COACH} | ADMIN_ROLES
# Roles allowed at the front desk: member creation, subscription issuance
DESK_ROLES = {ROLE_RECEPTION} | ADMIN_ROLES
SCANNER_ROLES = STAFF_ROLES
# Roles that may place store orders
CUSTOMER_ROLES = {ROLE_MEMBER, ROLE_ASSISTANT_COACH, ROLE_COACH}
COACHING_ROLES = {ROLE_COACH, ROLE_ASSISTANT_COACH}
# Roles an admin (not super admin) may grant
ADMIN_ASSIGNABLE_ROLES = {ROLE_MEMBER, ROLE_ASSISTANT_COACH, ROLE_COACH, ROLE_RECEPTION}


def normalize_role(role: Any) -> str:
    return str(role or "").strip().lower()


def get_session_user_id(session: Dict[str, Any]) -> Optional[str]:
    uid = str(session.get("user_id") or "").strip()
    return uid or None


def build_claims(user_id: Optional[str], role: Any, email: Optional[str] = None) -> Dict[str, Any]:
    r = normalize_role(role)
    return {
        "user_id": user_id,
        "role": r,
        "email": email,
        "is_authenticated": bool(user_id),
        "is_member": r == ROLE_MEMBER,
        "is_staff": r in STAFF_ROLES,
        "is_admin": r in ADMIN_ROLES,
        "is_super_admin": r == ROLE_SUPER_ADMIN,
    }


def set_session_user(session: Dict[str, Any], user_id: str) -> None:
    """Only the user id goes into the cookie; claims are rebuilt from the profile."""
    session.clear()
    session["user_id"] = str(user_id)


def clear_session(session: Dict[str, Any]) -> None:
    session.clear()
