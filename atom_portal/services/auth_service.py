"""
Auth Service - password login and invitation flow.

Passwords are stored as bcrypt hashes. New members are created with an
invite token; completing the invite sets the password.
"""

import logging
import secrets
from typing import Any, Dict, Optional

import bcrypt

from atom_portal.database.orm_models import Profile
from atom_portal.errors import ServiceError
from atom_portal.services.base import BaseService
from atom_portal.utils import full_name, get_app_url

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored or not stored.startswith("$2"):
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8"))
    except ValueError:
        logger.warning("Malformed password hash")
        return False


def session_user(profile: Profile) -> Dict[str, Any]:
    return {
        "id": profile.user_id,
        "email": profile.email,
        "role": profile.role,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "full_name": full_name(profile.first_name, profile.last_name, profile.email),
    }


class AuthService(BaseService):

    def authenticate(self, email: Any, password: Any) -> Profile:
        e = str(email or "").strip().lower()
        p = str(password or "")
        if not e or not p:
            raise ServiceError("MISSING_CREDENTIALS")
        profile = self.profiles.get_by_email(e)
        if profile is None or not verify_password(p, profile.password_hash):
            logger.info(f"Login failed for {e}")
            raise ServiceError("INVALID_CREDENTIALS", 401)
        return profile

    def issue_invite(self, profile: Profile) -> str:
        """Attach a fresh invite token and return the invite link."""
        profile.invite_token = secrets.token_urlsafe(32)
        profile.invited_at = self.now()
        return f"{get_app_url()}/auth/invite?token={profile.invite_token}"

    def complete_invite(self, token: Any, password: Any) -> Profile:
        p = str(password or "")
        profile = self.profiles.get_by_invite_token(str(token or ""))
        if profile is None:
            raise ServiceError("INVALID_TOKEN")
        if len(p) < MIN_PASSWORD_LENGTH:
            raise ServiceError("WEAK_PASSWORD", details=f"min {MIN_PASSWORD_LENGTH} characters")
        profile.password_hash = hash_password(p)
        profile.invite_token = None
        self.commit()
        logger.info(f"Invite completed for {profile.user_id}")
        return profile
