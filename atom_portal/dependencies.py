"""
API Dependencies
FastAPI dependency injection: database sessions, services and role gates.
"""

import logging
from typing import Any, Callable, Dict, Generator, Iterable

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from atom_portal.database.connection import get_session_factory
from atom_portal.database.repositories import ProfileRepository
from atom_portal.security.session_claims import (
    ADMIN_ROLES,
    CUSTOMER_ROLES,
    DESK_ROLES,
    ROLE_MEMBER,
    ROLE_SUPER_ADMIN,
    SCANNER_ROLES,
    STAFF_ROLES,
    build_claims,
    clear_session,
    get_session_user_id,
)
from atom_portal.services.attendance_service import AttendanceService
from atom_portal.services.audit_service import AuditService
from atom_portal.services.auth_service import AuthService
from atom_portal.services.email_service import EmailService
from atom_portal.services.expense_service import ExpenseService
from atom_portal.services.freeze_service import FreezeService
from atom_portal.services.member_service import MemberService
from atom_portal.services.notification_service import NotificationService
from atom_portal.services.profile_service import ProfileService
from atom_portal.services.promotion_service import PromotionService
from atom_portal.services.reminder_service import ReminderService
from atom_portal.services.report_service import ReportService
from atom_portal.services.reservation_service import ReservationService
from atom_portal.services.store_service import StoreService
from atom_portal.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


def get_db_session() -> Generator[Session, None, None]:
    """One session per request, always closed."""
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


# --- Service Dependencies ---

def get_email_service() -> EmailService:
    return EmailService()


def get_auth_service(session: Session = Depends(get_db_session)) -> AuthService:
    return AuthService(session)


def get_member_service(
    session: Session = Depends(get_db_session),
    email: EmailService = Depends(get_email_service),
) -> MemberService:
    return MemberService(session, email_service=email)


def get_profile_service(session: Session = Depends(get_db_session)) -> ProfileService:
    return ProfileService(session)


def get_subscription_service(session: Session = Depends(get_db_session)) -> SubscriptionService:
    return SubscriptionService(session)


def get_attendance_service(session: Session = Depends(get_db_session)) -> AttendanceService:
    return AttendanceService(session)


def get_store_service(session: Session = Depends(get_db_session)) -> StoreService:
    return StoreService(session)


def get_notification_service(session: Session = Depends(get_db_session)) -> NotificationService:
    return NotificationService(session)


def get_reminder_service(
    session: Session = Depends(get_db_session),
    email: EmailService = Depends(get_email_service),
) -> ReminderService:
    return ReminderService(session, email_service=email)


def get_report_service(session: Session = Depends(get_db_session)) -> ReportService:
    return ReportService(session)


def get_freeze_service(session: Session = Depends(get_db_session)) -> FreezeService:
    return FreezeService(session)


def get_promotion_service(session: Session = Depends(get_db_session)) -> PromotionService:
    return PromotionService(session)


def get_expense_service(session: Session = Depends(get_db_session)) -> ExpenseService:
    return ExpenseService(session)


def get_reservation_service(session: Session = Depends(get_db_session)) -> ReservationService:
    return ReservationService(session)


def get_audit_service(session: Session = Depends(get_db_session)) -> AuditService:
    return AuditService(session)


# --- Security Dependencies ---

def get_current_claims(request: Request, session: Session = Depends(get_db_session)) -> Dict[str, Any]:
    """
    Claims of the signed-in user, with the role read from the database so
    role changes apply on the next request.
    """
    user_id = get_session_user_id(request.session)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    profile = ProfileRepository(session, logger).get(user_id)
    if profile is None:
        # Stale cookie for a deleted profile
        clear_session(request.session)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return build_claims(profile.user_id, profile.role, profile.email)


def require_roles(roles: Iterable[str]) -> Callable[..., Dict[str, Any]]:
    allowed = frozenset(roles)

    def _gate(claims: Dict[str, Any] = Depends(get_current_claims)) -> Dict[str, Any]:
        if claims["role"] not in allowed:
            logger.warning(f"AUTH FAILED: role {claims['role']} not in {sorted(allowed)}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return claims

    return _gate


require_user = get_current_claims
require_member = require_roles({ROLE_MEMBER})
require_customer = require_roles(CUSTOMER_ROLES)
require_staff = require_roles(STAFF_ROLES)
require_scanner = require_roles(SCANNER_ROLES)
require_desk = require_roles(DESK_ROLES)
require_admin = require_roles(ADMIN_ROLES)
require_super_admin = require_roles({ROLE_SUPER_ADMIN})
