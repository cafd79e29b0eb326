"""
Attendance Service - kiosk check-in scans.

A scan resolves the presented code to a profile and records exactly one
attendance row. Staff always pass. Members pass on the first active time
plan covering today, else on the first session pack covering today with
sessions left, which is consumed through a guarded update. If the guard
loses (the pack ran out meanwhile) the scan is recorded as invalid.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from atom_portal.database.orm_models import Attendance, Profile
from atom_portal.database.repositories.subscription_repository import TYPE_SESSIONS, TYPE_TIME
from atom_portal.errors import ServiceError
from atom_portal.security.session_claims import STAFF_ROLES
from atom_portal.services.base import BaseService
from atom_portal.services.subscription_service import sessions_remaining
from atom_portal.utils import day_start, extract_member_id, full_name, normalize_qr

logger = logging.getLogger(__name__)

SOURCE_KIOSK = "kiosk"
SOURCE_KIOSK_STAFF = "kiosk_staff"
MSG_STAFF = "OK: STAFF ACCESS"
MSG_VALID = "OK: subscription valid"
MSG_INVALID = "No active subscription for today"


class AttendanceService(BaseService):

    def resolve_code(self, data: Dict[str, Any]) -> Profile:
        raw = str(data.get("code") or data.get("qr") or data.get("member_qr") or "").strip()
        if not raw:
            raise ServiceError("MISSING_QR")
        member_id = extract_member_id(raw)
        profile = self.profiles.get(member_id) if member_id else None
        if profile is None:
            profile = self.profiles.get_by_qr(raw) or self.profiles.get_by_qr(normalize_qr(raw))
        if profile is None:
            raise ServiceError("INVALID_QR")
        return profile

    def scan(self, scanner_id: Optional[str], data: Dict[str, Any]) -> Dict[str, Any]:
        profile = self.resolve_code(data)
        scanned_at = self.now()

        if profile.role in STAFF_ROLES:
            self.db.add(
                Attendance(
                    member_id=profile.user_id,
                    subscription_id=None,
                    valid=True,
                    source=SOURCE_KIOSK_STAFF,
                    scanned_by=scanner_id,
                    scanned_at=scanned_at,
                )
            )
            self.commit()
            logger.info(f"Staff check-in {profile.user_id}")
            return {
                "ok": True,
                "valid": True,
                "member_id": profile.user_id,
                "subscription_id": None,
                "name": full_name(profile.first_name, profile.last_name, profile.email),
                "role": profile.role,
                "message": MSG_STAFF,
            }

        subs = self.subscriptions.active_for_day(profile.user_id, self.today())
        chosen = next((s for s in subs if s.subscription_type == TYPE_TIME), None)
        if chosen is None:
            pack = next(
                (s for s in subs if s.subscription_type == TYPE_SESSIONS and (sessions_remaining(s) or 0) > 0),
                None,
            )
            if pack is not None:
                if self.subscriptions.consume_session(pack.id):
                    chosen = pack
                else:
                    logger.warning(f"Session pack {pack.id} exhausted during scan of {profile.user_id}")

        valid = chosen is not None
        self.db.add(
            Attendance(
                member_id=profile.user_id,
                subscription_id=chosen.id if chosen else None,
                valid=valid,
                source=SOURCE_KIOSK,
                scanned_by=scanner_id,
                scanned_at=scanned_at,
            )
        )
        self.commit()
        remaining = None
        if chosen is not None and chosen.subscription_type == TYPE_SESSIONS:
            self.db.refresh(chosen)
            remaining = sessions_remaining(chosen)

        return {
            "ok": True,
            "valid": valid,
            "member_id": profile.user_id,
            "subscription_id": chosen.id if chosen else None,
            "name": full_name(profile.first_name, profile.last_name, profile.email),
            "sessions_remaining": remaining,
            "message": MSG_VALID if valid else MSG_INVALID,
        }

    def history(
        self,
        member_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: int = 200,
    ) -> List[Dict[str, Any]]:
        stmt = select(Attendance)
        if member_id:
            stmt = stmt.where(Attendance.member_id == member_id)
        if date_from:
            stmt = stmt.where(Attendance.scanned_at >= day_start(date_from))
        if date_to:
            stmt = stmt.where(Attendance.scanned_at < day_start(date_to + timedelta(days=1)))
        stmt = stmt.order_by(Attendance.scanned_at.desc(), Attendance.id.desc()).limit(int(limit))
        return [
            {
                "id": a.id,
                "member_id": a.member_id,
                "subscription_id": a.subscription_id,
                "valid": a.valid,
                "source": a.source,
                "scanned_by": a.scanned_by,
                "scanned_at": a.scanned_at.isoformat() if a.scanned_at else None,
            }
            for a in self.db.scalars(stmt).all()
        ]
