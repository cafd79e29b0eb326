from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from sqlalchemy import select

from atom_portal.database.orm_models import EquipmentReservation, Profile
from atom_portal.errors import NotFoundError, ServiceError
from atom_portal.services.base import BaseService
from atom_portal.utils import full_name

RESERVATION_STATUSES = ("reserved", "ready", "collected", "canceled")


def reservation_dict(r: EquipmentReservation, member: Profile = None) -> Dict[str, Any]:
    d = {
        "id": r.id,
        "member_id": r.member_id,
        "item_name": r.item_name,
        "size": r.size,
        "color": r.color,
        "advance_amount": float(r.advance_amount or 0),
        "status": r.status,
        "note": r.note,
        "created_by": r.created_by,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }
    if member is not None:
        d["member_email"] = member.email
        d["member_name"] = full_name(member.first_name, member.last_name)
    return d


class ReservationService(BaseService):

    def create(self, actor_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        member_id = str(data.get("member_id") or "").strip()
        if not member_id:
            raise ServiceError("MISSING_MEMBER_ID")
        self.require_profile(member_id, "MEMBER_NOT_FOUND")
        item_name = str(data.get("item_name") or "").strip()
        if not item_name:
            raise ServiceError("INVALID_INPUT", details="item_name is required")
        try:
            advance = Decimal(str(data.get("advance_amount") or 0))
        except InvalidOperation:
            raise ServiceError("INVALID_AMOUNT")
        if not advance.is_finite() or advance < 0:
            raise ServiceError("INVALID_AMOUNT")

        r = EquipmentReservation(
            member_id=member_id,
            item_name=item_name,
            size=str(data.get("size") or "").strip() or None,
            color=str(data.get("color") or "").strip() or None,
            advance_amount=advance,
            status="reserved",
            note=str(data.get("note") or "").strip() or None,
            created_by=actor_id,
        )
        self.db.add(r)
        self.commit()
        return {"ok": True, "reservation": reservation_dict(r)}

    def update_status(self, reservation_id: Any, status: Any) -> Dict[str, Any]:
        s = str(status or "").strip().lower()
        if s not in RESERVATION_STATUSES:
            raise ServiceError("INVALID_STATUS", details=list(RESERVATION_STATUSES))
        try:
            r = self.db.get(EquipmentReservation, int(reservation_id))
        except (TypeError, ValueError):
            r = None
        if r is None:
            raise NotFoundError()
        r.status = s
        self.commit()
        return {"ok": True, "reservation": reservation_dict(r)}

    def list_own(self, member_id: str) -> List[Dict[str, Any]]:
        rows = self.db.scalars(
            select(EquipmentReservation)
            .where(EquipmentReservation.member_id == member_id)
            .order_by(EquipmentReservation.created_at.desc(), EquipmentReservation.id.desc())
        ).all()
        return [reservation_dict(r) for r in rows]

    def list_all(self, status: Any = None) -> List[Dict[str, Any]]:
        stmt = select(EquipmentReservation, Profile).join(
            Profile, Profile.user_id == EquipmentReservation.member_id
        )
        s = str(status or "").strip().lower()
        if s and s != "all":
            stmt = stmt.where(EquipmentReservation.status == s)
        rows = self.db.execute(
            stmt.order_by(EquipmentReservation.created_at.desc(), EquipmentReservation.id.desc())
        ).all()
        return [reservation_dict(r, p) for r, p in rows]
