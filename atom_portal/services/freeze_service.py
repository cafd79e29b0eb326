import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from atom_portal.database.orm_models import FreezeRequest, Profile
from atom_portal.errors import ConflictError, NotFoundError, ServiceError
from atom_portal.services.base import BaseService
from atom_portal.utils import full_name, iso, parse_iso_date

logger = logging.getLogger(__name__)

MIN_REASON_LENGTH = 8
STATUS_PENDING = "pending"
STATUSES = (STATUS_PENDING, "approved", "denied", "canceled")
ADMIN_ACTIONS = {"approve": "approved", "deny": "denied"}


def freeze_dict(r: FreezeRequest, member: Optional[Profile] = None) -> Dict[str, Any]:
    d = {
        "id": r.id,
        "member_id": r.member_id,
        "requested_start_date": iso(r.requested_start_date),
        "reason": r.reason,
        "status": r.status,
        "admin_note": r.admin_note,
        "processed_by": r.processed_by,
        "processed_at": r.processed_at.isoformat() if r.processed_at else None,
        "created_at": r.created_at.isoformat() if r.created_at else None,
    }
    if member is not None:
        d["member_email"] = member.email
        d["member_name"] = full_name(member.first_name, member.last_name)
    return d


class FreezeService(BaseService):

    def _pending_for(self, member_id: str) -> Optional[FreezeRequest]:
        return self.db.scalars(
            select(FreezeRequest).where(
                FreezeRequest.member_id == member_id, FreezeRequest.status == STATUS_PENDING
            )
        ).first()

    def create(self, member_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        start = parse_iso_date(data.get("requested_start_date"))
        if start is None:
            raise ServiceError("INVALID_DATE", 422, details="requested_start_date must be YYYY-MM-DD")
        if start < self.today():
            raise ServiceError("DATE_IN_PAST", 422)
        reason = str(data.get("reason") or "").strip()
        if len(reason) < MIN_REASON_LENGTH:
            raise ServiceError("REASON_TOO_SHORT", 422, details=f"min {MIN_REASON_LENGTH} characters")
        if self._pending_for(member_id) is not None:
            raise ConflictError("PENDING_REQUEST_EXISTS")

        req = FreezeRequest(member_id=member_id, requested_start_date=start, reason=reason, status=STATUS_PENDING)
        self.db.add(req)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost the race against a concurrent request for the same member
            self.db.rollback()
            raise ConflictError("PENDING_REQUEST_EXISTS")
        logger.info(f"Freeze request {req.id} created by {member_id}")
        return {"ok": True, "request": freeze_dict(req)}

    def list_own(self, member_id: str) -> List[Dict[str, Any]]:
        rows = self.db.scalars(
            select(FreezeRequest)
            .where(FreezeRequest.member_id == member_id)
            .order_by(FreezeRequest.created_at.desc(), FreezeRequest.id.desc())
        ).all()
        return [freeze_dict(r) for r in rows]

    def list_all(self, status: Any = None) -> List[Dict[str, Any]]:
        stmt = select(FreezeRequest, Profile).join(Profile, Profile.user_id == FreezeRequest.member_id)
        s = str(status or "").strip().lower()
        if s and s != "all":
            if s not in STATUSES:
                raise ServiceError("INVALID_STATUS", details=list(STATUSES))
            stmt = stmt.where(FreezeRequest.status == s)
        rows = self.db.execute(stmt.order_by(FreezeRequest.created_at.desc(), FreezeRequest.id.desc())).all()
        return [freeze_dict(r, p) for r, p in rows]

    def _get(self, request_id: Any) -> FreezeRequest:
        try:
            req = self.db.get(FreezeRequest, int(request_id))
        except (TypeError, ValueError):
            req = None
        if req is None:
            raise NotFoundError()
        return req

    def process(self, admin_id: str, request_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
        """Approve or deny a pending request."""
        action = str(data.get("action") or data.get("status") or "").strip().lower()
        new_status = ADMIN_ACTIONS.get(action) or (action if action in ADMIN_ACTIONS.values() else None)
        if new_status is None:
            raise ServiceError("INVALID_ACTION", details=list(ADMIN_ACTIONS))
        req = self._get(request_id)
        if req.status != STATUS_PENDING:
            raise ConflictError("NOT_PENDING", details=req.status)
        req.status = new_status
        req.admin_note = str(data.get("admin_note") or "").strip() or None
        req.processed_by = admin_id
        req.processed_at = self.now()
        self.commit()
        logger.info(f"Freeze request {req.id} {new_status} by {admin_id}")
        return {"ok": True, "request": freeze_dict(req)}

    def cancel(self, member_id: str, request_id: Any) -> Dict[str, Any]:
        req = self._get(request_id)
        if req.member_id != member_id:
            raise NotFoundError()
        if req.status != STATUS_PENDING:
            raise ConflictError("NOT_PENDING", details=req.status)
        req.status = "canceled"
        self.commit()
        return {"ok": True, "request": freeze_dict(req)}
