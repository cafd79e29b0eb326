import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from atom_portal.dependencies import get_attendance_service, require_scanner, require_staff, require_user
from atom_portal.routers import read_json
from atom_portal.services.attendance_service import AttendanceService
from atom_portal.utils import clamp_int, parse_iso_date

logger = logging.getLogger(__name__)
router = APIRouter(tags=["scan"])


@router.post("/api/kiosk/scan")
@router.post("/api/scan")
async def api_scan(
    request: Request,
    claims=Depends(require_scanner),
    svc: AttendanceService = Depends(get_attendance_service),
):
    data = await read_json(request)
    return svc.scan(claims["user_id"], data)


@router.get("/api/attendance")
async def api_attendance(
    member_id: Optional[str] = None,
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    limit: Optional[str] = None,
    _=Depends(require_staff),
    svc: AttendanceService = Depends(get_attendance_service),
):
    items = svc.history(
        member_id=(member_id or "").strip() or None,
        date_from=parse_iso_date(date_from),
        date_to=parse_iso_date(date_to),
        limit=clamp_int(limit, 200, 1, 1000),
    )
    return {"ok": True, "items": items}


@router.get("/api/attendance/me")
async def api_my_attendance(
    limit: Optional[str] = None,
    claims=Depends(require_user),
    svc: AttendanceService = Depends(get_attendance_service),
):
    items = svc.history(member_id=claims["user_id"], limit=clamp_int(limit, 100, 1, 500))
    return {"ok": True, "items": items}
