import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from atom_portal.dependencies import (
    get_audit_service,
    get_freeze_service,
    get_member_service,
    get_reminder_service,
    get_report_service,
    get_subscription_service,
    require_admin,
)
from atom_portal.routers import read_json
from atom_portal.services.audit_service import AuditService
from atom_portal.services.freeze_service import FreezeService
from atom_portal.services.member_service import MemberService
from atom_portal.services.reminder_service import ReminderService
from atom_portal.services.report_service import ReportService
from atom_portal.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


def _flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


def _csv_response(export: Tuple[str, str]) -> Response:
    filename, text = export
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# --- Users ---

@router.get("/members")
async def api_admin_members(
    q: Optional[str] = None,
    role: Optional[str] = None,
    limit: Optional[str] = None,
    _=Depends(require_admin),
    svc: MemberService = Depends(get_member_service),
):
    return {"ok": True, "items": svc.admin_list(q, role, limit)}


@router.post("/users/role")
async def api_set_user_role(
    request: Request,
    claims=Depends(require_admin),
    svc: MemberService = Depends(get_member_service),
):
    data = await read_json(request)
    return svc.set_role(claims, data.get("user_id"), data.get("role"))


@router.get("/staff")
async def api_admin_staff(_=Depends(require_admin), svc: MemberService = Depends(get_member_service)):
    return {"ok": True, "items": svc.staff_list()}


@router.get("/audit")
async def api_admin_audit(_=Depends(require_admin), svc: AuditService = Depends(get_audit_service)):
    return {"ok": True, "items": svc.recent(20)}


# --- Subscriptions & reminders ---

@router.post("/subscriptions/expire")
async def api_expire_subscriptions(
    claims=Depends(require_admin),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    return svc.expire_overdue(claims["user_id"])


@router.post("/notify/run")
async def api_run_reminders(
    dry: Optional[str] = None,
    mark: Optional[str] = None,
    _=Depends(require_admin),
    svc: ReminderService = Depends(get_reminder_service),
):
    return svc.run(dry=_flag(dry), mark=_flag(mark))


@router.get("/freeze-requests")
async def api_admin_freeze_requests(
    status: Optional[str] = None,
    _=Depends(require_admin),
    svc: FreezeService = Depends(get_freeze_service),
):
    return {"ok": True, "items": svc.list_all(status)}


# --- Reports ---

@router.get("/stats")
async def api_admin_stats(
    stat_type: Optional[str] = Query(None, alias="type"),
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    _=Depends(require_admin),
    svc: ReportService = Depends(get_report_service),
):
    return svc.stats(stat_type, date_from, date_to)


@router.get("/export/subscriptions")
async def api_export_subscriptions(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    _=Depends(require_admin),
    svc: ReportService = Depends(get_report_service),
):
    return _csv_response(svc.export_subscriptions(date_from, date_to))


@router.get("/export/attendance")
async def api_export_attendance(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    _=Depends(require_admin),
    svc: ReportService = Depends(get_report_service),
):
    return _csv_response(svc.export_attendance(date_from, date_to))


@router.get("/export/active-now")
async def api_export_active_now(_=Depends(require_admin), svc: ReportService = Depends(get_report_service)):
    return _csv_response(svc.export_active_now())
