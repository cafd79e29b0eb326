import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from atom_portal.dependencies import get_current_claims, get_notification_service, require_admin, require_member
from atom_portal.routers import read_json
from atom_portal.services.notification_service import NotificationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/notifications", tags=["notifications"])


class MarkReadPayload(BaseModel):
    ids: Any = None


@router.get("")
async def api_list_notifications(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    unread: Optional[str] = None,
    kind: Optional[str] = None,
    q: Optional[str] = None,
    claims=Depends(get_current_claims),
    svc: NotificationService = Depends(get_notification_service),
):
    return svc.list_for(claims["user_id"], page=page, limit=limit, unread=unread, kind=kind, q=q)


@router.post("/mark-read")
async def api_mark_read(
    payload: MarkReadPayload,
    claims=Depends(get_current_claims),
    svc: NotificationService = Depends(get_notification_service),
):
    return svc.mark_read(claims["user_id"], payload.ids)


@router.post("/send")
async def api_send_notification(
    request: Request,
    claims=Depends(require_admin),
    svc: NotificationService = Depends(get_notification_service),
):
    data = await read_json(request)
    return svc.send(claims["user_id"], data)


@router.get("/sent")
async def api_sent_notifications(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    _=Depends(require_admin),
    svc: NotificationService = Depends(get_notification_service),
):
    return svc.sent(page, limit)


@router.post("/contact")
async def api_contact_gym(
    request: Request,
    claims=Depends(require_member),
    svc: NotificationService = Depends(get_notification_service),
):
    data = await read_json(request)
    return svc.contact(claims["user_id"], data)
