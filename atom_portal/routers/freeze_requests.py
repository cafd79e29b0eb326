from fastapi import APIRouter, Depends, Request

from atom_portal.dependencies import get_freeze_service, require_admin, require_member
from atom_portal.routers import read_json
from atom_portal.services.freeze_service import FreezeService

router = APIRouter(prefix="/api/freeze-requests", tags=["freeze"])


@router.post("")
async def api_create_freeze_request(
    request: Request,
    claims=Depends(require_member),
    svc: FreezeService = Depends(get_freeze_service),
):
    data = await read_json(request)
    return svc.create(claims["user_id"], data)


@router.get("")
async def api_my_freeze_requests(claims=Depends(require_member), svc: FreezeService = Depends(get_freeze_service)):
    return {"ok": True, "items": svc.list_own(claims["user_id"])}


@router.patch("/{request_id}")
async def api_process_freeze_request(
    request_id: int,
    request: Request,
    claims=Depends(require_admin),
    svc: FreezeService = Depends(get_freeze_service),
):
    data = await read_json(request)
    return svc.process(claims["user_id"], request_id, data)


@router.post("/{request_id}/cancel")
async def api_cancel_freeze_request(
    request_id: int,
    claims=Depends(require_member),
    svc: FreezeService = Depends(get_freeze_service),
):
    return svc.cancel(claims["user_id"], request_id)
