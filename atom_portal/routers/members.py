import logging

from fastapi import APIRouter, Depends, Request

from atom_portal.dependencies import get_member_service, require_desk, require_staff
from atom_portal.routers import read_json
from atom_portal.services.member_service import MemberService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/members", tags=["members"])


@router.post("")
async def api_create_member(
    request: Request,
    claims=Depends(require_desk),
    svc: MemberService = Depends(get_member_service),
):
    data = await read_json(request)
    res = svc.create_member(data)
    logger.info(f"Member upsert by {claims['user_id']}: {res.get('user_id')} created={res.get('created')}")
    return res


@router.post("/kiosk-register")
async def api_kiosk_register(
    request: Request,
    _=Depends(require_staff),
    svc: MemberService = Depends(get_member_service),
):
    data = await read_json(request)
    return svc.create_member(data, kiosk=True)


@router.get("/search")
async def api_search_members(
    q: str = "",
    limit: int = 20,
    _=Depends(require_staff),
    svc: MemberService = Depends(get_member_service),
):
    return {"ok": True, "items": svc.search(q, limit)}


@router.get("/stats")
async def api_member_stats(_=Depends(require_staff), svc: MemberService = Depends(get_member_service)):
    return svc.stats()


@router.get("/inactive")
async def api_inactive_members(
    page: int = 1,
    _=Depends(require_staff),
    svc: MemberService = Depends(get_member_service),
):
    return svc.inactive(page)


@router.get("/find")
async def api_find_member(
    email: str = "",
    _=Depends(require_staff),
    svc: MemberService = Depends(get_member_service),
):
    return svc.find_by_email(email)
