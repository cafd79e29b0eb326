from typing import Optional

from fastapi import APIRouter, Depends, Request

from atom_portal.dependencies import get_current_claims, get_reservation_service, require_staff
from atom_portal.routers import read_json
from atom_portal.services.reservation_service import ReservationService

router = APIRouter(prefix="/api/reservations", tags=["reservations"])


@router.post("")
async def api_create_reservation(
    request: Request,
    claims=Depends(require_staff),
    svc: ReservationService = Depends(get_reservation_service),
):
    data = await read_json(request)
    return svc.create(claims["user_id"], data)


@router.get("")
async def api_all_reservations(
    status: Optional[str] = None,
    _=Depends(require_staff),
    svc: ReservationService = Depends(get_reservation_service),
):
    return {"ok": True, "items": svc.list_all(status)}


@router.get("/me")
async def api_my_reservations(
    claims=Depends(get_current_claims),
    svc: ReservationService = Depends(get_reservation_service),
):
    return {"ok": True, "items": svc.list_own(claims["user_id"])}


@router.patch("/{reservation_id}")
async def api_update_reservation(
    reservation_id: int,
    request: Request,
    _=Depends(require_staff),
    svc: ReservationService = Depends(get_reservation_service),
):
    data = await read_json(request)
    return svc.update_status(reservation_id, data.get("status"))
