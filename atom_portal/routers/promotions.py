from fastapi import APIRouter, Depends, Request

from atom_portal.dependencies import get_promotion_service, require_super_admin
from atom_portal.routers import read_json
from atom_portal.services.promotion_service import PromotionService

router = APIRouter(prefix="/api/promotions", tags=["promotions"])


@router.get("")
async def api_active_promotions(svc: PromotionService = Depends(get_promotion_service)):
    return {"ok": True, "items": svc.list()}


@router.get("/all")
async def api_all_promotions(_=Depends(require_super_admin), svc: PromotionService = Depends(get_promotion_service)):
    return {"ok": True, "items": svc.list(include_inactive=True)}


@router.post("")
async def api_create_promotion(
    request: Request,
    claims=Depends(require_super_admin),
    svc: PromotionService = Depends(get_promotion_service),
):
    data = await read_json(request)
    return svc.create(claims["user_id"], data)


@router.patch("/{promo_id}")
async def api_update_promotion(
    promo_id: int,
    request: Request,
    _=Depends(require_super_admin),
    svc: PromotionService = Depends(get_promotion_service),
):
    data = await read_json(request)
    return svc.update(promo_id, data)


@router.delete("/{promo_id}")
async def api_delete_promotion(
    promo_id: int,
    _=Depends(require_super_admin),
    svc: PromotionService = Depends(get_promotion_service),
):
    return svc.delete(promo_id)
