from fastapi import APIRouter, Depends, Request

from atom_portal.dependencies import get_subscription_service, require_desk
from atom_portal.routers import read_json
from atom_portal.services.subscription_service import SubscriptionService

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.post("")
async def api_create_subscription(
    request: Request,
    claims=Depends(require_desk),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    data = await read_json(request)
    return svc.create(claims["user_id"], data)


@router.post("/action")
async def api_subscription_action(
    request: Request,
    claims=Depends(require_desk),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    data = await read_json(request)
    return svc.apply_action(claims["user_id"], data)
