import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from atom_portal.dependencies import (
    get_current_claims,
    get_store_service,
    require_admin,
    require_customer,
    require_super_admin,
)
from atom_portal.routers import read_json
from atom_portal.services.store_service import StoreService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/store", tags=["store"])


class OrderMessagePayload(BaseModel):
    body: Optional[str] = None


# --- Products ---

@router.get("/products")
async def api_list_products(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    show_all: Optional[str] = Query(None, alias="all"),
    active: Optional[str] = None,
    claims=Depends(get_current_claims),
    svc: StoreService = Depends(get_store_service),
):
    return svc.list_products(
        role=claims["role"],
        page=page,
        limit=limit,
        category=category,
        q=q,
        show_all=show_all,
        active=active,
    )


@router.post("/products")
async def api_create_product(
    request: Request,
    _=Depends(require_super_admin),
    svc: StoreService = Depends(get_store_service),
):
    data = await read_json(request)
    return svc.create_product(data)


@router.patch("/products/{product_id}")
async def api_update_product(
    product_id: int,
    request: Request,
    _=Depends(require_super_admin),
    svc: StoreService = Depends(get_store_service),
):
    data = await read_json(request)
    return svc.update_product(product_id, data)


@router.delete("/products/{product_id}")
async def api_delete_product(
    product_id: int,
    _=Depends(require_super_admin),
    svc: StoreService = Depends(get_store_service),
):
    return svc.delete_product(product_id)


# --- Orders ---

@router.post("/orders")
async def api_create_order(
    request: Request,
    claims=Depends(require_customer),
    svc: StoreService = Depends(get_store_service),
):
    data = await read_json(request)
    return svc.create_order(claims["user_id"], claims["role"], data)


@router.get("/orders")
async def api_list_orders(
    page: Optional[str] = None,
    limit: Optional[str] = None,
    view: Optional[str] = None,
    claims=Depends(get_current_claims),
    svc: StoreService = Depends(get_store_service),
):
    return svc.list_orders(claims["user_id"], claims["role"], page=page, limit=limit, view=view)


@router.patch("/orders/{order_id}/status")
async def api_update_order_status(
    order_id: int,
    request: Request,
    claims=Depends(require_super_admin),
    svc: StoreService = Depends(get_store_service),
):
    data = await read_json(request)
    return svc.update_order_status(claims["user_id"], order_id, data.get("status"))


@router.get("/orders/{order_id}/messages")
async def api_list_order_messages(
    order_id: int,
    _=Depends(require_admin),
    svc: StoreService = Depends(get_store_service),
):
    return {"ok": True, "items": svc.list_order_messages(order_id)}


@router.post("/orders/{order_id}/messages")
async def api_add_order_message(
    order_id: int,
    payload: OrderMessagePayload,
    claims=Depends(require_admin),
    svc: StoreService = Depends(get_store_service),
):
    return svc.add_order_message(claims["user_id"], order_id, payload.body)
