from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from atom_portal.dependencies import get_expense_service, require_admin
from atom_portal.routers import read_json
from atom_portal.services.expense_service import ExpenseService

router = APIRouter(prefix="/api/expenses", tags=["expenses"])


@router.get("")
async def api_list_expenses(
    date_from: Optional[str] = Query(None, alias="from"),
    date_to: Optional[str] = Query(None, alias="to"),
    category: Optional[str] = None,
    _=Depends(require_admin),
    svc: ExpenseService = Depends(get_expense_service),
):
    return svc.list(date_from, date_to, category)


@router.post("")
async def api_create_expense(
    request: Request,
    claims=Depends(require_admin),
    svc: ExpenseService = Depends(get_expense_service),
):
    data = await read_json(request)
    return svc.create(claims["user_id"], data)


@router.get("/categories")
async def api_list_categories(_=Depends(require_admin), svc: ExpenseService = Depends(get_expense_service)):
    return {"ok": True, "items": svc.list_categories()}


@router.post("/categories")
async def api_create_category(
    request: Request,
    _=Depends(require_admin),
    svc: ExpenseService = Depends(get_expense_service),
):
    data = await read_json(request)
    return svc.create_category(data)


@router.patch("/categories/{key}")
async def api_update_category(
    key: str,
    request: Request,
    _=Depends(require_admin),
    svc: ExpenseService = Depends(get_expense_service),
):
    data = await read_json(request)
    return svc.update_category(key, data)


@router.delete("/categories/{key}")
async def api_delete_category(key: str, _=Depends(require_admin), svc: ExpenseService = Depends(get_expense_service)):
    return svc.delete_category(key)


@router.delete("/{expense_id}")
async def api_delete_expense(
    expense_id: int,
    _=Depends(require_admin),
    svc: ExpenseService = Depends(get_expense_service),
):
    return svc.delete(expense_id)
