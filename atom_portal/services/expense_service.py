"""
Expenses Service - gym expenses and their categories.
"""

import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from sqlalchemy import select

from atom_portal.database.orm_models import Expense, ExpenseCategory
from atom_portal.errors import ConflictError, NotFoundError, ServiceError
from atom_portal.services.base import BaseService
from atom_portal.utils import iso, parse_iso_date

logger = logging.getLogger(__name__)

CATEGORY_KEY_RE = re.compile(r"^[a-z0-9_\-]{1,60}$")


def category_dict(c: ExpenseCategory) -> Dict[str, Any]:
    return {
        "key": c.key,
        "label": c.label,
        "group_name": c.group_name,
        "sort_order": c.sort_order,
        "is_active": c.is_active,
    }


def expense_dict(e: Expense) -> Dict[str, Any]:
    return {
        "id": e.id,
        "date": iso(e.expense_date),
        "category_key": e.category_key,
        "description": e.description,
        "amount": float(e.amount) if e.amount is not None else 0.0,
        "created_by": e.created_by,
    }


def _parse_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value).replace(",", "."))
    except InvalidOperation:
        raise ServiceError("INVALID_AMOUNT")
    if not amount.is_finite() or amount < 0:
        raise ServiceError("INVALID_AMOUNT")
    return amount.quantize(Decimal("0.01"))


class ExpenseService(BaseService):

    # ========== Categories ==========

    def list_categories(self, include_inactive: bool = True) -> List[Dict[str, Any]]:
        stmt = select(ExpenseCategory)
        if not include_inactive:
            stmt = stmt.where(ExpenseCategory.is_active.is_(True))
        rows = self.db.scalars(stmt.order_by(ExpenseCategory.sort_order, ExpenseCategory.label)).all()
        return [category_dict(c) for c in rows]

    def create_category(self, data: Dict[str, Any]) -> Dict[str, Any]:
        key = str(data.get("key") or "").strip().lower()
        label = str(data.get("label") or "").strip()
        if not CATEGORY_KEY_RE.match(key) or not label:
            raise ServiceError("INVALID_INPUT", details="key and label are required")
        if self.db.get(ExpenseCategory, key) is not None:
            raise ConflictError("CATEGORY_EXISTS")
        try:
            sort_order = int(data.get("sort_order") or 0)
        except (TypeError, ValueError):
            raise ServiceError("INVALID_INPUT", details="sort_order")
        cat = ExpenseCategory(
            key=key,
            label=label,
            group_name=str(data.get("group_name") or "").strip() or None,
            sort_order=sort_order,
            is_active=bool(data.get("is_active", True)),
        )
        self.db.add(cat)
        self.commit()
        return {"ok": True, "category": category_dict(cat)}

    def update_category(self, key: str, data: Dict[str, Any]) -> Dict[str, Any]:
        cat = self.db.get(ExpenseCategory, str(key or "").strip().lower())
        if cat is None:
            raise NotFoundError()
        changed = False
        if "label" in data:
            label = str(data.get("label") or "").strip()
            if not label:
                raise ServiceError("INVALID_INPUT", details="label")
            cat.label = label
            changed = True
        if "group_name" in data:
            cat.group_name = str(data.get("group_name") or "").strip() or None
            changed = True
        if "sort_order" in data:
            try:
                cat.sort_order = int(data.get("sort_order") or 0)
            except (TypeError, ValueError):
                raise ServiceError("INVALID_INPUT", details="sort_order")
            changed = True
        if "is_active" in data:
            cat.is_active = bool(data.get("is_active"))
            changed = True
        if not changed:
            raise ServiceError("NO_FIELDS_TO_UPDATE")
        self.commit()
        return {"ok": True, "category": category_dict(cat)}

    def delete_category(self, key: str) -> Dict[str, Any]:
        cat = self.db.get(ExpenseCategory, str(key or "").strip().lower())
        if cat is None:
            raise NotFoundError()
        self.db.delete(cat)
        self.commit()
        return {"ok": True, "key": cat.key}

    # ========== Expenses ==========

    def create(self, actor_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        raw_date = data.get("date")
        day = parse_iso_date(raw_date) if raw_date else self.today()
        if day is None:
            raise ServiceError("INVALID_DATE")
        category_key = str(data.get("category_key") or "").strip().lower() or None
        if category_key and self.db.get(ExpenseCategory, category_key) is None:
            raise ServiceError("INVALID_CATEGORY")
        expense = Expense(
            expense_date=day,
            category_key=category_key,
            description=str(data.get("description") or "").strip() or None,
            amount=_parse_amount(data.get("amount")),
            created_by=actor_id,
        )
        self.db.add(expense)
        self.commit()
        logger.info(f"Expense {expense.id} recorded by {actor_id}: {expense.amount} ({category_key})")
        return {"ok": True, "expense": expense_dict(expense)}

    def list(self, date_from: Any = None, date_to: Any = None, category: Any = None) -> Dict[str, Any]:
        stmt = select(Expense)
        d_from = parse_iso_date(date_from)
        d_to = parse_iso_date(date_to)
        if d_from:
            stmt = stmt.where(Expense.expense_date >= d_from)
        if d_to:
            stmt = stmt.where(Expense.expense_date <= d_to)
        cat = str(category or "").strip().lower()
        if cat:
            stmt = stmt.where(Expense.category_key == cat)
        rows = self.db.scalars(stmt.order_by(Expense.expense_date.desc(), Expense.id.desc())).all()
        total = sum((Decimal(str(e.amount or 0)) for e in rows), Decimal("0"))
        return {"ok": True, "total": float(total), "items": [expense_dict(e) for e in rows]}

    def delete(self, expense_id: Any) -> Dict[str, Any]:
        try:
            expense = self.db.get(Expense, int(expense_id))
        except (TypeError, ValueError):
            expense = None
        if expense is None:
            raise NotFoundError()
        self.db.delete(expense)
        self.commit()
        return {"ok": True, "id": expense.id}
