from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select

from atom_portal.database.orm_models import Promotion
from atom_portal.errors import NotFoundError, ServiceError
from atom_portal.services.base import BaseService
from atom_portal.utils import iso, parse_iso_date

DISCOUNT_TYPES = ("percent", "amount")
APPLIES_TO = ("membership", "dropin", "private")


def promotion_dict(p: Promotion) -> Dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "discount_type": p.discount_type,
        "discount_value": float(p.discount_value) if p.discount_value is not None else None,
        "applies_to": list(p.applies_to or []),
        "min_months": p.min_months,
        "start_date": iso(p.start_date),
        "end_date": iso(p.end_date),
        "is_active": p.is_active,
    }


class PromotionService(BaseService):

    def _validate(self, data: Dict[str, Any], current: Optional[Promotion] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if current is None or "title" in data:
            title = str(data.get("title") or "").strip()
            if not title:
                raise ServiceError("INVALID_INPUT", details="title is required")
            out["title"] = title
        if "description" in data:
            out["description"] = str(data.get("description") or "").strip() or None

        if current is None or "discount_type" in data:
            dtype = str(data.get("discount_type") or "percent").strip().lower()
            if dtype not in DISCOUNT_TYPES:
                raise ServiceError("INVALID_DISCOUNT_TYPE", details=list(DISCOUNT_TYPES))
            out["discount_type"] = dtype
        if current is None or "discount_value" in data:
            try:
                value = Decimal(str(data.get("discount_value")))
            except InvalidOperation:
                raise ServiceError("INVALID_DISCOUNT_VALUE")
            if not value.is_finite() or value <= 0:
                raise ServiceError("INVALID_DISCOUNT_VALUE")
            dtype = out.get("discount_type") or (current.discount_type if current else "percent")
            if dtype == "percent" and value > 100:
                raise ServiceError("INVALID_DISCOUNT_VALUE", details="percent must be <= 100")
            out["discount_value"] = value
        if current is None or "applies_to" in data:
            applies = data.get("applies_to")
            if isinstance(applies, str):
                applies = [a for a in applies.split(",")]
            targets = sorted({str(a).strip().lower() for a in (applies or []) if str(a).strip()})
            if not targets or any(t not in APPLIES_TO for t in targets):
                raise ServiceError("INVALID_APPLIES_TO", details=list(APPLIES_TO))
            out["applies_to"] = targets
        if "min_months" in data:
            mm = data.get("min_months")
            if mm in (None, ""):
                out["min_months"] = None
            else:
                try:
                    out["min_months"] = int(mm)
                except (TypeError, ValueError):
                    raise ServiceError("INVALID_MIN_MONTHS")
                if out["min_months"] < 0:
                    raise ServiceError("INVALID_MIN_MONTHS")
        for key in ("start_date", "end_date"):
            if key in data:
                raw = data.get(key)
                d = parse_iso_date(raw)
                if raw not in (None, "") and d is None:
                    raise ServiceError("INVALID_DATE", details=key)
                out[key] = d
        start = out.get("start_date", current.start_date if current else None)
        end = out.get("end_date", current.end_date if current else None)
        if start and end and end < start:
            raise ServiceError("INVALID_DATE_RANGE")
        if "is_active" in data:
            out["is_active"] = bool(data.get("is_active"))
        return out

    def create(self, actor_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        promo = Promotion(created_by=actor_id, **self._validate(data))
        self.db.add(promo)
        self.commit()
        return {"ok": True, "promotion": promotion_dict(promo)}

    def update(self, promo_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        promo = self.db.get(Promotion, int(promo_id))
        if promo is None:
            raise NotFoundError()
        patch = self._validate(data, promo)
        if not patch:
            raise ServiceError("NO_FIELDS_TO_UPDATE")
        for key, val in patch.items():
            setattr(promo, key, val)
        self.commit()
        return {"ok": True, "promotion": promotion_dict(promo)}

    def delete(self, promo_id: int) -> Dict[str, Any]:
        promo = self.db.get(Promotion, int(promo_id))
        if promo is None:
            raise NotFoundError()
        self.db.delete(promo)
        self.commit()
        return {"ok": True, "id": int(promo_id)}

    def list(self, *, include_inactive: bool = False) -> List[Dict[str, Any]]:
        stmt = select(Promotion)
        if not include_inactive:
            today = self.today()
            stmt = stmt.where(
                Promotion.is_active.is_(True),
                or_(Promotion.start_date.is_(None), Promotion.start_date <= today),
                or_(Promotion.end_date.is_(None), Promotion.end_date >= today),
            )
        rows = self.db.scalars(stmt.order_by(Promotion.created_at.desc(), Promotion.id.desc())).all()
        return [promotion_dict(p) for p in rows]
