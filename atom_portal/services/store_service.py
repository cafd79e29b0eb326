"""
Store Service - product catalogue, orders and order fulfilment.

Prices are integer cents. An order freezes each line's unit price and
discounted final price at creation; the role discount is spread over the
lines by ``pricing.prorate_lines``. Stock is only touched when an order
enters or leaves ``ready``.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select, update

from atom_portal.database.orm_models import Profile, StoreOrder, StoreOrderItem, StoreOrderMessage, StoreProduct
from atom_portal.errors import ConflictError, NotFoundError, ServiceError
from atom_portal.security.session_claims import CUSTOMER_ROLES, ROLE_SUPER_ADMIN
from atom_portal.services.base import BaseService
from atom_portal.services.notification_service import KIND_ORDER_UPDATE, NotificationService
from atom_portal.services.pricing import prorate_lines, role_discount_percent
from atom_portal.utils import clamp_int, full_name, parse_price_to_cents, to_price_string

logger = logging.getLogger(__name__)

CATEGORIES = ("kimono", "rashguard", "short", "belt")
ORDER_STATUSES = ("pending", "confirmed", "ready", "delivered", "canceled")
PAYMENT_METHODS = ("cash", "card", "bank_transfer", "instapay")
STATUS_ALIASES = {
    "delivere": "delivered",
    "deliverd": "delivered",
    "confirme": "confirmed",
    "confirmer": "confirmed",
    "pendingg": "pending",
    "cancel": "canceled",
    "cancelled": "canceled",
}
STATUS_LABELS = {
    "pending": "Pending",
    "confirmed": "Confirmed",
    "ready": "Ready for pickup",
    "delivered": "Delivered",
    "canceled": "Canceled",
}
STATUS_NOTIFICATIONS = {
    "confirmed": ("Order confirmed", "Your order #{id} has been confirmed."),
    "delivered": ("Order delivered", "Your order #{id} is delivered / ready for pickup."),
    "canceled": ("Order canceled", "Your order #{id} has been canceled."),
}
MAX_QUERY_LENGTH = 60


def normalize_status(value: Any) -> Optional[str]:
    s = str(value or "").strip().lower()
    s = STATUS_ALIASES.get(s, s)
    return s if s in ORDER_STATUSES else None


def human_status(value: Any) -> str:
    s = normalize_status(value)
    return STATUS_LABELS.get(s, str(value or ""))


def product_dict(p: StoreProduct) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "category": p.category,
        "color": p.color,
        "size": p.size,
        "price_cents": p.price_cents,
        "price": to_price_string(p.price_cents),
        "currency": p.currency,
        "inventory_qty": p.inventory_qty,
        "is_active": p.is_active,
        "image_url": p.image_url,
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def order_dict(o: StoreOrder, customer: Optional[Profile] = None) -> Dict[str, Any]:
    return {
        "id": o.id,
        "owner_uid": o.owner_uid,
        "status": o.status,
        "status_label": human_status(o.status),
        "preferred_payment": o.preferred_payment,
        "note": o.note,
        "total_cents": o.total_cents,
        "discount_pct": o.discount_pct,
        "created_at": o.created_at.isoformat() if o.created_at else None,
        "customer_email": customer.email if customer else None,
        "customer_name": full_name(customer.first_name, customer.last_name) if customer else None,
        "items": [
            {
                "id": i.id,
                "product_id": i.product_id,
                "name": i.name,
                "qty": i.qty,
                "unit_price_cents": i.unit_price_cents,
                "final_price_cents": i.final_price_cents,
                "currency": i.currency,
            }
            for i in o.items
        ],
    }


def _clean_query(q: Any) -> str:
    return str(q or "").replace(",", " ").strip()[:MAX_QUERY_LENGTH]


class StoreService(BaseService):

    # ========== Products ==========

    def list_products(
        self,
        *,
        role: str = "",
        page: Any = 1,
        limit: Any = 8,
        category: Any = None,
        q: Any = None,
        show_all: Any = None,
        active: Any = None,
    ) -> Dict[str, Any]:
        p = clamp_int(page, 1, 1)
        lim = clamp_int(limit, 8, 1, 50)
        stmt = select(StoreProduct)

        if role == ROLE_SUPER_ADMIN and str(show_all or "") == "1":
            a = str(active or "all").strip().lower()
            if a == "1":
                stmt = stmt.where(StoreProduct.is_active.is_(True))
            elif a == "0":
                stmt = stmt.where(StoreProduct.is_active.is_(False))
        else:
            stmt = stmt.where(StoreProduct.is_active.is_(True))

        cat = str(category or "").strip().lower()
        if cat and cat in CATEGORIES:
            stmt = stmt.where(StoreProduct.category == cat)
        term = _clean_query(q)
        if term:
            like = f"%{term}%"
            stmt = stmt.where(
                or_(StoreProduct.name.ilike(like), StoreProduct.color.ilike(like), StoreProduct.size.ilike(like))
            )

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        rows = self.db.scalars(
            stmt.order_by(StoreProduct.created_at.desc(), StoreProduct.id.desc()).offset((p - 1) * lim).limit(lim)
        ).all()
        return {
            "ok": True,
            "page": p,
            "pageSize": lim,
            "total": int(total),
            "items": [product_dict(r) for r in rows],
        }

    def _price_from(self, data: Dict[str, Any]) -> Optional[int]:
        if "price_cents" in data and data.get("price_cents") is not None:
            try:
                return int(data.get("price_cents"))
            except (TypeError, ValueError):
                raise ServiceError("INVALID_PRICE")
        if "price" in data and data.get("price") is not None:
            return parse_price_to_cents(data.get("price"))
        return None

    def _inventory_from(self, data: Dict[str, Any]) -> Optional[int]:
        if data.get("inventory_qty") is None:
            return None
        try:
            return int(data.get("inventory_qty"))
        except (TypeError, ValueError):
            raise ServiceError("INVALID_INVENTORY")

    def _category_from(self, data: Dict[str, Any]) -> Optional[str]:
        cat = str(data.get("category") or "").strip().lower()
        if not cat:
            return None
        if cat not in CATEGORIES:
            raise ServiceError("INVALID_CATEGORY", details=list(CATEGORIES))
        return cat

    def create_product(self, data: Dict[str, Any]) -> Dict[str, Any]:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ServiceError("INVALID_INPUT", details="name is required")
        price = self._price_from(data) or 0
        if price < 0:
            raise ServiceError("INVALID_PRICE")
        inventory = self._inventory_from(data) or 0
        if inventory < 0:
            raise ServiceError("INVALID_INVENTORY")
        product = StoreProduct(
            name=name,
            category=self._category_from(data),
            color=str(data.get("color") or "").strip() or None,
            size=str(data.get("size") or "").strip() or None,
            price_cents=price,
            currency=str(data.get("currency") or "EGP").strip().upper()[:3] or "EGP",
            inventory_qty=inventory,
            is_active=bool(data.get("is_active", True)),
            image_url=str(data.get("image_url") or "").strip() or None,
        )
        self.db.add(product)
        self.commit()
        logger.info(f"Product {product.id} created")
        return {"ok": True, "product": product_dict(product)}

    def update_product(self, product_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
        if not product_id:
            raise ServiceError("MISSING_ID")
        product = self.db.get(StoreProduct, int(product_id))
        if product is None:
            raise NotFoundError()

        patch: Dict[str, Any] = {}
        if "name" in data:
            name = str(data.get("name") or "").strip()
            if not name:
                raise ServiceError("INVALID_INPUT", details="name cannot be empty")
            patch["name"] = name
        price = self._price_from(data)
        if price is not None:
            if price < 0:
                raise ServiceError("INVALID_PRICE")
            patch["price_cents"] = price
        inventory = self._inventory_from(data)
        if inventory is not None:
            if inventory < 0:
                raise ServiceError("INVALID_INVENTORY")
            patch["inventory_qty"] = inventory
        if "category" in data:
            patch["category"] = self._category_from(data)
        for key in ("color", "size", "image_url"):
            if key in data:
                patch[key] = str(data.get(key) or "").strip() or None
        if data.get("currency"):
            patch["currency"] = str(data.get("currency")).strip().upper()[:3]
        if "is_active" in data:
            patch["is_active"] = bool(data.get("is_active"))
        if not patch:
            raise ServiceError("NO_FIELDS_TO_UPDATE")

        for key, val in patch.items():
            setattr(product, key, val)
        product.updated_at = self.now()
        self.commit()
        return {"ok": True, "product": product_dict(product)}

    def delete_product(self, product_id: Any) -> Dict[str, Any]:
        if not product_id:
            raise ServiceError("MISSING_ID")
        product = self.db.get(StoreProduct, int(product_id))
        if product is None:
            raise NotFoundError()
        self.db.delete(product)
        self.commit()
        return {"ok": True, "id": int(product_id)}

    # ========== Orders ==========

    def _merge_items(self, raw_items: Any) -> Dict[int, int]:
        if not isinstance(raw_items, list) or not raw_items:
            raise ServiceError("NO_ITEMS")
        merged: Dict[int, int] = {}
        for item in raw_items:
            if not isinstance(item, dict):
                continue
            try:
                pid = int(item.get("product_id"))
            except (TypeError, ValueError):
                continue
            qty = clamp_int(item.get("qty"), 1, 1)
            merged[pid] = merged.get(pid, 0) + qty
        if not merged:
            raise ServiceError("NO_VALID_ITEMS")
        return merged

    def create_order(self, user_id: str, role: str, data: Dict[str, Any]) -> Dict[str, Any]:
        if role not in CUSTOMER_ROLES:
            raise ServiceError("FORBIDDEN", 403)
        merged = self._merge_items(data.get("items"))

        products = {
            p.id: p
            for p in self.db.scalars(select(StoreProduct).where(StoreProduct.id.in_(list(merged)))).all()
        }
        missing = [pid for pid in merged if pid not in products]
        if missing:
            raise ServiceError("PRODUCTS_NOT_FOUND", details=missing)
        for pid in merged:
            if not products[pid].is_active:
                raise ServiceError("PRODUCT_INACTIVE", details=pid)

        payment = str(data.get("preferred_payment") or "").strip().lower()
        if payment not in PAYMENT_METHODS:
            payment = "cash"
        note = str(data.get("note") or "").strip() or None

        pids = list(merged)
        subtotals = [products[pid].price_cents * merged[pid] for pid in pids]
        pct = role_discount_percent(role)
        finals = prorate_lines(subtotals, pct)

        order = StoreOrder(
            owner_uid=user_id,
            user_id=user_id,
            member_id=user_id,
            created_by=user_id,
            status="pending",
            preferred_payment=payment,
            note=note,
            total_cents=sum(finals),
            discount_pct=pct,
        )
        for pid, final in zip(pids, finals):
            product = products[pid]
            order.items.append(
                StoreOrderItem(
                    product_id=pid,
                    name=product.name,
                    qty=merged[pid],
                    unit_price_cents=product.price_cents,
                    final_price_cents=final,
                    currency=product.currency or "EGP",
                )
            )
        self.db.add(order)
        self.commit()
        logger.info(f"Order {order.id} created by {user_id} ({len(pids)} lines, {pct}% off)")
        return {
            "ok": True,
            "id": order.id,
            "total_cents": order.total_cents,
            "discount_pct": pct,
            "status": "pending",
        }

    def list_orders(
        self, user_id: str, role: str, page: Any = 1, limit: Any = 20, view: Any = None
    ) -> Dict[str, Any]:
        p = clamp_int(page, 1, 1)
        lim = clamp_int(limit, 20, 1, 100)
        stmt = select(StoreOrder)
        if not (role == ROLE_SUPER_ADMIN and str(view or "") == "all"):
            stmt = stmt.where(StoreOrder.owner_uid == user_id)

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0
        orders = self.db.scalars(
            stmt.order_by(StoreOrder.created_at.desc(), StoreOrder.id.desc()).offset((p - 1) * lim).limit(lim)
        ).all()
        customers = {c.user_id: c for c in self.profiles.get_many({o.owner_uid for o in orders})}
        return {
            "ok": True,
            "page": p,
            "pageSize": lim,
            "total": int(total),
            "items": [order_dict(o, customers.get(o.owner_uid)) for o in orders],
        }

    def _shift_stock(self, order: StoreOrder, direction: int) -> None:
        """Move stock for every line: -1 takes items out, +1 puts them back."""
        for item in order.items:
            if item.product_id is None:
                continue
            stmt = update(StoreProduct).where(StoreProduct.id == item.product_id)
            if direction < 0:
                stmt = stmt.where(StoreProduct.inventory_qty >= item.qty).values(
                    inventory_qty=StoreProduct.inventory_qty - item.qty
                )
            else:
                stmt = stmt.values(inventory_qty=StoreProduct.inventory_qty + item.qty)
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            if direction < 0 and int(result.rowcount or 0) != 1:
                self.db.rollback()
                raise ServiceError(
                    "INSUFFICIENT_STOCK",
                    details={"product_id": item.product_id, "name": item.name},
                    rolled_back=True,
                )

    def update_order_status(self, actor_id: str, order_id: Any, status: Any) -> Dict[str, Any]:
        if order_id is None or str(order_id).strip() == "":
            raise ServiceError("MISSING_ORDER_ID")
        new_status = normalize_status(status)
        if new_status is None:
            raise ServiceError("INVALID_STATUS", details=list(ORDER_STATUSES))
        try:
            oid = int(order_id)
        except (TypeError, ValueError):
            raise NotFoundError("ORDER_NOT_FOUND")
        order = self.db.get(StoreOrder, oid)
        if order is None:
            raise NotFoundError("ORDER_NOT_FOUND")

        old_status = order.status
        if old_status == new_status:
            return {"ok": True, "id": order.id, "status": new_status, "unchanged": True}

        now = self.now()
        moved = self.db.execute(
            update(StoreOrder)
            .where(StoreOrder.id == order.id, StoreOrder.status == old_status)
            .values(status=new_status, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if int(moved.rowcount or 0) != 1:
            # Another writer moved the order since it was read
            self.db.rollback()
            raise ConflictError("ORDER_STATUS_CHANGED", details={"expected": old_status})

        if new_status == "ready":
            self._shift_stock(order, -1)
        elif old_status == "ready":
            self._shift_stock(order, +1)

        order.status = new_status
        order.updated_at = now
        if new_status in STATUS_NOTIFICATIONS:
            title, body = STATUS_NOTIFICATIONS[new_status]
            NotificationService(self.db).notify(
                order.owner_uid, title, body.format(id=order.id), KIND_ORDER_UPDATE, actor_id
            )
        self.commit()
        logger.info(f"Order {order.id}: {old_status} -> {new_status}")
        return {"ok": True, "id": order.id, "status": new_status, "previous_status": old_status}

    def add_order_message(self, sender_id: str, order_id: Any, body: Any) -> Dict[str, Any]:
        text = str(body or "").strip()
        if not order_id or not text:
            raise ServiceError("INVALID_INPUT")
        order = self.db.get(StoreOrder, int(order_id))
        if order is None:
            raise NotFoundError("ORDER_NOT_FOUND")
        msg = StoreOrderMessage(order_id=order.id, sender_id=sender_id, body=text)
        self.db.add(msg)
        self.commit()
        return {"ok": True, "id": msg.id}

    def list_order_messages(self, order_id: int) -> List[Dict[str, Any]]:
        rows = self.db.scalars(
            select(StoreOrderMessage)
            .where(StoreOrderMessage.order_id == int(order_id))
            .order_by(StoreOrderMessage.created_at, StoreOrderMessage.id)
        ).all()
        return [
            {
                "id": m.id,
                "sender_id": m.sender_id,
                "body": m.body,
                "created_at": m.created_at.isoformat() if m.created_at else None,
            }
            for m in rows
        ]
