from datetime import date

import pytest

from atom_portal.errors import ServiceError
from atom_portal.services.expense_service import ExpenseService
from atom_portal.services.promotion_service import PromotionService
from atom_portal.services.reservation_service import ReservationService

pytestmark = pytest.mark.integration

PROMO = {"title": "New year", "discount_type": "percent", "discount_value": 15, "applies_to": ["membership"]}


# --- Promotions ---


def test_promotion_create_normalizes_targets(session, today):
    promos = PromotionService(session, today)
    res = promos.create("admin-1", dict(PROMO, applies_to="Dropin, membership", min_months="3"))
    p = res["promotion"]
    assert p["applies_to"] == ["dropin", "membership"]
    assert p["min_months"] == 3
    assert p["discount_value"] == 15.0
    assert p["is_active"] is True


@pytest.mark.parametrize(
    "patch, code",
    [
        ({"title": " "}, "INVALID_INPUT"),
        ({"discount_type": "bogo"}, "INVALID_DISCOUNT_TYPE"),
        ({"discount_value": 0}, "INVALID_DISCOUNT_VALUE"),
        ({"discount_value": "abc"}, "INVALID_DISCOUNT_VALUE"),
        ({"discount_value": 150}, "INVALID_DISCOUNT_VALUE"),
        ({"applies_to": ["gear"]}, "INVALID_APPLIES_TO"),
        ({"applies_to": []}, "INVALID_APPLIES_TO"),
        ({"min_months": "-1"}, "INVALID_MIN_MONTHS"),
        ({"start_date": "soon"}, "INVALID_DATE"),
        ({"start_date": "2025-03-01", "end_date": "2025-02-01"}, "INVALID_DATE_RANGE"),
    ],
)
def test_promotion_validation(session, today, patch, code):
    with pytest.raises(ServiceError) as exc:
        PromotionService(session, today).create("admin-1", dict(PROMO, **patch))
    assert exc.value.code == code


def test_amount_promotions_may_exceed_100(session, today):
    res = PromotionService(session, today).create("a", dict(PROMO, discount_type="amount", discount_value=250))
    assert res["promotion"]["discount_value"] == 250.0


def test_public_list_shows_only_live_promotions(session, today):
    promos = PromotionService(session, today)
    live = promos.create("a", dict(PROMO, start_date="2025-01-01", end_date="2025-01-31"))["promotion"]
    promos.create("a", dict(PROMO, title="Summer", start_date="2025-06-01"))
    promos.create("a", dict(PROMO, title="Old", end_date="2024-12-31"))
    promos.create("a", dict(PROMO, title="Hidden", is_active=False))

    assert [p["id"] for p in promos.list()] == [live["id"]]
    assert len(promos.list(include_inactive=True)) == 4


def test_promotion_update_and_delete(session, today):
    promos = PromotionService(session, today)
    p = promos.create("a", dict(PROMO, discount_type="amount", discount_value=500))["promotion"]

    # the range check for percent uses the stored type when only the value changes
    assert promos.update(p["id"], {"discount_value": 300})["promotion"]["discount_value"] == 300.0
    with pytest.raises(ServiceError) as exc:
        promos.update(p["id"], {})
    assert exc.value.code == "NO_FIELDS_TO_UPDATE"
    with pytest.raises(ServiceError) as exc:
        promos.update(p["id"], {"end_date": "2024-01-01", "start_date": "2024-02-01"})
    assert exc.value.code == "INVALID_DATE_RANGE"

    assert promos.delete(p["id"]) == {"ok": True, "id": p["id"]}
    with pytest.raises(ServiceError) as exc:
        promos.delete(p["id"])
    assert exc.value.status_code == 404


# --- Expenses ---


@pytest.fixture
def expenses(session, today):
    svc = ExpenseService(session, today)
    svc.create_category({"key": "rent", "label": "Rent", "group_name": "Fixed", "sort_order": 1})
    svc.create_category({"key": "mats", "label": "Mats", "sort_order": 2})
    return svc


def test_category_crud(expenses):
    with pytest.raises(ServiceError) as exc:
        expenses.create_category({"key": "Rent", "label": "Rent again"})
    assert exc.value.code == "CATEGORY_EXISTS"
    with pytest.raises(ServiceError) as exc:
        expenses.create_category({"key": "has space", "label": "x"})
    assert exc.value.code == "INVALID_INPUT"

    expenses.update_category("mats", {"is_active": False})
    assert [c["key"] for c in expenses.list_categories(include_inactive=False)] == ["rent"]
    assert [c["key"] for c in expenses.list_categories()] == ["rent", "mats"]
    with pytest.raises(ServiceError) as exc:
        expenses.update_category("mats", {})
    assert exc.value.code == "NO_FIELDS_TO_UPDATE"

    assert expenses.delete_category("mats")["key"] == "mats"
    with pytest.raises(ServiceError) as exc:
        expenses.delete_category("mats")
    assert exc.value.status_code == 404


def test_expense_defaults_to_today_and_filters(expenses, today):
    first = expenses.create("admin-1", {"category_key": "rent", "amount": "12000", "description": "January"})
    assert first["expense"]["date"] == today.isoformat()
    expenses.create("admin-1", {"date": "2024-12-20", "category_key": "mats", "amount": "850,50"})
    expenses.create("admin-1", {"date": "2025-01-10", "amount": 100})

    everything = expenses.list()
    assert everything["total"] == 12950.5
    assert [e["date"] for e in everything["items"]] == ["2025-01-15", "2025-01-10", "2024-12-20"]

    january = expenses.list(date_from="2025-01-01", date_to="2025-01-31")
    assert january["total"] == 12100.0
    assert expenses.list(category="mats")["total"] == 850.5


def test_expense_validation_and_delete(expenses):
    with pytest.raises(ServiceError) as exc:
        expenses.create("a", {"date": "yesterday", "amount": 1})
    assert exc.value.code == "INVALID_DATE"
    with pytest.raises(ServiceError) as exc:
        expenses.create("a", {"category_key": "coffee", "amount": 1})
    assert exc.value.code == "INVALID_CATEGORY"
    with pytest.raises(ServiceError) as exc:
        expenses.create("a", {"amount": "-5"})
    assert exc.value.code == "INVALID_AMOUNT"

    e = expenses.create("a", {"amount": "5"})["expense"]
    assert expenses.delete(e["id"]) == {"ok": True, "id": e["id"]}
    with pytest.raises(ServiceError) as exc:
        expenses.delete("nope")
    assert exc.value.status_code == 404


# --- Equipment reservations ---


def test_reservation_lifecycle(session, today, make_profile):
    desk = make_profile("reception")
    member = make_profile("member", first_name="Ana", last_name="Silva")
    reservations = ReservationService(session, today)

    res = reservations.create(
        desk.user_id, {"member_id": member.user_id, "item_name": "Gi A2", "size": "A2", "advance_amount": "500"}
    )
    r = res["reservation"]
    assert r["status"] == "reserved"
    assert r["advance_amount"] == 500.0

    assert reservations.update_status(r["id"], "Ready")["reservation"]["status"] == "ready"
    assert [x["id"] for x in reservations.list_own(member.user_id)] == [r["id"]]
    assert reservations.list_all("ready")[0]["member_name"] == "Ana Silva"
    assert reservations.list_all("collected") == []


def test_reservation_errors(session, today, make_profile):
    member = make_profile("member")
    reservations = ReservationService(session, today)
    with pytest.raises(ServiceError) as exc:
        reservations.create("desk", {"item_name": "Gi"})
    assert exc.value.code == "MISSING_MEMBER_ID"
    with pytest.raises(ServiceError) as exc:
        reservations.create("desk", {"member_id": "ghost", "item_name": "Gi"})
    assert exc.value.code == "MEMBER_NOT_FOUND"
    with pytest.raises(ServiceError) as exc:
        reservations.create("desk", {"member_id": member.user_id, "item_name": "Gi", "advance_amount": "-1"})
    assert exc.value.code == "INVALID_AMOUNT"
    with pytest.raises(ServiceError) as exc:
        reservations.update_status(1, "lost")
    assert exc.value.code == "INVALID_STATUS"
    with pytest.raises(ServiceError) as exc:
        reservations.update_status(999, "ready")
    assert exc.value.status_code == 404


def test_expense_dates_are_plain_dates(expenses):
    e = expenses.create("a", {"date": "2025-01-02", "amount": "1"})["expense"]
    assert date.fromisoformat(e["date"]) == date(2025, 1, 2)
