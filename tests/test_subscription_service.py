from datetime import date

import pytest
from sqlalchemy import select

from atom_portal.database.orm_models import AuditLog, Subscription, SubscriptionPayment
from atom_portal.errors import ServiceError
from atom_portal.services.subscription_service import SubscriptionService, effective_status, normalize_plan
from atom_portal.utils import add_days

pytestmark = pytest.mark.integration


@pytest.fixture
def svc(session, today):
    return SubscriptionService(session, today)


def test_plan_aliases():
    assert normalize_plan("Monthly") == "1m"
    assert normalize_plan("annual") == "12m"
    assert normalize_plan("sessions") == "sessions"
    assert normalize_plan("weekly") is None


def test_create_time_plan_uses_month_arithmetic(svc, make_profile):
    admin = make_profile("admin")
    member = make_profile("member")

    res = svc.create(admin.user_id, {"memberId": member.user_id, "plan": "1m", "start_date": "2025-01-31", "amount": "900"})

    sub = res["subscription"]
    assert sub["subscription_type"] == "time"
    assert sub["end_date"] == "2025-02-28"
    assert sub["amount"] == 900.0
    assert sub["status"] == "active"


def test_create_time_plan_requires_start_date(svc, make_profile):
    member = make_profile("member")
    with pytest.raises(ServiceError) as exc:
        svc.create(None, {"memberId": member.user_id, "plan": "3m"})
    assert exc.value.code == "START_DATE_REQUIRED"


def test_create_session_pack_defaults(svc, today, make_profile):
    member = make_profile("member")

    res = svc.create(None, {"member_qr": member.qr_code, "plan": "sessions", "sessions_total": 25})

    sub = res["subscription"]
    assert sub["subscription_type"] == "sessions"
    assert sub["start_date"] == today.isoformat()
    assert sub["end_date"] == add_days(today, 45).isoformat()
    assert sub["sessions_total"] == 10
    assert sub["sessions_remaining"] == 10


@pytest.mark.parametrize(
    "requested, expected",
    [(0, 1), (-3, 1), ("4", 4), (99, 10), ("", 10), (None, 10)],
)
def test_session_pack_size_is_clamped(svc, make_profile, requested, expected):
    member = make_profile("member")
    res = svc.create(None, {"memberId": member.user_id, "plan": "sessions", "sessions_total": requested})
    assert res["subscription"]["sessions_total"] == expected


def test_create_resolves_member_by_email(svc, make_profile):
    member = make_profile("member", email="Ana@Example.com")
    res = svc.create(None, {"member_email": "ana@example.com", "plan": "1m", "start_date": "2025-01-01"})
    assert res["subscription"]["member_id"] == member.user_id


@pytest.mark.parametrize(
    "payload, code",
    [
        ({"plan": "weekly"}, "INVALID_PLAN"),
        ({"plan": "1m", "start_date": "2025-01-01"}, "INVALID_MEMBER_ID"),
    ],
)
def test_create_rejects_bad_input(svc, payload, code):
    with pytest.raises(ServiceError) as exc:
        svc.create(None, payload)
    assert exc.value.code == code


def test_create_rejects_negative_amount(svc, make_profile):
    member = make_profile("member")
    with pytest.raises(ServiceError) as exc:
        svc.create(None, {"memberId": member.user_id, "plan": "1m", "start_date": "2025-01-01", "amount": "-1"})
    assert exc.value.code == "INVALID_AMOUNT"


def test_renew_without_history_creates_new(svc, session, today, make_profile):
    member = make_profile("member")

    res = svc.apply_action(None, {"member_id": member.user_id, "action": "renew", "plan": "3m", "amount": 2400})

    assert res["mode"] == "new"
    assert res["subscription"]["start_date"] == today.isoformat()
    assert res["subscription"]["end_date"] == "2025-04-15"
    payment = session.scalars(select(SubscriptionPayment)).one()
    assert payment.method == "cash"
    assert res["payment_id"] == payment.id


def test_renew_extends_from_later_of_end_and_start(svc, today, make_profile, make_subscription):
    member = make_profile("member")
    sub = make_subscription(member, plan="1m", start=date(2025, 1, 1), end=date(2025, 2, 1))

    res = svc.apply_action(None, {"member_id": member.user_id, "action": "renew", "plan": "1m"})

    assert res["mode"] == "extend"
    assert res["subscription"]["id"] == sub.id
    assert res["subscription"]["end_date"] == "2025-03-01"
    assert res["payment_id"] is None


def test_renew_of_lapsed_plan_extends_from_start(svc, make_profile, make_subscription):
    member = make_profile("member")
    make_subscription(member, plan="1m", start=date(2024, 10, 1), end=date(2024, 11, 1))

    res = svc.apply_action(
        None, {"member_id": member.user_id, "action": "renew", "plan": "1m", "start_date": "2025-01-20"}
    )

    assert res["subscription"]["end_date"] == "2025-02-20"
    assert res["subscription"]["effective_status"] == "active"


def test_pause_and_resume(svc, make_profile, make_subscription):
    member = make_profile("member")
    make_subscription(member)

    paused = svc.apply_action(None, {"member_id": member.user_id, "action": "pause"})
    assert paused["subscription"]["status"] == "paused"
    resumed = svc.apply_action(None, {"member_id": member.user_id, "action": "resume"})
    assert resumed["subscription"]["status"] == "active"


def test_pause_without_subscription(svc, make_profile):
    member = make_profile("member")
    with pytest.raises(ServiceError) as exc:
        svc.apply_action(None, {"member_id": member.user_id, "action": "pause"})
    assert exc.value.code == "NO_SUBSCRIPTION"
    assert exc.value.status_code == 404


def test_action_errors(svc, make_profile):
    member = make_profile("member")
    with pytest.raises(ServiceError) as exc:
        svc.apply_action(None, {"action": "renew"})
    assert exc.value.code == "MISSING_MEMBER_ID"
    with pytest.raises(ServiceError) as exc:
        svc.apply_action(None, {"member_id": "nobody", "action": "renew"})
    assert exc.value.code == "MEMBER_NOT_FOUND"
    with pytest.raises(ServiceError) as exc:
        svc.apply_action(None, {"member_id": member.user_id, "action": "refund"})
    assert exc.value.code == "INVALID_ACTION"


def test_add_dropin_increments_live_pack(svc, make_profile, make_subscription):
    member = make_profile("member")
    pack = make_subscription(member, plan="sessions", sessions_total=4, sessions_used=3)

    res = svc.apply_action(None, {"member_id": member.user_id, "action": "add_dropin", "sessions": 2})

    assert res["mode"] == "increment"
    assert res["subscription"]["id"] == pack.id
    assert res["subscription"]["sessions_total"] == 6
    assert res["subscription"]["sessions_remaining"] == 3


def test_add_dropin_opens_new_pack_when_previous_lapsed(svc, today, make_profile, make_subscription):
    member = make_profile("member")
    make_subscription(member, plan="sessions", start=date(2024, 10, 1), end=date(2024, 11, 15), sessions_total=5)

    res = svc.apply_action(None, {"member_id": member.user_id, "action": "add_dropin"})

    assert res["mode"] == "new"
    assert res["subscription"]["sessions_total"] == 5
    assert res["subscription"]["start_date"] == today.isoformat()


def test_expire_overdue_persists_effective_status(svc, session, today, make_profile, make_subscription):
    member = make_profile("member")
    old = make_subscription(member, start=date(2024, 11, 1), end=add_days(today, -1))
    current = make_subscription(member)
    assert effective_status(old, today) == "expired"

    res = svc.expire_overdue("admin-1")

    assert res == {"ok": True, "count": 1}
    session.expire_all()
    assert session.get(Subscription, old.id).status == "expired"
    assert session.get(Subscription, current.id).status == "active"
    assert session.scalars(select(AuditLog).where(AuditLog.action == "EXPIRE")).first() is not None
