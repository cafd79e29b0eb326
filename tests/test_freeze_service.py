import pytest
from sqlalchemy import func, select

from atom_portal.database.orm_models import FreezeRequest
from atom_portal.errors import ServiceError
from atom_portal.services.freeze_service import FreezeService

pytestmark = pytest.mark.integration

REASON = "Travelling for work"


@pytest.fixture
def freezes(session, today):
    return FreezeService(session, today)


def test_create_and_list_own(freezes, make_profile):
    member = make_profile("member")

    res = freezes.create(member.user_id, {"requested_start_date": "2025-02-01", "reason": f"  {REASON} "})

    req = res["request"]
    assert req["status"] == "pending"
    assert req["reason"] == REASON
    assert [r["id"] for r in freezes.list_own(member.user_id)] == [req["id"]]


@pytest.mark.parametrize(
    "payload, code",
    [
        ({"requested_start_date": "01/02/2025", "reason": REASON}, "INVALID_DATE"),
        ({"requested_start_date": "2025-01-14", "reason": REASON}, "DATE_IN_PAST"),
        ({"requested_start_date": "2025-01-15", "reason": "injury"}, "REASON_TOO_SHORT"),
    ],
)
def test_create_validation(freezes, make_profile, payload, code):
    member = make_profile("member")
    with pytest.raises(ServiceError) as exc:
        freezes.create(member.user_id, payload)
    assert exc.value.code == code
    assert exc.value.status_code == 422


def test_one_pending_request_per_member(freezes, make_profile):
    member = make_profile("member")
    freezes.create(member.user_id, {"requested_start_date": "2025-02-01", "reason": REASON})
    with pytest.raises(ServiceError) as exc:
        freezes.create(member.user_id, {"requested_start_date": "2025-03-01", "reason": REASON})
    assert exc.value.code == "PENDING_REQUEST_EXISTS"
    assert exc.value.status_code == 409


def test_pending_request_uniqueness_holds_across_sessions(two_sessions, seed_profile, today, monkeypatch):
    first, second = two_sessions
    member = seed_profile(first)
    payload = {"requested_start_date": "2025-02-01", "reason": REASON}
    FreezeService(first, today).create(member.user_id, payload)

    # The second writer checked before the first one committed
    late = FreezeService(second, today)
    monkeypatch.setattr(late, "_pending_for", lambda member_id: None)
    with pytest.raises(ServiceError) as exc:
        late.create(member.user_id, payload)

    assert exc.value.code == "PENDING_REQUEST_EXISTS"
    assert exc.value.status_code == 409
    pending = second.scalar(
        select(func.count()).select_from(FreezeRequest).where(FreezeRequest.status == "pending")
    )
    assert pending == 1


def test_admin_approves_pending_request(freezes, make_profile):
    admin = make_profile("admin")
    member = make_profile("member", first_name="Ana", last_name="Silva")
    req = freezes.create(member.user_id, {"requested_start_date": "2025-02-01", "reason": REASON})["request"]

    res = freezes.process(admin.user_id, req["id"], {"action": "approve", "admin_note": "Enjoy the trip"})

    assert res["request"]["status"] == "approved"
    assert res["request"]["processed_by"] == admin.user_id
    assert res["request"]["processed_at"] is not None
    assert res["request"]["admin_note"] == "Enjoy the trip"
    listed = freezes.list_all("approved")
    assert listed[0]["member_name"] == "Ana Silva"
    assert freezes.list_all("pending") == []

    with pytest.raises(ServiceError) as exc:
        freezes.process(admin.user_id, req["id"], {"status": "denied"})
    assert exc.value.code == "NOT_PENDING"


def test_process_errors(freezes, make_profile):
    admin = make_profile("admin")
    with pytest.raises(ServiceError) as exc:
        freezes.process(admin.user_id, 1, {"action": "maybe"})
    assert exc.value.code == "INVALID_ACTION"
    with pytest.raises(ServiceError) as exc:
        freezes.process(admin.user_id, 999, {"action": "deny"})
    assert exc.value.status_code == 404
    with pytest.raises(ServiceError) as exc:
        freezes.list_all("archived")
    assert exc.value.code == "INVALID_STATUS"


def test_member_cancels_only_own_pending_request(freezes, make_profile):
    member = make_profile("member")
    stranger = make_profile("member")
    req = freezes.create(member.user_id, {"requested_start_date": "2025-02-01", "reason": REASON})["request"]

    with pytest.raises(ServiceError) as exc:
        freezes.cancel(stranger.user_id, req["id"])
    assert exc.value.status_code == 404

    assert freezes.cancel(member.user_id, req["id"])["request"]["status"] == "canceled"
    with pytest.raises(ServiceError) as exc:
        freezes.cancel(member.user_id, req["id"])
    assert exc.value.code == "NOT_PENDING"

    # a canceled request no longer blocks a new one
    freezes.create(member.user_id, {"requested_start_date": "2025-02-10", "reason": REASON})
