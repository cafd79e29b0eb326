import pytest

from atom_portal.errors import ServiceError
from atom_portal.services.auth_service import AuthService, verify_password
from atom_portal.services.member_service import MemberService
from atom_portal.utils import add_days

pytestmark = pytest.mark.integration

PASSWORD = "correct-horse-1"


def test_create_member_issues_qr_and_invite(session, today, fake_email):
    svc = MemberService(session, today, email_service=fake_email)

    res = svc.create_member({"email": " Ana@Example.com ", "first_name": "Ana", "last_name": "Silva"})

    assert res["created"] is True
    assert res["qr_code"] == f"atom:{res['user_id']}"
    assert res["invite_link"].startswith("https://portal.example.com/auth/invite?token=")
    assert res["invite_sent"] is True
    assert fake_email.sent[0]["to"] == "ana@example.com"
    assert res["invite_link"] in fake_email.sent[0]["text"]


def test_create_member_without_provider_skips_invite_mail(session, today, email_factory):
    res = MemberService(session, today, email_service=email_factory(configured=False)).create_member(
        {"email": "bo@example.com"}
    )
    assert res["created"] is True
    assert res["invite_sent"] is False


def test_invite_mail_failure_does_not_fail_creation(session, today, email_factory):
    email = email_factory(fail_for={"bo@example.com"})
    res = MemberService(session, today, email_service=email).create_member({"email": "bo@example.com"})
    assert res["created"] is True
    assert res["invite_sent"] is False


def test_existing_email_patches_profile(session, today, make_profile, fake_email):
    existing = make_profile("member", email="ana@example.com", first_name="Ana", phone=None)
    svc = MemberService(session, today, email_service=fake_email)

    res = svc.create_member({"email": "ANA@example.com", "first_name": "Ana", "phone": "+20 100 000 0000"})

    assert res == {"ok": True, "created": False, "user_id": existing.user_id, "updated": ["phone"]}
    assert fake_email.sent == []


def test_create_member_email_checks(session, today, fake_email):
    svc = MemberService(session, today, email_service=fake_email)
    with pytest.raises(ServiceError) as exc:
        svc.create_member({"first_name": "Ana"})
    assert exc.value.code == "MISSING_EMAIL"
    with pytest.raises(ServiceError) as exc:
        svc.create_member({"email": "not-an-email"}, kiosk=True)
    assert exc.value.code == "INVALID_EMAIL"


def test_complete_invite_sets_password(session, today, fake_email):
    res = MemberService(session, today, email_service=fake_email).create_member({"email": "new@example.com"})
    token = res["invite_link"].split("token=")[1]
    auth = AuthService(session, today)

    with pytest.raises(ServiceError) as exc:
        auth.complete_invite(token, "short")
    assert exc.value.code == "WEAK_PASSWORD"

    profile = auth.complete_invite(token, PASSWORD)
    assert verify_password(PASSWORD, profile.password_hash)
    assert profile.invite_token is None
    assert auth.authenticate("NEW@example.com", PASSWORD).user_id == res["user_id"]
    with pytest.raises(ServiceError) as exc:
        auth.complete_invite(token, PASSWORD)
    assert exc.value.code == "INVALID_TOKEN"


def test_authenticate_failures(session, today, make_profile):
    make_profile("member", email="ana@example.com")
    make_profile("member", email="nopass@example.com", password=False)
    auth = AuthService(session, today)
    with pytest.raises(ServiceError) as exc:
        auth.authenticate("", PASSWORD)
    assert exc.value.code == "MISSING_CREDENTIALS"
    for email, password in [("ana@example.com", "wrong-password"), ("nopass@example.com", PASSWORD), ("x@y.z", PASSWORD)]:
        with pytest.raises(ServiceError) as exc:
            auth.authenticate(email, password)
        assert exc.value.code == "INVALID_CREDENTIALS"
        assert exc.value.status_code == 401


def test_search_stats_and_inactive(session, today, make_profile, make_subscription, fake_email):
    active = make_profile("member", first_name="Karim", phone="+20 111 222 3333")
    lapsed = make_profile("member", first_name="Laila")
    make_profile("coach", first_name="Karim")
    make_subscription(active)
    make_subscription(lapsed, start=add_days(today, -60), end=add_days(today, -2))
    svc = MemberService(session, today, email_service=fake_email)

    assert [p["user_id"] for p in svc.search("karim")] == [active.user_id]
    assert [p["user_id"] for p in svc.search("222 3333")] == [active.user_id]
    assert [p["user_id"] for p in svc.search(f"atom:{lapsed.user_id}")] == [lapsed.user_id]
    assert svc.stats() == {"ok": True, "total": 2, "active": 1, "inactive": 1}
    inactive = svc.inactive()
    assert [p["user_id"] for p in inactive["items"]] == [lapsed.user_id]


def test_find_by_email_returns_last_subscription(session, today, make_profile, make_subscription, fake_email):
    member = make_profile("member", email="ana@example.com")
    make_subscription(member, plan="3m", end=add_days(today, 90))
    svc = MemberService(session, today, email_service=fake_email)

    res = svc.find_by_email("ANA@example.com")

    assert res["profile"]["user_id"] == member.user_id
    assert res["last_subscription"]["plan"] == "3m"
    with pytest.raises(ServiceError) as exc:
        svc.find_by_email("ghost@example.com")
    assert exc.value.code == "MEMBER_NOT_FOUND"


def test_staff_list_is_coaching_roles(session, today, make_profile, fake_email):
    coach = make_profile("coach")
    assistant = make_profile("assistant_coach")
    make_profile("reception")
    make_profile("admin")
    ids = {p["user_id"] for p in MemberService(session, today, email_service=fake_email).staff_list()}
    assert ids == {coach.user_id, assistant.user_id}


def test_admin_role_rules(session, today, make_profile, fake_email):
    admin = make_profile("admin")
    other_admin = make_profile("admin")
    member = make_profile("member")
    actor = {"user_id": admin.user_id, "role": "admin"}
    svc = MemberService(session, today, email_service=fake_email)

    assert svc.set_role(actor, member.user_id, "Coach") == {"ok": True, "user_id": member.user_id, "role": "coach"}
    assert svc.set_role(actor, member.user_id, "coach")["unchanged"] is True
    for target, role in [(member.user_id, "admin"), (other_admin.user_id, "member")]:
        with pytest.raises(ServiceError) as exc:
            svc.set_role(actor, target, role)
        assert exc.value.status_code == 403
    with pytest.raises(ServiceError) as exc:
        svc.set_role(actor, member.user_id, "owner")
    assert exc.value.code == "INVALID_ROLE"
    with pytest.raises(ServiceError) as exc:
        svc.set_role(actor, "ghost", "member")
    assert exc.value.code == "USER_NOT_FOUND"


def test_super_admin_may_grant_admin(session, today, make_profile, fake_email):
    boss = make_profile("super_admin")
    member = make_profile("member")
    res = MemberService(session, today, email_service=fake_email).set_role(
        {"user_id": boss.user_id, "role": "super_admin"}, member.user_id, "admin"
    )
    assert res["role"] == "admin"
