import pytest
from sqlalchemy import select

from atom_portal.database.orm_models import Notification
from atom_portal.errors import ServiceError
from atom_portal.services.notification_service import KIND_MEMBER_CONTACT, NotificationService

pytestmark = pytest.mark.integration


@pytest.fixture
def notifications(session, today):
    return NotificationService(session, today)


def _inbox(session, user_id):
    return session.scalars(select(Notification).where(Notification.recipient_id == user_id)).all()


def test_send_to_role_audience(notifications, session, make_profile):
    admin = make_profile("admin")
    m1 = make_profile("member")
    m2 = make_profile("member")
    coach = make_profile("coach")

    res = notifications.send(admin.user_id, {"audience": "all_members", "title": "Open mat", "body": "Saturday 10:00"})

    assert res == {"ok": True, "inserted": 2}
    assert len(_inbox(session, m1.user_id)) == 1
    assert len(_inbox(session, m2.user_id)) == 1
    assert _inbox(session, coach.user_id) == []


def test_all_staff_means_coaching_roles(notifications, make_profile):
    admin = make_profile("admin")
    make_profile("coach")
    make_profile("assistant_coach")
    make_profile("reception")
    res = notifications.send(admin.user_id, {"audience": "all_staff", "body": "Staff meeting"})
    assert res["inserted"] == 2


def test_custom_audience_merges_ids_and_emails(notifications, session, make_profile):
    admin = make_profile("admin")
    a = make_profile("member", email="a@example.com")
    b = make_profile("member")

    res = notifications.send(
        admin.user_id,
        {
            "audience": "custom",
            "user_ids": [b.user_id, "missing"],
            "emails": ["A@example.com", "nobody@example.com"],
            "body": "Belt test",
            "kind": "weird",
        },
    )

    assert res["inserted"] == 2
    assert _inbox(session, a.user_id)[0].kind == "info"


def test_send_errors(notifications, make_profile):
    admin = make_profile("admin")
    with pytest.raises(ServiceError) as exc:
        notifications.send(admin.user_id, {"audience": "all_members", "body": " "})
    assert exc.value.code == "MISSING_BODY"
    with pytest.raises(ServiceError) as exc:
        notifications.send(admin.user_id, {"audience": "everyone", "body": "hi"})
    assert exc.value.code == "INVALID_AUDIENCE"
    with pytest.raises(ServiceError) as exc:
        notifications.send(admin.user_id, {"audience": "custom", "emails": ["ghost@example.com"], "body": "hi"})
    assert exc.value.code == "NO_RECIPIENTS"


def test_inbox_and_mark_read(notifications, make_profile):
    admin = make_profile("admin")
    member = make_profile("member")
    other = make_profile("member")
    notifications.send(admin.user_id, {"audience": "all_members", "body": "one"})
    notifications.send(admin.user_id, {"audience": "custom", "user_ids": [member.user_id], "body": "two"})

    inbox = notifications.list_for(member.user_id)
    assert inbox["total"] == 2 and inbox["unread"] == 2
    ids = [n["id"] for n in inbox["items"]]
    other_id = notifications.list_for(other.user_id)["items"][0]["id"]

    res = notifications.mark_read(member.user_id, ids + [other_id, "junk"])

    assert res == {"ok": True, "count": 2}
    assert notifications.list_for(member.user_id, unread="1")["total"] == 0
    assert notifications.list_for(other.user_id)["unread"] == 1
    assert notifications.mark_read(member.user_id, ids)["count"] == 0
    with pytest.raises(ServiceError) as exc:
        notifications.mark_read(member.user_id, [])
    assert exc.value.code == "NO_IDS"


def test_sent_lists_broadcasts_only(notifications, make_profile):
    admin = make_profile("super_admin")
    member = make_profile("member", first_name="Ana", last_name="Silva")
    notifications.send(admin.user_id, {"audience": "all_members", "body": "Schedule change"})
    notifications.contact(member.user_id, {"message": "Can I freeze next month?"})

    sent = notifications.sent()

    assert sent["total"] == 1
    assert sent["items"][0]["recipient_name"] == "Ana Silva"


def test_contact_goes_to_super_admins(notifications, session, make_profile):
    boss = make_profile("super_admin")
    admin = make_profile("admin")
    member = make_profile("member", first_name="Ana", last_name="Silva")

    res = notifications.contact(member.user_id, {"subject": "Billing", "message": "Double charged"})

    assert res["inserted"] == 1
    note = _inbox(session, boss.user_id)[0]
    assert note.kind == KIND_MEMBER_CONTACT
    assert note.title == "Billing"
    assert "From: Ana Silva" in note.body
    assert f"Reply-to: {member.email}" in note.body
    assert _inbox(session, admin.user_id) == []


def test_contact_falls_back_to_admins(notifications, session, make_profile):
    admin = make_profile("admin")
    member = make_profile("member", first_name="Ana", last_name=None)

    notifications.contact(member.user_id, {"body": "Hello"})

    assert _inbox(session, admin.user_id)[0].title == "Message from Ana"


def test_contact_errors(notifications, make_profile):
    member = make_profile("member")
    with pytest.raises(ServiceError) as exc:
        notifications.contact(member.user_id, {"message": "hi"})
    assert exc.value.code == "NO_SUPER_ADMINS_OR_ADMINS"
    make_profile("admin")
    with pytest.raises(ServiceError) as exc:
        notifications.contact(member.user_id, {"message": "   "})
    assert exc.value.code == "MISSING_MESSAGE"
