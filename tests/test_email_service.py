import pytest

from atom_portal.services.email_service import RESEND_API_URL, EmailSendError, EmailService

pytestmark = pytest.mark.unit


class FakeResponse:
    def __init__(self, status_code, data):
        self.status_code = status_code
        self._data = data
        self.content = b"{}"

    def json(self):
        return self._data


class FakeHttp:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def post(self, url, headers, json, timeout):
        self.calls.append({"url": url, "headers": headers, "json": json})
        return self.response


def test_services_share_one_http_session():
    assert EmailService().http is EmailService().http


def test_send_posts_to_resend():
    http = FakeHttp(FakeResponse(200, {"id": "msg_1"}))
    svc = EmailService(api_key="re_test", mail_from="gym@example.com", session=http)

    assert svc.send("ana@example.com", "Hi", "Body") == {"id": "msg_1"}

    call = http.calls[0]
    assert call["url"] == RESEND_API_URL
    assert call["headers"]["Authorization"] == "Bearer re_test"
    assert call["json"] == {"from": "gym@example.com", "to": ["ana@example.com"], "subject": "Hi", "text": "Body"}


def test_send_errors():
    with pytest.raises(EmailSendError):
        EmailService(api_key="", mail_from="").send("ana@example.com", "Hi", "Body")

    http = FakeHttp(FakeResponse(422, {"message": "invalid from"}))
    with pytest.raises(EmailSendError) as exc:
        EmailService(api_key="re_test", mail_from="gym@example.com", session=http).send("a@b.co", "Hi", "Body")
    assert str(exc.value) == "invalid from"
