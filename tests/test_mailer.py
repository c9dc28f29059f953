import pytest
import requests
import resend

from storefront.errors import ApiError
from storefront.mailer import Mailer


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def send(params):
        sent.append((resend.api_key, params))
        return {"id": f"email_{len(sent)}"}

    monkeypatch.setattr(resend.Emails, "send", send)
    monkeypatch.setattr(resend, "api_key", None)
    return sent


def test_production_mail_goes_through_resend(settings, outbox):
    mailer = Mailer(settings.model_copy(update={"app_env": "production"}))
    mailer.send("shopper@example.com", "Your order", "<p>Shipped</p>", text="Shipped")

    assert len(outbox) == 1
    api_key, payload = outbox[0]
    assert api_key == "mailer-password"
    assert payload == {
        "from": "store@example.com",
        "to": ["shopper@example.com"],
        "subject": "Your order",
        "html": "<p>Shipped</p>",
        "text": "Shipped",
    }


def test_dedicated_api_key_takes_precedence(settings, outbox):
    mailer = Mailer(settings.model_copy(update={"app_env": "production", "resend_api_key": "re_live_key"}))
    mailer.send("shopper@example.com", "Hello", "<p>Hi</p>")
    api_key, payload = outbox[0]
    assert api_key == "re_live_key"
    assert "text" not in payload


def test_mail_is_only_logged_outside_production(settings, outbox):
    Mailer(settings).send("shopper@example.com", "Hello", "<p>Hi</p>")
    assert outbox == []


def test_delivery_failure_is_reported(settings, monkeypatch):
    def send(params):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(resend.Emails, "send", send)
    mailer = Mailer(settings.model_copy(update={"app_env": "production"}))
    with pytest.raises(ApiError) as exc:
        mailer.send("shopper@example.com", "Hello", "<p>Hi</p>")
    assert exc.value.status_code == 502


def test_response_without_id_is_a_failure(settings, monkeypatch):
    monkeypatch.setattr(resend.Emails, "send", lambda params: {"message": "domain not verified"})
    mailer = Mailer(settings.model_copy(update={"app_env": "production"}))
    with pytest.raises(ApiError):
        mailer.send("shopper@example.com", "Hello", "<p>Hi</p>")
