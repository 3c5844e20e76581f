"""Test SMTP transport construction, templated sends and the email queue"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from app.schemas.email import EmailAttachment
from app.services import email_service
from app.services.email_service import (
    AdminEvent,
    EmailQueue,
    EmailService,
    EmailTransport,
    EmailType,
    create_email_transport,
)


class RecordingTransport:
    """Stands in for the SMTP transport and records each message."""

    def __init__(self, fail_for: set[str] | None = None, delays: dict[str, float] | None = None):
        self.sent: list[dict] = []
        self.fail_for = fail_for or set()
        self.delays = delays or {}

    async def send_mail(self, from_address, to, subject, html, attachments=None):
        recipient = to[0]
        await asyncio.sleep(self.delays.get(recipient, 0))
        if recipient in self.fail_for:
            raise ConnectionError("535 authentication failed")
        self.sent.append({
            "from": from_address,
            "to": to,
            "subject": subject,
            "html": html,
            "attachments": attachments,
        })
        return f"<{recipient}@test>"


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def service(transport):
    async def factory():
        return transport

    return EmailService(transport_factory=factory)


async def test_transport_uses_defaults():
    transport = await create_email_transport()

    assert transport.host == "smtp.gmail.com"
    assert transport.port == 587
    assert transport.username is None
    assert transport.password is None


async def test_transport_prefers_stored_settings(settings_store, env):
    env("SMTP_HOST", "smtp.env.example.com")
    env("SMTP_USER", "env-user")
    settings_store.set("email_smtpHost", "smtp.db.example.com")
    settings_store.set("email_smtpPort", 465)

    transport = await create_email_transport()

    assert transport.host == "smtp.db.example.com"
    assert transport.port == 465
    # Empty stored fields fall back to the environment
    assert transport.username == "env-user"


async def test_transport_fallback_matches_default_resolution(resolver, settings_store, env):
    """A store outage builds the same transport as an empty store would"""
    env("SMTP_HOST", "smtp.env.example.com")
    env("SMTP_PORT", "2525")
    env("SMTP_USER", "env-user")
    env("SMTP_PASS", "env-pass")

    from_empty_store = await create_email_transport()

    settings_store.fail = True
    resolver.clear_cache()
    from_environment = await create_email_transport()

    assert from_environment == from_empty_store
    assert from_environment == EmailTransport(
        host="smtp.env.example.com", port=2525, username="env-user", password="env-pass"
    )


def test_tls_mode_follows_port():
    assert EmailTransport("smtp.example.com", 465)._tls_kwargs() == {"use_tls": True, "start_tls": False}
    assert EmailTransport("smtp.example.com", 587)._tls_kwargs() == {"use_tls": False, "start_tls": None}


async def test_send_mail_builds_message(monkeypatch):
    send = AsyncMock()
    monkeypatch.setattr(email_service.aiosmtplib, "send", send)
    transport = EmailTransport("smtp.example.com", 465, "user", "pass")

    message_id = await transport.send_mail(
        '"BnOverseas" <noreply@bnoverseas.com>',
        ["student@example.com"],
        "Hello",
        "<p>Hi</p>",
        [EmailAttachment(filename="receipt.pdf", content=b"%PDF-1.4", content_type="application/pdf")],
    )

    message = send.await_args.args[0]
    kwargs = send.await_args.kwargs
    assert message_id.startswith("<") and message_id.endswith("@bnoverseas.com>")
    assert message["Subject"] == "Hello"
    assert message["To"] == "student@example.com"
    assert kwargs["hostname"] == "smtp.example.com"
    assert kwargs["use_tls"] is True
    assert kwargs["recipients"] == ["student@example.com"]

    parts = message.get_payload()
    assert parts[1].get_filename() == "receipt.pdf"
    assert parts[1].get_content_type() == "application/pdf"


def test_render_template_subject_and_body(service):
    subject, html = service.render(
        EmailType.WELCOME,
        {"site_name": "BnOverseas", "first_name": "Ana", "verification_required": False},
    )

    assert subject == "Welcome to BnOverseas, Ana!"
    assert "Hello Ana" in html
    assert "Verify Email" not in html


def test_subject_override(service):
    subject, _ = service.render(
        EmailType.NEWSLETTER,
        {"site_name": "BnOverseas", "subject": "Spring intake is open", "content": "<p>News</p>"},
    )

    assert subject == "Spring intake is open"


def test_every_email_type_renders(service):
    context = {
        "site_name": "BnOverseas",
        "first_name": "Ana",
        "course_name": "IELTS Prep",
        "consultant_name": "Ravi",
    }
    for email_type in EmailType:
        subject, html = service.render(email_type, context)
        assert subject
        assert "<html>" in html


def test_body_values_are_escaped(service):
    _, html = service.render(
        EmailType.WELCOME,
        {"site_name": "BnOverseas", "first_name": "<script>x</script>"},
    )

    assert "<script>x</script>" not in html
    assert "&lt;script&gt;" in html


async def test_send_email_success(service, transport, settings_store):
    settings_store.set("email_fromName", "BnOverseas Admissions")

    result = await service.send_email(
        "student@example.com", EmailType.PASSWORD_RESET, {"first_name": "Ana", "reset_url": "https://x/reset"}
    )

    assert result.success
    assert result.message_id == "<student@example.com@test>"
    assert transport.sent[0]["from"] == '"BnOverseas Admissions" <noreply@bnoverseas.com>'
    assert transport.sent[0]["subject"] == "Reset Your Password"


async def test_send_email_failure_is_returned():
    async def factory():
        return RecordingTransport(fail_for={"student@example.com"})

    result = await EmailService(transport_factory=factory).send_email(
        "student@example.com", EmailType.WELCOME, {"first_name": "Ana"}
    )

    assert not result.success
    assert result.error == "Failed to send email"
    assert "535" not in result.error


async def test_send_email_uses_environment_when_store_is_down(service, transport, settings_store, env):
    env("FROM_EMAIL", "hello@env.example.com")
    settings_store.fail = True

    result = await service.send_email("student@example.com", EmailType.WELCOME, {"first_name": "Ana"})

    assert result.success
    assert transport.sent[0]["from"] == '"BnOverseas" <hello@env.example.com>'


async def test_send_bulk_email_one_result_per_recipient():
    transport = RecordingTransport(fail_for={"b@example.com"})

    async def factory():
        return transport

    results = await EmailService(transport_factory=factory).send_bulk_email(
        ["a@example.com", "b@example.com", "c@example.com"],
        EmailType.NEWSLETTER,
        {"content": "<p>News</p>"},
    )

    assert [r.recipient for r in results] == ["a@example.com", "b@example.com", "c@example.com"]
    assert [r.success for r in results] == [True, False, True]


async def test_queue_returns_results_in_submission_order():
    recipients = [f"user{i}@example.com" for i in range(6)]
    # Earlier emails take longer so workers finish out of order
    transport = RecordingTransport(delays={r: 0.01 * (6 - i) for i, r in enumerate(recipients)})

    async def factory():
        return transport

    queue = EmailQueue(service=EmailService(transport_factory=factory), workers=3)
    for recipient in recipients:
        queue.add(recipient, EmailType.WELCOME, {"first_name": "Ana"})
    assert queue.size() == 6

    results = await queue.process()

    assert [r.message_id for r in results] == [f"<{r}@test>" for r in recipients]
    assert queue.size() == 0


async def test_queue_is_bounded(service):
    queue = EmailQueue(service=service, maxsize=1)
    queue.add("a@example.com", EmailType.WELCOME)

    with pytest.raises(asyncio.QueueFull):
        queue.add("b@example.com", EmailType.WELCOME)


async def test_empty_queue_processes_nothing(service):
    assert await EmailQueue(service=service).process() == []


async def test_notify_admin_sends_to_admin_address(service, transport, settings_store):
    settings_store.set("notifications_adminEmail", "ops@bnoverseas.com")

    result = await service.notify_admin(
        AdminEvent.NEW_USER, "New signup", "Ana just registered", "https://bnoverseas.com/admin/users"
    )

    assert result.success
    assert transport.sent[0]["to"] == ["ops@bnoverseas.com"]
    assert transport.sent[0]["subject"] == "[BnOverseas] New signup"
    assert "Ana just registered" in transport.sent[0]["html"]


async def test_notify_admin_respects_event_flag(service, transport, settings_store):
    settings_store.set("notifications_notifyOnNewOrder", False)

    assert await service.notify_admin(AdminEvent.NEW_ORDER, "Order", "Paid") is None
    assert transport.sent == []


async def test_notify_admin_respects_master_switch(service, transport, settings_store):
    settings_store.set("notifications_enableEmailNotifications", False)

    assert await service.notify_admin(AdminEvent.APPOINTMENT, "Booked", "Tomorrow") is None
    assert transport.sent == []
