"""Email service: SMTP transport, templated sends and an in-process send queue.

SMTP settings come from the ``email`` settings category and fall back field by
field to the ``SMTP_*`` environment variables.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid
from enum import Enum
from pathlib import Path
from typing import Any, NamedTuple

import aiosmtplib
from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.config import get_settings
from app.models.setting import SettingCategory
from app.schemas.email import BulkEmailResult, EmailAttachment, EmailResult
from app.schemas.settings import DEFAULT_FROM_EMAIL, DEFAULT_SMTP_HOST, DEFAULT_SMTP_PORT
from app.services.settings_service import resolve_category

logger = logging.getLogger(__name__)

SMTP_TIMEOUT = 30


class EmailType(str, Enum):
    """Transactional email types."""

    WELCOME = "welcome"
    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"
    COURSE_ENROLLMENT = "course_enrollment"
    COURSE_COMPLETION = "course_completion"
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_REMINDER = "appointment_reminder"
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"
    TEST_COMPLETED = "test_completed"
    NEWSLETTER = "newsletter"


class AdminEvent(str, Enum):
    """Events an admin can be notified about."""

    NEW_USER = "new_user"
    NEW_ORDER = "new_order"
    APPOINTMENT = "appointment"


class EmailTemplate(NamedTuple):
    subject: str  # Jinja2 expression rendered with the email data
    template_name: str


EMAIL_TEMPLATES: dict[EmailType, EmailTemplate] = {
    EmailType.WELCOME: EmailTemplate(
        "Welcome to {{ site_name }}, {{ first_name }}!", "welcome.html"
    ),
    EmailType.EMAIL_VERIFICATION: EmailTemplate(
        "Verify Your Email Address - {{ site_name }}", "email_verification.html"
    ),
    EmailType.PASSWORD_RESET: EmailTemplate(
        "Reset Your Password", "password_reset.html"
    ),
    EmailType.COURSE_ENROLLMENT: EmailTemplate(
        "Welcome to {{ course_name }}!", "course_enrollment.html"
    ),
    EmailType.COURSE_COMPLETION: EmailTemplate(
        "Congratulations on Completing Your Course!", "course_completion.html"
    ),
    EmailType.APPOINTMENT_CONFIRMATION: EmailTemplate(
        "Appointment Confirmed with {{ consultant_name }}", "appointment_confirmation.html"
    ),
    EmailType.APPOINTMENT_REMINDER: EmailTemplate(
        "Appointment Reminder", "appointment_reminder.html"
    ),
    EmailType.PAYMENT_SUCCESS: EmailTemplate(
        "Payment Confirmation", "payment_success.html"
    ),
    EmailType.PAYMENT_FAILED: EmailTemplate(
        "Payment Failed", "payment_failed.html"
    ),
    EmailType.TEST_COMPLETED: EmailTemplate(
        "Your Test Results Are Ready", "test_completed.html"
    ),
    EmailType.NEWSLETTER: EmailTemplate(
        "{{ site_name }} Newsletter", "newsletter.html"
    ),
}


@dataclass(frozen=True)
class EmailTransport:
    """SMTP connection parameters plus the send and verify operations."""

    host: str
    port: int
    username: str | None = None
    password: str | None = None
    timeout: float = SMTP_TIMEOUT

    def _tls_kwargs(self) -> dict[str, Any]:
        # Port 465 = implicit TLS, anything else upgrades with STARTTLS when offered
        if self.port == 465:
            return {"use_tls": True, "start_tls": False}
        return {"use_tls": False, "start_tls": None}

    async def send_mail(
        self,
        from_address: str,
        to: list[str],
        subject: str,
        html: str,
        attachments: list[EmailAttachment] | None = None,
    ) -> str:
        """Send one HTML message and return its Message-ID."""
        msg = MIMEMultipart("mixed")
        msg["From"] = from_address
        msg["To"] = ", ".join(to)
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain=from_address.rsplit("@", 1)[-1].strip(">") or None)

        msg.attach(MIMEText(html, "html", "utf-8"))

        for attachment in attachments or []:
            maintype, _, subtype = attachment.content_type.partition("/")
            part = MIMEBase(maintype or "application", subtype or "octet-stream")
            part.set_payload(attachment.content)
            encoders.encode_base64(part)
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)

        await aiosmtplib.send(
            msg,
            hostname=self.host,
            port=self.port,
            username=self.username or None,
            password=self.password or None,
            recipients=to,
            timeout=self.timeout,
            **self._tls_kwargs(),
        )

        return msg["Message-ID"]

    async def verify(self) -> None:
        """Open an SMTP session, log in if credentials are set, and close it.

        Raises:
            aiosmtplib.SMTPException: If the server rejects the connection or login
        """
        smtp = aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=self.timeout,
            **self._tls_kwargs(),
        )
        await smtp.connect()
        try:
            if self.username and self.password:
                await smtp.login(self.username, self.password)
        finally:
            await smtp.quit()


async def create_email_transport() -> EmailTransport:
    """Build the SMTP transport from resolved email settings.

    Each empty field falls back to its environment variable, then to the
    built-in default. A transport is always returned.
    """
    email_settings = await resolve_category(SettingCategory.EMAIL)
    env = get_settings()

    return EmailTransport(
        host=email_settings.smtp_host or env.smtp_host or DEFAULT_SMTP_HOST,
        port=email_settings.smtp_port or env.smtp_port or DEFAULT_SMTP_PORT,
        username=email_settings.smtp_username or env.smtp_user or None,
        password=email_settings.smtp_password or env.smtp_pass or None,
    )


class EmailService:
    """Service for sending templated transactional emails."""

    def __init__(
        self,
        transport_factory: Callable[[], Awaitable[EmailTransport]] = create_email_transport,
    ):
        templates_path = Path(__file__).parent.parent / "templates" / "emails"
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(templates_path)),
            autoescape=select_autoescape(["html", "xml"], default_for_string=False),
        )
        self._transport_factory = transport_factory

    def _render_template(self, template_name: str, context: dict[str, Any]) -> str:
        template = self.jinja_env.get_template(template_name)
        return template.render(**context)

    def render(self, email_type: EmailType, context: dict[str, Any]) -> tuple[str, str]:
        """Render the subject and HTML body for an email type.

        A ``subject`` key in the context overrides the template subject.
        """
        email_template = EMAIL_TEMPLATES[email_type]
        subject = context.get("subject") or self.jinja_env.from_string(
            email_template.subject
        ).render(**context)
        return subject, self._render_template(email_template.template_name, context)

    async def _base_context(self) -> dict[str, Any]:
        general = await resolve_category(SettingCategory.GENERAL)
        return {
            "site_name": general.site_name,
            "contact_email": general.contact_email,
            "app_base_url": get_settings().app_base_url,
        }

    async def _deliver(
        self,
        to: str | list[str],
        subject: str,
        html: str,
        attachments: list[EmailAttachment] | None = None,
    ) -> str:
        email_settings = await resolve_category(SettingCategory.EMAIL)
        from_name = email_settings.from_name or "BnOverseas"
        from_email = email_settings.from_email or get_settings().from_email or DEFAULT_FROM_EMAIL

        recipients = to if isinstance(to, list) else [to]
        transport = await self._transport_factory()
        return await transport.send_mail(
            f'"{from_name}" <{from_email}>', recipients, subject, html, attachments
        )

    async def send_email(
        self,
        to: str | list[str],
        email_type: EmailType,
        data: dict[str, Any] | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> EmailResult:
        """Send a templated email. Failures are logged and returned, never raised."""
        try:
            context = {**await self._base_context(), **(data or {})}
            subject, html = self.render(email_type, context)
            message_id = await self._deliver(to, subject, html, attachments)

            logger.info(f"Email ({email_type.value}) sent to {to}: {message_id}")
            return EmailResult(success=True, message_id=message_id)

        except Exception as e:
            logger.error(f"Failed to send {email_type.value} email to {to}: {e}")
            return EmailResult(success=False, error="Failed to send email")

    async def send_bulk_email(
        self,
        recipients: list[str],
        email_type: EmailType,
        data: dict[str, Any] | None = None,
    ) -> list[BulkEmailResult]:
        """Send the same email to each recipient in turn."""
        results = []
        for recipient in recipients:
            result = await self.send_email(recipient, email_type, data)
            results.append(BulkEmailResult(recipient=recipient, **result.model_dump()))
        return results

    async def notify_admin(
        self,
        event: AdminEvent,
        title: str,
        body: str,
        action_url: str | None = None,
    ) -> EmailResult | None:
        """Email the configured admin address about an event.

        Returns None without sending when email notifications or the
        per-event flag are turned off.
        """
        notifications = await resolve_category(SettingCategory.NOTIFICATIONS)
        enabled_for_event = {
            AdminEvent.NEW_USER: notifications.notify_on_new_user,
            AdminEvent.NEW_ORDER: notifications.notify_on_new_order,
            AdminEvent.APPOINTMENT: notifications.notify_on_appointment,
        }[event]

        if not notifications.enable_email_notifications or not enabled_for_event:
            logger.debug(f"Admin notification for {event.value} is disabled, skipping")
            return None

        try:
            context = {
                **await self._base_context(),
                "event": event.value,
                "title": title,
                "body": body,
                "action_url": action_url,
            }
            html = self._render_template("admin_notification.html", context)
            message_id = await self._deliver(
                notifications.admin_email,
                f"[{context['site_name']}] {title}",
                html,
            )
            logger.info(f"Admin notification ({event.value}) sent: {message_id}")
            return EmailResult(success=True, message_id=message_id)

        except Exception as e:
            logger.error(f"Failed to send admin notification ({event.value}): {e}")
            return EmailResult(success=False, error="Failed to send email")


@dataclass
class QueuedEmail:
    to: str | list[str]
    email_type: EmailType
    data: dict[str, Any] = field(default_factory=dict)
    attachments: list[EmailAttachment] | None = None


class EmailQueue:
    """Bounded in-process email queue drained by a pool of workers.

    Queued emails live in memory only and are lost on restart.
    """

    def __init__(
        self,
        service: EmailService | None = None,
        maxsize: int = 1000,
        workers: int = 4,
    ):
        self._service = service
        self._queue: asyncio.Queue[tuple[int, QueuedEmail]] = asyncio.Queue(maxsize=maxsize)
        self._workers = workers
        self._sequence = 0

    @property
    def service(self) -> EmailService:
        return self._service or get_email_service()

    def add(
        self,
        to: str | list[str],
        email_type: EmailType,
        data: dict[str, Any] | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> None:
        """Queue an email.

        Raises:
            asyncio.QueueFull: If the queue is at capacity
        """
        self._queue.put_nowait(
            (self._sequence, QueuedEmail(to, email_type, data or {}, attachments))
        )
        self._sequence += 1

    def size(self) -> int:
        return self._queue.qsize()

    async def process(self) -> list[EmailResult]:
        """Send everything queued and return the results in submission order."""
        results: dict[int, EmailResult] = {}
        service = self.service

        async def worker() -> None:
            while True:
                try:
                    sequence, email = self._queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    results[sequence] = await service.send_email(
                        email.to, email.email_type, email.data, email.attachments
                    )
                finally:
                    self._queue.task_done()

        pool_size = min(self._workers, self._queue.qsize())
        await asyncio.gather(*(worker() for _ in range(pool_size)))

        logger.info(f"Processed {len(results)} queued emails")
        return [results[sequence] for sequence in sorted(results)]


# Singleton instances
_email_service: EmailService | None = None
_email_queue: EmailQueue | None = None


def get_email_service() -> EmailService:
    """Get the email service singleton."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


def get_email_queue() -> EmailQueue:
    """Get the email queue singleton."""
    global _email_queue
    if _email_queue is None:
        _email_queue = EmailQueue()
    return _email_queue


async def send_email(
    to: str | list[str],
    email_type: EmailType,
    data: dict[str, Any] | None = None,
    attachments: list[EmailAttachment] | None = None,
) -> EmailResult:
    return await get_email_service().send_email(to, email_type, data, attachments)


async def send_bulk_email(
    recipients: list[str],
    email_type: EmailType,
    data: dict[str, Any] | None = None,
) -> list[BulkEmailResult]:
    return await get_email_service().send_bulk_email(recipients, email_type, data)
