"""
Meal reminder delivery.

``SmtpReminderSender`` sends plain-text email through smtplib; the blocking
session runs in a worker thread. ``ConsoleReminderSender`` renders the same
content with rich, for development and demos.
"""

import asyncio
import contextlib
import smtplib
from email.mime.text import MIMEText
from uuid import uuid4

import structlog
from rich.console import Console
from rich.panel import Panel

from telemetry.config import NotificationConfig
from telemetry.domain.models import MealReminderMessage
from telemetry.errors import ExternalDependencyError
from telemetry.services.result import Result

logger = structlog.get_logger(__name__)


def reminder_subject(message: MealReminderMessage) -> str:
    return f"Meal Reminder: {message.meal_name}"


def reminder_body(first_name: str, message: MealReminderMessage) -> str:
    lines = [
        f"Hello {first_name},",
        "",
        f"It's almost time for your {message.meal_type.value}: {message.meal_name}.",
        f"Scheduled for {message.scheduled_time.strftime('%A %d %B, %H:%M')}.",
    ]
    if message.items:
        lines += ["", "Today's items:"]
        for item in message.items:
            detail = f"- {item.name}: {item.quantity:g} {item.unit}"
            if item.calories:
                detail += f" ({item.calories:g} kcal)"
            lines.append(detail)
    lines += ["", "Stay healthy!"]
    return "\n".join(lines)


class SmtpReminderSender:
    """Implements ``ReminderSender`` over SMTP."""

    def __init__(self, config: NotificationConfig) -> None:
        if not (config.smtp_host and config.sender):
            raise ValueError("SMTP sender requires smtp_host and sender")
        self.config = config
        self.logger = logger.bind(component="smtp_reminder_sender")

    def _smtp_send(self, to: str, subject: str, body: str) -> str:
        """Blocking SMTP send, run via ``asyncio.to_thread``. Returns the Message-ID."""
        sender = self.config.sender or ""
        message_id = f"<{uuid4().hex}@{self.config.smtp_host}>"

        msg = MIMEText(body)
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to
        msg["Message-ID"] = message_id

        server = smtplib.SMTP(
            self.config.smtp_host or "",
            self.config.smtp_port,
            timeout=self.config.timeout_seconds,
        )
        try:
            if self.config.use_tls:
                server.starttls()
            if self.config.smtp_user and self.config.smtp_password:
                server.login(self.config.smtp_user, self.config.smtp_password)
            server.sendmail(sender, [to], msg.as_string())
        finally:
            # The message is already accepted once sendmail returns.
            with contextlib.suppress(smtplib.SMTPException, OSError):
                server.quit()
        return message_id

    async def send_meal_reminder(
        self, email: str, first_name: str, message: MealReminderMessage
    ) -> Result[str, ExternalDependencyError]:
        subject = reminder_subject(message)
        try:
            message_id = await asyncio.to_thread(
                self._smtp_send, email, subject, reminder_body(first_name, message)
            )
        except (smtplib.SMTPException, OSError) as e:
            return Result.err(ExternalDependencyError("smtp", str(e)))

        self.logger.debug("reminder_email_sent", to=email, subject=subject)
        return Result.ok(message_id)


class ConsoleReminderSender:
    """Implements ``ReminderSender`` by printing the reminder to the terminal."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()
        self.delivered: list[tuple[str, MealReminderMessage]] = []

    async def send_meal_reminder(
        self, email: str, first_name: str, message: MealReminderMessage
    ) -> Result[str, ExternalDependencyError]:
        self.console.print(
            Panel(
                reminder_body(first_name, message),
                title=f"📧 {reminder_subject(message)}",
                subtitle=email,
                border_style="green",
            )
        )
        self.delivered.append((email, message))
        return Result.ok(f"console-{len(self.delivered)}")
