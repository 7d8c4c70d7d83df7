"""
SMTP notifier adapter - Implements Notifier protocol.

Delivers multipart (text + HTML) verification emails over SMTP. Port 465
uses implicit TLS, any other port uses STARTTLS. smtplib is blocking, so
delivery runs in a worker thread; every connection carries a timeout.
"""

import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from src.adapters.smtp.templates import RenderedMessage, TemplateRenderer
from src.domain.exceptions import NotificationError

logger = logging.getLogger(__name__)


class SmtpNotifier:
    """Implements Notifier protocol via SMTP."""

    def __init__(
        self,
        renderer: TemplateRenderer,
        *,
        host: str,
        port: int,
        user: str,
        password: str,
        sender: str,
        timeout_seconds: float = 5.0,
    ) -> None:
        self._renderer = renderer
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._sender = sender
        self._timeout = timeout_seconds

    async def send(
        self, template_name: str, recipient: str, subject_username: str, token: str
    ) -> None:
        """
        Render and deliver a verification email.

        Raises:
            NotificationError: rendering failed or the SMTP server rejected delivery
        """
        message = self._renderer.render(template_name, subject_username, token)
        email = self._build(recipient, message)

        try:
            await asyncio.to_thread(self._deliver, email)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to %s: %s", recipient, e)
            raise NotificationError(f"Failed to send email to {recipient}", cause=e) from e

        logger.info("Sent %s to %s", template_name, recipient)

    def _build(self, recipient: str, message: RenderedMessage) -> EmailMessage:
        email = EmailMessage()
        email["Subject"] = message.subject
        email["From"] = self._sender
        email["To"] = recipient
        email.set_content(message.text)
        email.add_alternative(message.html, subtype="html")
        return email

    def _deliver(self, email: EmailMessage) -> None:
        context = ssl.create_default_context()
        if self._port == 465:
            with smtplib.SMTP_SSL(
                self._host, self._port, context=context, timeout=self._timeout
            ) as server:
                server.login(self._user, self._password)
                server.send_message(email)
        else:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as server:
                server.ehlo()
                server.starttls(context=context)
                server.login(self._user, self._password)
                server.send_message(email)
