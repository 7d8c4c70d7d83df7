"""
Console notifier adapter - Implements Notifier protocol.

This module provides a console-based implementation of the domain's
notifier port, logging verification tokens to stdout for demo purposes.
"""

import logging

from src.adapters.smtp.templates import TemplateRenderer

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """
    Implements Notifier protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints verification tokens to stdout.
    """

    def __init__(self, renderer: TemplateRenderer) -> None:
        self._renderer = renderer

    async def send(
        self, template_name: str, recipient: str, subject_username: str, token: str
    ) -> None:
        """
        Render the template and log it (simulates email delivery).

        The token is logged at INFO level to be visible in docker-compose logs;
        the rendered body is logged at DEBUG.

        Raises:
            NotificationError: template unknown or failed to render
        """
        message = self._renderer.render(template_name, subject_username, token)
        logger.info("[VERIFICATION] Email: %s Token: %s", recipient, token)
        logger.debug("[VERIFICATION] Subject: %s\n%s", message.subject, message.text)
