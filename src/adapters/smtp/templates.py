"""
Notification templates - Jinja2 rendering for verification messages.

Each template name maps to a ``<name>.txt`` and ``<name>.html`` pair in
the templates directory plus a subject line. Template selection by login
identity kind happens in the domain (see ``verification_template``).
"""

from dataclasses import dataclass
from pathlib import Path

from jinja2 import (
    Environment,
    FileSystemLoader,
    StrictUndefined,
    TemplateError,
    select_autoescape,
)

from src.domain.exceptions import NotificationError

TEMPLATES_DIR = Path(__file__).parent / "templates"

SUBJECTS = {
    "verification_email": "Manifold Account Verification",
}


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    text: str
    html: str


class TemplateRenderer:
    """Renders notification templates with the token and a verification link."""

    def __init__(
        self,
        public_base_url: str,
        token_ttl_seconds: int = 24 * 60 * 60,
        templates_dir: Path = TEMPLATES_DIR,
    ) -> None:
        self._public_base_url = public_base_url.rstrip("/")
        self._expires_in_hours = max(1, token_ttl_seconds // 3600)
        self._env = Environment(
            loader=FileSystemLoader(templates_dir),
            autoescape=select_autoescape(["html"]),
            undefined=StrictUndefined,
        )

    def verification_url(self, token: str) -> str:
        return f"{self._public_base_url}/verify?token={token}"

    def render(self, template_name: str, username: str, token: str) -> RenderedMessage:
        """
        Render the text and HTML bodies of a template.

        Raises:
            NotificationError: unknown template or rendering failure
        """
        subject = SUBJECTS.get(template_name)
        if subject is None:
            raise NotificationError(f"Unknown notification template '{template_name}'")

        context = {
            "username": username,
            "token": token,
            "verification_url": self.verification_url(token),
            "expires_in_hours": self._expires_in_hours,
        }
        try:
            text = self._env.get_template(f"{template_name}.txt").render(context)
            html = self._env.get_template(f"{template_name}.html").render(context)
        except TemplateError as e:
            raise NotificationError(
                f"Failed to render notification template '{template_name}'", cause=e
            ) from e

        return RenderedMessage(subject=subject, text=text, html=html)
