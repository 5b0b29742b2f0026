"""Template rendering for notification emails using Jinja2.

Each template id (e.g. "inventory/stock-low") names a pair of files in the
mailer_service.notifications email_templates package directory:
"<id>.html.j2" and "<id>.txt.j2". Undefined variables raise instead of
rendering empty, so a payload that lost a field fails loudly.
"""

import logging
from typing import Any, Dict

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """Renders HTML and plain text bodies for a template id.

    Templates are cached by the Jinja2 environment across invocations.
    """

    def __init__(self, template_dir: str = "email_templates"):
        """Initialize template renderer with Jinja2 environment.

        Args:
            template_dir: Directory name within the mailer_service.notifications package
        """
        self.env = Environment(
            loader=PackageLoader("mailer_service.notifications", template_dir),
            autoescape=True,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["money"] = format_money
        self.env.filters["count_of"] = count_of

        logger.debug(f"Initialized TemplateRenderer with templates from {template_dir}")

    def render(self, template_id: str, context: Dict[str, Any]) -> Dict[str, str]:
        """Render both bodies of a template.

        Args:
            template_id: Catalog template id, e.g. "auth/activation-account"
            context: Template variables

        Returns:
            Dictionary with html_body and text_body

        Raises:
            NotificationTemplateError: If a template is missing or rendering fails
        """
        try:
            html_template = self.env.get_template(f"{template_id}.html.j2")
            text_template = self.env.get_template(f"{template_id}.txt.j2")

            html_body = html_template.render(context)
            text_body = text_template.render(context)

            logger.debug(f"Rendered templates for {template_id}")

            return {"html_body": html_body, "text_body": text_body}

        except TemplateError as e:
            error_msg = f"Template rendering failed for {template_id}: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e

    def has_template(self, template_id: str) -> bool:
        names = set(self.env.list_templates(extensions=["j2"]))
        return f"{template_id}.html.j2" in names and f"{template_id}.txt.j2" in names


def format_money(value: Any) -> str:
    """Format a number with thousands separators and two decimals."""
    try:
        return f"{float(value):,.2f}"
    except (TypeError, ValueError):
        return str(value)


def count_of(value: Any) -> Any:
    """Length of a list-valued counter, or the value itself when it is a number."""
    if isinstance(value, (list, tuple, set)):
        return len(value)
    return value
