"""SMTP transport for rendered notification emails.

SMTPClient is a thin wrapper around smtplib handling TLS/SSL, authentication
and connection cleanup. SMTPMailer implements the Mailer capability on top of
it: render the template, build the MIME message, hand it to SMTP, and return
the Message-ID used to correlate the delivery record.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Callable, Dict, Optional

from mailer_service.config.environment import EnvironmentConfig

from .models import MailerResult, SMTPDeliveryError
from .templates import TemplateRenderer

logger = logging.getLogger(__name__)

IMPLICIT_TLS_PORT = 465


class SMTPClient:
    """Wrapper around smtplib for sending email messages.

    Port 465 uses implicit TLS; any other port uses plain SMTP upgraded with
    STARTTLS when use_tls is set. The connection is always closed.
    """

    def __init__(
        self,
        smtp_factory: Optional[Callable] = None,
        smtp_ssl_factory: Optional[Callable] = None,
        timeout: float = 30,
    ):
        """Initialize SMTP client with optional factory injection.

        Args:
            smtp_factory: Factory for SMTP instances (for mocking)
            smtp_ssl_factory: Factory for SMTP_SSL instances (for mocking)
            timeout: Socket timeout in seconds
        """
        self.smtp_factory = smtp_factory or smtplib.SMTP
        self.smtp_ssl_factory = smtp_ssl_factory or smtplib.SMTP_SSL
        self.timeout = timeout

    def send(
        self,
        message: EmailMessage,
        env_config: EnvironmentConfig,
        use_tls: bool = True,
    ) -> None:
        """Send an email message via SMTP.

        Raises:
            SMTPDeliveryError: If message delivery fails
        """
        smtp = None
        try:
            if env_config.smtp_port == IMPLICIT_TLS_PORT:
                logger.debug(
                    f"Connecting to {env_config.smtp_host}:{env_config.smtp_port} with implicit TLS"
                )
                smtp = self.smtp_ssl_factory(
                    env_config.smtp_host,
                    env_config.smtp_port,
                    timeout=self.timeout,
                    context=ssl.create_default_context(),
                )
            else:
                logger.debug(f"Connecting to {env_config.smtp_host}:{env_config.smtp_port}")
                smtp = self.smtp_factory(
                    env_config.smtp_host, env_config.smtp_port, timeout=self.timeout
                )

                if use_tls:
                    logger.debug("Upgrading connection with STARTTLS")
                    smtp.starttls(context=ssl.create_default_context())

            if env_config.smtp_user and env_config.smtp_pass:
                logger.debug(f"Authenticating as {env_config.smtp_user}")
                smtp.login(env_config.smtp_user, env_config.smtp_pass)

            smtp.send_message(message)
            logger.debug(f"Message {message['Message-ID']} accepted for {message['To']}")

        except smtplib.SMTPException as e:
            error_msg = f"SMTP error during message delivery: {e}"
            logger.error(error_msg)
            raise SMTPDeliveryError(error_msg) from e
        except OSError as e:
            error_msg = f"Network error during SMTP connection: {e}"
            logger.error(error_msg)
            raise SMTPDeliveryError(error_msg) from e
        finally:
            if smtp is not None:
                try:
                    smtp.quit()
                except (smtplib.SMTPException, OSError) as e:
                    logger.warning(f"Error closing SMTP connection: {e}")


def build_sender_address(env_config: EnvironmentConfig) -> str:
    """Build the 'From' header, e.g. "Ally 360 <no-reply@ally360.com>"."""
    return formataddr((env_config.smtp_sender_name, env_config.smtp_from))


class SMTPMailer:
    """Mailer capability backed by Jinja2 templates and SMTP.

    Args:
        env_config: SMTP host, port, credentials and sender identity
        renderer: Template renderer (creates default if None)
        client: SMTP client (creates default if None)
        use_tls: STARTTLS for non-465 ports
        provider: Label stored on delivery records
    """

    def __init__(
        self,
        env_config: EnvironmentConfig,
        renderer: Optional[TemplateRenderer] = None,
        client: Optional[SMTPClient] = None,
        use_tls: bool = True,
        provider: str = "smtp",
    ):
        self.env_config = env_config
        self.renderer = renderer or TemplateRenderer()
        self.client = client or SMTPClient()
        self.use_tls = use_tls
        self.provider = provider

    def send(
        self, to: str, subject: str, template_id: str, context: Dict[str, Any]
    ) -> MailerResult:
        """Render and send one message.

        Raises:
            NotificationTemplateError: If the template cannot be rendered
            SMTPDeliveryError: If SMTP delivery fails
        """
        rendered = self.renderer.render(template_id, context)
        message = self.build_message(to, subject, rendered["html_body"], rendered["text_body"])

        self.client.send(message, self.env_config, use_tls=self.use_tls)

        return MailerResult(message_id=message["Message-ID"], provider=self.provider)

    def build_message(self, to: str, subject: str, html_body: str, text_body: str) -> EmailMessage:
        """Multipart/alternative message with a fresh Message-ID."""
        domain = self.env_config.smtp_from.rpartition("@")[2] or None

        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = build_sender_address(self.env_config)
        message["To"] = to
        message["Message-ID"] = make_msgid(domain=domain)
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")
        return message
