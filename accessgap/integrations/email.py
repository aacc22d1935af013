"""Email alerting integration."""

import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Dict, Optional

import structlog

from accessgap.core.exceptions import AccessGapError

logger = structlog.get_logger(__name__)

SEVERITY_COLORS = {
    "Critical": "#b91c1c",
    "High": "#ea580c",
    "Medium": "#ca8a04",
    "Low": "#2563eb",
}


class EmailError(AccessGapError):
    """Raised when email sending fails."""

    pass


@dataclass
class FindingAlert:
    """Payload of a finding or reminder notification."""

    finding_name: str
    severity: str
    finding_type: str
    summary: str
    case_name: str
    subject_email: str


class EmailAlerter:
    """Sends finding alerts and reminders over SMTP.

    ``send_alert`` never raises: delivery problems are logged and reported
    as False so a notification can never block the operation that caused it.
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        smtp_user: str,
        smtp_password: str,
        from_address: str,
        use_tls: bool = True,
        use_ssl: bool = False,
        default_recipient: Optional[str] = None,
        timeout: float = 15.0,
    ):
        """Initialize email alerter.

        Args:
            smtp_host: SMTP server hostname
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
            from_address: From email address
            use_tls: Use STARTTLS
            use_ssl: Use SSL/TLS
            default_recipient: Recipient used when none is given per alert
            timeout: SMTP connection timeout in seconds
        """
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.from_address = from_address
        self.use_tls = use_tls
        self.use_ssl = use_ssl
        self.default_recipient = default_recipient
        self.timeout = timeout

        logger.info(
            "email_alerter_initialized",
            smtp_host=smtp_host,
            smtp_port=smtp_port,
            use_tls=use_tls,
        )

    def send_alert(self, alert: FindingAlert, recipient: Optional[str] = None) -> bool:
        """Send a finding alert.

        Args:
            alert: Alert payload
            recipient: Overrides the default recipient

        Returns:
            True if the message was handed to the SMTP server
        """
        to_address = recipient or self.default_recipient
        if not to_address:
            logger.warning("email_alert_no_recipient", finding=alert.finding_name)
            return False

        subject = f"[{alert.severity}] {alert.finding_type} for {alert.subject_email}"
        try:
            self._send(to_address, subject, self._create_body(alert))
        except EmailError as e:
            logger.error("email_alert_failed", finding=alert.finding_name, error=str(e))
            return False

        logger.info("email_alert_sent", finding=alert.finding_name, recipient=to_address)
        return True

    def _send(self, to_address: str, subject: str, html_body: str) -> None:
        msg = MIMEMultipart()
        msg["From"] = self.from_address
        msg["To"] = to_address
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html"))

        try:
            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout)

            if self.use_tls and not self.use_ssl:
                server.starttls()

            if self.smtp_user:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise EmailError(f"Failed to send email: {e}")

    @staticmethod
    def _create_body(alert: FindingAlert) -> str:
        color = SEVERITY_COLORS.get(alert.severity, "#374151")
        return f"""
<html>
  <body style="font-family: Arial, sans-serif;">
    <h2 style="color: {color};">{escape(alert.severity)}: {escape(alert.finding_type)}</h2>
    <p>{escape(alert.summary)}</p>
    <table>
      <tr><td><strong>Subject</strong></td><td>{escape(alert.subject_email)}</td></tr>
      <tr><td><strong>Case</strong></td><td>{escape(alert.case_name)}</td></tr>
      <tr><td><strong>Finding</strong></td><td>{escape(alert.finding_name)}</td></tr>
    </table>
  </body>
</html>
"""


def create_email_alerter_from_config(config: Dict[str, Any]) -> Optional[EmailAlerter]:
    """Create an EmailAlerter from ``notifications.email``, or None if disabled."""
    email_config = (config.get("notifications") or {}).get("email") or {}
    if not email_config.get("enabled", False):
        return None

    return EmailAlerter(
        smtp_host=email_config["smtp_host"],
        smtp_port=int(email_config.get("smtp_port", 587)),
        smtp_user=email_config.get("smtp_user", ""),
        smtp_password=email_config.get("smtp_password", ""),
        from_address=email_config.get("from_address", email_config.get("smtp_user", "")),
        use_tls=email_config.get("use_tls", True),
        use_ssl=email_config.get("use_ssl", False),
        default_recipient=email_config.get("recipient"),
    )
