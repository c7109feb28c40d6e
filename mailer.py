import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests

from config import Settings

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


class MailError(Exception):
    pass


class Mailer:
    """Outbound email through the provider named by ``EMAIL_PROVIDER``."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.provider = settings.email_provider

    def send(self, to_email: str, subject: str, html: str) -> None:
        if self.provider == "resend":
            self._send_resend(to_email, subject, html)
        elif self.provider == "smtp":
            self._send_smtp(to_email, subject, html)
        else:
            logger.info("Email to %s: %s\n%s", to_email, subject, html)
            return
        logger.info("Email sent to %s via %s: %s", to_email, self.provider, subject)

    def _send_resend(self, to_email: str, subject: str, html: str) -> None:
        if not self.settings.resend_api_key:
            raise MailError("RESEND_API_KEY is not set")
        try:
            resp = requests.post(
                RESEND_URL,
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
                json={"from": self.settings.smtp_from, "to": [to_email], "subject": subject, "html": html},
                timeout=10,
            )
        except requests.RequestException as e:
            raise MailError(str(e)) from e
        if not resp.ok:
            raise MailError(f"Resend API error {resp.status_code}: {resp.text}")

    def _send_smtp(self, to_email: str, subject: str, html: str) -> None:
        s = self.settings
        if not s.smtp_host:
            raise MailError("SMTP_HOST is not set")
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = s.smtp_from
        msg["To"] = to_email
        msg.attach(MIMEText(html, "html", "utf-8"))
        try:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=10) as server:
                server.starttls()
                if s.smtp_user:
                    server.login(s.smtp_user, s.smtp_password or "")
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailError(str(e)) from e


def reset_code_email(name: str, code: str) -> str:
    return (
        f"<p>{name}님, 비밀번호 재설정 인증번호입니다.</p>"
        f"<p style=\"font-size:24px;font-weight:bold\">{code}</p>"
        "<p>인증번호는 30분 동안 유효합니다.</p>"
    )
