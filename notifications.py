"""
Outgoing user notifications.

Delivery is behind the ``Mailer`` interface; the app receives an instance
from its factory. ``SmtpMailer`` delivers through the configured SMTP
server. ``LoggingMailer`` writes messages to the log and keeps them in
``outbox``; it is only used in development and tests.
"""
import logging
import smtplib
from email.mime.text import MIMEText
from typing import List, NamedTuple, Optional

from config import Settings

logger = logging.getLogger(__name__)

LOCAL_ENVIRONMENTS = ("development", "test")


class Message(NamedTuple):
    to: str
    subject: str
    body: str


class Mailer:
    def send(self, to: str, subject: str, body: str) -> None:
        raise NotImplementedError


class LoggingMailer(Mailer):
    def __init__(self):
        self.outbox: List[Message] = []

    def send(self, to: str, subject: str, body: str) -> None:
        self.outbox.append(Message(to, subject, body))
        logger.info(f"Mail to {to}: {subject}")


class SmtpMailer(Mailer):

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def send(self, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain")
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        try:
            with smtplib.SMTP(self.host, self.port) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password or "")
                server.sendmail(self.sender, [to], msg.as_string())
        except smtplib.SMTPException as e:
            logger.error(f"Mail to {to} failed: {e}")
            raise
        logger.info(f"Mail sent to {to}: {subject}")


def build_mailer(settings: Settings) -> Mailer:
    if settings.SMTP_HOST:
        return SmtpMailer(
            settings.SMTP_HOST,
            settings.SMTP_PORT,
            settings.SMTP_FROM,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
        )
    if settings.ENVIRONMENT.lower() not in LOCAL_ENVIRONMENTS:
        raise ValueError(f"SMTP_HOST must be set when ENVIRONMENT is {settings.ENVIRONMENT}")
    logger.warning("SMTP_HOST not set; outgoing mail is only logged")
    return LoggingMailer()


def send_welcome_email(mailer: Mailer, user: dict) -> None:
    name = user.get("profile", {}).get("ownerName", "")
    body = (
        f"Hello {name},\n\n"
        f"Your account has been created.\n"
        f"User ID: {user.get('uniqueid')}\n"
        f"Company: {user.get('profile', {}).get('companyName', '')}\n"
    )
    mailer.send(user["email"], "Welcome to Transport Entries", body)


def send_password_reset_email(mailer: Mailer, email: str, name: str, token: str, expire_minutes: int) -> None:
    body = (
        f"Hello {name or 'User'},\n\n"
        f"Use this token to reset your password: {token}\n"
        f"It expires in {expire_minutes} minutes. If you did not ask for a reset, ignore this message.\n"
    )
    mailer.send(email, "Password reset", body)
