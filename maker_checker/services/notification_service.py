"""
Notification boundary — outbound mail and the messages we send.

Everything that leaves the system by email goes through a Mailer:
one-time codes, credentials for new privileged users, and the
"new item needs review" broadcast to checkers. A Mailer never
raises on delivery failure; it returns a MailResult and the caller
decides what a failed send means for its operation.

In-app notifications are rows a user reads back through
NotificationInbox. Writing them never fails the caller's operation.
"""

import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid
from html import escape

from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from maker_checker.config import Settings, get_settings
from maker_checker.errors import NotFoundError
from maker_checker.models.enums import NotificationType
from maker_checker.models.notification import Notification
from maker_checker.models.user import User, REVIEWER_ROLES

logger = logging.getLogger(__name__)


@dataclass
class MailResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class Mailer:
    """Interface for outbound mail."""

    def send_mail(
        self, to: str, subject: str, html_body: str, text_body: str
    ) -> MailResult:
        raise NotImplementedError


class SMTPMailer(Mailer):

    def __init__(self, settings: Settings):
        self.settings = settings

    def send_mail(self, to, subject, html_body, text_body) -> MailResult:
        message = EmailMessage()
        message["From"] = self.settings.MAIL_FROM
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(
                self.settings.SMTP_HOST, self.settings.SMTP_PORT, timeout=10
            ) as smtp:
                if self.settings.SMTP_USE_TLS:
                    smtp.starttls()
                if self.settings.SMTP_USERNAME:
                    smtp.login(self.settings.SMTP_USERNAME, self.settings.SMTP_PASSWORD or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Mail to %s failed: %s", to, e)
            return MailResult(success=False, error=str(e))
        return MailResult(success=True, message_id=message["Message-ID"])


class ConsoleMailer(Mailer):
    """Development mailer: writes the text body to the log instead of sending."""

    def send_mail(self, to, subject, html_body, text_body) -> MailResult:
        message_id = make_msgid()
        logger.info("Mail to %s: %s\n%s", to, subject, text_body)
        return MailResult(success=True, message_id=message_id)


def get_mailer() -> Mailer:
    """FastAPI dependency: the configured mailer."""
    settings = get_settings()
    if settings.MAIL_BACKEND == "smtp":
        return SMTPMailer(settings)
    return ConsoleMailer()


# --- Message templates ---

def _html_page(heading: str, paragraphs: list[str]) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    return (
        "<!DOCTYPE html><html><body style=\"font-family: sans-serif;\">"
        f"<h2>{escape(heading)}</h2>{body}"
        "<hr><p style=\"color: #71717a; font-size: 12px;\">"
        "SecureControl Banking System</p></body></html>"
    )


def otp_message(first_name: str, code: str, expires_in_minutes: int) -> tuple[str, str, str]:
    """Subject, HTML and text for a verification code email."""
    subject = "Your SecureControl verification code"
    html = _html_page("Verification code", [
        f"Hello {escape(first_name)},",
        f"Your verification code is <strong style=\"font-size: 24px; "
        f"letter-spacing: 4px;\">{code}</strong>",
        f"This code expires in {expires_in_minutes} minutes. "
        "If you did not request it, ignore this email.",
    ])
    text = (
        f"Hello {first_name},\n\n"
        f"Your verification code is {code}\n\n"
        f"This code expires in {expires_in_minutes} minutes. "
        "If you did not request it, ignore this email."
    )
    return subject, html, text


def credentials_message(
    full_name: str, email: str, role: str, temporary_password: str, login_url: str
) -> tuple[str, str, str]:
    """Subject, HTML and text for a new privileged user's credentials."""
    role_label = role.capitalize()
    subject = f"Your SecureControl {role_label} account"
    html = _html_page("Welcome to SecureControl", [
        f"Hello <strong>{escape(full_name)}</strong>,",
        f"You have been added as a <strong>{role_label}</strong>. "
        "Use the credentials below to log in.",
        f"Email: <strong>{escape(email)}</strong><br>"
        f"Password: <code>{escape(temporary_password)}</code>",
        f"<a href=\"{escape(login_url)}\">Log in to SecureControl</a>",
        "Please change your password after your first login. "
        "Do not share your credentials with anyone.",
    ])
    text = (
        f"Hello {full_name},\n\n"
        f"You have been added as a {role_label}.\n\n"
        f"Email: {email}\nPassword: {temporary_password}\n"
        f"Log in: {login_url}\n\n"
        "Please change your password after your first login."
    )
    return subject, html, text


def review_message(full_name: str, title: str, message: str) -> tuple[str, str]:
    html = _html_page(title, [f"Hello {escape(full_name)},", escape(message)])
    text = f"Hello {full_name},\n\n{message}\n\n---\nSecureControl Banking System"
    return html, text


# --- In-app notifications ---

def create_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    type: NotificationType = NotificationType.INFO,
    entity_type: str | None = None,
    entity_id=None,
) -> Notification | None:
    """
    Add one in-app notification inside a SAVEPOINT.

    Returns None if the row could not be written; the caller's own
    change is never rolled back for it.
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
    )
    try:
        with db.begin_nested():
            db.add(notification)
    except SQLAlchemyError:
        logger.warning("Notification for user %s could not be written", user_id, exc_info=True)
        return None
    return notification


@dataclass
class BroadcastResult:
    notified: int = 0
    emails_sent: int = 0


def notify_checkers(
    db: Session,
    mailer: Mailer | None,
    title: str,
    message: str,
    type: NotificationType = NotificationType.TRANSACTION,
    entity_type: str | None = None,
    entity_id=None,
) -> BroadcastResult:
    """
    Tell every active reviewer about an item that needs review.

    Each reviewer gets an in-app notification and, when a mailer is
    given, an email. Best-effort: failures are logged and skipped.
    """
    reviewers = db.execute(
        select(User).where(
            User.role.in_(list(REVIEWER_ROLES)),
            User.is_active.is_(True),
        )
    ).scalars().all()

    result = BroadcastResult()
    rows = [
        Notification(
            user_id=reviewer.id,
            title=title,
            message=message,
            type=type,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
        )
        for reviewer in reviewers
    ]
    if rows:
        try:
            with db.begin_nested():
                db.add_all(rows)
            result.notified = len(rows)
        except SQLAlchemyError:
            logger.warning("Review notifications could not be written", exc_info=True)

    if mailer is None:
        return result
    for reviewer in reviewers:
        html, text = review_message(reviewer.full_name, title, message)
        sent = mailer.send_mail(reviewer.email, title, html, text)
        if sent.success:
            result.emails_sent += 1
        else:
            logger.warning(
                "Review notification to %s failed: %s", reviewer.email, sent.error
            )
    return result


class NotificationInbox:
    """A user's own in-app notifications."""

    def __init__(self, db: Session, user_id: int):
        self.db = db
        self.user_id = user_id

    def recent(self, unread_only: bool = False, limit: int = 30) -> list[Notification]:
        """Most recent first."""
        query = select(Notification).where(Notification.user_id == self.user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        notifications = self.db.execute(
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).scalars().all()
        return list(notifications)

    def unread_count(self) -> int:
        return self.db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == self.user_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    def mark_read(self, notification_id: int) -> Notification:
        notification = self.db.get(Notification, notification_id)
        # Someone else's notification is indistinguishable from a missing one
        if not notification or notification.user_id != self.user_id:
            raise NotFoundError(f"Notification {notification_id} not found")
        notification.is_read = True
        self.db.flush()
        return notification

    def mark_all_read(self) -> int:
        """Returns how many notifications changed."""
        outcome = self.db.execute(
            update(Notification)
            .where(
                Notification.user_id == self.user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        return outcome.rowcount
