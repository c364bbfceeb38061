"""Email service for subscription and newsletter mail."""
import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional, Protocol

import structlog

from src.core.config import settings
from src.core.exceptions import EmailDeliveryError

logger = structlog.get_logger()


class Recipient(Protocol):
    email: str
    first_name: str
    unsubscribe_token: str | None


class BlogSummary(Protocol):
    title: str
    slug: str
    excerpt: str


class EmailService:
    """Service for sending emails via SMTP."""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.SMTP_FROM_EMAIL
        self.from_name = settings.SMTP_FROM_NAME

    def _build_message(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str],
    ) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email

        if text_content:
            msg.attach(MIMEText(text_content, "plain", "utf-8"))
        msg.attach(MIMEText(html_content, "html", "utf-8"))
        return msg

    def _deliver(self, to_email: str, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
            server.starttls()
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.sendmail(self.from_email, to_email, msg.as_string())

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> None:
        """
        Send an email.

        The blocking SMTP exchange runs in the default thread pool so several
        sends can be in flight at once. Raises EmailDeliveryError on failure.
        """
        msg = self._build_message(to_email, subject, html_content, text_content)

        # For development/testing - just log the email
        if settings.ENVIRONMENT == "development" and not self.smtp_user:
            logger.info(
                "Email would be sent (dev mode)",
                to=to_email,
                subject=subject,
            )
            return

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._deliver, to_email, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email", to=to_email, error=str(e))
            raise EmailDeliveryError(to_email, str(e)) from e

        logger.info("Email sent successfully", to=to_email, subject=subject)

    async def send_subscription_confirmation(self, subscriber: Recipient, token: str) -> None:
        confirm_url = f"{settings.FRONTEND_URL}/subscription/confirm/{token}"
        await self.send_email(
            to_email=subscriber.email,
            subject="Please confirm your subscription",
            html_content=get_confirmation_email_html(subscriber.first_name, confirm_url),
            text_content=(
                f"Hi {subscriber.first_name or 'there'},\n\n"
                f"Confirm your subscription: {confirm_url}\n\n"
                "This link expires in 24 hours."
            ),
        )

    async def send_welcome_email(self, subscriber: Recipient) -> None:
        await self.send_email(
            to_email=subscriber.email,
            subject="Welcome to the newsletter!",
            html_content=get_welcome_email_html(
                subscriber.first_name,
                unsubscribe_url(subscriber.unsubscribe_token),
            ),
        )

    async def send_blog_notification(self, subscriber: Recipient, blog: BlogSummary) -> None:
        await self.send_email(
            to_email=subscriber.email,
            subject=f"New Post: {blog.title}",
            html_content=get_blog_notification_html(
                name=subscriber.first_name,
                title=blog.title,
                excerpt=blog.excerpt,
                post_url=f"{settings.FRONTEND_URL}/blog/{blog.slug}",
                unsubscribe_url=unsubscribe_url(subscriber.unsubscribe_token),
            ),
            text_content=(
                f"{blog.title}\n\n{blog.excerpt}\n\n"
                f"Read more: {settings.FRONTEND_URL}/blog/{blog.slug}\n"
                f"Unsubscribe: {unsubscribe_url(subscriber.unsubscribe_token)}"
            ),
        )


# Global instance
email_service = EmailService()


def unsubscribe_url(token: str | None) -> str:
    return f"{settings.FRONTEND_URL}/subscription/unsubscribe/{token or ''}"


# Email templates
_BASE_STYLE = """
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .header {{ background: #111827; color: white; padding: 30px; text-align: center; border-radius: 8px 8px 0 0; }}
            .content {{ background: #f9f9f9; padding: 30px; border-radius: 0 0 8px 8px; }}
            .button {{ display: inline-block; background: #10b981; color: white; padding: 12px 30px; text-decoration: none; border-radius: 5px; margin-top: 20px; }}
            .footer {{ text-align: center; margin-top: 20px; color: #666; font-size: 12px; }}
"""


def _render(heading: str, body: str, footer: str = "") -> str:
    style = _BASE_STYLE.format()
    return f"""
    <!DOCTYPE html>
    <html>
    <head>
        <meta charset="utf-8">
        <style>{style}</style>
    </head>
    <body>
        <div class="container">
            <div class="header">
                <h1>{heading}</h1>
            </div>
            <div class="content">
                {body}
            </div>
            <div class="footer">
                {footer}
            </div>
        </div>
    </body>
    </html>
    """


def get_confirmation_email_html(name: str, confirm_url: str) -> str:
    """Generate double opt-in confirmation email HTML."""
    return _render(
        "Confirm your subscription",
        f"""
                <p>Hi <strong>{escape(name or "there")}</strong>,</p>
                <p>Thanks for subscribing! Please confirm your email address to start receiving new posts.</p>
                <a href="{confirm_url}" class="button">Confirm Subscription</a>
                <p>This link expires in 24 hours. If you didn't subscribe, just ignore this email.</p>
        """,
    )


def get_welcome_email_html(name: str, unsubscribe_link: str) -> str:
    """Generate welcome email HTML."""
    return _render(
        "Welcome aboard!",
        f"""
                <p>Hi <strong>{escape(name or "there")}</strong>,</p>
                <p>Your subscription is confirmed. You'll get an email whenever a new post goes live.</p>
                <a href="{settings.FRONTEND_URL}/blog" class="button">Browse the Blog</a>
        """,
        f'<p><a href="{unsubscribe_link}">Unsubscribe</a></p>',
    )


def get_blog_notification_html(
    name: str,
    title: str,
    excerpt: str,
    post_url: str,
    unsubscribe_url: str,
) -> str:
    """Generate new-post notification email HTML."""
    return _render(
        escape(title),
        f"""
                <p>Hi <strong>{escape(name or "there")}</strong>,</p>
                <p>{escape(excerpt)}</p>
                <a href="{post_url}" class="button">Read the Post</a>
        """,
        f'<p>You are receiving this because you subscribed to new posts. <a href="{unsubscribe_url}">Unsubscribe</a></p>',
    )
