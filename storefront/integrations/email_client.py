"""
Transactional email through Resend.

Sending never raises: a failed or unconfigured send is logged and counted,
and the calling flow (registration, order placement...) carries on.
"""
import asyncio
import html
from typing import Any, Dict, List, Optional

import resend
import structlog

from storefront.config import get_settings
from storefront.monitoring.metrics import metrics

logger = structlog.get_logger(__name__)


class EmailSender:
    """Renders and sends the storefront's transactional emails."""

    def __init__(self) -> None:
        self.settings = get_settings()
        if self.settings.email_enabled:
            resend.api_key = self.settings.resend_api_key

    async def send(
        self,
        to: str | List[str],
        subject: str,
        body_html: str,
        template: str = "generic",
    ) -> Optional[Dict[str, Any]]:
        """
        Send one email.

        Returns:
            The Resend response, or None when the email was not sent
        """
        recipients = [to] if isinstance(to, str) else list(to)
        recipients = [r for r in recipients if r]
        if not recipients:
            metrics.record_email(template, "skipped")
            return None

        if not self.settings.email_enabled:
            logger.warning("email_not_configured", template=template, to=recipients)
            metrics.record_email(template, "skipped")
            return None

        params = {
            "from": self.settings.email_sender,
            "to": recipients,
            "subject": subject,
            "html": body_html,
        }
        try:
            result = await asyncio.to_thread(resend.Emails.send, params)
        except Exception as e:
            logger.error("email_send_failed", template=template, to=recipients, error=str(e))
            metrics.record_email(template, "failed")
            return None

        logger.info("email_sent", template=template, to=recipients)
        metrics.record_email(template, "sent")
        return result

    async def send_verification(self, email: str, first_name: Optional[str], link: str) -> None:
        name = html.escape(first_name or "there")
        await self.send(
            email,
            "Verify Your Email",
            f"<h2>Hello {name},</h2>"
            f'<p>Please click <a href="{link}">this link</a> to verify your email.</p>',
            template="verify_email",
        )

    async def send_verification_reminder(
        self, email: str, first_name: Optional[str], link: str
    ) -> None:
        name = html.escape(first_name or "there")
        await self.send(
            email,
            "Verify Your Account - New Link",
            f"<h2>Hello {name},</h2>"
            "<p>You requested a new verification link. "
            "Please click below to verify your account:</p>"
            f'<a href="{link}">{link}</a>'
            "<p>This link will expire in 1 hour.</p>",
            template="resend_verification",
        )

    async def send_password_reset(self, email: str, link: str) -> None:
        await self.send(
            email,
            "Password Reset",
            f'<p>Reset your password: <a href="{link}">here</a></p>'
            "<p>The link expires in 15 minutes.</p>",
            template="password_reset",
        )

    async def send_order_confirmation(self, email: str, order_id: str, total: float) -> None:
        await self.send(
            email,
            "Order Confirmation",
            "<h2>Thank you for your order!</h2>"
            f"<p>Order ID: <strong>{order_id}</strong></p>"
            f"<p>Total Paid: ${total:.2f}</p>"
            "<p>We'll notify you when your order ships.</p>",
            template="order_confirmation",
        )

    async def send_admin_order_notice(self, customer_email: str, order_id: str) -> None:
        await self.send(
            self.settings.admin_email,
            "New Order Placed",
            f"<p>User {html.escape(customer_email)} placed an order. "
            f"Order ID: <strong>{order_id}</strong></p>",
            template="admin_order_notice",
        )
