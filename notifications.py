"""Transactional email: SMTP delivery, templates and the best-effort notifier.

The :class:`Notifier` never raises on a failed delivery. Every send returns a
:class:`~schemas.NotificationOutcome` so callers can tell the primary
operation's result apart from the email's.
"""

import html
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional

import aiosmtplib
import structlog

import errors
from schemas import NotificationOutcome, Order, SellerApplication

logger = structlog.get_logger(__name__)


class Mailer:
    """Async SMTP client over aiosmtplib. One connection per message."""

    def __init__(
        self,
        host: str,
        port: int,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender_name: str = "Store Orders",
        start_tls: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender_name = sender_name
        self.start_tls = start_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "Mailer":
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.email_user,
            password=settings.email_pass,
            sender_name=settings.mail_from_name,
            start_tls=settings.smtp_starttls,
            timeout=settings.smtp_timeout,
        )

    @property
    def sender(self) -> str:
        return formataddr((self.sender_name, self.username or ""))

    def build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")
        return message

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.username:
            raise errors.NotificationFailure("Mail account is not configured")
        await aiosmtplib.send(
            self.build_message(to, subject, html_body),
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            start_tls=self.start_tls,
            timeout=self.timeout,
        )

    async def verify(self) -> bool:
        """Open and authenticate a session without sending anything."""
        smtp = aiosmtplib.SMTP(
            hostname=self.host, port=self.port, start_tls=self.start_tls, timeout=self.timeout
        )
        try:
            await smtp.connect()
            if self.username and self.password:
                await smtp.login(self.username, self.password)
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning("SMTP relay not reachable", host=self.host, error=str(e))
            return False
        finally:
            if smtp.is_connected:
                smtp.close()
        logger.info("SMTP relay verified", host=self.host)
        return True


# ---------- Templates ----------

def _e(value) -> str:
    return html.escape("" if value is None else str(value))


class OrderConfirmationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": "Your Order is Confirmed",
            "html": (
                "<h3>Thank you for your order!</h3>"
                f"<p><b>Product:</b> {_e(context['product_name'])}</p>"
                f"<p><b>Price:</b> {_e(context['currency'])}{_e(context['price'])}</p>"
                f"<p><b>Quantity:</b> {_e(context['quantity'])}</p>"
                f"<p><b>Order ID:</b> {_e(context['order_id'])}</p>"
            ),
        }


class OrderCancellationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": "Your Order Has Been Cancelled",
            "html": (
                "<h3>Your order has been cancelled</h3>"
                f"<p><b>Product:</b> {_e(context['product_name'])}</p>"
                f"<p><b>Price:</b> {_e(context['currency'])}{_e(context['price'])}</p>"
                f"<p><b>Quantity:</b> {_e(context['quantity'])}</p>"
                f"<p><b>Order ID:</b> {_e(context['order_id'])}</p>"
                f"<p><b>Cancelled At:</b> {_e(context['cancelled_at'])}</p>"
            ),
        }


class SellerApplicationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        return {
            "subject": "New Seller Application",
            "html": (
                "<h2>New Seller Application</h2>"
                f"<p><strong>Name:</strong> {_e(context['name'])}</p>"
                f"<p><strong>Shop Name:</strong> {_e(context['shop_name'])}</p>"
                f"<p><strong>Email:</strong> {_e(context['email'])}</p>"
                f"<p><strong>Phone:</strong> {_e(context['phone'])}</p>"
                f"<p><strong>Description:</strong> {_e(context['description'])}</p>"
            ),
        }


class AdminTestTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        return {"subject": context["subject"], "html": f"<p>{_e(context['message'])}</p>"}


def _order_context(order: Order, currency: str) -> dict:
    return {
        "product_name": order.product_name,
        "price": f"{order.price:.2f}",
        "currency": currency,
        "quantity": order.quantity or 1,
        "order_id": order.id,
    }


# ---------- Notifier ----------

class Notifier:
    def __init__(self, mailer, operator_email: Optional[str] = None, currency: str = "₹"):
        self.mailer = mailer
        self.operator_email = operator_email
        self.currency = currency

    async def _dispatch(self, kind: str, to: Optional[str], rendered: dict) -> NotificationOutcome:
        if not to:
            logger.error("Email not sent, no recipient", kind=kind)
            return NotificationOutcome(status="failed", error="No recipient")

        logger.info("Sending email", kind=kind, to=to)
        try:
            await self.mailer.send(to, rendered["subject"], rendered["html"])
        except Exception as e:
            logger.error("Email dispatch failed", kind=kind, to=to, error=str(e))
            return NotificationOutcome(status="failed", error=str(e) or type(e).__name__)

        logger.info("Email sent", kind=kind, to=to)
        return NotificationOutcome(status="sent")

    async def order_confirmation(self, order: Order) -> NotificationOutcome:
        rendered = OrderConfirmationTemplate.render(_order_context(order, self.currency))
        return await self._dispatch("order_confirmation", order.user_email, rendered)

    async def order_cancellation(self, order: Order,
                                 cancelled_at: Optional[datetime] = None) -> NotificationOutcome:
        context = _order_context(order, self.currency)
        cancelled_at = cancelled_at or datetime.now(timezone.utc)
        context["cancelled_at"] = cancelled_at.strftime("%Y-%m-%d %H:%M:%S %Z").strip()
        rendered = OrderCancellationTemplate.render(context)
        return await self._dispatch("order_cancellation", order.user_email, rendered)

    async def seller_application(self, application: SellerApplication) -> NotificationOutcome:
        rendered = SellerApplicationTemplate.render(application.model_dump())
        return await self._dispatch("seller_application", self.operator_email, rendered)

    async def admin_test(self, to: str, subject: str, message: str) -> NotificationOutcome:
        rendered = AdminTestTemplate.render({"subject": subject, "message": message})
        return await self._dispatch("admin_test", to, rendered)
