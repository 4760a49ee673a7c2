"""
Email Service using Resend
Templates are written in MJML and compiled to HTML before sending
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import COMPANY_NAME, EMAIL_FROM_ADDRESS, GOOGLE_REVIEW_URL, PORTAL_URL, RESEND_API_KEY
from .email_templates import (
    review_request_template,
    review_thank_you_template,
    staff_alert_template,
    tier_upgrade_template,
)

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailDeliveryError(Exception):
    """Raised when an email could not be handed to the provider"""


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns an object/dict with 'html' and 'errors'
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        return html if html is not None else str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise EmailDeliveryError(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email via Resend

    Returns:
        Send response dict

    Raises:
        EmailDeliveryError: when Resend is not configured or the send fails
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailDeliveryError("Email service not configured")

    recipients = [to] if isinstance(to, str) else to
    html_content = compile_mjml_to_html(mjml_content)

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise EmailDeliveryError(f"Failed to send email: {str(e)}") from e


# ============================================
# Pre-built emails for CRM events
# ============================================


async def send_review_request_email(to: str, customer_name: str, review_public_id: str) -> dict:
    review_url = f"{PORTAL_URL}/reviews/{review_public_id}"
    return await send_email(
        to=to,
        subject=f"How was your service with {COMPANY_NAME}?",
        mjml_content=review_request_template(customer_name, review_url),
    )


async def send_review_thank_you_email(
    to: str, customer_name: str, rating: int, promo_code: Optional[str] = None
) -> dict:
    google_url = GOOGLE_REVIEW_URL if rating >= 4 else None
    return await send_email(
        to=to,
        subject="Thank you for your feedback",
        mjml_content=review_thank_you_template(customer_name, rating, google_url, promo_code),
    )


async def send_tier_upgrade_email(
    to: str, customer_name: str, tier_name: str, benefits: list[str]
) -> dict:
    return await send_email(
        to=to,
        subject=f"You've reached {tier_name} status!",
        mjml_content=tier_upgrade_template(customer_name, tier_name, benefits),
    )


async def send_staff_alert_email(to: Union[str, list[str]], title: str, lines: list[str]) -> dict:
    return await send_email(
        to=to,
        subject=title,
        mjml_content=staff_alert_template(title, lines),
    )
