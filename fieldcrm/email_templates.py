"""
MJML Email Templates
Customer and staff emails, compiled to HTML by email_service
"""

from typing import Optional

from .config import COMPANY_NAME

THEME = {
    "primary": "#2563eb",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
    "danger": "#ef4444",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button href="{cta_url}" background-color="{THEME['primary']}" color="#ffffff"
              font-weight="600" border-radius="8px" padding="18px 40px" font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="32px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" padding="0 0 16px 0">
              {title}
            </mj-text>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section padding="32px 20px">
          <mj-column>
            <mj-text align="center" font-size="13px" color="#94a3b8" padding="0">
              {COMPANY_NAME}
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def review_request_template(customer_name: str, review_url: str) -> str:
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>
      Thank you for choosing {COMPANY_NAME}. We'd love to hear how your recent service went.
      It only takes a minute.
    </mj-text>
    """
    return get_base_template(
        title="How did we do?",
        preview_text="Tell us about your recent service",
        content_sections=content,
        cta_url=review_url,
        cta_label="Leave a Review",
    )


def review_thank_you_template(
    customer_name: str,
    rating: int,
    google_review_url: Optional[str] = None,
    promo_code: Optional[str] = None,
) -> str:
    extra = ""
    if promo_code:
        extra += f"""
        <mj-text>
          As a thank you, here is <strong>15% off</strong> your next service with code
          <strong>{promo_code}</strong>. It is valid for 30 days.
        </mj-text>
        """
    if google_review_url:
        extra += """
        <mj-text>
          If you have a moment, sharing your experience on Google helps other families find us.
        </mj-text>
        """
    else:
        extra += """
        <mj-text>
          We're sorry we fell short. A member of our team will reach out to make it right.
        </mj-text>
        """

    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Thanks for rating your service {rating}/5. Your feedback helps us improve.</mj-text>
    {extra}
    """
    return get_base_template(
        title="Thank you for your feedback",
        preview_text="We received your review",
        content_sections=content,
        cta_url=google_review_url,
        cta_label="Review us on Google" if google_review_url else None,
    )


def tier_upgrade_template(customer_name: str, tier_name: str, benefits: list[str]) -> str:
    benefit_lines = "<br/>".join(f"• {b}" for b in benefits)
    content = f"""
    <mj-text>Hi {customer_name},</mj-text>
    <mj-text>Congratulations! You've reached <strong>{tier_name}</strong> status.</mj-text>
    <mj-text padding="0 0 0 20px">{benefit_lines}</mj-text>
    """
    return get_base_template(
        title=f"Welcome to {tier_name}",
        preview_text=f"You've been upgraded to {tier_name}",
        content_sections=content,
    )


def staff_alert_template(title: str, lines: list[str], cta_url: Optional[str] = None) -> str:
    """Internal notification to staff (escalations, follow-up assignments)"""
    body = "".join(f"<mj-text>{line}</mj-text>" for line in lines)
    return get_base_template(
        title=title,
        preview_text=title,
        content_sections=body,
        cta_url=cta_url,
        cta_label="Open Dashboard" if cta_url else None,
    )
