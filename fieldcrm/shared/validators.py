"""Shared validation utilities"""

import re
from typing import Optional


def validate_us_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize US phone number to E.164 format.

    Args:
        phone: Phone number string in various formats

    Returns:
        Normalized phone number in E.164 format (+1XXXXXXXXXX)

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    digits = re.sub(r"\D", "", phone)

    # Handle +1 prefix
    if digits.startswith("1") and len(digits) == 11:
        digits = digits[1:]

    if len(digits) != 10:
        raise ValueError("Phone number must be 10 digits for US numbers")

    return f"+1{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_hhmm(value: Optional[str]) -> Optional[str]:
    """Validate a 24-hour HH:MM local time string"""
    if not value:
        return value

    if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", value):
        raise ValueError("Time must be in HH:MM 24-hour format")

    return value


def validate_choice(value: Optional[str], choices, field_name: str) -> Optional[str]:
    """Validate that value is one of the allowed choices"""
    if value is None:
        return value

    if value not in choices:
        raise ValueError(f"Invalid {field_name}. Must be one of: {', '.join(choices)}")

    return value
