"""Shared validation utilities"""

import re
from typing import Optional

EMAIL_PATTERN = r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"


def normalize_pl_phone(phone: Optional[str]) -> Optional[str]:
    """
    Normalize a Polish phone number to its 9 national digits.

    Args:
        phone: Phone number string in various formats (+48 123 456 789, 123-456-789, ...)

    Returns:
        The 9 national digits, e.g. "123456789"

    Raises:
        ValueError: If the number does not contain 9 national digits
    """
    if not phone:
        return phone

    # Remove all non-digit characters
    digits = re.sub(r"\D", "", phone)

    # Handle 48 / 0048 country prefix
    if digits.startswith("0048") and len(digits) == 13:
        digits = digits[4:]
    elif digits.startswith("48") and len(digits) == 11:
        digits = digits[2:]

    if len(digits) != 9:
        raise ValueError("Phone number must have 9 digits")

    return digits


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    if not re.fullmatch(EMAIL_PATTERN, email):
        raise ValueError("Invalid email format")

    return email
