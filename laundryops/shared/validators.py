"""Shared validation utilities"""

import re
from typing import Optional

from ..config import DEFAULT_PHONE_COUNTRY_CODE


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a phone number to E.164 format.

    Numbers written with a leading ``+`` are kept as international numbers.
    National numbers (``0532 123 45 67`` or ``532 123 45 67``) get the
    default country code prepended.

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    stripped = phone.strip()
    digits = re.sub(r"\D", "", stripped)

    if stripped.startswith("+") or stripped.startswith("00"):
        if stripped.startswith("00"):
            digits = digits[2:]
        if not 8 <= len(digits) <= 15:
            raise ValueError("International phone number must have 8 to 15 digits")
        return f"+{digits}"

    if digits.startswith(DEFAULT_PHONE_COUNTRY_CODE) and len(digits) == 10 + len(DEFAULT_PHONE_COUNTRY_CODE):
        digits = digits[len(DEFAULT_PHONE_COUNTRY_CODE):]
    elif digits.startswith("0") and len(digits) == 11:
        digits = digits[1:]

    if len(digits) != 10:
        raise ValueError("Phone number must have 10 digits (e.g. 532 123 45 67)")

    return f"+{DEFAULT_PHONE_COUNTRY_CODE}{digits}"


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


def validate_time_of_day(value: Optional[str]) -> Optional[str]:
    """Validate a HH:MM wall clock time"""
    if not value:
        return value
    if not re.match(r"^([01]\d|2[0-3]):[0-5]\d$", value):
        raise ValueError("Time must be in HH:MM format")
    return value


def validate_coordinates(latitude: Optional[float], longitude: Optional[float]) -> None:
    """Both coordinates must be given together and lie within WGS84 bounds"""
    if latitude is None and longitude is None:
        return
    if latitude is None or longitude is None:
        raise ValueError("Latitude and longitude must be provided together")
    if not -90 <= latitude <= 90:
        raise ValueError("Latitude must be between -90 and 90")
    if not -180 <= longitude <= 180:
        raise ValueError("Longitude must be between -180 and 180")
