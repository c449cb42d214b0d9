"""Reusable field validators for request schemas."""

from __future__ import annotations

import re
from datetime import date

from app.core.dates import calculate_age

_NON_DIGITS = re.compile(r"\D")
_PHONE_CHARS = re.compile(r"^[\d\s\-\+\(\)\.]+$")

MAX_AGE_YEARS = 120


def normalize_whatsapp(value: str | None) -> str | None:
    """Strip formatting from a WhatsApp number; must leave 10-15 digits."""
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    digits = _NON_DIGITS.sub("", value)
    if not 10 <= len(digits) <= 15:
        raise ValueError("WhatsApp number must contain 10-15 digits")
    return digits


def validate_phone(value: str) -> str:
    value = value.strip()
    if not _PHONE_CHARS.match(value):
        raise ValueError("Phone number contains invalid characters")
    digits = _NON_DIGITS.sub("", value)
    if not 10 <= len(digits) <= 15:
        raise ValueError("Phone number must contain 10-15 digits")
    return value


def validate_date_of_birth(value: date | None, today: date | None = None) -> date | None:
    if value is None:
        return None
    today = today or date.today()
    if value > today:
        raise ValueError("Date of birth cannot be in the future")
    if calculate_age(value, today) > MAX_AGE_YEARS:
        raise ValueError(f"Age cannot exceed {MAX_AGE_YEARS} years")
    return value


def blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value
